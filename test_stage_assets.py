#!/usr/bin/env python3
"""
Test suite for the stage_assets entry point
"""

import unittest
import tempfile
import shutil
import sys
import os
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import stage_assets


def make_package(project_dir: Path, name: str, files: dict) -> None:
    dist = project_dir / "node_modules" / name / "dist"
    for rel, content in files.items():
        path = dist / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


class StageAssetsTestCase(unittest.TestCase):
    def setUp(self):
        self.project_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.project_dir)

    def run_main(self, *argv):
        return stage_assets.main(["--project-dir", str(self.project_dir), "--quiet",
                                  *argv])


class TestEmbeddedManifest(StageAssetsTestCase):
    """Runs against the built-in mermaid/katex manifest"""

    def setUp(self):
        super().setUp()
        make_package(self.project_dir, "mermaid", {
            "mermaid.esm.min.mjs": 'import "./chunks/mermaid.esm.min/chunk-X.mjs";',
            "mermaid.min.js": "var mermaid;",
            "mermaid.js": "var mermaid;",
            "chunks/mermaid.esm.min/chunk-X.mjs": "export {};",
            "themes/dark.css": "",
            "diagrams/flowchart.d.ts": "",
            "diagram-api/types.d.ts": "",
            "rendering-util/render.d.ts": "",
            "utils/index.d.ts": "",
        })
        make_package(self.project_dir, "katex", {
            "katex.min.js": "var katex;",
            "katex.min.css": ".katex{}",
            "contrib/auto-render.min.js": "",
            "fonts/KaTeX_Main-Regular.woff2": "font",
        })

    def test_full_run(self):
        self.assertEqual(self.run_main(), 0)

        dist = self.project_dir / "dist"
        self.assertTrue((dist / "mermaid" / "mermaid.esm.min.js").exists())
        self.assertFalse((dist / "mermaid" / "mermaid.esm.min.mjs").exists())
        self.assertEqual(
            (dist / "mermaid" / "mermaid.esm.min.js").read_text(encoding="utf-8"),
            'import "./chunks/mermaid.esm.min/chunk-X.js";')
        self.assertTrue((dist / "mermaid" / "chunks" / "mermaid.esm.min" /
                         "chunk-X.js").exists())
        self.assertTrue((dist / "katex" / "katex-auto-render.min.js").exists())
        self.assertTrue((dist / "katex" / "fonts" / "KaTeX_Main-Regular.woff2").exists())

    def test_output_dir_override(self):
        self.assertEqual(self.run_main("--output-dir", "public/vendor"), 0)
        self.assertTrue((self.project_dir / "public" / "vendor" / "katex" /
                         "katex.min.js").exists())
        self.assertFalse((self.project_dir / "dist").exists())

    def test_clean_flag(self):
        stale = self.project_dir / "dist" / "old.js"
        stale.parent.mkdir(parents=True)
        stale.write_text("old")

        self.assertEqual(self.run_main(), 0)
        self.assertTrue(stale.exists())

        self.assertEqual(self.run_main("--clean"), 0)
        self.assertFalse(stale.exists())

    def test_partial_failure_exit_code(self):
        shutil.rmtree(self.project_dir / "node_modules" / "mermaid")

        self.assertEqual(self.run_main(), 1)
        self.assertTrue((self.project_dir / "dist" / "katex" / "katex.min.css").exists())

    def test_ignore_errors(self):
        shutil.rmtree(self.project_dir / "node_modules" / "mermaid")
        self.assertEqual(self.run_main("--ignore-errors"), 0)


class TestManifestOption(StageAssetsTestCase):
    """Runs against a YAML manifest"""

    def write_manifest(self, text):
        path = self.project_dir / "assets.yaml"
        path.write_text(text, encoding="utf-8")
        return str(path)

    def test_yaml_manifest(self):
        make_package(self.project_dir, "demo", {"demo.mjs": "import('./lazy.mjs')",
                                                "lazy.mjs": ""})
        manifest = self.write_manifest(
            "output_root: static\n"
            "libraries:\n"
            "  - name: demo\n"
            "    source: node_modules/demo/dist\n"
            "    target: demo\n"
            "    extension_rewrite: [mjs, js]\n"
            "    files:\n"
            "      - {src: demo.mjs, dest: demo.mjs}\n"
            "      - {src: lazy.mjs, dest: lazy.mjs}\n")

        self.assertEqual(self.run_main("--manifest", manifest), 0)

        out = self.project_dir / "static" / "demo"
        self.assertEqual(sorted(os.listdir(out)), ["demo.js", "lazy.js"])
        self.assertEqual((out / "demo.js").read_text(encoding="utf-8"),
                         "import('./lazy.js')")

    def test_invalid_manifest(self):
        manifest = self.write_manifest(
            "libraries:\n"
            "  - name: evil\n"
            "    source: node_modules/evil\n"
            "    target: ../../outside\n")

        with patch("builtins.print") as mock_print:
            self.assertEqual(stage_assets.main(
                ["--project-dir", str(self.project_dir), "--manifest", manifest]), 1)

        message = mock_print.call_args_list[0].args[0]
        self.assertTrue(message.startswith("ERROR: Invalid manifest"))
        self.assertFalse((self.project_dir / "dist").exists())

    def test_wrongly_typed_manifest_values(self):
        """Bad values are reported, not raised"""
        for text in ["output_root:\nlibraries: []\n",
                     "libraries: [1]\n",
                     "log: true\n",
                     "libraries:\n  - {name: x, source: 5, target: x}\n",
                     "libraries:\n  - {name: x, source: s, target: x, extension_rewrite: 5}\n"]:
            with self.subTest(text=text):
                manifest = self.write_manifest(text)
                with patch("builtins.print") as mock_print:
                    self.assertEqual(self.run_main("--manifest", manifest), 1)
                message = mock_print.call_args_list[0].args[0]
                self.assertTrue(message.startswith("ERROR: Invalid manifest"))

    def test_missing_manifest(self):
        self.assertEqual(self.run_main("--manifest", "does-not-exist.yaml"), 1)

    def test_malformed_yaml(self):
        manifest = self.write_manifest("libraries: [unclosed\n")
        self.assertEqual(self.run_main("--manifest", manifest), 1)


class TestArgumentParsing(unittest.TestCase):
    """Test command line argument parsing"""

    def test_default_args(self):
        args = stage_assets.parse_args([])
        self.assertEqual(args.project_dir, ".")
        self.assertIsNone(args.output_dir)
        self.assertIsNone(args.manifest)
        self.assertFalse(args.clean)
        self.assertFalse(args.ignore_errors)

    def test_short_flags(self):
        args = stage_assets.parse_args(["-q", "-v"])
        self.assertTrue(args.quiet)
        self.assertTrue(args.verbose)

    @patch("stage_assets.stage")
    def test_interrupt(self, mock_stage):
        mock_stage.side_effect = KeyboardInterrupt
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch("builtins.print"):
                self.assertEqual(stage_assets.main(["--project-dir", temp_dir]), 1)


if __name__ == "__main__":
    # Run tests with verbosity
    unittest.main(verbosity=2)
