#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Unit tests for copy_libraries.py"""

import filecmp
import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

import copy_libraries
from library_config import Library, LogConfig

QUIET = LogConfig(enabled=False)


def write(path, content):
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(content, bytes):
        path.write_bytes(content)
    else:
        with open(path, 'w', encoding='utf-8', newline='') as f:
            f.write(content)


def tree(root):
    """Relative paths of every file under root."""
    root = Path(root)
    return sorted(p.relative_to(root).as_posix() for p in root.rglob('*') if p.is_file())


class StagerTestCase(unittest.TestCase):
    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.test_dir)
        self.output_root = self.test_dir / 'dist'

        # A fake node_modules layout modelled on mermaid and katex
        self.mermaid_src = self.test_dir / 'node_modules' / 'mermaid' / 'dist'
        write(self.mermaid_src / 'mermaid.esm.min.mjs',
              'import{a}from"./chunks/mermaid.esm.min/chunk-A.mjs";'
              'const d=()=>import("./chunks/mermaid.esm.min/flow.mjs");')
        write(self.mermaid_src / 'mermaid.min.js', 'var mermaid="./x.mjs";')
        write(self.mermaid_src / 'chunks' / 'mermaid.esm.min' / 'chunk-A.mjs',
              'export*from"./chunk-B.mjs";')
        write(self.mermaid_src / 'chunks' / 'mermaid.esm.min' / 'chunk-B.mjs',
              'export const b=1;')
        write(self.mermaid_src / 'chunks' / 'mermaid.esm.min' / 'flow.mjs',
              "export default import('./chunk-B.mjs');")
        write(self.mermaid_src / 'chunks' / 'mermaid.esm.min' / 'flow.mjs.map',
              '{"sources":["flow.mjs"]}')

        self.katex_src = self.test_dir / 'node_modules' / 'katex' / 'dist'
        write(self.katex_src / 'katex.min.js', 'var katex={};')
        write(self.katex_src / 'katex.min.css', '.katex{font:1em KaTeX_Main}')
        write(self.katex_src / 'contrib' / 'auto-render.min.js', 'renderMathInElement();')
        write(self.katex_src / 'fonts' / 'KaTeX_Main-Regular.woff2', b'wOF2\x00\x01\x02\xff')
        write(self.katex_src / 'fonts' / 'KaTeX_Math-Italic.ttf', b'\x00\x01\x00\x00\xff')

        self.mermaid = Library(
            name='mermaid',
            source=self.mermaid_src,
            target='mermaid',
            files=(('mermaid.esm.min.mjs', 'mermaid.esm.min.mjs'),
                   ('mermaid.min.js', 'mermaid.min.js')),
            directories=(('chunks', 'chunks'),),
            extension_rewrite=('.mjs', '.js'),
        )
        self.katex = Library(
            name='katex',
            source=self.katex_src,
            target='katex',
            files=(('katex.min.js', 'katex.min.js'),
                   ('katex.min.css', 'katex.min.css'),
                   (os.path.join('contrib', 'auto-render.min.js'),
                    'katex-auto-render.min.js')),
            directories=(('fonts', 'fonts'),),
        )

    def stage(self, manifest=None, clean_first=True):
        if manifest is None:
            manifest = [self.mermaid, self.katex]
        return copy_libraries.stage(manifest, self.output_root, clean_first, QUIET)


class TestStage(StagerTestCase):
    def test_every_declared_file_staged(self):
        report = self.stage()

        self.assertTrue(report.ok, report.failed)
        self.assertEqual(tree(self.output_root), [
            'katex/fonts/KaTeX_Main-Regular.woff2',
            'katex/fonts/KaTeX_Math-Italic.ttf',
            'katex/katex-auto-render.min.js',
            'katex/katex.min.css',
            'katex/katex.min.js',
            'mermaid/chunks/mermaid.esm.min/chunk-A.js',
            'mermaid/chunks/mermaid.esm.min/chunk-B.js',
            'mermaid/chunks/mermaid.esm.min/flow.js',
            'mermaid/chunks/mermaid.esm.min/flow.mjs.map',
            'mermaid/mermaid.esm.min.js',
            'mermaid/mermaid.min.js',
        ])

    def test_binary_files_copied_byte_for_byte(self):
        self.stage()
        for name in ['KaTeX_Main-Regular.woff2', 'KaTeX_Math-Italic.ttf']:
            self.assertTrue(filecmp.cmp(self.katex_src / 'fonts' / name,
                                        self.output_root / 'katex' / 'fonts' / name,
                                        shallow=False))

    def test_references_rewritten_in_renamed_files(self):
        self.stage()
        mermaid_out = self.output_root / 'mermaid'

        entry = (mermaid_out / 'mermaid.esm.min.js').read_text(encoding='utf-8')
        self.assertEqual(entry,
                         'import{a}from"./chunks/mermaid.esm.min/chunk-A.js";'
                         'const d=()=>import("./chunks/mermaid.esm.min/flow.js");')
        chunks = mermaid_out / 'chunks' / 'mermaid.esm.min'
        self.assertEqual((chunks / 'chunk-A.js').read_text(encoding='utf-8'),
                         'export*from"./chunk-B.js";')
        self.assertEqual((chunks / 'flow.js').read_text(encoding='utf-8'),
                         "export default import('./chunk-B.js');")

    def test_files_without_matching_extension_left_alone(self):
        self.stage()
        # Not renamed, so not patched either
        self.assertEqual(
            (self.output_root / 'mermaid' / 'mermaid.min.js').read_text(encoding='utf-8'),
            'var mermaid="./x.mjs";')
        self.assertEqual(
            (self.output_root / 'mermaid' / 'chunks' / 'mermaid.esm.min' /
             'flow.mjs.map').read_text(encoding='utf-8'),
            '{"sources":["flow.mjs"]}')

    def test_rewrite_follows_source_extension(self):
        demo_src = self.test_dir / 'node_modules' / 'demo' / 'dist'
        write(demo_src / 'entry.mjs', 'import("./chunk.mjs");')
        write(demo_src / 'chunk.mjs', 'export {};')
        write(demo_src / 'plain.js', 'import("./chunk.mjs");')
        demo = Library(name='demo', source=demo_src, target='demo',
                       files=(('entry.mjs', 'entry.js'),
                              ('chunk.mjs', 'chunk.mjs'),
                              ('plain.js', 'plain.mjs')),
                       extension_rewrite=('.mjs', '.js'))

        report = self.stage([demo])

        self.assertTrue(report.ok, report.failed)
        demo_out = self.output_root / 'demo'
        self.assertEqual(tree(demo_out), ['chunk.js', 'entry.js', 'plain.mjs'])
        self.assertEqual((demo_out / 'entry.js').read_text(encoding='utf-8'),
                         'import("./chunk.js");')
        # Not a module source, so neither renamed nor patched
        self.assertEqual((demo_out / 'plain.mjs').read_text(encoding='utf-8'),
                         'import("./chunk.mjs");')

    def test_report_counts(self):
        report = self.stage()
        self.assertEqual(report.count('copy'), 11)
        self.assertEqual(report.count('rewrite'), 4)
        self.assertEqual(report.summary(),
                         'Staged 11 file(s), rewrote 4 file(s), 0 failure(s)')

    def test_clean_runs_are_idempotent(self):
        self.stage()
        first = self.test_dir / 'first'
        shutil.copytree(self.output_root, first)

        self.stage()

        comparison = filecmp.dircmp(first, self.output_root)
        self.assertEqual(tree(first), tree(self.output_root))
        for rel in tree(first):
            self.assertTrue(filecmp.cmp(first / rel, self.output_root / rel,
                                        shallow=False), rel)
        self.assertFalse(comparison.left_only or comparison.right_only)

    def test_clean_mode_removes_stale_files(self):
        write(self.output_root / 'stale.txt', 'old')
        self.stage(clean_first=True)
        self.assertFalse((self.output_root / 'stale.txt').exists())

    def test_additive_mode_keeps_existing_files(self):
        write(self.output_root / 'stale.txt', 'old')
        self.stage(clean_first=False)
        self.assertTrue((self.output_root / 'stale.txt').exists())
        self.assertTrue((self.output_root / 'katex' / 'katex.min.js').exists())

    def test_directory_structure_mirrored(self):
        nested = self.katex_src / 'fonts' / 'extra' / 'deeper'
        write(nested / 'KaTeX_Size1.woff', b'wOFF')
        (self.katex_src / 'fonts' / 'empty').mkdir()

        self.stage([self.katex])

        fonts_out = self.output_root / 'katex' / 'fonts'
        self.assertEqual(tree(fonts_out), tree(self.katex_src / 'fonts'))
        self.assertTrue((fonts_out / 'empty').is_dir())

    def test_empty_output_root_when_manifest_empty(self):
        report = self.stage([])
        self.assertTrue(report.ok)
        self.assertTrue(self.output_root.is_dir())
        self.assertEqual(tree(self.output_root), [])


class TestFailures(StagerTestCase):
    def test_missing_library_source_does_not_stop_others(self):
        missing = Library(name='missing',
                          source=self.test_dir / 'node_modules' / 'missing' / 'dist',
                          target='missing',
                          files=(('missing.js', 'missing.js'),))

        report = self.stage([missing, self.katex])

        self.assertFalse(report.ok)
        self.assertEqual([r.kind for r in report.failed], ['library'])
        self.assertTrue((self.output_root / 'katex' / 'katex.min.css').exists())
        self.assertFalse((self.output_root / 'missing').exists())

    def test_missing_file_and_directory_recorded(self):
        library = Library(name='katex', source=self.katex_src, target='katex',
                          files=(('nope.js', 'nope.js'), ('katex.min.js', 'katex.min.js')),
                          directories=(('nope', 'nope'), ('fonts', 'fonts')))

        report = self.stage([library])

        self.assertEqual(sorted(r.kind for r in report.failed), ['copy', 'directory'])
        for result in report.failed:
            self.assertIn('nope', str(result.path))
            self.assertTrue(result.error)
        self.assertTrue((self.output_root / 'katex' / 'katex.min.js').exists())
        self.assertTrue((self.output_root / 'katex' / 'fonts' /
                         'KaTeX_Main-Regular.woff2').exists())

    def test_rewrite_failure_keeps_copied_file(self):
        write(self.mermaid_src / 'chunks' / 'broken.mjs', b'\xff\xfe not utf-8')

        report = self.stage([self.mermaid])

        self.assertEqual([r.kind for r in report.failed], ['rewrite'])
        self.assertTrue((self.output_root / 'mermaid' / 'chunks' / 'broken.js').exists())
        self.assertTrue((self.output_root / 'mermaid' / 'chunks' / 'mermaid.esm.min' /
                         'flow.js').exists())

    def test_copy_error_continues(self):
        real_copy = shutil.copy2

        def flaky_copy(src, dest, *args, **kwargs):
            if Path(src).name == 'katex.min.css':
                raise PermissionError(13, 'Permission denied', str(dest))
            return real_copy(src, dest, *args, **kwargs)

        with patch('copy_libraries.shutil.copy2', side_effect=flaky_copy):
            report = self.stage([self.katex])

        self.assertEqual(len(report.failed), 1)
        self.assertIn('Permission denied', report.failed[0].error)
        self.assertTrue((self.output_root / 'katex' / 'katex.min.js').exists())
        self.assertTrue((self.output_root / 'katex' / 'katex-auto-render.min.js').exists())

    def test_destination_outside_root_refused(self):
        # Library objects built by hand skip manifest validation
        library = Library(name='katex', source=self.katex_src, target='katex',
                          files=(('katex.min.js', '../../escaped.js'),))

        report = self.stage([library])

        self.assertEqual([r.kind for r in report.failed], ['copy'])
        self.assertFalse((self.test_dir / 'escaped.js').exists())

    @unittest.skipIf(os.name == 'nt', 'symlinks need privileges on Windows')
    def test_symlink_under_root_not_followed_outside(self):
        outside = self.test_dir / 'outside'
        outside.mkdir()
        (self.output_root / 'katex').mkdir(parents=True)
        os.symlink(outside, self.output_root / 'katex' / 'fonts')

        report = self.stage([self.katex], clean_first=False)

        self.assertEqual([r.kind for r in report.failed], ['copy', 'copy'])
        self.assertEqual(os.listdir(outside), [])
        self.assertTrue((self.output_root / 'katex' / 'katex.min.js').exists())

    def test_renamed_file_does_not_overwrite_sibling(self):
        chunks = self.mermaid_src / 'chunks'
        write(chunks / 'dup.js', 'first')
        write(chunks / 'dup.mjs', 'second')

        report = self.stage([self.mermaid])

        self.assertEqual(len(report.failed), 1)
        self.assertEqual(report.failed[0].kind, 'copy')
        self.assertIn('already staged', report.failed[0].error)
        # dup.js sorts first and keeps its content
        self.assertEqual((self.output_root / 'mermaid' / 'chunks' / 'dup.js')
                         .read_text(encoding='utf-8'), 'first')

    def test_refuses_to_clean_directory_holding_sources(self):
        with self.assertRaises(ValueError):
            copy_libraries.stage([self.katex], self.test_dir, True, QUIET)
        self.assertTrue(self.katex_src.is_dir())


class TestLogging(StagerTestCase):
    def test_progress_printed(self):
        with patch('builtins.print') as mock_print:
            copy_libraries.stage([self.katex], self.output_root, True,
                                 LogConfig(enabled=True), display_root=self.test_dir)

        lines = [call.args[0] for call in mock_print.call_args_list]
        self.assertIn('  \n=== Processing library: katex ===', lines)
        self.assertIn('✓ Copied: katex.min.js -> ' +
                      os.path.join('dist', 'katex', 'katex.min.js'), lines)
        self.assertIn('✓ \nBuild completed successfully!', lines)

    def test_errors_go_to_stderr(self):
        missing = Library(name='missing', source=self.test_dir / 'gone', target='gone')
        with patch('builtins.print') as mock_print:
            copy_libraries.stage([missing], self.output_root, True,
                                 LogConfig(enabled=True), display_root=self.test_dir)

        error_calls = [call for call in mock_print.call_args_list
                       if call.kwargs.get('file') is not None]
        self.assertTrue(error_calls)
        self.assertTrue(error_calls[0].args[0].startswith('✗ Source directory not found'))

    def test_disabled_logging_prints_nothing(self):
        with patch('builtins.print') as mock_print:
            self.stage()
        mock_print.assert_not_called()

    def test_verbose_lines_only_when_verbose(self):
        with patch('builtins.print') as mock_print:
            copy_libraries.stage([self.mermaid], self.output_root, True,
                                 LogConfig(enabled=True, verbose=False))
        quiet_lines = [call.args[0] for call in mock_print.call_args_list]

        with patch('builtins.print') as mock_print:
            copy_libraries.stage([self.mermaid], self.output_root, True,
                                 LogConfig(enabled=True, verbose=True))
        verbose_lines = [call.args[0] for call in mock_print.call_args_list]

        self.assertFalse(any(line.startswith('    Entering') for line in quiet_lines))
        self.assertTrue(any(line.startswith('    Entering') for line in verbose_lines))


if __name__ == '__main__':
    unittest.main()
