#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Unit tests for module_rewrite.py"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path

import module_rewrite


class TestNormalizeExtension(unittest.TestCase):
    def test_adds_leading_dot(self):
        self.assertEqual(module_rewrite.normalize_extension('mjs'), '.mjs')
        self.assertEqual(module_rewrite.normalize_extension('.mjs'), '.mjs')
        self.assertEqual(module_rewrite.normalize_extension('..js'), '.js')

    def test_rejects_empty(self):
        with self.assertRaises(ValueError):
            module_rewrite.normalize_extension('')
        with self.assertRaises(ValueError):
            module_rewrite.normalize_extension('.')


class TestRewrittenName(unittest.TestCase):
    REWRITE = ('.mjs', '.js')

    def test_matching_suffix_is_swapped(self):
        result = module_rewrite.rewritten_name(
            Path('node_modules/mermaid/dist/mermaid.esm.min.mjs'),
            Path('dist/mermaid/mermaid.esm.min.mjs'), self.REWRITE)
        self.assertEqual(result, (Path('dist/mermaid/mermaid.esm.min.js'), True))

    def test_other_suffix_is_kept(self):
        dest = Path('dist/mermaid/mermaid.min.js')
        result = module_rewrite.rewritten_name(
            Path('node_modules/mermaid/dist/mermaid.min.js'), dest, self.REWRITE)
        self.assertEqual(result, (dest, False))

    def test_decided_by_source_extension(self):
        # Destination already named .js: still patched
        dest = Path('dist/demo/entry.js')
        result = module_rewrite.rewritten_name(Path('src/entry.mjs'), dest, self.REWRITE)
        self.assertEqual(result, (dest, True))

        # Source is not a module: destination named .mjs is left as is
        dest = Path('dist/demo/a.mjs')
        result = module_rewrite.rewritten_name(Path('src/a.js'), dest, self.REWRITE)
        self.assertEqual(result, (dest, False))

    def test_no_rewrite(self):
        dest = Path('dist/katex/katex.mjs')
        result = module_rewrite.rewritten_name(Path('katex.mjs'), dest, None)
        self.assertEqual(result, (dest, False))


class TestRewriteReferences(unittest.TestCase):
    def rewrite(self, text):
        return module_rewrite.rewrite_references(text, '.mjs', '.js')

    def test_static_import(self):
        text, count = self.rewrite('import{a as b}from"./chunks/chunk-ABC.mjs";')
        self.assertEqual(text, 'import{a as b}from"./chunks/chunk-ABC.js";')
        self.assertEqual(count, 1)

    def test_single_quotes(self):
        text, count = self.rewrite("export * from './utils.mjs';")
        self.assertEqual(text, "export * from './utils.js';")
        self.assertEqual(count, 1)

    def test_dynamic_import(self):
        source = 'const m = await import("./diagrams/flow.mjs");'
        text, count = self.rewrite(source)
        self.assertEqual(text, 'const m = await import("./diagrams/flow.js");')
        self.assertEqual(count, 1)

    def test_dynamic_import_with_spaces_and_backticks(self):
        text, count = self.rewrite('import( `./themes/${name}.mjs` )')
        self.assertEqual(text, 'import( `./themes/${name}.js` )')
        self.assertEqual(count, 1)

    def test_multiple_references(self):
        source = ('import a from"./a.mjs";import b from"./b.mjs";'
                  'l(()=>import("./c.mjs"))')
        text, count = self.rewrite(source)
        self.assertNotIn('.mjs', text)
        self.assertEqual(count, 3)

    def test_only_exact_suffix(self):
        source = 'const map = "./a.mjs.map"; const other = "./a.cjs";'
        text, count = self.rewrite(source)
        self.assertEqual(text, source)
        self.assertEqual(count, 0)

    def test_bare_extension_constant_untouched(self):
        source = 'if (name.endsWith(".mjs")) {}'
        text, count = self.rewrite(source)
        self.assertEqual(text, source)
        self.assertEqual(count, 0)

    def test_unquoted_text_untouched(self):
        source = '// see chunk.mjs for details'
        self.assertEqual(self.rewrite(source), (source, 0))

    def test_mismatched_quotes_untouched(self):
        source = '"./a.mjs\''
        self.assertEqual(self.rewrite(source), (source, 0))


class TestRewriteFile(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.test_dir)

    def test_rewrites_in_place(self):
        path = os.path.join(self.test_dir, 'entry.js')
        with open(path, 'w', encoding='utf-8') as f:
            f.write('import("./chunk.mjs");\n')

        count = module_rewrite.rewrite_file(path, '.mjs', '.js')

        self.assertEqual(count, 1)
        with open(path, 'r', encoding='utf-8') as f:
            self.assertEqual(f.read(), 'import("./chunk.js");\n')

    def test_preserves_line_endings(self):
        path = os.path.join(self.test_dir, 'entry.js')
        with open(path, 'wb') as f:
            f.write(b'import a from "./a.mjs";\r\nexport { a };\r\n')

        module_rewrite.rewrite_file(path, '.mjs', '.js')

        with open(path, 'rb') as f:
            self.assertEqual(f.read(), b'import a from "./a.js";\r\nexport { a };\r\n')

    def test_unchanged_file_not_rewritten(self):
        path = os.path.join(self.test_dir, 'plain.js')
        with open(path, 'w', encoding='utf-8') as f:
            f.write('console.log("hello");\n')
        os.utime(path, (1000000000, 1000000000))

        count = module_rewrite.rewrite_file(path, '.mjs', '.js')

        self.assertEqual(count, 0)
        self.assertEqual(os.path.getmtime(path), 1000000000)

    def test_binary_content_raises(self):
        path = os.path.join(self.test_dir, 'blob.js')
        with open(path, 'wb') as f:
            f.write(b'\xff\xfe\x00\x80')

        with self.assertRaises(UnicodeDecodeError):
            module_rewrite.rewrite_file(path, '.mjs', '.js')


if __name__ == '__main__':
    unittest.main()
