#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Unit tests for library_config.py"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path

import yaml

import library_config


class TestEmbeddedManifest(unittest.TestCase):
    def setUp(self):
        self.project_dir = Path(tempfile.mkdtemp())
        self.addCleanup(shutil.rmtree, self.project_dir)

    def test_libraries_in_definition_order(self):
        libraries = library_config.get_libraries(self.project_dir)
        self.assertEqual([lib.name for lib in libraries], ['mermaid', 'katex'])

    def test_sources_resolved_against_project_dir(self):
        mermaid = library_config.get_libraries(self.project_dir)[0]
        expected = (self.project_dir / 'node_modules' / 'mermaid' / 'dist').resolve()
        self.assertEqual(mermaid.source, expected)

    def test_only_mermaid_rewrites_extensions(self):
        mermaid, katex = library_config.get_libraries(self.project_dir)
        self.assertEqual(mermaid.extension_rewrite, ('.mjs', '.js'))
        self.assertIsNone(katex.extension_rewrite)

    def test_katex_auto_render_renamed(self):
        katex = library_config.get_libraries(self.project_dir)[1]
        self.assertIn((os.path.join('contrib', 'auto-render.min.js'),
                       'katex-auto-render.min.js'), katex.files)
        self.assertEqual(katex.directories, (('fonts', 'fonts'),))

    def test_library_is_immutable(self):
        katex = library_config.get_libraries(self.project_dir)[1]
        with self.assertRaises(AttributeError):
            katex.target = 'elsewhere'


class TestBuildLibrary(unittest.TestCase):
    def entry(self, **overrides):
        entry = {
            'name': 'demo',
            'source': 'node_modules/demo/dist',
            'target': 'demo',
            'files': [{'src': 'demo.js', 'dest': 'demo.js'}],
        }
        entry.update(overrides)
        return entry

    def test_missing_required_key(self):
        entry = self.entry()
        del entry['target']
        with self.assertRaises(ValueError):
            library_config.build_library(entry, Path('/project'))

    def test_absolute_source_kept(self):
        library = library_config.build_library(
            self.entry(source='/opt/demo/dist'), Path('/project'))
        self.assertEqual(library.source, Path('/opt/demo/dist').resolve())

    def test_escaping_target_rejected(self):
        for target in ['../outside', '/etc', 'a/../../b', '']:
            with self.subTest(target=target):
                with self.assertRaises(ValueError):
                    library_config.build_library(self.entry(target=target),
                                                 Path('/project'))

    def test_escaping_dest_rejected(self):
        entry = self.entry(directories=[{'src': 'fonts', 'dest': '../../fonts'}])
        with self.assertRaises(ValueError):
            library_config.build_library(entry, Path('/project'))

    def test_incomplete_file_entry_rejected(self):
        with self.assertRaises(ValueError):
            library_config.build_library(self.entry(files=[{'src': 'a.js'}]),
                                         Path('/project'))

    def test_extension_rewrite_normalized(self):
        library = library_config.build_library(
            self.entry(extension_rewrite=['mjs', 'js']), Path('/project'))
        self.assertEqual(library.extension_rewrite, ('.mjs', '.js'))

    def test_bad_extension_rewrite(self):
        with self.assertRaises(ValueError):
            library_config.build_library(
                self.entry(extension_rewrite=['.mjs']), Path('/project'))

    def test_wrongly_typed_values_rejected(self):
        bad_entries = [
            1,
            ['demo'],
            self.entry(source=None),
            self.entry(source=42),
            self.entry(extension_rewrite=5),
            self.entry(extension_rewrite='js'),
            self.entry(extension_rewrite=[1, 2]),
            self.entry(files={'src': 'a.js', 'dest': 'a.js'}),
            self.entry(files=[{'src': None, 'dest': 'a.js'}]),
        ]
        for entry in bad_entries:
            with self.subTest(entry=entry):
                with self.assertRaises(ValueError):
                    library_config.build_library(entry, Path('/project'))

    def test_duplicate_names_rejected(self):
        with self.assertRaises(ValueError):
            library_config.get_libraries(Path('/project'), [self.entry(), self.entry()])


class TestLoadManifest(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.addCleanup(shutil.rmtree, self.test_dir)
        self.manifest_path = os.path.join(self.test_dir, 'assets.yaml')

    def write_manifest(self, data):
        with open(self.manifest_path, 'w', encoding='utf-8') as f:
            yaml.safe_dump(data, f)

    def test_merges_over_build_config(self):
        self.write_manifest({
            'output_root': 'static/vendor',
            'log': {'verbose': True},
            'libraries': [{
                'name': 'demo',
                'source': 'node_modules/demo/dist',
                'target': 'demo',
                'directories': [{'src': 'css', 'dest': 'css'}],
            }],
        })

        build_config, libraries = library_config.load_manifest(
            self.manifest_path, Path(self.test_dir))

        self.assertEqual(build_config['output_root'], 'static/vendor')
        self.assertEqual(build_config['log'], {'enabled': True, 'verbose': True})
        self.assertEqual([lib.name for lib in libraries], ['demo'])
        self.assertEqual(libraries[0].directories, (('css', 'css'),))
        # The embedded defaults are left alone
        self.assertEqual(library_config.BUILD_CONFIG['output_root'], 'dist')

    def test_without_libraries_uses_embedded_list(self):
        self.write_manifest({'output_root': 'public'})
        _, libraries = library_config.load_manifest(self.manifest_path,
                                                    Path(self.test_dir))
        self.assertEqual([lib.name for lib in libraries], ['mermaid', 'katex'])

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            library_config.load_manifest(os.path.join(self.test_dir, 'nope.yaml'),
                                         Path(self.test_dir))

    def test_non_mapping_rejected(self):
        self.write_manifest(['not', 'a', 'mapping'])
        with self.assertRaises(ValueError):
            library_config.load_manifest(self.manifest_path, Path(self.test_dir))

    def test_bad_top_level_values_rejected(self):
        for data in [{'output_root': None, 'libraries': []},
                     {'output_root': ''},
                     {'output_root': 7},
                     {'log': True},
                     {'log': None},
                     {'libraries': [1]},
                     {'libraries': 'mermaid'}]:
            with self.subTest(data=data):
                self.write_manifest(data)
                with self.assertRaises(ValueError):
                    library_config.load_manifest(self.manifest_path,
                                                 Path(self.test_dir))


class TestLogConfig(unittest.TestCase):
    def test_from_dict_defaults(self):
        self.assertEqual(library_config.LogConfig.from_dict({}),
                         library_config.LogConfig(enabled=True, verbose=False))

    def test_from_dict_rejects_non_mapping(self):
        with self.assertRaises(ValueError):
            library_config.LogConfig.from_dict(True)

    def test_from_dict(self):
        config = library_config.LogConfig.from_dict({'enabled': False, 'verbose': True})
        self.assertFalse(config.enabled)
        self.assertTrue(config.verbose)


if __name__ == '__main__':
    unittest.main()
