#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Shared configuration for third-party libraries staged into dist/."""

import os
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Tuple

import yaml

from module_rewrite import normalize_extension

# Build defaults, overridden by a YAML manifest and then by the command line
BUILD_CONFIG = {
    'output_root': 'dist',
    'log': {
        'enabled': True,
        'verbose': False,
    },
}

# Library definitions. 'source' is relative to the project directory,
# 'target' and every 'dest' are relative to the output root.
LIBRARY_CONFIG = [
    {
        'name': 'mermaid',
        'source': os.path.join('node_modules', 'mermaid', 'dist'),
        'target': 'mermaid',
        'extension_rewrite': ['.mjs', '.js'],
        'files': [
            {'src': 'mermaid.esm.min.mjs', 'dest': 'mermaid.esm.min.mjs'},
            {'src': 'mermaid.min.js', 'dest': 'mermaid.min.js'},
            {'src': 'mermaid.js', 'dest': 'mermaid.js'},
        ],
        'directories': [
            {'src': 'chunks', 'dest': 'chunks'},
            {'src': 'themes', 'dest': 'themes'},
            {'src': 'diagrams', 'dest': 'diagrams'},
            {'src': 'diagram-api', 'dest': 'diagram-api'},
            {'src': 'rendering-util', 'dest': 'rendering-util'},
            {'src': 'utils', 'dest': 'utils'},
        ],
    },
    {
        'name': 'katex',
        'source': os.path.join('node_modules', 'katex', 'dist'),
        'target': 'katex',
        'files': [
            {'src': 'katex.min.js', 'dest': 'katex.min.js'},
            {'src': 'katex.min.css', 'dest': 'katex.min.css'},
            {'src': os.path.join('contrib', 'auto-render.min.js'),
             'dest': 'katex-auto-render.min.js'},
        ],
        'directories': [
            {'src': 'fonts', 'dest': 'fonts'},
        ],
    },
]

REQUIRED_KEYS = ['name', 'source', 'target']


@dataclass(frozen=True)
class Library:
    """One manifest entry, with its source directory already resolved."""
    name: str
    source: Path
    target: str
    files: Tuple[Tuple[str, str], ...] = ()
    directories: Tuple[Tuple[str, str], ...] = ()
    extension_rewrite: Optional[Tuple[str, str]] = None


@dataclass(frozen=True)
class LogConfig:
    enabled: bool = True
    verbose: bool = False

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'LogConfig':
        if not isinstance(raw, dict):
            raise ValueError(f"'log' must be a mapping, not {raw!r}")
        return cls(enabled=bool(raw.get('enabled', True)),
                   verbose=bool(raw.get('verbose', False)))


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def check_relative(value: str, what: str) -> str:
    """Reject paths that would land outside the directory they are joined to."""
    if not isinstance(value, str) or not value:
        raise ValueError(f'{what} must be a non-empty string')
    normalized = value.replace('\\', '/')
    pure = PurePosixPath(normalized)
    if pure.is_absolute() or os.path.isabs(value) or '..' in pure.parts:
        raise ValueError(f'{what} escapes the output root: {value!r}')
    return value


def _pairs(entry: Dict[str, Any], key: str, lib_name: str) -> Tuple[Tuple[str, str], ...]:
    items = entry.get(key) or []
    if not isinstance(items, list):
        raise ValueError(f"{lib_name}: '{key}' must be a list")
    pairs = []
    for item in items:
        if not isinstance(item, dict) or 'src' not in item or 'dest' not in item:
            raise ValueError(f"{lib_name}: every '{key}' entry needs 'src' and 'dest'")
        if not isinstance(item['src'], str) or not item['src']:
            raise ValueError(f'{lib_name}: {key} src must be a non-empty string')
        dest = check_relative(item['dest'], f'{lib_name}: {key} dest')
        pairs.append((item['src'], dest))
    return tuple(pairs)


def build_library(entry: Dict[str, Any], project_dir: Path) -> Library:
    """Validate a single library definition and turn it into a Library."""
    if not isinstance(entry, dict):
        raise ValueError(f'Library entry must be a mapping, not {entry!r}')
    for key in REQUIRED_KEYS:
        if key not in entry:
            raise ValueError(f'Missing required library key: {key}')

    name = str(entry['name'])
    target = check_relative(entry['target'], f'{name}: target')

    rewrite = entry.get('extension_rewrite')
    if rewrite is not None:
        if (not isinstance(rewrite, (list, tuple)) or len(rewrite) != 2
                or not all(isinstance(ext, str) for ext in rewrite)):
            raise ValueError(f'{name}: extension_rewrite must be a [from, to] pair')
        rewrite = (normalize_extension(rewrite[0]), normalize_extension(rewrite[1]))

    if not isinstance(entry['source'], str) or not entry['source']:
        raise ValueError(f'{name}: source must be a non-empty string')
    source = Path(entry['source'])
    if not source.is_absolute():
        source = Path(project_dir) / source

    return Library(
        name=name,
        source=source.resolve(),
        target=target,
        files=_pairs(entry, 'files', name),
        directories=_pairs(entry, 'directories', name),
        extension_rewrite=rewrite,
    )


def get_libraries(project_dir: Path,
                  entries: Optional[List[Dict[str, Any]]] = None) -> List[Library]:
    """Get the manifest as a list of Library objects, in definition order."""
    if entries is None:
        entries = LIBRARY_CONFIG
    libraries = [build_library(entry, project_dir) for entry in entries]

    names = [lib.name for lib in libraries]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate library names: {', '.join(duplicates)}")
    return libraries


def load_manifest(path, project_dir: Path) -> Tuple[Dict[str, Any], List[Library]]:
    """
    Load a YAML manifest and merge it over BUILD_CONFIG.

    The file may set 'output_root', 'log' and 'libraries'. When it has no
    'libraries' key the embedded LIBRARY_CONFIG is used.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f'Manifest file not found: {path}')

    with open(path, 'r', encoding='utf-8') as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f'Manifest must be a mapping: {path}')

    entries = raw.pop('libraries', None)
    if entries is not None and not isinstance(entries, list):
        raise ValueError("'libraries' must be a list")
    if 'output_root' in raw:
        output_root = raw['output_root']
        if not isinstance(output_root, str) or not output_root:
            raise ValueError(f"'output_root' must be a non-empty string, not {output_root!r}")
    if 'log' in raw and not isinstance(raw['log'], dict):
        raise ValueError(f"'log' must be a mapping, not {raw['log']!r}")

    build_config = deep_merge(BUILD_CONFIG, raw)
    return build_config, get_libraries(project_dir, entries)
