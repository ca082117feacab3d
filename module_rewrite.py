#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Rename ES module files and patch the references inside them.

Browsers serving dist/ do not always map '.mjs' to a JavaScript MIME type,
so staged modules are renamed to '.js'. Renaming a chunk breaks every
import that still names the old file, so the copied text is patched too.

This is a textual patch. Only two reference shapes are touched:

  * quoted string literals:   './chunk-abc.mjs'  "./chunk-abc.mjs"
  * dynamic import calls:     import('./x.mjs')  import(`./x.mjs`)

and only when the reference ends exactly in the old extension and has a
non-empty path before it, so a bare '.mjs' constant is left alone.
"""

import re
from pathlib import Path
from typing import Optional, Tuple

ENCODING = 'utf-8'


def normalize_extension(ext: str) -> str:
    """Return ext with a single leading dot ('mjs' and '.mjs' -> '.mjs')."""
    ext = str(ext).strip()
    if not ext or ext == '.':
        raise ValueError('Extension must not be empty')
    return '.' + ext.lstrip('.')


def rewritten_name(src: Path, dest: Path,
                   rewrite: Optional[Tuple[str, str]]) -> Tuple[Path, bool]:
    """Pick the destination for src and whether its references get patched.

    The decision follows the source file's extension: a '.mjs' source is
    written with the new suffix whatever the manifest named its destination.
    """
    if rewrite is None:
        return dest, False
    from_ext, to_ext = rewrite
    if Path(src).suffix == from_ext:
        return Path(dest).with_suffix(to_ext), True
    return dest, False


def _patterns(from_ext: str):
    ext = re.escape(from_ext)
    dynamic_import = re.compile(
        r'(?P<head>\bimport\(\s*(?P<q>[`\'"])[^`\'"\r\n]+?)' + ext +
        r'(?P<tail>(?P=q)\s*\))')
    quoted = re.compile(
        r'(?P<head>(?P<q>[\'"])[^\'"\r\n]+?)' + ext + r'(?P<tail>(?P=q))')
    return dynamic_import, quoted


def rewrite_references(text: str, from_ext: str, to_ext: str) -> Tuple[str, int]:
    """Rewrite references ending in from_ext to end in to_ext.

    Returns the new text and the number of references rewritten.
    """
    total = 0
    for pattern in _patterns(from_ext):
        text, count = pattern.subn(
            lambda m: m.group('head') + to_ext + m.group('tail'), text)
        total += count
    return text, total


def rewrite_file(path: Path, from_ext: str, to_ext: str) -> int:
    """Patch references in a copied file in place; returns the rewrite count."""
    # newline='' keeps CRLF files byte-identical apart from the patch
    with open(path, 'r', encoding=ENCODING, newline='') as f:
        original = f.read()
    patched, count = rewrite_references(original, from_ext, to_ext)
    if count:
        with open(path, 'w', encoding=ENCODING, newline='') as f:
            f.write(patched)
    return count
