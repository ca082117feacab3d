#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Copy third-party library files into the static asset output directory."""

import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from library_config import Library, LogConfig
from module_rewrite import rewrite_file, rewritten_name


@dataclass
class UnitResult:
    """Outcome of one unit of work: a directory, a file copy or a rewrite."""
    kind: str
    path: Path
    ok: bool
    error: Optional[str] = None
    detail: Optional[str] = None


@dataclass
class StageReport:
    results: List[UnitResult] = field(default_factory=list)

    def add(self, result: UnitResult) -> UnitResult:
        self.results.append(result)
        return result

    @property
    def succeeded(self) -> List[UnitResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[UnitResult]:
        return [r for r in self.results if not r.ok]

    @property
    def ok(self) -> bool:
        return not self.failed

    def count(self, kind: str) -> int:
        return sum(1 for r in self.succeeded if r.kind == kind)

    def summary(self) -> str:
        return (f"Staged {self.count('copy')} file(s), "
                f"rewrote {self.count('rewrite')} file(s), "
                f"{len(self.failed)} failure(s)")


class AssetStager:
    """Stages the files of each manifest library under one output root."""

    def __init__(self, output_root: Path, log_config: Optional[LogConfig] = None,
                 display_root: Optional[Path] = None):
        self.output_root = Path(output_root).resolve()
        self.log_config = log_config or LogConfig()
        # Paths in log lines are shown relative to this directory
        self.display_root = Path(display_root or Path.cwd()).resolve()
        self.report = StageReport()
        # Resolved destinations written so far, so renames cannot clobber siblings
        self._staged = set()

    def log(self, message: str, kind: str = 'info') -> None:
        if not self.log_config.enabled:
            return
        if kind == 'success':
            print(f'✓ {message}')
        elif kind == 'error':
            print(f'✗ {message}', file=sys.stderr)
        elif kind == 'verbose':
            if self.log_config.verbose:
                print(f'    {message}')
        else:
            print(f'  {message}')

    def display(self, path: Path) -> str:
        try:
            return os.path.relpath(path, self.display_root)
        except ValueError:
            # Different drive on Windows
            return str(path)

    def _fail(self, kind: str, path: Path, message: str) -> UnitResult:
        self.log(message, 'error')
        return self.report.add(UnitResult(kind, path, False, error=message))

    def _is_inside_root(self, path: Path) -> bool:
        # resolve() follows symlinks already present under the root
        try:
            Path(path).resolve().relative_to(self.output_root)
        except ValueError:
            return False
        return True

    def prepare_output_root(self, clean_first: bool) -> bool:
        """Remove and recreate the output root, or just make sure it exists."""
        if clean_first and self.output_root.exists():
            try:
                shutil.rmtree(self.output_root)
                self.log(f'Cleaned output directory: {self.display(self.output_root)}',
                         'success')
            except OSError as e:
                self._fail('mkdir', self.output_root,
                           f'Failed to clean {self.display(self.output_root)}: {e}')
                return False
        return self.ensure_directory(self.output_root)

    def ensure_directory(self, dir_path: Path) -> bool:
        if dir_path.is_dir():
            return True
        if not self._is_inside_root(dir_path):
            self._fail('mkdir', dir_path,
                       f'Refusing to create {dir_path}: outside the output root')
            return False
        try:
            dir_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self._fail('mkdir', dir_path,
                       f'Failed to create directory {self.display(dir_path)}: {e}')
            return False
        self.log(f'Created directory: {self.display(dir_path)}', 'success')
        self.report.add(UnitResult('mkdir', dir_path, True))
        return True

    def copy_file(self, src: Path, dest: Path,
                  rewrite: Optional[Tuple[str, str]] = None) -> bool:
        """Copy one file, renaming and patching it when the rewrite applies."""
        final_dest, patch_references = rewritten_name(src, dest, rewrite)
        if not self._is_inside_root(final_dest):
            self._fail('copy', final_dest,
                       f'Refusing to copy {src.name}: {final_dest} is outside the output root')
            return False
        staged_as = final_dest.resolve()
        if staged_as in self._staged:
            self._fail('copy', final_dest,
                       f'Refusing to copy {src.name}: {self.display(final_dest)} '
                       f'was already staged in this run')
            return False
        if not self.ensure_directory(final_dest.parent):
            return False

        try:
            shutil.copy2(src, final_dest)
        except OSError as e:
            self._fail('copy', final_dest, f'Failed to copy {src.name}: {e}')
            return False
        self.log(f'Copied: {src.name} -> {self.display(final_dest)}', 'success')
        self.report.add(UnitResult('copy', final_dest, True))
        self._staged.add(staged_as)

        if patch_references:
            return self.rewrite_references(final_dest, rewrite)
        return True

    def rewrite_references(self, path: Path, rewrite: Tuple[str, str]) -> bool:
        from_ext, to_ext = rewrite
        try:
            count = rewrite_file(path, from_ext, to_ext)
        except (OSError, UnicodeDecodeError) as e:
            self._fail('rewrite', path,
                       f'Failed to rewrite references in {self.display(path)}: {e}')
            return False
        if count:
            self.log(f'Rewrote {count} {from_ext} reference(s) in {self.display(path)}')
        else:
            self.log(f'No {from_ext} references in {self.display(path)}', 'verbose')
        self.report.add(UnitResult('rewrite', path, True, detail=f'{count} reference(s)'))
        return True

    def copy_directory(self, src_dir: Path, dest_dir: Path,
                       rewrite: Optional[Tuple[str, str]] = None) -> None:
        """Recursively mirror src_dir under dest_dir."""
        if not self.ensure_directory(dest_dir):
            return
        try:
            with os.scandir(src_dir) as it:
                entries = sorted(it, key=lambda entry: entry.name)
        except OSError as e:
            self._fail('directory', src_dir,
                       f'Failed to read directory {self.display(src_dir)}: {e}')
            return

        for entry in entries:
            src_path = src_dir / entry.name
            dest_path = dest_dir / entry.name
            if entry.is_dir(follow_symlinks=False):
                self.log(f'Entering {self.display(src_path)}', 'verbose')
                self.copy_directory(src_path, dest_path, rewrite)
            else:
                self.copy_file(src_path, dest_path, rewrite)

    def copy_library(self, library: Library) -> None:
        self.log(f'\n=== Processing library: {library.name} ===')

        if not library.source.is_dir():
            self._fail('library', library.source,
                       f'Source directory not found for {library.name}: '
                       f'{self.display(library.source)}')
            return

        library_target = self.output_root / library.target
        if not self.ensure_directory(library_target):
            return

        if library.files:
            self.log('Copying files...')
            for src, dest in library.files:
                self.copy_file(library.source / src, library_target / dest,
                               library.extension_rewrite)

        if library.directories:
            self.log('Copying directories...')
            for src, dest in library.directories:
                src_path = library.source / src
                dest_path = library_target / dest
                if not src_path.is_dir():
                    self._fail('directory', src_path,
                               f'Directory not found: {self.display(src_path)}')
                    continue
                self.log(f'Copying directory: {self.display(src_path)} -> '
                         f'{self.display(dest_path)}')
                self.copy_directory(src_path, dest_path, library.extension_rewrite)

        self.log(f'=== Finished processing: {library.name} ===')

    def stage(self, manifest: Iterable[Library], clean_first: bool) -> StageReport:
        manifest = list(manifest)
        check_clean_target(self.output_root, manifest, clean_first)

        self.log('Starting build process...')
        if not self.prepare_output_root(clean_first):
            return self.report

        for library in manifest:
            self.copy_library(library)

        if self.report.ok:
            self.log('\nBuild completed successfully!', 'success')
        else:
            self.log(f'\nBuild completed with {len(self.report.failed)} failure(s)',
                     'error')
        self.log(self.report.summary())
        self.log(f'Output directory: {self.display(self.output_root)}')
        return self.report


def check_clean_target(output_root: Path, manifest: List[Library],
                       clean_first: bool) -> None:
    """Refuse to clean an output root that contains a library's sources."""
    if not clean_first:
        return
    root = Path(output_root).resolve()
    if root == Path(root.anchor):
        raise ValueError(f'Refusing to clean filesystem root: {root}')
    for library in manifest:
        source = library.source.resolve()
        if source == root or root in source.parents:
            raise ValueError(
                f'Refusing to clean {root}: it contains sources of {library.name}')


def stage(manifest: Iterable[Library], output_root: Path, clean_first: bool,
          log_config: Optional[LogConfig] = None,
          display_root: Optional[Path] = None) -> StageReport:
    """Copy every manifest library into output_root and report each unit."""
    stager = AssetStager(output_root, log_config, display_root)
    return stager.stage(manifest, clean_first)
