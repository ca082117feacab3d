#!/usr/bin/env python3
# Copyright 2024 The dryft Authors
# Use of this source code is governed by a BSD-style license that can be
# found in the LICENSE file.

"""Stage third-party library assets (mermaid, KaTeX) into dist/.

Run without arguments from the project directory to copy everything the
embedded manifest lists from node_modules/ into dist/.
"""

import argparse
import sys
from pathlib import Path

import yaml

from copy_libraries import stage
from library_config import BUILD_CONFIG, LogConfig, get_libraries, load_manifest


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Copy third-party library assets into the output directory')
    parser.add_argument('--project-dir', default='.',
                        help='Directory containing node_modules/ (default: current directory)')
    parser.add_argument('--output-dir',
                        help='Output directory, relative to the project directory '
                             f"(default: {BUILD_CONFIG['output_root']})")
    parser.add_argument('--manifest',
                        help='YAML manifest to use instead of the built-in library list')
    parser.add_argument('--clean', action='store_true',
                        help='Remove the output directory before staging')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='Do not print progress')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Print rewrite and directory walk details')
    parser.add_argument('--ignore-errors', action='store_true',
                        help='Exit with status 0 even if some files failed to stage')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    project_dir = Path(args.project_dir).resolve()

    try:
        if args.manifest:
            build_config, libraries = load_manifest(args.manifest, project_dir)
        else:
            build_config, libraries = BUILD_CONFIG, get_libraries(project_dir)
    except (OSError, ValueError, yaml.YAMLError) as e:
        print(f'ERROR: Invalid manifest: {e}', file=sys.stderr)
        return 1

    log_config = LogConfig.from_dict(build_config.get('log', {}))
    if args.quiet:
        log_config = LogConfig(enabled=False, verbose=False)
    elif args.verbose:
        log_config = LogConfig(enabled=True, verbose=True)

    output_root = Path(args.output_dir or build_config['output_root'])
    if not output_root.is_absolute():
        output_root = project_dir / output_root

    try:
        report = stage(libraries, output_root, args.clean, log_config,
                       display_root=project_dir)
    except KeyboardInterrupt:
        print('\nStaging interrupted by user')
        return 1
    except ValueError as e:
        print(f'ERROR: {e}', file=sys.stderr)
        return 1

    if report.ok or args.ignore_errors:
        return 0
    if log_config.enabled:
        print('\nERROR: Some library files failed to stage', file=sys.stderr)
    return 1


if __name__ == '__main__':
    sys.exit(main())
