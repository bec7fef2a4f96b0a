#!/usr/bin/env python3
"""CLI for generating documentation pages from the specification document.

Usage:
  python tools/generate_spec_pages.py --config docs/spec-mapping.yaml \\
    [--repo-root .] [--output-dir build/pages] [--quiet]

Exit codes: 0 written (warnings allowed), 2 invalid mapping.
"""

from __future__ import annotations

import argparse
import sys

from spec_mapping import SpecMappingError, load_spec_mapping
from spec_pages_lib import GenerationResult, generate_spec_pages


def print_warnings(warnings: list[str]) -> None:
    if not warnings:
        return
    print(f"\nWarnings ({len(warnings)} unmatched sections):", file=sys.stderr)
    for w in warnings:
        print(f"  {w}", file=sys.stderr)


def print_report(result: GenerationResult, quiet: bool = False) -> None:
    print(f"Generated {len(result.written)} files:")
    if not quiet:
        for p in result.written:
            print(f"  {p}")
    print_warnings(result.warnings)


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Generate documentation pages from the specification document.")
    ap.add_argument("--config", required=True, help="Page-mapping file (YAML or JSON)")
    ap.add_argument("--repo-root", default=None,
                    help="Resolve sourceSpec/outputDir against this dir (default: the mapping file's dir)")
    ap.add_argument("--output-dir", default=None, help="Write here instead of the mapping's outputDir")
    ap.add_argument("--quiet", action="store_true", help="Do not list every written file")
    args = ap.parse_args(argv)

    try:
        mapping = load_spec_mapping(args.config, args.repo_root)
    except SpecMappingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    result = generate_spec_pages(mapping, args.output_dir)
    print_report(result, quiet=args.quiet)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
