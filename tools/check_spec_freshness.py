#!/usr/bin/env python3
"""Check that committed spec pages match a fresh generation run.

Generates every page into a scratch directory, then compares each generated
file byte-for-byte with the file of the same name in the committed output
directory. Never writes to the committed directory.

Usage:
  python tools/check_spec_freshness.py --config docs/spec-mapping.yaml \\
    [--repo-root .] [--committed-dir src/content/docs/specification]

Exit codes: 0 up to date, 1 stale or missing pages, 2 invalid mapping.
"""

from __future__ import annotations

import argparse
import os
import sys
import tempfile
from dataclasses import dataclass, field
from typing import Optional

from generate_spec_pages import print_warnings
from spec_mapping import SpecMapping, SpecMappingError, load_spec_mapping
from spec_pages_lib import generate_spec_pages


SCRATCH_PREFIX = "spec-freshness-"


@dataclass
class FreshnessReport:
    committed_dir: str
    checked: list[str] = field(default_factory=list)
    stale: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.stale


def _read_bytes(path: str) -> Optional[bytes]:
    if not os.path.isfile(path):
        return None
    with open(path, "rb") as f:
        return f.read()


def check_freshness(mapping: SpecMapping, committed_dir: Optional[str] = None) -> FreshnessReport:
    """Diff a scratch generation run against committed output.

    The scratch directory is removed whether the comparison passes, fails or raises.
    """
    committed = committed_dir or mapping.output_dir
    report = FreshnessReport(committed_dir=committed)

    with tempfile.TemporaryDirectory(prefix=SCRATCH_PREFIX) as scratch:
        result = generate_spec_pages(mapping, scratch)
        report.warnings.extend(result.warnings)
        for name in sorted(os.listdir(scratch)):
            report.checked.append(name)
            generated = _read_bytes(os.path.join(scratch, name))
            existing = _read_bytes(os.path.join(committed, name))
            if existing is None:
                report.stale.append(f"{name} (missing from {committed})")
            elif generated != existing:
                report.stale.append(name)
    return report


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Verify committed spec pages are up to date.")
    ap.add_argument("--config", required=True, help="Page-mapping file (YAML or JSON)")
    ap.add_argument("--repo-root", default=None,
                    help="Resolve sourceSpec/outputDir against this dir (default: the mapping file's dir)")
    ap.add_argument("--committed-dir", default=None, help="Compare against this dir instead of outputDir")
    args = ap.parse_args(argv)

    try:
        mapping = load_spec_mapping(args.config, args.repo_root)
    except SpecMappingError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    report = check_freshness(mapping, args.committed_dir)
    print_warnings(report.warnings)

    if not report.ok:
        print(
            f"Spec pages are stale. Regenerate with: "
            f"python tools/generate_spec_pages.py --config {args.config}\n",
            file=sys.stderr,
        )
        print("Stale files:", file=sys.stderr)
        for name in report.stale:
            print(f"  {name}", file=sys.stderr)
        return 1

    print("All spec pages are up to date.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
