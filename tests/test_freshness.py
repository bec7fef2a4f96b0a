#!/usr/bin/env python3
"""
Tests for the freshness check (tools/check_spec_freshness.py) and both CLIs.

Run: python -m pytest tests/test_freshness.py -q
"""

import os
import subprocess
import sys
from pathlib import Path

import pytest

# Ensure tools/ is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "tools"))

import check_spec_freshness
from check_spec_freshness import SCRATCH_PREFIX, FreshnessReport, check_freshness
from spec_mapping import parse_spec_mapping
from spec_pages_lib import generate_spec_pages

REPO_ROOT = Path(__file__).resolve().parent.parent
GENERATE = REPO_ROOT / "tools" / "generate_spec_pages.py"
CHECK = REPO_ROOT / "tools" / "check_spec_freshness.py"

SPEC = """\
# Tiny Spec

**Version 0.1**

## One

First section.

---

## Two

Second section, see [one](#one).

### T.1 Detail

Detail text.
"""

MAPPING_YAML = """\
sourceSpec: spec.md
outputDir: pages
crossReferences:
  "#one": /spec/one/
pages:
  - output: one.md
    title: One
    description: First
    sections: [One]
    keepPreamble: true
  - output: two.md
    title: Two
    description: Second
    sections: [Two, Three]
"""


@pytest.fixture
def workspace(tmp_path):
    (tmp_path / "spec.md").write_text(SPEC, encoding="utf-8")
    (tmp_path / "spec-mapping.yaml").write_text(MAPPING_YAML, encoding="utf-8")
    return tmp_path


@pytest.fixture
def mapping(workspace):
    import yaml
    data = yaml.safe_load(MAPPING_YAML)
    return parse_spec_mapping(data, str(workspace))


def run_tool(script, *args, cwd):
    return subprocess.run(
        [sys.executable, str(script), *args],
        capture_output=True, text=True, cwd=str(cwd),
    )


# ---------------------------------------------------------------------------
# check_freshness
# ---------------------------------------------------------------------------

class TestCheckFreshness:
    """Scratch regeneration compared byte for byte with committed pages."""

    def test_fresh_output_passes(self, mapping):
        generate_spec_pages(mapping)
        report = check_freshness(mapping)
        assert isinstance(report, FreshnessReport)
        assert report.ok
        assert report.stale == []
        assert report.checked == ["one.md", "two.md"]

    def test_single_byte_change_is_stale(self, mapping):
        generate_spec_pages(mapping)
        target = Path(mapping.output_dir) / "two.md"
        data = bytearray(target.read_bytes())
        data[-2] = ord("X")
        target.write_bytes(bytes(data))
        report = check_freshness(mapping)
        assert not report.ok
        assert report.stale == ["two.md"]

    def test_missing_committed_file(self, mapping):
        generate_spec_pages(mapping)
        (Path(mapping.output_dir) / "one.md").unlink()
        report = check_freshness(mapping)
        assert report.stale == [f"one.md (missing from {mapping.output_dir})"]

    def test_nothing_committed(self, mapping):
        report = check_freshness(mapping)
        assert len(report.stale) == 2
        assert all("missing from" in s for s in report.stale)

    def test_extra_committed_files_ignored(self, mapping):
        generate_spec_pages(mapping)
        (Path(mapping.output_dir) / "hand-written.md").write_text("x\n", encoding="utf-8")
        assert check_freshness(mapping).ok

    def test_committed_dir_override(self, mapping, tmp_path):
        other = tmp_path / "elsewhere"
        generate_spec_pages(mapping, str(other))
        assert check_freshness(mapping, str(other)).ok
        assert not os.path.exists(mapping.output_dir)

    def test_committed_files_not_modified(self, mapping):
        generate_spec_pages(mapping)
        target = Path(mapping.output_dir) / "one.md"
        target.write_text("stale content\n", encoding="utf-8")
        check_freshness(mapping)
        assert target.read_text(encoding="utf-8") == "stale content\n"

    def test_warnings_carried(self, mapping):
        generate_spec_pages(mapping)
        report = check_freshness(mapping)
        assert report.warnings == ['two.md: section "Three" not found in spec']

    def test_scratch_removed_on_success(self, mapping, monkeypatch):
        seen = []
        real = check_spec_freshness.generate_spec_pages

        def spy(m, out):
            seen.append(out)
            return real(m, out)

        monkeypatch.setattr(check_spec_freshness, "generate_spec_pages", spy)
        check_freshness(mapping)
        assert len(seen) == 1
        assert os.path.basename(seen[0]).startswith(SCRATCH_PREFIX)
        assert not os.path.exists(seen[0])

    def test_scratch_removed_on_failure(self, mapping, monkeypatch):
        seen = []

        def boom(m, out):
            seen.append(out)
            (Path(out) / "partial.md").write_text("x", encoding="utf-8")
            raise OSError("disk full")

        monkeypatch.setattr(check_spec_freshness, "generate_spec_pages", boom)
        with pytest.raises(OSError, match="disk full"):
            check_freshness(mapping)
        assert not os.path.exists(seen[0])


# ---------------------------------------------------------------------------
# CLIs
# ---------------------------------------------------------------------------

class TestCommandLine:
    """Both CLIs run as scripts: exit codes and report text."""

    def test_generate_then_check(self, workspace):
        cfg = str(workspace / "spec-mapping.yaml")
        gen = run_tool(GENERATE, "--config", cfg, cwd=workspace)
        assert gen.returncode == 0, f"STDERR: {gen.stderr}"
        assert "Generated 2 files:" in gen.stdout
        assert "Warnings (1 unmatched sections):" in gen.stderr
        assert 'two.md: section "Three" not found in spec' in gen.stderr
        assert (workspace / "pages" / "one.md").is_file()

        chk = run_tool(CHECK, "--config", cfg, cwd=workspace)
        assert chk.returncode == 0, f"STDERR: {chk.stderr}"
        assert "All spec pages are up to date." in chk.stdout

    def test_generated_content(self, workspace):
        cfg = str(workspace / "spec-mapping.yaml")
        run_tool(GENERATE, "--config", cfg, cwd=workspace)
        two = (workspace / "pages" / "two.md").read_text(encoding="utf-8")
        assert two == (
            '---\ntitle: "Two"\ndescription: "Second"\n---\n\n'
            "# Two\n\nSecond section, see [one](/spec/one/).\n\n"
            "## T.1 Detail\n\nDetail text.\n"
        )
        one = (workspace / "pages" / "one.md").read_text(encoding="utf-8")
        assert one == (
            '---\ntitle: "One"\ndescription: "First"\n---\n\n'
            "# Tiny Spec\n\n**Version 0.1**\n\n## One\n\nFirst section.\n"
        )

    def test_stale_exit_code(self, workspace):
        cfg = str(workspace / "spec-mapping.yaml")
        run_tool(GENERATE, "--config", cfg, cwd=workspace)
        target = workspace / "pages" / "one.md"
        target.write_text(target.read_text(encoding="utf-8") + "edit\n", encoding="utf-8")
        chk = run_tool(CHECK, "--config", cfg, cwd=workspace)
        assert chk.returncode == 1
        assert "Spec pages are stale." in chk.stderr
        assert "Stale files:" in chk.stderr
        assert "  one.md" in chk.stderr
        assert "two.md\n" not in chk.stderr.split("Stale files:")[1]

    def test_output_dir_and_quiet(self, workspace, tmp_path):
        cfg = str(workspace / "spec-mapping.yaml")
        out = tmp_path / "alt"
        gen = run_tool(GENERATE, "--config", cfg, "--output-dir", str(out), "--quiet", cwd=workspace)
        assert gen.returncode == 0, f"STDERR: {gen.stderr}"
        assert str(out) not in gen.stdout
        assert (out / "two.md").is_file()
        assert not (workspace / "pages").exists()

    def test_check_committed_dir(self, workspace, tmp_path):
        cfg = str(workspace / "spec-mapping.yaml")
        out = tmp_path / "alt"
        run_tool(GENERATE, "--config", cfg, "--output-dir", str(out), cwd=workspace)
        chk = run_tool(CHECK, "--config", cfg, "--committed-dir", str(out), cwd=workspace)
        assert chk.returncode == 0, f"STDERR: {chk.stderr}"

    def test_repo_root(self, workspace):
        sub = workspace / "scripts"
        sub.mkdir()
        (sub / "spec-mapping.yaml").write_text(MAPPING_YAML, encoding="utf-8")
        gen = run_tool(GENERATE, "--config", str(sub / "spec-mapping.yaml"),
                       "--repo-root", str(workspace), cwd=workspace)
        assert gen.returncode == 0, f"STDERR: {gen.stderr}"
        assert (workspace / "pages" / "one.md").is_file()

    @pytest.mark.parametrize("script", [GENERATE, CHECK])
    def test_bad_mapping_exit_code(self, workspace, script):
        cfg = workspace / "broken.yaml"
        cfg.write_text("sourceSpec: spec.md\npages: []\n", encoding="utf-8")
        res = run_tool(script, "--config", str(cfg), cwd=workspace)
        assert res.returncode == 2
        assert "ERROR: invalid page mapping" in res.stderr

    def test_missing_spec_is_fatal(self, workspace):
        (workspace / "spec.md").unlink()
        res = run_tool(GENERATE, "--config", str(workspace / "spec-mapping.yaml"), cwd=workspace)
        assert res.returncode != 0
        assert "FileNotFoundError" in res.stderr

    @pytest.mark.parametrize("script", [GENERATE, CHECK])
    def test_bad_footer_pattern_exit_code(self, workspace, script):
        cfg = workspace / "bad-footer.yaml"
        cfg.write_text(MAPPING_YAML + "footerPattern: '(unclosed'\n", encoding="utf-8")
        res = run_tool(script, "--config", str(cfg), cwd=workspace)
        assert res.returncode == 2, f"STDERR: {res.stderr}"
        assert "ERROR: invalid page mapping" in res.stderr
        assert "footerPattern: invalid regex" in res.stderr
        assert "Traceback" not in res.stderr
