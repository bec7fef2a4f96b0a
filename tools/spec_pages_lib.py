#!/usr/bin/env python3
"""Deterministic spec → documentation pages generator.

This module defines the canonical algorithm for slicing one long specification
document into a set of standalone documentation pages.

Goals:
- Deterministic: same document + same mapping → byte-identical pages.
- Derived-only: pages are regenerated, never hand-edited. The freshness check
  (tools/check_spec_freshness.py) diffs a scratch run against committed output.
- Code-fence aware: headings inside ``` blocks are content, not structure.

Pipeline per page:
  parse_spec (once) → parse_preamble (once)
  → project sections (strip_trailing_rule, apply_subsection_filter)
  → promote_headings → rewrite_links → build_frontmatter + normalize_whitespace
  → write

Fence tracking is one boolean carried linearly across the whole text being
scanned. An unclosed fence in one section therefore hides every heading after
it; this is the defined behavior.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional

from spec_mapping import ExcludeFilter, IncludeFilter, PageSpec, SpecMapping, SubsectionFilter


FENCE_MARKER = "```"
TITLE_PREFIX = "# "
VERSION_PREFIX = "**"
METADATA_DELIMITER = "---"
SECTION_SEPARATOR = "---"

# Headings eligible for promotion: levels 2..6
PROMOTABLE_HEADING_RE = re.compile(r"^#{2,6} ")

# Markdown link to a same-document anchor: ](#some-anchor)
ANCHOR_LINK_RE = re.compile(r"\]\((#[a-z0-9-]+)\)")

TRAILING_RULE_RE = re.compile(r"\n---\s*\Z")


@dataclass
class Preamble:
    title_line: str = ""
    version_line: str = ""
    rest: str = ""


@dataclass
class Subsection:
    title: str
    heading: str          # full heading line, e.g. "### D.4 Lazy Loading"
    body: str

    @property
    def prefix(self) -> str:
        """First whitespace-delimited token of the title ("D.4" from "D.4 Lazy Loading")."""
        parts = self.title.split()
        return parts[0] if parts else ""


@dataclass
class GenerationResult:
    written: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def _is_fence(line: str) -> bool:
    return line.lstrip().startswith(FENCE_MARKER)


def heading_marker(level: int) -> str:
    return "#" * level + " "


# ─── Structural parser ─────────────────────────────────────────────────────

def parse_spec(spec_text: str, section_level: int = 2) -> tuple[str, dict[str, str]]:
    """Split a document into (preamble, {section title: body}).

    The heading line itself is not part of any body. Duplicate titles: the
    last one wins, keeping the position of the first.
    """
    marker = heading_marker(section_level)
    in_fence = False
    preamble: list[str] = []
    sections: dict[str, str] = {}
    current_title: Optional[str] = None
    current_body: list[str] = []

    for line in spec_text.split("\n"):
        if _is_fence(line):
            in_fence = not in_fence

        if not in_fence and line.startswith(marker):
            if current_title is not None:
                sections[current_title] = "\n".join(current_body)
            current_title = line[len(marker):].strip()
            current_body = []
            continue

        if current_title is None:
            preamble.append(line)
        else:
            current_body.append(line)

    if current_title is not None:
        sections[current_title] = "\n".join(current_body)

    return "\n".join(preamble), sections


def split_subsections(section_body: str, subsection_level: int = 3) -> tuple[str, list[Subsection]]:
    """Split a section body into (intro text, [Subsection, ...]) in source order."""
    marker = heading_marker(subsection_level)
    in_fence = False
    intro: list[str] = []
    subsections: list[Subsection] = []
    current_title: Optional[str] = None
    current_body: list[str] = []

    def _flush():
        subsections.append(Subsection(
            title=current_title,
            heading=marker + current_title,
            body="\n".join(current_body),
        ))

    for line in section_body.split("\n"):
        if _is_fence(line):
            in_fence = not in_fence

        if not in_fence and line.startswith(marker):
            if current_title is not None:
                _flush()
            current_title = line[len(marker):].strip()
            current_body = []
            continue

        if current_title is None:
            intro.append(line)
        else:
            current_body.append(line)

    if current_title is not None:
        _flush()

    return "\n".join(intro), subsections


# ─── Preamble extractor ────────────────────────────────────────────────────

def parse_preamble(preamble_text: str) -> Preamble:
    """Pull the `# Title` line and the first bold line after it out of the preamble.

    A leading `---` ... `---` metadata block is skipped. Missing pieces come
    back as empty strings.
    """
    result = Preamble()
    in_metadata = False
    metadata_done = False
    rest: list[str] = []

    for line in preamble_text.split("\n"):
        if not metadata_done and not result.title_line and line.strip() == METADATA_DELIMITER:
            if in_metadata:
                metadata_done = True
            else:
                in_metadata = True
            continue
        if in_metadata and not metadata_done:
            continue

        if not result.title_line and line.startswith(TITLE_PREFIX):
            result.title_line = line
            metadata_done = True
            continue
        if result.title_line and not result.version_line and line.startswith(VERSION_PREFIX):
            result.version_line = line
            continue
        rest.append(line)

    # an opened block that never closed swallowed everything: no usable shape
    if in_metadata and not metadata_done:
        return Preamble()

    result.rest = "\n".join(rest).strip()
    return result


# ─── Section projector helpers ─────────────────────────────────────────────

def strip_trailing_rule(content: str) -> str:
    """Drop a closing `---` separator (and the blank lines around it) from a section body."""
    return TRAILING_RULE_RE.sub("", content).rstrip()


def strip_footer(spec_text: str, footer_pattern: Optional[str]) -> str:
    if not footer_pattern:
        return spec_text
    return re.sub(footer_pattern, "", spec_text)


# ─── Subsection filter ─────────────────────────────────────────────────────

def _stub_for(sub: Subsection, cross_ref: str) -> str:
    # heading, blank, first paragraph of the body, blank, cross-reference
    stub = [sub.heading, ""]
    found_para = False
    for line in sub.body.split("\n"):
        if not found_para and line.strip() == "":
            continue
        if not found_para:
            found_para = True
            stub.append(line)
            continue
        if line.strip() == "":
            break
        stub.append(line)
    stub.append("")
    stub.append(cross_ref)
    return "\n".join(stub)


def apply_subsection_filter(section_content: str, sf: SubsectionFilter, subsection_level: int = 3) -> str:
    """Filter one section body by subsection prefix. Source order is preserved."""
    intro, subsections = split_subsections(section_content, subsection_level)
    result: list[str] = []

    if isinstance(sf, IncludeFilter):
        for sub in subsections:
            if sub.prefix in sf.prefixes:
                result.append(sub.heading + "\n" + sub.body)
    elif isinstance(sf, ExcludeFilter):
        result.append(intro)
        for sub in subsections:
            if sub.prefix not in sf.prefixes:
                result.append(sub.heading + "\n" + sub.body)
                continue
            cross_ref = sf.stubs.get(sub.prefix)
            if cross_ref:
                result.append(_stub_for(sub, cross_ref))
    else:
        raise TypeError(f"unknown subsection filter: {sf!r}")

    return "\n".join(result)


# ─── Heading promoter / link rewriter ──────────────────────────────────────

def promote_headings(content: str) -> str:
    """Raise every level 2..6 heading outside code fences by one level."""
    in_fence = False
    out: list[str] = []
    for line in content.split("\n"):
        if _is_fence(line):
            in_fence = not in_fence
        if not in_fence and PROMOTABLE_HEADING_RE.match(line):
            out.append(line[1:])
        else:
            out.append(line)
    return "\n".join(out)


def rewrite_links(content: str, cross_references: dict[str, str]) -> str:
    """Point `](#anchor)` links at their page path. Unknown anchors are left alone."""
    def _sub(m: re.Match) -> str:
        target = cross_references.get(m.group(1))
        if target:
            return f"]({target})"
        return m.group(0)

    return ANCHOR_LINK_RE.sub(_sub, content)


# ─── Normalizer / emitter ──────────────────────────────────────────────────

def normalize_whitespace(content: str) -> str:
    """Right-trim every line, drop trailing blank lines, end with exactly one newline."""
    lines = [ln.rstrip() for ln in content.split("\n")]
    while lines and lines[-1] == "":
        lines.pop()
    return "\n".join(lines) + "\n"


def build_frontmatter(page: PageSpec) -> str:
    return "\n".join([
        "---",
        f'title: "{page.title}"',
        f'description: "{page.description}"',
        "---",
    ])


def render_page_body(
    page: PageSpec,
    sections: dict[str, str],
    preamble: Preamble,
    cross_references: dict[str, str],
    section_level: int = 2,
    warnings: Optional[list[str]] = None,
) -> str:
    """Assemble, promote and link-rewrite one page's body (no front matter).

    Each listed section missing from `sections` appends one warning and is skipped.
    """
    if warnings is None:
        warnings = []
    for title in page.sections:
        if title not in sections:
            warnings.append(f'{page.output}: section "{title}" not found in spec')

    marker = heading_marker(section_level)
    sf = page.subsection_filter
    parts: list[str] = []
    if page.keep_preamble:
        parts.append(preamble.title_line + "\n\n" + preamble.version_line)

    emitted = 0
    for title in page.sections:
        content = sections.get(title)
        if content is None:
            continue
        content = strip_trailing_rule(content)

        filtered_here = sf is not None and sf.section == title
        if filtered_here:
            content = apply_subsection_filter(content, sf, section_level + 1)

        # an include filter turns the page into a subsection excerpt: no parent heading
        if filtered_here and isinstance(sf, IncludeFilter):
            block = content
        else:
            block = f"{marker}{title}\n{content}"

        if emitted:
            parts.append(SECTION_SEPARATOR)
        parts.append(block)
        emitted += 1

    body = "\n\n".join(parts)
    if not page.keep_preamble:
        body = promote_headings(body)
    return rewrite_links(body, cross_references)


def render_page(
    page: PageSpec,
    sections: dict[str, str],
    preamble: Preamble,
    cross_references: dict[str, str],
    section_level: int = 2,
    warnings: Optional[list[str]] = None,
) -> str:
    """Return the full normalized file content for one page."""
    body = render_page_body(page, sections, preamble, cross_references, section_level, warnings)
    return normalize_whitespace(build_frontmatter(page) + "\n\n" + body)


def generate_spec_pages(mapping: SpecMapping, output_dir: Optional[str] = None) -> GenerationResult:
    """Generate every page of `mapping` into `output_dir` (default: mapping.output_dir).

    OSError from reading the source document or writing pages propagates.
    """
    with open(mapping.source_spec, encoding="utf-8") as f:
        spec_text = f.read()
    out_dir = output_dir or mapping.output_dir
    os.makedirs(out_dir, exist_ok=True)

    spec_text = strip_footer(spec_text, mapping.footer_pattern)
    preamble_text, sections = parse_spec(spec_text, mapping.section_level)
    preamble = parse_preamble(preamble_text)

    result = GenerationResult()
    for page in mapping.pages:
        text = render_page(
            page, sections, preamble, mapping.cross_references,
            mapping.section_level, result.warnings,
        )
        path = os.path.join(out_dir, page.output)
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(text)
        result.written.append(path)
    return result
