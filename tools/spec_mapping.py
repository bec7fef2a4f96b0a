#!/usr/bin/env python3
"""Page-mapping configuration for the spec page generator.

The mapping file declares where the specification document lives, where the
generated pages go, the cross-reference table used to rewrite anchor links,
and the ordered list of pages to derive from the document.

Format: YAML (JSON is accepted as-is, since it is a YAML subset).

  sourceSpec: spec/ccpkg-spec.md
  outputDir: src/content/docs/specification
  sectionLevel: 2                 # optional, default 2
  footerPattern: null             # optional, default DEFAULT_FOOTER_PATTERN
  crossReferences:
    "#manifest-schema": /specification/manifest/#manifest-schema
  pages:
    - output: overview.md
      title: Overview
      description: What ccpkg is
      sections: [Introduction, Terminology]
      keepPreamble: true
    - output: appendix-d.md
      title: Lazy Loading
      description: Appendix D excerpt
      sections: [Appendix D]
      subsectionFilter:
        section: Appendix D
        include: [D.4]

Validation happens in two passes:
  1. Shape: jsonschema against SPEC_MAPPING_SCHEMA.
  2. Rules the schema cannot express cleanly (filter mode exclusivity,
     filter section listed on its page, single keepPreamble page, unique
     output names, footerPattern compiles).
All problems are collected and raised together as one SpecMappingError.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from typing import Optional, Union

import jsonschema
import yaml


MAPPING_VERSION = "spec_mapping_v0.1"

# Trailing footer of the published spec. Removed before parsing so it never
# lands on the last page.
DEFAULT_FOOTER_PATTERN = r"\n---\n+\*This specification is published[^\n]*\*\s*$"

DEFAULT_SECTION_LEVEL = 2

SPEC_MAPPING_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "title": MAPPING_VERSION,
    "type": "object",
    "required": ["sourceSpec", "outputDir", "pages"],
    "properties": {
        "sourceSpec": {"type": "string", "minLength": 1},
        "outputDir": {"type": "string", "minLength": 1},
        "sectionLevel": {"type": "integer", "minimum": 1, "maximum": 5},
        "footerPattern": {"type": ["string", "null"]},
        "crossReferences": {
            "type": "object",
            "propertyNames": {"type": "string", "pattern": "^#[a-z0-9-]+$"},
            "additionalProperties": {"type": "string"},
        },
        "pages": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["output", "title", "description", "sections"],
                "properties": {
                    "output": {"type": "string", "pattern": "^[^/\\\\]+$"},
                    "title": {"type": "string"},
                    "description": {"type": "string"},
                    "sections": {"type": "array", "items": {"type": "string"}},
                    "keepPreamble": {"type": "boolean"},
                    "subsectionFilter": {
                        "type": "object",
                        "required": ["section"],
                        "properties": {
                            "section": {"type": "string"},
                            "include": {"type": "array", "items": {"type": "string"}},
                            "exclude": {"type": "array", "items": {"type": "string"}},
                            "crossRef": {
                                "type": "object",
                                "propertyNames": {"type": "string"},
                                "additionalProperties": {"type": "string"},
                            },
                        },
                        "additionalProperties": False,
                    },
                },
                "additionalProperties": False,
            },
        },
    },
    "additionalProperties": False,
}


class SpecMappingError(ValueError):
    """Raised when a page-mapping file is malformed. Carries every problem found."""

    def __init__(self, source: str, problems: list[str]):
        self.source = source
        self.problems = list(problems)
        detail = "\n".join(f"  - {p}" for p in self.problems)
        super().__init__(f"invalid page mapping {source}:\n{detail}")


# ─── Model ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class IncludeFilter:
    """Keep only the subsections whose prefix is listed. Intro and parent heading are dropped."""
    section: str
    prefixes: tuple[str, ...]


@dataclass(frozen=True)
class ExcludeFilter:
    """Keep everything except the listed prefixes; a stub replaces a dropped
    subsection when `stubs` has an entry for its prefix. `stubs` is left out of
    the hash, so filters stay hashable."""
    section: str
    prefixes: tuple[str, ...]
    stubs: dict[str, str] = field(default_factory=dict, hash=False)


SubsectionFilter = Union[IncludeFilter, ExcludeFilter]


@dataclass(frozen=True)
class PageSpec:
    output: str                   # file name inside the output directory
    title: str
    description: str
    sections: tuple[str, ...]     # section titles, in page order
    keep_preamble: bool = False
    subsection_filter: Optional[SubsectionFilter] = None


@dataclass(frozen=True)
class SpecMapping:
    source_spec: str              # absolute path
    output_dir: str               # absolute path
    pages: tuple[PageSpec, ...]
    cross_references: dict[str, str] = field(default_factory=dict, hash=False)
    section_level: int = DEFAULT_SECTION_LEVEL
    footer_pattern: Optional[str] = DEFAULT_FOOTER_PATTERN
    config_path: str = ""


# ─── Parsing ───────────────────────────────────────────────────────────────

def _schema_problems(data) -> list[str]:
    validator = jsonschema.Draft7Validator(SPEC_MAPPING_SCHEMA)
    problems = []
    for err in sorted(validator.iter_errors(data), key=lambda e: [str(p) for p in e.absolute_path]):
        where = "/".join(str(p) for p in err.absolute_path) or "(root)"
        problems.append(f"{where}: {err.message}")
    return problems


def _build_filter(raw: dict, where: str, problems: list[str]) -> Optional[SubsectionFilter]:
    has_include = "include" in raw
    has_exclude = "exclude" in raw
    if has_include and has_exclude:
        problems.append(f"{where}: set exactly one of 'include' or 'exclude', not both")
        return None
    if has_include:
        # crossRef only means something alongside exclude
        return IncludeFilter(section=raw["section"], prefixes=tuple(raw["include"]))
    if has_exclude:
        return ExcludeFilter(
            section=raw["section"],
            prefixes=tuple(raw["exclude"]),
            stubs=dict(raw.get("crossRef") or {}),
        )
    problems.append(f"{where}: one of 'include' or 'exclude' is required")
    return None


def _resolve(root: str, p: str) -> str:
    return os.path.normpath(os.path.join(root, os.path.expanduser(p)))


def parse_spec_mapping(data, root: str, source: str = "<mapping>") -> SpecMapping:
    """Validate an already-loaded mapping object and build a SpecMapping.

    Relative sourceSpec/outputDir are resolved against `root`.
    """
    problems = _schema_problems(data)
    if problems:
        raise SpecMappingError(source, problems)

    pages: list[PageSpec] = []
    seen_outputs: dict[str, int] = {}
    preamble_pages: list[str] = []
    for i, raw in enumerate(data["pages"]):
        where = f"pages/{i}"
        out = raw["output"]
        if out in seen_outputs:
            problems.append(f"{where}: output '{out}' already used by pages/{seen_outputs[out]}")
        else:
            seen_outputs[out] = i
        keep = bool(raw.get("keepPreamble", False))
        if keep:
            preamble_pages.append(out)
        sf = None
        if "subsectionFilter" in raw:
            sf = _build_filter(raw["subsectionFilter"], f"{where}/subsectionFilter", problems)
            if sf is not None and sf.section not in raw["sections"]:
                problems.append(
                    f"{where}/subsectionFilter: section '{sf.section}' is not listed in sections"
                )
        pages.append(PageSpec(
            output=out,
            title=raw["title"],
            description=raw["description"],
            sections=tuple(raw["sections"]),
            keep_preamble=keep,
            subsection_filter=sf,
        ))

    footer = data.get("footerPattern", DEFAULT_FOOTER_PATTERN)
    if footer is not None:
        try:
            re.compile(footer)
        except re.error as e:
            problems.append(f"footerPattern: invalid regex: {e}")

    if len(preamble_pages) > 1:
        problems.append(
            "keepPreamble may be set on one page only; found: " + ", ".join(preamble_pages)
        )
    if problems:
        raise SpecMappingError(source, problems)

    return SpecMapping(
        source_spec=_resolve(root, data["sourceSpec"]),
        output_dir=_resolve(root, data["outputDir"]),
        pages=tuple(pages),
        cross_references=dict(data.get("crossReferences") or {}),
        section_level=int(data.get("sectionLevel", DEFAULT_SECTION_LEVEL)),
        footer_pattern=footer,
        config_path=source,
    )


def load_spec_mapping(path: str, repo_root: Optional[str] = None) -> SpecMapping:
    """Read and validate a mapping file.

    Paths inside it resolve against `repo_root`, or the mapping file's own
    directory when no root is given. OSError from reading propagates.
    """
    path = os.path.abspath(path)
    with open(path, encoding="utf-8") as f:
        raw = f.read()
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise SpecMappingError(path, [f"not valid YAML/JSON: {e}"]) from e
    if not isinstance(data, dict):
        raise SpecMappingError(path, ["top level must be a mapping"])
    root = os.path.abspath(repo_root) if repo_root else os.path.dirname(path)
    return parse_spec_mapping(data, root, source=path)
