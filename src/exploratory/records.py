"""Typed records for the per-paper full-text JSON documents.

The source JSON is loosely structured; every field that may be absent is an
explicit ``Optional`` here so downstream tables carry nulls instead of
raising on missing keys.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _str_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _int_or_none(v: Any) -> Optional[int]:
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def first_other_id(other_ids: Any) -> Optional[str]:
    """
    First identifier in an "other ids" mapping, by position.
    {"DOI": ["10.1/x"], "arXiv": []} -> "10.1/x"
    """
    if not isinstance(other_ids, dict) or not other_ids:
        return None
    value = next(iter(other_ids.values()))
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    return _str_or_none(value)


@dataclass
class CitationSpan:
    start: Optional[int]
    end: Optional[int]
    text: Optional[str]
    ref_id: Optional[str]

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "CitationSpan":
        return cls(
            start=_int_or_none(raw.get("start")),
            end=_int_or_none(raw.get("end")),
            text=_str_or_none(raw.get("text")),
            ref_id=_str_or_none(raw.get("ref_id")),
        )


@dataclass
class Paragraph:
    index: int  # 1-based position within the paper
    section: Optional[str]
    text: Optional[str]
    cite_spans: List[CitationSpan] = field(default_factory=list)

    @classmethod
    def from_json(cls, index: int, raw: Any) -> "Paragraph":
        if not isinstance(raw, dict):
            # keeps its slot so paragraph numbering matches body_text
            return cls(index=index, section=None, text=None)
        spans = raw.get("cite_spans") or []
        if not isinstance(spans, list):
            spans = []
        text = raw.get("text")
        return cls(
            index=index,
            section=_str_or_none(raw.get("section")),
            text=None if text is None else str(text),  # unstripped: span offsets index into it
            cite_spans=[CitationSpan.from_json(s) for s in spans if isinstance(s, dict)],
        )


@dataclass
class BibEntry:
    ref_id: Optional[str]
    title: Optional[str] = None
    venue: Optional[str] = None
    volume: Optional[str] = None
    issn: Optional[str] = None
    pages: Optional[str] = None
    year: Optional[int] = None
    doi: Optional[str] = None

    @classmethod
    def from_json(cls, raw: Dict[str, Any], ref_id: Optional[str] = None) -> "BibEntry":
        return cls(
            ref_id=ref_id or _str_or_none(raw.get("ref_id")),
            title=_str_or_none(raw.get("title")),
            venue=_str_or_none(raw.get("venue")),
            volume=_str_or_none(raw.get("volume")),
            issn=_str_or_none(raw.get("issn")),
            pages=_str_or_none(raw.get("pages")),
            year=_int_or_none(raw.get("year")),
            doi=first_other_id(raw.get("other_ids")),
        )


@dataclass
class Paper:
    paper_id: Optional[str]
    title: Optional[str] = None
    abstract: Optional[str] = None
    paragraphs: List[Paragraph] = field(default_factory=list)
    bib_entries: List[BibEntry] = field(default_factory=list)
    has_body: bool = True
    malformed_blocks: int = 0

    @property
    def n_citations(self) -> int:
        return sum(len(p.cite_spans) for p in self.paragraphs)

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "Paper":
        """Build a Paper from one parsed JSON document."""
        meta = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
        paper_id = _str_or_none(raw.get("paper_id")) or _str_or_none(raw.get("sha"))
        title = _str_or_none(meta.get("title")) or _str_or_none(raw.get("title"))

        abstract = None
        blocks = raw.get("abstract")
        if isinstance(blocks, list):
            parts = [str(b.get("text") or "").strip() for b in blocks if isinstance(b, dict)]
            abstract = "\n\n".join(p for p in parts if p) or None
        elif isinstance(blocks, str):
            abstract = _str_or_none(blocks)

        body = raw.get("body_text")
        has_body = isinstance(body, list)
        paragraphs = []
        malformed = 0
        if has_body:
            paragraphs = [Paragraph.from_json(i, b) for i, b in enumerate(body, start=1)]
            malformed = sum(not isinstance(b, dict) for b in body)

        bib = raw.get("bib_entries") or {}
        if isinstance(bib, dict):
            # cite spans point at the mapping key (BIBREF0), not the inner ref_id
            entries = [BibEntry.from_json(v, ref_id=k) for k, v in bib.items() if isinstance(v, dict)]
        elif isinstance(bib, list):
            entries = [BibEntry.from_json(v) for v in bib if isinstance(v, dict)]
        else:
            entries = []

        return cls(
            paper_id=paper_id,
            title=title,
            abstract=abstract,
            paragraphs=paragraphs,
            bib_entries=entries,
            has_body=has_body,
            malformed_blocks=malformed,
        )
