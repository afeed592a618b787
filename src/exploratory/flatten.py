from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Union

import pandas as pd

from .records import Paper

logger = logging.getLogger(__name__)

PAPER_COLUMNS = ["paper_id", "title", "abstract", "n_paragraphs", "n_citations", "n_bib_entries"]
PARAGRAPH_COLUMNS = ["paper_id", "paragraph", "section", "text"]
CITATION_COLUMNS = ["paper_id", "paragraph", "start", "end", "text", "ref_id"]
BIB_COLUMNS = ["paper_id", "ref_id", "title", "venue", "volume", "issn", "pages", "year", "doi"]


@dataclass
class FlatCorpus:
    papers: pd.DataFrame
    paragraphs: pd.DataFrame
    citations: pd.DataFrame
    bib_entries: pd.DataFrame
    skipped: int = 0


def flatten_documents(docs: Iterable[Union[Dict[str, Any], Paper]]) -> FlatCorpus:
    """
    Flatten nested per-paper documents into related tables keyed by paper_id:
      paragraphs  - one row per body-text block (paragraph is 1-based)
      citations   - one row per citation span, linked by (paper_id, paragraph)
      bib_entries - one row per bibliography entry, DOI from the first other id

    Documents with a missing or empty body_text contribute no paragraph or
    citation rows and are counted in `skipped`; their bibliography entries
    are still emitted. Body-text blocks that are not objects keep their slot
    as a paragraph with null section and text, and are counted in the log.
    """
    papers, paragraphs, citations, bib = [], [], [], []
    skipped = malformed = 0

    for doc in docs:
        paper = doc if isinstance(doc, Paper) else Paper.from_json(doc)
        if not paper.has_body or not paper.paragraphs:
            skipped += 1
            logger.debug(f"No body text for paper {paper.paper_id!r}")
        malformed += paper.malformed_blocks

        for para in paper.paragraphs:
            paragraphs.append({
                "paper_id": paper.paper_id,
                "paragraph": para.index,
                "section": para.section,
                "text": para.text,
            })
            for span in para.cite_spans:
                citations.append({
                    "paper_id": paper.paper_id,
                    "paragraph": para.index,
                    "start": span.start,
                    "end": span.end,
                    "text": span.text,
                    "ref_id": span.ref_id,
                })

        for entry in paper.bib_entries:
            bib.append({
                "paper_id": paper.paper_id,
                "ref_id": entry.ref_id,
                "title": entry.title,
                "venue": entry.venue,
                "volume": entry.volume,
                "issn": entry.issn,
                "pages": entry.pages,
                "year": entry.year,
                "doi": entry.doi,
            })

        papers.append({
            "paper_id": paper.paper_id,
            "title": paper.title,
            "abstract": paper.abstract,
            "n_paragraphs": len(paper.paragraphs),
            "n_citations": paper.n_citations,
            "n_bib_entries": len(paper.bib_entries),
        })

    if skipped:
        logger.warning(f"Skipped {skipped} of {len(papers)} documents with missing or empty body text")
    if malformed:
        logger.warning(f"{malformed} body-text blocks were not objects; emitted as empty paragraphs")

    citations_df = pd.DataFrame(citations, columns=CITATION_COLUMNS)
    citations_df[["start", "end"]] = citations_df[["start", "end"]].astype("Int64")
    bib_df = pd.DataFrame(bib, columns=BIB_COLUMNS)
    bib_df["year"] = bib_df["year"].astype("Int64")

    return FlatCorpus(
        papers=pd.DataFrame(papers, columns=PAPER_COLUMNS),
        paragraphs=pd.DataFrame(paragraphs, columns=PARAGRAPH_COLUMNS),
        citations=citations_df,
        bib_entries=bib_df,
        skipped=skipped,
    )


def join_metadata(metadata: pd.DataFrame, corpus: FlatCorpus) -> pd.DataFrame:
    """
    Attach full-text counts to the metadata table (left join on paper_id).
    Papers without a parsed document get zero counts and in_corpus=False.
    """
    if "paper_id" not in metadata.columns:
        raise ValueError("metadata is missing column 'paper_id'")

    counts = corpus.papers[["paper_id", "n_paragraphs", "n_citations", "n_bib_entries"]]
    counts = counts.drop_duplicates("paper_id")
    out = metadata.merge(counts, on="paper_id", how="left", indicator=True)
    out["in_corpus"] = out["_merge"] == "both"
    out = out.drop(columns="_merge")
    for c in ("n_paragraphs", "n_citations", "n_bib_entries"):
        out[c] = out[c].fillna(0).astype(int)
    return out
