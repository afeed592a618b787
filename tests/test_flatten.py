from __future__ import annotations

import logging

import pandas as pd

from exploratory.flatten import (
    BIB_COLUMNS,
    CITATION_COLUMNS,
    PARAGRAPH_COLUMNS,
    flatten_documents,
    join_metadata,
)
from exploratory.records import Paper


def test_row_counts_match_blocks_and_spans(documents):
    flat = flatten_documents(documents)

    for doc in documents:
        pid = doc["paper_id"]
        blocks = doc.get("body_text") or []
        assert (flat.paragraphs["paper_id"] == pid).sum() == len(blocks)
        n_spans = sum(len(b["cite_spans"]) for b in blocks)
        assert (flat.citations["paper_id"] == pid).sum() == n_spans

    assert len(flat.paragraphs) == 4
    assert len(flat.citations) == 4


def test_paragraph_index_is_sequential_and_citations_in_range(documents):
    flat = flatten_documents(documents)

    for pid, sub in flat.paragraphs.groupby("paper_id"):
        assert sub["paragraph"].tolist() == list(range(1, len(sub) + 1))

    n_paras = flat.paragraphs.groupby("paper_id").size()
    for _, row in flat.citations.iterrows():
        assert 1 <= row["paragraph"] <= n_paras[row["paper_id"]]


def test_bibliography_rows_and_null_doi(documents):
    flat = flatten_documents(documents)
    bib = flat.bib_entries

    assert list(bib.columns) == BIB_COLUMNS
    assert len(bib) == 4
    p1 = bib[bib["paper_id"] == "p1"].set_index("ref_id")
    assert p1.loc["BIBREF0", "doi"] == "10.3390/v11030210"
    assert p1.loc["BIBREF0", "year"] == 2019
    assert pd.isna(p1.loc["BIBREF1", "doi"])
    assert pd.isna(p1.loc["BIBREF1", "year"])


def test_empty_and_missing_body_are_skipped_not_fatal(documents, caplog):
    with caplog.at_level(logging.WARNING, logger="exploratory.flatten"):
        flat = flatten_documents(documents)

    assert flat.skipped == 2
    assert "Skipped 2 of 4 documents" in caplog.text
    assert set(flat.paragraphs["paper_id"]) == {"p1", "p2"}
    # bibliography of a body-less paper is still kept
    assert "p3" in set(flat.bib_entries["paper_id"])
    papers = flat.papers.set_index("paper_id")
    assert papers.loc["p3", "n_paragraphs"] == 0
    assert papers.loc["p1", "n_citations"] == 3


def test_accepts_paper_records(documents):
    flat = flatten_documents(Paper.from_json(d) for d in documents)
    assert len(flat.papers) == 4


def test_empty_input_keeps_columns():
    flat = flatten_documents([])
    assert list(flat.paragraphs.columns) == PARAGRAPH_COLUMNS
    assert list(flat.citations.columns) == CITATION_COLUMNS
    assert flat.skipped == 0


def test_join_metadata(documents):
    flat = flatten_documents(documents)
    meta = pd.DataFrame({"paper_id": ["p1", "p2", "p7"], "title": ["a", "b", "c"]})

    out = join_metadata(meta, flat).set_index("paper_id")

    assert out.loc["p1", "n_paragraphs"] == 3
    assert bool(out.loc["p1", "in_corpus"])
    assert out.loc["p7", "n_paragraphs"] == 0
    assert not bool(out.loc["p7", "in_corpus"])


def test_non_object_blocks_keep_their_paragraph_slot(caplog):
    doc = {
        "paper_id": "p8",
        "body_text": [
            None,
            "stray",
            {"section": "Intro", "text": "a", "cite_spans": [{"start": 0, "end": 1, "ref_id": "BIBREF0"}]},
        ],
    }
    with caplog.at_level(logging.WARNING, logger="exploratory.flatten"):
        flat = flatten_documents([doc])

    assert len(flat.paragraphs) == len(doc["body_text"])
    assert flat.paragraphs["paragraph"].tolist() == [1, 2, 3]
    assert pd.isna(flat.paragraphs.loc[0, "text"])
    assert flat.citations["paragraph"].tolist() == [3]
    assert flat.skipped == 0
    assert "2 body-text blocks were not objects" in caplog.text
