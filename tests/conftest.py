from __future__ import annotations

import json
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import pytest  # noqa: E402

BIKE_CSV = """date,crossing,direction,bike_count,ped_count
01/01/2014 12:00:00 AM,Burke Gilman Trail,North,2,0
01/01/2014 01:00:00 AM,Burke Gilman Trail,North,6,1
01/01/2014 01:00:00 PM,Burke Gilman Trail,North,,3
01/02/2014 01:00:00 PM,Burke Gilman Trail,North,4,0
01/01/2014 08:00:00 AM,Elliot Bay Trail,South,10,
02/03/2014 08:00:00 AM,Elliot Bay Trail,South,2500,
02/03/2014 05:00:00 PM,Elliot Bay Trail,South,30,2
not a date,Elliot Bay Trail,South,5,
"""


def make_doc(paper_id, blocks, bib=None, title=None, abstract=None):
    doc = {"paper_id": paper_id, "metadata": {"title": title or f"Paper {paper_id}"}}
    if abstract is not None:
        doc["abstract"] = [{"text": abstract, "section": "Abstract"}]
    if blocks is not None:
        doc["body_text"] = blocks
    doc["bib_entries"] = bib if bib is not None else {}
    return doc


@pytest.fixture
def bike_csv(tmp_path: Path) -> Path:
    p = tmp_path / "bike_traffic.csv"
    p.write_text(BIKE_CSV, encoding="utf-8")
    return p


@pytest.fixture
def documents():
    full = make_doc(
        "p1",
        [
            {
                "section": "Introduction",
                "text": "Coronavirus transmission in bats has been studied [1].",
                "cite_spans": [{"start": 48, "end": 51, "text": "[1]", "ref_id": "BIBREF0"}],
            },
            {
                "section": "Methods",
                "text": "Coronavirus samples were sequenced [1, 2].",
                "cite_spans": [
                    {"start": 35, "end": 36, "text": "1", "ref_id": "BIBREF0"},
                    {"start": 38, "end": 39, "text": "2", "ref_id": "BIBREF1"},
                ],
            },
            {"section": "Results", "text": "Sequencing confirmed transmission.", "cite_spans": []},
        ],
        bib={
            "BIBREF0": {
                "ref_id": "b0",
                "title": "Bat coronaviruses in China",
                "venue": "Viruses",
                "volume": "11",
                "issn": "",
                "pages": "210",
                "year": 2019,
                "other_ids": {"DOI": ["10.3390/v11030210"]},
            },
            "BIBREF1": {"ref_id": "b1", "title": "Genome sequencing", "year": None, "other_ids": {}},
        },
        abstract="We study coronavirus transmission.",
    )
    second = make_doc(
        "p2",
        [
            {
                "section": "Background",
                "text": "Bat coronavirus transmission remains unclear [3].",
                "cite_spans": [{"start": 45, "end": 48, "text": "[3]", "ref_id": "BIBREF0"}],
            }
        ],
        bib=[{"ref_id": "BIBREF0", "title": "Bat coronaviruses in China.", "year": "2019"}],
    )
    empty = make_doc("p3", [], bib={"BIBREF0": {"title": "Orphan reference"}})
    no_body = make_doc("p4", None)
    return [full, second, empty, no_body]


@pytest.fixture
def json_dir(tmp_path: Path, documents) -> Path:
    d = tmp_path / "document_parses" / "pdf_json"
    d.mkdir(parents=True)
    for doc in documents:
        (d / f"{doc['paper_id']}.json").write_text(json.dumps(doc), encoding="utf-8")
    return tmp_path / "document_parses"


@pytest.fixture
def metadata_csv(tmp_path: Path) -> Path:
    p = tmp_path / "metadata.csv"
    p.write_text(
        "cord_uid,sha,source_x,title,abstract,has_full_text\n"
        "u1,p1; p9,PMC,Paper p1,We study coronavirus transmission.,True\n"
        "u2,p2,Elsevier,Paper p2,,True\n"
        "u3,p5,WHO,Paper p5,Only metadata.,False\n"
        "u4,p2,PMC,Paper p2 duplicate,,True\n"
        "u5,,WHO,No sha,,False\n",
        encoding="utf-8",
    )
    return p
