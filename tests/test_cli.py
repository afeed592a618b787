from __future__ import annotations

from pathlib import Path

import pandas as pd
from typer.testing import CliRunner

from exploratory.cli import app

runner = CliRunner()


def test_bikes_command_writes_tables_and_charts(tmp_path: Path, bike_csv: Path):
    out = tmp_path / "out"
    result = runner.invoke(app, ["bikes", "--source", str(bike_csv), "--out-dir", str(out)])
    assert result.exit_code == 0, result.output

    bikes = out / "bikes"
    for name in ("share_by_hour", "share_by_weekday", "share_by_month", "missing_rate"):
        assert (bikes / f"{name}.csv").exists()
        assert (bikes / f"{name}.png").exists()
    assert (bikes / "daily_totals.csv").exists()

    hourly = pd.read_csv(bikes / "share_by_hour.csv")
    sums = hourly.groupby("crossing")["share"].sum()
    assert abs(sums["Elliot Bay Trail"] - 1.0) < 1e-9
    assert abs(sums["Burke Gilman Trail"] - 0.75) < 1e-9
    assert "6 observations" in result.output


def test_bikes_command_with_config_grouping(tmp_path: Path, bike_csv: Path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        f"bikes:\n  group_by: [crossing, direction]\noutput:\n  dir: {tmp_path / 'cfg_out'}\n",
        encoding="utf-8",
    )
    result = runner.invoke(app, ["bikes", "--config", str(cfg), "--source", str(bike_csv)])
    assert result.exit_code == 0, result.output
    weekday = pd.read_csv(tmp_path / "cfg_out" / "bikes" / "share_by_weekday.csv")
    assert {"crossing", "direction", "weekday", "share"} <= set(weekday.columns)


def test_bikes_command_missing_config(tmp_path: Path, bike_csv: Path):
    result = runner.invoke(app, ["bikes", "--config", str(tmp_path / "nope.yaml"), "--source", str(bike_csv)])
    assert result.exit_code != 0
    assert isinstance(result.exception, FileNotFoundError)


def test_corpus_command(tmp_path: Path, metadata_csv: Path, json_dir: Path):
    out = tmp_path / "out"
    result = runner.invoke(app, [
        "corpus",
        "--metadata", str(metadata_csv),
        "--json-dir", str(json_dir),
        "--out-dir", str(out),
        "--top-k", "10",
        "--min-count", "1",
    ])
    assert result.exit_code == 0, result.output
    assert "4 documents (2 skipped)" in result.output

    corpus = out / "corpus"
    paragraphs = pd.read_csv(corpus / "paragraphs.csv")
    assert len(paragraphs) == 4
    citations = pd.read_csv(corpus / "citations.csv")
    assert len(citations) == 4

    papers = pd.read_csv(corpus / "papers.csv").set_index("paper_id")
    assert bool(papers.loc["p1", "in_corpus"])
    assert not bool(papers.loc["p5", "in_corpus"])
    assert papers.loc["p2", "n_citations"] == 1

    words = pd.read_csv(corpus / "top_words.csv")
    assert words.iloc[0]["term"] == "coronavirus"
    assert (corpus / "top_words.png").exists()

    refs = pd.read_csv(corpus / "top_references.csv")
    assert refs.iloc[0]["title"] == "Bat coronaviruses in China"
    assert refs.iloc[0]["n_papers"] == 2

    cited = pd.read_csv(corpus / "top_cited_references.csv")
    assert cited.iloc[0]["citations"] == 3
    assert (corpus / "word_correlations.csv").exists()


def test_explicit_zero_top_k_overrides_config(tmp_path: Path, metadata_csv: Path, json_dir: Path):
    cfg = tmp_path / "config.yaml"
    cfg.write_text("corpus:\n  top_k: 1\n", encoding="utf-8")
    out = tmp_path / "out"
    result = runner.invoke(app, [
        "corpus",
        "--config", str(cfg),
        "--metadata", str(metadata_csv),
        "--json-dir", str(json_dir),
        "--out-dir", str(out),
        "--top-k", "0",
        "--min-count", "1",
    ])
    assert result.exit_code == 0, result.output
    words = pd.read_csv(out / "corpus" / "top_words.csv")
    assert len(words) > 1
