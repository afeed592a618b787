#!/usr/bin/env python3
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import pandas as pd
import typer

from .config import get_section, load_config
from .data_prep import add_time_parts, download_file, iter_json_documents, load_bike_traffic, load_metadata
from .flatten import flatten_documents, join_metadata
from .metrics import (
    cited_reference_counts,
    daily_totals,
    document_terms,
    hourly_share,
    missing_rate,
    monthly_share,
    pairwise_correlation,
    reference_title_counts,
    weekday_share,
    word_frequencies,
)
from .viz import plot_correlation_heatmap, plot_missing_rate, plot_share_by, plot_term_counts

logger = logging.getLogger(__name__)

app = typer.Typer(help="Exploratory analyses: Seattle bike traffic and the COVID-19 paper corpus")


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )


def _write_csv(df: pd.DataFrame, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path


# ---------- bikes ----------

@app.command()
def bikes(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    source: Optional[Path] = typer.Option(None, "--source", help="Local bike_traffic.csv (skips download)"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Where charts and tables go"),
    max_count: Optional[int] = typer.Option(None, "--max-count", help="Drop counts at or above this"),
) -> None:
    """Hourly / weekday / monthly crossing shares and missing-count rates."""
    cfg = load_config(config)
    bcfg = get_section(cfg, "bikes")
    out = Path(out_dir or get_section(cfg, "output")["dir"]) / "bikes"

    path = source or download_file(bcfg["url"], Path(bcfg["cache_path"]), timeout=bcfg["timeout"])
    df = load_bike_traffic(path, max_count=max_count if max_count is not None else bcfg["max_count"])
    df = add_time_parts(df)
    logger.info(f"Loaded {len(df)} observations across {df['crossing'].nunique()} crossings")

    group_by: List[str] = list(bcfg["group_by"])
    for key, fn in (("hour", hourly_share), ("weekday", weekday_share), ("month", monthly_share)):
        shares = fn(df, by=group_by)
        _write_csv(shares, out / f"share_by_{key}.csv")
        group = group_by[0] if len(group_by) == 1 else None
        if len(group_by) > 1:
            shares = shares.assign(group=shares[group_by].astype(str).agg(" / ".join, axis=1))
            group = "group"
        plot_share_by(shares, key, out / f"share_by_{key}.png", group=group)

    miss = missing_rate(df, by=["crossing", "month"])
    _write_csv(miss, out / "missing_rate.csv")
    plot_missing_rate(miss, out / "missing_rate.png")

    _write_csv(daily_totals(df), out / "daily_totals.csv")

    overall = float(df["bike_count"].isna().mean()) if len(df) else 0.0
    typer.echo(f"{len(df)} observations, {overall:.1%} missing counts; outputs in {out}")


# ---------- corpus ----------

@app.command()
def corpus(
    config: Optional[Path] = typer.Option(None, "--config", help="YAML config file"),
    metadata: Optional[Path] = typer.Option(None, "--metadata", help="Corpus metadata CSV"),
    json_dir: Optional[Path] = typer.Option(None, "--json-dir", help="Directory of per-paper JSON"),
    out_dir: Optional[Path] = typer.Option(None, "--out-dir", help="Where charts and tables go"),
    top_k: Optional[int] = typer.Option(None, "--top-k", help="Rows kept in ranked tables (0 keeps all)"),
    min_count: Optional[int] = typer.Option(None, "--min-count", help="Min documents per word for correlation"),
) -> None:
    """Flatten the full-text corpus; word, co-occurrence and reference counts."""
    cfg = load_config(config)
    ccfg = get_section(cfg, "corpus")
    out = Path(out_dir or get_section(cfg, "output")["dir"]) / "corpus"
    top_k = top_k if top_k is not None else ccfg["top_k"]
    min_count = min_count if min_count is not None else ccfg["min_count"]
    stop_words = ccfg["stop_words"] or []
    min_len = ccfg["min_word_length"]

    meta = load_metadata(metadata or Path(ccfg["metadata_path"]), full_text_only=ccfg["full_text_only"])
    flat = flatten_documents(iter_json_documents(json_dir or Path(ccfg["json_dir"])))

    _write_csv(join_metadata(meta, flat), out / "papers.csv")
    _write_csv(flat.paragraphs, out / "paragraphs.csv")
    _write_csv(flat.citations, out / "citations.csv")
    _write_csv(flat.bib_entries, out / "bib_entries.csv")

    words = word_frequencies(flat.paragraphs["text"], stop_words, min_length=min_len, top_k=top_k)
    _write_csv(words, out / "top_words.csv")
    if not words.empty:
        plot_term_counts(words, out / "top_words.png", top_n=top_k or 25)

    terms = document_terms(flat.paragraphs, stop_words, min_length=min_len)
    corr = pairwise_correlation(terms, item="term", feature="paper_id", min_count=min_count,
                                max_items=ccfg["max_items"])
    _write_csv(corr, out / "word_correlations.csv")
    if not corr.empty:
        plot_correlation_heatmap(corr, out / "word_correlations.png", top_n=top_k or 25)

    refs = reference_title_counts(flat.bib_entries, top_k=top_k)
    _write_csv(refs, out / "top_references.csv")
    if not refs.empty:
        plot_term_counts(refs, out / "top_references.png", label_col="title", top_n=top_k or 25,
                         title="Most referenced titles")
    _write_csv(cited_reference_counts(flat.citations, flat.bib_entries, top_k=top_k),
               out / "top_cited_references.csv")

    typer.echo(
        f"{len(flat.papers)} documents ({flat.skipped} skipped), {len(flat.paragraphs)} paragraphs, "
        f"{len(flat.citations)} citations, {len(flat.bib_entries)} bibliography entries; outputs in {out}"
    )


if __name__ == "__main__":
    app()
