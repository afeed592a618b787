from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, Union

import pandas as pd
import requests

logger = logging.getLogger(__name__)

BIKE_TRAFFIC_URL = (
    "https://raw.githubusercontent.com/rfordatascience/tidytuesday/"
    "master/data/2019/2019-04-02/bike_traffic.csv"
)
BIKE_DATE_FORMAT = "%m/%d/%Y %I:%M:%S %p"


class DataSourceError(RuntimeError):
    """A required input could not be fetched or decoded."""


def _normalize_columns(df: pd.DataFrame, aliases: Dict[str, tuple], required: list) -> pd.DataFrame:
    """
    Rename columns to canonical names, matching case-insensitively.
    `aliases` maps canonical name -> accepted source names (first hit wins).
    """
    cols = {c.strip().lower(): c for c in df.columns}
    rename, unused = {}, []
    for canon, names in aliases.items():
        hits = [cols[n] for n in names if n in cols]
        if hits:
            rename[hits[0]] = canon
            unused.extend(hits[1:])
    missing = [r for r in required if r not in rename.values()]
    if missing:
        raise ValueError(f"CSV is missing required columns: {missing}. Found: {list(df.columns)}")
    # other accepted names for the same field would become duplicate columns
    return df.drop(columns=unused).rename(columns=rename)


# ----------------------------
# Bike traffic
# ----------------------------
def download_file(url: str, dest: Union[str, Path], timeout: float = 60) -> Path:
    """Download `url` to `dest` once; an existing non-empty file is reused."""
    dest = Path(dest)
    if dest.exists() and dest.stat().st_size > 0:
        logger.debug(f"Using cached copy at {dest}")
        return dest

    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"Downloading {url}")
    try:
        resp = requests.get(url, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise DataSourceError(f"Failed to download {url}: {e}") from e

    tmp = dest.with_suffix(dest.suffix + ".tmp")
    tmp.write_bytes(resp.content)
    tmp.replace(dest)
    logger.info(f"Saved {len(resp.content)} bytes to {dest}")
    return dest


def load_bike_traffic(path, max_count: int = 2000) -> pd.DataFrame:
    """
    Load the bike-counter CSV and normalize it to:
      date (datetime), crossing, direction, bike_count (nullable Float64)

    ped_count is dropped. Rows with bike_count >= max_count are sensor
    glitches and removed; null counts are kept so they can be reported.
    """
    df = pd.read_csv(path)
    df = _normalize_columns(
        df,
        aliases={
            "date": ("date",),
            "crossing": ("crossing", "crossing_name", "crossing name"),
            "direction": ("direction",),
            "bike_count": ("bike_count", "bike count"),
            "ped_count": ("ped_count", "ped count"),
        },
        required=["date", "crossing", "direction", "bike_count"],
    )
    df = df.drop(columns=["ped_count"], errors="ignore")

    df["date"] = pd.to_datetime(df["date"].astype(str).str.strip(), format=BIKE_DATE_FORMAT, errors="coerce")
    bad_dates = int(df["date"].isna().sum())
    if bad_dates:
        logger.warning(f"Dropping {bad_dates} rows with unparseable dates")
        df = df.loc[df["date"].notna()]

    df["bike_count"] = pd.to_numeric(df["bike_count"], errors="coerce").astype("Float64")
    # keep nulls; `<` on a null would drop them
    valid = df["bike_count"].isna() | (df["bike_count"] < max_count)
    dropped = int((~valid).sum())
    if dropped:
        logger.info(f"Dropped {dropped} rows with bike_count >= {max_count}")

    out = df.loc[valid, ["date", "crossing", "direction", "bike_count"]].copy()
    out["crossing"] = out["crossing"].astype(str).str.strip()
    out["direction"] = out["direction"].astype(str).str.strip()
    return out.reset_index(drop=True)


def add_time_parts(df: pd.DataFrame) -> pd.DataFrame:
    """Add day / hour / weekday (0=Mon) / month columns derived from `date`."""
    if "date" not in df.columns:
        raise ValueError("df is missing column 'date'")
    out = df.copy()
    ts = out["date"].dt
    out["day"] = ts.normalize()
    out["hour"] = ts.hour
    out["weekday"] = ts.dayofweek
    out["month"] = ts.month
    return out


# ----------------------------
# COVID-19 corpus
# ----------------------------
def load_metadata(path, full_text_only: bool = False) -> pd.DataFrame:
    """
    Load corpus metadata and normalize to:
      paper_id, title, abstract, source, has_full_text

    `sha` cells holding several ids ("a; b") are split, one row per id.
    """
    df = pd.read_csv(path, dtype=str, keep_default_na=True)
    df = _normalize_columns(
        df,
        aliases={
            "paper_id": ("sha", "paper_id"),
            "title": ("title",),
            "abstract": ("abstract",),
            "source": ("source_x", "source"),
            "has_full_text": ("has_full_text", "has_pdf_parse"),
        },
        required=["paper_id", "title"],
    )
    for c in ("abstract", "source", "has_full_text"):
        if c not in df.columns:
            df[c] = None

    df = df.loc[df["paper_id"].notna()].copy()
    df["paper_id"] = df["paper_id"].str.split(";")
    df = df.explode("paper_id").reset_index(drop=True)
    df["paper_id"] = df["paper_id"].str.strip()
    df = df.loc[df["paper_id"] != ""]

    df["has_full_text"] = (
        df["has_full_text"].fillna("").astype(str).str.strip().str.lower().isin(["true", "1", "yes", "y", "t"])
    )
    if full_text_only:
        df = df.loc[df["has_full_text"]]

    dups = df["paper_id"].duplicated()
    if dups.any():
        logger.warning(f"Metadata has {int(dups.sum())} duplicate paper ids; keeping first occurrence")
        df = df.loc[~dups]

    out = df[["paper_id", "title", "abstract", "source", "has_full_text"]].copy()
    out["abstract"] = out["abstract"].astype(object).where(out["abstract"].notna(), None)
    return out.reset_index(drop=True)


def iter_json_documents(directory, pattern: str = "*.json") -> Iterator[Dict[str, Any]]:
    """Yield each JSON document under `directory` (recursive, sorted by path)."""
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Document directory not found: {root}")

    n = 0
    for p in sorted(root.rglob(pattern)):
        try:
            with p.open(encoding="utf-8") as f:
                doc = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise DataSourceError(f"Could not decode JSON document {p}: {e}") from e
        n += 1
        yield doc
    logger.info(f"Read {n} JSON documents from {root}")
