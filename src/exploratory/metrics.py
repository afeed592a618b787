from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import sparse
from sklearn.feature_extraction.text import ENGLISH_STOP_WORDS, CountVectorizer


GroupKeys = Union[str, Sequence[str]]


def _keys(by: Optional[GroupKeys]) -> List[str]:
    if by is None:
        return []
    return [by] if isinstance(by, str) else list(by)


def _as_float(s: pd.Series) -> np.ndarray:
    return s.astype("Float64").to_numpy(dtype=float, na_value=np.nan)


def _require(df: pd.DataFrame, cols: Iterable[str], name: str = "df") -> None:
    miss = set(cols) - set(df.columns)
    if miss:
        raise ValueError(f"'{name}' is missing columns: {miss}")


# ----------------------------
# Bike traffic
# ----------------------------
def share_by(df: pd.DataFrame, key: str, by: Optional[GroupKeys] = "crossing",
             value: str = "bike_count") -> pd.DataFrame:
    """
    Share of each group's crossings that fall in each `key` bucket.

    Null counts add nothing to the bucket sums, but the group total is
    estimated as rows x mean(observed count), so a group with a fraction f of
    null counts has shares summing to 1 - f. Without nulls they sum to 1.
    Returns columns: *by, key, bike_count, share
    """
    groups = _keys(by)
    _require(df, groups + [key, value])

    d = df[groups + [key, value]].copy()
    d[value] = d[value].astype("Float64")
    d["_filled"] = d[value].fillna(0)

    out = d.groupby(groups + [key], dropna=False).agg(total=("_filled", "sum")).reset_index()

    if groups:
        g = d.groupby(groups, dropna=False)[value]
        denom = (g.size() * g.mean()).astype("Float64").rename("_denom").reset_index()
        out = out.merge(denom, on=groups, how="left")
    else:
        mean = d[value].mean()
        out["_denom"] = pd.array([len(d) * mean if pd.notna(mean) else None] * len(out), dtype="Float64")

    total = _as_float(out["total"])
    denom = _as_float(out["_denom"])
    # all-null groups: nothing observed, share 0
    out["share"] = np.where(denom > 0, total / np.where(denom > 0, denom, 1.0), 0.0)
    out["total"] = total
    out = out.drop(columns="_denom").rename(columns={"total": value})
    return out.sort_values(groups + [key]).reset_index(drop=True)


def hourly_share(df: pd.DataFrame, by: Optional[GroupKeys] = "crossing") -> pd.DataFrame:
    return share_by(df, "hour", by)


def weekday_share(df: pd.DataFrame, by: Optional[GroupKeys] = "crossing") -> pd.DataFrame:
    return share_by(df, "weekday", by)


def monthly_share(df: pd.DataFrame, by: Optional[GroupKeys] = "crossing") -> pd.DataFrame:
    return share_by(df, "month", by)


def missing_rate(df: pd.DataFrame, by: GroupKeys = ("crossing", "month"),
                 value: str = "bike_count") -> pd.DataFrame:
    """Fraction of observations with a null count, per group."""
    groups = _keys(by)
    _require(df, groups + [value])
    d = df[groups].copy()
    d["_missing"] = df[value].isna()
    out = d.groupby(groups, dropna=False).agg(
        n=("_missing", "size"),
        n_missing=("_missing", "sum"),
    ).reset_index()
    out["missing_rate"] = out["n_missing"] / out["n"]
    return out


def daily_totals(df: pd.DataFrame, by: GroupKeys = "crossing") -> pd.DataFrame:
    """Bike crossings per day and group; null counts contribute zero."""
    groups = _keys(by)
    _require(df, groups + ["day", "bike_count"])
    d = df[groups + ["day"]].copy()
    d["bike_count"] = df["bike_count"].astype("Float64").fillna(0)
    out = d.groupby(groups + ["day"]).agg(bike_count=("bike_count", "sum")).reset_index()
    out["bike_count"] = out["bike_count"].astype(float)
    return out


# ----------------------------
# Text
# ----------------------------
TOKEN_PATTERN = r"(?u)\b[^\W\d_][\w\-']+\b"  # words starting with a letter


def _vectorizer(extra_stop_words: Iterable[str], min_length: int, binary: bool = False) -> CountVectorizer:
    stop = sorted(ENGLISH_STOP_WORDS.union(w.lower() for w in extra_stop_words))
    # min_length - 1 extra chars after the leading letter
    pattern = TOKEN_PATTERN if min_length <= 2 else rf"(?u)\b[^\W\d_][\w\-']{{{min_length - 1},}}\b"
    return CountVectorizer(stop_words=stop, token_pattern=pattern, lowercase=True, binary=binary)


def word_frequencies(texts: Iterable[str], extra_stop_words: Iterable[str] = (),
                     min_length: int = 3, top_k: Optional[int] = None) -> pd.DataFrame:
    """Word counts across `texts` minus English + extra stop words."""
    texts = [t for t in texts if isinstance(t, str) and t.strip()]
    if not texts:
        return pd.DataFrame(columns=["term", "count"])
    vec = _vectorizer(extra_stop_words, min_length)
    try:
        X = vec.fit_transform(texts)
    except ValueError:  # only stop words
        return pd.DataFrame(columns=["term", "count"])
    counts = np.asarray(X.sum(0)).ravel()
    out = pd.DataFrame({"term": vec.get_feature_names_out(), "count": counts})
    out = out.sort_values(["count", "term"], ascending=[False, True]).reset_index(drop=True)
    return out.head(top_k) if top_k else out


def document_terms(paragraphs: pd.DataFrame, extra_stop_words: Iterable[str] = (),
                   min_length: int = 3, doc_col: str = "paper_id", text_col: str = "text") -> pd.DataFrame:
    """Distinct (doc, term) pairs: which documents mention which words."""
    _require(paragraphs, [doc_col, text_col], "paragraphs")
    docs = paragraphs.groupby(doc_col)[text_col].apply(
        lambda s: " ".join(t for t in s if isinstance(t, str))
    )
    if docs.empty:
        return pd.DataFrame(columns=[doc_col, "term"])
    vec = _vectorizer(extra_stop_words, min_length, binary=True)
    try:
        X = vec.fit_transform(docs.tolist()).tocoo()
    except ValueError:
        return pd.DataFrame(columns=[doc_col, "term"])
    terms = vec.get_feature_names_out()
    out = pd.DataFrame({doc_col: docs.index.to_numpy()[X.row], "term": terms[X.col]})
    return out.sort_values([doc_col, "term"]).reset_index(drop=True)


def pairwise_correlation(df: pd.DataFrame, item: str = "term", feature: str = "paper_id",
                         min_count: int = 2, max_items: Optional[int] = 500) -> pd.DataFrame:
    """
    Phi coefficient between every pair of items based on which features
    (usually documents) they occur in. Both (a, b) and (b, a) are returned.
    Items seen in fewer than `min_count` features are excluded; only the
    `max_items` most frequent items are kept (None keeps all).
    """
    _require(df, [item, feature])
    pairs = df[[item, feature]].dropna().drop_duplicates()
    seen = pairs.groupby(item)[feature].transform("size")
    pairs = pairs.loc[seen >= min_count]
    if max_items:
        freq = pairs.groupby(item).size().sort_values(ascending=False, kind="stable")
        pairs = pairs.loc[pairs[item].isin(freq.index[:max_items])]
    if pairs[item].nunique() < 2:
        return pd.DataFrame(columns=["item1", "item2", "correlation"])

    item_codes, items = pd.factorize(pairs[item], sort=True)
    feature_codes, features = pd.factorize(pairs[feature])
    X = sparse.csr_matrix(
        (np.ones(len(pairs)), (feature_codes, item_codes)),
        shape=(len(features), len(items)),
    )
    n = float(X.shape[0])
    co = (X.T @ X).toarray()
    n1 = np.diag(co)
    num = n * co - np.outer(n1, n1)
    spread = n1 * (n - n1)
    den = np.sqrt(np.outer(spread, spread))
    # items present in every feature have no variance
    with np.errstate(divide="ignore", invalid="ignore"):
        corr = np.where(den > 0, num / den, np.nan)
    items = np.asarray(items)

    iu, ju = np.where(~np.eye(len(items), dtype=bool))
    out = pd.DataFrame({"item1": items[iu], "item2": items[ju], "correlation": corr[iu, ju]})
    out = out.dropna(subset=["correlation"])
    return out.sort_values(["correlation", "item1", "item2"], ascending=[False, True, True]).reset_index(drop=True)


# ----------------------------
# References
# ----------------------------
def normalize_title(s) -> Optional[str]:
    if not isinstance(s, str):
        return None
    s = re.sub(r"\s+", " ", s.strip().lower()).strip(" .")
    return s or None


def reference_title_counts(bib_entries: pd.DataFrame, top_k: Optional[int] = None) -> pd.DataFrame:
    """
    How often each referenced title appears across bibliographies.
    Returns: title, count (entries), n_papers (distinct citing papers)
    """
    _require(bib_entries, ["paper_id", "title"], "bib_entries")
    d = bib_entries[["paper_id", "title"]].copy()
    d["key"] = d["title"].map(normalize_title)
    d = d.loc[d["key"].notna()]
    if d.empty:
        return pd.DataFrame(columns=["title", "count", "n_papers"])
    out = d.groupby("key").agg(
        title=("title", "first"),
        count=("paper_id", "size"),
        n_papers=("paper_id", "nunique"),
    ).reset_index(drop=True)
    out = out.sort_values(["count", "title"], ascending=[False, True]).reset_index(drop=True)
    return out.head(top_k) if top_k else out


def cited_reference_counts(citations: pd.DataFrame, bib_entries: pd.DataFrame,
                           top_k: Optional[int] = None) -> pd.DataFrame:
    """
    In-text citation counts per referenced title: each citation span is
    resolved to its bibliography entry within the same paper.
    Returns: title, citations, n_papers
    """
    _require(citations, ["paper_id", "ref_id"], "citations")
    _require(bib_entries, ["paper_id", "ref_id", "title"], "bib_entries")
    spans = citations.loc[citations["ref_id"].notna(), ["paper_id", "ref_id"]]
    bib = bib_entries[["paper_id", "ref_id", "title"]].drop_duplicates(["paper_id", "ref_id"])
    d = spans.merge(bib, on=["paper_id", "ref_id"], how="inner")
    d["key"] = d["title"].map(normalize_title)
    d = d.loc[d["key"].notna()]
    if d.empty:
        return pd.DataFrame(columns=["title", "citations", "n_papers"])
    out = d.groupby("key").agg(
        title=("title", "first"),
        citations=("paper_id", "size"),
        n_papers=("paper_id", "nunique"),
    ).reset_index(drop=True)
    out = out.sort_values(["citations", "title"], ascending=[False, True]).reset_index(drop=True)
    return out.head(top_k) if top_k else out
