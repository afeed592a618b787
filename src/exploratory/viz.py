from __future__ import annotations

import os
import textwrap
from typing import Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
from matplotlib.ticker import PercentFormatter

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
MONTH_LABELS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def _ensure_dir(p: Optional[str]) -> None:
    if p:
        d = os.path.dirname(str(p))
        if d and not os.path.exists(d):
            os.makedirs(d, exist_ok=True)


def _wrap(s: str, width: int) -> str:
    s = (s or "").strip()
    return "\n".join(textwrap.wrap(s, width=width)) if s else ""


def _finish(fig: plt.Figure, out_path: Optional[str], show: bool) -> Optional[str]:
    fig.tight_layout()
    saved = None
    if out_path:
        _ensure_dir(out_path)
        fig.savefig(out_path, dpi=150, bbox_inches="tight")
        saved = str(out_path)
    if show:
        plt.show()
    else:
        plt.close(fig)
    return saved


def plot_share_by(
    shares: pd.DataFrame,
    key: str,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    group: Optional[str] = "crossing",
    title: Optional[str] = None,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """
    One line per group showing the share of crossings in each `key` bucket
    (hour / weekday / month). Expects output of metrics.share_by.
    """
    need = {key, "share"} | ({group} if group else set())
    miss = need - set(shares.columns)
    if miss:
        raise ValueError(f"'shares' is missing columns: {miss}")

    fig, ax = plt.subplots(figsize=(10, 5))
    groups = shares.groupby(group) if group else [("all", shares)]
    for name, sub in groups:
        sub = sub.sort_values(key)
        ax.plot(sub[key].to_numpy(), sub["share"].to_numpy(), marker="o", markersize=3,
                linewidth=1.5, label=_wrap(str(name), 30))

    if key == "weekday":
        ax.set_xticks(range(7))
        ax.set_xticklabels(WEEKDAY_LABELS)
    elif key == "month":
        ax.set_xticks(range(1, 13))
        ax.set_xticklabels(MONTH_LABELS)
    elif key == "hour":
        ax.set_xticks(range(0, 24, 2))

    ax.yaxis.set_major_formatter(PercentFormatter(xmax=1.0))
    ax.set_title(title or f"Share of bike crossings by {key}")
    ax.set_xlabel(key.capitalize())
    ax.set_ylabel("Share of crossings")
    if group:
        ax.legend(title=group.capitalize(), fontsize=8)

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_missing_rate(
    missing: pd.DataFrame,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    index: str = "crossing",
    columns: str = "month",
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """Heatmap of missing-count rate (index x columns), 0..1."""
    need = {index, columns, "missing_rate"}
    miss = need - set(missing.columns)
    if miss:
        raise ValueError(f"'missing' is missing columns: {miss}")

    grid = pd.pivot_table(missing, index=index, columns=columns, values="missing_rate",
                          aggfunc="mean", fill_value=0.0)
    fig, ax = plt.subplots(figsize=(10, max(3, 0.5 * len(grid) + 1.5)))
    im = ax.imshow(grid.values, aspect="auto", vmin=0, vmax=1, cmap="Reds")
    ax.set_yticks(range(len(grid.index)))
    ax.set_yticklabels([_wrap(str(i), 25) for i in grid.index], fontsize=8)
    ax.set_xticks(range(len(grid.columns)))
    if columns == "month":
        ax.set_xticklabels([MONTH_LABELS[int(m) - 1] for m in grid.columns])
    else:
        ax.set_xticklabels([str(c) for c in grid.columns])
    ax.set_title(f"Missing bike counts ({index} × {columns})")
    fig.colorbar(im, ax=ax, label="Missing rate")

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_term_counts(
    counts: pd.DataFrame,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    label_col: str = "term",
    value_col: str = "count",
    top_n: int = 20,
    title: str = "Most common words",
    wrap_label: int = 50,
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """Horizontal bars for the top_n rows (words, reference titles, ...)."""
    need = {label_col, value_col}
    miss = need - set(counts.columns)
    if miss:
        raise ValueError(f"'counts' is missing columns: {miss}")

    top = counts.sort_values(value_col, ascending=False).head(top_n).iloc[::-1]
    fig, ax = plt.subplots(figsize=(10, max(3, 0.35 * len(top) + 1.5)))
    labels = [_wrap(str(x), wrap_label) for x in top[label_col]]
    ax.barh(range(len(top)), top[value_col].to_numpy())
    ax.set_yticks(range(len(top)))
    ax.set_yticklabels(labels, fontsize=8)
    ax.set_xlabel(value_col.replace("_", " ").capitalize())
    ax.set_title(title)

    saved = _finish(fig, out_path, show)
    return fig, ax, saved


def plot_correlation_heatmap(
    pairs: pd.DataFrame,
    out_path: Optional[str] = None,
    show: bool = False,
    *,
    top_n: int = 20,
    title: str = "Co-occurrence correlation",
) -> Tuple[plt.Figure, plt.Axes, Optional[str]]:
    """
    Square heatmap over the items in the top_n strongest pairs.
    Expects output of metrics.pairwise_correlation.
    """
    need = {"item1", "item2", "correlation"}
    miss = need - set(pairs.columns)
    if miss:
        raise ValueError(f"'pairs' is missing columns: {miss}")

    top = pairs.sort_values("correlation", ascending=False).head(top_n * 2)
    items = sorted(set(top["item1"]) | set(top["item2"]))
    grid = (pairs[pairs["item1"].isin(items) & pairs["item2"].isin(items)]
            .pivot_table(index="item1", columns="item2", values="correlation", aggfunc="mean")
            .reindex(index=items, columns=items))
    values = grid.to_numpy(dtype=float, copy=True)
    if len(items):
        np.fill_diagonal(values, 1.0)

    fig, ax = plt.subplots(figsize=(max(5, 0.4 * len(items) + 2), max(4, 0.4 * len(items) + 1.5)))
    im = ax.imshow(values, vmin=-1, vmax=1, cmap="coolwarm")
    ax.set_xticks(range(len(items)))
    ax.set_xticklabels(items, rotation=90, fontsize=8)
    ax.set_yticks(range(len(items)))
    ax.set_yticklabels(items, fontsize=8)
    ax.set_title(title)
    fig.colorbar(im, ax=ax, label="Phi")

    saved = _finish(fig, out_path, show)
    return fig, ax, saved
