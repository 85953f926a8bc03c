"""
Reporting Module
================

Score and correlation exports.

Features:
- Long-form score CSV
- Correlation table CSV
- Correlation heatmap
- Run metadata JSON
"""

import json
import logging
from pathlib import Path
from typing import Dict, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def _prepare(path: PathLike) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    return path


def save_scores(records: pd.DataFrame, path: PathLike) -> Path:
    """Save long-form score records as CSV"""
    path = _prepare(path)
    records.sort_values(["score_type", "reference", "distortion"]).to_csv(path, index=False)
    logger.info(f"Saved scores: {path}")
    return path


def save_correlation(table: pd.DataFrame, path: PathLike) -> Path:
    """Save correlation table as CSV (NaN written as empty cells)"""
    path = _prepare(path)
    table.to_csv(path)
    logger.info(f"Saved correlation table: {path}")
    return path


def plot_correlation_heatmap(table: pd.DataFrame, path: PathLike) -> plt.Figure:
    """
    Plot the correlation table as a heatmap.
    """
    path = _prepare(path)

    size = max(4, 1.5 * len(table))
    fig, ax = plt.subplots(figsize=(size + 2, size))

    sns.heatmap(
        table.astype(float),
        mask=np.isnan(table.to_numpy(dtype=float)),
        annot=True,
        fmt='.2f',
        cmap='RdBu_r',
        center=0,
        vmin=-1,
        vmax=1,
        ax=ax,
        cbar_kws={'label': 'Spearman rho'}
    )

    ax.set_title('Rank Correlation Between Score Types', fontsize=14, pad=16)

    plt.tight_layout()
    fig.savefig(path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    logger.info(f"Saved: {path}")

    return fig


def save_run_metadata(metadata: Dict, path: PathLike) -> Path:
    """Save run metadata as JSON"""
    path = _prepare(path)
    with open(path, 'w') as f:
        json.dump(metadata, f, indent=2, default=str)
    return path
