"""
Correlation Engine
==================

Agreement between score types (e.g. an objective metric vs. MOS) measured
as Spearman rank correlation over the entries both series share.

Undefined cases (too few common entries, constant series) yield NaN.
"""

import logging
import warnings
from typing import Sequence

import numpy as np
import pandas as pd
from scipy import stats

from .config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

KEY_COLUMNS = ["reference", "distortion"]
RECORD_COLUMNS = ["score_type", "reference", "distortion", "value"]


def _defined(x: np.ndarray, min_points: int) -> bool:
    return len(x) >= min_points and np.ptp(x) > 0


def rank_correlation(x: Sequence[float], y: Sequence[float],
                     min_points: int = None) -> float:
    """
    Spearman rank correlation of two paired series.

    Args:
        x, y: Equal-length paired observations
        min_points: Minimum number of pairs (config default if None)

    Returns:
        Correlation in [-1, 1], or NaN when undefined
    """
    min_points = min_points or DEFAULT_CONFIG.study.MIN_COMMON_KEYS

    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if len(x) != len(y):
        raise ValueError(f"Paired series differ in length: {len(x)} != {len(y)}")

    if not (_defined(x, min_points) and _defined(y, min_points)):
        return float("nan")

    with warnings.catch_warnings():
        warnings.simplefilter("ignore", RuntimeWarning)
        rho, _ = stats.spearmanr(x, y)
    return float(rho)


def correlation_table(records: pd.DataFrame, min_points: int = None) -> pd.DataFrame:
    """
    Pairwise correlation between every pair of score types.

    Args:
        records: Long-form records with columns score_type, reference,
            distortion, value
        min_points: Minimum number of common entries per pair

    Returns:
        Symmetric DataFrame indexed by score type on both axes
    """
    min_points = min_points or DEFAULT_CONFIG.study.MIN_COMMON_KEYS

    missing = set(RECORD_COLUMNS) - set(records.columns)
    if missing:
        raise ValueError(f"Records missing columns: {sorted(missing)}")

    score_types = sorted(records["score_type"].unique())
    table = pd.DataFrame(np.nan, index=score_types, columns=score_types, dtype=float)
    table.index.name = "score_type"
    table.columns.name = "score_type"

    if not score_types:
        return table

    # One column per score type, one row per (reference, distortion)
    wide = records.dropna(subset=["value"]).pivot_table(
        index=KEY_COLUMNS, columns="score_type", values="value", aggfunc="first"
    ).reindex(columns=score_types)

    for i, a in enumerate(score_types):
        series_a = wide[a].dropna()
        if _defined(series_a.to_numpy(), min_points):
            table.loc[a, a] = 1.0

        for b in score_types[i + 1:]:
            common = wide[[a, b]].dropna()
            rho = rank_correlation(common[a], common[b], min_points)
            table.loc[a, b] = rho
            table.loc[b, a] = rho
            logger.debug(f"{a} vs {b}: rho={rho:.4f} over {len(common)} entries")

    return table
