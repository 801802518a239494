from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

import numpy as np
import pandas as pd
from scipy.stats import norm


@dataclass(frozen=True)
class NormalScoreTransform:
    values: np.ndarray
    scores: np.ndarray

    def transform(self, data: Iterable[float]) -> np.ndarray:
        data_arr = np.asarray(list(data), dtype=float)
        return np.interp(data_arr, self.values, self.scores)

    def back_transform(self, scores: Iterable[float]) -> np.ndarray:
        scores_arr = np.asarray(list(scores), dtype=float)
        out = np.interp(scores_arr, self.scores, self.values)
        return np.where(np.isnan(scores_arr), np.nan, out)


def normal_score_transform(series: pd.Series | Iterable[float]) -> NormalScoreTransform:
    """Rank-based mapping of the data onto standard normal scores."""
    values = pd.to_numeric(pd.Series(series), errors="coerce").dropna().to_numpy(dtype=float)
    if values.size == 0:
        raise ValueError("Normal-score transform requires at least one finite value.")
    sorted_vals = np.sort(values)
    ranks = np.arange(1, len(sorted_vals) + 1, dtype=float)
    probs = (ranks - 0.5) / len(sorted_vals)
    scores = norm.ppf(probs)
    return NormalScoreTransform(values=sorted_vals, scores=scores)
