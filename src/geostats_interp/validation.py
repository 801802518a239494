from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
import pandas as pd
from sklearn.cluster import KMeans

from .driver import EstimationConfig, estimate_location
from .samples import SampleSet
from .search import NeighborSearch

logger = logging.getLogger(__name__)


@dataclass
class CVResult:
    data: pd.DataFrame
    metrics: Dict[str, float]


def spatial_kfold_indices(samples: SampleSet, n_splits: int = 5, random_state: int = 13) -> np.ndarray:
    """Assign spatial folds using KMeans clustering on coordinates."""
    n_splits = max(2, min(n_splits, len(samples)))
    return KMeans(n_clusters=n_splits, random_state=random_state, n_init=10).fit_predict(samples.coords)


def _predict_fold(train: SampleSet, test_idx: np.ndarray, samples: SampleSet, config: EstimationConfig, fold: int) -> pd.DataFrame:
    search = NeighborSearch(train, config.search)
    rows = []
    for idx in test_idx:
        result = estimate_location(train, (samples.x[idx], samples.y[idx]), config, search=search)
        rows.append(
            {
                "sample": int(idx),
                "x": float(samples.x[idx]),
                "y": float(samples.y[idx]),
                "value": float(samples.values[idx]),
                "estimate": result.estimate,
                "variance": result.variance,
                "ndata": result.ndata,
                "valid": result.valid,
                "fold": fold,
            }
        )
    return pd.DataFrame(rows)


def cross_validate(
    samples: SampleSet,
    config: EstimationConfig,
    method: str = "loo",
    n_splits: int = 5,
    random_state: int = 13,
) -> CVResult:
    """Cross-validation by leave-one-out or spatial K-fold."""
    config.validate()
    method = method.lower()
    if method not in {"loo", "kfold"}:
        raise ValueError("method must be 'loo' or 'kfold'")
    if len(samples) < 2:
        raise ValueError("cross-validation needs at least two samples")

    all_idx = np.arange(len(samples))
    results: List[pd.DataFrame] = []
    if method == "loo":
        for idx in all_idx:
            train = samples.subset(all_idx[all_idx != idx])
            results.append(_predict_fold(train, np.array([idx]), samples, config, fold=int(idx)))
    else:
        labels = spatial_kfold_indices(samples, n_splits=n_splits, random_state=random_state)
        for fold_id in range(labels.max() + 1):
            train = samples.subset(all_idx[labels != fold_id])
            results.append(_predict_fold(train, all_idx[labels == fold_id], samples, config, fold=fold_id))

    cv_df = pd.concat(results, axis=0).sort_values("sample").reset_index(drop=True)
    cv_df["error"] = cv_df["estimate"] - cv_df["value"]
    n_invalid = int((~cv_df["valid"]).sum())
    if n_invalid:
        logger.warning("Cross-validation: %d of %d samples could not be estimated.", n_invalid, len(cv_df))
    metrics = compute_cv_metrics(cv_df[cv_df["valid"]], vcol="value")
    return CVResult(data=cv_df, metrics=metrics)


def compute_cv_metrics(
    df: pd.DataFrame,
    vcol: str,
    pred_col: str = "estimate",
    var_col: str = "variance",
) -> Dict[str, float]:
    """Compute validation metrics (ME, MAE, MSE, RMSE, slope/intercept, MSDR)."""
    errors = df[pred_col] - df[vcol]
    if errors.empty:
        nan = float("nan")
        return {"n": 0, "ME": nan, "MAE": nan, "MSE": nan, "RMSE": nan, "slope": nan, "intercept": nan}
    mse = float(np.mean(errors**2))
    metrics = {
        "n": int(len(df)),
        "ME": float(np.mean(errors)),
        "MAE": float(np.mean(np.abs(errors))),
        "MSE": mse,
        "RMSE": float(np.sqrt(mse)),
    }

    if len(df) >= 2 and np.ptp(df[pred_col].to_numpy(dtype=float)) > 0:
        slope, intercept = np.polyfit(df[pred_col], df[vcol], 1)
    else:
        slope, intercept = float("nan"), float("nan")
    metrics["slope"] = float(slope)
    metrics["intercept"] = float(intercept)

    if var_col in df.columns:
        variance = df[var_col].to_numpy(dtype=float)
        mask = np.isfinite(variance) & (variance > 0)
        if np.any(mask):
            metrics["MSDR"] = float(np.mean((errors.to_numpy()[mask] ** 2) / variance[mask]))
    return metrics
