"""Discrimination and calibration metrics for held-out predictions.

All functions take a method's predicted probabilities and the true binary
labels of the test fold, in the same row order. The table builders at the
bottom apply them across every method's ModelResult and emit sentinel rows
for methods whose predictions are missing or whose metric is undefined, so
each table always has one entry per method.
"""

import logging
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy import stats
from sklearn.metrics import auc, roc_curve

from src.benchmark.errors import MetricUndefined
from src.benchmark.models import ModelResult


logger = logging.getLogger(__name__)

ACCURACY_CUTOFFS = (0.1, 0.2, 0.3, 0.4, 0.5, 0.75, 0.9)
HL_GROUPS = 15

HL_BIN_COLUMNS = [
    "prob_range",
    "method",
    "observed_neg",
    "observed_pos",
    "expected_neg",
    "expected_pos",
]


def _threshold_sweep(
    y_true: np.ndarray, y_proba: np.ndarray
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """(fpr, tpr, thresholds) at +inf and every distinct prediction, descending."""
    y_true = np.asarray(y_true, dtype=int)
    y_proba = np.asarray(y_proba, dtype=float)
    n_pos = int(y_true.sum())
    if n_pos == 0 or n_pos == len(y_true):
        raise MetricUndefined("ROC requires both outcome classes in the test set")
    fpr, tpr, thresholds = roc_curve(y_true, y_proba, drop_intermediate=False)
    # Older sklearn releases use max(score) + 1 rather than inf for the first threshold
    thresholds = thresholds.astype(float)
    thresholds[0] = np.inf
    return fpr, tpr, thresholds


def roc_points(y_true, y_proba) -> pd.DataFrame:
    """Full ROC staircase from (0, 0) to (1, 1).

    Returns:
        DataFrame with columns [fpr, tpr], one row per threshold

    Raises:
        MetricUndefined: If the test set holds only one class
    """
    fpr, tpr, _ = _threshold_sweep(y_true, y_proba)
    return pd.DataFrame({"fpr": fpr, "tpr": tpr})


def area_under_roc(y_true, y_proba) -> float:
    """Area under the ROC staircase.

    Equal to the probability that a random death is ranked above a random
    survivor, with ties counted as one half.

    Raises:
        MetricUndefined: If the test set holds only one class
    """
    fpr, tpr, _ = _threshold_sweep(y_true, y_proba)
    return float(auc(fpr, tpr))


def accuracy_at_cutoffs(
    y_true,
    y_proba,
    cutoffs: tuple[float, ...] = ACCURACY_CUTOFFS,
) -> pd.DataFrame:
    """Accuracy when predicting death iff probability >= threshold.

    Accuracy is only evaluated at achieved thresholds (+inf and each distinct
    prediction). For each cutoff the smallest achieved threshold that is
    still >= the cutoff is used, so no interpolation happens between
    predictions. The +inf threshold always qualifies, which makes a cutoff
    above every prediction report the all-survivor accuracy.

    Args:
        y_true: Binary labels
        y_proba: Predicted probability of death
        cutoffs: Probability cutoffs to report

    Returns:
        DataFrame with columns [cutoff, accuracy]
    """
    y_true = np.asarray(y_true, dtype=int)
    y_proba = np.asarray(y_proba, dtype=float)
    n = len(y_true)
    n_pos = int(y_true.sum())
    n_neg = n - n_pos

    thresholds = np.concatenate([[np.inf], np.unique(y_proba)[::-1]])
    # predicted positive iff proba >= threshold
    tp = np.array([(y_true[y_proba >= t]).sum() for t in thresholds])
    predicted_pos = np.array([(y_proba >= t).sum() for t in thresholds])
    fp = predicted_pos - tp
    accuracy = (tp + (n_neg - fp)) / n

    rows = []
    for cutoff in cutoffs:
        eligible = np.flatnonzero(thresholds >= cutoff)
        value = float(accuracy[eligible[-1]]) if len(eligible) else np.nan
        rows.append({"cutoff": cutoff, "accuracy": value})
    return pd.DataFrame(rows, columns=["cutoff", "accuracy"])


@dataclass
class HosmerLemeshowResult:
    statistic: float | None
    p_value: float
    df: int
    bins: pd.DataFrame

    @property
    def applicable(self) -> bool:
        return self.statistic is not None


def _format_bound(value: float, digits: int = 3) -> str:
    return f"{value:.{digits}g}"


def _range_labels(breaks: np.ndarray) -> list[str]:
    """R cut() style interval labels, widening precision until bounds differ."""
    for digits in range(3, 13):
        bounds = [_format_bound(b, digits) for b in breaks]
        if len(set(bounds)) == len(bounds):
            break

    labels = []
    for i in range(len(bounds) - 1):
        left = "[" if i == 0 else "("
        labels.append(f"{left}{bounds[i]},{bounds[i + 1]}]")
    return labels


def _placeholder_bins() -> pd.DataFrame:
    return pd.DataFrame(
        [{
            "prob_range": "0,1",
            "observed_neg": np.nan,
            "observed_pos": np.nan,
            "expected_neg": np.nan,
            "expected_pos": np.nan,
        }]
    )


def _risk_groups(y_proba: np.ndarray, groups: int) -> tuple[np.ndarray, list[str]]:
    """Assign each prediction to a quantile group of predicted risk.

    Raises:
        MetricUndefined: If all predictions are identical
    """
    breaks = np.unique(np.quantile(y_proba, np.linspace(0, 1, groups + 1)))
    if len(breaks) < 2:
        raise MetricUndefined("predictions are constant; risk groups cannot be formed")
    # Right-closed intervals, lowest interval also closed on the left
    codes = np.searchsorted(breaks, y_proba, side="left") - 1
    codes = np.clip(codes, 0, len(breaks) - 2)
    return codes, _range_labels(breaks)


def hosmer_lemeshow(y_true, y_proba, groups: int = HL_GROUPS) -> HosmerLemeshowResult:
    """Hosmer-Lemeshow goodness-of-fit test.

    Test rows are grouped by quantiles of predicted risk; the statistic sums
    (observed - expected)^2 / expected over deaths and survivors of every
    group and is referred to chi-squared with ``groups - 2`` degrees of
    freedom. A cell with outcomes but zero expected count makes the statistic
    infinite. Constant predictions cannot be grouped: the result then has
    ``statistic=None``, ``p_value=0.0`` and a single placeholder bin.

    Args:
        y_true: Binary labels
        y_proba: Predicted probability of death
        groups: Requested number of risk groups

    Returns:
        HosmerLemeshowResult with statistic, p-value and per-group counts
    """
    y_true = np.asarray(y_true, dtype=float)
    y_proba = np.asarray(y_proba, dtype=float)
    dof = groups - 2

    try:
        codes, labels = _risk_groups(y_proba, groups)
    except MetricUndefined as e:
        logger.debug(f"Hosmer-Lemeshow not applicable: {e}")
        return HosmerLemeshowResult(statistic=None, p_value=0.0, df=dof, bins=_placeholder_bins())

    n_bins = len(labels)
    observed_pos = np.bincount(codes, weights=y_true, minlength=n_bins)
    observed_neg = np.bincount(codes, weights=1 - y_true, minlength=n_bins)
    expected_pos = np.bincount(codes, weights=y_proba, minlength=n_bins)
    expected_neg = np.bincount(codes, weights=1 - y_proba, minlength=n_bins)

    observed = np.concatenate([observed_neg, observed_pos])
    expected = np.concatenate([expected_neg, expected_pos])
    if np.any((expected == 0) & (observed > 0)):
        # Outcomes in a cell predicted impossible: unbounded misfit
        statistic = np.inf
    else:
        nonzero = expected > 0
        statistic = float(np.sum((observed[nonzero] - expected[nonzero]) ** 2 / expected[nonzero]))
    p_value = float(stats.chi2.sf(statistic, dof))

    bins = pd.DataFrame({
        "prob_range": labels,
        "observed_neg": observed_neg,
        "observed_pos": observed_pos,
        "expected_neg": expected_neg,
        "expected_pos": expected_pos,
    })
    return HosmerLemeshowResult(statistic=statistic, p_value=p_value, df=dof, bins=bins)


# ==================== Per-method tables ====================


def roc_table(results: dict, y_true) -> pd.DataFrame:
    frames = []
    for method, result in results.items():
        try:
            if not result.ok:
                raise MetricUndefined(f"no predictions ({result.error})")
            points = roc_points(y_true, result.predictions)
        except MetricUndefined as e:
            logger.warning(f"  {method.value}: ROC undefined: {e}")
            points = pd.DataFrame({"fpr": [np.nan], "tpr": [np.nan]})
        points["method"] = method.value
        frames.append(points)
    return pd.concat(frames, ignore_index=True)


def auc_table(results: dict, y_true) -> pd.DataFrame:
    rows = []
    for method, result in results.items():
        try:
            if not result.ok:
                raise MetricUndefined(f"no predictions ({result.error})")
            value = area_under_roc(y_true, result.predictions)
            logger.info(f"  {method.value} AUC: {value:.4f}")
        except MetricUndefined as e:
            logger.warning(f"  {method.value}: AUC undefined: {e}")
            value = np.nan
        rows.append({"method": method.value, "auc": value})
    return pd.DataFrame(rows, columns=["method", "auc"])


def accuracy_table(results: dict, y_true, cutoffs: tuple[float, ...] = ACCURACY_CUTOFFS) -> pd.DataFrame:
    frames = []
    for method, result in results.items():
        if result.ok:
            acc = accuracy_at_cutoffs(y_true, result.predictions, cutoffs)
        else:
            acc = pd.DataFrame({"cutoff": list(cutoffs), "accuracy": np.nan})
        acc.insert(0, "method", method.value)
        frames.append(acc)
    return pd.concat(frames, ignore_index=True)


def hosmer_lemeshow_tables(
    results: dict,
    y_true,
    groups: int = HL_GROUPS,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Hosmer-Lemeshow statistic table and bin table across methods.

    Returns:
        Tuple of (statistics with [method, statistic, p_value],
        bins with HL_BIN_COLUMNS)
    """
    stat_rows = []
    bin_frames = []
    for method, result in results.items():
        if result.ok:
            hl = hosmer_lemeshow(y_true, result.predictions, groups=groups)
        else:
            hl = HosmerLemeshowResult(
                statistic=None, p_value=0.0, df=groups - 2, bins=_placeholder_bins()
            )
        if not hl.applicable:
            logger.warning(f"  {method.value}: Hosmer-Lemeshow not applicable, emitting sentinel")

        stat_rows.append({"method": method.value, "statistic": hl.statistic, "p_value": hl.p_value})
        bins = hl.bins.copy()
        bins["method"] = method.value
        bin_frames.append(bins[HL_BIN_COLUMNS])

    stats_df = pd.DataFrame(stat_rows, columns=["method", "statistic", "p_value"])
    return stats_df, pd.concat(bin_frames, ignore_index=True)


def summarize_results(results: dict[object, ModelResult], y_true, groups: int = HL_GROUPS) -> dict[str, pd.DataFrame]:
    """Every metric table for a run, keyed by artifact name."""
    hl_stats, hl_bins = hosmer_lemeshow_tables(results, y_true, groups=groups)
    return {
        "roc": roc_table(results, y_true),
        "auc": auc_table(results, y_true),
        "accuracy": accuracy_table(results, y_true),
        "hl": hl_stats,
        "hl_bins": hl_bins,
    }
