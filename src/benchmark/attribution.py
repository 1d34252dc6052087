"""Variable inclusion and importance tables.

Normalizes each method's attribution payload into one of two shapes:

- inclusion (lr, ct): variables the model selected. For logistic regression
  these are predictors with a coefficient below the p-value threshold; for the
  conditional inference tree, every variable used as a split.
- importance (dt, rf, gb): one row per (variable, importance type).

A method with no signal contributes a single null placeholder row instead
of being dropped, so downstream compilation always sees every method.
"""

import logging

import numpy as np
import pandas as pd

from src.benchmark.errors import AttributionUnavailable
from src.benchmark.models import (
    IMPORTANCE_METHODS,
    INCLUSION_METHODS,
    Method,
    ModelResult,
)


logger = logging.getLogger(__name__)

INCLUSION_COLUMNS = ["variable", "method", "included"]
IMPORTANCE_COLUMNS = ["variable", "method", "importance_type", "value"]
COEFFICIENT_COLUMNS = [
    "variable",
    "coefficient",
    "std_error",
    "z_value",
    "p_value",
    "odds_ratio",
    "ci_lower",
    "ci_upper",
    "method",
]

IMPORTANCE_TYPES = {
    Method.DECISION_TREE: "impurity",
    Method.GRADIENT_BOOSTING: "gain",
}


def _unique(values) -> list[str]:
    return list(dict.fromkeys(values))


def included_variables(result: ModelResult, alpha: float = 0.05) -> list[str]:
    """Predictors a model selected, deduplicated in first-seen order.

    Raises:
        AttributionUnavailable: If the model has no attribution payload or
            selected no variables
    """
    if not result.ok or result.attribution is None:
        raise AttributionUnavailable(f"{result.method.value}: no attribution payload")

    if result.method == Method.LOGISTIC_REGRESSION:
        coefs = result.attribution
        significant = coefs[(coefs["variable"] != "const") & (coefs["p_value"] < alpha)]
        variables = [result.feature_sources.get(v, v) for v in significant["variable"]]
    elif result.method == Method.CONDITIONAL_TREE:
        variables = list(result.attribution)
    else:
        raise ValueError(f"{result.method.value} has no inclusion attribution")

    if not variables:
        raise AttributionUnavailable(f"{result.method.value}: no variables selected")
    return _unique(variables)


def inclusion_table(results: dict[Method, ModelResult], alpha: float = 0.05) -> pd.DataFrame:
    """Inclusion rows [variable, method, included] for lr and ct."""
    frames = []
    for method in INCLUSION_METHODS:
        if method not in results:
            continue
        try:
            variables = included_variables(results[method], alpha=alpha)
            frame = pd.DataFrame({"variable": variables, "method": method.value, "included": 1})
        except AttributionUnavailable as e:
            logger.warning(f"  Inclusion unavailable: {e}")
            frame = pd.DataFrame([{"variable": None, "method": method.value, "included": np.nan}])
        frames.append(frame[INCLUSION_COLUMNS])

    if not frames:
        return pd.DataFrame(columns=INCLUSION_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def importance_rows(result: ModelResult) -> pd.DataFrame:
    """Long-format importance rows for one dt, rf or gb result.

    Raises:
        AttributionUnavailable: If the model exposes no importances
    """
    payload = result.attribution
    if not result.ok or payload is None or len(payload) == 0:
        raise AttributionUnavailable(f"{result.method.value}: no variable importance")

    if isinstance(payload, pd.DataFrame):
        long = payload.rename_axis("variable").reset_index().melt(
            id_vars="variable", var_name="importance_type", value_name="value"
        )
    else:
        long = pd.DataFrame({
            "variable": payload.index,
            "importance_type": IMPORTANCE_TYPES[result.method],
            "value": payload.to_numpy(dtype=float),
        })
    long["method"] = result.method.value
    return long[IMPORTANCE_COLUMNS]


def importance_table(results: dict[Method, ModelResult]) -> pd.DataFrame:
    """Importance rows [variable, method, importance_type, value] for dt, rf and gb."""
    frames = []
    for method in IMPORTANCE_METHODS:
        if method not in results:
            continue
        try:
            frames.append(importance_rows(results[method]))
        except AttributionUnavailable as e:
            logger.warning(f"  Importance unavailable: {e}")
            frames.append(pd.DataFrame(
                [{"variable": None, "method": method.value, "importance_type": None, "value": np.nan}],
                columns=IMPORTANCE_COLUMNS,
            ))

    if not frames:
        return pd.DataFrame(columns=IMPORTANCE_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def coefficient_table(results: dict[Method, ModelResult]) -> pd.DataFrame:
    """Logistic regression coefficient statistics."""
    result = results.get(Method.LOGISTIC_REGRESSION)
    if result is None or not result.ok or result.attribution is None:
        logger.warning("  Logistic coefficients unavailable")
        placeholder = {col: np.nan for col in COEFFICIENT_COLUMNS}
        placeholder.update(variable=None, method=Method.LOGISTIC_REGRESSION.value)
        return pd.DataFrame([placeholder], columns=COEFFICIENT_COLUMNS)

    coefs = result.attribution.copy()
    coefs["method"] = Method.LOGISTIC_REGRESSION.value
    return coefs[COEFFICIENT_COLUMNS].reset_index(drop=True)
