"""Conditional inference tree for a binary outcome.

Recursive partitioning where variable selection and splitting are separated:
at every node each predictor is tested for independence from the outcome,
the p-values are Bonferroni-adjusted, and the node is split only if the
strongest association is significant. This avoids the bias of greedy
impurity search towards predictors with many possible split points.

The fitted tree is an owned structure of ``CTreeNode`` objects, so split
variables can be recovered by a plain traversal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from itertools import count

import numpy as np
import pandas as pd
from scipy import stats

from src.benchmark.data import is_categorical


logger = logging.getLogger(__name__)


@dataclass
class CTreeNode:
    node_id: int
    terminal: bool
    n: int
    prediction: float
    split_variable: str | None = None
    threshold: float | None = None
    left_levels: frozenset = field(default_factory=frozenset)
    left: CTreeNode | None = None
    right: CTreeNode | None = None

    def goes_left(self, values: pd.Series) -> np.ndarray:
        if self.threshold is not None:
            return values.to_numpy(dtype=float) <= self.threshold
        return values.astype(str).isin(self.left_levels).to_numpy()


def _independence_pvalue(x: pd.Series, y: np.ndarray, categorical: bool) -> float:
    """Asymptotic p-value for independence of x and a binary outcome."""
    if categorical:
        table = pd.crosstab(x.astype(str).to_numpy(), y)
        if table.shape[0] < 2 or table.shape[1] < 2:
            return 1.0
        chi2, p, _, _ = stats.chi2_contingency(table.to_numpy(), correction=False)
        return float(p)

    values = x.to_numpy(dtype=float)
    if np.ptp(values) == 0 or np.ptp(y) == 0:
        return 1.0
    r = np.corrcoef(values, y)[0, 1]
    statistic = (len(values) - 1) * r**2
    return float(stats.chi2.sf(statistic, df=1))


def _two_by_two_chi2(n_left: np.ndarray, pos_left: np.ndarray, n: int, n_pos: int) -> np.ndarray:
    """Pearson chi-squared of the left/right x outcome table for each candidate."""
    n_left = n_left.astype(float)
    pos_left = pos_left.astype(float)
    n_right = n - n_left
    n_neg = n - n_pos
    denom = n_left * n_right * n_pos * n_neg
    neg_left = n_left - pos_left
    pos_right = n_pos - pos_left
    neg_right = n_right - neg_left
    with np.errstate(divide="ignore", invalid="ignore"):
        chi2 = n * (pos_left * neg_right - neg_left * pos_right) ** 2 / denom
    return np.where(denom > 0, chi2, -np.inf)


class ConditionalInferenceTree:
    """Unbiased recursive partitioning classifier.

    Args:
        alpha: Significance level for the Bonferroni-adjusted global test
        min_split: Minimum rows in a node before a split is attempted
        min_bucket: Minimum rows in each child of a split
        max_depth: Optional depth limit (None = unlimited)
    """

    def __init__(
        self,
        alpha: float = 0.05,
        min_split: int = 20,
        min_bucket: int = 7,
        max_depth: int | None = None,
    ):
        self.alpha = alpha
        self.min_split = min_split
        self.min_bucket = min_bucket
        self.max_depth = max_depth

    def fit(self, X: pd.DataFrame, y) -> ConditionalInferenceTree:
        y = np.asarray(y, dtype=int)
        X = X.reset_index(drop=True)
        self.feature_names_in_ = list(X.columns)
        self.classes_ = np.array([0, 1])
        self._categorical = {c: is_categorical(X[c]) for c in X.columns}
        self._ids = count(1)
        self.tree_ = self._grow(X, y, depth=0)
        return self

    def _grow(self, X: pd.DataFrame, y: np.ndarray, depth: int) -> CTreeNode:
        node_id = next(self._ids)
        n = len(y)
        prediction = float(y.mean()) if n else 0.0

        def leaf() -> CTreeNode:
            return CTreeNode(node_id=node_id, terminal=True, n=n, prediction=prediction)

        if n < self.min_split or (self.max_depth is not None and depth >= self.max_depth):
            return leaf()

        pvalues = {
            col: _independence_pvalue(X[col], y, self._categorical[col])
            for col in X.columns
        }
        m = len(pvalues)
        adjusted = {col: min(1.0, p * m) for col, p in pvalues.items()}
        best = min(adjusted, key=adjusted.get)
        if adjusted[best] >= self.alpha:
            return leaf()

        split = self._best_split(X[best], y, self._categorical[best])
        if split is None:
            return leaf()

        node = CTreeNode(
            node_id=node_id,
            terminal=False,
            n=n,
            prediction=prediction,
            split_variable=best,
            **split,
        )
        mask = node.goes_left(X[best])
        node.left = self._grow(X[mask].reset_index(drop=True), y[mask], depth + 1)
        node.right = self._grow(X[~mask].reset_index(drop=True), y[~mask], depth + 1)
        return node

    def _best_split(self, x: pd.Series, y: np.ndarray, categorical: bool) -> dict | None:
        """Binary split of x maximising the 2x2 chi-squared, honoring min_bucket."""
        n = len(y)
        n_pos = int(y.sum())

        if categorical:
            keys = x.astype(str)
            rates = pd.Series(y).groupby(keys.to_numpy()).agg(["mean", "size", "sum"])
            rates = rates.sort_values("mean", kind="mergesort")
            n_left = rates["size"].cumsum().to_numpy()[:-1]
            pos_left = rates["sum"].cumsum().to_numpy()[:-1]
            candidates = [frozenset(rates.index[: i + 1]) for i in range(len(n_left))]
        else:
            values = x.to_numpy(dtype=float)
            order = np.argsort(values, kind="mergesort")
            sorted_vals = values[order]
            cum_pos = np.cumsum(y[order])
            # Only cut between distinct values
            cut = np.flatnonzero(sorted_vals[:-1] < sorted_vals[1:])
            n_left = cut + 1
            pos_left = cum_pos[cut]
            candidates = list(sorted_vals[cut])

        if len(candidates) == 0:
            return None

        n_left = np.asarray(n_left)
        chi2 = _two_by_two_chi2(n_left, np.asarray(pos_left), n, n_pos)
        admissible = (n_left >= self.min_bucket) & (n - n_left >= self.min_bucket)
        chi2 = np.where(admissible, chi2, -np.inf)
        if not np.isfinite(chi2).any():
            return None

        best = int(np.argmax(chi2))
        if categorical:
            return {"left_levels": candidates[best]}
        return {"threshold": float(candidates[best])}

    def predict_proba(self, X: pd.DataFrame) -> np.ndarray:
        X = X.reset_index(drop=True)
        proba = self._route(self.tree_, X, np.arange(len(X)), np.empty(len(X)))
        return np.column_stack([1 - proba, proba])

    def _route(
        self, node: CTreeNode, X: pd.DataFrame, rows: np.ndarray, out: np.ndarray
    ) -> np.ndarray:
        if node.terminal or len(rows) == 0:
            out[rows] = node.prediction
            return out
        mask = node.goes_left(X[node.split_variable].iloc[rows])
        self._route(node.left, X, rows[mask], out)
        self._route(node.right, X, rows[~mask], out)
        return out


def split_variables(node: CTreeNode) -> list[str]:
    """Split variable of every internal node, in pre-order.

    Each internal node contributes exactly one entry; terminal nodes stop the
    recursion. The result is built from the children's return values.
    """
    if node.terminal:
        logger.debug(f"Terminal node {node.node_id} (n={node.n}, prediction={node.prediction:.4f})")
        return []

    logger.debug(
        f"Node {node.node_id} splits on {node.split_variable} "
        f"(threshold={node.threshold}, levels={sorted(node.left_levels)})"
    )
    return [node.split_variable] + split_variables(node.left) + split_variables(node.right)


def count_internal_nodes(node: CTreeNode) -> int:
    if node.terminal:
        return 0
    return 1 + count_internal_nodes(node.left) + count_internal_nodes(node.right)
