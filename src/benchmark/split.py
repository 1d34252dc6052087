"""Stratified fold assignment and death-class resampling.

The held-out fold is chosen from a stratified k-fold partition so every fold
keeps the overall death rate. Deaths in the training fold can then be
up-weighted by bootstrap resampling; the test fold is never touched.
"""

import logging

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold

from src.benchmark.errors import ConfigurationError


logger = logging.getLogger(__name__)


def stratified_fold_split(
    df: pd.DataFrame,
    outcome_column: str,
    tot_folds: int,
    fold_index: int,
    seed: int,
) -> tuple[pd.DataFrame, pd.DataFrame]:
    """Split data into train and a single held-out fold.

    Rows are partitioned into ``tot_folds`` disjoint groups stratified on the
    outcome column, and group ``fold_index`` (1-based) becomes the test set.
    The partition depends only on (df, tot_folds, seed), so every fold_index
    of one seed is drawn from the same partition and the folds are
    complementary.

    Args:
        df: Dataset with outcome and predictor columns
        outcome_column: Column holding the class labels
        tot_folds: Total number of folds (k)
        fold_index: Which fold to hold out, in [1, tot_folds]
        seed: Random seed for the shuffled partition

    Returns:
        Tuple of (train_df, test_df), each in original row order

    Raises:
        ConfigurationError: If tot_folds < 2 or fold_index is out of range

    Example:
        >>> train_df, test_df = stratified_fold_split(
        ...     df, outcome_column="death", tot_folds=10, fold_index=3, seed=199
        ... )
        >>> assert set(train_df.index).isdisjoint(test_df.index)
    """
    if tot_folds < 2:
        raise ConfigurationError(f"tot_folds must be at least 2, got {tot_folds}")
    if not 1 <= fold_index <= tot_folds:
        raise ConfigurationError(
            f"fold_index must be between 1 and {tot_folds}, got {fold_index}"
        )
    if len(df) < tot_folds:
        raise ConfigurationError(
            f"Cannot split {len(df)} rows into {tot_folds} folds"
        )

    labels = df[outcome_column].astype(str).to_numpy()
    skf = StratifiedKFold(n_splits=tot_folds, shuffle=True, random_state=seed)

    for i, (train_idx, test_idx) in enumerate(skf.split(np.zeros(len(df)), labels), start=1):
        if i == fold_index:
            break

    train_df = df.iloc[np.sort(train_idx)]
    test_df = df.iloc[np.sort(test_idx)]
    return train_df, test_df


def resample_positive_class(
    train: pd.DataFrame,
    outcome_column: str,
    positive_label: str,
    weight: int,
    seed: int | None = None,
) -> pd.DataFrame:
    """Up-weight the positive class by bootstrap resampling.

    Draws ``|positives| * (weight - 1)`` rows with replacement from the
    positive rows and appends them to the training set. Original rows are
    never removed. With ``weight == 1`` the input is returned unchanged.

    Args:
        train: Training rows (never the test fold)
        outcome_column: Column holding the class labels
        positive_label: Label of the class to up-weight (e.g. "Yes")
        weight: Integer inflation factor, >= 1
        seed: Random seed for the bootstrap draw

    Returns:
        Training set with appended duplicate positive rows

    Raises:
        ConfigurationError: If weight is not an integer >= 1
    """
    if isinstance(weight, bool) or int(weight) != weight or weight < 1:
        raise ConfigurationError(f"weight must be an integer >= 1, got {weight}")
    weight = int(weight)

    if weight == 1:
        return train

    positives = train[train[outcome_column].astype(str) == str(positive_label)]
    if positives.empty:
        logger.warning(
            f"No '{positive_label}' rows in training data; skipping resampling (weight={weight})"
        )
        return train

    n_draw = len(positives) * (weight - 1)
    rng = np.random.default_rng(seed)
    draws = rng.integers(0, len(positives), size=n_draw)
    boot = positives.iloc[draws]

    logger.info(
        f"Resampled {n_draw} '{positive_label}' rows (weight={weight}, "
        f"{len(positives)} original)"
    )
    return pd.concat([train, boot], ignore_index=True)
