"""Dataset loading and model-matrix construction.

The benchmark consumes an already cleaned and imputed dataset: one row per
patient encounter, a binary outcome column and a fixed set of numeric or
categorical predictors. This module turns such a frame into the shared
``Formula`` and the numeric design matrices the adapters train on.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

from config.settings import Settings


logger = logging.getLogger(__name__)

_UNSAFE_FEATURE_CHARS = re.compile(r"[\[\]<>,]")


@dataclass(frozen=True)
class Formula:
    """outcome ~ predictors, shared by every adapter in a run."""

    outcome: str
    predictors: tuple[str, ...]
    positive_label: str = "Yes"

    @classmethod
    def from_dataset(
        cls,
        df: pd.DataFrame,
        outcome: str,
        positive_label: str = "Yes",
        id_columns: list[str] | None = None,
    ) -> "Formula":
        exclude = {outcome, *(id_columns or [])}
        predictors = tuple(c for c in df.columns if c not in exclude)
        if not predictors:
            raise ValueError("Dataset has no predictor columns")
        return cls(outcome=outcome, predictors=predictors, positive_label=positive_label)

    def response(self, df: pd.DataFrame) -> np.ndarray:
        """Binary outcome vector: 1 for the positive label, 0 otherwise."""
        return (df[self.outcome].astype(str) == str(self.positive_label)).to_numpy(dtype=int)


def is_categorical(series: pd.Series) -> bool:
    return not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series)


def _sanitize(name: str) -> str:
    return _UNSAFE_FEATURE_CHARS.sub("_", str(name))


class PredictorEncoder:
    """One-hot encode categorical predictors using the training levels.

    Numeric predictors pass through as floats. Categorical predictors get one
    indicator per training level with the first level dropped, the same
    treatment-contrast encoding a glm model matrix uses. Frames transformed
    after fitting are aligned onto the training columns, so unseen levels map
    to all zeros.

    Feature names are sanitised for xgboost, and ``feature_sources_`` maps
    each encoded feature back to the predictor it came from.
    """

    def __init__(self, formula: Formula):
        self.formula = formula

    def fit(self, df: pd.DataFrame) -> "PredictorEncoder":
        self.levels_: dict[str, list[str]] = {}
        self.feature_sources_: dict[str, str] = {}

        for col in self.formula.predictors:
            series = df[col]
            if is_categorical(series):
                cats = sorted(series.astype(str).unique())
                self.levels_[col] = cats
                for level in cats[1:]:
                    self.feature_sources_[_sanitize(f"{col}_{level}")] = col
            else:
                self.feature_sources_[_sanitize(col)] = col
        return self

    @property
    def feature_names_(self) -> list[str]:
        return list(self.feature_sources_)

    def transform(self, df: pd.DataFrame) -> pd.DataFrame:
        blocks = []
        for col in self.formula.predictors:
            if col in self.levels_:
                values = df[col].astype(str)
                for level in self.levels_[col][1:]:
                    blocks.append(
                        (values == level).astype(float).rename(_sanitize(f"{col}_{level}"))
                    )
            else:
                blocks.append(df[col].astype(float).rename(_sanitize(col)))

        if not blocks:
            return pd.DataFrame(index=df.index)
        encoded = pd.concat(blocks, axis=1)
        return encoded.reindex(columns=self.feature_names_, fill_value=0.0)

    def fit_transform(self, df: pd.DataFrame) -> pd.DataFrame:
        return self.fit(df).transform(df)


def aggregate_to_predictors(
    values: pd.Series | pd.DataFrame,
    feature_sources: dict[str, str],
) -> pd.Series | pd.DataFrame:
    """Sum per-feature scores back onto their source predictors."""
    sources = values.index.map(lambda f: feature_sources.get(f, f))
    aggregated = values.groupby(sources, sort=False).sum()
    aggregated.index.name = "variable"
    return aggregated


def load_dataset(settings: Settings, variable_subset: str) -> pd.DataFrame:
    """Load the prepared dataset for a variable subset.

    Args:
        settings: Pipeline settings with data_dir and dataset_files
        variable_subset: "all" or "admit_only"

    Returns:
        Dataset as a DataFrame

    Raises:
        FileNotFoundError: If the dataset file does not exist
    """
    path = Path(settings.dataset_path(variable_subset))
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")

    logger.info(f"Loading dataset from {path}")
    if path.suffix == ".csv":
        df = pd.read_csv(path)
    else:
        df = pd.read_parquet(path)
    logger.info(f"  Shape: {df.shape}")
    return df
