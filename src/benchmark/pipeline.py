"""Benchmark orchestration for one cross-validation cell.

Stages:
1. Split: stratified k-fold, hold out the requested fold
2. Resample: up-weight deaths in the training fold
3. Fit: all five adapters (in parallel when enabled)
4. Evaluate: ROC, AUC, accuracy at cutoffs, Hosmer-Lemeshow
5. Attribute: inclusion, importance and logistic coefficient tables
6. Export: tagged CSVs (optional)
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import pandas as pd
from pydantic import ValidationError

from config.settings import RunConfig, Settings
from src.benchmark.attribution import coefficient_table, importance_table, inclusion_table
from src.benchmark.data import Formula
from src.benchmark.errors import ConfigurationError
from src.benchmark.evaluate import summarize_results
from src.benchmark.export import ArtifactWriter
from src.benchmark.models import Method, ModelAdapter, ModelResult, fit_all_methods
from src.benchmark.split import resample_positive_class, stratified_fold_split


logger = logging.getLogger(__name__)


def make_run_config(**params) -> RunConfig:
    """Validate run parameters.

    Raises:
        ConfigurationError: If any parameter is missing or out of range
    """
    try:
        return RunConfig(**params)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid run configuration: {e}") from e


@dataclass
class BenchmarkArtifacts:
    """In-memory result of a run: every output table plus the fitted results."""

    run_config: RunConfig
    tables: dict[str, pd.DataFrame]
    results: dict[Method, ModelResult] = field(default_factory=dict)
    train_size: int = 0
    test_size: int = 0
    paths: dict[str, Path] = field(default_factory=dict)


def run_benchmark(
    df: pd.DataFrame,
    run_config: RunConfig,
    settings: Settings,
    formula: Formula | None = None,
    adapters: list[ModelAdapter] | None = None,
    write: bool = True,
) -> BenchmarkArtifacts:
    """Train and evaluate all methods for one (repetition, fold, weight, subset).

    Args:
        df: Cleaned, imputed dataset
        run_config: Validated run parameters
        settings: Pipeline settings
        formula: Override the formula derived from the dataset columns
        adapters: Override the default five adapters
        write: If True, export every table under settings.output_dir

    Returns:
        BenchmarkArtifacts with all tables and per-method results

    Raises:
        ConfigurationError: If the split or resampling parameters are invalid
    """
    formula = formula or Formula.from_dataset(
        df,
        outcome=settings.outcome_column,
        positive_label=settings.positive_label,
        id_columns=settings.id_columns,
    )
    logger.info(
        f"Run {run_config.tag}: {len(df)} rows, {len(formula.predictors)} predictors"
    )

    # Stage 1: Split
    train_df, test_df = stratified_fold_split(
        df,
        outcome_column=formula.outcome,
        tot_folds=run_config.tot_folds,
        fold_index=run_config.fold,
        seed=run_config.split_seed,
    )
    logger.info(f"  Train: {len(train_df)}, Test: {len(test_df)}")

    # Stage 2: Resample (training fold only)
    train_df = resample_positive_class(
        train_df,
        outcome_column=formula.outcome,
        positive_label=formula.positive_label,
        weight=run_config.death_weight,
        seed=run_config.run_seed,
    )

    # Stage 3: Fit
    logger.info("Fitting models...")
    results = fit_all_methods(
        train_df,
        test_df,
        formula,
        settings,
        seed=run_config.run_seed,
        adapters=adapters,
    )

    # Stages 4-5: Evaluate and attribute
    logger.info("Evaluating models...")
    y_test = formula.response(test_df)
    tables = summarize_results(results, y_test, groups=settings.hl_groups)
    tables["inclusion"] = inclusion_table(results, alpha=settings.inclusion_alpha)
    tables["importance"] = importance_table(results)
    tables["coefficients"] = coefficient_table(results)

    artifacts = BenchmarkArtifacts(
        run_config=run_config,
        tables=tables,
        results=results,
        train_size=len(train_df),
        test_size=len(test_df),
    )

    # Stage 6: Export
    if write:
        logger.info(f"Writing artifacts to {settings.output_dir}")
        artifacts.paths = ArtifactWriter(settings.output_dir).write_all(tables, run_config)

    return artifacts
