"""CLI entry point for one benchmark run.

Usage:
    python -m src.benchmark REPETITION FOLD TOT_FOLDS DEATH_WEIGHT {all,admit_only}
        [--data-dir PATH] [--output-dir PATH] [--sequential] [-v]
"""

import argparse
import logging
from pathlib import Path

from config.settings import Settings
from src.benchmark.data import load_dataset
from src.benchmark.errors import ConfigurationError
from src.benchmark.pipeline import make_run_config, run_benchmark


logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    """Run all five methods on one cross-validation cell and export the results."""
    parser = argparse.ArgumentParser(
        description="Train and evaluate mortality models on one cross-validation fold",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument("repetition", type=int, help="Repetition number (seeds the fold partition)")
    parser.add_argument("fold", type=int, help="Fold to hold out, 1..tot_folds")
    parser.add_argument("tot_folds", type=int, help="Total number of folds")
    parser.add_argument("death_weight", type=int, help="Resampling weight for deaths")
    parser.add_argument(
        "variable_subset",
        type=str,
        help="Variable subset to analyse (all or admit_only)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Directory holding the prepared datasets (overrides settings)",
    )
    parser.add_argument(
        "--output-dir",
        "-o",
        type=Path,
        default=None,
        help="Output directory for performance tables (overrides settings)",
    )
    parser.add_argument(
        "--sequential",
        action="store_true",
        help="Fit the models one after another instead of in parallel",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    # Configure logging
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    overrides = {}
    if args.data_dir is not None:
        overrides["data_dir"] = args.data_dir
    if args.output_dir is not None:
        overrides["output_dir"] = args.output_dir
    if args.sequential:
        overrides["parallel_adapters"] = False
    settings = Settings(**overrides)

    try:
        run_config = make_run_config(
            repetition=args.repetition,
            fold=args.fold,
            tot_folds=args.tot_folds,
            death_weight=args.death_weight,
            variable_subset=args.variable_subset,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    try:
        df = load_dataset(settings, run_config.variable_subset)
    except FileNotFoundError as e:
        logger.error(str(e))
        return 1

    if settings.outcome_column not in df.columns:
        logger.error(f"Outcome column {settings.outcome_column} not found")
        return 1

    try:
        artifacts = run_benchmark(df, run_config, settings)
    except ConfigurationError as e:
        logger.error(str(e))
        return 2

    # Print summary
    print("\n" + "=" * 50)
    print(f"Run {run_config.tag} complete")
    print("=" * 50)
    print(f"Train: {artifacts.train_size}, Test: {artifacts.test_size}")
    for row in artifacts.tables["auc"].itertuples(index=False):
        print(f"  {row.method}: AUC {row.auc:.4f}")

    return 0


if __name__ == "__main__":
    exit(main())
