#!/usr/bin/env python3
"""Single Fold Example: run all five methods on one cross-validation cell.

This example loads the prepared dataset, runs repetition 1 / fold 1 of a
10-fold cross-validation with deaths up-weighted 5x, and prints the AUC and
Hosmer-Lemeshow results without writing any files.

Usage:
    python docs/examples/01_single_fold.py

Prerequisites:
    - A prepared dataset at data/prepped_data.parquet with a Yes/No
      ``death`` column (see DATA_DIR / DATASET_FILES settings)
"""

import logging

from config.settings import Settings
from src.benchmark import load_dataset, make_run_config, run_benchmark


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s - %(message)s")

    settings = Settings(rf_n_estimators=100)
    run_config = make_run_config(
        repetition=1,
        fold=1,
        tot_folds=10,
        death_weight=5,
        variable_subset="all",
    )

    df = load_dataset(settings, run_config.variable_subset)
    artifacts = run_benchmark(df, run_config, settings, write=False)

    print(f"\nRun {run_config.tag}: train={artifacts.train_size}, test={artifacts.test_size}")

    print("\nAUC:")
    print(artifacts.tables["auc"].to_string(index=False))

    print("\nHosmer-Lemeshow (g=15):")
    print(artifacts.tables["hl"].to_string(index=False))

    print("\nTop importances:")
    importance = artifacts.tables["importance"].dropna(subset=["value"])
    print(
        importance.sort_values("value", ascending=False)
        .groupby(["method", "importance_type"])
        .head(3)
        .to_string(index=False)
    )


if __name__ == "__main__":
    main()
