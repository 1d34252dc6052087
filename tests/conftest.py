import numpy as np
import pandas as pd
import pytest
from pathlib import Path

from config.settings import Settings


def make_mortality_frame(n_deaths: int = 100, n_survivors: int = 900, seed: int = 42) -> pd.DataFrame:
    """Synthetic imputed encounter data with an exact class split.

    Deaths are older, have higher heart rate and creatinine and are more often
    emergency admissions; ``noise`` and ``sex`` carry no signal.
    """
    rng = np.random.default_rng(seed)
    n = n_deaths + n_survivors
    y = np.array([1] * n_deaths + [0] * n_survivors)
    rng.shuffle(y)

    emergency_p = np.where(y == 1, 0.7, 0.35)
    admit_draw = rng.random(n)
    admit_type = np.where(
        admit_draw < emergency_p,
        "EMERGENCY",
        np.where(rng.random(n) < 0.5, "ELECTIVE", "URGENT"),
    )

    return pd.DataFrame({
        "encounter_id": np.arange(1, n + 1),
        "age": 60 + 12 * rng.standard_normal(n) + 9 * y,
        "heart_rate": 85 + 15 * rng.standard_normal(n) + 12 * y,
        "creatinine": np.exp(0.3 * rng.standard_normal(n) + 0.4 * y),
        "noise": rng.standard_normal(n),
        "sex": rng.choice(["F", "M"], size=n),
        "admit_type": admit_type,
        "death": np.where(y == 1, "Yes", "No"),
    })


@pytest.fixture
def mortality_df() -> pd.DataFrame:
    """1000 encounters: 100 deaths, 900 survivors."""
    return make_mortality_frame()


@pytest.fixture
def small_mortality_df() -> pd.DataFrame:
    """300 encounters: 60 deaths, 240 survivors, for quick tests."""
    return make_mortality_frame(n_deaths=60, n_survivors=240, seed=7)


@pytest.fixture
def fast_settings(tmp_path: Path) -> Settings:
    """Settings with small ensembles and test paths overridden."""
    return Settings(
        _env_file=None,
        data_dir=tmp_path / "data",
        output_dir=tmp_path / "perf",
        id_columns=["encounter_id"],
        rf_n_estimators=25,
        rf_n_jobs=1,
        rf_permutation_repeats=2,
        gb_max_rounds=20,
        gb_early_stopping_rounds=5,
    )
