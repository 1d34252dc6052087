from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


VariableSubset = Literal["all", "admit_only"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default=Path("data"))
    output_dir: Path = Field(default=Path("data/03_perf"))
    dataset_files: dict[str, str] = Field(
        default={
            "all": "prepped_data.parquet",
            "admit_only": "prepped_data_admitonly.parquet",
        }
    )

    # Dataset
    outcome_column: str = Field(default="death")
    positive_label: str = Field(default="Yes")
    id_columns: list[str] = Field(default=[])

    # Evaluation
    hl_groups: int = Field(default=15)
    inclusion_alpha: float = Field(default=0.05)
    parallel_adapters: bool = Field(default=True)

    # Logistic regression
    lr_max_iter: int = Field(default=100)

    # Decision tree (rpart-like defaults)
    dt_min_samples_split: int = Field(default=20)
    dt_min_samples_leaf: int = Field(default=7)
    dt_max_depth: int = Field(default=30)
    dt_ccp_alpha: float = Field(default=0.001)

    # Conditional inference tree
    ct_alpha: float = Field(default=0.05)
    ct_min_split: int = Field(default=20)
    ct_min_bucket: int = Field(default=7)
    ct_max_depth: int | None = Field(default=None)

    # Random forest
    rf_n_estimators: int = Field(default=500)
    rf_n_jobs: int = Field(default=-1)
    rf_permutation_repeats: int = Field(default=5)

    # Gradient boosting
    gb_max_rounds: int = Field(default=100)
    gb_cv_folds: int = Field(default=3)
    gb_early_stopping_rounds: int = Field(default=10)
    gb_max_depth: int = Field(default=6)
    gb_learning_rate: float = Field(default=0.3)

    def dataset_path(self, variable_subset: str) -> Path:
        return self.data_dir / self.dataset_files[variable_subset]


class RunConfig(BaseModel):
    """Parameters of one cross-validation cell.

    A run is identified by (repetition, fold, death_weight, variable_subset);
    every artifact written by the run is tagged with that combination.
    """

    repetition: int = Field(ge=1)
    fold: int = Field(ge=1)
    tot_folds: int = Field(ge=2)
    death_weight: int = Field(ge=1)
    variable_subset: VariableSubset = Field(default="all")

    @model_validator(mode="after")
    def _validate_fold_range(self) -> "RunConfig":
        if self.fold > self.tot_folds:
            raise ValueError(
                f"fold must be between 1 and tot_folds ({self.tot_folds}), got {self.fold}"
            )
        return self

    @property
    def tag(self) -> str:
        return f"{self.repetition}_{self.fold}_{self.death_weight}_{self.variable_subset}"

    @property
    def run_seed(self) -> int:
        # Independent of death_weight and variable_subset so those runs stay comparable
        return int(f"{self.repetition}99{self.fold}99") % (2**32)

    @property
    def split_seed(self) -> int:
        return int(f"{self.repetition}99") % (2**32)

    def tag_columns(self) -> dict[str, object]:
        return {
            "repetition": self.repetition,
            "fold": self.fold,
            "death_weight": self.death_weight,
            "variable_subset": self.variable_subset,
        }
