"""Cross-validated mortality prediction benchmark.

Trains five classifiers on one training fold and scores them on the held-out
fold of a repeated k-fold cross-validation.

Data Splitting:
- Stratified k-fold partition seeded by repetition
- Bootstrap up-weighting of deaths in the training fold only

Models:
- Logistic regression (statsmodels), decision tree, random forest (sklearn)
- Conditional inference tree (test-based recursive partitioning)
- Gradient boosting (xgboost) with internal CV for the number of rounds

Evaluation:
- ROC points, AUC, accuracy at fixed probability cutoffs
- Hosmer-Lemeshow statistic and risk-group bins
- Variable inclusion and importance tables
- Tagged CSV export per run
"""

from src.benchmark.errors import (
    AdapterFitError,
    AttributionUnavailable,
    BenchmarkError,
    ConfigurationError,
    MetricUndefined,
)
from src.benchmark.data import (
    Formula,
    PredictorEncoder,
    load_dataset,
)
from src.benchmark.split import (
    resample_positive_class,
    stratified_fold_split,
)
from src.benchmark.ctree import (
    ConditionalInferenceTree,
    count_internal_nodes,
    split_variables,
)
from src.benchmark.models import (
    METHODS,
    Method,
    ModelResult,
    build_adapters,
    fit_all_methods,
    run_adapter,
)
from src.benchmark.evaluate import (
    ACCURACY_CUTOFFS,
    accuracy_at_cutoffs,
    area_under_roc,
    hosmer_lemeshow,
    roc_points,
    summarize_results,
)
from src.benchmark.attribution import (
    coefficient_table,
    importance_table,
    inclusion_table,
)
from src.benchmark.export import ArtifactWriter, add_run_tags
from src.benchmark.pipeline import (
    BenchmarkArtifacts,
    make_run_config,
    run_benchmark,
)

__all__ = [
    # Errors
    "BenchmarkError",
    "ConfigurationError",
    "AdapterFitError",
    "MetricUndefined",
    "AttributionUnavailable",
    # Data
    "Formula",
    "PredictorEncoder",
    "load_dataset",
    # Splitting and resampling
    "stratified_fold_split",
    "resample_positive_class",
    # Models
    "ConditionalInferenceTree",
    "split_variables",
    "count_internal_nodes",
    "Method",
    "METHODS",
    "ModelResult",
    "build_adapters",
    "run_adapter",
    "fit_all_methods",
    # Evaluation
    "ACCURACY_CUTOFFS",
    "roc_points",
    "area_under_roc",
    "accuracy_at_cutoffs",
    "hosmer_lemeshow",
    "summarize_results",
    # Attribution
    "inclusion_table",
    "importance_table",
    "coefficient_table",
    # Export and orchestration
    "ArtifactWriter",
    "add_run_tags",
    "BenchmarkArtifacts",
    "make_run_config",
    "run_benchmark",
]
