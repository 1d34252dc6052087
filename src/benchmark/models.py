"""Model adapters for the five benchmarked methods.

Every method is wrapped in an adapter with the same three calls:

- ``fit(train, formula)`` returns the fitted, library-specific model
- ``predict(model, test)`` returns the probability of death per test row
- ``attribute(model)`` returns the method's variable attribution payload

``run_adapter`` drives one adapter and packages the outcome as a
``ModelResult``. A failing adapter yields a placeholder result carrying the
error instead of raising, so the remaining methods still run.

Methods:
- lr: statsmodels Logit; payload is the coefficient table with p-values
- dt: sklearn DecisionTreeClassifier; payload is impurity importance
- ct: ConditionalInferenceTree; payload is the list of split variables
- rf: sklearn RandomForestClassifier; payload is permutation (accuracy) and
  impurity (gini) importance
- gb: xgboost with internal k-fold CV to pick the number of rounds; payload is
  normalised total gain
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd
import statsmodels.api as sm
import xgboost as xgb
from sklearn.ensemble import RandomForestClassifier
from sklearn.inspection import permutation_importance
from sklearn.tree import DecisionTreeClassifier
from xgboost import XGBClassifier

from config.settings import Settings
from src.benchmark.ctree import ConditionalInferenceTree, split_variables
from src.benchmark.data import Formula, PredictorEncoder, aggregate_to_predictors
from src.benchmark.errors import AdapterFitError


logger = logging.getLogger(__name__)


class Method(str, Enum):
    LOGISTIC_REGRESSION = "lr"
    DECISION_TREE = "dt"
    CONDITIONAL_TREE = "ct"
    RANDOM_FOREST = "rf"
    GRADIENT_BOOSTING = "gb"


METHODS = tuple(Method)

# Methods whose attribution is a variable inclusion flag rather than a score
INCLUSION_METHODS = (Method.LOGISTIC_REGRESSION, Method.CONDITIONAL_TREE)
IMPORTANCE_METHODS = (Method.DECISION_TREE, Method.RANDOM_FOREST, Method.GRADIENT_BOOSTING)


@dataclass
class ModelResult:
    """Outcome of fitting one method.

    ``predictions`` is aligned to the test fold's row order. A failed adapter
    has ``model``, ``predictions`` and ``attribution`` set to None and the
    failure message in ``error``.
    """

    method: Method
    model: Any = None
    predictions: np.ndarray | None = None
    attribution: Any = None
    feature_sources: dict[str, str] = field(default_factory=dict)
    error: str | None = None
    fit_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None


def _positive_proba(model, proba: np.ndarray) -> np.ndarray:
    classes = list(model.classes_)
    if 1 not in classes:
        return np.zeros(len(proba))
    return proba[:, classes.index(1)]


class ModelAdapter:
    """Uniform fit/predict/attribute interface over one modelling library."""

    method: Method

    def __init__(self, settings: Settings, seed: int = 42):
        self.settings = settings
        self.seed = seed

    def fit(self, train: pd.DataFrame, formula: Formula) -> Any:
        raise NotImplementedError

    def predict(self, model: Any, test: pd.DataFrame) -> np.ndarray:
        raise NotImplementedError

    def attribute(self, model: Any) -> Any:
        raise NotImplementedError

    @property
    def feature_sources(self) -> dict[str, str]:
        encoder = getattr(self, "encoder_", None)
        return dict(encoder.feature_sources_) if encoder is not None else {}

    def _encode_train(self, train: pd.DataFrame, formula: Formula) -> tuple[pd.DataFrame, np.ndarray]:
        self.encoder_ = PredictorEncoder(formula).fit(train)
        return self.encoder_.transform(train), formula.response(train)


def aliased_columns(X: pd.DataFrame) -> list[str]:
    """Columns linearly dependent on the columns before them.

    Columns are visited left to right and kept while they raise the rank of
    the kept block, so constant columns and later members of a collinear set
    are the ones reported.
    """
    kept: list[str] = []
    aliased: list[str] = []
    for col in X.columns:
        if np.linalg.matrix_rank(X[kept + [col]].to_numpy()) > len(kept):
            kept.append(col)
        else:
            aliased.append(col)
    return aliased


class LogisticRegressionAdapter(ModelAdapter):
    method = Method.LOGISTIC_REGRESSION

    def fit(self, train, formula):
        X, y = self._encode_train(train, formula)
        X = sm.add_constant(X, has_constant="add")
        self.design_columns_ = list(X.columns)

        # Aliased terms get no coefficient, as in a glm fit
        self.aliased_ = aliased_columns(X)
        if self.aliased_:
            logger.warning(f"  lr: dropping aliased columns {self.aliased_}")
            X = X.drop(columns=self.aliased_)

        result = sm.Logit(y, X).fit(disp=0, maxiter=self.settings.lr_max_iter)
        if not result.mle_retvals.get("converged", True):
            raise AdapterFitError(
                self.method.value,
                f"Logit did not converge in {self.settings.lr_max_iter} iterations",
            )
        return result

    def predict(self, model, test):
        X = sm.add_constant(self.encoder_.transform(test), has_constant="add")
        return np.asarray(model.predict(X.drop(columns=self.aliased_)), dtype=float)

    def attribute(self, model):
        """Coefficient table over the full design; aliased terms are NaN rows."""
        ci = model.conf_int()
        table = pd.DataFrame({
            "variable": model.params.index,
            "coefficient": model.params.to_numpy(),
            "std_error": model.bse.to_numpy(),
            "z_value": model.tvalues.to_numpy(),
            "p_value": model.pvalues.to_numpy(),
            "odds_ratio": np.exp(model.params.to_numpy()),
            "ci_lower": ci.iloc[:, 0].to_numpy(),
            "ci_upper": ci.iloc[:, 1].to_numpy(),
        })
        design = pd.Index(self.design_columns_, name="variable")
        return table.set_index("variable").reindex(design).reset_index()


class DecisionTreeAdapter(ModelAdapter):
    method = Method.DECISION_TREE

    def fit(self, train, formula):
        X, y = self._encode_train(train, formula)
        model = DecisionTreeClassifier(
            min_samples_split=self.settings.dt_min_samples_split,
            min_samples_leaf=self.settings.dt_min_samples_leaf,
            max_depth=self.settings.dt_max_depth,
            ccp_alpha=self.settings.dt_ccp_alpha,
            random_state=self.seed,
        )
        model.fit(X, y)
        return model

    def predict(self, model, test):
        return _positive_proba(model, model.predict_proba(self.encoder_.transform(test)))

    def attribute(self, model):
        """Impurity importance per predictor, or None for an unsplit tree."""
        importances = np.asarray(model.feature_importances_, dtype=float)
        if model.tree_.node_count <= 1 or importances.sum() == 0:
            return None
        scores = pd.Series(importances, index=self.encoder_.feature_names_)
        return aggregate_to_predictors(scores, self.encoder_.feature_sources_)


class ConditionalTreeAdapter(ModelAdapter):
    method = Method.CONDITIONAL_TREE

    def fit(self, train, formula):
        self.predictors_ = list(formula.predictors)
        model = ConditionalInferenceTree(
            alpha=self.settings.ct_alpha,
            min_split=self.settings.ct_min_split,
            min_bucket=self.settings.ct_min_bucket,
            max_depth=self.settings.ct_max_depth,
        )
        model.fit(train[self.predictors_], formula.response(train))
        return model

    def predict(self, model, test):
        return model.predict_proba(test[self.predictors_])[:, 1]

    def attribute(self, model):
        return split_variables(model.tree_)


class RandomForestAdapter(ModelAdapter):
    method = Method.RANDOM_FOREST

    def fit(self, train, formula):
        X, y = self._encode_train(train, formula)
        model = RandomForestClassifier(
            n_estimators=self.settings.rf_n_estimators,
            n_jobs=self.settings.rf_n_jobs,
            random_state=self.seed,
        )
        model.fit(X, y)
        self.X_train_, self.y_train_ = X, y
        return model

    def predict(self, model, test):
        """Fraction of trees voting for death."""
        classes = list(model.classes_)
        if 1 not in classes:
            return np.zeros(len(test))
        positive = classes.index(1)
        X = self.encoder_.transform(test).to_numpy(dtype=np.float32)
        votes = [tree.predict(X) == positive for tree in model.estimators_]
        return np.mean(votes, axis=0)

    def attribute(self, model):
        perm = permutation_importance(
            model,
            self.X_train_,
            self.y_train_,
            scoring="accuracy",
            n_repeats=self.settings.rf_permutation_repeats,
            random_state=self.seed,
            n_jobs=self.settings.rf_n_jobs,
        )
        scores = pd.DataFrame(
            {
                "accuracy": perm.importances_mean,
                "gini": model.feature_importances_,
            },
            index=self.encoder_.feature_names_,
        )
        return aggregate_to_predictors(scores, self.encoder_.feature_sources_)


class GradientBoostingAdapter(ModelAdapter):
    method = Method.GRADIENT_BOOSTING

    def fit(self, train, formula):
        X, y = self._encode_train(train, formula)
        params = {
            "objective": "binary:logistic",
            "eval_metric": "logloss",
            "max_depth": self.settings.gb_max_depth,
            "eta": self.settings.gb_learning_rate,
            "seed": self.seed,
        }

        # Internal k-fold validation picks the number of boosting rounds
        cv_results = xgb.cv(
            params,
            xgb.DMatrix(X, label=y),
            num_boost_round=self.settings.gb_max_rounds,
            nfold=self.settings.gb_cv_folds,
            stratified=True,
            early_stopping_rounds=self.settings.gb_early_stopping_rounds,
            seed=self.seed,
        )
        self.n_rounds_ = max(len(cv_results), 1)
        logger.info(f"  gb: {self.n_rounds_} rounds selected by {self.settings.gb_cv_folds}-fold CV")

        model = XGBClassifier(
            n_estimators=self.n_rounds_,
            max_depth=self.settings.gb_max_depth,
            learning_rate=self.settings.gb_learning_rate,
            random_state=self.seed,
            eval_metric="logloss",
        )
        model.fit(X, y)
        return model

    def predict(self, model, test):
        return _positive_proba(model, model.predict_proba(self.encoder_.transform(test)))

    def attribute(self, model):
        """Share of total gain per predictor, or None for a booster without splits."""
        gain = model.get_booster().get_score(importance_type="total_gain")
        if not gain:
            return None
        scores = pd.Series(gain, dtype=float)
        scores = scores / scores.sum()
        return aggregate_to_predictors(scores, self.encoder_.feature_sources_)


ADAPTERS = {
    Method.LOGISTIC_REGRESSION: LogisticRegressionAdapter,
    Method.DECISION_TREE: DecisionTreeAdapter,
    Method.CONDITIONAL_TREE: ConditionalTreeAdapter,
    Method.RANDOM_FOREST: RandomForestAdapter,
    Method.GRADIENT_BOOSTING: GradientBoostingAdapter,
}


def build_adapters(settings: Settings, seed: int) -> list[ModelAdapter]:
    return [ADAPTERS[method](settings, seed) for method in METHODS]


def run_adapter(
    adapter: ModelAdapter,
    train: pd.DataFrame,
    test: pd.DataFrame,
    formula: Formula,
) -> ModelResult:
    """Fit one adapter, predict the test fold and extract its attribution.

    Fit or prediction failures are converted to AdapterFitError, logged, and
    returned as a placeholder ModelResult. A failure while extracting the
    attribution keeps the predictions and leaves the attribution empty.

    Args:
        adapter: Adapter to run
        train: (Resampled) training rows
        test: Held-out rows
        formula: Shared model formula

    Returns:
        ModelResult for the adapter's method
    """
    method = adapter.method
    start = time.time()

    try:
        model = adapter.fit(train, formula)
        predictions = np.asarray(adapter.predict(model, test), dtype=float)
        if predictions.shape != (len(test),):
            raise AdapterFitError(
                method.value,
                f"expected {len(test)} predictions, got shape {predictions.shape}",
            )
    except Exception as e:
        error = e if isinstance(e, AdapterFitError) else AdapterFitError(method.value, repr(e))
        logger.warning(f"  {method.value} failed: {error}")
        return ModelResult(method=method, error=str(error), fit_seconds=time.time() - start)

    try:
        attribution = adapter.attribute(model)
    except Exception as e:
        logger.warning(f"  {method.value} attribution failed: {e!r}")
        attribution = None

    elapsed = time.time() - start
    logger.info(f"  {method.value} fitted in {elapsed:.1f}s")
    return ModelResult(
        method=method,
        model=model,
        predictions=np.clip(predictions, 0.0, 1.0),
        attribution=attribution,
        feature_sources=adapter.feature_sources,
        fit_seconds=elapsed,
    )


def fit_all_methods(
    train: pd.DataFrame,
    test: pd.DataFrame,
    formula: Formula,
    settings: Settings,
    seed: int,
    adapters: list[ModelAdapter] | None = None,
) -> dict[Method, ModelResult]:
    """Run every adapter and wait for all of them.

    Adapters share no mutable state, so with ``settings.parallel_adapters``
    they run on a thread pool. Results come back in adapter order whatever the
    completion order.

    Args:
        train: (Resampled) training rows
        test: Held-out rows
        formula: Shared model formula
        settings: Pipeline settings
        seed: Run seed for stochastic models
        adapters: Override the default five adapters

    Returns:
        Dictionary mapping Method to ModelResult
    """
    if adapters is None:
        adapters = build_adapters(settings, seed)

    if settings.parallel_adapters and len(adapters) > 1:
        with ThreadPoolExecutor(max_workers=len(adapters)) as executor:
            futures = {
                executor.submit(run_adapter, adapter, train, test, formula): adapter.method
                for adapter in adapters
            }
            completed = {futures[future]: future.result() for future in as_completed(futures)}
    else:
        completed = {
            adapter.method: run_adapter(adapter, train, test, formula)
            for adapter in adapters
        }

    return {adapter.method: completed[adapter.method] for adapter in adapters}
