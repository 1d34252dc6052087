"""Tests for the five model adapters and their failure isolation."""

import numpy as np
import pandas as pd
import pytest
from sklearn.tree import DecisionTreeClassifier
from xgboost import XGBClassifier


# ==================== Fixtures ====================


@pytest.fixture
def formula(small_mortality_df):
    from src.benchmark import Formula

    return Formula.from_dataset(small_mortality_df, outcome="death", id_columns=["encounter_id"])


@pytest.fixture
def folds(small_mortality_df):
    from src.benchmark import stratified_fold_split

    return stratified_fold_split(small_mortality_df, "death", tot_folds=5, fold_index=1, seed=199)


def _run(adapter_cls, settings, folds, formula):
    from src.benchmark import run_adapter

    train_df, test_df = folds
    return run_adapter(adapter_cls(settings, seed=42), train_df, test_df, formula)


# ==================== Formula and encoding ====================


class TestFormulaAndEncoder:
    def test_formula_excludes_outcome_and_ids(self, small_mortality_df, formula):
        assert formula.outcome == "death"
        assert "death" not in formula.predictors
        assert "encounter_id" not in formula.predictors
        assert formula.predictors == ("age", "heart_rate", "creatinine", "noise", "sex", "admit_type")

    def test_response_is_binary(self, small_mortality_df, formula):
        y = formula.response(small_mortality_df)

        assert set(np.unique(y)) == {0, 1}
        assert y.sum() == (small_mortality_df["death"] == "Yes").sum()

    def test_encoder_drops_first_level(self, small_mortality_df, formula):
        from src.benchmark import PredictorEncoder

        X = PredictorEncoder(formula).fit_transform(small_mortality_df)

        # Levels are sorted, so F and ELECTIVE are the reference levels
        assert "sex_M" in X.columns and "sex_F" not in X.columns
        assert "admit_type_ELECTIVE" not in X.columns
        assert {"admit_type_EMERGENCY", "admit_type_URGENT"} <= set(X.columns)
        assert (X.dtypes == float).all()

    def test_encoder_maps_features_to_predictors(self, small_mortality_df, formula):
        from src.benchmark import PredictorEncoder

        encoder = PredictorEncoder(formula).fit(small_mortality_df)

        assert encoder.feature_sources_["sex_M"] == "sex"
        assert encoder.feature_sources_["age"] == "age"
        assert set(encoder.feature_sources_.values()) == set(formula.predictors)

    def test_unseen_level_encodes_as_zeros(self, small_mortality_df, formula):
        from src.benchmark import PredictorEncoder

        encoder = PredictorEncoder(formula).fit(small_mortality_df)
        row = small_mortality_df.iloc[[0]].copy()
        row["admit_type"] = "TRANSFER"
        X = encoder.transform(row)

        assert list(X.columns) == encoder.feature_names_
        assert X.filter(like="admit_type_").to_numpy().sum() == 0


# ==================== Adapters ====================


class TestLogisticRegressionAdapter:
    def test_predictions_and_coefficients(self, fast_settings, folds, formula):
        from src.benchmark.models import LogisticRegressionAdapter

        result = _run(LogisticRegressionAdapter, fast_settings, folds, formula)

        assert result.ok
        assert result.predictions.shape == (len(folds[1]),)
        assert ((result.predictions >= 0) & (result.predictions <= 1)).all()
        coefs = result.attribution
        assert {"variable", "coefficient", "p_value", "odds_ratio"} <= set(coefs.columns)
        assert "const" in set(coefs["variable"])

    @pytest.mark.parametrize(
        "column, make_values",
        [
            ("flag", lambda df: np.zeros(len(df))),
            ("age_months", lambda df: df["age"] * 12),
        ],
    )
    def test_aliased_predictor_gets_nan_coefficient(self, fast_settings, small_mortality_df, column, make_values):
        """A constant or collinear column is dropped from the fit, not fatal."""
        from src.benchmark import Formula, run_adapter, stratified_fold_split
        from src.benchmark.models import LogisticRegressionAdapter

        df = small_mortality_df.assign(**{column: make_values(small_mortality_df)})
        formula = Formula.from_dataset(df, outcome="death", id_columns=["encounter_id"])
        train_df, test_df = stratified_fold_split(df, "death", tot_folds=5, fold_index=1, seed=199)

        result = run_adapter(LogisticRegressionAdapter(fast_settings, seed=42), train_df, test_df, formula)

        assert result.ok, result.error
        assert result.predictions.shape == (len(test_df),)
        coefs = result.attribution.set_index("variable")
        assert coefs.loc[column].isna().all()
        assert coefs.loc["age"].notna().all()
        assert list(coefs.index) == ["const", *result.feature_sources]

    def test_aliased_columns_in_design_order(self):
        from src.benchmark.models import aliased_columns

        X = pd.DataFrame({
            "const": 1.0,
            "a": [1.0, 2.0, 3.0, 4.0],
            "zero": 0.0,
            "b": [0.0, 1.0, 0.0, 1.0],
            "a_plus_b": [1.0, 3.0, 3.0, 5.0],
        })

        assert aliased_columns(X) == ["zero", "a_plus_b"]

    def test_non_convergence_is_isolated(self, fast_settings, folds, formula):
        from src.benchmark.models import LogisticRegressionAdapter

        settings = fast_settings.model_copy(update={"lr_max_iter": 1})
        result = _run(LogisticRegressionAdapter, settings, folds, formula)

        assert not result.ok
        assert result.predictions is None
        assert "lr" in result.error


class TestDecisionTreeAdapter:
    def test_leaf_fraction_predictions(self, fast_settings, folds, formula):
        from src.benchmark.models import DecisionTreeAdapter

        result = _run(DecisionTreeAdapter, fast_settings, folds, formula)

        assert result.ok
        assert isinstance(result.model, DecisionTreeClassifier)
        assert ((result.predictions >= 0) & (result.predictions <= 1)).all()

    def test_importance_keyed_by_predictor(self, fast_settings, folds, formula):
        from src.benchmark.models import DecisionTreeAdapter

        result = _run(DecisionTreeAdapter, fast_settings, folds, formula)

        assert isinstance(result.attribution, pd.Series)
        assert set(result.attribution.index) <= set(formula.predictors)

    def test_unsplit_tree_has_no_importance(self, fast_settings, folds, formula):
        from src.benchmark.models import DecisionTreeAdapter

        settings = fast_settings.model_copy(update={"dt_min_samples_split": 100_000})
        result = _run(DecisionTreeAdapter, settings, folds, formula)

        assert result.ok
        assert result.attribution is None


class TestConditionalTreeAdapter:
    def test_split_variables_subset_of_predictors(self, fast_settings, folds, formula):
        from src.benchmark.models import ConditionalTreeAdapter

        result = _run(ConditionalTreeAdapter, fast_settings, folds, formula)

        assert result.ok
        assert isinstance(result.attribution, list)
        assert set(result.attribution) <= set(formula.predictors)
        assert result.predictions.shape == (len(folds[1]),)


class TestRandomForestAdapter:
    def test_predictions_are_vote_fractions(self, fast_settings, folds, formula):
        from src.benchmark.models import RandomForestAdapter

        result = _run(RandomForestAdapter, fast_settings, folds, formula)

        assert result.ok
        votes = result.predictions * fast_settings.rf_n_estimators
        np.testing.assert_allclose(votes, np.round(votes), atol=1e-9)

    def test_two_importance_measures(self, fast_settings, folds, formula):
        from src.benchmark.models import RandomForestAdapter

        result = _run(RandomForestAdapter, fast_settings, folds, formula)

        assert list(result.attribution.columns) == ["accuracy", "gini"]
        assert set(result.attribution.index) == set(formula.predictors)


class TestGradientBoostingAdapter:
    def test_predictions_and_gain(self, fast_settings, folds, formula):
        from src.benchmark.models import GradientBoostingAdapter

        result = _run(GradientBoostingAdapter, fast_settings, folds, formula)

        assert result.ok
        assert isinstance(result.model, XGBClassifier)
        assert 1 <= result.model.n_estimators <= fast_settings.gb_max_rounds
        assert ((result.predictions >= 0) & (result.predictions <= 1)).all()
        assert result.attribution.sum() == pytest.approx(1.0)
        assert set(result.attribution.index) <= set(formula.predictors)


# ==================== Fan-out ====================


class TestFitAllMethods:
    def test_all_methods_in_fixed_order(self, fast_settings, folds, formula):
        from src.benchmark import METHODS, fit_all_methods

        train_df, test_df = folds
        results = fit_all_methods(train_df, test_df, formula, fast_settings, seed=42)

        assert list(results) == list(METHODS)
        for result in results.values():
            assert result.ok, result.error
            assert len(result.predictions) == len(test_df)

    def test_failure_does_not_abort_siblings(self, fast_settings, folds, formula):
        from src.benchmark import Method, fit_all_methods
        from src.benchmark.models import DecisionTreeAdapter, ModelAdapter

        class ExplodingAdapter(ModelAdapter):
            method = Method.LOGISTIC_REGRESSION

            def fit(self, train, formula):
                raise RuntimeError("singular matrix")

        train_df, test_df = folds
        adapters = [ExplodingAdapter(fast_settings), DecisionTreeAdapter(fast_settings)]
        results = fit_all_methods(train_df, test_df, formula, fast_settings, seed=1, adapters=adapters)

        assert not results[Method.LOGISTIC_REGRESSION].ok
        assert "singular matrix" in results[Method.LOGISTIC_REGRESSION].error
        assert results[Method.DECISION_TREE].ok

    def test_sequential_matches_parallel(self, fast_settings, folds, formula):
        from src.benchmark import Method, fit_all_methods
        from src.benchmark.models import ConditionalTreeAdapter, DecisionTreeAdapter

        train_df, test_df = folds
        sequential = fast_settings.model_copy(update={"parallel_adapters": False})

        def adapters(settings):
            return [DecisionTreeAdapter(settings, 3), ConditionalTreeAdapter(settings, 3)]

        a = fit_all_methods(train_df, test_df, formula, fast_settings, 3, adapters(fast_settings))
        b = fit_all_methods(train_df, test_df, formula, sequential, 3, adapters(sequential))

        for method in (Method.DECISION_TREE, Method.CONDITIONAL_TREE):
            np.testing.assert_allclose(a[method].predictions, b[method].predictions)
