"""Tests for inclusion, importance and coefficient tables."""

import numpy as np
import pandas as pd
import pytest


FEATURE_SOURCES = {
    "age": "age",
    "sex_M": "sex",
    "admit_type_EMERGENCY": "admit_type",
    "admit_type_URGENT": "admit_type",
}


@pytest.fixture
def lr_result():
    from src.benchmark import Method, ModelResult

    coefs = pd.DataFrame({
        "variable": ["const", "age", "sex_M", "admit_type_EMERGENCY", "admit_type_URGENT"],
        "coefficient": [-2.0, 0.01, 0.5, 0.9, 0.7],
        "std_error": [0.3, 0.02, 0.2, 0.3, 0.3],
        "z_value": [-6.7, 0.5, 2.5, 3.0, 2.3],
        "p_value": [0.0001, 0.62, 0.012, 0.003, 0.021],
        "odds_ratio": np.exp([-2.0, 0.01, 0.5, 0.9, 0.7]),
        "ci_lower": [-2.6, -0.03, 0.1, 0.3, 0.1],
        "ci_upper": [-1.4, 0.05, 0.9, 1.5, 1.3],
    })
    return ModelResult(
        Method.LOGISTIC_REGRESSION,
        predictions=np.array([0.1]),
        attribution=coefs,
        feature_sources=FEATURE_SOURCES,
    )


def _result(method, attribution, ok=True):
    from src.benchmark import ModelResult

    if not ok:
        return ModelResult(method, error=f"{method.value}: failed")
    return ModelResult(method, predictions=np.array([0.1]), attribution=attribution)


class TestInclusionTable:
    def test_significant_lr_predictors_by_source(self, lr_result):
        """Intercept excluded; dummies collapse onto their predictor once."""
        from src.benchmark import Method, inclusion_table

        table = inclusion_table({Method.LOGISTIC_REGRESSION: lr_result})

        assert list(table.columns) == ["variable", "method", "included"]
        assert list(table["variable"]) == ["sex", "admit_type"]
        assert (table["method"] == "lr").all()
        assert (table["included"] == 1).all()

    def test_ct_split_variables_deduplicated(self):
        from src.benchmark import Method, inclusion_table

        results = {Method.CONDITIONAL_TREE: _result(Method.CONDITIONAL_TREE, ["age", "sex", "age"])}
        table = inclusion_table(results)

        assert list(table["variable"]) == ["age", "sex"]
        assert (table["method"] == "ct").all()

    def test_unsplit_ct_gives_placeholder(self, lr_result):
        from src.benchmark import Method, inclusion_table

        results = {
            Method.LOGISTIC_REGRESSION: lr_result,
            Method.CONDITIONAL_TREE: _result(Method.CONDITIONAL_TREE, []),
        }
        table = inclusion_table(results)
        ct = table[table["method"] == "ct"]

        assert len(ct) == 1
        assert ct["variable"].isna().all()
        assert ct["included"].isna().all()

    def test_failed_lr_gives_placeholder(self):
        from src.benchmark import Method, inclusion_table

        results = {Method.LOGISTIC_REGRESSION: _result(Method.LOGISTIC_REGRESSION, None, ok=False)}
        table = inclusion_table(results)

        assert len(table) == 1
        assert table["variable"].isna().all()

    def test_importance_methods_ignored(self):
        from src.benchmark import Method, inclusion_table

        results = {Method.DECISION_TREE: _result(Method.DECISION_TREE, pd.Series({"age": 1.0}))}

        assert inclusion_table(results).empty


class TestImportanceTable:
    def test_rows_per_method(self):
        from src.benchmark import Method, importance_table

        rf_payload = pd.DataFrame(
            {"accuracy": [0.02, 0.01], "gini": [0.6, 0.4]},
            index=pd.Index(["age", "sex"], name="variable"),
        )
        results = {
            Method.DECISION_TREE: _result(Method.DECISION_TREE, pd.Series({"age": 0.7, "sex": 0.3})),
            Method.RANDOM_FOREST: _result(Method.RANDOM_FOREST, rf_payload),
            Method.GRADIENT_BOOSTING: _result(Method.GRADIENT_BOOSTING, pd.Series({"age": 1.0})),
        }
        table = importance_table(results)

        assert list(table.columns) == ["variable", "method", "importance_type", "value"]
        assert len(table.query("method == 'dt'")) == 2
        assert set(table.query("method == 'dt'")["importance_type"]) == {"impurity"}
        assert len(table.query("method == 'rf'")) == 4
        assert set(table.query("method == 'rf'")["importance_type"]) == {"accuracy", "gini"}
        gb = table.query("method == 'gb'")
        assert list(gb["importance_type"]) == ["gain"]
        assert gb["value"].iloc[0] == pytest.approx(1.0)

    def test_rf_values_preserved(self):
        from src.benchmark import Method, importance_table

        rf_payload = pd.DataFrame({"accuracy": [0.02], "gini": [0.6]}, index=["age"])
        table = importance_table({Method.RANDOM_FOREST: _result(Method.RANDOM_FOREST, rf_payload)})
        values = table.set_index("importance_type")["value"]

        assert values["accuracy"] == pytest.approx(0.02)
        assert values["gini"] == pytest.approx(0.6)

    def test_missing_importance_gives_single_placeholder(self):
        """An unsplit decision tree still contributes one null row."""
        from src.benchmark import Method, importance_table

        results = {
            Method.DECISION_TREE: _result(Method.DECISION_TREE, None),
            Method.GRADIENT_BOOSTING: _result(Method.GRADIENT_BOOSTING, None, ok=False),
        }
        table = importance_table(results)

        assert list(table["method"]) == ["dt", "gb"]
        assert table["variable"].isna().all()
        assert table["value"].isna().all()


class TestCoefficientTable:
    def test_coefficients_tagged_with_method(self, lr_result):
        from src.benchmark import Method, coefficient_table

        table = coefficient_table({Method.LOGISTIC_REGRESSION: lr_result})

        assert len(table) == 5
        assert (table["method"] == "lr").all()
        assert table.columns[0] == "variable"

    def test_failed_lr_gives_placeholder(self):
        from src.benchmark import Method, coefficient_table

        table = coefficient_table(
            {Method.LOGISTIC_REGRESSION: _result(Method.LOGISTIC_REGRESSION, None, ok=False)}
        )

        assert len(table) == 1
        assert table["coefficient"].isna().all()
