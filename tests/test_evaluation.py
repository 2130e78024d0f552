"""End-to-end tests for evaluate_resampling."""

import numpy as np
import pandas as pd
import pytest

from cvsmith import (
    EvaluationConfig,
    ResamplingPlan,
    WorkerSetup,
    evaluate_resampling,
)
from cvsmith.config import fork_available
from cvsmith.objects import Absent, FailureKind, Ok
from cvsmith.utils.errors import (
    DataValidationError,
    FitFailureError,
    ParameterError,
)
from toy_models import (
    SETUP_STATE,
    build_kfold_plan,
    fit_constant,
    fit_linear,
    fit_requiring_row,
    fit_requiring_setup,
    kfold_splits,
    mae,
    make_regression_data,
    mark_setup_done,
    predict_linear,
)

try:
    from sklearn.model_selection import KFold

    SKLEARN_AVAILABLE = True
except ImportError:
    SKLEARN_AVAILABLE = False

SEQUENTIAL = {"worker_count": 1, "verbose": False}


@pytest.fixture
def data():
    """Regression data with coordinates x, y and response z."""
    return make_regression_data(n_samples=60, seed=0)


class TestErrorEstimation:
    """Tests for fold-level and pooled error."""

    def test_constant_response_and_model(self):
        """Test identical train/test records and zero pooled error."""
        frame = pd.DataFrame(
            {"x1": np.arange(10.0), "x2": np.ones(10), "z": np.full(10, 4.0)}
        )
        plan = ResamplingPlan.from_splits([[(range(5), range(5, 10)), (range(5, 10), range(5))]])
        result = evaluate_resampling(
            frame, "z ~ x1 + x2", fit=fit_constant, score=mae, plan=plan, **SEQUENTIAL
        )
        for fold in result.error[0]:
            assert fold.train == fold.test == Ok({"mae": 0.0, "bias": 0.0})
        assert result.pooled_error.loc["1", "test.mae"] == 0.0
        assert result.pooled_error.loc["1", "train.mae"] == 0.0

    def test_error_frame_layout(self, data):
        """Test the long-format fold error table."""
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, plan_args={"n_folds": 4}, **SEQUENTIAL,
        )
        frame = result.error_frame()
        assert len(frame) == 8
        assert list(frame["repetition"].unique()) == ["1", "2"]
        assert {"test.mae", "train.mae", "test.bias"} <= set(frame.columns)
        assert frame["failure"].isna().all()
        assert list(result.pooled_error.index) == ["1", "2"]
        assert result.pooled_error.index.name == "repetition"

    def test_pooled_only(self, data):
        """Test that disabling unpooled error leaves only pooled results."""
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, compute_unpooled_error=False, **SEQUENTIAL,
        )
        assert result.error is None
        assert result.importance is None
        with pytest.raises(ValueError):
            result.error_frame()
        assert result.pooled_error.shape[0] == 2

    def test_train_error_disabled(self, data):
        """Test that no train.* metrics appear when training error is off."""
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, compute_train_error=False, **SEQUENTIAL,
        )
        assert not any(c.startswith("train.") for c in result.pooled_error.columns)

    def test_default_predict_with_pred_args(self, data):
        """Test model.predict fallback with extra prediction arguments."""
        result = evaluate_resampling(
            data, "z ~ x1", fit=fit_constant, score=mae, plan_fn=build_kfold_plan,
            model_args={"value": 0.0}, pred_args={"offset": 1.0}, **SEQUENTIAL,
        )
        expected = float(np.mean(data["z"] - 1.0))
        assert result.pooled_error.loc["1", "test.bias"] == pytest.approx(expected)


class TestFailureModes:
    """Tests for tolerant and strict failure handling."""

    def test_tolerant_mode(self, data):
        """Test that the failing fold is absent and others are kept."""
        plan = ResamplingPlan.from_splits([kfold_splits(len(data), 3, 0)])
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_requiring_row, predict=predict_linear,
            score=mae, plan=plan, **SEQUENTIAL,
        )
        folds = result.error[0]
        absent = [fold for fold in folds if isinstance(fold.test, Absent)]
        assert len(absent) == 1
        assert absent[0].test.reason is FailureKind.FIT
        assert sum(isinstance(fold.test, Ok) for fold in folds) == 2
        assert np.isfinite(result.pooled_error.loc["1", "test.mae"])
        assert result.error_frame()["failure"].tolist().count("fit") == 1
        assert "failed_folds=1" in repr(result)

    def test_strict_mode(self, data):
        """Test that strict mode aborts the run."""
        with pytest.raises(FitFailureError):
            evaluate_resampling(
                data, "z ~ x1 + x2", fit=fit_requiring_row, predict=predict_linear,
                score=mae, plan_fn=build_kfold_plan, strict_failure_mode=True,
                **SEQUENTIAL,
            )


class TestImportance:
    """Tests for permutation importance through the workflow."""

    def test_noise_variable_near_zero(self, data):
        """Test that a pure-noise predictor has importance close to zero."""
        noise = []
        for seed in (1, 2, 3):
            result = evaluate_resampling(
                data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear,
                score=mae, plan_fn=build_kfold_plan, plan_args={"repetitions": (seed,)},
                importance_variables=["x1", "x2"], importance_permutation_count=1000,
                rng_seed=seed, **SEQUENTIAL,
            )
            frame = result.importance_frame()
            noise.append(frame.loc[frame["variable"] == "x2", "mae"].mean())
            signal = frame.loc[frame["variable"] == "x1", "mae"].mean()
            assert signal < -1.0
        assert abs(np.mean(noise)) < 0.15

    def test_importance_defaults_to_all_predictors(self, data):
        """Test run_importance without explicit variables."""
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, run_importance=True,
            importance_permutation_count=5, rng_seed=0, **SEQUENTIAL,
        )
        frame = result.importance_frame()
        assert set(frame["variable"]) == {"x1", "x2"}
        assert len(frame) == 2 * 6

    def test_importance_without_unpooled_error_is_corrected(self, data):
        """Test the configuration correction with a warning."""
        with pytest.warns(UserWarning, match="importance"):
            result = evaluate_resampling(
                data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear,
                score=mae, plan_fn=build_kfold_plan, compute_unpooled_error=False,
                importance_variables=["x1"], **SEQUENTIAL,
            )
        assert result.importance is None
        assert any("importance" in c for c in result.corrections)

    def test_seeded_runs_reproduce(self, data):
        """Test that a fixed rng_seed reproduces importances."""
        kwargs = dict(
            fit=fit_linear, predict=predict_linear, score=mae, plan_fn=build_kfold_plan,
            importance_variables=["x1", "x2"], importance_permutation_count=10,
            rng_seed=123, **SEQUENTIAL,
        )
        first = evaluate_resampling(data, "z ~ x1 + x2", **kwargs).importance_frame()
        second = evaluate_resampling(data, "z ~ x1 + x2", **kwargs).importance_frame()
        pd.testing.assert_frame_equal(first, second)

    def test_unknown_importance_variable(self, data):
        """Test that importance variables must be data columns."""
        with pytest.raises(DataValidationError, match="Importance variables"):
            evaluate_resampling(
                data, "z ~ x1 + x2", fit=fit_linear, score=mae,
                plan_fn=build_kfold_plan, importance_variables=["x9"], **SEQUENTIAL,
            )


class TestInputValidation:
    """Tests for validation before dispatch."""

    def test_missing_model_variable(self, data):
        """Test that formula variables must exist."""
        with pytest.raises(DataValidationError, match="x3"):
            evaluate_resampling(
                data, "z ~ x1 + x3", fit=fit_linear, score=mae,
                plan_fn=build_kfold_plan, **SEQUENTIAL,
            )

    def test_not_a_dataframe(self):
        """Test that data must be a DataFrame."""
        with pytest.raises(DataValidationError, match="DataFrame"):
            evaluate_resampling(
                [[1, 2]], "z ~ x1", fit=fit_linear, score=mae, plan=[[([0], [1])]]
            )

    def test_plan_and_plan_fn_exclusive(self, data):
        """Test that exactly one plan source is required."""
        with pytest.raises(ParameterError, match="required"):
            evaluate_resampling(data, "z ~ x1", fit=fit_linear, score=mae, **SEQUENTIAL)
        with pytest.raises(ParameterError, match="not both"):
            evaluate_resampling(
                data, "z ~ x1", fit=fit_linear, score=mae, plan=[[([0], [1])]],
                plan_fn=build_kfold_plan, **SEQUENTIAL,
            )

    def test_plan_out_of_range(self, data):
        """Test that plan indices are checked against the data."""
        with pytest.raises(DataValidationError, match="out of range"):
            evaluate_resampling(
                data, "z ~ x1", fit=fit_linear, score=mae,
                plan=[[([0, 1], [len(data)])]], **SEQUENTIAL,
            )

    def test_reserved_model_args(self, data):
        """Test that engine-supplied arguments cannot be overridden."""
        with pytest.raises(ParameterError, match="formula"):
            evaluate_resampling(
                data, "z ~ x1", fit=fit_linear, score=mae, plan_fn=build_kfold_plan,
                model_args={"formula": "z ~ x2"}, **SEQUENTIAL,
            )

    def test_unknown_option(self, data):
        """Test that unknown keyword options are rejected."""
        with pytest.raises(ParameterError, match="n_jobs"):
            evaluate_resampling(
                data, "z ~ x1", fit=fit_linear, score=mae,
                plan_fn=build_kfold_plan, n_jobs=2,
            )


class TestPlanSources:
    """Tests for plan builders, distances and configuration objects."""

    def test_plan_fn_receives_coords(self, data):
        """Test that plan_fn gets the data and coordinate names."""
        seen = {}

        def recording_plan(frame, coords, n_folds):
            seen["coords"] = coords
            seen["n_rows"] = len(frame)
            return [kfold_splits(len(frame), n_folds, 0)]

        evaluate_resampling(
            data.rename(columns={"x": "lon", "y": "lat"}), "z ~ x1", fit=fit_linear,
            predict=predict_linear, score=mae, plan_fn=recording_plan,
            plan_args={"n_folds": 2}, coords=["lon", "lat"], **SEQUENTIAL,
        )
        assert seen == {"coords": ["lon", "lat"], "n_rows": 60}

    def test_distances(self, data):
        """Test that fold distances are computed on request."""
        result = evaluate_resampling(
            data, "z ~ x1", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, compute_distance=True, **SEQUENTIAL,
        )
        distances = result.error_frame()["distance"]
        assert distances.notna().all()
        assert (distances > 0).all()
        assert result.plan[0][0].distance == distances.iloc[0]

    def test_config_object_with_overrides(self, data):
        """Test that keyword options override a config object."""
        config = EvaluationConfig(compute_train_error=False, worker_count=1, verbose=False)
        result = evaluate_resampling(
            data, "z ~ x1", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, config=config, compute_train_error=True,
        )
        assert "train.mae" in result.pooled_error.columns

    def test_benchmarks(self, data):
        """Test that run metadata is collected on request."""
        result = evaluate_resampling(
            data, "z ~ x1", fit=fit_linear, predict=predict_linear, score=mae,
            plan_fn=build_kfold_plan, collect_benchmarks=True, **SEQUENTIAL,
        )
        assert result.benchmark.worker_count == 1
        assert result.benchmark.elapsed_seconds >= 0
        assert result.benchmark.package_version

    @pytest.mark.skipif(not SKLEARN_AVAILABLE, reason="scikit-learn not available")
    def test_splitter_plan(self, data):
        """Test a repeated k-fold plan built from a scikit-learn splitter."""
        plan = ResamplingPlan.from_splitter(
            KFold(n_splits=5, shuffle=True), data, n_repetitions=3, random_state=0
        )
        result = evaluate_resampling(
            data, "z ~ x1 + x2", fit=fit_linear, predict=predict_linear, score=mae,
            plan=plan, **SEQUENTIAL,
        )
        assert list(result.pooled_error.index) == ["1", "2", "3"]
        assert len(result.error_frame()) == 15


@pytest.mark.integration
@pytest.mark.skipif(not fork_available(), reason="fork not available")
def test_parallel_matches_sequential(data):
    """Test that a parallel run reproduces the sequential result."""
    kwargs = dict(
        fit=fit_linear, predict=predict_linear, score=mae, plan_fn=build_kfold_plan,
        plan_args={"repetitions": (1, 2, 3, 4)}, importance_variables=["x1", "x2"],
        importance_permutation_count=5, rng_seed=7, verbose=False,
    )
    sequential = evaluate_resampling(data, "z ~ x1 + x2", worker_count=1, **kwargs)
    parallel = evaluate_resampling(
        data, "z ~ x1 + x2", worker_count=2, parallel_backend="fork",
        scheduling_policy="load_balanced", **kwargs,
    )
    pd.testing.assert_frame_equal(sequential.pooled_error, parallel.pooled_error)
    pd.testing.assert_frame_equal(sequential.importance_frame(), parallel.importance_frame())


@pytest.mark.integration
def test_worker_setup_message_backend(data, monkeypatch):
    """Test that worker setup prepares spawned workers."""
    monkeypatch.setitem(SETUP_STATE, "done", False)
    result = evaluate_resampling(
        data, "z ~ x1", fit=fit_requiring_setup, score=mae, plan_fn=build_kfold_plan,
        parallel_backend="message", worker_count=2, verbose=False,
        worker_setup=WorkerSetup(initializer=mark_setup_done),
    )
    assert result.error_frame()["failure"].isna().all()
