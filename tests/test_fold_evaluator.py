"""Tests for single-fold evaluation."""

import numpy as np
import pandas as pd
import pytest

from cvsmith.objects import Absent, FailureKind, Fold, Ok
from cvsmith.primitives.callbacks import Callbacks, ModelSpec
from cvsmith.primitives.fold import FoldOptions, evaluate_fold
from cvsmith.utils.errors import FitFailureError, ScoreFailureError
from toy_models import (
    drop_first_row,
    failing_score,
    fit_always_failing,
    fit_constant,
    fit_linear,
    mae,
    make_regression_data,
    predict_failing,
    predict_linear,
)

SPEC = ModelSpec.parse("z ~ x1 + x2")


@pytest.fixture
def data():
    """Small regression data set."""
    return make_regression_data(n_samples=30, seed=1)


@pytest.fixture
def fold():
    """Fold testing on the first ten rows."""
    return Fold(train=np.arange(10, 30), test=np.arange(10))


class TestEvaluateFold:
    """Tests for evaluate_fold."""

    def test_constant_model_errors(self):
        """Test fold errors of a constant predictor on known data."""
        frame = pd.DataFrame({"x1": np.zeros(4), "x2": np.zeros(4), "z": [1.0, 3.0, 2.0, 6.0]})
        callbacks = Callbacks(fit=fit_constant, score=mae)
        evaluation = evaluate_fold(
            Fold(train=[0, 1], test=[2, 3]), frame, SPEC, callbacks, FoldOptions(verbose=False)
        )
        assert evaluation.result.train == Ok({"mae": 1.0, "bias": 0.0})
        assert evaluation.result.test == Ok({"mae": 2.0, "bias": 2.0})
        assert evaluation.result.importance is None
        observed, predicted = evaluation.test_pair
        np.testing.assert_allclose(observed, [2.0, 6.0])
        np.testing.assert_allclose(predicted, [2.0, 2.0])

    def test_shared_data_not_modified(self, data, fold):
        """Test that evaluation never mutates the shared data set."""
        before = data.copy()
        callbacks = Callbacks(fit=fit_linear, score=mae, predict=predict_linear)
        options = FoldOptions(importance_variables=("x1", "x2"), importance_permutation_count=5)
        evaluate_fold(fold, data, SPEC, callbacks, options, rng=np.random.default_rng(0))
        pd.testing.assert_frame_equal(data, before)

    def test_train_error_disabled(self, data, fold):
        """Test that training error and pair are skipped on request."""
        callbacks = Callbacks(fit=fit_linear, score=mae, predict=predict_linear)
        evaluation = evaluate_fold(
            fold, data, SPEC, callbacks, FoldOptions(compute_train_error=False)
        )
        assert evaluation.result.train is None
        assert evaluation.train_pair is None
        assert isinstance(evaluation.result.test, Ok)

    def test_pooling_only(self, data, fold):
        """Test that only prediction pairs are produced without unpooled error."""
        callbacks = Callbacks(fit=fit_linear, score=failing_score, predict=predict_linear)
        evaluation = evaluate_fold(
            fold, data, SPEC, callbacks, FoldOptions(compute_unpooled_error=False)
        )
        assert evaluation.result.test is None
        assert evaluation.result.train is None
        assert len(evaluation.test_pair[0]) == 10

    def test_transforms_applied(self, data, fold):
        """Test that train and test transforms are applied before use."""
        callbacks = Callbacks(
            fit=fit_linear,
            score=mae,
            predict=predict_linear,
            test_transform=drop_first_row,
            test_params=3,
        )
        evaluation = evaluate_fold(fold, data, SPEC, callbacks, FoldOptions())
        assert len(evaluation.test_pair[0]) == 7

    def test_distance_carried(self, data):
        """Test that the fold distance is copied into the result."""
        fold = Fold(train=np.arange(10, 30), test=np.arange(10), distance=4.5)
        callbacks = Callbacks(fit=fit_linear, score=mae, predict=predict_linear)
        evaluation = evaluate_fold(fold, data, SPEC, callbacks, FoldOptions())
        assert evaluation.result.distance == 4.5


class TestFoldFailures:
    """Tests for tolerant and strict failure handling."""

    def test_fit_failure_tolerant(self, data, fold):
        """Test that a failed fit yields absent outcomes and no pairs."""
        callbacks = Callbacks(fit=fit_always_failing, score=mae)
        options = FoldOptions(importance_variables=("x1",), importance_permutation_count=3)
        evaluation = evaluate_fold(fold, data, SPEC, callbacks, options, location="rep 1, fold 1")
        result = evaluation.result
        assert isinstance(result.test, Absent)
        assert result.test.reason is FailureKind.FIT
        assert "rep 1, fold 1" in result.test.message
        assert isinstance(result.train, Absent)
        assert isinstance(result.importance, Absent)
        assert result.failed
        assert evaluation.test_pair is None

    def test_fit_failure_strict(self, data, fold):
        """Test that a failed fit raises in strict mode."""
        callbacks = Callbacks(fit=fit_always_failing, score=mae)
        with pytest.raises(FitFailureError, match="model cannot be fitted") as exc_info:
            evaluate_fold(fold, data, SPEC, callbacks, FoldOptions(strict_failure_mode=True))
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_score_failure_tolerant_keeps_pairs(self, data, fold):
        """Test that a failed score is absent but predictions still pool."""
        callbacks = Callbacks(fit=fit_linear, score=failing_score, predict=predict_linear)
        evaluation = evaluate_fold(fold, data, SPEC, callbacks, FoldOptions())
        assert evaluation.result.test.reason is FailureKind.SCORE
        assert evaluation.test_pair is not None

    def test_score_failure_strict(self, data, fold):
        """Test that a failed score raises in strict mode."""
        callbacks = Callbacks(fit=fit_linear, score=failing_score, predict=predict_linear)
        with pytest.raises(ScoreFailureError):
            evaluate_fold(fold, data, SPEC, callbacks, FoldOptions(strict_failure_mode=True))

    def test_predict_failure(self, data, fold):
        """Test that a failed prediction is recorded and skips importance."""
        callbacks = Callbacks(fit=fit_linear, score=mae, predict=predict_failing)
        options = FoldOptions(importance_variables=("x1",), importance_permutation_count=3)
        evaluation = evaluate_fold(
            fold, data, SPEC, callbacks, options, rng=np.random.default_rng(0)
        )
        assert evaluation.result.test.reason is FailureKind.PREDICT
        assert evaluation.result.importance.reason is FailureKind.SKIPPED
        assert evaluation.test_pair is None

    def test_importance_requires_rng(self, data, fold):
        """Test that importance without a generator is a programming error."""
        callbacks = Callbacks(fit=fit_linear, score=mae, predict=predict_linear)
        options = FoldOptions(importance_variables=("x1",), importance_permutation_count=2)
        with pytest.raises(ValueError, match="random generator"):
            evaluate_fold(fold, data, SPEC, callbacks, options)
