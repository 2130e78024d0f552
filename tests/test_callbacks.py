"""Tests for model specifications and callbacks."""

import numpy as np
import pandas as pd
import pytest

from cvsmith.primitives.callbacks import (
    Callbacks,
    ModelSpec,
    metric_difference,
    response_values,
)
from cvsmith.utils.errors import ParameterError
from toy_models import ConstantModel, fit_constant, mae


class TestModelSpec:
    """Tests for ModelSpec."""

    def test_parse(self):
        """Test parsing an additive formula."""
        spec = ModelSpec.parse("z ~ x1 + x2")
        assert spec.response == "z"
        assert spec.predictors == ("x1", "x2")
        assert spec.variables == ("z", "x1", "x2")
        assert str(spec) == "z ~ x1 + x2"

    @pytest.mark.parametrize(
        "formula", ["z ~ .", "z ~ x1 + .", "z x1", "z ~ log(x1)", "z ~ x1:x2", "~ x1"]
    )
    def test_rejected_formulas(self, formula):
        """Test that non-additive or implicit formulas are rejected."""
        with pytest.raises(ParameterError):
            ModelSpec.parse(formula)

    def test_response_not_a_predictor(self):
        """Test that the response cannot also be a predictor."""
        with pytest.raises(ParameterError, match="response"):
            ModelSpec(response="z", predictors=("z", "x1"))

    def test_coerce(self):
        """Test coercion from strings and passthrough of specs."""
        spec = ModelSpec(response="z", predictors="x1")
        assert spec.predictors == ("x1",)
        assert ModelSpec.coerce(spec) is spec
        assert ModelSpec.coerce("z ~ x1") == spec
        with pytest.raises(ParameterError):
            ModelSpec.coerce(42)


class TestCallbacks:
    """Tests for Callbacks."""

    @pytest.mark.parametrize("key", ["formula", "data"])
    def test_reserved_model_args(self, key):
        """Test that model_args cannot shadow engine arguments."""
        with pytest.raises(ParameterError, match=key):
            Callbacks(fit=fit_constant, score=mae, model_args={key: None})

    @pytest.mark.parametrize("key", ["object", "model", "newdata"])
    def test_reserved_pred_args(self, key):
        """Test that pred_args cannot shadow engine arguments."""
        with pytest.raises(ParameterError) as exc_info:
            Callbacks(fit=fit_constant, score=mae, pred_args={key: None})
        assert exc_info.value.details["reserved"] == [key]

    def test_non_callable_rejected(self):
        """Test that fit must be callable."""
        with pytest.raises(ParameterError):
            Callbacks(fit="lm", score=mae)

    def test_default_predict_uses_model_method(self):
        """Test the fallback to model.predict with pred_args."""
        callbacks = Callbacks(fit=fit_constant, score=mae, pred_args={"offset": 1.0})
        predictions = callbacks.predict_model(ConstantModel(2.0), pd.DataFrame({"a": [1, 2]}))
        np.testing.assert_allclose(predictions, [3.0, 3.0])

    def test_model_args_forwarded(self):
        """Test that model_args reach the fitting function."""
        callbacks = Callbacks(fit=fit_constant, score=mae, model_args={"value": 5.0})
        spec = ModelSpec.parse("z ~ x1")
        model = callbacks.fit_model(spec, pd.DataFrame({"z": [1.0], "x1": [0.0]}))
        assert model.value == 5.0

    def test_score_must_return_mapping(self):
        """Test that non-mapping error records raise TypeError."""
        callbacks = Callbacks(fit=fit_constant, score=lambda obs, pred: 1.0)
        with pytest.raises(TypeError, match="mapping"):
            callbacks.score_predictions([1.0], [1.0])

    def test_identity_transforms(self):
        """Test that missing transforms leave data unchanged."""
        callbacks = Callbacks(fit=fit_constant, score=mae)
        frame = pd.DataFrame({"a": [1, 2]})
        assert callbacks.transform_train(frame) is frame
        assert callbacks.transform_test(frame) is frame


def test_response_values_categorical():
    """Test that categorical responses stay categorical."""
    frame = pd.DataFrame({"c": pd.Categorical(["a", "b", "a"], categories=["a", "b", "c"])})
    values = response_values(frame, "c")
    assert isinstance(values, pd.Categorical)
    assert list(values.categories) == ["a", "b", "c"]
    assert isinstance(response_values(pd.DataFrame({"n": [1.0]}), "n"), np.ndarray)


def test_metric_difference_skips_non_scalars():
    """Test that only shared scalar numeric metrics are differenced."""
    diff = metric_difference(
        {"mae": 1.0, "label": "x", "curve": [1, 2], "n": 10},
        {"mae": 3.0, "label": "y", "curve": [1, 2]},
    )
    assert diff == {"mae": -2.0}
