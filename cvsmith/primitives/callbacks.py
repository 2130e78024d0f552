"""Model specification and user callbacks.

The engine never inspects the model-fitting, prediction or error callbacks.
It only calls them through the narrow signatures documented on ``Callbacks``.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

from cvsmith.utils.errors import ParameterError, raise_parameter_error

RESERVED_MODEL_ARGS = ("formula", "data")
RESERVED_PRED_ARGS = ("object", "model", "newdata")

_TERM_PATTERN = re.compile(r"^[^\s*:^()~+]+$")


@dataclass(frozen=True)
class ModelSpec:
    """Response and predictor variables of a model.

    This is what the fitting callback receives as its ``formula`` argument.
    ``str(spec)`` renders a ``"y ~ x1 + x2"`` formula string for callbacks
    that expect one.

    Attributes:
        response: Name of the response column.
        predictors: Names of the predictor columns.
    """

    response: str
    predictors: Tuple[str, ...]

    def __post_init__(self) -> None:
        """Validate ModelSpec parameters."""
        predictors = (
            (self.predictors,) if isinstance(self.predictors, str) else tuple(self.predictors)
        )
        if not predictors:
            raise ParameterError("A model needs at least one predictor")
        if self.response in predictors:
            raise_parameter_error(
                "predictors",
                list(predictors),
                constraint=f"must not contain the response '{self.response}'",
            )
        object.__setattr__(self, "predictors", predictors)

    @classmethod
    def parse(cls, formula: str) -> "ModelSpec":
        """Parse an additive formula such as ``"y ~ x1 + x2"``.

        Only plain additive terms are accepted; ``.`` (all other variables)
        must be spelled out.

        Raises:
            ParameterError: If the formula is not of the form
                ``response ~ term + term ...``.
        """
        if formula.count("~") != 1:
            raise_parameter_error(
                "formula", formula, constraint="exactly one '~' separating response and predictors"
            )
        lhs, rhs = (part.strip() for part in formula.split("~"))
        terms = [term.strip() for term in rhs.split("+")]
        if not lhs or not all(terms):
            raise_parameter_error("formula", formula, constraint="empty response or term")
        if "." in terms or "..." in terms:
            raise_parameter_error(
                "formula",
                formula,
                constraint="formulas of the form 'y ~ .' are not accepted",
                suggestion="Specify all predictor variables explicitly",
            )
        for term in [lhs] + terms:
            if not _TERM_PATTERN.match(term):
                raise_parameter_error(
                    "formula",
                    formula,
                    constraint=f"term '{term}' is not a plain variable name",
                    suggestion="Only additive formulas without transformations are supported",
                )
        return cls(response=lhs, predictors=tuple(terms))

    @classmethod
    def coerce(cls, formula: Union["ModelSpec", str]) -> "ModelSpec":
        if isinstance(formula, ModelSpec):
            return formula
        if isinstance(formula, str):
            return cls.parse(formula)
        raise_parameter_error(
            "formula", formula, constraint="ModelSpec or formula string"
        )

    @property
    def variables(self) -> Tuple[str, ...]:
        return (self.response,) + self.predictors

    def __str__(self) -> str:
        return f"{self.response} ~ {' + '.join(self.predictors)}"


def response_values(subset: pd.DataFrame, response: str) -> Any:
    """Known response of a sample: a Categorical for categorical responses,
    a numpy array otherwise."""
    column = subset[response]
    if isinstance(column.dtype, pd.CategoricalDtype):
        return pd.Categorical(column)
    return column.to_numpy()


def _check_reserved(name: str, args: Mapping[str, Any], reserved: Tuple[str, ...]) -> None:
    clashes = sorted(set(args) & set(reserved))
    if clashes:
        raise ParameterError(
            f"'{name}' cannot contain the argument(s) {', '.join(clashes)}: "
            "these are supplied by the engine",
            details={"parameter": name, "reserved": list(clashes)},
        )


@dataclass(frozen=True)
class Callbacks:
    """User-supplied collaborators of one evaluation.

    Signatures:
        fit(formula, data, **model_args) -> model
        predict(model, newdata, **pred_args) -> predictions. If None,
            ``model.predict(newdata, **pred_args)`` is used.
        score(observed, predicted) -> mapping of metric name to value
        train_transform(data, params) -> data
        test_transform(data, params) -> data

    For the 'message' parallel backend all callbacks must be picklable,
    i.e. defined at module level.
    """

    fit: Callable[..., Any]
    score: Callable[[Any, Any], Mapping[str, Any]]
    predict: Optional[Callable[..., Any]] = None
    model_args: Dict[str, Any] = field(default_factory=dict)
    pred_args: Dict[str, Any] = field(default_factory=dict)
    train_transform: Optional[Callable[[pd.DataFrame, Any], pd.DataFrame]] = None
    train_params: Any = None
    test_transform: Optional[Callable[[pd.DataFrame, Any], pd.DataFrame]] = None
    test_params: Any = None

    def __post_init__(self) -> None:
        """Validate Callbacks parameters."""
        for name in ("fit", "score"):
            if not callable(getattr(self, name)):
                raise_parameter_error(name, getattr(self, name), constraint="must be callable")
        for name in ("predict", "train_transform", "test_transform"):
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise_parameter_error(name, value, constraint="must be callable or None")
        object.__setattr__(self, "model_args", dict(self.model_args or {}))
        object.__setattr__(self, "pred_args", dict(self.pred_args or {}))
        _check_reserved("model_args", self.model_args, RESERVED_MODEL_ARGS)
        _check_reserved("pred_args", self.pred_args, RESERVED_PRED_ARGS)

    def fit_model(self, spec: ModelSpec, train: pd.DataFrame) -> Any:
        return self.fit(spec, train, **self.model_args)

    def predict_model(self, model: Any, newdata: pd.DataFrame) -> Any:
        if self.predict is None:
            return model.predict(newdata, **self.pred_args)
        return self.predict(model, newdata, **self.pred_args)

    def score_predictions(self, observed: Any, predicted: Any) -> Dict[str, Any]:
        record = self.score(observed, predicted)
        if not isinstance(record, Mapping):
            raise TypeError(
                f"score must return a mapping of metric names, got {type(record).__name__}"
            )
        return dict(record)

    def transform_train(self, train: pd.DataFrame) -> pd.DataFrame:
        if self.train_transform is None:
            return train
        return self.train_transform(train, self.train_params)

    def transform_test(self, test: pd.DataFrame) -> pd.DataFrame:
        if self.test_transform is None:
            return test
        return self.test_transform(test, self.test_params)


def metric_difference(
    baseline: Mapping[str, Any], other: Mapping[str, Any]
) -> Dict[str, float]:
    """Per-metric ``baseline - other`` over the scalar numeric metrics."""
    diff = {}
    for metric, value in baseline.items():
        if metric not in other:
            continue
        if not (np.isscalar(value) and np.isscalar(other[metric])):
            continue
        if isinstance(value, (str, bytes)) or isinstance(other[metric], (str, bytes)):
            continue
        diff[metric] = float(value) - float(other[metric])
    return diff
