"""Evaluation of a single train/test fold.

Layer 2: Primitives - Pure operations.

A fold is fitted, predicted and scored through the user callbacks. Failures
of the callbacks are recorded as ``Absent`` outcomes in tolerant mode and
raised as ``FoldFailureError`` subclasses in strict mode. The shared data set
is never modified.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np
import pandas as pd

from cvsmith.objects.resampling import Fold
from cvsmith.objects.results import Absent, FailureKind, FoldResult, Ok, Outcome
from cvsmith.primitives.callbacks import Callbacks, ModelSpec, response_values
from cvsmith.primitives.importance import permutation_importance
from cvsmith.utils.errors import (
    FitFailureError,
    ScoreFailureError,
    format_fold_failure,
)

logger = logging.getLogger(__name__)

PredictionPair = Tuple[Any, Any]


@dataclass(frozen=True)
class FoldOptions:
    """What to compute for each fold.

    Attributes:
        compute_unpooled_error: Produce per-fold error records.
        compute_pooled_error: Return (observed, predicted) pairs for pooling.
        compute_train_error: Also evaluate the training sample.
        importance_variables: Variables to permute, or None to skip importance.
        importance_permutation_count: Number of permutation trials.
        strict_failure_mode: Raise on callback failures instead of recording them.
        verbose: Report progress at INFO level.
    """

    compute_unpooled_error: bool = True
    compute_pooled_error: bool = True
    compute_train_error: bool = True
    importance_variables: Optional[Tuple[str, ...]] = None
    importance_permutation_count: int = 1000
    strict_failure_mode: bool = False
    verbose: bool = True

    @property
    def run_importance(self) -> bool:
        return self.compute_unpooled_error and bool(self.importance_variables)


@dataclass(frozen=True)
class FoldEvaluation:
    """Result of ``evaluate_fold``.

    Attributes:
        result: Error and importance outcomes of the fold.
        train_pair: (observed, predicted) on the training sample, for pooling.
        test_pair: (observed, predicted) on the test sample, for pooling.
    """

    result: FoldResult
    train_pair: Optional[PredictionPair] = None
    test_pair: Optional[PredictionPair] = None


def _recover(kind: FailureKind, stage: str, location: str, err: Exception, strict: bool) -> Absent:
    message = format_fold_failure(stage, location, err)
    if strict:
        error_class = FitFailureError if kind is FailureKind.FIT else ScoreFailureError
        raise error_class(message, details={"stage": stage, "location": location}) from err
    logger.warning(message)
    return Absent(kind, message)


def _predict_and_score(
    model: Any,
    subset: pd.DataFrame,
    spec: ModelSpec,
    callbacks: Callbacks,
    options: FoldOptions,
    location: str,
) -> Tuple[Optional[Outcome], Optional[PredictionPair]]:
    """Predict on one sample and score the predictions."""
    observed = response_values(subset, spec.response)
    try:
        predicted = callbacks.predict_model(model, subset)
    except Exception as err:
        absent = _recover(
            FailureKind.PREDICT, "predict", location, err, options.strict_failure_mode
        )
        return (absent if options.compute_unpooled_error else None), None

    pair = (observed, predicted) if options.compute_pooled_error else None
    if not options.compute_unpooled_error:
        return None, pair
    try:
        outcome: Outcome = Ok(callbacks.score_predictions(observed, predicted))
    except Exception as err:
        outcome = _recover(
            FailureKind.SCORE, "score", location, err, options.strict_failure_mode
        )
    return outcome, pair


def evaluate_fold(
    fold: Fold,
    data: pd.DataFrame,
    spec: ModelSpec,
    callbacks: Callbacks,
    options: FoldOptions,
    rng: Optional[np.random.Generator] = None,
    location: str = "fold",
) -> FoldEvaluation:
    """Fit, predict, score and optionally assess importance on one fold.

    Args:
        fold: Train/test partition.
        data: Shared data set; rows are selected by position.
        spec: Model specification passed to the fitting callback.
        callbacks: User collaborators.
        options: What to compute.
        rng: Generator for permutation importance (required if importance
            is requested).
        location: Fold location used in log and error messages.

    Returns:
        FoldEvaluation with the fold's outcomes and its prediction pairs.

    Raises:
        FitFailureError: In strict mode, if fitting fails.
        ScoreFailureError: In strict mode, if prediction or scoring fails.
    """
    level = logging.INFO if options.verbose else logging.DEBUG
    logger.log(level, f"Evaluating {location}")

    train = callbacks.transform_train(data.iloc[fold.train])
    try:
        model = callbacks.fit_model(spec, train)
    except Exception as err:
        absent = _recover(FailureKind.FIT, "fit", location, err, options.strict_failure_mode)
        unpooled = options.compute_unpooled_error
        return FoldEvaluation(
            result=FoldResult(
                train=absent if unpooled and options.compute_train_error else None,
                test=absent if unpooled else None,
                importance=absent if options.run_importance else None,
                distance=fold.distance,
            )
        )

    train_outcome: Optional[Outcome] = None
    train_pair: Optional[PredictionPair] = None
    if options.compute_train_error:
        train_outcome, train_pair = _predict_and_score(
            model, train, spec, callbacks, options, f"{location} (training sample)"
        )
    del train

    test = callbacks.transform_test(data.iloc[fold.test])
    test_outcome, test_pair = _predict_and_score(
        model, test, spec, callbacks, options, f"{location} (test sample)"
    )

    importance: Optional[Outcome] = None
    if options.run_importance:
        if isinstance(test_outcome, Ok):
            if rng is None:
                raise ValueError("A random generator is required for variable importance")
            record = permutation_importance(
                model,
                test,
                test_outcome.value,
                spec,
                callbacks,
                options.importance_variables,
                options.importance_permutation_count,
                rng,
                strict=options.strict_failure_mode,
                location=location,
                verbose=options.verbose,
            )
            importance = (
                Ok(record)
                if record
                else Absent(FailureKind.SCORE, "all permutation trials failed")
            )
        else:
            logger.log(level, f"Skipping variable importance for {location}")
            importance = Absent(FailureKind.SKIPPED, "test error is not available")

    return FoldEvaluation(
        result=FoldResult(
            train=train_outcome,
            test=test_outcome,
            importance=importance,
            distance=fold.distance,
        ),
        train_pair=train_pair,
        test_pair=test_pair,
    )
