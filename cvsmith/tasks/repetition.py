"""Evaluation of one repetition of a resampling plan.

Layer 3: Tasks - User intent translation.

A repetition is the unit of parallel dispatch: its folds run sequentially,
it accumulates the pooled predictions of its folds, and it shares no mutable
state with other repetitions.
"""

import gc
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from cvsmith.objects.resampling import Repetition
from cvsmith.objects.results import (
    Absent,
    ErrorRecord,
    FailureKind,
    Ok,
    Outcome,
    RepetitionResult,
)
from cvsmith.primitives.callbacks import Callbacks, ModelSpec
from cvsmith.primitives.fold import FoldOptions, evaluate_fold
from cvsmith.primitives.random_streams import substream_generator
from cvsmith.utils.errors import ScoreFailureError, format_fold_failure

logger = logging.getLogger(__name__)


def _is_categorical(values: Any) -> bool:
    if isinstance(values, pd.Categorical):
        return True
    dtype = getattr(values, "dtype", None)
    return isinstance(dtype, pd.CategoricalDtype)


class PooledAccumulator:
    """Concatenates observations and predictions of the folds of one repetition.

    Pairs are concatenated in the order they are added, i.e. fold order.
    """

    def __init__(self) -> None:
        self._observed: List[np.ndarray] = []
        self._predicted: List[np.ndarray] = []
        self.categorical_predictions = False

    def add(self, observed: Any, predicted: Any) -> None:
        """Append the (observed, predicted) pair of one fold."""
        self._observed.append(np.asarray(observed).ravel())
        self._predicted.append(np.asarray(predicted).ravel())
        self.categorical_predictions = _is_categorical(predicted)

    def __len__(self) -> int:
        return len(self._observed)

    @property
    def n_observations(self) -> int:
        return int(sum(len(o) for o in self._observed))

    def pooled(
        self, response_dtype: Optional[Any] = None
    ) -> Optional[Tuple[Any, Any]]:
        """Concatenated (observed, predicted), or None if nothing was added.

        Args:
            response_dtype: Dtype of the response column. If categorical,
                observations are returned as a Categorical with its
                categories, and so are predictions if they were categorical.
        """
        if not self._observed:
            return None
        observed: Any = np.concatenate(self._observed)
        predicted: Any = np.concatenate(self._predicted)
        if isinstance(response_dtype, pd.CategoricalDtype):
            observed = pd.Categorical(
                observed,
                categories=response_dtype.categories,
                ordered=response_dtype.ordered,
            )
            if self.categorical_predictions:
                predicted = pd.Categorical(
                    predicted,
                    categories=response_dtype.categories,
                    ordered=response_dtype.ordered,
                )
        return observed, predicted


@dataclass(frozen=True)
class RepetitionTask:
    """One repetition together with its position and random substream."""

    index: int
    repetition: Repetition
    stream: np.random.SeedSequence


class RepetitionRunner:
    """Evaluates the folds of one repetition and pools their predictions.

    Instances are pure functions of a ``RepetitionTask`` and are shipped to
    worker processes once, at pool creation.

    Args:
        data: Shared, read-only data set.
        spec: Model specification.
        callbacks: User collaborators.
        options: What to compute for each fold.
        gc_granularity: 'none', 'repetition' or 'fold'.
    """

    def __init__(
        self,
        data: pd.DataFrame,
        spec: ModelSpec,
        callbacks: Callbacks,
        options: FoldOptions,
        gc_granularity: str = "repetition",
    ) -> None:
        self.data = data
        self.spec = spec
        self.callbacks = callbacks
        self.options = options
        self.gc_granularity = gc_granularity

    def __call__(self, task: RepetitionTask) -> RepetitionResult:
        result = self.run(task.repetition, task.stream)
        if self.gc_granularity == "repetition":
            gc.collect()
        return result

    def run(
        self, repetition: Repetition, stream: Optional[np.random.SeedSequence] = None
    ) -> RepetitionResult:
        """Evaluate every fold of ``repetition`` in order.

        Args:
            repetition: Folds to evaluate.
            stream: Random substream of this repetition. A generator is
                created from it once; nothing reseeds inside the repetition.

        Returns:
            RepetitionResult with one FoldResult per fold and the pooled error.
        """
        level = logging.INFO if self.options.verbose else logging.DEBUG
        logger.log(level, f"Repetition '{repetition.name}' ({len(repetition)} folds)")

        rng = substream_generator(stream) if stream is not None else None
        pool_train = PooledAccumulator()
        pool_test = PooledAccumulator()
        fold_results = []
        for j, fold in enumerate(repetition.folds):
            evaluation = evaluate_fold(
                fold,
                self.data,
                self.spec,
                self.callbacks,
                self.options,
                rng=rng,
                location=f"repetition '{repetition.name}', fold {j + 1}",
            )
            fold_results.append(evaluation.result)
            if evaluation.train_pair is not None:
                pool_train.add(*evaluation.train_pair)
            if evaluation.test_pair is not None:
                pool_test.add(*evaluation.test_pair)
            del evaluation
            if self.gc_granularity == "fold":
                gc.collect()

        pooled: Optional[Outcome] = None
        if self.options.compute_pooled_error:
            pooled = self._pooled_error(repetition.name, pool_train, pool_test)

        return RepetitionResult(
            name=repetition.name, folds=tuple(fold_results), pooled=pooled
        )

    def _pooled_error(
        self,
        name: str,
        pool_train: PooledAccumulator,
        pool_test: PooledAccumulator,
    ) -> Outcome:
        location = f"repetition '{name}' (pooled)"
        response_dtype = self.data[self.spec.response].dtype
        test = pool_test.pooled(response_dtype)
        if test is None:
            logger.warning(f"No fold produced test predictions in {location}")
            return Absent(FailureKind.SKIPPED, "no fold produced test predictions")

        record: ErrorRecord = {}
        try:
            if self.options.compute_train_error:
                train = pool_train.pooled(response_dtype)
                if train is not None:
                    train_error = self.callbacks.score_predictions(*train)
                    record.update(_prefixed("train", train_error))
            record.update(_prefixed("test", self.callbacks.score_predictions(*test)))
        except Exception as err:
            message = format_fold_failure("score", location, err)
            if self.options.strict_failure_mode:
                raise ScoreFailureError(message, details={"location": location}) from err
            logger.warning(message)
            return Absent(FailureKind.SCORE, message)
        return Ok(record)


def _prefixed(prefix: str, record: Dict[str, Any]) -> Dict[str, Any]:
    return {f"{prefix}.{metric}": value for metric, value in record.items()}
