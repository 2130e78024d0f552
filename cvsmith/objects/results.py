"""Result objects of a resampling evaluation.

Per-fold outcomes are tagged: a computed value is wrapped in ``Ok`` and a
missing one in ``Absent``, which keeps the failure reason. ``None`` means the
quantity was not requested. A fold that failed is therefore never confused
with a fold whose computed error is zero.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, Optional, Tuple, TypeVar, Union

import numpy as np
import pandas as pd

from cvsmith.objects.resampling import ResamplingPlan

T = TypeVar("T")

ErrorRecord = Dict[str, Any]
ImportanceRecord = Dict[str, Dict[str, float]]


class FailureKind(str, Enum):
    """Why a fold-level quantity is absent."""

    FIT = "fit"
    PREDICT = "predict"
    SCORE = "score"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Ok(Generic[T]):
    """A successfully computed value."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Absent:
    """A value that could not be computed.

    Attributes:
        reason: Failure category.
        message: Description of the underlying error.
    """

    reason: FailureKind
    message: str = ""

    @property
    def ok(self) -> bool:
        return False

    @property
    def value(self) -> None:
        return None


Outcome = Union[Ok[T], Absent]


def unwrap(outcome: Optional[Outcome]) -> Any:
    """Return the wrapped value, or None for absent/not requested outcomes."""
    if outcome is None:
        return None
    return outcome.value


@dataclass(frozen=True)
class FoldResult:
    """Outputs of one evaluated fold.

    Attributes:
        train: Training-sample error record, or None if not requested.
        test: Test-sample error record, or None if not requested.
        importance: Permutation importance, or None if not requested.
        distance: Mean test-to-training nearest-neighbour distance, if computed.
    """

    train: Optional[Outcome] = None
    test: Optional[Outcome] = None
    importance: Optional[Outcome] = None
    distance: Optional[float] = None

    @property
    def failed(self) -> bool:
        """Whether the test error was requested but could not be computed."""
        return isinstance(self.test, Absent)


@dataclass(frozen=True)
class RepetitionResult:
    """Outputs of one repetition.

    Attributes:
        name: Repetition name.
        folds: One FoldResult per fold, in fold order.
        pooled: Pooled error record with ``train.*``/``test.*`` keys, or None
            if pooling was not requested.
    """

    name: str
    folds: Tuple[FoldResult, ...]
    pooled: Optional[Outcome] = None


@dataclass(frozen=True)
class BenchmarkInfo:
    """Run metadata collected around the dispatch of all repetitions."""

    start_time: datetime
    end_time: datetime
    cpu_count: int
    backend: str
    worker_count: int
    scheduling_policy: str
    python_version: str = ""
    platform: str = ""
    package_version: str = ""

    @property
    def elapsed_seconds(self) -> float:
        return (self.end_time - self.start_time).total_seconds()

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"BenchmarkInfo(elapsed={self.elapsed_seconds:.2f}s, "
            f"backend='{self.backend}', workers={self.worker_count}, "
            f"scheduling='{self.scheduling_policy}')"
        )


@dataclass(frozen=True)
class ResultBundle:
    """Top-level result of a resampling evaluation.

    All per-repetition components align one-to-one with ``plan``.

    Attributes:
        plan: The resampling plan that was evaluated.
        error: Per repetition, per fold FoldResult, or None if unpooled
            error was disabled.
        pooled_error: DataFrame with one row per repetition (index =
            repetition names), or None if pooled error was disabled.
        importance: Per repetition, per fold importance outcome, or None if
            importance was disabled.
        benchmark: Run metadata, or None.
    """

    plan: ResamplingPlan
    error: Optional[Tuple[Tuple[FoldResult, ...], ...]] = None
    pooled_error: Optional[pd.DataFrame] = None
    importance: Optional[Tuple[Tuple[Optional[Outcome], ...], ...]] = None
    benchmark: Optional[BenchmarkInfo] = None
    corrections: Tuple[str, ...] = field(default_factory=tuple)

    def error_frame(self) -> pd.DataFrame:
        """Fold-level errors in long format.

        Returns:
            DataFrame with columns ``repetition``, ``fold``, ``failure`` and
            one ``train.<metric>``/``test.<metric>`` column per scalar metric.
            Absent records yield NaN metrics and a non-null ``failure``.

        Raises:
            ValueError: If unpooled error was not computed.
        """
        if self.error is None:
            raise ValueError("Unpooled error was not computed for this result")
        rows = []
        for rep, folds in zip(self.plan, self.error):
            for j, fold in enumerate(folds):
                row: Dict[str, Any] = {
                    "repetition": rep.name,
                    "fold": j + 1,
                    "failure": None,
                    "distance": fold.distance,
                }
                for prefix, outcome in (("train", fold.train), ("test", fold.test)):
                    if isinstance(outcome, Absent):
                        row["failure"] = row["failure"] or outcome.reason.value
                    elif isinstance(outcome, Ok):
                        for metric, value in outcome.value.items():
                            if np.isscalar(value):
                                row[f"{prefix}.{metric}"] = value
                rows.append(row)
        return pd.DataFrame(rows)

    def importance_frame(self) -> pd.DataFrame:
        """Fold-level importances in long format.

        Returns:
            DataFrame with columns ``repetition``, ``fold``, ``variable`` and
            one column per metric. Folds without importance contribute no
            rows.

        Raises:
            ValueError: If importance was not computed.
        """
        if self.importance is None:
            raise ValueError("Variable importance was not computed for this result")
        rows = []
        for rep, folds in zip(self.plan, self.importance):
            for j, outcome in enumerate(folds):
                if not isinstance(outcome, Ok):
                    continue
                for variable, metrics in outcome.value.items():
                    rows.append(
                        {"repetition": rep.name, "fold": j + 1, "variable": variable, **metrics}
                    )
        return pd.DataFrame(rows)

    def __repr__(self) -> str:
        """String representation."""
        parts = [f"n_repetitions={len(self.plan)}"]
        if self.error is not None:
            n_failed = sum(fold.failed for folds in self.error for fold in folds)
            parts.append(f"failed_folds={n_failed}")
        if self.pooled_error is not None:
            parts.append(f"pooled_columns={list(self.pooled_error.columns)}")
        if self.importance is not None:
            parts.append("importance=True")
        return f"ResultBundle({', '.join(parts)})"
