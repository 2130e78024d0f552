"""Layer 1: Objects - Immutable data representations.

This layer contains only data structures. No I/O, no plotting, no process
pools. Only standard library + numpy + pandas.
"""

from cvsmith.objects.resampling import Fold, Repetition, ResamplingPlan
from cvsmith.objects.results import (
    Absent,
    BenchmarkInfo,
    ErrorRecord,
    FailureKind,
    FoldResult,
    ImportanceRecord,
    Ok,
    Outcome,
    RepetitionResult,
    ResultBundle,
    unwrap,
)

__all__ = [
    "Absent",
    "BenchmarkInfo",
    "ErrorRecord",
    "FailureKind",
    "Fold",
    "FoldResult",
    "ImportanceRecord",
    "Ok",
    "Outcome",
    "Repetition",
    "RepetitionResult",
    "ResamplingPlan",
    "ResultBundle",
    "unwrap",
]
