"""Layer 3: Tasks - User intent translation.

The repetition runner, the parallel dispatcher and the result aggregator.
Tasks must not import plotting libraries and do no file I/O.
"""

from cvsmith.tasks.aggregate import aggregate_results, pooled_error_frame
from cvsmith.tasks.dispatch import WorkerSetup, dispatch_repetitions, static_chunksize
from cvsmith.tasks.repetition import PooledAccumulator, RepetitionRunner, RepetitionTask

__all__ = [
    "PooledAccumulator",
    "RepetitionRunner",
    "RepetitionTask",
    "WorkerSetup",
    "aggregate_results",
    "dispatch_repetitions",
    "pooled_error_frame",
    "static_chunksize",
]
