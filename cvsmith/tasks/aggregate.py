"""Assembly of repetition results into the final result bundle.

Layer 3: Tasks - User intent translation.

Pure restructuring: nothing is recomputed, reordered or dropped. A
repetition whose folds all failed still occupies its position.
"""

import logging
from typing import Optional, Sequence, Tuple

import pandas as pd

from cvsmith.objects.resampling import ResamplingPlan
from cvsmith.objects.results import (
    BenchmarkInfo,
    RepetitionResult,
    ResultBundle,
    unwrap,
)
from cvsmith.utils.errors import WorkerFailureError

logger = logging.getLogger(__name__)


def pooled_error_frame(
    results: Sequence[RepetitionResult], names: Sequence[str]
) -> pd.DataFrame:
    """Stack pooled error records, one row per repetition.

    Absent records become all-NaN rows.
    """
    rows = [unwrap(result.pooled) or {} for result in results]
    return pd.DataFrame(rows, index=pd.Index(list(names), name="repetition"))


def _check_alignment(results: Sequence[RepetitionResult], plan: ResamplingPlan) -> None:
    if len(results) != len(plan):
        raise WorkerFailureError(
            f"Received {len(results)} repetition results for a plan with "
            f"{len(plan)} repetitions"
        )
    for i, (result, rep) in enumerate(zip(results, plan)):
        if result.name != rep.name or len(result.folds) != len(rep):
            raise WorkerFailureError(
                f"Result {i + 1} ('{result.name}', {len(result.folds)} folds) does not "
                f"match repetition '{rep.name}' ({len(rep)} folds)"
            )


def aggregate_results(
    results: Sequence[RepetitionResult],
    plan: ResamplingPlan,
    compute_unpooled_error: bool = True,
    compute_pooled_error: bool = True,
    run_importance: bool = False,
    benchmark: Optional[BenchmarkInfo] = None,
    corrections: Sequence[str] = (),
) -> ResultBundle:
    """Build the ResultBundle from per-repetition results.

    Args:
        results: Repetition results in plan order.
        plan: The evaluated resampling plan.
        compute_unpooled_error: Include the fold-level error table.
        compute_pooled_error: Include the pooled error table.
        run_importance: Include the importance table.
        benchmark: Optional run metadata.
        corrections: Configuration corrections applied before the run.

    Returns:
        ResultBundle aligned with ``plan``.

    Raises:
        WorkerFailureError: If the results do not align with the plan.
    """
    _check_alignment(results, plan)

    error: Optional[Tuple] = None
    if compute_unpooled_error:
        error = tuple(result.folds for result in results)

    pooled = None
    if compute_pooled_error:
        pooled = pooled_error_frame(results, plan.names)

    importance: Optional[Tuple] = None
    if run_importance:
        importance = tuple(
            tuple(fold.importance for fold in result.folds) for result in results
        )

    logger.debug(f"Aggregated {len(results)} repetition results")
    return ResultBundle(
        plan=plan,
        error=error,
        pooled_error=pooled,
        importance=importance,
        benchmark=benchmark,
        corrections=tuple(corrections),
    )
