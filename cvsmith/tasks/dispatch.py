"""Parallel dispatch of repetitions to worker processes.

Layer 3: Tasks - User intent translation.

Two backends map the repetition runner over the repetitions of a plan and
return the results in input order:

- ``fork``: a ``concurrent.futures.ProcessPoolExecutor`` over forked
  processes. Workers inherit the runner (data and callbacks) through fork,
  so nothing is serialized up front. Only available where the platform
  supports fork.
- ``message``: a ``concurrent.futures.ProcessPoolExecutor`` over spawned
  processes. The runner is pickled and sent to every worker once, through
  the pool initializer; callbacks must therefore be picklable.

A worker process that dies aborts the batch. Both backends support
``static`` scheduling (contiguous chunks of repetitions are pre-assigned to
workers) and ``load_balanced`` scheduling (a worker takes
the next repetition as soon as it finishes one). A single worker runs the
repetitions sequentially in the calling process on every platform.
"""

import importlib
import logging
import math
import multiprocessing as mp
import pickle
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence, Tuple

from cvsmith.config import PARALLEL_BACKENDS, SCHEDULING_POLICIES, fork_available
from cvsmith.objects.resampling import ResamplingPlan
from cvsmith.objects.results import RepetitionResult
from cvsmith.primitives.random_streams import spawn_substreams
from cvsmith.tasks.repetition import RepetitionRunner, RepetitionTask
from cvsmith.utils.errors import (
    CvSmithError,
    ParameterError,
    WorkerFailureError,
    raise_parameter_error,
)

logger = logging.getLogger(__name__)

# Runner installed in each worker process by _initialize_worker.
_WORKER_RUNNER: Optional[RepetitionRunner] = None


@dataclass(frozen=True)
class WorkerSetup:
    """Environment preparation run once in each worker before any task.

    Attributes:
        modules: Modules to import in the worker (e.g. the library that
            defines the fitted model class).
        initializer: Optional callable run after the imports.
        initargs: Positional arguments of ``initializer``.
    """

    modules: Tuple[str, ...] = ()
    initializer: Optional[Callable[..., Any]] = None
    initargs: Tuple[Any, ...] = field(default_factory=tuple)

    def __call__(self) -> None:
        for module in self.modules:
            importlib.import_module(module)
        if self.initializer is not None:
            self.initializer(*self.initargs)


def _initialize_worker(runner: RepetitionRunner, setup: Optional[WorkerSetup]) -> None:
    global _WORKER_RUNNER
    if setup is not None:
        setup()
    _WORKER_RUNNER = runner


def _execute(runner: RepetitionRunner, task: RepetitionTask) -> RepetitionResult:
    try:
        return runner(task)
    except CvSmithError:
        raise
    except Exception as err:
        raise WorkerFailureError(
            f"Repetition '{task.repetition.name}' failed: {type(err).__name__}: {err}",
            details={"repetition": task.repetition.name, "index": task.index},
        ) from err


def _run_task(task: RepetitionTask) -> RepetitionResult:
    if _WORKER_RUNNER is None:
        raise WorkerFailureError("Worker process was not initialized")
    return _execute(_WORKER_RUNNER, task)


def static_chunksize(n_tasks: int, n_workers: int) -> int:
    """Chunk size that pre-assigns one contiguous block of tasks per worker."""
    return max(1, math.ceil(n_tasks / n_workers))


def _check_picklable(runner: RepetitionRunner, setup: Optional[WorkerSetup]) -> None:
    try:
        pickle.dumps((runner, setup))
    except (pickle.PicklingError, AttributeError, TypeError) as err:
        raise ParameterError(
            f"The 'message' backend cannot serialize the callbacks or data: {err}",
            suggestion=(
                "Define fit/predict/score callbacks at module level (no lambdas "
                "or local functions), or use parallel_backend='fork'"
            ),
        ) from err


def _run_sequential(
    runner: RepetitionRunner,
    tasks: Sequence[RepetitionTask],
    setup: Optional[WorkerSetup],
) -> List[RepetitionResult]:
    if setup is not None:
        setup()
    return [_execute(runner, task) for task in tasks]


def _run_pool(
    runner: RepetitionRunner,
    tasks: Sequence[RepetitionTask],
    n_workers: int,
    scheduling_policy: str,
    setup: Optional[WorkerSetup],
    start_method: str,
) -> List[RepetitionResult]:
    # A dead worker breaks the executor; pending results raise BrokenProcessPool.
    with ProcessPoolExecutor(
        max_workers=n_workers,
        mp_context=mp.get_context(start_method),
        initializer=_initialize_worker,
        initargs=(runner, setup),
    ) as executor:
        if scheduling_policy == "static":
            return list(
                executor.map(
                    _run_task, tasks, chunksize=static_chunksize(len(tasks), n_workers)
                )
            )
        futures = [executor.submit(_run_task, task) for task in tasks]
        return [future.result() for future in futures]


def dispatch_repetitions(
    runner: RepetitionRunner,
    plan: ResamplingPlan,
    backend: str = "fork",
    worker_count: int = 1,
    scheduling_policy: str = "static",
    seed: Optional[int] = None,
    setup: Optional[WorkerSetup] = None,
) -> List[RepetitionResult]:
    """Run every repetition of ``plan`` and return results in plan order.

    The random substreams of all repetitions are derived from ``seed``
    here, once, before any worker starts.

    Args:
        runner: Repetition runner holding data, callbacks and options.
        plan: Resampling plan.
        backend: 'fork' or 'message'.
        worker_count: Number of worker processes; capped at the number of
            repetitions. 1 runs sequentially in this process.
        scheduling_policy: 'static' or 'load_balanced'.
        seed: Root seed of the permutation random stream.
        setup: Worker environment preparation.

    Returns:
        One RepetitionResult per repetition, aligned with ``plan``.

    Raises:
        ParameterError: If the backend is unavailable or the runner cannot be
            serialized for the 'message' backend.
        FoldFailureError: In strict mode, if a fold fails.
        WorkerFailureError: If a worker or the pool fails.
    """
    if backend not in PARALLEL_BACKENDS:
        raise_parameter_error("backend", backend, valid_values=list(PARALLEL_BACKENDS))
    if scheduling_policy not in SCHEDULING_POLICIES:
        raise_parameter_error(
            "scheduling_policy", scheduling_policy, valid_values=list(SCHEDULING_POLICIES)
        )
    if worker_count < 1:
        raise_parameter_error("worker_count", worker_count, constraint="positive integer")

    _, streams = spawn_substreams(seed, len(plan))
    tasks = [
        RepetitionTask(index=i, repetition=rep, stream=stream)
        for i, (rep, stream) in enumerate(zip(plan, streams))
    ]
    n_workers = min(worker_count, len(tasks))

    if n_workers == 1:
        logger.info(f"Running {len(tasks)} repetitions sequentially")
        return _run_sequential(runner, tasks, setup)

    if backend == "fork" and not fork_available():
        raise ParameterError(
            "The 'fork' backend is not available on this platform",
            suggestion="Use parallel_backend='message' or worker_count=1",
        )

    logger.info(
        f"Dispatching {len(tasks)} repetitions to {n_workers} '{backend}' workers "
        f"({scheduling_policy} scheduling)"
    )
    try:
        if backend == "fork":
            results = _run_pool(
                runner, tasks, n_workers, scheduling_policy, setup, "fork"
            )
        else:
            _check_picklable(runner, setup)
            results = _run_pool(
                runner, tasks, n_workers, scheduling_policy, setup, "spawn"
            )
    except CvSmithError:
        raise
    except Exception as err:
        raise WorkerFailureError(
            f"Parallel '{backend}' backend failed: {type(err).__name__}: {err}",
            details={"backend": backend, "worker_count": n_workers},
        ) from err

    if len(results) != len(tasks):
        raise WorkerFailureError(
            f"Expected {len(tasks)} repetition results, received {len(results)}"
        )
    return results
