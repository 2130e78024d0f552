"""Configuration of a resampling evaluation.

``EvaluationConfig`` validates option values on construction. Inconsistent
combinations are not errors: ``resolve`` returns a corrected copy using the
most restrictive safe choice and reports every correction.
"""

import logging
import multiprocessing as mp
import numbers
import os
import warnings
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from cvsmith.utils.errors import ParameterError, raise_parameter_error

logger = logging.getLogger(__name__)

GC_GRANULARITIES = ("none", "repetition", "fold")
PARALLEL_BACKENDS = ("fork", "message")
SCHEDULING_POLICIES = ("static", "load_balanced")


def fork_available() -> bool:
    """Whether the platform supports fork-based worker pools."""
    return "fork" in mp.get_all_start_methods()


def available_cpu_count() -> int:
    return os.cpu_count() or 1


def _is_integer(value: Any) -> bool:
    return isinstance(value, numbers.Integral) and not isinstance(value, bool)


@dataclass(frozen=True)
class EvaluationConfig:
    """Options of a resampling evaluation.

    Attributes:
        compute_unpooled_error: Compute error measures on each fold, default True.
        compute_pooled_error: Compute error measures on the pooled predictions
            of all folds of a repetition, default True.
        compute_train_error: Also compute error measures on the training
            sample, default True.
        run_importance: Perform permutation variable importance assessment.
            None (default) means: only if ``importance_variables`` is given.
        importance_variables: Variables to permute. None means all predictors.
        importance_permutation_count: Number of permutations, default 1000.
        strict_failure_mode: If True, a failing fit or score callback aborts
            the run; otherwise the fold is recorded as absent. Default False.
        gc_granularity: When to run garbage collection: 'none',
            'repetition' (default) or 'fold'.
        parallel_backend: 'fork' (default) or 'message'.
        worker_count: Number of worker processes. None means all CPUs.
        scheduling_policy: 'static' (default) or 'load_balanced'.
        rng_seed: Seed of the permutation random stream. None draws fresh
            entropy.
        collect_benchmarks: Record run metadata, default False.
        compute_distance: Compute mean test-to-training nearest-neighbour
            distances, default False.
        coords: Names of the two coordinate columns, default ('x', 'y').
        verbose: Report progress at INFO level, default True.
    """

    compute_unpooled_error: bool = True
    compute_pooled_error: bool = True
    compute_train_error: bool = True
    run_importance: Optional[bool] = None
    importance_variables: Optional[Tuple[str, ...]] = None
    importance_permutation_count: int = 1000
    strict_failure_mode: bool = False
    gc_granularity: str = "repetition"
    parallel_backend: str = "fork"
    worker_count: Optional[int] = None
    scheduling_policy: str = "static"
    rng_seed: Optional[int] = None
    collect_benchmarks: bool = False
    compute_distance: bool = False
    coords: Tuple[str, str] = ("x", "y")
    verbose: bool = True

    def __post_init__(self) -> None:
        """Validate EvaluationConfig parameters."""
        if self.gc_granularity not in GC_GRANULARITIES:
            raise_parameter_error(
                "gc_granularity", self.gc_granularity, valid_values=list(GC_GRANULARITIES)
            )
        if self.parallel_backend not in PARALLEL_BACKENDS:
            raise_parameter_error(
                "parallel_backend",
                self.parallel_backend,
                valid_values=list(PARALLEL_BACKENDS),
            )
        if self.scheduling_policy not in SCHEDULING_POLICIES:
            raise_parameter_error(
                "scheduling_policy",
                self.scheduling_policy,
                valid_values=list(SCHEDULING_POLICIES),
            )
        if (
            not _is_integer(self.importance_permutation_count)
            or self.importance_permutation_count < 1
        ):
            raise_parameter_error(
                "importance_permutation_count",
                self.importance_permutation_count,
                constraint="positive integer",
            )
        if self.worker_count is not None and (
            not _is_integer(self.worker_count) or self.worker_count < 1
        ):
            raise_parameter_error(
                "worker_count", self.worker_count, constraint="positive integer or None"
            )
        if self.rng_seed is not None and (
            not _is_integer(self.rng_seed) or self.rng_seed < 0
        ):
            raise_parameter_error(
                "rng_seed", self.rng_seed, constraint="non-negative integer or None"
            )
        # numpy integers are stored as int so the config serializes to YAML
        for name in ("importance_permutation_count", "worker_count", "rng_seed"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, int(value))

        coords = tuple(self.coords)
        if len(coords) != 2 or not all(isinstance(c, str) for c in coords):
            raise_parameter_error(
                "coords",
                self.coords,
                constraint="exactly two column names",
                suggestion="Use coords=('x', 'y')",
            )
        object.__setattr__(self, "coords", coords)

        if self.importance_variables is not None:
            variables = self.importance_variables
            if isinstance(variables, str):
                variables = (variables,)
            variables = tuple(variables)
            if not variables or not all(isinstance(v, str) for v in variables):
                raise_parameter_error(
                    "importance_variables",
                    self.importance_variables,
                    constraint="non-empty sequence of column names",
                )
            object.__setattr__(self, "importance_variables", variables)

    @property
    def importance_enabled(self) -> bool:
        """Whether importance is requested, before resolution."""
        if self.run_importance is None:
            return self.importance_variables is not None
        return bool(self.run_importance)

    def resolve(
        self, predictors: Sequence[str] = ()
    ) -> Tuple["EvaluationConfig", List[str]]:
        """Return a consistent copy of this configuration.

        Args:
            predictors: Predictor names of the model, used as default
                importance variables.

        Returns:
            Tuple of (resolved config, list of applied corrections). Each
            correction is also emitted as a ``UserWarning``.
        """
        corrections: List[str] = []
        changes: Dict[str, Any] = {}

        run_importance = self.importance_enabled
        if run_importance and not self.compute_unpooled_error:
            corrections.append(
                "Variable importance is only supported with "
                "compute_unpooled_error=True; disabling importance"
            )
            run_importance = False
        changes["run_importance"] = run_importance
        if run_importance and self.importance_variables is None:
            if not predictors:
                raise ParameterError(
                    "No importance variables given and the model has no predictors",
                    suggestion="Pass importance_variables explicitly",
                )
            changes["importance_variables"] = tuple(predictors)

        if self.parallel_backend == "fork" and not fork_available():
            corrections.append(
                "The 'fork' backend is not available on this platform; "
                "using the 'message' backend"
            )
            changes["parallel_backend"] = "message"

        n_cpus = available_cpu_count()
        if self.worker_count is None:
            changes["worker_count"] = n_cpus
        elif self.worker_count > n_cpus:
            corrections.append(
                f"worker_count={self.worker_count} exceeds the {n_cpus} available "
                f"CPUs; using {n_cpus} workers"
            )
            changes["worker_count"] = n_cpus

        for message in corrections:
            logger.warning(message)
            warnings.warn(message, UserWarning, stacklevel=3)

        return replace(self, **changes), corrections

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "EvaluationConfig":
        """Create a configuration from a mapping of option names.

        Raises:
            ParameterError: If an option name is unknown.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ParameterError(
                f"Unknown configuration option(s): {', '.join(unknown)}",
                suggestion=f"Valid options: {', '.join(sorted(known))}",
            )
        values = dict(options)
        for key in ("importance_variables", "coords"):
            if isinstance(values.get(key), list):
                values[key] = tuple(values[key])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict representation, suitable for YAML/JSON."""
        values = asdict(self)
        for key in ("importance_variables", "coords"):
            if values[key] is not None:
                values[key] = list(values[key])
        return values
