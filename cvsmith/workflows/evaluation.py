"""Resampling-based error estimation and variable importance.

Layer 4: Workflows - Public entry points.

``evaluate_resampling`` validates its inputs, builds or checks the
resampling plan, dispatches the repetitions to workers and assembles the
result bundle.
"""

import logging
import platform
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Union

import pandas as pd

from cvsmith._version import __version__
from cvsmith.config import EvaluationConfig, available_cpu_count
from cvsmith.objects.resampling import ResamplingPlan
from cvsmith.objects.results import BenchmarkInfo, ResultBundle
from cvsmith.primitives.callbacks import Callbacks, ModelSpec
from cvsmith.primitives.distance import add_distance
from cvsmith.primitives.fold import FoldOptions
from cvsmith.tasks.aggregate import aggregate_results
from cvsmith.tasks.dispatch import WorkerSetup, dispatch_repetitions
from cvsmith.tasks.repetition import RepetitionRunner
from cvsmith.utils.errors import ParameterError, raise_validation_error

logger = logging.getLogger(__name__)


def _coerce_plan(plan: Any) -> ResamplingPlan:
    if isinstance(plan, ResamplingPlan):
        return plan
    if isinstance(plan, Mapping):
        return ResamplingPlan.from_mapping(plan)
    if isinstance(plan, (list, tuple)):
        return ResamplingPlan.from_splits(plan)
    raise_validation_error(
        "Resampling plan has an unsupported type",
        expected="ResamplingPlan, mapping or nested list of (train, test) pairs",
        received=type(plan).__name__,
    )


def _build_config(
    config: Optional[EvaluationConfig], options: Dict[str, Any]
) -> EvaluationConfig:
    config = config if config is not None else EvaluationConfig()
    if not options:
        return config
    return EvaluationConfig.from_dict({**config.to_dict(), **options})


def _check_columns(data: pd.DataFrame, columns: Any, what: str) -> None:
    missing = [c for c in columns if c not in data.columns]
    if missing:
        raise_validation_error(
            f"{what} not found in data: {', '.join(map(str, missing))}",
            suggestion=f"Available columns: {', '.join(map(str, data.columns))}",
        )


def evaluate_resampling(
    data: pd.DataFrame,
    formula: Union[ModelSpec, str],
    fit: Callable[..., Any],
    score: Callable[[Any, Any], Mapping[str, Any]],
    predict: Optional[Callable[..., Any]] = None,
    plan: Any = None,
    plan_fn: Optional[Callable[..., Any]] = None,
    plan_args: Optional[Dict[str, Any]] = None,
    model_args: Optional[Dict[str, Any]] = None,
    pred_args: Optional[Dict[str, Any]] = None,
    train_transform: Optional[Callable[[pd.DataFrame, Any], pd.DataFrame]] = None,
    train_params: Any = None,
    test_transform: Optional[Callable[[pd.DataFrame, Any], pd.DataFrame]] = None,
    test_params: Any = None,
    config: Optional[EvaluationConfig] = None,
    worker_setup: Optional[WorkerSetup] = None,
    **options: Any,
) -> ResultBundle:
    """Estimate predictive performance and variable importance by resampling.

    Each repetition of the resampling plan is evaluated by one worker; its
    folds are fitted, predicted and scored in order. Error measures are
    computed per fold (unpooled) and on the pooled predictions of each
    repetition. Permutation variable importance is assessed per fold.

    Args:
        data: Data set with response, predictors and (optionally) coordinates.
        formula: ModelSpec or additive formula string, e.g. ``"y ~ x1 + x2"``.
        fit: ``fit(formula, data, **model_args) -> model``.
        score: ``score(observed, predicted) -> {metric: value}``.
        predict: ``predict(model, newdata, **pred_args)``; defaults to
            ``model.predict(newdata, **pred_args)``.
        plan: Ready resampling plan (ResamplingPlan, mapping or nested list).
        plan_fn: Plan builder called as ``plan_fn(data, coords, **plan_args)``
            when ``plan`` is not given.
        plan_args: Extra arguments of ``plan_fn``.
        model_args: Extra arguments of ``fit``.
        pred_args: Extra arguments of ``predict``.
        train_transform: ``train_transform(data, train_params)`` resampling
            hook for training samples.
        train_params: Parameters of ``train_transform``.
        test_transform: Like ``train_transform`` for test samples.
        test_params: Parameters of ``test_transform``.
        config: EvaluationConfig; keyword ``options`` override its fields.
        worker_setup: Preparation run in each worker before any repetition.
        **options: EvaluationConfig fields, e.g. ``worker_count=4``.

    Returns:
        ResultBundle aligned with the resampling plan.

    Raises:
        ParameterError: On invalid options or callbacks.
        DataValidationError: On inconsistent data or plan.
        FoldFailureError: In strict failure mode, if a fold fails.
        WorkerFailureError: If a worker process or the pool fails.

    Example:
        >>> from cvsmith import ResamplingPlan, evaluate_resampling
        >>> plan = ResamplingPlan.from_splitter(KFold(5, shuffle=True), df,
        ...                                     n_repetitions=10, random_state=1)
        >>> result = evaluate_resampling(
        ...     df, "y ~ x1 + x2", fit=fit_ols, predict=predict_ols, score=mae,
        ...     plan=plan, run_importance=True, rng_seed=42, worker_count=4,
        ... )
        >>> result.pooled_error.mean()
    """
    if not isinstance(data, pd.DataFrame):
        raise_validation_error(
            "data must be a pandas DataFrame", received=type(data).__name__
        )
    if data.empty:
        raise_validation_error("data is empty")

    spec = ModelSpec.coerce(formula)
    _check_columns(data, spec.variables, "Model variables")

    callbacks = Callbacks(
        fit=fit,
        score=score,
        predict=predict,
        model_args=model_args or {},
        pred_args=pred_args or {},
        train_transform=train_transform,
        train_params=train_params,
        test_transform=test_transform,
        test_params=test_params,
    )

    config, corrections = _build_config(config, options).resolve(spec.predictors)
    if config.run_importance:
        _check_columns(data, config.importance_variables, "Importance variables")

    if plan is None:
        if plan_fn is None:
            raise ParameterError(
                "Either 'plan' or 'plan_fn' is required",
                suggestion="Pass a ResamplingPlan or a plan builder function",
            )
        plan = plan_fn(data, list(config.coords), **(plan_args or {}))
    elif plan_fn is not None:
        raise ParameterError("Pass either 'plan' or 'plan_fn', not both")
    plan = _coerce_plan(plan)
    plan.validate(len(data))

    if config.compute_distance:
        plan = add_distance(plan, data, config.coords)

    options_for_folds = FoldOptions(
        compute_unpooled_error=config.compute_unpooled_error,
        compute_pooled_error=config.compute_pooled_error,
        compute_train_error=config.compute_train_error,
        importance_variables=config.importance_variables if config.run_importance else None,
        importance_permutation_count=config.importance_permutation_count,
        strict_failure_mode=config.strict_failure_mode,
        verbose=config.verbose,
    )
    runner = RepetitionRunner(
        data=data,
        spec=spec,
        callbacks=callbacks,
        options=options_for_folds,
        gc_granularity=config.gc_granularity,
    )

    logger.info(
        f"Evaluating {len(plan)} repetitions of '{spec}' "
        f"({sum(plan.n_folds)} folds in total)"
    )
    start_time = datetime.now()
    results = dispatch_repetitions(
        runner,
        plan,
        backend=config.parallel_backend,
        worker_count=config.worker_count,
        scheduling_policy=config.scheduling_policy,
        seed=config.rng_seed,
        setup=worker_setup,
    )
    end_time = datetime.now()
    logger.info(f"Done in {(end_time - start_time).total_seconds():.2f}s")

    benchmark = None
    if config.collect_benchmarks:
        benchmark = BenchmarkInfo(
            start_time=start_time,
            end_time=end_time,
            cpu_count=available_cpu_count(),
            backend=config.parallel_backend,
            worker_count=min(config.worker_count, len(plan)),
            scheduling_policy=config.scheduling_policy,
            python_version=platform.python_version(),
            platform=platform.platform(),
            package_version=__version__,
        )

    return aggregate_results(
        results,
        plan,
        compute_unpooled_error=config.compute_unpooled_error,
        compute_pooled_error=config.compute_pooled_error,
        run_importance=config.run_importance,
        benchmark=benchmark,
        corrections=corrections,
    )
