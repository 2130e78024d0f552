"""Permutation-based variable importance.

Layer 2: Primitives - Pure operations.

For a fitted model and its test sample, each predictor in turn is shuffled
relative to the other columns and the change in the error measures is
recorded. Within one trial the *same* row permutation is applied to every
variable, which removes the effect of the particular permutation drawn from
the comparison between variables.
"""

import logging
import math
from typing import Any, Dict, List, Mapping, Sequence

import numpy as np
import pandas as pd

from cvsmith.objects.results import ImportanceRecord
from cvsmith.primitives.callbacks import (
    Callbacks,
    ModelSpec,
    metric_difference,
    response_values,
)
from cvsmith.utils.errors import ScoreFailureError, format_fold_failure

logger = logging.getLogger(__name__)


def permute_column(data: pd.DataFrame, variable: str, permutation: np.ndarray) -> pd.DataFrame:
    """Copy of ``data`` with one column reordered by ``permutation``.

    All other columns, the index and the column dtype are left untouched.
    """
    column = data[variable].iloc[permutation]
    column.index = data.index
    perturbed = data.copy()
    perturbed[variable] = column
    return perturbed


def _is_progress_step(trial: int) -> bool:
    if trial <= 1:
        return False
    exponent = math.log10(trial)
    return exponent == math.floor(exponent)


def permutation_importance(
    model: Any,
    test: pd.DataFrame,
    baseline: Mapping[str, Any],
    spec: ModelSpec,
    callbacks: Callbacks,
    variables: Sequence[str],
    n_permutations: int,
    rng: np.random.Generator,
    strict: bool = False,
    location: str = "fold",
    verbose: bool = True,
) -> ImportanceRecord:
    """Average error degradation caused by permuting each variable.

    Args:
        model: Fitted model of the fold.
        test: Pristine (unperturbed) test sample.
        baseline: Test error record of the unperturbed sample.
        spec: Model specification; provides the response column.
        callbacks: Prediction and error callbacks.
        variables: Variables to permute.
        n_permutations: Number of permutation trials.
        rng: Generator of the repetition's random substream.
        strict: Raise instead of skipping trials whose prediction or scoring fails.
        location: Fold location used in log and error messages.
        verbose: Log progress at INFO level.

    Returns:
        Mapping ``variable -> {metric: mean(baseline - permuted)}``. For
        error measures where lower is better, informative variables get
        negative values; for measures where higher is better, positive
        values. Variables for which every trial failed are left out.

    Raises:
        ScoreFailureError: In strict mode, if a trial fails.
    """
    level = logging.INFO if verbose else logging.DEBUG
    logger.log(level, f"Variable importance for {location}")

    observed = response_values(test, spec.response)
    n_rows = len(test)
    differences: Dict[str, List[Dict[str, float]]] = {v: [] for v in variables}

    for trial in range(1, n_permutations + 1):
        if _is_progress_step(trial):
            logger.log(level, f"  permutation {trial} of {n_permutations}")
        permutation = rng.permutation(n_rows)
        for variable in variables:
            perturbed = permute_column(test, variable, permutation)
            try:
                predicted = callbacks.predict_model(model, perturbed)
                permuted_error = callbacks.score_predictions(observed, predicted)
            except Exception as err:
                message = format_fold_failure(
                    f"permutation {trial} of '{variable}'", location, err
                )
                if strict:
                    raise ScoreFailureError(
                        message, details={"variable": variable, "trial": trial}
                    ) from err
                logger.debug(message)
                continue
            differences[variable].append(metric_difference(baseline, permuted_error))

    record: ImportanceRecord = {}
    for variable in variables:
        trials = differences[variable]
        if not trials:
            logger.warning(
                f"All {n_permutations} permutations of '{variable}' failed in "
                f"{location}; importance is absent"
            )
            continue
        record[variable] = _mean_by_metric(trials)
    return record


def _mean_by_metric(trials: List[Dict[str, float]]) -> Dict[str, float]:
    metrics: List[str] = []
    for trial in trials:
        for metric in trial:
            if metric not in metrics:
                metrics.append(metric)
    return {
        metric: float(np.mean([t[metric] for t in trials if metric in t]))
        for metric in metrics
    }
