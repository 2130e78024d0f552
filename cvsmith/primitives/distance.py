"""Distances between test and training locations.

Spatial cross-validation is meant to increase the separation between test
and training samples; the mean nearest-neighbour distance from each test
location to the training locations quantifies it per fold.
"""

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from cvsmith.objects.resampling import ResamplingPlan
from cvsmith.utils.errors import raise_validation_error

logger = logging.getLogger(__name__)

try:
    from scipy.spatial import cKDTree

    SCIPY_AVAILABLE = True
except ImportError:
    SCIPY_AVAILABLE = False
    cKDTree = None  # type: ignore


def mean_nearest_neighbor_distance(
    train_coords: np.ndarray, test_coords: np.ndarray
) -> float:
    """Mean distance from each test location to its nearest training location.

    Args:
        train_coords: Training locations (n_train, 2).
        test_coords: Test locations (n_test, 2).

    Returns:
        Mean nearest-neighbour distance, NaN if either set is empty.
    """
    if not SCIPY_AVAILABLE:
        raise ImportError(
            "scipy is required for test/training distances. "
            "Install with: pip install scipy"
        )
    train_coords = np.asarray(train_coords, dtype=np.float64)
    test_coords = np.asarray(test_coords, dtype=np.float64)
    if len(train_coords) == 0 or len(test_coords) == 0:
        return float("nan")
    tree = cKDTree(train_coords)
    distances, _ = tree.query(test_coords, k=1)
    return float(np.mean(distances))


def add_distance(
    plan: ResamplingPlan,
    data: pd.DataFrame,
    coords: Sequence[str] = ("x", "y"),
) -> ResamplingPlan:
    """Annotate every fold with its mean test-to-training distance.

    Args:
        plan: Resampling plan.
        data: Data set the plan refers to.
        coords: Names of the two coordinate columns.

    Returns:
        Copy of ``plan`` with ``Fold.distance`` set.
    """
    missing = [c for c in coords if c not in data.columns]
    if missing:
        raise_validation_error(
            "Coordinate columns not found in data",
            expected=", ".join(coords),
            received=f"missing {', '.join(missing)}",
        )
    xy = data[list(coords)].to_numpy(dtype=np.float64)
    distances = [
        [mean_nearest_neighbor_distance(xy[fold.train], xy[fold.test]) for fold in rep]
        for rep in plan
    ]
    logger.debug(f"Computed test/training distances for {len(plan)} repetitions")
    return plan.with_distances(distances)
