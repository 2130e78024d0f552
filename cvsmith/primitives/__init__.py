"""Layer 2: Primitives - Pure operations.

Model specification, the fold evaluator, permutation importance, random
substreams and test/training distances. No process pools, no file I/O.
"""

from cvsmith.primitives.callbacks import (
    Callbacks,
    ModelSpec,
    metric_difference,
    response_values,
)
from cvsmith.primitives.distance import add_distance, mean_nearest_neighbor_distance
from cvsmith.primitives.fold import FoldEvaluation, FoldOptions, evaluate_fold
from cvsmith.primitives.importance import permutation_importance, permute_column
from cvsmith.primitives.random_streams import spawn_substreams, substream_generator

__all__ = [
    "Callbacks",
    "FoldEvaluation",
    "FoldOptions",
    "ModelSpec",
    "add_distance",
    "evaluate_fold",
    "mean_nearest_neighbor_distance",
    "metric_difference",
    "permutation_importance",
    "permute_column",
    "response_values",
    "spawn_substreams",
    "substream_generator",
]
