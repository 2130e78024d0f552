"""CvSmith: parallel spatial and non-spatial resampling error estimation.

Evaluates a model-fitting procedure under repeated cross-validation or
bootstrap resampling, pools predictions per repetition, assesses
permutation variable importance, and distributes repetitions over worker
processes with reproducible random streams.

Layers:
    objects   - immutable plans and results
    primitives - fold evaluation, permutation importance, substreams
    tasks     - repetition runner, parallel dispatcher, aggregator
    workflows - public entry points and configuration files
"""

from cvsmith._version import __version__
from cvsmith.config import EvaluationConfig
from cvsmith.objects import (
    Absent,
    BenchmarkInfo,
    FailureKind,
    Fold,
    FoldResult,
    Ok,
    Repetition,
    RepetitionResult,
    ResamplingPlan,
    ResultBundle,
)
from cvsmith.primitives import Callbacks, ModelSpec
from cvsmith.tasks import WorkerSetup
from cvsmith.utils import (
    CvSmithError,
    DataValidationError,
    FitFailureError,
    FoldFailureError,
    ParameterError,
    ScoreFailureError,
    ValidationError,
    WorkerFailureError,
)
from cvsmith.workflows import evaluate_resampling, load_config, save_config

__all__ = [
    "__version__",
    "Absent",
    "BenchmarkInfo",
    "Callbacks",
    "CvSmithError",
    "DataValidationError",
    "EvaluationConfig",
    "FailureKind",
    "FitFailureError",
    "Fold",
    "FoldFailureError",
    "FoldResult",
    "ModelSpec",
    "Ok",
    "ParameterError",
    "Repetition",
    "RepetitionResult",
    "ResamplingPlan",
    "ResultBundle",
    "ScoreFailureError",
    "ValidationError",
    "WorkerFailureError",
    "WorkerSetup",
    "evaluate_resampling",
    "load_config",
    "save_config",
]
