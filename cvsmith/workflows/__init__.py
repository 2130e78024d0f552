"""Layer 4: Workflows - Public entry points.

Workflows provide the public entry points users call. Configuration file
loading and saving lives here.
"""

from cvsmith.workflows.config_io import load_config, save_config
from cvsmith.workflows.evaluation import evaluate_resampling

__all__ = [
    "evaluate_resampling",
    "load_config",
    "save_config",
]
