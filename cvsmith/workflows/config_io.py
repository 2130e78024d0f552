"""Reading and writing evaluation configurations.

Supports YAML and JSON files holding a flat mapping of ``EvaluationConfig``
options, optionally nested under an ``evaluation`` key.
"""

import json
import logging
from pathlib import Path
from typing import Union

import yaml

from cvsmith.config import EvaluationConfig
from cvsmith.utils.errors import raise_validation_error

logger = logging.getLogger(__name__)


def load_config(file_path: Union[str, Path]) -> EvaluationConfig:
    """
    Load an evaluation configuration from file.

    Parameters
    ----------
    file_path : str or Path
        Path to a YAML or JSON file

    Returns
    -------
    EvaluationConfig
        Validated configuration

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    ValueError
        If file format is unsupported
    ParameterError
        If the file contains unknown options

    Example
    -------
    >>> from cvsmith.workflows import load_config
    >>> config = load_config("evaluation.yaml")
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    suffix = file_path.suffix.lower()

    with open(file_path) as f:
        if suffix in (".yaml", ".yml"):
            options = yaml.safe_load(f)
        elif suffix == ".json":
            options = json.load(f)
        else:
            raise ValueError(
                f"Unsupported configuration file format: {suffix}. "
                "Use .yaml, .yml, or .json"
            )

    options = options or {}
    if not isinstance(options, dict):
        raise_validation_error(
            f"Configuration file {file_path} must contain a mapping",
            received=type(options).__name__,
        )
    if "evaluation" in options and isinstance(options["evaluation"], dict):
        options = options["evaluation"]

    config = EvaluationConfig.from_dict(options)
    logger.info(f"Loaded configuration from {file_path}")
    return config


def save_config(config: EvaluationConfig, file_path: Union[str, Path]) -> Path:
    """
    Write an evaluation configuration to a YAML or JSON file.

    Parameters
    ----------
    config : EvaluationConfig
        Configuration to write
    file_path : str or Path
        Destination; the suffix selects the format

    Returns
    -------
    Path
        The written file
    """
    file_path = Path(file_path)
    suffix = file_path.suffix.lower()
    if suffix not in (".yaml", ".yml", ".json"):
        raise ValueError(
            f"Unsupported configuration file format: {suffix}. "
            "Use .yaml, .yml, or .json"
        )
    options = config.to_dict()

    with open(file_path, "w") as f:
        if suffix == ".json":
            json.dump(options, f, indent=2)
        else:
            yaml.safe_dump(options, f, sort_keys=False)

    logger.info(f"Saved configuration to {file_path}")
    return file_path
