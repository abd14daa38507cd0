"""Configuration loader for gigmatch."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig
from .validators import check_for_warnings, emit_warnings

DEFAULT_CANDIDATES = [
    Path("config.yaml"),
    Path("config") / "config.yaml",
]


def load_config(
    config_path: Optional[Path] = None,
    require_smtp: bool = False,
) -> tuple[AppConfig, EnvironmentConfig]:
    """
    Load and validate configuration from YAML file and environment variables.

    Config file lookup order:
    1. Use provided config_path if given
    2. Try config.yaml in current directory
    3. Try ./config/config.yaml
    4. Fail with helpful error message

    Args:
        config_path: Optional path to configuration file
        require_smtp: Require SMTP environment variables (dispatch, daemon)

    Returns:
        Tuple of (AppConfig, EnvironmentConfig) with validated configuration

    Raises:
        ConfigurationError: If configuration is invalid or file not found
    """
    config_file = _find_config_file(config_path)
    app_config = load_app_config(config_file)

    try:
        env_config = load_environment_config(require_smtp=require_smtp)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load environment configuration: {e}",
            suggestions=[
                "Copy .env.example to .env and fill in your credentials",
            ],
        ) from e

    return app_config, env_config


def load_app_config(config_file: Path) -> AppConfig:
    """
    Read and validate a single YAML configuration file.

    An empty mapping (``{}``) is accepted and yields all defaults.

    Raises:
        ConfigurationError: If the file cannot be read, parsed or validated
    """
    try:
        with open(config_file, "r") as f:
            config_dict = yaml.safe_load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Configuration file not found: {config_file}",
            suggestions=[
                "Copy config.example.yaml to config.yaml",
                f"Ensure {config_file} exists and is readable",
            ],
        ) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=[
                "Check YAML syntax in your config file",
                "Ensure proper indentation (use spaces, not tabs)",
            ],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[
                f"Ensure {config_file} is readable",
                "Check file permissions",
            ],
        ) from e

    if config_dict is None:
        raise ConfigurationError(
            "Configuration file is empty",
            suggestions=[
                "Copy config.example.yaml to config.yaml",
                "Use '{}' to accept every default",
            ],
        )

    if not isinstance(config_dict, dict):
        raise ConfigurationError(
            "Configuration file must contain a mapping at the top level",
            suggestions=["Review config.example.yaml for correct format"],
        )

    warnings = check_for_warnings(config_dict)
    if warnings:
        emit_warnings(warnings)

    try:
        return AppConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=_format_validation_errors(e.errors()),
            suggestions=[
                "Review config.example.yaml for correct format",
                "Verify field types match the expected schema",
            ],
        ) from e


def _format_validation_errors(raw_errors: List[Dict[str, Any]]) -> List[str]:
    """Turn Pydantic error dicts into one readable line each."""
    errors = []
    for error in raw_errors:
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        error_msg = error["msg"]
        error_type = error["type"]

        if error_type == "missing":
            errors.append(f"Missing required field: {field_path}")
        elif error_type in ["string_type", "int_type", "bool_type", "float_type"]:
            expected_type = error_type.replace("_type", "")
            errors.append(
                f"Invalid type for '{field_path}': expected {expected_type}, got {error.get('input')}"
            )
        elif "enum" in error_type:
            errors.append(f"Invalid value for '{field_path}': {error_msg}")
        else:
            errors.append(f"{field_path}: {error_msg}")
    return errors


def _find_config_file(config_path: Optional[Path] = None) -> Path:
    """
    Find configuration file using fallback logic.

    Raises:
        ConfigurationError: If no config file is found
    """
    if config_path:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[
                    f"Ensure {config_path} exists",
                    "Check the path and try again",
                ],
            )
        return config_path

    for candidate in DEFAULT_CANDIDATES:
        if candidate.exists():
            return candidate

    raise ConfigurationError(
        "Configuration file not found",
        errors=[f"Tried: {candidate}" for candidate in DEFAULT_CANDIDATES],
        suggestions=[
            "Copy config.example.yaml to config.yaml",
            "Use --config flag to specify a custom location",
        ],
    )
