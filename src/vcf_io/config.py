"""Configuration file support for vcf-io."""

import logging
import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigValidationError
from .models import ValidationLevel

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

CONFIG_TABLE = "vcf_io"


@dataclass
class ValidationConfig:
    """Settings shared by the document API and the CLI."""

    validation: str = "strict"
    fail_fast: bool = True
    check_unique_ids: bool = False
    log_level: str = "INFO"

    @property
    def level(self) -> ValidationLevel:
        return ValidationLevel.from_string(self.validation)


def validate_config(config_dict: dict[str, Any]) -> None:
    """Validate configuration values.

    Raises:
        ConfigValidationError: If any configuration value is invalid.
    """
    if "validation" in config_dict:
        validation = config_dict["validation"]
        if not isinstance(validation, str):
            raise ConfigValidationError(
                f"validation must be a string, got {type(validation).__name__}"
            )
        ValidationLevel.from_string(validation)

    for flag in ("fail_fast", "check_unique_ids"):
        if flag in config_dict and not isinstance(config_dict[flag], bool):
            raise ConfigValidationError(
                f"{flag} must be a boolean, got {type(config_dict[flag]).__name__}"
            )

    if "log_level" in config_dict:
        log_level = config_dict["log_level"]
        if not isinstance(log_level, str):
            raise ConfigValidationError(
                f"log_level must be a string, got {type(log_level).__name__}"
            )
        if log_level.upper() not in VALID_LOG_LEVELS:
            raise ConfigValidationError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{log_level}'"
            )


def load_config(config_path: Path, overrides: dict[str, Any] | None = None) -> ValidationConfig:
    """Load configuration from a TOML file.

    Args:
        config_path: Path to the TOML configuration file.
        overrides: Optional dict of values to override loaded config.

    Returns:
        ValidationConfig instance with loaded values.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        ConfigValidationError: If any configuration value is invalid.
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "rb") as f:
        toml_data = tomllib.load(f)

    config_dict = dict(toml_data.get(CONFIG_TABLE, {}))

    if overrides:
        config_dict.update({k: v for k, v in overrides.items() if v is not None})

    validate_config(config_dict)

    valid_fields = {f.name for f in fields(ValidationConfig)}
    unknown = sorted(k for k in config_dict if k not in valid_fields)
    if unknown:
        logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

    filtered_config = {k: v for k, v in config_dict.items() if k in valid_fields}
    if "log_level" in filtered_config:
        filtered_config["log_level"] = filtered_config["log_level"].upper()

    return ValidationConfig(**filtered_config)
