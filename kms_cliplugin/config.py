"""
Configuration for plugin clients.

Handles loading and validation of the settings used to locate plugin
programs and run them.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ValidationError, field_validator
import yaml

from .common import HashFunc

DEFAULT_EXECUTABLE_PREFIX = "sigstore-kms-"

# ${NAME} or ${NAME:-fallback}
_ENV_REFERENCE = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class ClientConfig(BaseModel):
    """Plugin client settings."""
    executable_prefix: str = DEFAULT_EXECUTABLE_PREFIX
    plugin_dir: Optional[str] = None
    hash_func: HashFunc = HashFunc.SHA256
    forward_stderr: bool = True
    # Level for this package's loggers; None leaves logging untouched.
    log_level: Optional[str] = None

    @field_validator('executable_prefix')
    @classmethod
    def validate_executable_prefix(cls, v):
        """Prefix must be a plain program name fragment."""
        if not v or os.sep in v:
            raise ValueError(f"Invalid executable prefix: {v!r}")
        return v

    @field_validator('hash_func', mode='before')
    @classmethod
    def parse_hash_func(cls, v):
        """Accept hash names such as "sha256" as well as wire ids."""
        if isinstance(v, str):
            try:
                return HashFunc[v.upper().replace("-", "_")]
            except KeyError:
                raise ValueError(f"Unknown hash function: {v}")
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        if v is None:
            return v
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Invalid log level: {v}")
        return level


def _expand(text: str) -> str:
    def replace(match: "re.Match[str]") -> str:
        name, fallback = match.group(1), match.group(2)
        value = os.environ.get(name, fallback)
        if value is None:
            raise ValueError(f"Environment variable {name} not set")
        return value

    return _ENV_REFERENCE.sub(replace, text)


def substitute_environment_variables(config_data: Any) -> Any:
    """
    Expand ``${VAR}`` and ``${VAR:-fallback}`` references in every string
    of a parsed configuration, at any nesting depth.

    Raises:
        ValueError: If a referenced variable is unset and has no fallback
    """
    if isinstance(config_data, str):
        return _expand(config_data)
    if isinstance(config_data, dict):
        return {key: substitute_environment_variables(value) for key, value in config_data.items()}
    if isinstance(config_data, list):
        return [substitute_environment_variables(item) for item in config_data]
    return config_data


def _parse_config_file(config_path: Path) -> Dict[str, Any]:
    text = config_path.read_text()
    if config_path.suffix.lower() in ('.yaml', '.yml'):
        data = yaml.safe_load(text)
    else:
        data = json.loads(text)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration in {config_path} must be a mapping")
    return data


def load_config(config_path: Union[str, Path]) -> ClientConfig:
    """
    Load client settings from a YAML (``.yaml``/``.yml``) or JSON file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file cannot be parsed or the settings are invalid
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        config_data = _parse_config_file(config_path)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Could not parse {config_path}: {e}") from e

    try:
        return ClientConfig.model_validate(substitute_environment_variables(config_data))
    except ValidationError as e:
        raise ValueError(f"Invalid configuration in {config_path}: {e}") from e


def create_default_config() -> ClientConfig:
    return ClientConfig()


def validate_config_file(config_path: Union[str, Path]) -> bool:
    """True if ``config_path`` loads into a valid ClientConfig."""
    try:
        load_config(config_path)
    except (OSError, ValueError):
        return False
    return True
