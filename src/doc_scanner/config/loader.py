"""
Scanner configuration loading and saving.

Files are read as JSON, YAML or TOML by suffix, ``${VAR}`` references are
expanded from the environment, and the result is validated by pydantic.
"""

import json
import os
import re
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import yaml
from pydantic import ValidationError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .models import ScannerConfig
from ..exceptions import ConfigurationError

PathLike = Union[str, Path]

ENV_PREFIX = "DOCSCAN_"

_ENV_REFERENCE = re.compile(r'\$\{([^}:]+)(?::([^}]*))?\}')


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding='utf-8'))


def _read_yaml(path: Path) -> Any:
    # YAML also covers suffix-less files, JSON being a subset of it
    return yaml.safe_load(path.read_text(encoding='utf-8')) or {}


def _read_toml(path: Path) -> Any:
    with path.open('rb') as f:
        return tomllib.load(f)


_READERS: Dict[str, Callable[[Path], Any]] = {
    '.json': _read_json,
    '.yaml': _read_yaml,
    '.yml': _read_yaml,
    '.toml': _read_toml,
}

_PARSE_ERRORS = (json.JSONDecodeError, yaml.YAMLError, tomllib.TOMLDecodeError)


def load_config(config_path: PathLike) -> ScannerConfig:
    """
    Load a scanner configuration file.

    Args:
        config_path: JSON, YAML or TOML file; other suffixes are read as YAML

    Returns:
        Validated configuration

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    reader = _READERS.get(path.suffix.lower(), _read_yaml)
    try:
        data = reader(path)
    except _PARSE_ERRORS as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Configuration in {path} must be a mapping")

    return load_config_from_dict(expand_env_vars(data))


def load_config_from_dict(config_data: Dict[str, Any]) -> ScannerConfig:
    """Validate a configuration mapping, flattening pydantic errors into one message."""
    try:
        return ScannerConfig(**config_data)
    except ValidationError as e:
        problems = [
            f"{' -> '.join(str(part) for part in error['loc'])}: {error['msg']}"
            for error in e.errors()
        ]
        raise ConfigurationError("Configuration validation failed:\n" + "\n".join(problems))


def save_config(config: ScannerConfig, output_path: PathLike, format_type: Optional[str] = None) -> None:
    """Write ``config`` as JSON or YAML (chosen by ``format_type`` or the suffix)."""
    path = Path(output_path)
    format_type = (format_type or path.suffix.lstrip('.')).lower()
    data = config.model_dump(mode="json")

    if format_type == 'json':
        text = json.dumps(data, indent=2, ensure_ascii=False)
    elif format_type in ('yaml', 'yml'):
        text = yaml.safe_dump(data, default_flow_style=False, allow_unicode=True, indent=2)
    else:
        raise ConfigurationError(f"Unsupported format: {format_type}")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')
    except OSError as e:
        raise ConfigurationError(f"Error saving configuration to {path}: {e}") from e


def get_default_config() -> ScannerConfig:
    return ScannerConfig()


def validate_config_file(config_path: PathLike) -> bool:
    """True if the file loads; raises ConfigurationError otherwise."""
    load_config(config_path)
    return True


def expand_env_vars(data: Any, prefix: str = ENV_PREFIX) -> Any:
    """
    Expand ``${VAR}`` and ``${VAR:default}`` in every string of ``data``.

    ``{prefix}VAR`` wins over ``VAR``; an unset variable without a default
    is left as written.
    """
    if isinstance(data, dict):
        return {key: expand_env_vars(value, prefix) for key, value in data.items()}
    if isinstance(data, list):
        return [expand_env_vars(item, prefix) for item in data]
    if not isinstance(data, str):
        return data

    def lookup(match: "re.Match[str]") -> str:
        name, default = match.group(1), match.group(2)
        value = os.environ.get(prefix + name, os.environ.get(name))
        if value is not None:
            return value
        return default if default is not None else match.group(0)

    return _ENV_REFERENCE.sub(lookup, data)
