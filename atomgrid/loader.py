"""
YAML configuration loader with schema validation.

Loads simulation configuration from YAML files and validates it against the
JSON schema shipped in atomgrid/schemas/.
"""

import yaml
import json
from pathlib import Path
from typing import Optional
import jsonschema

from .data_types import SimulationConfig
from .errors import AtomGridError


SCHEMA_DIR = Path(__file__).parent / "schemas"
CONFIG_SCHEMA = "simulation.schema.json"


class ConfigLoadError(AtomGridError):
    """Raised when configuration loading or validation fails"""
    pass


def load_yaml(file_path: Path) -> dict:
    """Load YAML file and return parsed dict"""
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigLoadError(f"File not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigLoadError(f"YAML parse error in {file_path}: {e}")

    # Empty file means "all defaults"
    return data if data is not None else {}


def load_schema(schema_dir: Optional[Path] = None) -> dict:
    """Load the simulation config JSON schema"""
    schema_path = Path(schema_dir or SCHEMA_DIR) / CONFIG_SCHEMA
    if not schema_path.exists():
        raise ConfigLoadError(f"Schema not found: {schema_path}")

    try:
        with open(schema_path, 'r') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigLoadError(f"Invalid JSON schema {schema_path}: {e}")


def validate_config(data: dict, source: str = "<dict>", schema_dir: Optional[Path] = None):
    """Validate raw config dict against the JSON schema"""
    schema = load_schema(schema_dir)
    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        location = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigLoadError(f"Validation error in {source} at {location}: {e.message}")


def config_from_dict(data: dict, source: str = "<dict>", schema_dir: Optional[Path] = None) -> SimulationConfig:
    """Validate a raw dict and build a SimulationConfig"""
    if not isinstance(data, dict):
        raise ConfigLoadError(f"Configuration in {source} must be a mapping, got {type(data).__name__}")

    validate_config(data, source, schema_dir)

    try:
        return SimulationConfig.from_dict(data)
    except (TypeError, ValueError) as e:
        raise ConfigLoadError(f"Invalid configuration in {source}: {e}")


def load_config(file_path: Path, schema_dir: Optional[Path] = None) -> SimulationConfig:
    """
    Load simulation configuration from YAML.

    The file may be flat or nest options under a top-level 'simulation' key.

    Args:
        file_path: Path to YAML config
        schema_dir: Optional override for the schema directory

    Returns:
        SimulationConfig with unspecified options at their defaults

    Raises:
        ConfigLoadError: On missing file, YAML error or schema violation
    """
    data = load_yaml(file_path)

    if isinstance(data, dict) and set(data) == {'simulation'}:
        data = data['simulation'] or {}

    return config_from_dict(data, str(file_path), schema_dir)
