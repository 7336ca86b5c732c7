"""
Configuration loader for the rules engine.

Loads lookup tables and engine settings from YAML files. Lookup tables are
lists of key paths and values:

    lookups:
      - keys: [Default, FTB, MinLoan]
        value: 100000

Engine settings live under an optional 'telemetry' section.
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import BaseModel, Field

from rules_engine.lookup import NestedLookup


class LookupEntry(BaseModel):
    """A single lookup value and the key path it is stored at."""

    keys: List[str] = Field(..., min_length=1, description="Key path, outermost key first")
    value: Union[bool, int, float, str] = Field(..., description="Value stored at the key path")


class EngineSettings(BaseModel):
    """Runtime settings for hosts embedding the engine."""

    telemetry_enabled: bool = Field(
        default=True,
        description="Whether execution timings are recorded (env: FLOWRULES_TELEMETRY_ENABLED)",
    )


def _read_yaml(config_path: str) -> Dict[str, Any]:
    config_file = Path(config_path)

    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    try:
        with open(config_file, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Invalid YAML in config file {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Config file must contain a YAML dictionary, got {type(data)}")

    return data


def load_lookup_entries(config_path: str) -> List[LookupEntry]:
    """
    Load lookup entries from a YAML file.

    Args:
        config_path: Path to the YAML configuration file

    Returns:
        List of LookupEntry objects in file order

    Raises:
        FileNotFoundError: If the config file doesn't exist
        yaml.YAMLError: If the YAML file is invalid
        ValueError: If the config structure is invalid (missing 'lookups' key, etc.)
    """
    data = _read_yaml(config_path)

    if "lookups" not in data:
        raise ValueError("Config file must contain a 'lookups' key")

    lookups_data = data["lookups"]

    if not isinstance(lookups_data, list):
        raise ValueError(f"'lookups' must be a list, got {type(lookups_data)}")

    entries = []
    for i, entry_data in enumerate(lookups_data):
        if not isinstance(entry_data, dict):
            raise ValueError(f"Lookup at index {i} must be a dictionary, got {type(entry_data)}")

        try:
            entries.append(LookupEntry(**entry_data))
        except Exception as e:
            raise ValueError(f"Invalid lookup configuration at index {i}: {e}") from e

    return entries


def build_lookup(entries: List[LookupEntry]) -> NestedLookup:
    """Build a NestedLookup from lookup entries, later entries overwriting earlier ones."""
    return NestedLookup.from_items((entry.keys, entry.value) for entry in entries)


def load_lookup_config(config_path: str) -> NestedLookup:
    """
    Load a YAML lookup table into a NestedLookup.

    Convenience function combining load_lookup_entries and build_lookup.
    """
    return build_lookup(load_lookup_entries(config_path))


def load_engine_settings(config_path: str) -> EngineSettings:
    """
    Load engine settings from a YAML file.

    The FLOWRULES_TELEMETRY_ENABLED environment variable, when set, takes
    precedence over the file.

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the 'telemetry' section is not a dictionary
    """
    data = _read_yaml(config_path)

    telemetry = data.get("telemetry") or {}
    if not isinstance(telemetry, dict):
        raise ValueError(f"'telemetry' must be a dictionary, got {type(telemetry)}")

    telemetry_enabled = bool(telemetry.get("enabled", True))

    env_value = os.getenv("FLOWRULES_TELEMETRY_ENABLED")
    if env_value is not None:
        telemetry_enabled = env_value.strip().lower() in ("1", "true", "yes")

    return EngineSettings(telemetry_enabled=telemetry_enabled)
