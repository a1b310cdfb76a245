"""
Configuration loader for Canary Rollout.

This module provides Pydantic models for the rollout schedule, the health
thresholds that feed the rollback decision, and a loader that merges a YAML
configuration file with environment variables.

Design Principles:
- Strict Schema: percentages are integers in [0, 100], intervals and latency
  ceilings are non-negative, and the failure threshold count is at least 1.
- Unset Means Unevaluated: every `HealthThresholds` field defaults to None,
  which excludes it from violation checks (neither pass nor fail).
- Environment Overrides: any setting can be overridden by an environment
  variable following the nested structure, e.g. `canary.rollback_on.error_rate`
  is overridden by `CANARY_ROLLOUT_CANARY__ROLLBACK_ON__ERROR_RATE`.
- Clear Errors: validation failures are wrapped in `ConfigError`.
"""

import os
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, model_validator
from pydantic_core import PydanticCustomError

DEFAULT_INCREMENT_INTERVAL_MS = 5 * 60 * 1000
ENV_PREFIX = "CANARY_ROLLOUT"

# --- Custom Exceptions ---

class ConfigError(Exception):
    """Custom exception for configuration-related errors."""
    pass

# --- Rollout Models ---

class TrafficShiftConfig(BaseModel):
    """Step schedule for moving traffic from blue to green."""
    initial_percentage: int = Field(0, ge=0, le=100)
    increment_percentage: int = Field(25, ge=0, le=100)
    max_percentage: int = Field(100, ge=0, le=100)
    increment_interval_ms: int = Field(DEFAULT_INCREMENT_INTERVAL_MS, ge=0)

    @model_validator(mode='after')
    def initial_must_not_exceed_max(self):
        if self.initial_percentage > self.max_percentage:
            raise PydanticCustomError(
                "initial_above_max",
                "initial_percentage {initial} must not exceed max_percentage {max}",
                {"initial": self.initial_percentage, "max": self.max_percentage},
            )
        return self

class HealthThresholds(BaseModel):
    """Rollback triggers. Error/latency are ceilings, success rate is a floor."""
    error_rate: Optional[float] = Field(None, ge=0, le=100)
    latency_p95: Optional[float] = Field(None, ge=0)
    latency_p99: Optional[float] = Field(None, ge=0)
    success_rate: Optional[float] = Field(None, ge=0, le=100)

class CanaryConfig(TrafficShiftConfig):
    """Traffic schedule plus the health policy layered on top of it."""
    rollback_on: HealthThresholds = Field(default_factory=HealthThresholds)
    # Opaque to the controller; carried for the caller's metric collectors.
    health_checks: List[Any] = Field(default_factory=list)
    failure_threshold_count: int = Field(3, ge=1)

# --- Application Settings ---

class LoggingSettings(BaseModel):
    """Settings for logging configuration."""
    level: str = Field("INFO", description="The logging level, e.g., DEBUG, INFO, WARNING.")

class DeploymentSettings(BaseModel):
    """Identity of the rollout driven by the replay tool."""
    deployment_id: str = Field(..., min_length=1)
    blue_version: str = Field(..., min_length=1)
    green_version: str = Field(..., min_length=1)

class Settings(BaseModel):
    """Root settings model."""
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    deployment: DeploymentSettings
    canary: CanaryConfig = Field(default_factory=CanaryConfig)

# --- Helper Functions ---

def _load_config_from_yaml(path: Path) -> Dict[str, Any]:
    """Loads the YAML configuration file."""
    if not path.is_file():
        raise ConfigError(f"Configuration file not found at: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML file at {path}: {e}") from e

def _get_env_overrides(prefix: str = ENV_PREFIX) -> Dict[str, Any]:
    """
    Parses environment variables and converts them into a nested dict.
    e.g., CANARY_ROLLOUT_CANARY__ROLLBACK_ON__ERROR_RATE becomes
    {'canary': {'rollback_on': {'error_rate': ...}}}
    """
    overrides: Dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(prefix + "_"):
            continue
        parts = key.removeprefix(prefix).strip("_").lower().split("__")

        # Version labels and ids stay strings even when they look numeric
        if parts[-1] in ('deployment_id', 'blue_version', 'green_version'):
            parsed_value = value
        elif (value.startswith('[') and value.endswith(']')) or \
             (value.startswith('{') and value.endswith('}')) or \
             value.lower() in ['true', 'false', 'null'] or \
             value.replace('.', '', 1).isdigit():
            try:
                parsed_value = json.loads(value.lower() if value.lower() in ['true', 'false', 'null'] else value)
            except json.JSONDecodeError:
                parsed_value = value
        else:
            parsed_value = value

        d = overrides
        for part in parts[:-1]:
            d = d.setdefault(part, {})
        d[parts[-1]] = parsed_value
    return overrides

def _merge_configs(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merges the override dict into the base dict.
    Overwrites values, dictionaries, and lists.
    """
    for key, value in overrides.items():
        if isinstance(value, dict) and key in base and isinstance(base[key], dict):
            base[key] = _merge_configs(base[key], value)
        else:
            base[key] = value
    return base

def _format_validation_error(e: ValidationError) -> str:
    error_details = e.errors()
    error_msg = f"Configuration validation failed with {len(error_details)} error(s):\n"
    for error in error_details:
        loc = " -> ".join(map(str, error['loc'])) if error['loc'] else "root"
        error_msg += f"  - Location: {loc}\n    Message: {error['msg']}\n"
    return error_msg

# --- Public API ---

def parse_canary_config(data: Dict[str, Any]) -> CanaryConfig:
    """Validate a plain dict (e.g. one block of a YAML file) into a CanaryConfig."""
    try:
        return CanaryConfig.model_validate(data or {})
    except ValidationError as e:
        logger.error(_format_validation_error(e))
        raise ConfigError("Failed to validate canary config.") from e

def load_settings(path: str = "settings.yaml") -> Settings:
    """
    Loads, validates, and returns the application settings.

    Steps:
    1. Load the base configuration from the YAML file.
    2. Scan environment variables for overrides (prefixed with "CANARY_ROLLOUT_").
    3. Merge the overrides into the base configuration.
    4. Validate the result against the `Settings` model.

    Raises:
        ConfigError: If the file is not found, cannot be parsed, is empty,
                     or if validation fails.
    """
    logger.info(f"Loading settings from '{path}'...")

    yaml_config = _load_config_from_yaml(Path(path))
    if not yaml_config:
        raise ConfigError(f"YAML file '{path}' is empty or invalid.")
    if not isinstance(yaml_config, dict):
        raise ConfigError(f"YAML file '{path}' must contain a mapping at the top level.")

    env_overrides = _get_env_overrides()
    final_config = _merge_configs(yaml_config, env_overrides)

    try:
        settings = Settings.model_validate(final_config)
        logger.success("Settings loaded and validated successfully.")
        return settings
    except ValidationError as e:
        logger.error(_format_validation_error(e))
        raise ConfigError("Failed to validate settings.") from e
