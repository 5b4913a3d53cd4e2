"""
Defines the ground station configuration model and its loader.
"""

import logging
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

log = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when a configuration file cannot be read or is invalid."""
    pass


class MqttConfig(BaseModel):
    enabled: bool = False
    host: str = "localhost"
    port: int = Field(default=1883, gt=0, lt=65536)
    client_id: str = "gcs_core"
    topic_prefix: str = "gcs"
    username: Optional[str] = None
    password: Optional[str] = None
    keepalive: int = 60


class SequencerConfig(BaseModel):
    mission_type: Literal["land", "underwater"] = "land"
    require_confirmation: bool = True


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    mission_log: Optional[str] = "logs/mission.jsonl"


class GcsConfig(BaseModel):
    mqtt: MqttConfig = Field(default_factory=MqttConfig)
    sequencer: SequencerConfig = Field(default_factory=SequencerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(config_path: Union[str, Path]) -> GcsConfig:
    """
    Loads a YAML configuration file from the given path.

    Missing sections take their defaults; an empty file is a default config.

    Raises:
        ConfigError: If the file is missing, not YAML, or fails validation.
    """
    log.info(f"[Config] Loading configuration from: {config_path}")
    try:
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f)
    except FileNotFoundError:
        raise ConfigError(f"Configuration file not found: {config_path}")
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML file {config_path}: {e}")

    try:
        return GcsConfig.model_validate(config_data or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}")
