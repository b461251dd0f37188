"""
Application configuration.

Loads the pusher configuration from a YAML file into validated pydantic
models. A handful of settings can be overridden through environment
variables without editing the file.

Usage:
    from kafka_pusher.config.settings import load_config

    config = load_config("config.yaml")
    for payload in config.payloads:
        print(payload.name, payload.template_path, payload.topic)

Environment Variables:
    KAFKA_PUSHER_BROKERS=host1:9092,host2:9092 - Replace kafka.brokers
    KAFKA_PUSHER_TOPIC=events                  - Replace kafka.topic
    KAFKA_PUSHER_LOG_LEVEL=debug               - Replace logging.level
"""

import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "./config.yaml"

# Environment overrides: variable -> (section, field)
ENV_OVERRIDES: Dict[str, tuple] = {
    'KAFKA_PUSHER_BROKERS': ('kafka', 'brokers'),
    'KAFKA_PUSHER_TOPIC': ('kafka', 'topic'),
    'KAFKA_PUSHER_LOG_LEVEL': ('logging', 'level'),
}

_DURATION_PART = re.compile(r'(\d+(?:\.\d+)?)(ms|s|m|h)')
_DURATION_UNITS = {'ms': 0.001, 's': 1.0, 'm': 60.0, 'h': 3600.0}


class ConfigError(Exception):
    """Raised when the configuration file is unreadable or invalid."""
    pass


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Convert a duration to seconds.

    Accepts numbers (seconds) and strings such as "500ms", "5s", "1m30s".

    Raises:
        ValueError: If the string is not a valid duration
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)

    text = value.strip()
    try:
        return float(text)
    except ValueError:
        pass

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    if pos == 0 or pos != len(text):
        raise ValueError(f"invalid duration: {value!r}")
    return total


# ==============================================================================
# Models
# ==============================================================================

class KafkaSettings(BaseModel):
    """Broker connection and producer settings."""
    brokers: List[str] = Field(min_length=1)
    topic: str = Field(min_length=1)
    client_id: str = "kafka-pusher"
    partition: Optional[int] = None  # None = key-hash balancing
    timeout: float = 10.0  # seconds
    batch_size: int = Field(default=100, ge=1)
    async_send: bool = Field(default=False, alias='async')
    compression: Literal['none', 'gzip', 'snappy', 'lz4', 'zstd'] = 'none'

    model_config = {'populate_by_name': True}

    @field_validator('brokers', mode='before')
    @classmethod
    def split_brokers(cls, v):
        """Allow a comma separated string as well as a list."""
        if isinstance(v, str):
            return [b.strip() for b in v.split(',') if b.strip()]
        return v

    @field_validator('timeout', mode='before')
    @classmethod
    def validate_timeout(cls, v):
        seconds = parse_duration(v)
        if seconds <= 0:
            raise ValueError("timeout must be positive")
        return seconds


class SchedulerSettings(BaseModel):
    """Periodic push settings."""
    enabled: bool = False
    interval: float = 5.0  # seconds
    worker_pool_size: int = Field(default=1, ge=1)

    @field_validator('interval', mode='before')
    @classmethod
    def validate_interval(cls, v):
        seconds = parse_duration(v)
        if seconds <= 0:
            raise ValueError("interval must be positive")
        return seconds


class LoggingSettings(BaseModel):
    """Log output settings."""
    level: str = "info"
    format: Literal['text', 'json'] = "text"
    verbose: bool = False  # log every generated message at DEBUG

    @field_validator('format', mode='before')
    @classmethod
    def lower_format(cls, v):
        return v.lower() if isinstance(v, str) else v


class PayloadSettings(BaseModel):
    """One message stream: a template and where its messages go."""
    name: str = "default"
    template_path: Path
    batch_size: int = Field(default=1, ge=1)
    topic: Optional[str] = None  # defaults to kafka.topic


class Config(BaseModel):
    """Complete application configuration."""
    kafka: KafkaSettings
    scheduler: Optional[SchedulerSettings] = None
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    payloads: List[PayloadSettings] = Field(min_length=1)

    @model_validator(mode='before')
    @classmethod
    def accept_single_payload(cls, data: Any) -> Any:
        """Convert a legacy single ``payload`` mapping into ``payloads``."""
        if isinstance(data, dict) and 'payload' in data and 'payloads' not in data:
            data = dict(data)
            single = data.pop('payload')
            if isinstance(single, dict):
                single = {'name': 'default', **single}
            data['payloads'] = [single]
        return data

    @model_validator(mode='after')
    def default_topics(self) -> 'Config':
        for payload in self.payloads:
            if not payload.topic:
                payload.topic = self.kafka.topic
        names = [p.name for p in self.payloads]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate payload names: {', '.join(duplicates)}")
        return self

    @property
    def scheduler_enabled(self) -> bool:
        return self.scheduler is not None and self.scheduler.enabled


# ==============================================================================
# Loading
# ==============================================================================

def apply_env_overrides(data: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Apply environment variable overrides to raw configuration data.

    Args:
        data: Parsed YAML mapping (not modified)
        environ: Environment to read; defaults to os.environ

    Returns:
        New mapping with overrides applied
    """
    environ = os.environ if environ is None else environ
    result = dict(data)

    for var, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        section_data = dict(result.get(section) or {})
        section_data[key] = value
        result[section] = section_data
        logger.debug(f"Config override from {var}: {section}.{key}")

    return result


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = '.'.join(str(part) for part in item['loc']) or '<root>'
        problems.append(f"{location}: {item['msg']}")
    return '; '.join(problems)


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_PATH,
                environ: Optional[Dict[str, str]] = None) -> Config:
    """
    Read, validate and return the configuration.

    Relative template paths are resolved against the config file directory.

    Raises:
        ConfigError: If the file is unreadable, not YAML, or fails validation
    """
    path = Path(path)
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"failed to read config file {path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"failed to parse config file {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must contain a mapping")

    try:
        config = Config.model_validate(apply_env_overrides(data, environ))
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {_format_validation_error(e)}") from e

    base_dir = path.parent
    for payload in config.payloads:
        if not payload.template_path.is_absolute():
            payload.template_path = base_dir / payload.template_path

    return config
