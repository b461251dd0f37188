"""Application configuration."""

from .settings import (
    Config,
    ConfigError,
    KafkaSettings,
    LoggingSettings,
    PayloadSettings,
    SchedulerSettings,
    load_config,
    parse_duration,
)

__all__ = [
    'Config',
    'ConfigError',
    'KafkaSettings',
    'LoggingSettings',
    'PayloadSettings',
    'SchedulerSettings',
    'load_config',
    'parse_duration',
]
