"""Configuration for session lifecycle managers and backends."""

from sessionward.config.settings import (
    BaseConfig,
    ConfigurationError,
    DevelopmentConfig,
    EnvironmentManager,
    LifecycleSettings,
    ProductionConfig,
    TestingConfig,
    get_config,
)

__all__ = [
    'BaseConfig',
    'ConfigurationError',
    'DevelopmentConfig',
    'EnvironmentManager',
    'LifecycleSettings',
    'ProductionConfig',
    'TestingConfig',
    'get_config',
]
