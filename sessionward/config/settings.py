"""
Session Configuration Module

Central configuration for session lifecycle managers and their store backends,
with environment-specific variants and environment variable management through
python-dotenv.

Key Features:
- LifecycleSettings: immutable timeout and cookie policy for one manager
- EnvironmentManager: .env loading with typed optional/required lookups
- BaseConfig with Development, Testing and Production overrides
- get_config() factory selecting a configuration by name or SESSIONWARD_ENV

Environment variables:
- SESSION_NAMESPACE, SESSION_IDLE_TIMEOUT, SESSION_RENEWAL_TIMEOUT, SESSION_LIFETIME
  (durations in seconds), SESSION_COOKIE_SECURE
- SESSION_BACKEND (memory | redis), REDIS_URL, REDIS_KEY_PREFIX,
  REDIS_SOCKET_TIMEOUT, REDIS_CONNECT_TIMEOUT, REDIS_RETRY_ATTEMPTS
- LOG_LEVEL, LOG_FORMAT
"""

import logging
import os
from dataclasses import dataclass, replace
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_IDLE_TIMEOUT = timedelta(minutes=15)
DEFAULT_RENEWAL_TIMEOUT = timedelta(minutes=1)
DEFAULT_LIFETIME = timedelta(hours=2)
DEFAULT_COOKIE_NAME_TEMPLATE = "session_{namespace}"

SUPPORTED_BACKENDS = ('memory', 'redis')


class ConfigurationError(Exception):
    """Custom exception for configuration validation errors."""
    pass


@dataclass(frozen=True)
class LifecycleSettings:
    """
    Timeout and cookie policy for a session lifecycle manager.

    Attributes:
        idle_timeout: Inactivity allowed before the session is invalidated
        renewal_timeout: Interval after which the identifier is rotated
        lifetime: Absolute session lifetime, never extended
        cookie_name_template: Cookie name format, receives the namespace
        cookie_path: Cookie path attribute
        cookie_secure: Cookie Secure attribute
        cookie_same_site: Cookie SameSite attribute
    """

    idle_timeout: timedelta = DEFAULT_IDLE_TIMEOUT
    renewal_timeout: timedelta = DEFAULT_RENEWAL_TIMEOUT
    lifetime: timedelta = DEFAULT_LIFETIME
    cookie_name_template: str = DEFAULT_COOKIE_NAME_TEMPLATE
    cookie_path: str = "/"
    cookie_secure: bool = True
    cookie_same_site: str = "Lax"

    def __post_init__(self) -> None:
        for field_name in ('idle_timeout', 'renewal_timeout', 'lifetime'):
            value = getattr(self, field_name)
            if not isinstance(value, timedelta):
                raise ConfigurationError(f"{field_name} must be a timedelta, got {type(value).__name__}")
            if value <= timedelta(0):
                raise ConfigurationError(f"{field_name} must be positive, got {value}")

        if "{namespace}" not in self.cookie_name_template:
            raise ConfigurationError("cookie_name_template must contain '{namespace}'")
        try:
            self.cookie_name_template.format(namespace="namespace")
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(f"Invalid cookie_name_template: {e!r}") from e

        if self.cookie_same_site not in ('Strict', 'Lax', 'None'):
            raise ConfigurationError(f"Invalid cookie_same_site value: {self.cookie_same_site}")

        if self.idle_timeout >= self.lifetime:
            logger.warning(
                "Session idle timeout (%s) is not shorter than lifetime (%s); "
                "sessions will always end at their lifetime deadline",
                self.idle_timeout,
                self.lifetime
            )

    def cookie_name(self, namespace: str) -> str:
        return self.cookie_name_template.format(namespace=namespace)

    def with_overrides(
        self,
        idle_timeout: Optional[timedelta] = None,
        renewal_timeout: Optional[timedelta] = None,
        lifetime: Optional[timedelta] = None
    ) -> "LifecycleSettings":
        """Return a copy with the given timeouts replaced. None keeps the current value."""
        overrides = {
            name: value
            for name, value in (
                ('idle_timeout', idle_timeout),
                ('renewal_timeout', renewal_timeout),
                ('lifetime', lifetime),
            )
            if value is not None
        }
        if not overrides:
            return self
        return replace(self, **overrides)


class EnvironmentManager:
    """
    Environment variable management using python-dotenv with typed lookups.

    Existing process environment values always win over .env file entries.
    """

    def __init__(self, env_file: Optional[str] = None):
        """
        Initialize environment manager.

        Args:
            env_file: Optional path to .env file, defaults to auto-discovery
        """
        self.env_file = env_file or find_dotenv(usecwd=True)
        self.logger = logging.getLogger(f"{__name__}.EnvironmentManager")
        self._load_environment_variables()

    def _load_environment_variables(self) -> None:
        """
        Load environment variables from the .env file if one exists.

        Raises:
            ConfigurationError: When environment loading fails
        """
        if not self.env_file or not Path(self.env_file).exists():
            return

        try:
            load_dotenv(self.env_file, override=False)
            self.logger.debug("Environment variables loaded from %s", self.env_file)
        except OSError as e:
            error_msg = f"Failed to load environment variables: {str(e)}"
            self.logger.error(error_msg)
            raise ConfigurationError(error_msg) from e

    @staticmethod
    def _convert(value: str, var_type: type) -> Any:
        if var_type == bool:
            return value.strip().lower() in ('true', '1', 'yes', 'on')
        if var_type == int:
            return int(value)
        if var_type == float:
            return float(value)
        return var_type(value)

    def get_required_env(self, key: str, var_type: type = str) -> Any:
        """
        Get required environment variable with type validation.

        Raises:
            ConfigurationError: When required variable is missing or invalid
        """
        value = os.getenv(key)
        if value is None:
            raise ConfigurationError(f"Required environment variable '{key}' not found")

        try:
            return self._convert(value, var_type)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Environment variable '{key}' has invalid type: {str(e)}") from e

    def get_optional_env(self, key: str, default: Any = None, var_type: type = str) -> Any:
        """
        Get optional environment variable with default value and type validation.

        Args:
            key: Environment variable name
            default: Default value if variable is not set or invalid
            var_type: Expected variable type

        Returns:
            Environment variable value or default
        """
        value = os.getenv(key)
        if value is None:
            return default

        try:
            return self._convert(value, var_type)
        except (ValueError, TypeError):
            self.logger.warning("Invalid type for '%s', using default: %s", key, default)
            return default


class BaseConfig:
    """
    Base session configuration.

    Subclasses apply environment-specific overrides after the base settings are
    read, then the whole configuration is validated once.
    """

    def __init__(self, env_file: Optional[str] = None):
        self.env_manager = EnvironmentManager(env_file)
        self._configure_session_settings()
        self._configure_backend_settings()
        self._configure_logging_settings()
        self._configure_overrides()
        self._validate_configuration()

    def _configure_session_settings(self) -> None:
        env = self.env_manager
        self.SESSION_NAMESPACE = env.get_optional_env('SESSION_NAMESPACE', 'default')
        self.SESSION_IDLE_TIMEOUT = timedelta(
            seconds=env.get_optional_env(
                'SESSION_IDLE_TIMEOUT', DEFAULT_IDLE_TIMEOUT.total_seconds(), float
            )
        )
        self.SESSION_RENEWAL_TIMEOUT = timedelta(
            seconds=env.get_optional_env(
                'SESSION_RENEWAL_TIMEOUT', DEFAULT_RENEWAL_TIMEOUT.total_seconds(), float
            )
        )
        self.SESSION_LIFETIME = timedelta(
            seconds=env.get_optional_env('SESSION_LIFETIME', DEFAULT_LIFETIME.total_seconds(), float)
        )
        self.SESSION_COOKIE_SECURE = env.get_optional_env('SESSION_COOKIE_SECURE', True, bool)
        self.SESSION_COOKIE_SAMESITE = env.get_optional_env('SESSION_COOKIE_SAMESITE', 'Lax')

    def _configure_backend_settings(self) -> None:
        env = self.env_manager
        self.SESSION_BACKEND = env.get_optional_env('SESSION_BACKEND', 'memory').lower()
        self.REDIS_URL = env.get_optional_env('REDIS_URL', 'redis://localhost:6379/0')
        self.REDIS_KEY_PREFIX = env.get_optional_env('REDIS_KEY_PREFIX', 'sessionward:session:')
        self.REDIS_SOCKET_TIMEOUT = env.get_optional_env('REDIS_SOCKET_TIMEOUT', 5.0, float)
        self.REDIS_CONNECT_TIMEOUT = env.get_optional_env('REDIS_CONNECT_TIMEOUT', 2.0, float)
        self.REDIS_RETRY_ATTEMPTS = env.get_optional_env('REDIS_RETRY_ATTEMPTS', 3, int)
        self.REDIS_RETRY_BACKOFF = env.get_optional_env('REDIS_RETRY_BACKOFF', 0.1, float)

    def _configure_logging_settings(self) -> None:
        self.LOG_LEVEL = self.env_manager.get_optional_env('LOG_LEVEL', 'INFO').upper()
        self.LOG_FORMAT = self.env_manager.get_optional_env('LOG_FORMAT', 'json').lower()

    def _configure_overrides(self) -> None:
        """Hook for environment-specific settings."""

    def _validate_configuration(self) -> None:
        """
        Validate the assembled configuration.

        Raises:
            ConfigurationError: When a setting is out of range
        """
        if self.SESSION_BACKEND not in SUPPORTED_BACKENDS:
            raise ConfigurationError(
                f"Unsupported SESSION_BACKEND '{self.SESSION_BACKEND}'. "
                f"Available backends: {', '.join(SUPPORTED_BACKENDS)}"
            )

        if not self.SESSION_NAMESPACE:
            raise ConfigurationError("SESSION_NAMESPACE must not be empty")

        if self.SESSION_BACKEND == 'redis' and not self.REDIS_URL:
            raise ConfigurationError("REDIS_URL is required when SESSION_BACKEND is 'redis'")

        # Raises ConfigurationError for non-positive durations
        self.lifecycle_settings()

    def lifecycle_settings(self) -> LifecycleSettings:
        """Build the lifecycle settings described by this configuration."""
        return LifecycleSettings(
            idle_timeout=self.SESSION_IDLE_TIMEOUT,
            renewal_timeout=self.SESSION_RENEWAL_TIMEOUT,
            lifetime=self.SESSION_LIFETIME,
            cookie_secure=self.SESSION_COOKIE_SECURE,
            cookie_same_site=self.SESSION_COOKIE_SAMESITE
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return the uppercase settings, for diagnostics."""
        return {
            key: value
            for key, value in vars(self).items()
            if key.isupper()
        }


class DevelopmentConfig(BaseConfig):
    """Development configuration: plain HTTP cookies and readable logs."""

    def _configure_overrides(self) -> None:
        self.SESSION_COOKIE_SECURE = self.env_manager.get_optional_env(
            'SESSION_COOKIE_SECURE', False, bool
        )
        self.LOG_LEVEL = self.env_manager.get_optional_env('LOG_LEVEL', 'DEBUG').upper()
        self.LOG_FORMAT = self.env_manager.get_optional_env('LOG_FORMAT', 'console').lower()


class TestingConfig(BaseConfig):
    """
    Testing configuration for unit and integration tests.

    Always uses the in-memory backend and short timeouts regardless of the
    process environment.
    """

    def _configure_overrides(self) -> None:
        self.SESSION_NAMESPACE = 'test'
        self.SESSION_BACKEND = 'memory'
        self.SESSION_IDLE_TIMEOUT = timedelta(seconds=2)
        self.SESSION_RENEWAL_TIMEOUT = timedelta(seconds=1)
        self.SESSION_LIFETIME = timedelta(seconds=5)
        self.SESSION_COOKIE_SECURE = False
        self.REDIS_RETRY_BACKOFF = 0.0
        self.LOG_FORMAT = 'console'


class ProductionConfig(BaseConfig):
    """Production configuration with strict cookie requirements."""

    def _configure_overrides(self) -> None:
        self.SESSION_COOKIE_SECURE = True

    def _validate_configuration(self) -> None:
        super()._validate_configuration()
        if self.SESSION_COOKIE_SAMESITE == 'None' and not self.SESSION_COOKIE_SECURE:
            raise ConfigurationError("SameSite=None cookies require SESSION_COOKIE_SECURE")


def get_config(config_name: Optional[str] = None) -> BaseConfig:
    """
    Configuration factory returning an environment-specific configuration.

    Args:
        config_name: Optional configuration name, defaults to SESSIONWARD_ENV

    Returns:
        Environment-specific configuration instance

    Raises:
        ConfigurationError: When an invalid configuration name is provided
    """
    config_name = config_name or os.getenv('SESSIONWARD_ENV', 'production')

    config_mapping = {
        'development': DevelopmentConfig,
        'production': ProductionConfig,
        'testing': TestingConfig,
    }

    config_class = config_mapping.get(config_name.lower())
    if not config_class:
        available_configs = ', '.join(config_mapping.keys())
        raise ConfigurationError(
            f"Invalid configuration name '{config_name}'. "
            f"Available configurations: {available_configs}"
        )

    config_instance = config_class()
    logger.info("Configuration '%s' loaded successfully", config_name)
    return config_instance


__all__ = [
    'ConfigurationError',
    'LifecycleSettings',
    'EnvironmentManager',
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'get_config',
    'DEFAULT_IDLE_TIMEOUT',
    'DEFAULT_RENEWAL_TIMEOUT',
    'DEFAULT_LIFETIME',
]
