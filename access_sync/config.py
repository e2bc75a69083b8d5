"""
Configuration loading and management for Access Sync.

This module handles loading configuration from YAML files and environment variables,
with validation and defaults.
"""

import os
import yaml
import logging
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

SUPPORTED_AUTH_METHODS = ('api_key', 'session', 'bearer', 'token')


class ConfigurationError(Exception):
    """Raised when configuration is invalid or missing required fields."""
    pass


class ConfigLoader:
    """Handles loading and validation of application configuration."""

    # Environment variable mappings for sensitive fields
    ENV_OVERRIDES = {
        'directory.auth.api_key': 'DIRECTORY_API_KEY',
        'directory.auth.password': 'DIRECTORY_PASSWORD',
        'directory.auth.session_token': 'DIRECTORY_SESSION_TOKEN',
    }

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize config loader.

        Args:
            config_path: Path to config file. If None, uses CONFIG_PATH env var or 'config.yaml'
        """
        self.config_path = config_path or os.getenv('CONFIG_PATH', 'config.yaml')
        self.config = {}

    def load(self) -> Dict[str, Any]:
        """
        Load configuration from file and apply environment overrides.

        Returns:
            Parsed and validated configuration dictionary

        Raises:
            ConfigurationError: If config file not found or validation fails
        """
        try:
            with open(self.config_path, 'r') as f:
                self.config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigurationError(f"Configuration file not found: {self.config_path}")
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")

        if not isinstance(self.config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {self.config_path}")

        self._apply_env_overrides()
        self._validate()
        self._apply_defaults()

        logger.info(f"Configuration loaded successfully from {self.config_path}")
        return self.config

    def _apply_env_overrides(self):
        """Apply environment variable overrides for sensitive fields."""
        for config_key, env_var in self.ENV_OVERRIDES.items():
            env_value = os.getenv(env_var)
            if env_value:
                self._set_nested_value(self.config, config_key, env_value)
                logger.debug(f"Applied environment override for {config_key}")

    def _set_nested_value(self, config: Dict, key_path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = key_path.split('.')
        current = config
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[keys[-1]] = value

    def _validate(self):
        """Validate required configuration fields."""
        errors = []

        directory = self.config.get('directory')
        if not isinstance(directory, dict):
            raise ConfigurationError("Configuration validation failed:\n  - Missing directory section")

        if not directory.get('base_url'):
            errors.append("Missing required directory field: base_url")
        elif not str(directory['base_url']).startswith(('http://', 'https://')):
            errors.append("directory.base_url must start with http:// or https://")

        auth = directory.get('auth') or {}
        method = str(auth.get('method', '')).lower()
        if not method:
            errors.append("Missing auth method for directory")
        elif method not in SUPPORTED_AUTH_METHODS:
            errors.append(f"Unsupported auth method '{method}' (expected one of {', '.join(SUPPORTED_AUTH_METHODS)})")
        elif method == 'api_key' and not auth.get('api_key'):
            errors.append("api_key auth requires directory.auth.api_key or DIRECTORY_API_KEY")
        elif method == 'session' and not auth.get('session_token') and not (auth.get('username') and auth.get('password')):
            errors.append("session auth requires username and password (or DIRECTORY_SESSION_TOKEN)")
        elif method in ('bearer', 'token') and not auth.get('token'):
            errors.append("token auth requires directory.auth.token")

        page_size = directory.get('page_size')
        if page_size is not None and (not isinstance(page_size, int) or isinstance(page_size, bool) or page_size <= 0):
            errors.append("directory.page_size must be a positive integer")

        paid_plan = directory.get('paid_plan', 'auto')
        if not isinstance(paid_plan, bool) and paid_plan != 'auto':
            errors.append("directory.paid_plan must be true, false or auto")

        password_length = (self.config.get('credentials') or {}).get('password_length')
        if password_length is not None and (not isinstance(password_length, int) or password_length < 8):
            errors.append("credentials.password_length must be an integer of at least 8")

        if errors:
            raise ConfigurationError("Configuration validation failed:\n" + "\n".join(f"  - {error}" for error in errors))

    def _apply_defaults(self):
        """Apply default values for optional configuration fields."""
        directory_defaults = {
            'name': 'metabase',
            'verify_ssl': True,
            'timeout': 30,
            'page_size': 100,
            'paid_plan': 'auto',
        }
        directory_config = self.config.setdefault('directory', {})
        for key, value in directory_defaults.items():
            directory_config.setdefault(key, value)

        logging_defaults = {
            'level': 'INFO',
            'log_dir': 'logs',
            'rotation': 'daily',
            'retention_days': 7
        }
        logging_config = self.config.setdefault('logging', {})
        for key, value in logging_defaults.items():
            logging_config.setdefault(key, value)

        error_defaults = {
            'max_retries': 3,
            'retry_wait_seconds': 5,
            'retry_backoff': 2.0,
            'max_retry_wait_seconds': 60
        }
        error_config = self.config.setdefault('error_handling', {})
        for key, value in error_defaults.items():
            error_config.setdefault(key, value)

        credentials_config = self.config.setdefault('credentials', {})
        credentials_config.setdefault('password_length', 20)


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Convenience function to load configuration.

    Args:
        config_path: Path to config file

    Returns:
        Loaded configuration dictionary
    """
    loader = ConfigLoader(config_path)
    return loader.load()
