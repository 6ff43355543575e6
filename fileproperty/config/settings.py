"""
Engine Configuration Module

Environment-driven configuration for the file property engine. Values are read
from the process environment, optionally seeded from a ``.env`` file through
python-dotenv, and exposed as upper-case attributes on configuration classes.

Key Features:
- python-dotenv environment variable loading without overriding existing values
- Typed environment getters with required/optional semantics
- Storage roots: private BASE_PATH and public PUBLIC_PATH
- Staging directory holding previously uploaded temporary files
- Platform upload ceilings (POST_MAX_SIZE, UPLOAD_MAX_FILESIZE) in ini notation
- Environment-specific configuration inheritance (development, production, testing)

Environment Variables:
    FILEPROPERTY_ENV              configuration name used by get_config()
    FILEPROPERTY_BASE_PATH        private storage root (default: current directory)
    FILEPROPERTY_PUBLIC_PATH      public storage root (default: BASE_PATH/public)
    FILEPROPERTY_STAGING_DIR      staged upload directory (default: system temp dir)
    FILEPROPERTY_UPLOAD_PATH      default upload directory (default: uploads/)
    FILEPROPERTY_POST_MAX_SIZE    request body ceiling (default: 8M)
    FILEPROPERTY_UPLOAD_MAX_FILESIZE  per-file ceiling (default: 2M)
    FILEPROPERTY_PATH_CACHE_SIZE  normalized path cache entries (default: 256)
    LOG_LEVEL / LOG_FORMAT        logging level and ``json`` or ``console``
"""

import logging
import os
import tempfile
from typing import Any, Dict, Optional

from dotenv import find_dotenv, load_dotenv

from ..utils.exceptions import ConfigurationError
from ..utils.validators import parse_ini_size

logger = logging.getLogger(__name__)


class EnvironmentManager:
    """
    Environment variable management using python-dotenv.

    Loads an optional ``.env`` file once, then provides typed access to the
    process environment.
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
        Load environment variables from the .env file, keeping existing values.

        Raises:
            ConfigurationError: When the .env file cannot be read
        """
        if not self.env_file:
            return

        try:
            load_dotenv(self.env_file, override=False)
            self.logger.debug("Environment variables loaded from %s", self.env_file)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to load environment variables: {str(e)}",
                key='env_file'
            )

    @staticmethod
    def _convert(value: str, var_type: type) -> Any:
        if var_type == bool:
            return value.lower() in ('true', '1', 'yes', 'on')
        elif var_type == int:
            return int(value)
        elif var_type == float:
            return float(value)
        return var_type(value)

    def get_required_env(self, key: str, var_type: type = str) -> Any:
        """
        Get required environment variable with type validation.

        Args:
            key: Environment variable name
            var_type: Expected variable type for validation

        Returns:
            Validated environment variable value

        Raises:
            ConfigurationError: When required variable is missing or invalid
        """
        value = os.getenv(key)
        if value is None:
            raise ConfigurationError(f"Required environment variable '{key}' not found", key=key)

        try:
            return self._convert(value, var_type)
        except (ValueError, TypeError) as e:
            raise ConfigurationError(f"Environment variable '{key}' has invalid type: {str(e)}", key=key)

    def get_optional_env(self, key: str, default: Any = None, var_type: type = str) -> Any:
        """
        Get optional environment variable with default value and type validation.

        Args:
            key: Environment variable name
            default: Default value if variable is not set
            var_type: Expected variable type for validation

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
    Base engine configuration.

    All environment-specific configurations inherit from this class.
    """

    def __init__(self, env_file: Optional[str] = None):
        self.env_manager = EnvironmentManager(env_file)
        self._configure_base_settings()
        self._configure_storage_settings()
        self._configure_upload_limits()
        self._configure_logging_settings()
        self._validate_configuration()

    def _configure_base_settings(self) -> None:
        self.ENV = self.env_manager.get_optional_env('FILEPROPERTY_ENV', 'production')
        self.DEBUG = self.env_manager.get_optional_env('FILEPROPERTY_DEBUG', False, bool)
        self.TESTING = False

    def _configure_storage_settings(self) -> None:
        """Configure storage roots and the staging area."""
        self.BASE_PATH = self.env_manager.get_optional_env('FILEPROPERTY_BASE_PATH', os.getcwd())
        self.PUBLIC_PATH = self.env_manager.get_optional_env(
            'FILEPROPERTY_PUBLIC_PATH',
            os.path.join(self.BASE_PATH, 'public')
        )
        self.UPLOAD_STAGING_DIR = self.env_manager.get_optional_env(
            'FILEPROPERTY_STAGING_DIR',
            tempfile.gettempdir()
        )
        self.DEFAULT_UPLOAD_PATH = self.env_manager.get_optional_env('FILEPROPERTY_UPLOAD_PATH', 'uploads/')
        self.PATH_CACHE_SIZE = self.env_manager.get_optional_env('FILEPROPERTY_PATH_CACHE_SIZE', 256, int)

    def _configure_upload_limits(self) -> None:
        """Configure the platform-wide ceilings used when a property sets no max filesize."""
        self.POST_MAX_SIZE = self.env_manager.get_optional_env('FILEPROPERTY_POST_MAX_SIZE', '8M')
        self.UPLOAD_MAX_FILESIZE = self.env_manager.get_optional_env('FILEPROPERTY_UPLOAD_MAX_FILESIZE', '2M')

    def _configure_logging_settings(self) -> None:
        self.LOG_LEVEL = self.env_manager.get_optional_env('LOG_LEVEL', 'INFO')
        self.LOG_FORMAT = self.env_manager.get_optional_env('LOG_FORMAT', 'json')
        self.LOG_FILE = self.env_manager.get_optional_env('LOG_FILE')

    def _validate_configuration(self) -> None:
        """
        Validate configuration settings for consistency.

        Raises:
            ConfigurationError: When configuration validation fails
        """
        validation_errors = []

        if not self.BASE_PATH:
            validation_errors.append("BASE_PATH is required")

        if not self.PUBLIC_PATH:
            validation_errors.append("PUBLIC_PATH is required")

        if self.PATH_CACHE_SIZE < 0:
            validation_errors.append("PATH_CACHE_SIZE must not be negative")

        for key in ('POST_MAX_SIZE', 'UPLOAD_MAX_FILESIZE'):
            try:
                parse_ini_size(getattr(self, key))
            except ConfigurationError:
                validation_errors.append(f"{key} must be a size in bytes or ini notation")

        if self.LOG_FORMAT.lower() not in ('json', 'console'):
            validation_errors.append("LOG_FORMAT must be 'json' or 'console'")

        if validation_errors:
            error_message = "Configuration validation failed:\n" + "\n".join(
                f"- {error}" for error in validation_errors
            )
            raise ConfigurationError(error_message, details={'errors': validation_errors})

        logger.debug("Configuration validation completed successfully")

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to dictionary for debugging and introspection.

        Returns:
            Dictionary of the upper-case configuration attributes
        """
        config_dict = {}
        for key, value in self.__dict__.items():
            if not key.isupper():
                continue
            if isinstance(value, (str, int, float, bool, list, dict)) or value is None:
                config_dict[key] = value
            else:
                config_dict[key] = str(value)
        return config_dict


class DevelopmentConfig(BaseConfig):
    """Development configuration with verbose console logging."""

    def __init__(self, env_file: Optional[str] = None):
        super().__init__(env_file)
        self._configure_development_overrides()

    def _configure_development_overrides(self) -> None:
        self.DEBUG = True
        self.LOG_LEVEL = 'DEBUG'
        self.LOG_FORMAT = 'console'


class ProductionConfig(BaseConfig):
    """Production configuration requiring explicit storage roots."""

    def __init__(self, env_file: Optional[str] = None):
        super().__init__(env_file)
        self._configure_production_overrides()

    def _configure_production_overrides(self) -> None:
        self.DEBUG = False
        self.BASE_PATH = self.env_manager.get_required_env('FILEPROPERTY_BASE_PATH')
        self.PUBLIC_PATH = self.env_manager.get_required_env('FILEPROPERTY_PUBLIC_PATH')


class TestingConfig(BaseConfig):
    """
    Testing configuration.

    Storage roots default to directories under the system temporary directory
    and can be redirected per test by assigning the attributes directly.
    """

    def __init__(self, env_file: Optional[str] = None):
        super().__init__(env_file)
        self._configure_testing_overrides()

    def _configure_testing_overrides(self) -> None:
        self.TESTING = True
        self.DEBUG = True
        self.LOG_LEVEL = 'DEBUG'
        self.LOG_FORMAT = 'console'

        temp_root = tempfile.gettempdir()
        self.BASE_PATH = os.path.join(temp_root, 'fileproperty-test', 'private')
        self.PUBLIC_PATH = os.path.join(temp_root, 'fileproperty-test', 'public')
        self.UPLOAD_STAGING_DIR = os.path.join(temp_root, 'fileproperty-test', 'staging')


def get_config(config_name: Optional[str] = None) -> BaseConfig:
    """
    Configuration factory returning the configuration for an environment.

    Args:
        config_name: Configuration name; defaults to FILEPROPERTY_ENV or 'production'

    Returns:
        Environment-specific configuration instance

    Raises:
        ConfigurationError: When an unknown configuration name is provided
    """
    config_name = config_name or os.getenv('FILEPROPERTY_ENV', 'production')

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
            f"Available configurations: {available_configs}",
            key='config_name'
        )

    config_instance = config_class()
    logger.debug("Configuration '%s' loaded", config_name)
    return config_instance


__all__ = [
    'EnvironmentManager',
    'BaseConfig',
    'DevelopmentConfig',
    'ProductionConfig',
    'TestingConfig',
    'get_config',
]
