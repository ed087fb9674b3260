from __future__ import annotations

import json
import os
import pathlib
from copy import deepcopy
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from dsrpackager.packaging.package import DEFAULT_EXTENSIONS, DEFAULT_IGNORE, MANIFEST_FILE_NAME
from dsrpackager.packaging.scanner import CORE_DEPENDENCY, FRAMEWORK_DEPENDENCY
from dsrpackager.packaging.version import Version
from dsrpackager.utils.exceptions import ConfigurationError


class ConfigSchema(BaseModel):
    """Schema for validating configuration data.

    This model defines the expected structure and default values for the
    packager configuration.
    """
    packaging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'extensions': list(DEFAULT_EXTENSIONS),
            'ignore': list(DEFAULT_IGNORE),
            'catalog_file': MANIFEST_FILE_NAME,
            'core_dependency': CORE_DEPENDENCY,
            'framework_dependency': FRAMEWORK_DEPENDENCY,
            'fallback_version': '1.0.0',
            'fallback_dependency_version': None,
            'strict': False,
        },
        description='Packaging settings',
    )
    signing: Dict[str, Any] = Field(
        default_factory=lambda: {
            'key_env': 'DSR_SIGNING_KEY',
            'passphrase_env': 'DSR_SIGNING_PASSPHRASE',
            'purge_env': True,
            'chunk_size': 65536,
        },
        description='Catalog signing settings',
    )
    logging: Dict[str, Any] = Field(
        default_factory=lambda: {
            'level': 'INFO',
            'format': 'text',
            'file': {
                'enabled': False,
                'path': 'logs/dsrpackager.log',
                'rotation': '10 MB',
                'retention': '5 days',
            },
            'console': {
                'enabled': True,
                'level': 'INFO',
            },
        },
        description='Logging settings',
    )

    @model_validator(mode='after')
    def validate_versions(self) -> 'ConfigSchema':
        """Validate that the fallback versions are dotted versions."""
        for key in ('fallback_version', 'fallback_dependency_version'):
            value = self.packaging.get(key)
            if value is None:
                continue
            if Version.try_parse(str(value)) is None:
                raise ValueError(f'packaging.{key} must be a dotted version, got {value!r}.')
            self.packaging[key] = str(value)
        if self.packaging.get('fallback_version') is None:
            raise ValueError('packaging.fallback_version must be set.')
        return self

    @model_validator(mode='after')
    def validate_chunk_size(self) -> 'ConfigSchema':
        """Validate that the signing chunk size is a positive integer."""
        chunk_size = self.signing.get('chunk_size')
        if not isinstance(chunk_size, int) or isinstance(chunk_size, bool) or chunk_size <= 0:
            raise ValueError('signing.chunk_size must be a positive integer.')
        return self


class PackagerSettings(BaseModel):
    """Typed view of the validated configuration used by the pipeline."""

    extensions: List[str]
    ignore: List[str]
    catalog_file: str = MANIFEST_FILE_NAME
    core_dependency: str = CORE_DEPENDENCY
    framework_dependency: str = FRAMEWORK_DEPENDENCY
    fallback_version: str = '1.0.0'
    fallback_dependency_version: Optional[str] = None
    strict: bool = False
    key_env: str = 'DSR_SIGNING_KEY'
    passphrase_env: str = 'DSR_SIGNING_PASSPHRASE'
    purge_env: bool = True
    chunk_size: int = 65536

    @classmethod
    def defaults(cls) -> PackagerSettings:
        return cls.from_config(ConfigSchema().model_dump())

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> PackagerSettings:
        packaging = config.get('packaging', {})
        signing = config.get('signing', {})
        return cls(**packaging, **signing)


class ConfigManager:
    """Configuration manager for the packager.

    Layers, in increasing priority: schema defaults, a YAML or JSON
    configuration file, and environment variables starting with the prefix
    (``DSRPACK_PACKAGING_STRICT=true`` sets ``packaging.strict``).

    Attributes:
        _config_path: Path to the configuration file
        _env_prefix: Prefix for environment variables
        _config: The loaded configuration
        _loaded_from_file: Whether configuration was loaded from a file
        _env_vars_applied: Set of applied environment variables
    """

    def __init__(
            self,
            config_path: Optional[Union[str, pathlib.Path]] = None,
            env_prefix: str = 'DSRPACK_'
    ) -> None:
        """Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
            env_prefix: Prefix for environment variables
        """
        self.name = 'config_manager'
        self._config_path = pathlib.Path(config_path) if config_path else pathlib.Path('dsrpackager.yaml')
        self._env_prefix = env_prefix
        self._config: Dict[str, Any] = {}
        self._loaded_from_file = False
        self._env_vars_applied: Set[str] = set()
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    def initialize(self) -> None:
        """Load configuration from default schema, file, and environment variables.

        Raises:
            ConfigurationError: If the file cannot be parsed or the result is invalid
        """
        self._config = ConfigSchema().model_dump()
        self._load_from_file()
        self._apply_env_vars()
        self._validate_config()
        self._initialized = True

    def _load_from_file(self) -> None:
        """Load configuration from a file.

        Raises:
            ConfigurationError: If the file cannot be parsed
        """
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path, 'r', encoding='utf-8') as f:
                content = f.read()

            if self._config_path.suffix.lower() in ('.yaml', '.yml'):
                file_config = yaml.safe_load(content)
            elif self._config_path.suffix.lower() == '.json':
                file_config = json.loads(content)
            else:
                raise ConfigurationError(
                    f'Unsupported config file format: {self._config_path.suffix}',
                    config_key='config_path'
                )

            if file_config:
                if not isinstance(file_config, dict):
                    raise ConfigurationError(
                        f'Config file {self._config_path} must contain a mapping',
                        config_key='config_path'
                    )
                self._merge_config(file_config)
                self._loaded_from_file = True
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigurationError(
                f'Error parsing config file {self._config_path}: {str(e)}',
                config_key='config_path'
            ) from e

    def _apply_env_vars(self) -> None:
        """Override configuration values with environment variables.

        The first segment after the prefix names the section, the rest is the
        key within it, so ``DSRPACK_SIGNING_KEY_ENV`` sets ``signing.key_env``.
        """
        for env_name, env_value in os.environ.items():
            if not env_name.startswith(self._env_prefix):
                continue

            section, _, key = env_name[len(self._env_prefix):].lower().partition('_')
            if not key or section not in self._config:
                continue
            path = self._resolve_env_path(self._config[section], key)
            self._set_nested_value(self._config[section], path, self._parse_env_value(env_value))
            self._env_vars_applied.add(env_name)

    @staticmethod
    def _resolve_env_path(section: Dict[str, Any], key: str) -> List[str]:
        # Prefer an existing flat key with underscores over a nested path
        if key in section or '_' not in key:
            return [key]
        head, _, rest = key.partition('_')
        if isinstance(section.get(head), dict):
            return [head] + ConfigManager._resolve_env_path(section[head], rest)
        return [key]

    @staticmethod
    def _parse_env_value(value: str) -> Any:
        """Parse environment variable values into appropriate types.

        Args:
            value: The string value from the environment

        Returns:
            The parsed value (bool, int, float, list or string)
        """
        if value.lower() in ('true', 'yes', 'on'):
            return True
        if value.lower() in ('false', 'no', 'off'):
            return False
        if value.lower() in ('null', 'none'):
            return None

        try:
            if value.isdigit() or (value.startswith('-') and value[1:].isdigit()):
                return int(value)
            if value.count('.') == 1:
                return float(value)
        except ValueError:
            pass

        if ',' in value:
            return [item.strip() for item in value.split(',') if item.strip()]
        return value

    def _set_nested_value(self, config: Dict[str, Any], path: List[str], value: Any) -> None:
        """Set a nested value in the configuration dictionary.

        Args:
            config: The configuration dictionary
            path: List of keys forming the path to the value
            value: The value to set
        """
        if not path:
            return

        if len(path) == 1:
            config[path[0]] = value
            return

        key = path[0]
        if key not in config or not isinstance(config[key], dict):
            config[key] = {}

        self._set_nested_value(config[key], path[1:], value)

    def _validate_config(self) -> None:
        """Validate the configuration against the schema.

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        try:
            self._config = ConfigSchema(**self._config).model_dump()
        except ValidationError as e:
            errors = e.errors()
            error_details = ', '.join((
                f"{'.'.join((str(loc) for loc in error['loc']))}: {error['msg']}"
                for error in errors
            ))
            raise ConfigurationError(
                f'Invalid configuration: {error_details}',
                details={'validation_errors': errors}
            ) from e

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by key.

        Args:
            key: The configuration key (dot-separated for nested values)
            default: Default value if the key doesn't exist

        Returns:
            The configuration value or default

        Raises:
            ConfigurationError: If the manager isn't initialized
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot access configuration before initialization',
                config_key=key
            )

        result: Any = self._config
        try:
            for part in key.split('.'):
                result = result[part]
            return result
        except (KeyError, TypeError):
            return default

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value by key, in memory only.

        Raises:
            ConfigurationError: If the manager isn't initialized or the value is invalid
        """
        if not self._initialized:
            raise ConfigurationError(
                'Cannot modify configuration before initialization',
                config_key=key
            )

        new_config = deepcopy(self._config)
        self._set_nested_value(new_config, key.split('.'), value)

        try:
            self._config = ConfigSchema(**new_config).model_dump()
        except ValidationError as e:
            raise ConfigurationError(
                f'Invalid configuration value for {key}: {str(e)}',
                config_key=key,
                details={'validation_errors': e.errors()}
            ) from e

    def settings(self) -> PackagerSettings:
        """Get the typed settings used by the packaging pipeline."""
        if not self._initialized:
            raise ConfigurationError('Cannot access configuration before initialization')
        try:
            return PackagerSettings.from_config(self._config)
        except ValidationError as e:
            raise ConfigurationError(f'Invalid packaging settings: {e}') from e

    def _merge_config(
            self,
            from_config: Dict[str, Any],
            to_config: Optional[Dict[str, Any]] = None
    ) -> None:
        """Merge a configuration dictionary into another.

        Args:
            from_config: The source configuration
            to_config: The target configuration (defaults to self._config)
        """
        if to_config is None:
            to_config = self._config

        for key, value in from_config.items():
            if key in to_config and isinstance(to_config[key], dict) and isinstance(value, dict):
                self._merge_config(value, to_config[key])
            else:
                to_config[key] = value

    def status(self) -> Dict[str, Any]:
        """Get the status of the configuration manager.

        Returns:
            Dictionary with status information
        """
        return {
            'name': self.name,
            'initialized': self._initialized,
            'config_file': str(self._config_path) if self._loaded_from_file else None,
            'loaded_from_file': self._loaded_from_file,
            'env_vars_applied': len(self._env_vars_applied),
        }
