import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, Union

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ValidationError

from ..core.errors import ConfigurationError
from .config_types import Settings

logger = logging.getLogger(__name__)


def _deep_merge(source: Dict[str, Any], destination: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deeply merge two dictionaries. `source` is merged into `destination`.
    """
    for key, value in source.items():
        if (
            isinstance(value, dict)
            and key in destination
            and isinstance(destination[key], dict)
        ):
            destination[key] = _deep_merge(value, destination[key])
        else:
            destination[key] = value
    return destination


class ConfigurationManager:
    """
    Manages loading configuration settings from multiple sources using Pydantic.

    Handles hierarchical loading:
    1. Default values from the Pydantic Settings model.
    2. Values from a base YAML configuration file (ai-debug-context.yaml).
    3. Values from a profile-specific YAML file (e.g., ai-debug-context.ci.yaml).
    4. Values from environment variables (including .env file).
    5. Runtime overrides.
    """

    DEFAULT_CONFIG_FILES = ["ai-debug-context.yaml", "ai-debug-context.yml"]
    ENV_PREFIX = "AI_DEBUG_CONTEXT_"

    def __init__(
        self,
        settings_cls: Type[Settings] = Settings,
        config_file_path: Optional[Union[str, Path]] = None,
        env_prefix: str = ENV_PREFIX,
        dotenv_path: Optional[Union[str, Path]] = None,
        load_dotenv_flag: bool = True,
    ):
        """
        Initialize the ConfigurationManager.

        Args:
            settings_cls: The Pydantic BaseModel class for settings structure.
            config_file_path: Optional path to a specific configuration file.
                               If None, searches for default files.
            env_prefix: Prefix for environment variables.
            dotenv_path: Optional path to a .env file to load.
            load_dotenv_flag: If True, load .env file on initialization.
        """
        if not issubclass(settings_cls, BaseModel):
            raise TypeError(f"{settings_cls.__name__} must be a Pydantic BaseModel.")

        self.settings_cls: Type[Settings] = settings_cls
        self.env_prefix: str = env_prefix
        self.dotenv_path: Optional[Union[str, Path]] = dotenv_path
        self._dotenv_loaded: bool = False
        self.profile: Optional[str] = os.getenv(f"{self.env_prefix}PROFILE")
        self._original_config_file_path = config_file_path
        self._config_file_path: Optional[Path] = self._resolve_config_file_path(
            config_file_path
        )
        self._config: Dict[str, Any] = {}
        self._loaded: bool = False
        self._settings_instance: Optional[Settings] = None

        if load_dotenv_flag:
            self._load_dotenv()

    def _load_dotenv(self) -> None:
        """Load environment variables from a .env file, once per instance."""
        if self._dotenv_loaded:
            return
        dotenv_path = self.dotenv_path
        if dotenv_path is None:
            candidate = Path.cwd() / ".env"
            if candidate.is_file():
                dotenv_path = candidate
        if dotenv_path and Path(dotenv_path).is_file():
            load_dotenv(dotenv_path, override=False)
            logger.info(f"Loaded environment variables from .env file: {dotenv_path}")
            self._dotenv_loaded = True
        else:
            logger.debug("No .env file found to load.")

    def reload(self, force: bool = True) -> None:
        """Reload the configuration from all sources, including the .env file."""
        self._dotenv_loaded = False
        self._settings_instance = None
        self._config_file_path = self._resolve_config_file_path(
            self._original_config_file_path
        )
        self._load_dotenv()
        self.load_config(force_reload=force)

    def _resolve_config_file_path(
        self, specific_path: Optional[Union[str, Path]]
    ) -> Optional[Path]:
        """Find the configuration file path."""
        if specific_path:
            p = Path(specific_path)
            if p.is_file():
                logger.debug(f"Using specified configuration file: {p}")
                return p
            logger.warning(f"Specified configuration file not found: {specific_path}")

        cwd = Path.cwd()
        search_paths: List[Path] = [cwd / name for name in self.DEFAULT_CONFIG_FILES]
        current = cwd.parent
        home = Path.home()
        while current != current.parent and current != home:
            search_paths.extend(current / name for name in self.DEFAULT_CONFIG_FILES)
            current = current.parent
        for path in search_paths:
            try:
                resolved_path = path.resolve()
                if resolved_path.is_file():
                    logger.debug(f"Found configuration file: {resolved_path}")
                    return resolved_path
            except OSError as e:
                logger.debug(f"Could not access potential config file {path}: {e}")

        logger.debug("No configuration file found in standard locations.")
        return None

    def load_config(self, force_reload: bool = False) -> None:
        """Load configuration from all sources."""
        if self._loaded and not force_reload:
            return

        self._config = {}
        self._settings_instance = None

        try:
            defaults = self._load_defaults()
            file_config = self._load_from_file()
            env_config = self._load_from_env()

            # Merge with precedence: defaults < file < env
            self._config = defaults
            _deep_merge(file_config, self._config)
            _deep_merge(env_config, self._config)

            self._loaded = True
            logger.debug("Configuration loaded successfully.")
        except ConfigurationError:
            self._loaded = False
            raise
        except Exception as e:
            self._loaded = False
            logger.error(f"Failed to load configuration: {e}")
            raise ConfigurationError(
                "Configuration loading failed", original_exception=e
            ) from e

    def _load_defaults(self) -> Dict[str, Any]:
        """Load default values from the Pydantic Settings model."""
        try:
            return self.settings_cls().model_dump()
        except Exception as e:
            logger.error(
                f"Critical error getting defaults from {self.settings_cls.__name__}: {e}"
            )
            raise ConfigurationError(
                f"Could not initialize default settings: {e}", original_exception=e
            ) from e

    def _load_single_yaml_file(self, file_path: Path) -> Dict[str, Any]:
        """Load configuration from a single YAML file."""
        try:
            with open(file_path, "r") as f:
                file_config = yaml.safe_load(f)
        except FileNotFoundError:
            logger.debug(f"Configuration file not found: {file_path}")
            return {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML configuration file {file_path}: {e}")
            raise ConfigurationError(
                f"Invalid YAML format in {file_path}",
                context={"path": str(file_path)},
                original_exception=e,
            ) from e
        except OSError as e:
            logger.error(f"Error reading configuration file {file_path}: {e}")
            raise ConfigurationError(
                f"Could not read file {file_path}",
                context={"path": str(file_path)},
                original_exception=e,
            ) from e

        if file_config and isinstance(file_config, dict):
            logger.info(f"Loaded configuration from file: {file_path}")
            return file_config
        if file_config is not None:
            logger.warning(
                f"Configuration file {file_path} does not contain a dictionary."
            )
        return {}

    def _load_from_file(self) -> Dict[str, Any]:
        """Load configuration from base and profile-specific YAML files."""
        config: Dict[str, Any] = {}
        if self._config_file_path:
            config = self._load_single_yaml_file(self._config_file_path)

        if self.profile and self._config_file_path:
            profile_path = self._config_file_path.with_name(
                f"{self._config_file_path.stem}.{self.profile}{self._config_file_path.suffix}"
            )
            if profile_path.is_file():
                _deep_merge(self._load_single_yaml_file(profile_path), config)
            else:
                logger.debug(f"Profile config file not found: {profile_path}")

        return config

    def _load_from_env(self) -> Dict[str, Any]:
        """Load configuration from environment variables.

        ``AI_DEBUG_CONTEXT_LOG_LEVEL`` maps to ``log_level`` and
        ``AI_DEBUG_CONTEXT_LEARNING_MIN_ATTEMPTS`` maps to ``learning.min_attempts``.
        """
        env_config: Dict[str, Any] = {}
        model_fields = self.settings_cls.model_fields

        for env_var, value in os.environ.items():
            if not env_var.startswith(self.env_prefix):
                continue

            key_str = env_var[len(self.env_prefix) :].lower()
            if key_str == "profile":
                continue

            if key_str in model_fields:
                target_type = model_fields[key_str].annotation
                try:
                    env_config[key_str] = self._convert_type(value, target_type)
                    logger.debug(f"Loaded env var '{env_var}' as '{key_str}'.")
                except (ValueError, TypeError) as e:
                    logger.warning(f"Could not convert env var {env_var}: {e}")
                continue

            section, _, field_name = key_str.partition("_")
            field_info = model_fields.get(section)
            nested_cls = field_info.annotation if field_info else None
            if not (
                isinstance(nested_cls, type)
                and issubclass(nested_cls, BaseModel)
                and field_name in nested_cls.model_fields
            ):
                logger.debug(f"Ignoring unrecognised env var '{env_var}'.")
                continue

            target_type = nested_cls.model_fields[field_name].annotation
            try:
                env_config.setdefault(section, {})[field_name] = self._convert_type(
                    value, target_type
                )
                logger.debug(
                    f"Loaded nested env var '{env_var}' as '{section}.{field_name}'."
                )
            except (ValueError, TypeError) as e:
                logger.warning(f"Could not convert env var {env_var}: {e}")
        return env_config

    def _convert_type(self, value: str, target_type: Any) -> Any:
        """Convert string value to the target type."""
        origin_type = getattr(target_type, "__origin__", None)
        args = getattr(target_type, "__args__", [])

        if target_type is bool:
            return value.lower() in ("true", "1", "yes", "y", "on")
        elif target_type is int:
            return int(value)
        elif target_type is float:
            return float(value)
        elif target_type is Path:
            return Path(value)
        elif target_type is str:
            return value
        elif origin_type is Union and type(None) in args:
            non_none_type = next((t for t in args if t is not type(None)), str)
            return self._convert_type(value, non_none_type)
        elif origin_type is list:
            element_type = args[0] if args else str
            return [
                self._convert_type(item.strip(), element_type)
                for item in value.split(",")
                if item.strip()
            ]
        elif origin_type is dict:
            key_type = args[0] if args else str
            value_type = args[1] if len(args) > 1 else str
            result_dict = {}
            for item in value.split(","):
                if "=" in item:
                    k, v = item.split("=", 1)
                    result_dict[self._convert_type(k.strip(), key_type)] = (
                        self._convert_type(v.strip(), value_type)
                    )
            return result_dict

        raise TypeError(f"Unsupported type conversion for {target_type} from string.")

    def get_settings(self, overrides: Optional[Dict[str, Any]] = None) -> Settings:
        """
        Return the final configuration as a validated Pydantic Settings object.

        Args:
            overrides: A dictionary of settings to apply on top of all other sources.

        Returns:
            An instance of the settings_cls populated with the merged configuration.

        Raises:
            ConfigurationError: If configuration fails validation and fallback fails.
        """
        if overrides is None and self._settings_instance is not None:
            return self._settings_instance

        if not self._loaded:
            try:
                self.load_config()
            except ConfigurationError:
                logger.warning(
                    "Configuration loading failed. Attempting to use defaults."
                )
                self._config = self._load_defaults()

        final_config = json.loads(json.dumps(self._config, default=str))
        if overrides:
            final_config = _deep_merge(overrides, final_config)

        try:
            instance = self.settings_cls.model_validate(final_config)
        except ValidationError as e:
            logger.error(f"Failed to validate final configuration: {e}")
            logger.warning(
                "Attempting to return default settings instance due to validation error."
            )
            try:
                instance = self.settings_cls()
            except Exception as e_default:
                logger.critical(
                    f"Failed to create fallback default Settings object: {e_default}"
                )
                raise ConfigurationError(
                    f"Configuration validation failed and fallback failed: {e}",
                    original_exception=e,
                ) from e

        if overrides is None:
            self._settings_instance = instance
        logger.debug("Created settings instance from loaded configuration.")
        return instance
