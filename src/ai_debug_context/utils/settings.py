import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..core.errors import ConfigurationError
from .config_types import Settings
from .configuration import ConfigurationManager

logger = logging.getLogger(__name__)


# --- Global Configuration Manager Instance ---
_config_manager_instance: Optional[ConfigurationManager] = None


def get_config_manager(
    config_file: Optional[Union[str, Path]] = None, force_reload: bool = False
) -> ConfigurationManager:
    """
    Get the global ConfigurationManager instance, initializing or reloading as needed.

    Args:
        config_file: Optional path to a specific config file. Only honoured when
                     the manager is created or ``force_reload`` is set.
        force_reload: If True, forces re-initialization and reloading of the
                      configuration manager from all sources (defaults, file, env).

    Returns:
        The singleton ConfigurationManager instance.
    """
    global _config_manager_instance

    if _config_manager_instance is None or force_reload:
        logger.debug(
            f"Initializing or reloading ConfigurationManager (force_reload={force_reload})."
        )
        _config_manager_instance = ConfigurationManager(
            settings_cls=Settings,
            config_file_path=config_file,
        )
        try:
            _config_manager_instance.load_config(force_reload=force_reload)
        except ConfigurationError as e:
            logger.error(f"Initial configuration loading failed: {e}")
    elif config_file is not None:
        logger.warning(
            f"get_config_manager called with config_file='{config_file}' but "
            f"force_reload=False. Returning existing manager instance."
        )

    return _config_manager_instance


def load_settings(
    config_file: Optional[Union[str, Path]] = None,
    force_reload: bool = False,
    debug: bool = False,
    workspace_root: Optional[Union[str, Path]] = None,
) -> Settings:
    """
    Load settings using the singleton ConfigurationManager.

    Args:
        config_file: Optional path to a specific configuration file to use.
        force_reload: If True, forces reloading the configuration from all sources
                      before returning the settings object.
        debug: If True, enables debug logging level.
        workspace_root: Optional workspace root overriding the configured one.

    Returns:
        A populated Settings object. Falls back to defaults if loading fails.

    Raises:
        ConfigurationError: If creating even a default Settings object fails.
    """
    manager = get_config_manager(config_file=config_file, force_reload=force_reload)

    overrides: Dict[str, Any] = {}
    if debug:
        overrides["log_level"] = "DEBUG"
    if workspace_root is not None:
        overrides["workspace_root"] = str(workspace_root)

    return manager.get_settings(overrides=overrides if overrides else None)
