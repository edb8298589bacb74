"""
Bastion Configuration and Policy Source.

Centralized configuration with:
- Schema-driven settings (env var > user config file > default)
- .env support via python-dotenv
- Platform default and user-custom allowed directories
- Fresh PathPolicy snapshots for the path validator

Usage:
    from bastion.Config import PolicySource

    policy = PolicySource().load()   # call again to pick up config changes
"""

import os
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from bastion.shared.gate import ConfigLoader, GateLogger, PathUtils, deep_update
from bastion.PathGate.models import PathPolicy

from bastion.Config.schema import (
    CONFIG_SCHEMA,
    ConfigField,
    ConfigType,
    ConfigCategory,
    get_schema_by_key,
    schema_to_dict,
)
from bastion.Config.models import UserConfig, UserSettings
from bastion.Config.defaults import (
    describe_blocked_patterns,
    get_always_blocked_patterns,
    get_default_allowed_dirs,
    get_user_config_path,
    is_real_directory,
)

_log = GateLogger.get("Config")

# User config settings that map onto schema keys
_SETTINGS_KEYS = {
    "enable_path_validation": "BASTION_ENABLE_PATH_VALIDATION",
    "allow_custom_directories": "BASTION_ALLOW_CUSTOM_DIRECTORIES",
    "log_access": "BASTION_LOG_ACCESS",
}


class ConfigManager:
    """
    Manages Bastion configuration.

    Priority order:
    1. Environment variables (including a loaded .env file)
    2. User config file settings
    3. Schema defaults
    """

    def __init__(
        self,
        config_path: Optional[str] = None,
        env_file: Optional[str] = None,
    ):
        self._explicit_config_path = config_path
        self._env_file = env_file or os.path.join(os.getcwd(), ".env")
        self._cache: Dict[str, Any] = {}
        self._user_config = UserConfig()
        self.config_path: str = ""
        self._load()

    def _load(self):
        """Load configuration from all sources."""
        # Existing environment variables win over .env entries
        load_dotenv(self._env_file, override=False)

        self.config_path = (
            self._explicit_config_path
            or os.environ.get("BASTION_CONFIG_PATH")
            or get_user_config_path()
        )

        user_config = ConfigLoader.load(self.config_path, UserConfig, create_default=True)
        self._user_config = user_config if user_config is not None else UserConfig()

        file_values = {
            key: getattr(self._user_config.settings, attr)
            for attr, key in _SETTINGS_KEYS.items()
            if getattr(self._user_config.settings, attr) is not None
        }

        for field in CONFIG_SCHEMA:
            # Priority: env var > user config > default
            value = os.environ.get(field.env_var)

            if value is None and field.key in file_values:
                value = file_values[field.key]

            if value is None:
                value = field.default

            self._cache[field.key] = self._convert(field, value)

        self._cache["BASTION_CONFIG_PATH"] = self.config_path

    def _convert_type(self, value: Any, config_type: ConfigType) -> Any:
        """Convert value to appropriate type."""
        if value is None:
            return None

        if config_type == ConfigType.INTEGER:
            return int(value)
        elif config_type == ConfigType.BOOLEAN:
            if isinstance(value, bool):
                return value
            return str(value).lower() in ("true", "1", "yes", "on")
        else:
            return str(value) if value else None

    def _convert(self, field: ConfigField, value: Any) -> Any:
        try:
            converted = self._convert_type(value, field.config_type)
        except (ValueError, TypeError):
            _log.warning(f"Invalid value for {field.key}, using default")
            return field.default

        if field.minimum is not None and converted is not None and converted < field.minimum:
            _log.warning(f"{field.key} must be at least {field.minimum}, using default")
            return field.default

        return converted

    def reload(self):
        """Re-read the environment and the user config file."""
        self._cache.clear()
        self._load()

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._cache.get(key, default)

    def get_all(self) -> Dict[str, Any]:
        """Get all configuration values."""
        return {field.key: self._cache.get(field.key) for field in CONFIG_SCHEMA}

    @property
    def user_config(self) -> UserConfig:
        return self._user_config


# =============================================================================
# User config file
# =============================================================================


def initialize_user_config(config_path: Optional[str] = None) -> bool:
    """
    Create the default user config file if it doesn't exist.

    Returns:
        True if the file exists afterwards
    """
    config_path = config_path or get_user_config_path()
    if os.path.exists(config_path):
        return True

    if not ConfigLoader.save(config_path, UserConfig.default()):
        return False

    _log.info(f"Created default config file at: {config_path}")
    return True


def load_user_config(config_path: Optional[str] = None) -> UserConfig:
    """Load the user config file; missing, empty or corrupt files give an empty config."""
    config_path = config_path or get_user_config_path()
    user_config = ConfigLoader.load(config_path, UserConfig, create_default=True)
    return user_config if user_config is not None else UserConfig()


def update_user_config(updates: Dict[str, Any], config_path: Optional[str] = None) -> bool:
    """
    Deep-merge updates into the user config file and write it back.

    Existing keys not named in updates are preserved.

    Returns:
        True if successful
    """
    config_path = config_path or get_user_config_path()

    existing = ConfigLoader.load(config_path, dict, create_default=True)
    if existing is None:
        _log.error("Refusing to overwrite unreadable config file")
        return False

    merged = deep_update(existing, updates)

    try:
        user_config = UserConfig.from_dict(merged)
    except ValueError as e:
        _log.error(f"Invalid config update: {e}")
        return False

    return ConfigLoader.save(config_path, user_config)


def filter_custom_dirs(directories: List[str], home: Optional[str] = None) -> List[str]:
    """
    Keep only custom directories that are safe to allow.

    Accepted entries exist, are real directories (not symlinks), lie under
    the home directory, and contain no '..' or '~'.
    """
    home = os.path.abspath(home or os.path.expanduser("~"))
    accepted = []

    for directory in directories:
        if not isinstance(directory, str) or not directory:
            continue

        if not os.path.lexists(directory):
            _log.error(f"Custom directory does not exist: {directory}")
            continue

        if os.path.islink(directory):
            _log.error(f"Custom directory blocked (symlink): {directory}")
            continue

        if not is_real_directory(directory):
            _log.error(f"Custom directory is not a directory: {directory}")
            continue

        if not PathUtils.is_sub_path(home, os.path.abspath(directory)):
            _log.error(f"Custom directory blocked (outside home): {directory}")
            continue

        if ".." in directory or "~" in directory:
            _log.error(f"Custom directory blocked (path traversal): {directory}")
            continue

        accepted.append(os.path.abspath(directory))

    return accepted


# =============================================================================
# Policy Source
# =============================================================================


class PolicySource:
    """
    Builds PathPolicy snapshots from configuration.

    Every load() re-reads the environment and the user config file and
    returns a new immutable policy; nothing is shared between snapshots.
    """

    def __init__(
        self,
        manager: Optional[ConfigManager] = None,
        platform: Optional[str] = None,
        home: Optional[str] = None,
    ):
        self._manager = manager
        self._platform = platform
        self._home = home

    def load(self, allowed_roots: Optional[List[str]] = None) -> PathPolicy:
        """
        Build a fresh policy.

        Args:
            allowed_roots: Optional extra containment roots for this snapshot

        Returns:
            PathPolicy snapshot
        """
        if self._manager is None:
            self._manager = ConfigManager()
        else:
            self._manager.reload()

        manager = self._manager

        custom: List[str] = []
        if manager.get("BASTION_ALLOW_CUSTOM_DIRECTORIES"):
            custom = filter_custom_dirs(
                manager.user_config.custom_allowed_directories,
                home=self._home,
            )

        policy = PathPolicy(
            allowed_roots=tuple(allowed_roots) if allowed_roots is not None else None,
            default_allowed=tuple(get_default_allowed_dirs(self._platform, self._home)),
            custom_allowed=tuple(custom),
            blocked_patterns=tuple(get_always_blocked_patterns(self._platform)),
            enforce_whitelist=bool(manager.get("BASTION_ENABLE_PATH_VALIDATION")),
        )

        _log.debug(
            f"Loaded policy: {len(policy.default_allowed)} default and "
            f"{len(policy.custom_allowed)} custom directories"
        )
        return policy


# Global instance
_manager: Optional[ConfigManager] = None


def get_manager() -> ConfigManager:
    """Get or create the global ConfigManager."""
    global _manager
    if _manager is None:
        _manager = ConfigManager()
    return _manager


def reload():
    """Reload configuration from files."""
    global _manager
    _manager = ConfigManager()


def get(key: str, default: Any = None) -> Any:
    """Get a config value."""
    return get_manager().get(key, default)


def get_schema() -> Dict:
    """Get schema as dict."""
    return schema_to_dict()


__all__ = [
    # Settings
    "ConfigManager",
    "ConfigField",
    "ConfigType",
    "ConfigCategory",
    "CONFIG_SCHEMA",
    "get_schema_by_key",
    "get_manager",
    "reload",
    "get",
    "get_schema",
    # User config
    "UserConfig",
    "UserSettings",
    "initialize_user_config",
    "load_user_config",
    "update_user_config",
    "filter_custom_dirs",
    # Policy
    "PolicySource",
    "get_default_allowed_dirs",
    "get_always_blocked_patterns",
    "get_user_config_path",
    "describe_blocked_patterns",
]
