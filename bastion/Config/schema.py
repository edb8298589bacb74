"""
Configuration schema for Bastion.

Defines the engine settings with their types, defaults and environment
variable names.
"""

from enum import Enum
from typing import Optional, List, Any
from dataclasses import dataclass


class ConfigType(Enum):
    """Configuration value types."""
    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    PATH = "path"          # File system path


class ConfigCategory(Enum):
    """Configuration categories for grouping."""
    SECURITY = "security"
    LOGGING = "logging"
    LIMITS = "limits"
    PATHS = "paths"


@dataclass
class ConfigField:
    """Definition of a configuration field."""
    key: str
    description: str
    config_type: ConfigType
    category: ConfigCategory
    default: Any = None
    env_var: str = None          # Override env var name (defaults to key)
    minimum: int = None          # Lower bound for integers

    def __post_init__(self):
        if self.env_var is None:
            self.env_var = self.key


# ==================== Schema Definition ====================

CONFIG_SCHEMA: List[ConfigField] = [
    # === Security ===
    ConfigField(
        key="BASTION_ENABLE_PATH_VALIDATION",
        description="Apply the blacklist/whitelist decision to every path",
        config_type=ConfigType.BOOLEAN,
        category=ConfigCategory.SECURITY,
        default=True,
    ),
    ConfigField(
        key="BASTION_ALLOW_CUSTOM_DIRECTORIES",
        description="Honor customAllowedDirectories from the user config file",
        config_type=ConfigType.BOOLEAN,
        category=ConfigCategory.SECURITY,
        default=True,
    ),
    ConfigField(
        key="BASTION_STRICT_SENSITIVE",
        description="Use the extended sensitive-file pattern set",
        config_type=ConfigType.BOOLEAN,
        category=ConfigCategory.SECURITY,
        default=False,
    ),

    # === Logging ===
    ConfigField(
        key="BASTION_LOG_ACCESS",
        description="Write reader operations to the audit log",
        config_type=ConfigType.BOOLEAN,
        category=ConfigCategory.LOGGING,
        default=True,
    ),

    # === Limits ===
    ConfigField(
        key="BASTION_MAX_READ_BYTES",
        description="Largest file the secure reader will return, in bytes",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.LIMITS,
        default=10 * 1024 * 1024,
        minimum=1,
    ),
    ConfigField(
        key="BASTION_SIGNATURE_SCAN_BYTES",
        description="Leading bytes inspected for signature matching",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.LIMITS,
        default=64 * 1024,
        minimum=1,
    ),
    ConfigField(
        key="BASTION_RATE_LIMIT_PER_MINUTE",
        description="Reader requests allowed per caller per minute (0 disables)",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.LIMITS,
        default=100,
        minimum=0,
    ),
    ConfigField(
        key="BASTION_RATE_LIMIT_PER_HOUR",
        description="Reader requests allowed per caller per hour (0 disables)",
        config_type=ConfigType.INTEGER,
        category=ConfigCategory.LIMITS,
        default=500,
        minimum=0,
    ),

    # === Paths ===
    ConfigField(
        key="BASTION_CONFIG_PATH",
        description="User config file (defaults to the platform location)",
        config_type=ConfigType.PATH,
        category=ConfigCategory.PATHS,
        default=None,
    ),
]


def get_schema_by_key(key: str) -> Optional[ConfigField]:
    """Get schema field by key."""
    for field in CONFIG_SCHEMA:
        if field.key == key:
            return field
    return None


def get_schema_by_category(category: ConfigCategory) -> List[ConfigField]:
    """Get all fields in a category."""
    return [f for f in CONFIG_SCHEMA if f.category == category]


def schema_to_dict() -> dict:
    """Convert schema to dict."""
    result = {}
    for cat in ConfigCategory:
        fields = get_schema_by_category(cat)
        result[cat.value] = [
            {
                "key": f.key,
                "description": f.description,
                "type": f.config_type.value,
                "default": f.default,
                "env_var": f.env_var,
            }
            for f in fields
        ]
    return result
