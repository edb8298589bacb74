"""
Config Pydantic models.

Shape of the user config file. Keys are camelCase on disk.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class UserSettings(BaseModel):
    """Security settings overridable from the user config file."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    enable_path_validation: Optional[bool] = Field(default=None, alias="enablePathValidation")
    allow_custom_directories: Optional[bool] = Field(default=None, alias="allowCustomDirectories")
    log_access: Optional[bool] = Field(default=None, alias="logAccess")
    max_scan_depth: Optional[int] = Field(default=None, ge=1, alias="maxScanDepth")


class UserConfig(BaseModel):
    """
    The user config file.

    Unknown keys are preserved so that a round trip through this model
    never drops settings owned by other tools.
    """
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    custom_allowed_directories: List[str] = Field(
        default_factory=list,
        alias="customAllowedDirectories",
        description="Extra directories the path validator may allow",
    )
    settings: UserSettings = Field(default_factory=UserSettings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserConfig":
        """Create from dict."""
        return cls.model_validate(data)

    @classmethod
    def default(cls) -> "UserConfig":
        """Contents written by initialize_user_config()."""
        return cls(settings=UserSettings(max_scan_depth=10, log_access=True))
