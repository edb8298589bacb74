"""
SensitiveGate models.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SensitivityVerdict:
    """Outcome of classifying a path string."""
    is_sensitive: bool
    matched_pattern_description: Optional[str] = None

    def __bool__(self) -> bool:
        return self.is_sensitive

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return asdict(self)
