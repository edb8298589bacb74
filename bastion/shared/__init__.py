"""
Shared utilities for Bastion.

Provides access to common functionality used across Gate implementations.
"""

from bastion.shared.gate import (
    GateLogger,
    ConfigLoader,
    PathUtils,
    deep_update,
    get_logger,
)

__all__ = [
    "GateLogger",
    "ConfigLoader",
    "PathUtils",
    "deep_update",
    "get_logger",
]
