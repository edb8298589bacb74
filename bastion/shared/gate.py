"""
Shared Gate utilities for Bastion.

Everything the individual Gates have in common:
- GateLogger: namespaced loggers under "bastion"
- ConfigLoader: JSON config files in and out of pydantic models
- PathUtils: lexical containment and directory creation
- deep_update: recursive dict merge used by config updates
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import (
    Any,
    Optional,
    Type,
    TypeVar,
    Union,
)

ROOT_LOGGER_NAME = "bastion"
LOG_FORMAT = "[%(name)s] %(levelname)s: %(message)s"


# =============================================================================
# GateLogger - Unified logging for all Gates
# =============================================================================


class GateLogger:
    """
    Hands out one logger per gate, all children of "bastion".

    The "bastion" logger gets a single stream handler the first time any
    gate asks for a logger; applications that configure logging
    themselves keep their own handlers.
    """

    _configured = False

    @classmethod
    def _ensure_configured(cls):
        if cls._configured:
            return

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        if not root_logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root_logger.addHandler(handler)
            root_logger.setLevel(logging.INFO)

        cls._configured = True

    @classmethod
    def get(cls, gate_name: str) -> logging.Logger:
        """
        Get the logger for a gate.

        Args:
            gate_name: Gate name, optionally dotted (e.g. "PathGate", "ReaderGate.audit")
        """
        cls._ensure_configured()
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{gate_name}")

    @classmethod
    def set_level(cls, level: Union[int, str], gate_name: Optional[str] = None):
        """
        Set the level of one gate, or of every gate when gate_name is None.

        Accepts numeric levels or names such as "DEBUG".
        """
        if isinstance(level, str):
            level = logging.getLevelName(level.upper())
            if not isinstance(level, int):
                raise ValueError(f"Unknown log level: {level}")

        if gate_name:
            cls.get(gate_name).setLevel(level)
        else:
            cls._ensure_configured()
            logging.getLogger(ROOT_LOGGER_NAME).setLevel(level)


# =============================================================================
# ConfigLoader - JSON config files
# =============================================================================


ConfigT = TypeVar("ConfigT")


def _build(model_class: Type[ConfigT], data: dict) -> ConfigT:
    if hasattr(model_class, "from_dict"):
        return model_class.from_dict(data)
    if hasattr(model_class, "model_validate"):
        return model_class.model_validate(data)
    return model_class(**data)


def _serialize(config: Any) -> Any:
    if hasattr(config, "to_dict"):
        return config.to_dict()
    if hasattr(config, "model_dump"):
        return config.model_dump(mode="json")
    return dict(config)


class ConfigLoader:
    """
    Loads and saves JSON config files.

    Failures are logged and reported through the return value: load gives
    None for an unreadable file, save gives False.
    """

    @staticmethod
    def load(
        path: Union[str, Path],
        model_class: Type[ConfigT],
        create_default: bool = True,
    ) -> Optional[ConfigT]:
        """
        Load a JSON object into model_class.

        Args:
            path: Config file location
            model_class: Class with from_dict(), model_validate() or keyword construction
            create_default: Return model_class() for a missing or empty file

        Returns:
            Instance of model_class, or None if the file is missing (and no
            default was requested), corrupt, or fails validation
        """
        path = Path(path)
        logger = GateLogger.get("ConfigLoader")

        if not path.exists():
            return model_class() if create_default else None

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Cannot read config file {path}: {e.strerror}")
            return None

        if not raw.strip():
            logger.warning(f"Config file is empty: {path}")
            return model_class() if create_default else None

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(
                f"Config file {path} is corrupted ({e}). "
                "Back it up, delete it and re-create it to restore defaults."
            )
            return None

        if not isinstance(data, dict):
            logger.error(f"Config file {path} does not contain a JSON object")
            return None

        try:
            return _build(model_class, data)
        except (TypeError, ValueError) as e:
            logger.error(f"Invalid config in {path}: {e}")
            return None

    @staticmethod
    def save(
        path: Union[str, Path],
        config: Any,
        create_dirs: bool = True,
    ) -> bool:
        """
        Write a config object as indented JSON.

        The file is written next to its destination and moved into place,
        so readers never see a half-written config.

        Returns:
            True if successful
        """
        path = Path(path)
        temp_path = path.with_name(f".{path.name}.tmp")

        try:
            if create_dirs:
                PathUtils.ensure_parent(path)

            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(_serialize(config), f, indent=2, default=str)
            os.replace(temp_path, path)
            return True

        except (OSError, TypeError, ValueError) as e:
            GateLogger.get("ConfigLoader").error(f"Failed to save config to {path}: {e}")
            try:
                temp_path.unlink(missing_ok=True)
            except OSError as cleanup_error:
                GateLogger.get("ConfigLoader").warning(
                    f"Could not remove temporary file {temp_path}: {cleanup_error}"
                )
            return False


# =============================================================================
# PathUtils - Common path operations
# =============================================================================


class PathUtils:
    """Path helpers shared by the Gates."""

    @staticmethod
    def ensure_parent(path: Union[str, Path]) -> None:
        """Create the directory that will hold path."""
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def is_sub_path(parent: str, child: str) -> bool:
        """
        Check whether child is parent itself or lies beneath it.

        Purely lexical: both paths are made absolute and normalized but
        symlinks are not followed. Case-insensitive on Windows.
        """
        if not parent or not child:
            return False

        parent = os.path.abspath(parent)
        child = os.path.abspath(child)

        if os.name == "nt":
            parent = os.path.normcase(parent)
            child = os.path.normcase(child)

        try:
            return os.path.commonpath([parent, child]) == parent
        except ValueError:
            # Different drives on Windows
            return False


# =============================================================================
# Deep update utility
# =============================================================================


def deep_update(base: dict, updates: dict) -> dict:
    """
    Merge updates into base in place and return base.

    Nested dicts are merged key by key; any other value (lists included)
    replaces the old one. None values in updates are ignored.
    """
    for key, value in updates.items():
        if value is None:
            continue
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            deep_update(base[key], value)
        else:
            base[key] = value
    return base


def get_logger(gate_name: str) -> logging.Logger:
    """Shortcut for GateLogger.get()."""
    return GateLogger.get(gate_name)
