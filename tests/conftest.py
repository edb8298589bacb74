"""
Pytest configuration and fixtures for Bastion tests.
"""

import os
import sys
import shutil
import tempfile
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT))

from bastion.PathGate.models import PathPolicy

# Check for pytest-asyncio
try:
    import pytest_asyncio
    HAS_PYTEST_ASYNCIO = True
except ImportError:
    HAS_PYTEST_ASYNCIO = False

IS_WINDOWS = os.name == "nt"
IS_ROOT = hasattr(os, "geteuid") and os.geteuid() == 0

requires_symlinks = pytest.mark.skipif(IS_WINDOWS, reason="symlinks need privileges on Windows")
skip_if_root = pytest.mark.skipif(IS_ROOT or IS_WINDOWS, reason="permission bits are ignored")

PDF_BYTES = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n"
EXE_BYTES = b"MZ\x90\x00\x03\x00\x00\x00\x04\x00\x00\x00\xff\xff\x00\x00" + b"\x00" * 48


def pytest_collection_modifyitems(config, items):
    """Skip async tests if pytest-asyncio is not installed."""
    if HAS_PYTEST_ASYNCIO:
        return

    import asyncio
    skip_asyncio = pytest.mark.skip(
        reason="pytest-asyncio not installed - async tests require pytest-asyncio"
    )
    for item in items:
        if asyncio.iscoroutinefunction(item.function):
            item.add_marker(skip_asyncio)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests (canonical, no symlinked prefix)."""
    temp_path = Path(os.path.realpath(tempfile.mkdtemp()))
    yield temp_path
    # Cleanup
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def sandbox(temp_dir: Path) -> Path:
    """
    Create an allowed directory tree next to a disallowed one.

    temp_dir/
        sandbox/
            docs/report.pdf, docs/readme.txt, docs/fake.pdf
            nested/deep/file.txt
            node_modules/pkg/index.js
        outside/notes.txt
    """
    root = temp_dir / "sandbox"
    (root / "docs").mkdir(parents=True)
    (root / "docs" / "report.pdf").write_bytes(PDF_BYTES)
    (root / "docs" / "readme.txt").write_text("Hello World")
    (root / "docs" / "fake.pdf").write_bytes(EXE_BYTES)

    (root / "nested" / "deep").mkdir(parents=True)
    (root / "nested" / "deep" / "file.txt").write_text("Nested content")

    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "index.js").write_text("module.exports = {};")

    outside = temp_dir / "outside"
    outside.mkdir()
    (outside / "notes.txt").write_text("not for you")

    return root


@pytest.fixture
def policy(sandbox: Path) -> PathPolicy:
    """Synthetic policy: the sandbox is both whitelisted and the containment root."""
    return PathPolicy(
        allowed_roots=(str(sandbox),),
        default_allowed=(str(sandbox),),
        blocked_patterns=(r"(^|[\\/])node_modules([\\/]|$)",),
        allow_symlinks=True,
        enforce_whitelist=True,
    )


@pytest.fixture
def fake_home(temp_dir: Path, monkeypatch) -> Path:
    """Point the home directory at a temp dir with a Documents folder."""
    home = temp_dir / "home"
    (home / "Documents").mkdir(parents=True)
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture(autouse=True)
def reset_module_state():
    """Reset module-level state between tests."""
    yield

    # Reset Config
    try:
        import bastion.Config as config
        config._manager = None
    except (ImportError, AttributeError):
        pass
