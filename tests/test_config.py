"""
Tests for Config and the Policy Source.
"""

import json
import logging
import os
import pytest
from pathlib import Path

import bastion.Config as config
from bastion.Config import (
    CONFIG_SCHEMA,
    ConfigCategory,
    ConfigManager,
    PolicySource,
    UserConfig,
    describe_blocked_patterns,
    filter_custom_dirs,
    get_always_blocked_patterns,
    get_default_allowed_dirs,
    get_schema_by_key,
    get_user_config_path,
    initialize_user_config,
    load_user_config,
    update_user_config,
)
from bastion.Config.schema import schema_to_dict
from bastion.PathGate.security import is_blocked
from bastion.PathGate.models import PathPolicy

from conftest import requires_symlinks


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove every BASTION_* variable, including any a .env file sets."""
    for field in CONFIG_SCHEMA:
        monkeypatch.delenv(field.env_var, raising=False)
    yield
    for field in CONFIG_SCHEMA:
        os.environ.pop(field.env_var, None)


@pytest.fixture
def config_file(temp_dir: Path) -> Path:
    return temp_dir / "cfg" / "config.json"


@pytest.fixture
def no_env_file(temp_dir: Path) -> str:
    return str(temp_dir / "missing.env")


def write_config(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestSchema:
    """Tests for the configuration schema."""

    def test_keys_are_unique(self):
        keys = [field.key for field in CONFIG_SCHEMA]
        assert len(keys) == len(set(keys))

    def test_get_schema_by_key(self):
        field = get_schema_by_key("BASTION_MAX_READ_BYTES")

        assert field.default == 10 * 1024 * 1024
        assert field.env_var == "BASTION_MAX_READ_BYTES"
        assert get_schema_by_key("NOPE") is None

    def test_schema_to_dict(self):
        """Every category is present in the schema dump."""
        data = schema_to_dict()

        assert set(data) == {category.value for category in ConfigCategory}
        assert any(f["key"] == "BASTION_LOG_ACCESS" for f in data["logging"])


class TestConfigManager:
    """Tests for ConfigManager priority rules."""

    def test_defaults(self, config_file, no_env_file):
        """Without env or file, schema defaults apply."""
        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_ENABLE_PATH_VALIDATION") is True
        assert manager.get("BASTION_ALLOW_CUSTOM_DIRECTORIES") is True
        assert manager.get("BASTION_STRICT_SENSITIVE") is False
        assert manager.get("BASTION_MAX_READ_BYTES") == 10 * 1024 * 1024
        assert manager.get("BASTION_SIGNATURE_SCAN_BYTES") == 64 * 1024
        assert manager.get("BASTION_RATE_LIMIT_PER_MINUTE") == 100
        assert manager.get("BASTION_RATE_LIMIT_PER_HOUR") == 500
        assert manager.get("BASTION_CONFIG_PATH") == str(config_file)

    def test_env_override(self, config_file, no_env_file, monkeypatch):
        """Environment variables are converted to the field type."""
        monkeypatch.setenv("BASTION_MAX_READ_BYTES", "2048")
        monkeypatch.setenv("BASTION_STRICT_SENSITIVE", "yes")

        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_MAX_READ_BYTES") == 2048
        assert manager.get("BASTION_STRICT_SENSITIVE") is True

    def test_file_settings(self, config_file, no_env_file):
        """User config settings override defaults."""
        write_config(config_file, {"settings": {"logAccess": False, "enablePathValidation": False}})

        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_LOG_ACCESS") is False
        assert manager.get("BASTION_ENABLE_PATH_VALIDATION") is False

    def test_env_beats_file(self, config_file, no_env_file, monkeypatch):
        """Environment wins over the user config file."""
        write_config(config_file, {"settings": {"enablePathValidation": False}})
        monkeypatch.setenv("BASTION_ENABLE_PATH_VALIDATION", "true")

        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_ENABLE_PATH_VALIDATION") is True

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_invalid_integer_falls_back(self, config_file, no_env_file, monkeypatch, caplog, value):
        """Unparseable or out-of-range values use the default with a warning."""
        monkeypatch.setenv("BASTION_SIGNATURE_SCAN_BYTES", value)

        with caplog.at_level(logging.WARNING):
            manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_SIGNATURE_SCAN_BYTES") == 64 * 1024
        assert "BASTION_SIGNATURE_SCAN_BYTES" in caplog.text

    def test_rate_limit_zero_allowed(self, config_file, no_env_file, monkeypatch):
        """Zero switches a rate window off; negatives fall back to the default."""
        monkeypatch.setenv("BASTION_RATE_LIMIT_PER_MINUTE", "0")
        monkeypatch.setenv("BASTION_RATE_LIMIT_PER_HOUR", "-1")

        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.get("BASTION_RATE_LIMIT_PER_MINUTE") == 0
        assert manager.get("BASTION_RATE_LIMIT_PER_HOUR") == 500

    def test_dotenv_file(self, temp_dir, config_file, monkeypatch):
        """A .env file is loaded, but existing variables win."""
        env_file = temp_dir / ".env"
        env_file.write_text("BASTION_MAX_READ_BYTES=4096\nBASTION_LOG_ACCESS=false\n")
        monkeypatch.setenv("BASTION_LOG_ACCESS", "true")

        manager = ConfigManager(config_path=str(config_file), env_file=str(env_file))

        assert manager.get("BASTION_MAX_READ_BYTES") == 4096
        assert manager.get("BASTION_LOG_ACCESS") is True

    def test_config_path_from_env(self, config_file, no_env_file, monkeypatch):
        """BASTION_CONFIG_PATH selects the user config file."""
        write_config(config_file, {"customAllowedDirectories": ["/data"]})
        monkeypatch.setenv("BASTION_CONFIG_PATH", str(config_file))

        manager = ConfigManager(env_file=no_env_file)

        assert manager.config_path == str(config_file)
        assert manager.user_config.custom_allowed_directories == ["/data"]

    def test_corrupt_file_gives_empty_config(self, config_file, no_env_file):
        """A corrupt config file does not break startup."""
        config_file.parent.mkdir(parents=True)
        config_file.write_text("{broken")

        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert manager.user_config.custom_allowed_directories == []
        assert manager.get("BASTION_LOG_ACCESS") is True

    def test_reload(self, config_file, no_env_file):
        """reload() picks up file changes."""
        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)
        write_config(config_file, {"settings": {"logAccess": False}})

        manager.reload()

        assert manager.get("BASTION_LOG_ACCESS") is False

    def test_get_all(self, config_file, no_env_file):
        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)

        assert set(manager.get_all()) == {field.key for field in CONFIG_SCHEMA}

    def test_global_manager(self, fake_home, temp_dir, monkeypatch):
        """The module-level accessors share one manager."""
        monkeypatch.chdir(temp_dir)

        assert config.get_manager() is config.get_manager()
        assert config.get("BASTION_STRICT_SENSITIVE") is False
        assert config.get("UNKNOWN", "fallback") == "fallback"

        first = config.get_manager()
        config.reload()
        assert config.get_manager() is not first


class TestUserConfigFile:
    """Tests for initialize/load/update of the user config file."""

    def test_initialize_creates_defaults(self, config_file):
        assert initialize_user_config(str(config_file)) is True

        data = json.loads(config_file.read_text())
        assert data["customAllowedDirectories"] == []
        assert data["settings"] == {"logAccess": True, "maxScanDepth": 10}

    def test_initialize_keeps_existing(self, config_file):
        """An existing file is never overwritten."""
        write_config(config_file, {"customAllowedDirectories": ["/keep"]})

        assert initialize_user_config(str(config_file)) is True
        assert json.loads(config_file.read_text())["customAllowedDirectories"] == ["/keep"]

    def test_load_missing(self, config_file):
        assert load_user_config(str(config_file)) == UserConfig()

    def test_update_deep_merges(self, config_file):
        """Updates merge into nested settings and keep unknown keys."""
        write_config(config_file, {
            "customAllowedDirectories": ["/a"],
            "settings": {"logAccess": True, "theme": "dark"},
            "otherTool": {"enabled": True},
        })

        assert update_user_config({"settings": {"logAccess": False}}, str(config_file)) is True

        data = json.loads(config_file.read_text())
        assert data["settings"] == {"logAccess": False, "theme": "dark"}
        assert data["otherTool"] == {"enabled": True}
        assert data["customAllowedDirectories"] == ["/a"]

    def test_update_creates_file(self, config_file):
        assert update_user_config({"customAllowedDirectories": ["/b"]}, str(config_file)) is True
        assert load_user_config(str(config_file)).custom_allowed_directories == ["/b"]

    def test_update_refuses_corrupt_file(self, config_file):
        """A corrupt file is left alone rather than overwritten."""
        config_file.parent.mkdir(parents=True)
        config_file.write_text("{broken")

        assert update_user_config({"settings": {"logAccess": False}}, str(config_file)) is False
        assert config_file.read_text() == "{broken"

    def test_update_rejects_invalid_values(self, config_file):
        write_config(config_file, {})

        assert update_user_config({"settings": {"maxScanDepth": 0}}, str(config_file)) is False


class TestFilterCustomDirs:
    """Tests for custom directory filtering."""

    @pytest.fixture
    def home(self, temp_dir: Path) -> Path:
        home = temp_dir / "home"
        (home / "Projects").mkdir(parents=True)
        (home / "notes.txt").write_text("x")
        (temp_dir / "elsewhere").mkdir()
        return home

    def test_accepts_real_directory(self, home):
        assert filter_custom_dirs([str(home / "Projects")], home=str(home)) == [str(home / "Projects")]

    def test_rejects_unsafe_entries(self, home, temp_dir, caplog):
        """Missing, non-directory, outside-home and traversal entries are dropped."""
        entries = [
            str(home / "missing"),
            str(home / "notes.txt"),
            str(temp_dir / "elsewhere"),
            str(home / "Projects" / ".." / "Projects"),
            "",
            None,
        ]

        with caplog.at_level(logging.ERROR):
            assert filter_custom_dirs(entries, home=str(home)) == []

        assert "does not exist" in caplog.text
        assert "outside home" in caplog.text
        assert "path traversal" in caplog.text

    @requires_symlinks
    def test_rejects_symlink(self, home):
        os.symlink(home / "Projects", home / "link")

        assert filter_custom_dirs([str(home / "link")], home=str(home)) == []


class TestPolicySource:
    """Tests for PolicySource snapshots."""

    @pytest.fixture
    def source(self, fake_home, config_file, no_env_file) -> PolicySource:
        manager = ConfigManager(config_path=str(config_file), env_file=no_env_file)
        return PolicySource(manager=manager, platform="linux", home=str(fake_home))

    def test_load_builds_policy(self, source, fake_home):
        policy = source.load()

        assert isinstance(policy, PathPolicy)
        assert policy.default_allowed == (str(fake_home / "Documents"),)
        assert policy.custom_allowed == ()
        assert policy.allowed_roots is None
        assert policy.enforce_whitelist is True
        assert is_blocked("/etc/passwd", policy)

    def test_custom_directories(self, source, fake_home, config_file):
        (fake_home / "Projects").mkdir()
        (fake_home / "extra").mkdir()
        write_config(config_file, {"customAllowedDirectories": [str(fake_home / "extra"), "/etc"]})

        assert source.load().custom_allowed == (str(fake_home / "extra"),)

    def test_fresh_snapshot_each_load(self, source, fake_home, config_file):
        """Config changes show up in the next snapshot and leave older ones untouched."""
        first = source.load()
        (fake_home / "extra").mkdir()
        write_config(config_file, {"customAllowedDirectories": [str(fake_home / "extra")]})

        second = source.load()

        assert first.custom_allowed == ()
        assert second.custom_allowed == (str(fake_home / "extra"),)

    def test_custom_directories_disabled(self, source, fake_home, config_file, monkeypatch):
        (fake_home / "extra").mkdir()
        write_config(config_file, {"customAllowedDirectories": [str(fake_home / "extra")]})
        monkeypatch.setenv("BASTION_ALLOW_CUSTOM_DIRECTORIES", "false")

        assert source.load().custom_allowed == ()

    def test_validation_disabled(self, source, monkeypatch):
        monkeypatch.setenv("BASTION_ENABLE_PATH_VALIDATION", "0")

        assert source.load().enforce_whitelist is False

    def test_allowed_roots(self, source, temp_dir):
        policy = source.load(allowed_roots=[str(temp_dir)])

        assert policy.allowed_roots == (str(temp_dir),)


class TestPlatformDefaults:
    """Tests for per-platform defaults."""

    def test_default_dirs_only_existing(self, temp_dir):
        home = temp_dir / "home"
        (home / "Documents").mkdir(parents=True)
        (home / "Movies").mkdir()

        assert get_default_allowed_dirs("linux", str(home)) == [str(home / "Documents")]
        assert get_default_allowed_dirs("darwin", str(home)) == [
            str(home / "Documents"),
            str(home / "Movies"),
        ]

    @requires_symlinks
    def test_default_dirs_skip_symlinks(self, temp_dir):
        home = temp_dir / "home"
        home.mkdir()
        (temp_dir / "target").mkdir()
        os.symlink(temp_dir / "target", home / "Desktop")

        assert get_default_allowed_dirs("linux", str(home)) == []

    @pytest.mark.parametrize("platform, path, blocked", [
        ("linux", "/etc/passwd", True),
        ("linux", "/proc/self/environ", True),
        ("linux", "/home/user/etc/notes.txt", False),
        ("linux", "/ETC/passwd", False),
        ("linux", "/home/user/project/node_modules/pkg/index.js", True),
        ("linux", "/home/user/project/.git/config", True),
        ("linux", "/home/user/project/.github/workflows/ci.yml", False),
        ("darwin", "/System/Library/CoreServices", True),
        ("darwin", "/Users/me/Library/Application Support/app/data", True),
        ("win32", "C:\\Windows\\System32\\drivers", True),
        ("win32", "c:\\windows\\system32", True),
        ("win32", "C:\\Users\\me\\AppData\\Roaming\\app", True),
        ("win32", "C:\\Users\\me\\Documents\\report.pdf", False),
    ])
    def test_blocked_patterns(self, platform, path, blocked):
        patterns = get_always_blocked_patterns(platform)

        candidate = path if path.endswith(("/", "\\")) else path + "/"
        assert any(p.search(candidate) for p in patterns) is blocked

    def test_user_config_path(self, temp_dir, monkeypatch):
        home = str(temp_dir)
        monkeypatch.setenv("APPDATA", str(temp_dir / "Roaming"))

        assert get_user_config_path("linux", home) == os.path.join(home, ".config", "bastion", "config.json")
        assert get_user_config_path("darwin", home) == os.path.join(
            home, "Library", "Application Support", "bastion", "config.json"
        )
        assert get_user_config_path("win32", home) == os.path.join(
            str(temp_dir / "Roaming"), "bastion", "config.json"
        )

    def test_describe_blocked_patterns(self):
        assert "node_modules" in describe_blocked_patterns("linux")
        assert "/etc" in describe_blocked_patterns("linux")
        assert "C:\\Windows" in describe_blocked_patterns("win32")
        assert "/System" in describe_blocked_patterns("darwin")
