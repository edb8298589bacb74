"""
Platform defaults for the Policy Source.

Default allowed directories, always-blocked patterns and the user config
location for Windows, macOS and Linux.
"""

import os
import re
import stat
import sys
from typing import List, Optional, Pattern

APP_DIR_NAME = "bastion"
CONFIG_FILE_NAME = "config.json"

# Tool and VCS directories, anchored to a path component
_COMMON_BLOCKED = [
    r"(^|[\\/])node_modules([\\/]|$)",
    r"(^|[\\/])\.git[\\/]",
    r"(^|[\\/])\.vscode[\\/]",
    r"(^|[\\/])\.idea[\\/]",
    r"(^|[\\/])\.next[\\/]",
    r"(^|[\\/])dist[\\/]",
    r"(^|[\\/])build[\\/]",
]

_WINDOWS_BLOCKED = [
    r"^[A-Z]:[\\/]Windows[\\/]",
    r"^[A-Z]:[\\/]Program Files[\\/]",
    r"^[A-Z]:[\\/]Program Files \(x86\)[\\/]",
    r"^[A-Z]:[\\/]ProgramData[\\/]",
    r"[\\/]AppData[\\/]",
    r"^[A-Z]:[\\/]\$Recycle\.Bin[\\/]",
    r"^[A-Z]:[\\/]System Volume Information[\\/]",
]

_MACOS_BLOCKED = [
    r"^/System/",
    r"^/Library/",
    r"^/Applications/",
    r"^/private/",
    r"^/usr/",
    r"^/bin/",
    r"^/sbin/",
    r"^/opt/",
    r"/Library/Application Support/",
]

_LINUX_BLOCKED = [
    r"^/etc/",
    r"^/usr/",
    r"^/bin/",
    r"^/sbin/",
    r"^/sys/",
    r"^/proc/",
    r"^/root/",
    r"^/var/",
    r"^/boot/",
    r"^/opt/",
]


def _platform(platform: Optional[str]) -> str:
    return platform or sys.platform


def _home(home: Optional[str]) -> str:
    return home or os.path.expanduser("~")


def is_real_directory(path: str) -> bool:
    """Exists, is a directory, and is not itself a symlink."""
    try:
        info = os.lstat(path)
    except OSError:
        return False
    return stat.S_ISDIR(info.st_mode) and not stat.S_ISLNK(info.st_mode)


def get_default_allowed_dirs(
    platform: Optional[str] = None,
    home: Optional[str] = None,
) -> List[str]:
    """Default allowed directories that exist on this machine."""
    platform = _platform(platform)
    home = _home(home)

    candidates = [
        os.path.join(home, name)
        for name in (
            "Desktop",
            "Documents",
            "Downloads",
            "Pictures",
            "Videos",
            "Music",
            # Common project directories
            "Projects",
            "Workspace",
            "workspace",
            "Development",
            "Code",
        )
    ]

    if platform == "win32":
        one_drive = os.environ.get("OneDrive") or os.environ.get("OneDriveConsumer")
        if one_drive:
            candidates.append(one_drive)
    elif platform == "darwin":
        candidates.append(os.path.join(home, "Library", "Mobile Documents", "com~apple~CloudDocs"))
        candidates.append(os.path.join(home, "Movies"))
    elif platform.startswith("linux"):
        candidates.append(os.path.join(home, "dev"))

    result = []
    for path in candidates:
        if path not in result and is_real_directory(path):
            result.append(path)
    return result


def get_always_blocked_patterns(platform: Optional[str] = None) -> List[Pattern]:
    """Compiled always-blocked patterns. Unix system paths are case-sensitive."""
    platform = _platform(platform)

    patterns = [re.compile(p, re.IGNORECASE) for p in _COMMON_BLOCKED]
    if platform == "win32":
        patterns += [re.compile(p, re.IGNORECASE) for p in _WINDOWS_BLOCKED]
    elif platform == "darwin":
        patterns += [re.compile(p) for p in _MACOS_BLOCKED]
    else:
        patterns += [re.compile(p) for p in _LINUX_BLOCKED]
    return patterns


def get_user_config_path(
    platform: Optional[str] = None,
    home: Optional[str] = None,
) -> str:
    platform = _platform(platform)
    home = _home(home)

    if platform == "win32":
        app_data = os.environ.get("APPDATA") or os.path.join(home, "AppData", "Roaming")
        return os.path.join(app_data, APP_DIR_NAME, CONFIG_FILE_NAME)
    if platform == "darwin":
        return os.path.join(home, "Library", "Application Support", APP_DIR_NAME, CONFIG_FILE_NAME)
    return os.path.join(home, ".config", APP_DIR_NAME, CONFIG_FILE_NAME)


def describe_blocked_patterns(platform: Optional[str] = None) -> str:
    """Human-readable list of what is always blocked."""
    platform = _platform(platform)

    lines = [
        "- node_modules directories",
        "- .git directories",
        "- .vscode, .idea, .next directories",
        "- dist, build directories",
    ]

    if platform == "win32":
        lines += [
            "- C:\\Windows",
            "- C:\\Program Files",
            "- C:\\Program Files (x86)",
            "- C:\\ProgramData",
            "- AppData directories",
            "- $Recycle.Bin, System Volume Information",
        ]
    elif platform == "darwin":
        lines += [
            "- /System, /Library, /Applications",
            "- /private, /opt",
            "- /usr, /bin, /sbin",
            "- Application Support directories",
        ]
    else:
        lines += [
            "- /etc, /usr, /bin, /sbin, /opt",
            "- /sys, /proc",
            "- /root, /var, /boot",
        ]

    return "\n".join(lines)
