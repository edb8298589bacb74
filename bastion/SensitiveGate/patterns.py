"""
SensitiveGate pattern tables.

Patterns are matched against a normalized path: lower-cased, with
backslashes turned into forward slashes. NAME patterns only see the
final path segment, PATH patterns see the whole normalized path.
"""

import re
from enum import Enum
from typing import List, NamedTuple, Pattern


class PatternScope(str, Enum):
    """What part of the normalized path a pattern is applied to."""
    NAME = "name"
    PATH = "path"


class SensitivePattern(NamedTuple):
    """A compiled pattern plus the audit-safe description reported on a hit."""
    regex: Pattern
    description: str
    scope: PatternScope = PatternScope.NAME

    def matches(self, normalized_path: str, name: str) -> bool:
        target = name if self.scope == PatternScope.NAME else normalized_path
        return self.regex.search(target) is not None


def _name(pattern: str, description: str) -> SensitivePattern:
    return SensitivePattern(re.compile(pattern, re.IGNORECASE), description, PatternScope.NAME)


def _path(pattern: str, description: str) -> SensitivePattern:
    return SensitivePattern(re.compile(pattern, re.IGNORECASE), description, PatternScope.PATH)


# File name / extension patterns
SENSITIVE_PATTERNS: List[SensitivePattern] = [
    # Environment files (.env, .env.local, .env.production, .envrc, production.env)
    _name(r"^\.env", "environment file"),
    _name(r"\.env$", "environment file"),

    # SSH keys
    _name(r"^id_(rsa|ed25519|ecdsa|dsa)$", "SSH private key"),
    _name(r"ssh_key", "SSH key file"),
    _name(r"private.*key", "private key file"),

    # TLS/SSL key material and certificates
    _name(r"\.(pem|key|pfx|p12)$", "TLS private key material"),
    _name(r"\.(crt|cert|csr)$", "TLS certificate file"),

    # Cloud and cluster credentials
    _path(r"(^|/)\.aws/(credentials|config)$", "AWS credentials file"),
    _path(r"(^|/)\.kube/config$", "Kubernetes config"),
    _name(r"^kubeconfig$", "Kubernetes config"),
    _path(r"(^|/)\.docker/config\.json$", "Docker registry credentials"),

    # Package manager auth tokens
    _name(r"^\.(npmrc|pypirc|gemrc)$", "package manager credentials"),

    # System password databases
    _name(r"^(shadow|gshadow|passwd|master\.passwd)$", "system password database"),

    # Shell history
    _name(r"^\.[a-z0-9]*_history$", "shell history"),

    # Generic credential-like names
    _name(r"password|passwd|secret|credential|token|api[_-]?key|bearer|confidential|private",
          "credential-like file name"),

    # Databases
    _name(r"\.(sqlite3?|db)$", "database file"),

    # Backups of any of the above
    _name(r"\.(bak|backup|old|orig)$", "backup file"),

    # Editor and CI configs that tend to carry secrets
    _path(r"(^|/)\.vscode/settings\.json$", "editor settings"),
    _path(r"(^|/)\.idea/.*\.xml$", "editor settings"),
    _path(r"(^|/)\.github/workflows/.*\.ya?ml$", "CI configuration"),
    _name(r"^\.(gitlab-ci|travis)\.yml$", "CI configuration"),
]

# Directories whose whole subtree is sensitive
SENSITIVE_DIRECTORIES: List[SensitivePattern] = [
    _path(r"(^|/)\.ssh(/|$)", "SSH directory"),
    _path(r"(^|/)\.aws(/|$)", "AWS credentials directory"),
    _path(r"(^|/)\.gnupg(/|$)", "GnuPG keyring"),
    _path(r"(^|/)\.kube(/|$)", "Kubernetes directory"),
    _path(r"(^|/)\.docker$", "Docker directory"),
    _path(r"(^|/)keychains(/|$)", "keychain directory"),
]

# Extra patterns for high-paranoia contexts
STRICT_SENSITIVE_PATTERNS: List[SensitivePattern] = SENSITIVE_PATTERNS + [
    _name(r"^config\.json$", "generic config file"),
    _name(r"^settings\.json$", "generic settings file"),
    _name(r"^\.(htpasswd|netrc)$", "password file"),
    _name(r"_(rsa|dsa|ecdsa|ed25519)$", "SSH private key"),
    _name(r"^(known_hosts|authorized_keys|identities)$", "SSH trust file"),
    _name(r"^agents?\.json$", "agent config"),
    _name(r"vault|keystore|truststore", "key store"),
]
