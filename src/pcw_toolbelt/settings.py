"""
Engine settings loaded from the bundled ``rules/config.yaml``.

The settings file ships next to the bundled rule sets and controls where
workspace overrides live, how remote feeds are fetched and which files a
workspace audit visits.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from pcw_toolbelt.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

RULES_DIR_ENV_VAR = "PCW_TOOLBELT_RULES_DIR"

DEFAULT_FILE_PATTERNS = ["**/*.php", "**/*.tsx", "**/*.jsx", "**/*.ts", "**/*.js"]

DEFAULT_IGNORED_PATTERNS = [
    "**/node_modules/**",
    "**/vendor/**",
    "**/.git/**",
    "**/dist/**",
    "**/build/**",
]


@dataclass
class EngineSettings:
    """
    Global engine settings.

    Attributes:
        workspace_rules_dir: Project-relative directory holding override
            rule files and ``config.json``.
        remote_timeout_seconds: Timeout applied to each remote feed fetch.
        confirm_remote_fixes: Require confirmation before applying fixes that
            came from a remote feed.
        pattern_timeout_seconds: Time limit for matching one rule pattern.
        file_patterns: Globs selecting files for workspace audits.
        ignored_patterns: Globs excluded from workspace audits.
    """

    workspace_rules_dir: str = ".pcw-rules"
    remote_timeout_seconds: float = 10.0
    confirm_remote_fixes: bool = True
    pattern_timeout_seconds: float = 5.0
    file_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_FILE_PATTERNS))
    ignored_patterns: list[str] = field(default_factory=lambda: list(DEFAULT_IGNORED_PATTERNS))


def resolve_rules_dir(rules_dir: str = "rules") -> Path:
    """
    Resolve the bundled rules directory.

    Checks in order:
    1. PCW_TOOLBELT_RULES_DIR environment variable
    2. The ``rules`` directory inside the installed package
    3. Project root (source checkout)
    4. Current working directory

    Args:
        rules_dir: Directory name to look for.

    Returns:
        Resolved Path, which may not exist when nothing was found.
    """
    if env_path := os.environ.get(RULES_DIR_ENV_VAR):
        return Path(env_path)

    pkg_dir = Path(__file__).resolve().parent
    project_root = pkg_dir.parent.parent

    candidates = [
        pkg_dir / rules_dir,
        project_root / rules_dir,
        Path.cwd() / rules_dir,
    ]

    for candidate in candidates:
        if candidate.is_dir():
            return candidate

    return pkg_dir / rules_dir


def load_engine_settings(rules_dir: Path) -> EngineSettings:
    """
    Load engine settings from ``config.yaml`` in the rules directory.

    Args:
        rules_dir: Bundled rules directory.

    Returns:
        EngineSettings, with defaults for every key the file leaves out.

    Raises:
        ConfigurationError: If config.yaml is not valid YAML or cannot be read.
    """
    config_path = rules_dir / "config.yaml"

    if not config_path.exists():
        logger.warning(f"Config file not found at {config_path}, using defaults")
        return EngineSettings()

    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid config.yaml: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config.yaml: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"config.yaml must contain a mapping, got {type(data).__name__}")

    defaults = EngineSettings()
    remote = data.get("remote", {}) or {}
    audit = data.get("audit", {}) or {}

    return EngineSettings(
        workspace_rules_dir=data.get("workspace_rules_dir", defaults.workspace_rules_dir),
        remote_timeout_seconds=float(remote.get("timeout_seconds", defaults.remote_timeout_seconds)),
        confirm_remote_fixes=bool(remote.get("confirm_fixes", defaults.confirm_remote_fixes)),
        pattern_timeout_seconds=float(data.get("pattern_timeout_seconds", defaults.pattern_timeout_seconds)),
        file_patterns=list(audit.get("file_patterns", defaults.file_patterns)),
        ignored_patterns=list(audit.get("ignored_patterns", defaults.ignored_patterns)),
    )
