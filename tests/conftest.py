"""Pytest configuration and fixtures."""

import json
import sys
from pathlib import Path

import pytest

# Ensure src is on path for tests
root = Path(__file__).resolve().parent.parent
src = root / "src"
if str(src) not in sys.path:
    sys.path.insert(0, str(src))

from pcw_toolbelt.rules_engine import RuleEngine  # noqa: E402
from pcw_toolbelt.settings import EngineSettings  # noqa: E402

BUNDLED_RULES_DIR = src / "pcw_toolbelt" / "rules"


WORDPRESS_RULES = {
    "category": "wordpress",
    "description": "Test WordPress rules",
    "rules": [
        {
            "id": "no-eval",
            "pattern": r"eval\(",
            "message": "Avoid eval()",
            "severity": "error",
            "category": "security",
            "suggestion": "Use explicit logic",
        },
        {
            "id": "no-extract",
            "pattern": r"extract\(",
            "message": "Avoid extract()",
            "severity": "warning",
        },
        {
            "id": "currentuserinfo",
            "pattern": r"get_currentuserinfo\(",
            "message": "Deprecated",
            "severity": "info",
            "fix": {
                "replace": {
                    "pattern": r"get_currentuserinfo\(",
                    "replacement": "wp_get_current_user(",
                }
            },
        },
    ],
}

ELEMENTOR_RULES = {
    "category": "elementor",
    "description": "Test Elementor rules",
    "rules": [
        {
            "id": "get-title",
            "pattern": r"function\s+get_title\s*\(",
            "message": "Widgets must implement get_title()",
            "severity": "error",
            "mustExist": True,
        },
    ],
}


def _write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def write_json():
    """Write JSON data to a path, creating parent directories."""
    return _write_json


@pytest.fixture
def bundled_rules_dir() -> Path:
    """Rules directory shipped with the package."""
    return BUNDLED_RULES_DIR


@pytest.fixture
def rules_dir(tmp_path: Path) -> Path:
    """Small bundled rules directory with WordPress and Elementor rule sets."""
    directory = tmp_path / "rules"
    _write_json(directory / "wordpress-rules.json", WORDPRESS_RULES)
    _write_json(directory / "elementor-rules.json", ELEMENTOR_RULES)
    return directory


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Empty workspace root with an override directory."""
    ws = tmp_path / "site"
    (ws / ".pcw-rules").mkdir(parents=True)
    return ws


@pytest.fixture
def engine(rules_dir: Path) -> RuleEngine:
    """RuleEngine over the test rules with default settings."""
    return RuleEngine(rules_dir=rules_dir, settings=EngineSettings())
