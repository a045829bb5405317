"""PCW ToolBelt - Context-aware rule engine for WordPress, Elementor, WooCommerce and React code."""

__version__ = "0.1.0"

# Context detection
from pcw_toolbelt.context_detector import (
    ContextDetector,
    detect_all_contexts,
    detect_context,
)

# Models
from pcw_toolbelt.models import (
    AuditResult,
    FrameworkContext,
    Issue,
    MergedRuleSet,
    Rule,
    RuleSet,
    Severity,
)

# Engine
from pcw_toolbelt.rules_engine import (
    ConfigurationError,
    RuleEngine,
    RuleEngineError,
    RuleLoadError,
    audit_content,
)

__all__ = [
    # Context detection
    "ContextDetector",
    "detect_context",
    "detect_all_contexts",
    # Models
    "AuditResult",
    "FrameworkContext",
    "Issue",
    "MergedRuleSet",
    "Rule",
    "RuleSet",
    "Severity",
    # Engine
    "RuleEngine",
    "RuleEngineError",
    "RuleLoadError",
    "ConfigurationError",
    "audit_content",
]
