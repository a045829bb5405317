"""
Pydantic models for the PCW ToolBelt rule engine.

This module defines the data shared by every part of the context-aware audit
pipeline: framework contexts, rule definitions and their auto-fix descriptors,
rule sets with their provenance, workspace configuration, merged rule sets,
issues, audit results, fix results and editor diagnostics.

All models are designed with:
- Type hints and field validation
- JSON aliases matching the on-disk rule files (``mustExist``, ``severityOverrides``)
- Frozen rule and merged-set models so cached data cannot be mutated by callers
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class FrameworkContext(str, Enum):
    """
    Framework context detected from file content.

    The context decides which rule set applies to a file. ``UNKNOWN`` is the
    sentinel for content that matches no signature; no rules are loaded for it.

    Attributes:
        ELEMENTOR: Elementor widget code (``Widget_Base`` subclasses).
        WORDPRESS: Plain WordPress plugin or theme code (hooks, enqueues).
        REACT: React components (hooks, JSX ``className``).
        WOOCOMMERCE: WooCommerce extensions (``WC_Order``, ``WC()``).
        UNKNOWN: No signature matched.
    """

    ELEMENTOR = "elementor"
    WORDPRESS = "wordpress"
    REACT = "react"
    WOOCOMMERCE = "woocommerce"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Severity of a rule violation, mirrored 1:1 by editor diagnostics."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class RuleOrigin(str, Enum):
    """
    Where a rule set was loaded from.

    Origins are listed in merge order: bundled rules are the baseline,
    workspace files refine them and remote feeds extend them.
    """

    BUNDLED = "bundled"
    WORKSPACE = "workspace"
    REMOTE = "remote"


class FixReplacement(BaseModel):
    """
    A regex replacement applied by the auto-fixer.

    ``flags`` uses JavaScript-style letters (``g``, ``i``, ``m``, ``s``, ``u``,
    ``y``) because rule files are shared with other editor integrations.
    ``replacement`` supports ``$&``, ``$1``..``$99``, ``$<name>`` and ``$$``.
    """

    model_config = ConfigDict(frozen=True)

    pattern: str = Field(
        ...,
        description="Regex locating the text to replace",
        min_length=1,
    )
    replacement: str = Field(
        default="",
        description="Replacement text with JS-style group references",
    )
    flags: Optional[str] = Field(
        default=None,
        description="JS-style regex flags; 'gm' when omitted",
        examples=["gm", "gi"],
    )


class RuleFix(BaseModel):
    """Structured auto-fix attached to a rule."""

    model_config = ConfigDict(frozen=True)

    replace: Optional[FixReplacement] = Field(
        default=None,
        description="Regex replacement performed by apply_fixes",
    )
    description: Optional[str] = Field(
        default=None,
        description="Human-readable summary of the fix",
    )


class Rule(BaseModel):
    """
    A single pattern-based detection rule.

    A rule either forbids a pattern (one issue per occurrence) or, with
    ``must_exist``, requires it (one issue when it is absent). Rules are frozen:
    merging and severity overrides produce copies through ``model_copy``.

    Attributes:
        id: Optional stable identifier.
        pattern: Regular expression evaluated against file content.
        message: Description shown to the developer.
        severity: error, warning or info.
        category: Free-form grouping label (e.g. "security", "performance").
        must_exist: Report the pattern's absence instead of its presence.
        suggestion: Optional remediation hint.
        fix: Optional auto-fix descriptor.
        origin: Origin of the rule set that supplied this rule.
        source: File path or URL the rule was read from.

    Example:
        >>> rule = Rule(
        ...     id="no-eval",
        ...     pattern=r"eval\\(",
        ...     message="Avoid eval()",
        ...     severity="error",
        ... )
        >>> rule.identity
        'no-eval'
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "escape-output",
                "pattern": r"echo\s+\$settings\[",
                "message": "Settings are echoed without escaping",
                "severity": "error",
                "category": "security",
                "mustExist": False,
                "suggestion": "Wrap the value in esc_html()",
                "fix": {
                    "replace": {
                        "pattern": r"echo\s+(\$settings\[[^\]]+\])",
                        "replacement": "echo esc_html($1)",
                        "flags": "g",
                    }
                },
            }
        },
        frozen=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    id: Optional[str] = Field(
        default=None,
        description="Stable rule identifier; the pattern is used when absent",
        examples=["no-eval", "elementor-get-title"],
    )
    pattern: str = Field(
        ...,
        description="Regular expression evaluated against file content",
        min_length=1,
    )
    message: str = Field(
        ...,
        description="Human-readable description of the violation",
        min_length=1,
    )
    severity: Severity = Field(
        default=Severity.WARNING.value,
        description="Severity reported for matches",
    )
    category: Optional[str] = Field(
        default=None,
        description="Grouping label independent of the framework context",
    )
    must_exist: bool = Field(
        default=False,
        alias="mustExist",
        description="Raise an issue when the pattern is absent",
    )
    suggestion: Optional[str] = Field(
        default=None,
        description="Remediation hint",
    )
    fix: Optional[RuleFix] = Field(
        default=None,
        description="Optional auto-fix descriptor",
    )
    origin: RuleOrigin = Field(
        default=RuleOrigin.BUNDLED.value,
        description="Origin of the rule set that supplied the rule",
    )
    source: Optional[str] = Field(
        default=None,
        description="File path or URL the rule was read from",
    )

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> Any:
        """Accept severities in any letter case."""
        return v.lower() if isinstance(v, str) else v

    @property
    def identity(self) -> str:
        """Key used for de-duplication and severity overrides."""
        return self.id or self.pattern

    @property
    def is_fixable(self) -> bool:
        """Whether the rule carries a regex replacement."""
        return self.fix is not None and self.fix.replace is not None


class RuleSet(BaseModel):
    """
    Rules for one framework context, as read from a single source.

    On disk and over the wire the context key is ``category``; the older
    ``context`` key is accepted as well.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "category": "wordpress",
                "description": "WordPress coding standards",
                "rules": [],
            }
        },
        populate_by_name=True,
        use_enum_values=True,
    )

    category: FrameworkContext = Field(
        ...,
        validation_alias=AliasChoices("category", "context"),
        description="Framework context the rules apply to",
    )
    description: str = Field(
        default="",
        description="Short description of the rule set",
    )
    rules: list[Rule] = Field(
        default_factory=list,
        description="Rules in declaration order",
    )
    origin: RuleOrigin = Field(
        default=RuleOrigin.BUNDLED,
        description="Where the set was loaded from",
    )
    source: str = Field(
        default="",
        description="File path or URL of the set",
    )


class WorkspaceConfig(BaseModel):
    """
    Per-project configuration read from ``.pcw-rules/config.json``.

    Override values are kept as raw strings; invalid severities are ignored
    when the overrides are applied rather than rejecting the whole file.

    Attributes:
        severity_overrides: context -> rule identity -> severity.
        repositories: Remote rule-feed URLs, fetched in order.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "severityOverrides": {"wordpress": {"no-eval": "warning"}},
                "repositories": ["https://example.com/wordpress-rules.json"],
            }
        },
        populate_by_name=True,
    )

    severity_overrides: dict[str, dict[str, Any]] = Field(
        default_factory=dict,
        alias="severityOverrides",
        description="Severity overrides keyed by context then rule identity",
    )
    repositories: list[str] = Field(
        default_factory=list,
        description="Remote rule-feed URLs",
    )


class MergedRuleSet(BaseModel):
    """
    Effective rules for one context in one workspace.

    Built by the rule cache from bundled, workspace and remote sets and kept
    until the cache is cleared. Frozen, with rules stored as a tuple.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    category: FrameworkContext = Field(
        ...,
        description="Framework context of the merged rules",
    )
    description: str = Field(
        default="",
        description="Description taken from the bundled set when present",
    )
    rules: tuple[Rule, ...] = Field(
        default=(),
        description="Precedence-resolved rules with unique identities",
    )
    sources: tuple[str, ...] = Field(
        default=(),
        description="Provenance labels in load order",
    )
    built_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the merged set was built",
    )

    @property
    def fixable_rules(self) -> list[Rule]:
        """Rules carrying an auto-fix replacement."""
        return [r for r in self.rules if r.is_fixable]


class Issue(BaseModel):
    """
    One violation of a rule in a piece of content.

    ``line`` and ``column`` are 1-based. Must-exist violations are anchored
    at (1, 1) with ``matched_text`` set to ``"(missing)"``.
    """

    model_config = ConfigDict(use_enum_values=True)

    line: int = Field(..., description="1-based line of the match", ge=1)
    column: int = Field(..., description="1-based column of the match", ge=1)
    rule: Rule = Field(..., description="Rule that produced the issue")
    matched_text: str = Field(..., description="Matched text or '(missing)'")
    suggestion: Optional[str] = Field(default=None, description="Remediation hint")
    fix: Optional[RuleFix] = Field(default=None, description="Available auto-fix")

    @property
    def severity(self) -> str:
        return self.rule.severity


class AuditResult(BaseModel):
    """
    Outcome of auditing one file.

    Attributes:
        category: Context detected for the file.
        file: File identifier supplied by the caller.
        issues: Issues in rule order, then text order.
        timestamp: When the audit ran (UTC).
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "category": "elementor",
                "file": "widgets/example-widget.php",
                "issues": [],
                "timestamp": "2026-01-01T00:00:00Z",
            }
        },
        use_enum_values=True,
    )

    category: FrameworkContext = Field(..., description="Detected framework context")
    file: str = Field(..., description="File identifier")
    issues: list[Issue] = Field(default_factory=list, description="Issues found")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the audit ran",
    )

    def severity_counts(self) -> dict[str, int]:
        """Count issues per severity, including zero counts."""
        counts = {s.value: 0 for s in Severity}
        for issue in self.issues:
            key = Severity(issue.severity).value
            counts[key] = counts.get(key, 0) + 1
        return counts


class FixResult(BaseModel):
    """
    Result of running the auto-fixer over some content.

    Attributes:
        content: Content after all applied fixes (unchanged when none applied).
        applied_rules: Identities of rules whose fix changed the content.
        skipped_rules: Identities of remote fixes held back for confirmation.
    """

    content: str = Field(..., description="Content after fixes")
    applied_rules: list[str] = Field(
        default_factory=list,
        description="Identities of applied fixes, in application order",
    )
    skipped_rules: list[str] = Field(
        default_factory=list,
        description="Identities of unconfirmed remote fixes",
    )

    @property
    def changed(self) -> bool:
        return bool(self.applied_rules)


class DiagnosticPosition(BaseModel):
    """0-based editor position."""

    line: int = Field(..., ge=0)
    character: int = Field(..., ge=0)


class DiagnosticRange(BaseModel):
    """Editor range covering a matched span."""

    start: DiagnosticPosition
    end: DiagnosticPosition


class Diagnostic(BaseModel):
    """
    Editor-visible marker derived from an issue.

    Shaped like the diagnostics of LSP-style editor APIs: 0-based range,
    severity, message, source and code.
    """

    model_config = ConfigDict(use_enum_values=True)

    file: str = Field(..., description="File identifier the marker belongs to")
    range: DiagnosticRange = Field(..., description="Highlighted span")
    message: str = Field(..., description="Rule message plus suggestion")
    severity: Severity = Field(..., description="Marker severity")
    source: str = Field(default="PCW ToolBelt", description="Tool name shown by the editor")
    code: Optional[str] = Field(default=None, description="Rule id or category")


class WorkspaceAuditResult(BaseModel):
    """
    Aggregated outcome of a workspace-wide audit.

    ``results`` only holds files with at least one issue. When ``cancelled``
    is set the audit stopped early and the results are partial.
    """

    results: list[AuditResult] = Field(default_factory=list)
    files_scanned: int = Field(default=0, ge=0)
    cancelled: bool = Field(default=False)

    @property
    def total_issues(self) -> int:
        return sum(len(r.issues) for r in self.results)


class StandardSource(BaseModel):
    """
    A named remote standards document (coding guidelines, hook lists).

    Attributes:
        id: Cache key, also the cache file name.
        name: Human-friendly name.
        url: Remote JSON or text endpoint.
        file_types: File extensions the standard applies to.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "react-hooks",
                "name": "React Hooks guidelines",
                "url": "https://example.com/standards/react-hooks.json",
                "fileTypes": [".tsx", ".jsx"],
            }
        },
        populate_by_name=True,
    )

    id: str = Field(..., description="Cache key", pattern=r"^[A-Za-z0-9._-]+$")
    name: str = Field(..., description="Human-friendly name")
    url: str = Field(..., description="Remote endpoint")
    file_types: list[str] = Field(
        default_factory=list,
        alias="fileTypes",
        description="File extensions the standard applies to",
    )


class CachedStandard(BaseModel):
    """A standards document as stored under ``.toolbelt-standards/<id>.json``."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    last_updated: datetime = Field(..., alias="lastUpdated")
    content_type: Literal["json", "text"] = Field(..., alias="contentType")
    content: Any = Field(default=None, description="Parsed JSON or raw text")
