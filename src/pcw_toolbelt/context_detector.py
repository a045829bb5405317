"""
Framework context detection from source signatures.

This module classifies file content into a framework context (Elementor,
WordPress, React, WooCommerce) by testing ordered regex signature lists. The
detected context decides which rule set the engine loads for a file.

Features:
- Ordered signatures: the first matching context wins
- Case-insensitive matching anywhere in the content
- Multi-context detection for files that blend frameworks
- Pre-compiled patterns shared by all detector instances

Example:
    >>> detector = ContextDetector()
    >>> detector.detect_context("add_action('init', 'x');")
    <FrameworkContext.WORDPRESS: 'wordpress'>
    >>> detector.detect_all_contexts("class W extends Widget_Base { add_action(); }")
    [<FrameworkContext.ELEMENTOR: 'elementor'>, <FrameworkContext.WORDPRESS: 'wordpress'>]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Sequence

from pcw_toolbelt.models import FrameworkContext

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContextSignature:
    """
    Ordered regex list identifying one framework context.

    Attributes:
        context: Context reported when a pattern matches.
        patterns: Pre-compiled, case-insensitive patterns in test order.
    """

    context: FrameworkContext
    patterns: tuple[re.Pattern[str], ...]

    @classmethod
    def from_strings(cls, context: FrameworkContext, patterns: Sequence[str]) -> ContextSignature:
        return cls(context, tuple(re.compile(p, re.IGNORECASE) for p in patterns))

    def matches(self, content: str) -> bool:
        """Return True as soon as one pattern is found in the content."""
        return any(pattern.search(content) for pattern in self.patterns)


# =============================================================================
# Signature Table
# =============================================================================


# Order matters: the first matching signature wins. Elementor widgets also call
# WordPress hooks, so Elementor is listed first.
CONTEXT_SIGNATURES: tuple[ContextSignature, ...] = (
    ContextSignature.from_strings(
        FrameworkContext.ELEMENTOR,
        [
            r"\\Elementor\\Widget_Base",
            r"extends\s+Widget_Base",
            r"namespace\s+Elementor",
            r"use\s+Elementor\\Widget_Base",
        ],
    ),
    ContextSignature.from_strings(
        FrameworkContext.WORDPRESS,
        [
            r"add_action\s*\(",
            r"add_filter\s*\(",
            r"wp_enqueue_",
            r"register_post_type\s*\(",
            r"get_template_part\s*\(",
        ],
    ),
    ContextSignature.from_strings(
        FrameworkContext.REACT,
        [
            r"useEffect\s*\(",
            r"useState\s*\(",
            r"className\s*=",
            r"import\s+React",
            r"from\s+['\"]react['\"]",
        ],
    ),
    ContextSignature.from_strings(
        FrameworkContext.WOOCOMMERCE,
        [
            r"WC_Order",
            r"WC_Product",
            r"woocommerce_",
            r"WC\(\)",
            r"class\s+WC_",
        ],
    ),
)


# =============================================================================
# ContextDetector Class
# =============================================================================


class ContextDetector:
    """
    Detects the framework context of file content.

    Detection is a best-effort heuristic over regex signatures, not a parser:
    rules stay user-editable and no language grammar is needed.

    Attributes:
        signatures: Signatures in declaration (priority) order.

    Example:
        >>> detector = ContextDetector()
        >>> detector.detect_context("const [a, setA] = useState(0);")
        <FrameworkContext.REACT: 'react'>
        >>> detector.detect_context("print('hello')")
        <FrameworkContext.UNKNOWN: 'unknown'>
    """

    def __init__(self, signatures: Sequence[ContextSignature] = CONTEXT_SIGNATURES):
        self.signatures: tuple[ContextSignature, ...] = tuple(signatures)

    def detect_context(self, content: str) -> FrameworkContext:
        """
        Detect the first framework context whose signature matches.

        Args:
            content: File content to classify.

        Returns:
            The first matching context in declaration order, or
            ``FrameworkContext.UNKNOWN`` when nothing matches or the content
            is empty.
        """
        if not content:
            return FrameworkContext.UNKNOWN

        for signature in self.signatures:
            if signature.matches(content):
                logger.debug(f"Detected context {signature.context.value}")
                return signature.context

        return FrameworkContext.UNKNOWN

    def detect_all_contexts(self, content: str) -> list[FrameworkContext]:
        """
        Detect every framework context present in the content.

        Each signature contributes at most once, so blended files (e.g. an
        Elementor widget registering WordPress hooks) list each context once,
        in declaration order.

        Args:
            content: File content to classify.

        Returns:
            Matching contexts in declaration order; empty when none match.
        """
        if not content:
            return []

        detected = [s.context for s in self.signatures if s.matches(content)]

        if detected:
            logger.debug(
                "Detected contexts",
                extra={"contexts": [c.value for c in detected]},
            )

        return detected

    def get_available_contexts(self) -> list[FrameworkContext]:
        """Return the detectable contexts in declaration order."""
        return [s.context for s in self.signatures]


# =============================================================================
# Module-level convenience functions
# =============================================================================


_default_detector = ContextDetector()


def detect_context(content: str) -> FrameworkContext:
    """Detect the framework context using the built-in signatures."""
    return _default_detector.detect_context(content)


def detect_all_contexts(content: str) -> list[FrameworkContext]:
    """Detect all framework contexts using the built-in signatures."""
    return _default_detector.detect_all_contexts(content)
