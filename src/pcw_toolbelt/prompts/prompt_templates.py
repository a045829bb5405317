"""Prompt templates for audit review and fixing workflows."""

AUDIT_REVIEW_PROMPT = """You are reviewing {context} code against framework conventions.

**Context:** {context}
**File:** {file_path}

**Code to review:**
```
{code}
```

**Audit results (from the rule engine):**
{analysis}

Provide a structured review with:
1. Summary of findings
2. Errors that must be fixed before release
3. Framework-specific improvements (hooks, escaping, registration)
4. Specific line references where applicable
"""

FIX_SUGGESTION_PROMPT = """Suggest a fix for the following rule violation.

**Rule:** {rule_id}
**Message:** {message}
**File:** {file_path}
**Line:** {line}

**Current code:**
```
{code}
```

Provide a concrete fix that follows {context} conventions. If the fix is straightforward, show the exact replacement. Otherwise, explain the approach.
"""
