"""Parsing of actor result text.

Actors are opaque: they return free text. These helpers pull the few
structured facts the supervisor needs out of that text, preferring an
embedded JSON object and falling back to textual signals.

Critique output that cannot be parsed never counts as resolved: the
fallback verdict is needs_changes.
"""

import json
import re
from typing import Any, Dict, Optional

from fixloop_protocols import AnalysisBrief, ImplementationReport, ReviewOutput, Verdict

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)

FALLBACK_SUMMARY = "Review output could not be parsed. Defaulting to needs_changes."
NO_SUMMARY = "No summary provided."

_NOT_ACTIONABLE = re.compile(
    r"not\s+actionable"
    r"|proceed\s*[:=]\s*(?:no|false)"
    r"|should\s+not\s+proceed"
    r"|do\s+not\s+proceed"
    r"|don't\s+proceed",
    re.IGNORECASE,
)
_NEEDS_TESTS = re.compile(
    r"(?:write|add|needs?)\s+(?:unit\s+)?tests"
    r"|tests?\s*(?:needed|required|warranted)\s*[:=]?\s*(?:yes|true)?",
    re.IGNORECASE,
)
_NO_TESTS = re.compile(r"(?:no|skip)\s+tests|tests?\s*(?:needed|required)\s*[:=]\s*(?:no|false)", re.IGNORECASE)
_BASE_BRANCH = re.compile(r"base[\s_-]*branch\s*[:=]\s*`?([\w./-]+)`?", re.IGNORECASE)
_PR_NUMBER = re.compile(r"(?:PR|pull\s+request|proposal)\s*#\s*(\d+)", re.IGNORECASE)
_PR_URL = re.compile(r"/pull/(\d+)")
_BRANCH = re.compile(r"branch\s*[:=]?\s*`([\w./-]+)`|branch\s*[:=]\s*([\w./-]+)", re.IGNORECASE)


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Return the first-to-last brace span of ``text`` parsed as an object."""
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"yes", "true", "y"}:
            return True
        if lowered in {"no", "false", "n"}:
            return False
    return None


# =============================================================================
# CRITIQUE
# =============================================================================

def parse_review_output(text: str) -> ReviewOutput:
    """Parse critique output.

    Expected shape (anywhere in the text):
        {"verdict": "resolved" | "needs_changes",
         "summary": "...",
         "feedbackItems": ["...", ...]}
    """
    parsed = extract_json_object(text)
    if parsed is None:
        return ReviewOutput(
            verdict=Verdict.NEEDS_CHANGES,
            summary=FALLBACK_SUMMARY,
            feedback_items=[],
            review_body="",
        )

    try:
        verdict = Verdict(parsed.get("verdict"))
    except ValueError:
        verdict = Verdict.NEEDS_CHANGES

    summary = parsed.get("summary")
    items = parsed.get("feedbackItems", parsed.get("feedback_items"))

    return ReviewOutput(
        verdict=verdict,
        summary=summary if isinstance(summary, str) else NO_SUMMARY,
        feedback_items=[i for i in items if isinstance(i, str)] if isinstance(items, list) else [],
        review_body=text,
    )


# =============================================================================
# ANALYSIS
# =============================================================================

def parse_analysis_brief(text: str) -> AnalysisBrief:
    """Parse analysis output.

    JSON keys ``actionable`` (or ``proceed``), ``needs_tests``,
    ``base_branch`` and ``summary`` win over textual signals. Unparseable
    briefs count as actionable.
    """
    brief = AnalysisBrief(summary=text.strip())
    parsed = extract_json_object(text)

    if parsed is not None:
        actionable = _as_bool(parsed.get("actionable", parsed.get("proceed")))
        if actionable is not None:
            brief.actionable = actionable
        needs_tests = _as_bool(parsed.get("needs_tests", parsed.get("tests")))
        if needs_tests is not None:
            brief.needs_tests = needs_tests
        base = parsed.get("base_branch")
        if isinstance(base, str) and base:
            brief.base_branch = base
        summary = parsed.get("summary")
        if isinstance(summary, str) and summary:
            brief.summary = summary
        if actionable is not None:
            return brief

    if _NOT_ACTIONABLE.search(text):
        brief.actionable = False
    if parsed is None or "needs_tests" not in parsed:
        brief.needs_tests = bool(_NEEDS_TESTS.search(text)) and not _NO_TESTS.search(text)
    if parsed is None or "base_branch" not in parsed:
        match = _BASE_BRANCH.search(text)
        if match:
            brief.base_branch = match.group(1)
    return brief


# =============================================================================
# IMPLEMENTATION
# =============================================================================

def parse_implementation_report(text: str) -> ImplementationReport:
    """Parse implementation output for the proposal reference and branch."""
    report = ImplementationReport()
    parsed = extract_json_object(text)

    if parsed is not None:
        for key in ("artifact_ref", "pull_number", "pr_number", "number"):
            value = parsed.get(key)
            if isinstance(value, (int, str)) and not isinstance(value, bool) and str(value):
                report.artifact_ref = str(value)
                break
        branch = parsed.get("branch")
        if isinstance(branch, str) and branch:
            report.branch = branch

    if report.artifact_ref is None:
        match = _PR_NUMBER.search(text) or _PR_URL.search(text)
        if match:
            report.artifact_ref = match.group(1)

    if report.branch is None:
        match = _BRANCH.search(text)
        if match:
            report.branch = match.group(1) or match.group(2)

    return report
