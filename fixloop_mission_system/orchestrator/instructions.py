"""Instruction builders for the three actors.

Phrasing is free-form; what matters is the content each instruction
carries (test flag, base branch, fix-mode rule, combined feedback).
"""

from typing import List, Optional

from fixloop_protocols import AnalysisBrief


def build_analysis_instruction(seed: str) -> str:
    return (
        "Analyze the following problem report. Produce a brief covering the summary, "
        "relevant files, recommended approach, whether the work should proceed, "
        "whether the change warrants tests and the base branch.\n"
        'End with a JSON object: {"actionable": true|false, "needs_tests": true|false, '
        '"base_branch": "...", "summary": "..."}\n\n'
        f"{seed}"
    )


def build_implementation_instruction(
    seed: str,
    brief: AnalysisBrief,
    branch: Optional[str] = None,
) -> str:
    lines = [
        "Implement a fix for the problem below and open a proposal (pull request) "
        f"against `{brief.base_branch}`.",
    ]
    if branch:
        lines.append(f"Reuse the existing branch `{branch}`.")
    lines.append(
        "Write tests for this change." if brief.needs_tests
        else "Do not add tests for this change."
    )
    lines.append(
        'Report the result as JSON: {"pull_number": N, "branch": "..."}'
    )
    lines.extend(["", "Problem:", seed])
    if brief.summary:
        lines.extend(["", "Analysis brief:", brief.summary])
    return "\n".join(lines)


def build_fix_instruction(
    artifact_ref: str,
    branch: Optional[str],
    feedback: str,
) -> str:
    where = f"on branch `{branch}` " if branch else ""
    return (
        f"Fix the feedback {where}for PR #{artifact_ref}. "
        "Do NOT create a new branch or PR; push commits to the existing one.\n\n"
        f"Feedback to address:\n{feedback}"
    )


def build_critique_instruction(
    artifact_ref: str,
    iteration: int,
    previous_feedback: Optional[List[str]] = None,
) -> str:
    lines = [
        f"Review PR #{artifact_ref} (review iteration {iteration}).",
        "Fetch the diff, read the touched files for context, then post your review.",
        'End with JSON: {"verdict": "resolved" | "needs_changes", '
        '"summary": "...", "feedbackItems": ["..."]}',
    ]
    if previous_feedback:
        lines.extend(["", "Feedback from earlier iterations (check it was addressed):"])
        lines.extend(f"- {item}" for item in previous_feedback)
    return "\n".join(lines)


def combine_feedback(
    review_feedback: Optional[str],
    ci_feedback: Optional[str],
) -> str:
    """Merge critique feedback and CI failures into one payload."""
    parts = []
    if review_feedback:
        parts.append(f"Review feedback:\n{review_feedback}")
    if ci_feedback:
        parts.append(f"CI failures:\n{ci_feedback}")
    return "\n\n".join(parts)
