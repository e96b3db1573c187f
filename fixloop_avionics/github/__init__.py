"""GitHub adapters: code host and CI status checks."""

from fixloop_avionics.github.client import (
    ANALYSIS_COMMENT_MARKER,
    REVIEW_FOOTER,
    REVIEW_MARKER,
    GitHubCodeHost,
    aggregate_check_runs,
    review_marker,
)
from fixloop_avionics.github.status import GitHubStatusChecker, pull_number_from_ref

__all__ = [
    "ANALYSIS_COMMENT_MARKER",
    "GitHubCodeHost",
    "GitHubStatusChecker",
    "REVIEW_FOOTER",
    "REVIEW_MARKER",
    "aggregate_check_runs",
    "pull_number_from_ref",
    "review_marker",
]
