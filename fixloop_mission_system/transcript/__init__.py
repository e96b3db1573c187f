"""Run transcript and its compactors."""

from fixloop_mission_system.transcript.compaction import (
    CLEARED_PLACEHOLDER,
    CompactionConfig,
    IterationCompactor,
    SizeCompactor,
    TranscriptCompactor,
    compress_old_iterations,
    find_iteration_boundaries,
    is_compacted,
)
from fixloop_mission_system.transcript.transcript import Transcript

__all__ = [
    "CLEARED_PLACEHOLDER",
    "CompactionConfig",
    "IterationCompactor",
    "SizeCompactor",
    "Transcript",
    "TranscriptCompactor",
    "compress_old_iterations",
    "find_iteration_boundaries",
    "is_compacted",
]
