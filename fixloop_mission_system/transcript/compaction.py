"""Transcript compaction.

Two independent mechanisms keep a growing transcript within budget:

Iteration-based (preferred):
    Once at least two critique cycles are complete, every turn strictly
    before the most recent iteration boundary is "old". Old actor results
    are cut to ``result_chars`` with a marker recording the original
    length; old verification results are replaced by a placeholder; old
    delegation instructions are cut to ``instruction_chars``.

Size-based (fallback, also run after the iteration pass):
    When the transcript exceeds ``max_total_chars``, every turn between
    index 1 and the preserved tail is cut: results to ``result_chars``,
    other long text to ``reasoning_chars``.

Both mutate turns in place through Transcript.rewrite. Turns that already
carry a marker are never cut again, so compaction is idempotent. The seed
turn is never touched.
"""

from dataclasses import dataclass
from typing import List, Optional

from fixloop_protocols import ActorKind, LoggerProtocol, TurnKind

from fixloop_mission_system.transcript.transcript import Transcript

ITERATION_RESULT_MARKER = "[... compressed from previous iteration - original was {length} chars]"
INSTRUCTION_MARKER = "[... instruction truncated from previous iteration]"
CLEARED_PLACEHOLDER = "[Previous iteration tool result cleared]"
SIZE_MARKER = "[... compacted - original was {length} chars]"

_MARKER_PREFIXES = (
    "[... compressed from previous iteration",
    "[... instruction truncated from previous iteration",
    "[... compacted",
)

_NAMED_ACTORS = frozenset(ActorKind)


@dataclass(frozen=True)
class CompactionConfig:
    """Character budgets for both compactors."""
    result_chars: int = 500
    instruction_chars: int = 200
    max_total_chars: int = 80_000
    reasoning_chars: int = 200
    preserve_recent: int = 10


def is_compacted(text: str) -> bool:
    return text == CLEARED_PLACEHOLDER or any(m in text for m in _MARKER_PREFIXES)


def _cut(text: str, limit: int, marker: str) -> str:
    return f"{text[:limit]}\n\n{marker}"


# =============================================================================
# ITERATION-BASED
# =============================================================================

def find_iteration_boundaries(transcript: Transcript) -> List[int]:
    return transcript.iteration_boundaries()


def compress_old_iterations(
    transcript: Transcript,
    latest_boundary: int,
    result_chars: int = 500,
    instruction_chars: int = 200,
) -> int:
    """Compress every turn in [1, latest_boundary).

    Returns:
        Number of turns rewritten
    """
    changed = 0
    for index in range(1, latest_boundary):
        turn = transcript[index]
        if is_compacted(turn.text):
            continue

        if turn.kind is TurnKind.ACTOR_RESULT and turn.actor_kind in _NAMED_ACTORS:
            if len(turn.text) > result_chars:
                marker = ITERATION_RESULT_MARKER.format(length=len(turn.text))
                transcript.rewrite(index, _cut(turn.text, result_chars, marker))
                changed += 1
        elif turn.is_result:
            if turn.text:
                transcript.rewrite(index, CLEARED_PLACEHOLDER)
                changed += 1
        elif turn.kind is TurnKind.ACTOR_DELEGATION:
            if len(turn.text) > instruction_chars:
                transcript.rewrite(index, _cut(turn.text, instruction_chars, INSTRUCTION_MARKER))
                changed += 1

    return changed


class IterationCompactor:
    """Compresses everything before the latest iteration boundary."""

    def __init__(
        self,
        config: Optional[CompactionConfig] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._config = config or CompactionConfig()
        self._logger = logger.bind(component="iteration_compactor") if logger else None

    def compact(self, transcript: Transcript) -> bool:
        """Returns True if any turn was rewritten."""
        boundaries = find_iteration_boundaries(transcript)
        if len(boundaries) < 2:
            return False

        before = transcript.total_chars()
        changed = compress_old_iterations(
            transcript,
            boundaries[-1],
            result_chars=self._config.result_chars,
            instruction_chars=self._config.instruction_chars,
        )
        if changed and self._logger:
            self._logger.info(
                "transcript_compacted",
                mode="iteration",
                turns_rewritten=changed,
                boundary=boundaries[-1],
                chars_before=before,
                chars_after=transcript.total_chars(),
            )
        return changed > 0


# =============================================================================
# SIZE-BASED
# =============================================================================

class SizeCompactor:
    """Hard-truncates old turns once the transcript grows past a threshold."""

    def __init__(
        self,
        config: Optional[CompactionConfig] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self._config = config or CompactionConfig()
        self._logger = logger.bind(component="size_compactor") if logger else None

    def compact(self, transcript: Transcript) -> bool:
        """Returns True if any turn was rewritten."""
        config = self._config
        before = transcript.total_chars()
        if before <= config.max_total_chars:
            return False
        if len(transcript) <= config.preserve_recent + 1:
            return False

        changed = 0
        for index in range(1, len(transcript) - config.preserve_recent):
            turn = transcript[index]
            if is_compacted(turn.text) or len(turn.text) <= config.result_chars:
                continue
            limit = config.result_chars if turn.is_result else config.reasoning_chars
            marker = SIZE_MARKER.format(length=len(turn.text))
            transcript.rewrite(index, _cut(turn.text, limit, marker))
            changed += 1

        if changed and self._logger:
            self._logger.info(
                "transcript_compacted",
                mode="size",
                turns_rewritten=changed,
                chars_before=before,
                chars_after=transcript.total_chars(),
            )
        return changed > 0


class TranscriptCompactor:
    """Iteration-aware compaction first, size-based whenever still over budget.

    One call leaves the transcript as small as both mechanisms can make it,
    so an immediate second call changes nothing.
    """

    def __init__(
        self,
        config: Optional[CompactionConfig] = None,
        logger: Optional[LoggerProtocol] = None,
    ) -> None:
        self.iteration = IterationCompactor(config, logger)
        self.size = SizeCompactor(config, logger)

    def compact(self, transcript: Transcript) -> Optional[str]:
        """Returns "iteration", "size", "iteration+size" or None."""
        modes = []
        if self.iteration.compact(transcript):
            modes.append("iteration")
        if self.size.compact(transcript):
            modes.append("size")
        return "+".join(modes) or None
