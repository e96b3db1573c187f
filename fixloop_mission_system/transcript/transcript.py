"""Run transcript - an owned, indexable arena of turns.

Turns are addressed by index and appended in order. Only the compactor
rewrites turn text (through ``rewrite``); turns are never reordered or
removed. The seed turn at index 0 is never rewritten.

Usage:
    transcript = Transcript("Issue #42: crash on empty input")
    call_id = transcript.append_delegation(ActorKind.ANALYSIS, "Analyze the issue")
    transcript.append_result(call_id, "...brief...")
"""

import dataclasses
from typing import Dict, Iterator, List, Optional, Set

from fixloop_protocols import ActorKind, Turn, TurnKind


class Transcript:
    """Ordered turn sequence for one run."""

    def __init__(self, seed_text: str) -> None:
        self._turns: List[Turn] = [Turn(index=0, kind=TurnKind.SEED, text=seed_text)]
        self._calls: Dict[str, int] = {}
        self._answered: Set[str] = set()
        self._next_call = 1

    # =========================================================================
    # APPENDING
    # =========================================================================

    def append_delegation(self, actor_kind: ActorKind, instruction: str) -> str:
        """Append a delegation turn. Returns its call id."""
        call_id = self._new_call_id()
        turn = self._append(
            TurnKind.ACTOR_DELEGATION, instruction, actor_kind=actor_kind, call_id=call_id
        )
        self._calls[call_id] = turn.index
        return call_id

    def append_result(self, call_id: str, text: str) -> Turn:
        """Append the result of a delegation."""
        delegation = self._open_call(call_id, TurnKind.ACTOR_DELEGATION)
        self._answered.add(call_id)
        return self._append(
            TurnKind.ACTOR_RESULT, text, actor_kind=delegation.actor_kind, call_id=call_id
        )

    def append_verification_call(self, name: str, args_text: str = "") -> str:
        """Append a verification call (e.g. a CI status check)."""
        call_id = self._new_call_id()
        turn = self._append(TurnKind.VERIFICATION_CALL, args_text, call_id=call_id, name=name)
        self._calls[call_id] = turn.index
        return call_id

    def append_verification_result(self, call_id: str, text: str) -> Turn:
        call = self._open_call(call_id, TurnKind.VERIFICATION_CALL)
        self._answered.add(call_id)
        return self._append(TurnKind.VERIFICATION_RESULT, text, call_id=call_id, name=call.name)

    def append_reasoning(self, text: str) -> Turn:
        return self._append(TurnKind.REASONING, text)

    # =========================================================================
    # COMPACTOR ACCESS
    # =========================================================================

    def rewrite(self, index: int, text: str) -> None:
        """Replace the text of one turn in place."""
        if index == 0:
            raise ValueError("the seed turn cannot be rewritten")
        self._turns[index].text = text

    # =========================================================================
    # QUERIES
    # =========================================================================

    def iteration_boundaries(self) -> List[int]:
        """Indices of critique result turns, in order."""
        return [
            turn.index for turn in self._turns
            if turn.kind is TurnKind.ACTOR_RESULT and turn.actor_kind is ActorKind.CRITIQUE
        ]

    def total_chars(self) -> int:
        return sum(len(turn.text) for turn in self._turns)

    def pending_calls(self) -> List[str]:
        return [call_id for call_id in self._calls if call_id not in self._answered]

    def last_result(self, actor_kind: ActorKind) -> Optional[Turn]:
        for turn in reversed(self._turns):
            if turn.kind is TurnKind.ACTOR_RESULT and turn.actor_kind is actor_kind:
                return turn
        return None

    def snapshot(self) -> List[Turn]:
        """Detached copies of every turn."""
        return [dataclasses.replace(turn) for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __getitem__(self, index: int) -> Turn:
        return self._turns[index]

    def __iter__(self) -> Iterator[Turn]:
        return iter(self._turns)

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _new_call_id(self) -> str:
        call_id = f"call_{self._next_call}"
        self._next_call += 1
        return call_id

    def _append(self, kind: TurnKind, text: str, **fields) -> Turn:
        turn = Turn(index=len(self._turns), kind=kind, text=text, **fields)
        self._turns.append(turn)
        return turn

    def _open_call(self, call_id: str, expected: TurnKind) -> Turn:
        index = self._calls.get(call_id)
        if index is None or self._turns[index].kind is not expected:
            raise KeyError(f"unknown {expected.value} call id: {call_id}")
        if call_id in self._answered:
            raise ValueError(f"call {call_id} already has a result")
        return self._turns[index]
