"""Unit tests for the run transcript."""

import pytest

from fixloop_mission_system.transcript import Transcript
from fixloop_protocols import ActorKind, TurnKind


class TestAppending:
    """Turn appends and call id pairing."""

    def test_seed_is_index_zero(self):
        transcript = Transcript("Issue #42")
        assert len(transcript) == 1
        assert transcript[0].kind is TurnKind.SEED
        assert transcript[0].text == "Issue #42"

    def test_delegation_and_result_share_call_id(self):
        transcript = Transcript("seed")
        call_id = transcript.append_delegation(ActorKind.ANALYSIS, "Analyze")
        result = transcript.append_result(call_id, "Brief")

        assert transcript[1].call_id == call_id == result.call_id
        assert result.index == 2
        assert result.actor_kind is ActorKind.ANALYSIS

    def test_call_ids_are_unique(self):
        transcript = Transcript("seed")
        first = transcript.append_delegation(ActorKind.ANALYSIS, "a")
        second = transcript.append_verification_call("check_status", "7")
        assert first != second

    def test_unknown_call_id_rejected(self):
        transcript = Transcript("seed")
        with pytest.raises(KeyError):
            transcript.append_result("call_99", "text")

    def test_second_result_rejected(self):
        transcript = Transcript("seed")
        call_id = transcript.append_delegation(ActorKind.CRITIQUE, "Review")
        transcript.append_result(call_id, "ok")
        with pytest.raises(ValueError):
            transcript.append_result(call_id, "again")

    def test_result_kind_must_match_call_kind(self):
        transcript = Transcript("seed")
        call_id = transcript.append_verification_call("check_status", "7")
        with pytest.raises(KeyError):
            transcript.append_result(call_id, "text")

    def test_pending_calls(self):
        transcript = Transcript("seed")
        open_call = transcript.append_delegation(ActorKind.IMPLEMENTATION, "Fix")
        closed = transcript.append_verification_call("check_status")
        transcript.append_verification_result(closed, "{}")
        assert transcript.pending_calls() == [open_call]


class TestQueries:
    """Boundaries, sizes and snapshots."""

    def test_iteration_boundaries_are_critique_results(self):
        transcript = Transcript("seed")
        impl = transcript.append_delegation(ActorKind.IMPLEMENTATION, "Fix")
        transcript.append_result(impl, "PR #7")
        critique = transcript.append_delegation(ActorKind.CRITIQUE, "Review")
        transcript.append_result(critique, "needs changes")

        assert transcript.iteration_boundaries() == [4]
        assert transcript.last_result(ActorKind.CRITIQUE).text == "needs changes"
        assert transcript.last_result(ActorKind.ANALYSIS) is None

    def test_total_chars(self):
        transcript = Transcript("abc")
        transcript.append_reasoning("defg")
        assert transcript.total_chars() == 7

    def test_snapshot_is_detached(self):
        transcript = Transcript("seed")
        transcript.append_reasoning("thinking")
        snapshot = transcript.snapshot()

        transcript.rewrite(1, "changed")

        assert snapshot[1].text == "thinking"

    def test_seed_cannot_be_rewritten(self):
        transcript = Transcript("seed")
        with pytest.raises(ValueError):
            transcript.rewrite(0, "other")
