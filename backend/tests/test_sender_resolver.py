"""
Tests for mapping sender labels onto chat participants.
"""

import pytest

from services.import_errors import UnresolvedSenders
from services.sender_resolver import (
    EXACT,
    FALLBACK,
    MANUAL,
    PARTIAL,
    Participant,
    SenderResolver,
    resolve_senders,
)

ALICE = Participant(id=1, name="Alice Smith")
BOB = Participant(id=2, name="Bob")
PARTICIPANTS = [ALICE, BOB]


class TestResolveSenders:
    def test_exact_match_is_case_insensitive(self):
        resolution = resolve_senders(["alice smith", "BOB"], PARTICIPANTS, uploader_id=1)
        assert resolution.mapping == {"alice smith": 1, "BOB": 2}
        assert resolution.confidence == {"alice smith": EXACT, "BOB": EXACT}
        assert resolution.unmatched == []

    def test_substring_match_in_either_direction(self):
        resolution = resolve_senders(["Alice", "Bobby B."], PARTICIPANTS, uploader_id=2)
        assert resolution.mapping == {"Alice": 1, "Bobby B.": 2}
        assert resolution.confidence["Alice"] == PARTIAL
        assert resolution.confidence["Bobby B."] == PARTIAL

    def test_unknown_label_falls_back_to_uploader(self):
        resolution = resolve_senders(["Carol"], PARTICIPANTS, uploader_id=2)
        assert resolution.mapping == {"Carol": 2}
        assert resolution.confidence == {"Carol": FALLBACK}
        assert resolution.unmatched == ["Carol"]

    def test_first_participant_wins_ties(self):
        twins = [Participant(id=5, name="Sam"), Participant(id=6, name="Sam")]
        assert resolve_senders(["Sam"], twins, uploader_id=6).mapping == {"Sam": 5}

    def test_manual_override_beats_name_match(self):
        resolution = resolve_senders(
            ["Bob", "Mom"], PARTICIPANTS, uploader_id=2, overrides={"bob": 1, "Mom": 1}
        )
        assert resolution.mapping == {"Bob": 1, "Mom": 1}
        assert resolution.confidence == {"Bob": MANUAL, "Mom": MANUAL}

    def test_override_must_target_a_participant(self):
        with pytest.raises(UnresolvedSenders) as exc_info:
            resolve_senders(["Bob"], PARTICIPANTS, uploader_id=1, overrides={"Bob": 99})
        assert exc_info.value.labels == ["Bob"]

    def test_is_deterministic(self):
        labels = ["Carol", "alice", "Bob"]
        first = resolve_senders(labels, PARTICIPANTS, uploader_id=1)
        second = resolve_senders(labels, PARTICIPANTS, uploader_id=1)
        assert first.mapping == second.mapping
        assert first.confidence == second.confidence

    def test_as_dict(self):
        resolution = resolve_senders(["Bob"], PARTICIPANTS, uploader_id=1)
        assert resolution.as_dict() == {"Bob": {"userId": 2, "confidence": EXACT}}


class TestSenderResolver:
    def test_caches_per_label(self):
        resolver = SenderResolver(PARTICIPANTS, uploader_id=1)
        assert resolver.resolve("Bob") == 2
        assert resolver.resolve("Bob") == 2
        assert resolver.resolve("Zed") == 1
        assert resolver.resolution.mapping == {"Bob": 2, "Zed": 1}

    def test_policy_allows_fallback_by_default(self):
        resolver = SenderResolver(PARTICIPANTS, uploader_id=1)
        resolver.resolve("Zed")
        resolver.enforce_policy()

    def test_strict_policy_blocks_unmatched_labels(self):
        resolver = SenderResolver(PARTICIPANTS, uploader_id=1, require_match=True)
        resolver.resolve("Bob")
        resolver.resolve("Zed")
        with pytest.raises(UnresolvedSenders) as exc_info:
            resolver.enforce_policy()
        assert exc_info.value.to_payload()["unmatchedSenders"] == ["Zed"]
        assert exc_info.value.status_code == 422
