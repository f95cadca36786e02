"""
Map external sender labels from a chat export onto the chat's participants.

Resolution order per label: manual override, case-insensitive exact name
match, case-insensitive substring match (either direction), then fallback to
the uploader. Fallbacks are reported, never hidden.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from services.import_errors import UnresolvedSenders

MANUAL = "manual"
EXACT = "exact"
PARTIAL = "partial"
FALLBACK = "fallback"


@dataclass(frozen=True)
class Participant:
    id: int
    name: str

    @classmethod
    def from_user(cls, user) -> "Participant":
        return cls(id=user.id, name=user.name or "")


@dataclass
class SenderResolution:
    mapping: Dict[str, int] = field(default_factory=dict)
    confidence: Dict[str, str] = field(default_factory=dict)

    @property
    def unmatched(self) -> List[str]:
        return [label for label, level in self.confidence.items() if level == FALLBACK]

    def add(self, label: str, user_id: int, level: str) -> None:
        self.mapping[label] = user_id
        self.confidence[label] = level

    def as_dict(self) -> dict:
        return {
            label: {"userId": self.mapping[label], "confidence": self.confidence[label]}
            for label in self.mapping
        }


def _key(value: str) -> str:
    return " ".join((value or "").split()).casefold()


def _normalize_overrides(
    overrides: Optional[Mapping[str, int]], participants: Sequence[Participant]
) -> Dict[str, int]:
    if not overrides:
        return {}
    allowed = {p.id for p in participants}
    normalized = {}
    for label, user_id in overrides.items():
        if user_id not in allowed:
            raise UnresolvedSenders(
                [label], "sender_map may only point at participants of this chat"
            )
        normalized[_key(label)] = user_id
    return normalized


def resolve_label(
    label: str,
    participants: Sequence[Participant],
    uploader_id: int,
    overrides: Optional[Dict[str, int]] = None,
) -> tuple[int, str]:
    """Resolve a single label. ``overrides`` must already be normalized."""
    key = _key(label)
    if overrides and key in overrides:
        return overrides[key], MANUAL

    for participant in participants:
        if key and _key(participant.name) == key:
            return participant.id, EXACT

    for participant in participants:
        name = _key(participant.name)
        if key and name and (key in name or name in key):
            return participant.id, PARTIAL

    return uploader_id, FALLBACK


def resolve_senders(
    labels: Iterable[str],
    participants: Sequence[Participant],
    uploader_id: int,
    overrides: Optional[Mapping[str, int]] = None,
) -> SenderResolution:
    """
    Pure and deterministic: the same inputs always give the same mapping.

    ``participants`` are checked in the order given, so the first one wins
    when a label matches both.
    """
    normalized = _normalize_overrides(overrides, participants)
    resolution = SenderResolution()
    for label in labels:
        if label in resolution.mapping:
            continue
        user_id, level = resolve_label(label, participants, uploader_id, normalized)
        resolution.add(label, user_id, level)
    return resolution


class SenderResolver:
    """Per-import cache around resolve_label for use while records stream in."""

    def __init__(
        self,
        participants: Sequence[Participant],
        uploader_id: int,
        overrides: Optional[Mapping[str, int]] = None,
        require_match: bool = False,
    ):
        self.participants = list(participants)
        self.uploader_id = uploader_id
        self.require_match = require_match
        self._overrides = _normalize_overrides(overrides, self.participants)
        self.resolution = SenderResolution()

    def resolve(self, label: str) -> int:
        user_id = self.resolution.mapping.get(label)
        if user_id is None:
            user_id, level = resolve_label(
                label, self.participants, self.uploader_id, self._overrides
            )
            self.resolution.add(label, user_id, level)
        return user_id

    def enforce_policy(self) -> None:
        """Raise UnresolvedSenders when strict matching is on and a label fell back."""
        unmatched = self.resolution.unmatched
        if self.require_match and unmatched:
            raise UnresolvedSenders(unmatched)
