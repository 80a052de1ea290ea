"""
Append-only conversation transcript.
"""
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from cadence.core.intents import IntentKind


@dataclass(frozen=True)
class TranscriptEntry:
    """One turn of the conversation. Never mutated after append."""
    text: str
    is_from_user: bool
    timestamp: float = field(default_factory=time.time)
    associated_kind: Optional[IntentKind] = None
    requires_confirmation: bool = False

    @property
    def role(self) -> str:
        return "user" if self.is_from_user else "assistant"


class Transcript:
    """Ordered record of turns. Only the owning runtime appends to it."""

    def __init__(self) -> None:
        self._entries: List[TranscriptEntry] = []

    def append(self, entry: TranscriptEntry) -> TranscriptEntry:
        self._entries.append(entry)
        return entry

    def clear(self) -> None:
        self._entries = []

    def entries(self) -> Tuple[TranscriptEntry, ...]:
        """Snapshot of all entries, oldest first."""
        return tuple(self._entries)

    def last(self, count: int) -> Tuple[TranscriptEntry, ...]:
        if count <= 0:
            return ()
        return tuple(self._entries[-count:])

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TranscriptEntry]:
        return iter(tuple(self._entries))
