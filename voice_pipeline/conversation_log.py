"""
Conversation log for display.

An append-only sequence of (speaker, text) entries. It is a projection of
finished turns and command acknowledgments, never a source of state.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional

from .models import ConversationTurn, TurnStatus


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class LogEntry:
    speaker: Speaker
    text: str
    turn_id: Optional[str] = None


class ConversationLog:
    """Append-only transcript with optional listeners for live display."""

    def __init__(self):
        self._entries: List[LogEntry] = []
        self._listeners: List[Callable[[LogEntry], None]] = []

    def subscribe(self, listener: Callable[[LogEntry], None]) -> None:
        self._listeners.append(listener)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def as_pairs(self) -> List[tuple[str, str]]:
        return [(e.speaker.value, e.text) for e in self._entries]

    def record_turn(self, turn: ConversationTurn, spoken_text: str) -> None:
        """Append a finished turn: the user's text and what the assistant said."""
        if turn.status is TurnStatus.PENDING:
            raise ValueError(f"turn {turn.turn_id} is still pending")
        self._append(LogEntry(Speaker.USER, turn.user.text, turn.turn_id))
        self._append(LogEntry(Speaker.ASSISTANT, spoken_text, turn.turn_id))

    def record_command(self, command_text: str, acknowledgment: Optional[str]) -> None:
        self._append(LogEntry(Speaker.USER, command_text))
        if acknowledgment:
            self._append(LogEntry(Speaker.ASSISTANT, acknowledgment))

    def record_assistant(self, text: str) -> None:
        self._append(LogEntry(Speaker.ASSISTANT, text))

    def _append(self, entry: LogEntry) -> None:
        self._entries.append(entry)
        for listener in self._listeners:
            listener(entry)
