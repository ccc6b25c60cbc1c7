"""
Conversation data model: utterances, turns, prompts, routes and controller state.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple


class SessionState(str, Enum):
    """Controller phases. Capture, backend call and playback never overlap."""

    IDLE = "idle"
    LISTENING = "listening"
    AWAITING_REPLY = "awaiting_reply"
    SPEAKING = "speaking"


class TurnStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class RouteKind(str, Enum):
    COMMAND = "command"
    FREEFORM = "freeform"
    EMPTY = "empty"


class PlaybackResult(str, Enum):
    """How a queued utterance ended."""

    SPOKEN = "spoken"
    FAILED = "failed"
    DROPPED = "dropped"


# A command handler receives the matched transcript and may return an acknowledgment to speak.
CommandHandler = Callable[[str], Optional[str]]


@dataclass(frozen=True)
class Utterance:
    """One recognized block of speech; `text` is the top-ranked candidate."""

    text: str
    confidence_rank: int = 0
    timestamp: float = field(default_factory=time.time)
    alternatives: Tuple[str, ...] = ()

    @classmethod
    def from_candidates(cls, candidates: Sequence[str]) -> "Utterance":
        if not candidates:
            raise ValueError("candidates must not be empty")
        return cls(text=candidates[0].strip(), alternatives=tuple(candidates[1:]))


@dataclass
class ConversationTurn:
    """One user-input-to-assistant-reply exchange. Never reused."""

    turn_id: str
    user: Utterance
    assistant_reply: Optional[str] = None
    status: TurnStatus = TurnStatus.PENDING
    failure: Optional[str] = None

    def complete(self, reply: str) -> None:
        if self.status is not TurnStatus.PENDING:
            raise ValueError(f"turn {self.turn_id} already {self.status.value}")
        self.assistant_reply = reply
        self.status = TurnStatus.COMPLETED

    def fail(self, reason: str) -> None:
        if self.status is not TurnStatus.PENDING:
            raise ValueError(f"turn {self.turn_id} already {self.status.value}")
        self.failure = reason
        self.status = TurnStatus.FAILED


@dataclass(frozen=True)
class BehaviorPrompt:
    """Instruction text that shapes the remote model's replies."""

    text: str
    name: str = "custom"

    def __post_init__(self):
        if not self.text or not self.text.strip():
            raise ValueError("prompt text is required")


@dataclass(frozen=True)
class Route:
    """Classification outcome for a transcript."""

    kind: RouteKind
    text: str = ""
    handler: Optional[CommandHandler] = None

    @classmethod
    def command(cls, text: str, handler: CommandHandler) -> "Route":
        return cls(RouteKind.COMMAND, text, handler)

    @classmethod
    def freeform(cls, text: str) -> "Route":
        return cls(RouteKind.FREEFORM, text)

    @classmethod
    def empty(cls) -> "Route":
        return cls(RouteKind.EMPTY)
