"""
Transcript routing: fixed commands vs free-form input for the assistant.

Only the top-ranked candidate is ever considered. Lower-ranked alternates
are context that may be discarded, never merged into the transcript.
"""

from __future__ import annotations

import re
from typing import List, Optional, Pattern, Sequence, Tuple, Union

from logging_setup import get_logger, Component
from .models import CommandHandler, Route


logger = get_logger(Component.ROUTER)


def normalize(text: str) -> str:
    """Lowercase and collapse whitespace for exact command matching."""
    return " ".join(text.lower().split())


class TranscriptRouter:
    """Classifies recognition candidates into a Route."""

    def __init__(self):
        self._exact: dict[str, CommandHandler] = {}
        self._patterns: List[Tuple[Pattern[str], CommandHandler]] = []

    def register(self, pattern: Union[str, Pattern[str]], handler: CommandHandler) -> None:
        """
        Register a fixed command.

        Plain strings match exactly (case and whitespace insensitive);
        compiled patterns must match the whole transcript.
        """
        if isinstance(pattern, str):
            key = normalize(pattern)
            if not key:
                raise ValueError("command phrase must not be empty")
            self._exact[key] = handler
        else:
            self._patterns.append((pattern, handler))

    def match(self, text: str) -> Optional[CommandHandler]:
        handler = self._exact.get(normalize(text))
        if handler is not None:
            return handler
        stripped = text.strip()
        for pattern, candidate in self._patterns:
            if pattern.fullmatch(stripped):
                return candidate
        return None

    def classify(self, candidates: Sequence[str]) -> Route:
        if not candidates or not candidates[0] or not candidates[0].strip():
            logger.debug("No usable transcript", candidate_count=len(candidates))
            return Route.empty()

        top = candidates[0].strip()
        handler = self.match(top)
        if handler is not None:
            logger.debug("Routed to command", alternatives=len(candidates) - 1)
            return Route.command(top, handler)
        return Route.freeform(top)


def compile_command(expression: str) -> Pattern[str]:
    """Case-insensitive pattern for use with TranscriptRouter.register."""
    return re.compile(expression, re.IGNORECASE)
