"""
Speech capture session.

Wraps a speech-to-text engine and turns its callbacks (result, soundend,
error) into CaptureEvent messages on an asyncio queue, so the conversation
controller can await them one at a time. Engines may call back from worker
threads; events are posted onto the owning loop thread-safely.

Only one listening session exists at a time. Every start() opens a new
generation; callbacks from an earlier generation (stopped or aborted) are
dropped, which is how in-flight recognition gets discarded.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence, Tuple

from logging_setup import get_logger, Component
from .errors import AlreadyListening, EngineUnavailable


logger = get_logger(Component.CAPTURE)


class CaptureEventKind(str, Enum):
    RESULT = "result"
    SOUNDEND = "soundend"
    ERROR = "error"


@dataclass(frozen=True)
class CaptureEvent:
    kind: CaptureEventKind
    candidates: Tuple[str, ...] = ()
    error: Optional[str] = None
    generation: int = 0


@dataclass(frozen=True)
class CaptureOptions:
    """Opaque pass-through engine options."""

    continuous: bool = False
    auto_restart: bool = False
    language: str = "en-US"


class CaptureSink:
    """Callback surface handed to an engine for one listening generation."""

    def __init__(self, session: "SpeechCaptureSession", generation: int):
        self._session = session
        self.generation = generation

    def result(self, candidates: Sequence[str]) -> None:
        self._session._post(CaptureEvent(
            CaptureEventKind.RESULT,
            candidates=tuple(candidates),
            generation=self.generation,
        ))

    def soundend(self) -> None:
        self._session._post(CaptureEvent(CaptureEventKind.SOUNDEND, generation=self.generation))

    def error(self, kind: str) -> None:
        self._session._post(CaptureEvent(CaptureEventKind.ERROR, error=kind, generation=self.generation))


class CaptureEngine(ABC):
    """Interface for speech-to-text engines."""

    @abstractmethod
    def is_available(self) -> bool:
        """True if the engine can run on this platform."""

    @abstractmethod
    def start(self, options: CaptureOptions, sink: CaptureSink) -> None:
        """Begin listening; report through `sink`. Must not block."""

    @abstractmethod
    def stop(self) -> None:
        """Stop listening, letting a pending recognition finish."""

    @abstractmethod
    def abort(self) -> None:
        """Stop listening and drop any pending recognition."""


class SpeechCaptureSession:
    """Owns at most one active listening session on a CaptureEngine."""

    def __init__(self, engine: CaptureEngine, *, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._engine = engine
        self._loop = loop
        self._events: asyncio.Queue[CaptureEvent] = asyncio.Queue()
        self._generation = 0
        self._listening = False
        self._options: Optional[CaptureOptions] = None

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def generation(self) -> int:
        return self._generation

    def start(self, options: Optional[CaptureOptions] = None) -> None:
        if not self._engine.is_available():
            raise EngineUnavailable(f"{type(self._engine).__name__} is not available on this platform")
        if self._listening:
            raise AlreadyListening("stop the current session before starting a new one")

        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._options = options or CaptureOptions()
        self._generation += 1
        self._listening = True
        logger.debug(
            "Capture started",
            generation=self._generation,
            continuous=self._options.continuous,
            language=self._options.language,
        )
        try:
            self._engine.start(self._options, CaptureSink(self, self._generation))
        except Exception:
            self._listening = False
            raise

    def stop(self) -> None:
        if not self._listening:
            return
        self._listening = False
        self._generation += 1
        self._engine.stop()
        logger.debug("Capture stopped", generation=self._generation)

    def abort(self) -> None:
        if not self._listening:
            return
        self._listening = False
        self._generation += 1
        self._engine.abort()
        logger.debug("Capture aborted", generation=self._generation)

    async def next_event(self) -> CaptureEvent:
        """Wait for the next event of the current generation."""
        while True:
            event = await self._events.get()
            if event.generation == self._generation:
                return event
            logger.debug("Dropping stale capture event", kind=event.kind.value, generation=event.generation)

    def _post(self, event: CaptureEvent) -> None:
        if self._loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._accept(event)
        else:
            self._loop.call_soon_threadsafe(self._accept, event)

    def _accept(self, event: CaptureEvent) -> None:
        if event.generation != self._generation:
            return
        # An error ends any session; a result ends a single-shot one
        if event.kind is CaptureEventKind.ERROR:
            self._listening = False
        elif event.kind is CaptureEventKind.RESULT and not (self._options and self._options.continuous):
            self._listening = False
        self._events.put_nowait(event)
