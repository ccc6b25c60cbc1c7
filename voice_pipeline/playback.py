"""
Serialized speech playback.

Utterances are rendered strictly in enqueue order, one at a time, by a single
worker task. Engines expose a blocking speak(), which runs on one dedicated
thread: TTS engines are bound to the thread that created them.

enqueue() returns a future per utterance that resolves to a PlaybackResult:
SPOKEN once it has finished, FAILED if the engine raised, DROPPED if it was
cleared before it started.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Deque, Optional

from logging_setup import get_logger, Component
from .models import PlaybackResult


logger = get_logger(Component.PLAYBACK)


class PlaybackEngine(ABC):
    """Interface for text-to-speech implementations."""

    @abstractmethod
    def speak(self, text: str) -> None:
        """Render `text` as audio and return once it has finished playing."""


@dataclass
class _Item:
    text: str
    done: asyncio.Future
    enqueued_at: float = field(default_factory=time.time)


class SpeechPlaybackQueue:
    """Strictly ordered, non-overlapping playback on top of a PlaybackEngine."""

    def __init__(self, engine: PlaybackEngine, *, executor: Optional[ThreadPoolExecutor] = None):
        self._engine = engine
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="playback")
        self._pending: Deque[_Item] = deque()
        self._current: Optional[_Item] = None
        self._wakeup: Optional[asyncio.Event] = None
        self._worker: Optional[asyncio.Task] = None

    @property
    def speaking(self) -> bool:
        return self._current is not None or bool(self._pending)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(self, text: str) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        item = _Item(text=text, done=loop.create_future())
        self._pending.append(item)
        self._ensure_worker()
        self._wakeup.set()
        logger.debug("Utterance enqueued", text_length=len(text), pending=len(self._pending))
        return item.done

    def clear(self) -> int:
        """Drop utterances that have not started. Audio already playing is left alone."""
        dropped = 0
        while self._pending:
            item = self._pending.popleft()
            if not item.done.done():
                item.done.set_result(PlaybackResult.DROPPED)
            dropped += 1
        if dropped:
            logger.debug("Pending utterances cleared", dropped=dropped)
        return dropped

    async def drain(self) -> None:
        """Wait until everything enqueued so far has been rendered or dropped."""
        waiting = [item.done for item in self._pending]
        if self._current is not None:
            waiting.append(self._current.done)
        if waiting:
            await asyncio.gather(*waiting, return_exceptions=True)

    async def aclose(self) -> None:
        self.clear()
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def _ensure_worker(self) -> None:
        if self._wakeup is None:
            self._wakeup = asyncio.Event()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            if not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            item = self._pending.popleft()
            self._current = item
            result = PlaybackResult.FAILED
            start_ts = time.time()
            try:
                await loop.run_in_executor(self._executor, self._engine.speak, item.text)
                result = PlaybackResult.SPOKEN
            except asyncio.CancelledError:
                if not item.done.done():
                    item.done.set_result(PlaybackResult.DROPPED)
                raise
            except Exception as e:
                logger.error(
                    "Playback engine failed",
                    error=str(e),
                    error_type=type(e).__name__,
                    text_length=len(item.text),
                )
            finally:
                self._current = None

            logger.debug(
                "Utterance finished",
                result=result.value,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            if not item.done.done():
                item.done.set_result(result)
