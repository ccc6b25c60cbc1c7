"""
Shared fakes for driving the voice pipeline without audio hardware.
"""
import asyncio
import threading
from io import StringIO
from typing import List, Optional, Sequence

import pytest
import pytest_asyncio

from observability.events import Component, EventEmitter
from observability.event_store import EventStore
from voice_pipeline.capture import CaptureEngine, CaptureOptions, CaptureSink, SpeechCaptureSession
from voice_pipeline.controller import ConversationController
from voice_pipeline.config import VoiceConfig
from voice_pipeline.models import BehaviorPrompt
from voice_pipeline.observability import ConversationObserver
from voice_pipeline.playback import PlaybackEngine, SpeechPlaybackQueue
from voice_pipeline.router import TranscriptRouter


class FakeCaptureEngine(CaptureEngine):
    """Records calls; tests push recognition callbacks through the latest sink."""

    def __init__(self, available: bool = True):
        self.available = available
        self.sink: Optional[CaptureSink] = None
        self.options: Optional[CaptureOptions] = None
        self.calls: List[str] = []

    def is_available(self) -> bool:
        return self.available

    def start(self, options: CaptureOptions, sink: CaptureSink) -> None:
        self.calls.append("start")
        self.options = options
        self.sink = sink

    def stop(self) -> None:
        self.calls.append("stop")

    def abort(self) -> None:
        self.calls.append("abort")

    def hear(self, *candidates: str) -> None:
        self.sink.soundend()
        self.sink.result(list(candidates))

    def fail(self, kind: str) -> None:
        self.sink.error(kind)


class FakePlaybackEngine(PlaybackEngine):
    """Blocking speak() that records what was rendered and checks for overlap."""

    def __init__(self, delay: float = 0.0, fail_on: Sequence[str] = ()):
        self.delay = delay
        self.fail_on = set(fail_on)
        self.spoken: List[str] = []
        self.started: List[str] = []
        self.overlapped = False
        self._active = 0
        self._lock = threading.Lock()
        self.release: Optional[threading.Event] = None

    def speak(self, text: str) -> None:
        with self._lock:
            self._active += 1
            if self._active > 1:
                self.overlapped = True
        self.started.append(text)
        try:
            if self.release is not None:
                self.release.wait(timeout=5)
            elif self.delay:
                threading.Event().wait(self.delay)
            if text in self.fail_on:
                raise RuntimeError(f"cannot say {text!r}")
            self.spoken.append(text)
        finally:
            with self._lock:
                self._active -= 1


class FakeAssistant:
    """Stands in for AssistantClient.send; optionally waits on a gate."""

    def __init__(self, reply: str = "It is sunny.", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, transcript: str, prompt: BehaviorPrompt) -> str:
        self.calls.append((transcript, prompt))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.reply
        finally:
            self.in_flight -= 1

    async def aclose(self) -> None:
        pass


@pytest.fixture
def capture_engine():
    return FakeCaptureEngine()


@pytest.fixture
def playback_engine():
    return FakePlaybackEngine()


@pytest.fixture
def assistant():
    return FakeAssistant()


@pytest.fixture
def event_stream():
    return StringIO()


@pytest.fixture
def store():
    return EventStore()


@pytest.fixture
def prompt():
    return BehaviorPrompt("Be brief.", name="test")


@pytest_asyncio.fixture
async def make_controller(capture_engine, playback_engine, assistant, event_stream, store, prompt):
    """Build a controller around the fakes; keyword args override VoiceConfig fields."""
    created = []

    def _make(router: Optional[TranscriptRouter] = None, **config_overrides) -> ConversationController:
        observer = ConversationObserver(
            "conv_test",
            emitter=EventEmitter(Component.VOICE_PIPELINE, stream=event_stream, store=store),
        )
        playback = SpeechPlaybackQueue(playback_engine)
        controller = ConversationController(
            SpeechCaptureSession(capture_engine),
            router or TranscriptRouter(),
            assistant,
            playback,
            prompt=prompt,
            config=VoiceConfig(**config_overrides),
            observer=observer,
            session_id="conv_test",
        )
        created.append((controller, playback))
        return controller

    yield _make

    for controller, playback in created:
        await controller.close()
        await playback.aclose()
