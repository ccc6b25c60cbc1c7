"""
Conversation controller: the turn-taking state machine.

    Idle -> Listening -> (Empty | Command | AwaitingReply) -> Speaking -> Idle

Capture, the backend call and playback are mutually exclusive phases. The
controller is the only writer of SessionState; leaf components report through
events and return values. Every suspension point (capture event, backend
reply, playback finished) is an await inside a single cooperative task, so no
locking is needed around the state.

Recovery policy lives here and only here:
- empty / unrecognized speech: back to Idle, nothing recorded
- backend failure or timeout: turn Failed, fallback message spoken, no retry
- capture engine missing: reported once, capture disabled
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Callable, List, Optional, Sequence

from .assistant_client import AssistantClient
from .capture import CaptureEvent, CaptureEventKind, CaptureOptions, SpeechCaptureSession
from .config import DEFAULT_FALLBACK_MESSAGE, VoiceConfig
from .conversation_log import ConversationLog
from .errors import AssistantError, EngineUnavailable
from .models import (
    BehaviorPrompt,
    ConversationTurn,
    PlaybackResult,
    Route,
    RouteKind,
    SessionState,
    TurnStatus,
    Utterance,
)
from .observability import ConversationObserver
from .playback import SpeechPlaybackQueue
from .router import TranscriptRouter


# Legal transitions; re-entering the current state is a no-op.
_TRANSITIONS = {
    SessionState.IDLE: {SessionState.LISTENING, SessionState.SPEAKING},
    SessionState.LISTENING: {SessionState.IDLE, SessionState.AWAITING_REPLY, SessionState.SPEAKING},
    SessionState.AWAITING_REPLY: {SessionState.SPEAKING, SessionState.IDLE},
    SessionState.SPEAKING: {SessionState.IDLE},
}

# Recognition errors that will not clear up by listening again.
FATAL_RECOGNITION_ERRORS = frozenset({"not-allowed", "service-not-allowed", "audio-capture"})


class ConversationController:
    """Coordinates capture, routing, the assistant call and playback."""

    def __init__(
        self,
        capture: SpeechCaptureSession,
        router: TranscriptRouter,
        assistant: AssistantClient,
        playback: SpeechPlaybackQueue,
        *,
        prompt: BehaviorPrompt,
        config: Optional[VoiceConfig] = None,
        log: Optional[ConversationLog] = None,
        observer: Optional[ConversationObserver] = None,
        session_id: Optional[str] = None,
        now: Callable[[], float] = time.time,
    ):
        self.config = config or VoiceConfig()
        self.session_id = session_id or f"conv_{uuid.uuid4().hex[:12]}"
        self.log = log or ConversationLog()
        self.observer = observer or ConversationObserver(self.session_id)
        self.turns: List[ConversationTurn] = []

        self._capture = capture
        self._router = router
        self._assistant = assistant
        self._playback = playback
        self._now = now

        self._state = SessionState.IDLE
        self._idle = asyncio.Event()
        self._idle.set()
        self._prompt = prompt
        self._pending_prompt: Optional[BehaviorPrompt] = None
        self._continuous = self.config.continuous
        self._capture_disabled = False
        self._closed = False
        self._turn_seq = 0
        self._current_turn: Optional[ConversationTurn] = None
        self._reply_task: Optional[asyncio.Task] = None
        self._discard_reply = False
        self._runner: Optional[asyncio.Task] = None

    # --- read-only views ---

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def prompt(self) -> BehaviorPrompt:
        return self._prompt

    @property
    def capture_disabled(self) -> bool:
        return self._capture_disabled

    @property
    def continuous(self) -> bool:
        return self._continuous

    @continuous.setter
    def continuous(self, value: bool) -> None:
        self._continuous = value

    @property
    def closed(self) -> bool:
        return self._closed

    async def wait_until_idle(self) -> None:
        await self._idle.wait()

    # --- user-facing actions ---

    def start_listening(self) -> bool:
        """Begin a listening phase. Only accepted while Idle."""
        if self._closed or self._capture_disabled:
            return False
        if self._state is not SessionState.IDLE:
            self.observer.request_rejected("start_listening", self._state)
            return False

        options = CaptureOptions(
            continuous=self.config.continuous,
            auto_restart=self.config.auto_restart,
            language=self.config.language,
        )
        try:
            self._capture.start(options)
        except EngineUnavailable as e:
            self._capture_disabled = True
            self.observer.capture_unavailable(e)
            return False

        self._transition(SessionState.LISTENING)
        self.observer.capture_started(self._capture.generation, options.continuous)
        return True

    def stop_listening(self) -> bool:
        """
        Stop the current phase early.

        Listening: capture is aborted and in-flight recognition discarded.
        AwaitingReply: the backend call is cancelled and a late reply ignored.
        Speaking and Idle: rejected.
        """
        if self._state is SessionState.LISTENING:
            self._capture.abort()
            self._enter_idle(auto_listen=False)
            return True
        if self._state is SessionState.AWAITING_REPLY:
            self._discard_reply = True
            if self._reply_task is not None:
                self._reply_task.cancel()
            return True
        self.observer.request_rejected("stop_listening", self._state)
        return False

    def set_prompt(self, prompt: BehaviorPrompt) -> bool:
        """
        Replace the behavior prompt.

        Applied immediately while Idle; otherwise held back and applied the
        next time the controller returns to Idle. Returns True if applied now.
        """
        if self._state is SessionState.IDLE:
            self._prompt = prompt
            self._pending_prompt = None
            self.observer.prompt_changed(prompt.name, deferred=False)
            return True
        self._pending_prompt = prompt
        self.observer.prompt_changed(prompt.name, deferred=True)
        return False

    async def greet(self, text: str) -> None:
        """Speak a greeting from Idle, then return to Idle."""
        if self._state is not SessionState.IDLE or not text:
            return
        self.log.record_assistant(text)
        await self._speak(text)
        self._enter_idle()

    # --- event loop ---

    async def run(self) -> None:
        """Consume capture events until close()."""
        self._runner = asyncio.current_task()
        try:
            while not self._closed:
                event = await self._capture.next_event()
                await self.handle_capture_event(event)
        except asyncio.CancelledError:
            if not self._closed:
                raise
        finally:
            self._runner = None

    async def handle_capture_event(self, event: CaptureEvent) -> None:
        if self._state is not SessionState.LISTENING:
            self.observer.logger.debug("Ignoring capture event", kind=event.kind.value, state=self._state.value)
            return

        if event.kind is CaptureEventKind.SOUNDEND:
            self.observer.logger.debug("Audio input ended")
            return

        if event.kind is CaptureEventKind.ERROR:
            self.observer.capture_error(event.error)
            self._capture.abort()
            self._enter_idle(auto_listen=event.error not in FATAL_RECOGNITION_ERRORS)
            return

        self.observer.capture_result(event.candidates)
        # The capture phase ends before anything else happens
        self._capture.stop()

        route = self._router.classify(event.candidates)
        if route.kind is RouteKind.EMPTY:
            self._enter_idle()
        elif route.kind is RouteKind.COMMAND:
            await self._run_command(route)
        else:
            await self._run_turn(route, event.candidates)

    async def close(self) -> None:
        """
        Abort capture, cancel any backend call and drop pending playback.

        An utterance already playing is not interrupted; the state still moves
        to Idle right away.
        """
        if self._closed:
            return
        self._closed = True
        self._capture.abort()
        self._discard_reply = True
        if self._reply_task is not None:
            self._reply_task.cancel()
            if self._current_turn is not None and self._current_turn.status is TurnStatus.PENDING:
                self._current_turn.fail("cancelled")
                self.observer.turn_failed(self._current_turn)
        self._playback.clear()
        if self._state is not SessionState.IDLE:
            self._enter_idle(auto_listen=False)
        if self._runner is not None and self._runner is not asyncio.current_task():
            self._runner.cancel()

    # --- phases ---

    async def _run_command(self, route: Route) -> None:
        acknowledgment: Optional[str] = None
        try:
            acknowledgment = route.handler(route.text)
        except Exception as e:
            self.observer.command_failed(route.text, e)
        else:
            self.observer.command_executed(route.text, acknowledged=bool(acknowledgment))

        self.log.record_command(route.text, acknowledgment)
        if acknowledgment and not self._closed:
            await self._speak(acknowledgment)
        self._enter_idle()

    async def _run_turn(self, route: Route, candidates: Sequence[str]) -> None:
        turn = ConversationTurn(turn_id=self._new_turn_id(), user=Utterance.from_candidates(candidates))
        self.turns.append(turn)
        self._current_turn = turn
        self._discard_reply = False
        self._transition(SessionState.AWAITING_REPLY, turn.turn_id)
        self.observer.turn_started(turn)

        # The prompt is fixed for the whole turn; set_prompt defers until Idle
        task = asyncio.ensure_future(self._assistant.send(turn.user.text, self._prompt))
        self._reply_task = task
        try:
            await asyncio.wait({task})
        finally:
            self._reply_task = None

        if task.cancelled() or self._discard_reply:
            if not task.cancelled():
                # Consume the result so the task does not warn; it is never used
                task.exception()
                self.observer.late_reply_discarded(turn.turn_id)
            # close() may already have failed the turn
            if turn.status is TurnStatus.PENDING:
                turn.fail("cancelled")
                self.observer.turn_failed(turn)
            self._current_turn = None
            self._enter_idle(auto_listen=False)
            return

        error = task.exception()
        if error is None:
            turn.complete(task.result())
            self.observer.reply_received(turn)
            spoken = turn.assistant_reply
        else:
            if isinstance(error, AssistantError):
                turn.fail(error.category)
            else:
                self.observer.logger.error(
                    "Unexpected assistant failure",
                    correlation_id=turn.turn_id,
                    error_type=type(error).__name__,
                    exc_info=error,
                )
                turn.fail("assistant.unexpected_error")
            self.observer.turn_failed(turn)
            spoken = self.config.fallback_message or DEFAULT_FALLBACK_MESSAGE

        self.log.record_turn(turn, spoken)
        await self._speak(spoken, turn.turn_id)
        self._current_turn = None
        self._enter_idle()

    async def _speak(self, text: str, turn_id: Optional[str] = None) -> PlaybackResult:
        self._transition(SessionState.SPEAKING, turn_id)
        self.observer.tts_started(text, turn_id)
        result = await self._playback.enqueue(text)
        if result is PlaybackResult.FAILED:
            self.observer.tts_error(turn_id)
        self.observer.tts_stopped(result, turn_id)
        return result

    # --- state bookkeeping ---

    def _new_turn_id(self) -> str:
        self._turn_seq += 1
        return f"turn_{int(self._now() * 1000)}_{self._turn_seq}"

    def _transition(self, new_state: SessionState, turn_id: Optional[str] = None) -> None:
        old_state = self._state
        if new_state is old_state:
            return
        if new_state not in _TRANSITIONS[old_state]:
            raise RuntimeError(f"illegal transition {old_state.value} -> {new_state.value}")
        self._state = new_state
        if new_state is SessionState.IDLE:
            self._idle.set()
        else:
            self._idle.clear()
        self.observer.state_changed(old_state, new_state, turn_id)

    def _enter_idle(self, auto_listen: bool = True) -> None:
        self._transition(SessionState.IDLE)
        if self._pending_prompt is not None:
            prompt, self._pending_prompt = self._pending_prompt, None
            self._prompt = prompt
            self.observer.prompt_changed(prompt.name, deferred=False)
        if auto_listen and self._continuous and not self._closed:
            self.start_listening()
