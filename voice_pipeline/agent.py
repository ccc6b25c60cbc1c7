"""
Voice assistant entrypoint.

Wires the microphone capture engine, transcript router, relay client and
pyttsx3 playback into a ConversationController and drives it from the
console:

    Enter          start listening (or stop, while listening / waiting)
    prompt <name>  switch behavior prompt scenario
    q              quit

Each conversation log entry is printed as it is appended.
"""
import asyncio
import sys
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from logging_setup import get_logger, Component, setup_logging
from observability.events import Component as ObsComponent, EventEmitter
from .assistant_client import AssistantClient
from .capture import SpeechCaptureSession
from .config import VoiceConfig, get_config
from .controller import ConversationController
from .conversation_log import LogEntry, Speaker
from .engines import Pyttsx3Engine, SpeechRecognitionEngine
from .instructions import get_behavior_prompt, get_greeting_text
from .models import SessionState
from .observability import ConversationObserver
from .playback import SpeechPlaybackQueue
from .router import TranscriptRouter, compile_command

# Load .env_local / .env.local for local development; never overrides the environment.
root = Path(__file__).parent.parent
for name in (".env_local", ".env.local"):
    p = root / name
    if p.exists():
        load_dotenv(p, override=False)

logger = get_logger(Component.VOICE_PIPELINE)

SWITCH_PROMPT = compile_command(r"(?:switch|change) to (?:the )?(?P<name>[\w-]+) (?:mode|prompt)")


def register_default_commands(
    router: TranscriptRouter,
    controller: ConversationController,
    quit_requested: asyncio.Event,
) -> None:
    """Fixed voice commands handled without calling the assistant."""

    def pause(_text: str) -> Optional[str]:
        controller.continuous = False
        return "Okay, I'll stop listening."

    def goodbye(_text: str) -> Optional[str]:
        controller.continuous = False
        quit_requested.set()
        return "Goodbye!"

    def switch_prompt(text: str) -> Optional[str]:
        match = SWITCH_PROMPT.fullmatch(text.strip())
        prompt = get_behavior_prompt(match.group("name").lower())
        controller.set_prompt(prompt)
        return f"Switched to {prompt.name}."

    for phrase in ("stop listening", "pause", "go to sleep"):
        router.register(phrase, pause)
    for phrase in ("goodbye", "exit", "quit"):
        router.register(phrase, goodbye)
    router.register(SWITCH_PROMPT, switch_prompt)


def print_entry(entry: LogEntry) -> None:
    label = "You" if entry.speaker is Speaker.USER else "Assistant"
    print(f"{label}: {entry.text}", flush=True)


@dataclass
class VoiceApp:
    controller: ConversationController
    router: TranscriptRouter
    assistant: AssistantClient
    playback: SpeechPlaybackQueue

    async def aclose(self) -> None:
        await self.controller.close()
        await self.playback.aclose()
        await self.assistant.aclose()


def build_app(config: VoiceConfig) -> VoiceApp:
    """Assemble a controller with real engines from configuration."""
    session_id = f"conv_{uuid.uuid4().hex[:12]}"
    router = TranscriptRouter()
    assistant = AssistantClient(
        config.relay_url,
        timeout_seconds=config.assistant_timeout_seconds,
        session_id=session_id,
    )
    playback = SpeechPlaybackQueue(Pyttsx3Engine(rate=config.tts_rate))
    # Events go to stderr so stdout stays a readable transcript
    observer = ConversationObserver(
        session_id,
        emitter=EventEmitter(ObsComponent.VOICE_PIPELINE, stream=sys.stderr),
    )
    controller = ConversationController(
        SpeechCaptureSession(SpeechRecognitionEngine()),
        router,
        assistant,
        playback,
        prompt=get_behavior_prompt(config.prompt_scenario),
        config=config,
        observer=observer,
        session_id=session_id,
    )
    controller.log.subscribe(print_entry)
    return VoiceApp(controller, router, assistant, playback)


def _read_stdin(loop: asyncio.AbstractEventLoop, lines: "asyncio.Queue[str]") -> None:
    # Daemon thread: a pending readline must not block interpreter exit
    try:
        for line in iter(sys.stdin.readline, ""):
            loop.call_soon_threadsafe(lines.put_nowait, line)
        loop.call_soon_threadsafe(lines.put_nowait, "")
    except RuntimeError:
        # Event loop already closed
        return


def handle_console_command(controller: ConversationController, command: str, quit_requested: asyncio.Event) -> None:
    """Apply one console line: toggle listening, switch prompt or quit."""
    command = command.strip()
    if command.lower() in ("q", "quit"):
        quit_requested.set()
    elif command.lower().startswith("prompt "):
        prompt = get_behavior_prompt(command.split(None, 1)[1].strip())
        applied = controller.set_prompt(prompt)
        print(f"[prompt {prompt.name} {'applied' if applied else 'queued until idle'}]", flush=True)
    elif not controller.capture_disabled and (controller.start_listening() or controller.stop_listening()):
        return
    elif controller.capture_disabled:
        print("[speech capture is not available on this system]", flush=True)
    else:
        print(f"[busy: {controller.state.value}]", flush=True)


async def console(
    controller: ConversationController,
    quit_requested: asyncio.Event,
    lines: Optional["asyncio.Queue[str]"] = None,
) -> None:
    """Read console commands until quit. An empty string marks end of input."""
    if lines is None:
        lines = asyncio.Queue()
        threading.Thread(
            target=_read_stdin, args=(asyncio.get_running_loop(), lines), name="console", daemon=True
        ).start()
    while not quit_requested.is_set():
        line = await lines.get()
        if not line:
            quit_requested.set()
            break
        handle_console_command(controller, line, quit_requested)


async def main(config: Optional[VoiceConfig] = None, lines: Optional["asyncio.Queue[str]"] = None) -> None:
    config = config or get_config()
    app = build_app(config)
    controller = app.controller
    quit_requested = asyncio.Event()
    register_default_commands(app.router, controller, quit_requested)

    logger.info(
        "Voice assistant starting",
        session_id=controller.session_id,
        relay_url=config.relay_url,
        prompt=controller.prompt.name,
        continuous=config.continuous,
    )
    print("Press Enter to talk, 'q' to quit.", flush=True)

    runner = asyncio.create_task(controller.run())
    console_task = asyncio.create_task(console(controller, quit_requested, lines))
    try:
        await controller.greet(get_greeting_text(config.prompt_scenario))
        # greet() already resumes listening in continuous mode
        if config.continuous and controller.state is SessionState.IDLE:
            controller.start_listening()
        await quit_requested.wait()
        # Let a "goodbye" acknowledgment finish playing
        if controller.state is SessionState.SPEAKING:
            await controller.wait_until_idle()
    finally:
        await app.aclose()
        console_task.cancel()
        await asyncio.gather(runner, return_exceptions=True)
        logger.info("Voice assistant stopped", session_id=controller.session_id, turns=len(controller.turns))


def run() -> None:
    config = get_config()
    setup_logging(level=config.log_level, use_json=True)
    try:
        asyncio.run(main(config))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
