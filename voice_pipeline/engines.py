"""
Concrete speech engines.

- SpeechRecognitionEngine: microphone capture through the SpeechRecognition
  library, recognized with Google's web recognizer. show_all=True returns
  every alternative, which become the ranked candidates.
- Pyttsx3Engine: offline text-to-speech through pyttsx3.
"""

from __future__ import annotations

import threading
from typing import Any, List, Optional

import pyttsx3
import speech_recognition as sr

from logging_setup import get_logger, Component
from .capture import CaptureEngine, CaptureOptions, CaptureSink
from .playback import PlaybackEngine


logger = get_logger(Component.CAPTURE)
playback_logger = get_logger(Component.PLAYBACK)


def candidates_from_google(response: Any) -> List[str]:
    """
    Ordered transcripts from a recognize_google(show_all=True) response.

    The recognizer returns [] when nothing was understood, otherwise a dict
    like {"alternative": [{"transcript": ..., "confidence": ...}, ...]}.
    Google already lists alternatives most-likely first.
    """
    if not isinstance(response, dict):
        return []
    candidates = []
    for alternative in response.get("alternative", []):
        text = (alternative.get("transcript") or "").strip()
        if text and text not in candidates:
            candidates.append(text)
    return candidates


class SpeechRecognitionEngine(CaptureEngine):
    """Listens on the default microphone in a background thread."""

    def __init__(
        self,
        *,
        pause_threshold: float = 1.0,
        energy_threshold: int = 300,
        listen_timeout: Optional[float] = 8.0,
        phrase_time_limit: Optional[float] = 15.0,
    ):
        self.recognizer = sr.Recognizer()
        self.recognizer.pause_threshold = pause_threshold
        self.recognizer.energy_threshold = energy_threshold
        self.listen_timeout = listen_timeout
        self.phrase_time_limit = phrase_time_limit

        self._stop = threading.Event()
        self._abort = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def is_available(self) -> bool:
        try:
            sr.Microphone.get_pyaudio()
        except (AttributeError, ImportError, OSError):
            return False
        return True

    def start(self, options: CaptureOptions, sink: CaptureSink) -> None:
        self._stop = threading.Event()
        self._abort = threading.Event()
        self._thread = threading.Thread(
            target=self._listen_loop,
            args=(options, sink, self._stop, self._abort),
            name=f"capture-{sink.generation}",
            daemon=True,
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()

    def abort(self) -> None:
        self._stop.set()
        self._abort.set()

    def _listen_loop(
        self,
        options: CaptureOptions,
        sink: CaptureSink,
        stop: threading.Event,
        abort: threading.Event,
    ) -> None:
        try:
            with sr.Microphone() as source:
                self.recognizer.adjust_for_ambient_noise(source, duration=0.5)
                while not stop.is_set():
                    outcome = self._listen_once(source, options, sink, abort)
                    if outcome == "retry":
                        continue
                    if outcome == "end" or not options.continuous:
                        return
        except OSError as e:
            logger.error("Microphone unavailable", error=str(e))
            if not abort.is_set():
                sink.error("audio-capture")
        except Exception as e:
            # Any failure still has to end the listening phase
            logger.error("Capture thread failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            if not abort.is_set():
                sink.error("audio-capture")

    def _listen_once(self, source: Any, options: CaptureOptions, sink: CaptureSink, abort: threading.Event) -> str:
        """Capture one phrase. Returns "heard", "retry" (silent, auto-restart) or "end"."""
        try:
            audio = self.recognizer.listen(
                source,
                timeout=self.listen_timeout,
                phrase_time_limit=self.phrase_time_limit,
            )
        except sr.WaitTimeoutError:
            if abort.is_set():
                return "end"
            if options.auto_restart:
                return "retry"
            sink.error("no-speech")
            return "end"

        if abort.is_set():
            return "end"
        sink.soundend()

        try:
            response = self.recognizer.recognize_google(audio, language=options.language, show_all=True)
        except sr.RequestError as e:
            logger.warning("Recognition request failed", error=str(e))
            if not abort.is_set():
                sink.error("network")
            return "end"

        if abort.is_set():
            return "end"
        sink.result(candidates_from_google(response))
        return "heard"


class Pyttsx3Engine(PlaybackEngine):
    """Offline TTS. The engine is created lazily on the playback thread."""

    def __init__(self, rate: int = 180, voice: Optional[str] = None):
        self.rate = rate
        self.voice = voice
        self._engine = None

    def _get_engine(self):
        if self._engine is None:
            engine = pyttsx3.init()
            engine.setProperty("rate", self.rate)
            if self.voice:
                engine.setProperty("voice", self.voice)
            self._engine = engine
            playback_logger.debug("pyttsx3 initialized", rate=self.rate)
        return self._engine

    def speak(self, text: str) -> None:
        # Flatten newlines and repeated whitespace; some drivers choke on them
        text = " ".join(text.split())
        if not text:
            return
        engine = self._get_engine()
        engine.say(text)
        engine.runAndWait()
