"""
Error taxonomy for the voice pipeline.

Leaf components raise these; only the conversation controller decides how to
recover. Assistant failures carry a stable category string for events.
"""
from typing import Optional


class VoicePipelineError(Exception):
    """Base class for voice pipeline errors."""


class EngineUnavailable(VoicePipelineError):
    """The speech engine is not present on this platform. Fatal to capture."""


class AlreadyListening(VoicePipelineError):
    """A capture session was started while another one is active."""


class AssistantError(VoicePipelineError):
    """Base class for turn-local backend failures."""

    category = "assistant.unknown_error"


class NetworkFailure(AssistantError):
    """No response reached the client."""

    category = "assistant.network_failure"


class ServiceError(AssistantError):
    """The relay answered with an error status or an unusable body."""

    category = "assistant.service_error"

    def __init__(self, message: str, status: Optional[int] = None, detail: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.detail = detail


class Timeout(AssistantError):
    """No response within the bounded wait."""

    category = "assistant.timeout"
