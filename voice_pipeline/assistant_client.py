"""
Voice Pipeline -> relay server client.

Submits a transcript plus the active behavior prompt to the relay and returns
the reply text. The relay holds the language-model credential; this client
only knows the relay URL, so no secret ever lives in the capture/playback
process.

Failures surface as NetworkFailure, ServiceError or Timeout. There is no retry
here: the conversation controller decides what a failed turn means.
"""

from __future__ import annotations

import asyncio
import time
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component
from .errors import NetworkFailure, ServiceError, Timeout
from .models import BehaviorPrompt


logger = get_logger(Component.ASSISTANT)

REPLY_PATH = "/assistant/reply"


class AssistantClient:
    """Sends one transcript per call to the relay's reply endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_seconds: float = 10.0,
        session_id: Optional[str] = None,
        http: Optional[aiohttp.ClientSession] = None,
    ):
        self.endpoint = f"{base_url.rstrip('/')}{REPLY_PATH}"
        self.timeout_seconds = timeout_seconds
        self.session_id = session_id
        self._http = http
        self._owns_http = http is None

    async def _get_http(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession()
            self._owns_http = True
        return self._http

    async def send(self, transcript: str, prompt: BehaviorPrompt) -> str:
        """Return the assistant's reply for `transcript` under `prompt`."""
        if not transcript or not transcript.strip():
            raise ValueError("transcript must not be empty")

        headers = {"X-Session-Id": self.session_id} if self.session_id else None
        payload = {"text": transcript, "prompt": prompt.text}
        start_ts = time.time()
        http = await self._get_http()

        try:
            async with http.post(
                self.endpoint,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as resp:
                latency_ms = int((time.time() - start_ts) * 1000)
                if not 200 <= resp.status < 300:
                    detail = await _read_detail(resp)
                    logger.warning(
                        "Relay returned error status",
                        endpoint=self.endpoint,
                        status=resp.status,
                        detail=detail,
                        latency_ms=latency_ms,
                    )
                    raise ServiceError(f"relay answered {resp.status}", status=resp.status, detail=detail)

                try:
                    body = await resp.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise ServiceError("relay answered with a non-JSON body", status=resp.status) from e

                reply = body.get("reply") if isinstance(body, dict) else None
                if not isinstance(reply, str) or not reply.strip():
                    raise ServiceError("relay response has no reply text", status=resp.status)

                logger.info(
                    "Relay reply received",
                    endpoint=self.endpoint,
                    status=resp.status,
                    reply_length=len(reply),
                    latency_ms=latency_ms,
                )
                return reply.strip()
        except asyncio.TimeoutError as e:
            logger.warning(
                "Relay request timed out",
                endpoint=self.endpoint,
                timeout_seconds=self.timeout_seconds,
            )
            raise Timeout(f"no reply within {self.timeout_seconds}s") from e
        except aiohttp.ClientError as e:
            logger.warning(
                "Relay request failed",
                endpoint=self.endpoint,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int((time.time() - start_ts) * 1000),
            )
            raise NetworkFailure(str(e)) from e

    async def aclose(self) -> None:
        if self._owns_http and self._http is not None and not self._http.closed:
            await self._http.close()


async def _read_detail(resp: aiohttp.ClientResponse) -> Optional[str]:
    """Best-effort extraction of the relay's stable error detail."""
    try:
        body = await resp.json()
    except (aiohttp.ContentTypeError, ValueError):
        return None
    if isinstance(body, dict) and isinstance(body.get("detail"), str):
        return body["detail"]
    return None
