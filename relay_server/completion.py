"""
Chat completion call against an OpenAI-compatible provider (Groq by default).

One request per user turn: the behavior prompt as the system message and the
transcript as the user message. No conversation history is sent.
"""
from typing import Any, Dict, Optional

import aiohttp

from .config import RelayConfig
from .errors import UpstreamError


def build_payload(config: RelayConfig, text: str, prompt: Optional[str]) -> Dict[str, Any]:
    return {
        "model": config.model,
        "temperature": config.temperature,
        "messages": [
            {"role": "system", "content": prompt or config.default_prompt},
            {"role": "user", "content": text},
        ],
    }


def extract_reply(body: Any) -> str:
    """Return choices[0].message.content, or raise UpstreamError."""
    try:
        content = body["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise UpstreamError("completion response has no choices[0].message.content")
    if not isinstance(content, str) or not content.strip():
        raise UpstreamError("completion response content is empty")
    return content.strip()


async def complete(
    config: RelayConfig,
    text: str,
    prompt: Optional[str] = None,
    http: Optional[aiohttp.ClientSession] = None,
) -> str:
    """
    Ask the provider for a reply.

    Raises UpstreamError for non-2xx answers or malformed bodies,
    asyncio.TimeoutError on timeout and aiohttp.ClientError on transport failure.
    """
    headers = {"Authorization": f"Bearer {config.api_key}"}
    timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
    url = f"{config.base_url}/chat/completions"

    owns_http = http is None
    session = http or aiohttp.ClientSession()
    try:
        async with session.post(
            url,
            json=build_payload(config, text, prompt),
            headers=headers,
            timeout=timeout,
        ) as resp:
            if resp.status >= 400:
                raise UpstreamError(f"provider answered {resp.status}", status=resp.status)
            try:
                body = await resp.json(content_type=None)
            except ValueError:
                raise UpstreamError("provider returned invalid JSON")
    finally:
        if owns_http:
            await session.close()

    return extract_reply(body)
