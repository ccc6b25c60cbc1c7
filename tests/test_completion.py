"""
Tests for the provider chat completion call.
"""
import asyncio

import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from relay_server.completion import build_payload, complete, extract_reply
from relay_server.config import DEFAULT_SYSTEM_PROMPT, RelayConfig
from relay_server.errors import UpstreamError


@pytest_asyncio.fixture
async def provider():
    """OpenAI-compatible provider stand-in."""
    state = {"requests": []}

    async def default_handler(request):
        return web.json_response({"choices": [{"message": {"role": "assistant", "content": " Hi! "}}]})

    state["handler"] = default_handler

    async def chat(request):
        state["requests"].append({"json": await request.json(), "headers": dict(request.headers)})
        return await state["handler"](request)

    app = web.Application()
    app.router.add_post("/v1/chat/completions", chat)
    server = TestServer(app)
    await server.start_server()
    state["base_url"] = str(server.make_url("/v1"))
    yield state
    await server.close()


def make_config(base_url, **kwargs):
    return RelayConfig(api_key="sk_test", base_url=base_url, model="test-model", **kwargs)


def test_build_payload_uses_prompt_as_system_message():
    config = RelayConfig(api_key="k", model="m", temperature=0.3)

    payload = build_payload(config, "hello", "Be brief.")

    assert payload["model"] == "m"
    assert payload["temperature"] == 0.3
    assert payload["messages"] == [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hello"},
    ]


def test_build_payload_falls_back_to_default_prompt():
    config = RelayConfig(api_key="k", default_prompt="Default behavior.")

    assert build_payload(config, "hello", None)["messages"][0]["content"] == "Default behavior."


def test_build_payload_uses_relay_system_prompt_by_default():
    config = RelayConfig(api_key="k")

    system = build_payload(config, "hello", None)["messages"][0]
    assert system == {"role": "system", "content": DEFAULT_SYSTEM_PROMPT}


@pytest.mark.parametrize("body", [
    {},
    {"choices": []},
    {"choices": [{"message": {}}]},
    {"choices": [{"message": {"content": "   "}}]},
    {"choices": [{"message": {"content": None}}]},
    ["not", "a", "dict"],
])
def test_extract_reply_rejects_malformed(body):
    with pytest.raises(UpstreamError) as exc_info:
        extract_reply(body)
    assert exc_info.value.status is None


@pytest.mark.asyncio
async def test_complete(provider):
    reply = await complete(make_config(provider["base_url"]), "hello", "Be brief.")

    assert reply == "Hi!"
    sent = provider["requests"][0]
    assert sent["headers"]["Authorization"] == "Bearer sk_test"
    assert sent["json"]["messages"][-1] == {"role": "user", "content": "hello"}


@pytest.mark.asyncio
async def test_complete_error_status(provider):
    async def limited(request):
        return web.json_response({"error": {"message": "rate limit"}}, status=429)

    provider["handler"] = limited

    with pytest.raises(UpstreamError) as exc_info:
        await complete(make_config(provider["base_url"]), "hello")
    assert exc_info.value.status == 429


@pytest.mark.asyncio
async def test_complete_invalid_json(provider):
    async def garbage(request):
        return web.Response(text="not json")

    provider["handler"] = garbage

    with pytest.raises(UpstreamError):
        await complete(make_config(provider["base_url"]), "hello")


@pytest.mark.asyncio
async def test_complete_timeout(provider):
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({})

    provider["handler"] = slow

    with pytest.raises(asyncio.TimeoutError):
        await complete(make_config(provider["base_url"], timeout_seconds=0.1), "hello")
