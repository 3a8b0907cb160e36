"""
Unit tests for the summarization client (HTTP contract via httpx.MockTransport).
"""

import json

import httpx
import pytest

from rag_memory.errors import ConfigError, UpstreamError
from rag_memory.memory.schemas import SummaryContext
from rag_memory.memory.summarizer import SummarizerClient, normalize_endpoint


def completion(content):
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


def make_client(handler, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SummarizerClient("https://llm.test", "sk-test", http_client=http, **kwargs)


@pytest.mark.parametrize(
    "url,expected",
    [
        ("https://host", "https://host/v1/chat/completions"),
        ("https://host/", "https://host/v1/chat/completions"),
        ("https://host/v1", "https://host/v1/chat/completions"),
        ("https://host/v1/", "https://host/v1/chat/completions"),
        ("https://host/v1/chat/completions", "https://host/v1/chat/completions"),
        ("https://host/api/chat/completions", "https://host/api/chat/completions"),
    ],
)
def test_normalize_endpoint(url, expected):
    assert normalize_endpoint(url) == expected


def test_build_payload():
    client = SummarizerClient("https://llm.test", "sk", model="m1", system_prompt="Max {{words}}", word_limit=12)

    payload = client.build_payload("A message", SummaryContext(role="assistant", character_name="Aria"))

    assert payload["model"] == "m1"
    assert payload["max_tokens"] == 300
    assert payload["temperature"] == 0.3
    assert payload["messages"][0] == {"role": "system", "content": "Max 12"}
    assert payload["messages"][1]["role"] == "user"
    assert "[Aria]: A message" in payload["messages"][1]["content"]


@pytest.mark.asyncio
async def test_summarize_success_sends_request():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return completion("  Sam apologized to Aria.  ")

    client = make_client(handler)
    summary = await client.summarize("I am sorry for what happened yesterday.", SummaryContext(role="user"))

    assert summary == "Sam apologized to Aria."
    assert seen["url"] == "https://llm.test/v1/chat/completions"
    assert seen["auth"] == "Bearer sk-test"
    assert seen["body"]["model"] == "gemini-2.0-flash-exp"
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_summarize_requires_credentials():
    client = SummarizerClient("", "sk")
    with pytest.raises(ConfigError):
        await client.summarize("hello world")

    client = SummarizerClient("https://llm.test", "")
    with pytest.raises(ConfigError):
        await client.summarize("hello world")


@pytest.mark.asyncio
async def test_summarize_blank_message_makes_no_call():
    calls = []

    def handler(request):
        calls.append(request)
        return completion("x")

    client = make_client(handler)

    assert await client.summarize("   ") == ""
    assert calls == []
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_summarize_http_error_carries_status_and_message():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "Invalid API key"}})

    client = make_client(handler)

    with pytest.raises(UpstreamError) as exc_info:
        await client.summarize("hello there friend")

    assert exc_info.value.status == 401
    assert "Invalid API key" in str(exc_info.value)
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_summarize_empty_completion_is_error():
    client = make_client(lambda request: completion("   "))

    with pytest.raises(UpstreamError, match="No summary generated"):
        await client.summarize("hello there friend")
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_summarize_malformed_body_is_error():
    client = make_client(lambda request: httpx.Response(200, json={"unexpected": True}))

    with pytest.raises(UpstreamError):
        await client.summarize("hello there friend")
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_summarize_transport_error_is_upstream_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = make_client(handler)

    with pytest.raises(UpstreamError) as exc_info:
        await client.summarize("hello there friend")

    assert exc_info.value.status is None
    await client.http_client.aclose()


@pytest.mark.asyncio
async def test_test_connection():
    ok = make_client(lambda request: completion("fine"))
    bad = make_client(lambda request: httpx.Response(500, json={"error": "boom"}))

    assert await ok.test_connection() is True
    assert await bad.test_connection() is False
    await ok.http_client.aclose()
    await bad.http_client.aclose()
