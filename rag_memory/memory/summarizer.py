"""
Summarization client for OpenAI-compatible chat completion APIs.

Converts one chat turn (plus optional context) into a one-line memory.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from rag_memory.errors import ConfigError, UpstreamError
from .composer import DEFAULT_WORD_LIMIT, SummaryComposer
from .schemas import SummaryContext


logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-exp"
TEST_MESSAGE = "This is a test message."


def normalize_endpoint(api_url: str) -> str:
    """
    Resolve the chat completions endpoint from a base URL.

    ``https://host`` -> ``https://host/v1/chat/completions``
    ``https://host/v1/`` -> ``https://host/v1/chat/completions``
    Full endpoints are kept as given.
    """
    url = (api_url or "").strip()
    if url.endswith("/"):
        url = url[:-1]

    if not url.endswith("/chat/completions"):
        if not url.endswith("/v1"):
            url += "/v1"
        url += "/chat/completions"

    return url


def error_message(response: httpx.Response) -> str:
    """Extract ``error.message`` from an error body, else the reason phrase."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("detail"):
            return str(body["detail"])

    return response.reason_phrase or "Unknown error"


class SummarizerClient:
    """
    Summarizer backed by a chat completions endpoint.

    Usage:
        >>> client = SummarizerClient("https://api.example.com", "sk-...")
        >>> summary = await client.summarize("I told her the truth.", SummaryContext(role="user"))
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: str = DEFAULT_MODEL,
        system_prompt: Optional[str] = None,
        word_limit: int = DEFAULT_WORD_LIMIT,
        max_tokens: int = 300,
        temperature: float = 0.3,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize summarizer client.

        Args:
            api_url: Base URL or full chat completions endpoint
            api_key: Bearer token
            model: Model name
            system_prompt: Prompt template (``{{words}}``/``{{user}}`` placeholders)
            word_limit: Default summary word limit
            max_tokens: Completion token cap
            temperature: Sampling temperature
            timeout: Request timeout in seconds
            http_client: Shared client; a short-lived one is used when None
        """
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.composer = SummaryComposer(system_prompt, word_limit)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout
        self.http_client = http_client

    def endpoint_url(self) -> str:
        return normalize_endpoint(self.api_url)

    def build_payload(self, message: str, context: Optional[SummaryContext] = None) -> Dict[str, Any]:
        """Request body for one summarization call."""
        system_prompt, user_content = self.composer.compose(message, context)
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        if self.http_client is not None:
            return await self.http_client.post(
                self.endpoint_url(), json=payload, headers=headers, timeout=self.timeout
            )
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.post(self.endpoint_url(), json=payload, headers=headers)

    async def summarize(self, message: str, context: Optional[SummaryContext] = None) -> str:
        """
        Summarize a message.

        Args:
            message: Turn to summarize
            context: Role, names, word limit and history context

        Returns:
            Summary text ("" for a blank message)

        Raises:
            ConfigError: If URL or key is not configured
            UpstreamError: On transport failure, non-2xx, or empty completion
        """
        if not self.api_url or not self.api_key:
            raise ConfigError("Summarization API URL and key are required")

        if not message or not message.strip():
            return ""

        payload = self.build_payload(message, context)

        try:
            response = await self._post(payload)
        except httpx.HTTPError as e:
            logger.error("Summarization request failed: %s", e)
            raise UpstreamError(f"Summarization request failed: {e}") from e

        if response.is_error:
            message_text = error_message(response)
            logger.error("Summarization API error: %s - %s", response.status_code, message_text)
            raise UpstreamError(f"Summarization API error: {message_text}", status=response.status_code)

        try:
            data = response.json()
            summary = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            summary = None

        if not isinstance(summary, str) or not summary.strip():
            raise UpstreamError("No summary generated", status=response.status_code)

        return summary.strip()

    async def test_connection(self) -> bool:
        """
        Check the API with a tiny summarization call.

        Returns:
            True if the call succeeded
        """
        try:
            await self.summarize(TEST_MESSAGE, SummaryContext())
            return True
        except Exception as e:
            logger.error("Summarization connection test failed: %s", e)
            return False
