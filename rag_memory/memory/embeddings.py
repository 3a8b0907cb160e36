"""
Embedding gateway for the Voyage AI embeddings API.

Texts are embedded in fixed-size batches; results always come back in input
order, even if the service reorders items within a batch.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import httpx

from rag_memory.errors import ConfigError, UpstreamError
from .summarizer import error_message


logger = logging.getLogger(__name__)

VOYAGE_API_URL = "https://api.voyageai.com/v1/embeddings"
DEFAULT_MODEL = "voyage-4-large"
BATCH_SIZE = 128

EmbedMode = Literal["document", "query"]

VOYAGE_MODELS = [
    {"id": "voyage-4-large", "name": "Voyage 4 Large (1024 dims)", "dimensions": 1024},
    {"id": "voyage-3-large", "name": "Voyage 3 Large (1024 dims)", "dimensions": 1024},
    {"id": "voyage-3", "name": "Voyage 3 (1024 dims)", "dimensions": 1024},
    {"id": "voyage-3-lite", "name": "Voyage 3 Lite (512 dims)", "dimensions": 512},
    {"id": "voyage-code-3", "name": "Voyage Code 3 (1024 dims)", "dimensions": 1024},
]


def get_model_info(model_id: str) -> Optional[Dict[str, Any]]:
    """Catalogue entry for a model id, or None."""
    for model in VOYAGE_MODELS:
        if model["id"] == model_id:
            return model
    return None


@dataclass
class EmbeddingResult:
    """Vectors in input order plus total token usage."""

    vectors: List[List[float]] = field(default_factory=list)
    total_tokens: int = 0


class EmbeddingGateway:
    """
    Async client for text embeddings.

    Document and query embeddings are different transforms; store with
    ``embed_document`` and search with ``embed_query``.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        api_url: str = VOYAGE_API_URL,
        batch_size: int = BATCH_SIZE,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize embedding gateway.

        Args:
            api_key: Voyage API key
            model: Embedding model name
            api_url: Embeddings endpoint
            batch_size: Maximum texts per request
            timeout: Request timeout in seconds
            http_client: Shared client; a short-lived one is used when None
        """
        self.api_key = api_key
        self.model = model
        self.api_url = api_url
        self.batch_size = batch_size
        self.timeout = timeout
        self.http_client = http_client

    async def _post(self, client: httpx.AsyncClient, payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.api_key}",
        }
        return await client.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)

    async def _embed_batch(self, client: httpx.AsyncClient, texts: List[str], mode: EmbedMode) -> EmbeddingResult:
        payload = {"input": texts, "model": self.model, "input_type": mode}

        try:
            response = await self._post(client, payload)
        except httpx.HTTPError as e:
            logger.error("Embedding request failed: %s", e)
            raise UpstreamError(f"Embedding request failed: {e}") from e

        if response.is_error:
            message = error_message(response)
            logger.error("Embedding API error: %s - %s", response.status_code, message)
            raise UpstreamError(f"Embedding API error: {message}", status=response.status_code)

        try:
            data = response.json()
            items = sorted(data["data"], key=lambda item: item["index"])
            vectors = [list(item["embedding"]) for item in items]
            usage = data.get("usage") or {}
            tokens = int(usage.get("total_tokens", 0))
        except (ValueError, KeyError, TypeError) as e:
            raise UpstreamError(f"Malformed embedding response: {e}", status=response.status_code) from e

        if len(vectors) != len(texts):
            raise UpstreamError(
                f"Embedding count mismatch: sent {len(texts)}, got {len(vectors)}",
                status=response.status_code,
            )

        return EmbeddingResult(vectors=vectors, total_tokens=tokens)

    async def embed(self, texts: Union[str, Sequence[str]], mode: EmbedMode = "document") -> EmbeddingResult:
        """
        Embed one or more texts.

        Args:
            texts: Text or list of texts
            mode: 'document' for storage, 'query' for retrieval

        Returns:
            EmbeddingResult with one vector per input, in input order

        Raises:
            ConfigError: If no API key is configured
            UpstreamError: On transport failure, non-2xx or malformed body
        """
        if not self.api_key:
            raise ConfigError("Embedding API key is not configured")

        items = [texts] if isinstance(texts, str) else list(texts)
        if not items:
            return EmbeddingResult()

        batches = [items[i:i + self.batch_size] for i in range(0, len(items), self.batch_size)]
        result = EmbeddingResult()

        if self.http_client is not None:
            for batch in batches:
                part = await self._embed_batch(self.http_client, batch, mode)
                result.vectors.extend(part.vectors)
                result.total_tokens += part.total_tokens
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                for batch in batches:
                    part = await self._embed_batch(client, batch, mode)
                    result.vectors.extend(part.vectors)
                    result.total_tokens += part.total_tokens

        logger.debug("Embedded %d texts in %d batches (%d tokens)", len(items), len(batches), result.total_tokens)
        return result

    async def embed_document(self, text: str) -> List[float]:
        """Embedding of one text for storage."""
        result = await self.embed([text], "document")
        return result.vectors[0] if result.vectors else []

    async def embed_query(self, text: str) -> List[float]:
        """Embedding of one text for retrieval."""
        result = await self.embed([text], "query")
        return result.vectors[0] if result.vectors else []

    async def embed_documents(self, texts: Sequence[str]) -> List[List[float]]:
        """Document embeddings for many texts."""
        result = await self.embed(list(texts), "document")
        return result.vectors

    async def test_connection(self) -> bool:
        """
        Check the API with a one-word embed call.

        Returns:
            True if the call succeeded
        """
        try:
            await self.embed(["test"], "document")
            return True
        except Exception as e:
            logger.error("Embedding connection test failed: %s", e)
            return False
