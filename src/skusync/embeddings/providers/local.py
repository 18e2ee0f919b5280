"""LocalHTTPEmbedding — embedding provider for a self-hosted JSON endpoint."""

from __future__ import annotations

from typing import Any

import httpx

from skusync.embeddings.vectors import assert_embedding_vector
from skusync.exceptions import EmbeddingProviderError, ProviderConfigurationError


def extract_embedding(payload: Any) -> list[float] | None:
    """Pull the vector out of ``{"embedding": [...]}`` or ``{"data": [{"embedding": [...]}]}``."""
    if not isinstance(payload, dict):
        return None
    embedding = payload.get("embedding")
    if isinstance(embedding, list):
        return embedding
    data = payload.get("data")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        first = data[0].get("embedding")
        if isinstance(first, list):
            return first
    return None


class LocalHTTPEmbedding:
    """POSTs ``{"model": ..., "input": text}`` to *url* and validates the reply.

    The endpoint may answer in either the bare ``{"embedding": [...]}`` shape
    or the OpenAI-compatible ``{"data": [{"embedding": [...]}]}`` shape.
    """

    name = "local"

    def __init__(
        self,
        *,
        url: str,
        model: str,
        dimension: int,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not url:
            msg = "EMBEDDING_LOCAL_URL is required when EMBEDDING_PROVIDER=local"
            raise ProviderConfigurationError(msg)
        self._url = url
        self._model = model
        self._dimension = dimension
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout), transport=transport)

    async def embed(self, text: str) -> list[float]:
        response = await self._client.post(
            self._url,
            json={"model": self._model, "input": text},
            headers={"Content-Type": "application/json"},
        )
        try:
            payload = response.json() if response.content else {}
        except ValueError as exc:
            msg = f"Embedding provider returned invalid JSON ({exc})"
            raise EmbeddingProviderError(msg) from exc

        if response.is_error:
            detail = _error_detail(payload) or response.reason_phrase or "request_failed"
            msg = f"Embedding provider request failed ({response.status_code}): {detail}"
            raise EmbeddingProviderError(msg)

        vector = extract_embedding(payload)
        assert_embedding_vector(vector, self._dimension)
        return [float(v) for v in vector]  # type: ignore[union-attr]

    @property
    def model(self) -> str:
        return self._model

    @property
    def dimension(self) -> int:
        return self._dimension

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.aclose()


def _error_detail(payload: Any) -> str | None:
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if payload.get("message"):
        return str(payload["message"])
    return None
