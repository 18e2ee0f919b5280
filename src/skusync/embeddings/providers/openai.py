"""OpenAIEmbedding — async embedding provider backed by OpenAI's API."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from skusync.embeddings.vectors import assert_embedding_vector
from skusync.exceptions import ProviderConfigurationError
from skusync.settings import DEFAULT_OPENAI_BASE_URL, infer_embedding_dimension

try:
    from openai import AsyncOpenAI

    _HAS_OPENAI = True
except ImportError:  # pragma: no cover
    _HAS_OPENAI = False

if TYPE_CHECKING:
    from openai import AsyncOpenAI as AsyncOpenAIType


class OpenAIEmbedding:
    """Async embedding provider backed by the OpenAI Embeddings API.

    Uses ``AsyncOpenAI`` for native async I/O.  Every returned vector is
    checked against :attr:`dimension` before it is handed back.

    Requires the ``openai`` package::

        pip install skusync[openai]
    """

    name = "openai"

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int | None = None,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        timeout: float = 30.0,
        max_retries: int = 2,
    ) -> None:
        if not _HAS_OPENAI:
            msg = (
                "openai is required for OpenAIEmbedding. "
                "Install it with: pip install skusync[openai]"
            )
            raise ImportError(msg)

        if not api_key:
            msg = "OPENAI_API_KEY is required when EMBEDDING_PROVIDER=openai"
            raise ProviderConfigurationError(msg)

        resolved_dim = dimension or infer_embedding_dimension(model)
        if resolved_dim is None:
            msg = f"Unknown default dimension for model {model!r}. Pass dimension= explicitly."
            raise ProviderConfigurationError(msg)

        self._model = model
        self._dimension = resolved_dim
        self._client: AsyncOpenAIType = AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            max_retries=max_retries,
            timeout=timeout,
        )

    # ------------------------------------------------------------------
    # EmbeddingProvider protocol
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> list[float]:
        """Embed a single text string via the OpenAI API."""
        kwargs: dict[str, Any] = {"input": [text], "model": self._model}
        if infer_embedding_dimension(self._model) not in (None, self._dimension):
            # text-embedding-3 models can shorten their output on request
            kwargs["dimensions"] = self._dimension

        response = await self._client.embeddings.create(**kwargs)
        sorted_data = sorted(response.data, key=lambda e: e.index)
        vector = sorted_data[0].embedding if sorted_data else None
        assert_embedding_vector(vector, self._dimension)
        return [float(v) for v in vector]  # type: ignore[union-attr]

    @property
    def model(self) -> str:
        """Return the model name."""
        return self._model

    @property
    def dimension(self) -> int:
        """Return the embedding dimensionality."""
        return self._dimension

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Close the underlying httpx client."""
        await self._client.close()
