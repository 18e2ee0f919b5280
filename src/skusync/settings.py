"""Environment-driven settings for embedding providers and the database."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from skusync.exceptions import ProviderConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

SUPPORTED_PROVIDERS: frozenset[str] = frozenset({"openai", "local", "mock"})

MODEL_DIMENSIONS: dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}

_DEFAULT_MODELS: dict[str, str] = {
    "openai": "text-embedding-3-small",
    "local": "local-embedding-model",
    "mock": "mock-embedding-model",
}

DEFAULT_MOCK_DIMENSION = 1536
DEFAULT_TIMEOUT_MS = 30_000
DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"


def _positive_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        n = int(str(value).strip())
    except ValueError:
        return None
    return n if n > 0 else None


def _clean_url(value: Any) -> str:
    return str(value or "").strip().rstrip("/")


def infer_embedding_dimension(model: str) -> int | None:
    """Return the known output dimension of *model*, if any."""
    return MODEL_DIMENSIONS.get(model.strip())


@dataclass(frozen=True, slots=True)
class EmbeddingSettings:
    """Resolved configuration for building an embedding provider.

    Attributes:
        provider: One of ``openai``, ``local``, ``mock``.
        model: Model name sent to the provider and recorded on each row.
        dimension: Expected vector length.
        timeout_ms: Per-request timeout for network providers.
        openai_api_key: API key for the ``openai`` provider.
        openai_base_url: Base URL of the OpenAI-compatible API.
        local_url: Endpoint of the ``local`` HTTP provider.
    """

    provider: str = "mock"
    model: str = _DEFAULT_MODELS["mock"]
    dimension: int = DEFAULT_MOCK_DIMENSION
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    openai_api_key: str = ""
    openai_base_url: str = DEFAULT_OPENAI_BASE_URL
    local_url: str = ""

    @classmethod
    def resolve(
        cls,
        *,
        provider: str | None = None,
        model: str | None = None,
        dimension: int | str | None = None,
        timeout_ms: int | str | None = None,
        openai_api_key: str | None = None,
        openai_base_url: str | None = None,
        local_url: str | None = None,
        env: Mapping[str, str] | None = None,
    ) -> EmbeddingSettings:
        """Merge explicit values over environment variables.

        Explicit keyword arguments win; blank values fall back to
        ``EMBEDDING_PROVIDER``, ``EMBEDDING_MODEL``, ``EMBEDDING_DIM``,
        ``EMBEDDING_TIMEOUT_MS``, ``OPENAI_API_KEY``, ``OPENAI_BASE_URL`` and
        ``EMBEDDING_LOCAL_URL``.
        """
        env = os.environ if env is None else env

        name = str(provider or env.get("EMBEDDING_PROVIDER") or "mock").strip().lower()
        if name not in SUPPORTED_PROVIDERS:
            msg = f"Unsupported EMBEDDING_PROVIDER: {name}"
            raise ProviderConfigurationError(msg)

        resolved_model = str(model or env.get("EMBEDDING_MODEL") or "").strip()
        if not resolved_model:
            resolved_model = _DEFAULT_MODELS[name]

        configured_dim = _positive_int(
            dimension if dimension is not None else env.get("EMBEDDING_DIM")
        )
        dim = configured_dim or infer_embedding_dimension(resolved_model)
        if dim is None and name == "mock":
            dim = DEFAULT_MOCK_DIMENSION
        if dim is None:
            msg = (
                f'Embedding dimension is unknown for model "{resolved_model}". '
                "Set EMBEDDING_DIM to match the model output."
            )
            raise ProviderConfigurationError(msg)

        return cls(
            provider=name,
            model=resolved_model,
            dimension=dim,
            timeout_ms=_positive_int(timeout_ms or env.get("EMBEDDING_TIMEOUT_MS"))
            or DEFAULT_TIMEOUT_MS,
            openai_api_key=openai_api_key or env.get("OPENAI_API_KEY") or "",
            openai_base_url=_clean_url(
                openai_base_url or env.get("OPENAI_BASE_URL") or DEFAULT_OPENAI_BASE_URL
            ),
            local_url=_clean_url(local_url or env.get("EMBEDDING_LOCAL_URL")),
        )

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> EmbeddingSettings:
        """Build settings purely from the environment."""
        return cls.resolve(env=env)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


def database_url_from_env(env: Mapping[str, str] | None = None) -> str:
    """Return ``DATABASE_URL`` or an empty string."""
    env = os.environ if env is None else env
    return env.get("DATABASE_URL", "").strip()
