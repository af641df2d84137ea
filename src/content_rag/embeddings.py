"""
Embedding provider client for vector-based semantic search.

Talks to a Voyage-compatible ``/embeddings`` endpoint over HTTP for batch
and single-text embedding, and carries the token and cost estimates used
for budgeting.
"""

from __future__ import annotations

import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import httpx
from pydantic import BaseModel, ValidationError

from .config import (
    ENV_EMBEDDING_MODEL,
    resolve_embedding_base_url,
    resolve_embedding_timeout,
)
from .credentials import Credential, CredentialResolver, default_resolver
from .errors import InvalidInputError, ProviderError

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "voyage-4-large"
MAX_BATCH_SIZE = 128
CHARS_PER_TOKEN = 4

MODEL_CONTEXT_LENGTH: dict[str, int] = {
    "voyage-4-large": 32000,
    "voyage-4": 32000,
    "voyage-law-2": 16000,
    "voyage-finance-2": 32000,
    "voyage-code-2": 32000,
    "voyage-multilingual-2": 32000,
}

# USD per million tokens
_PRICE_PER_MILLION: dict[str, float] = {"voyage-4-large": 0.07}
_DEFAULT_PRICE_PER_MILLION = 0.06


class EmbeddingData(BaseModel):
    embedding: list[float]
    index: int | None = None


class EmbeddingResponse(BaseModel):
    data: list[EmbeddingData]
    model: str | None = None


class ProviderErrorDetail(BaseModel):
    message: str | None = None
    type: str | None = None
    code: str | None = None


class ProviderErrorBody(BaseModel):
    error: ProviderErrorDetail | None = None


def estimate_tokens(text: str) -> int:
    """Rough token count, about four characters per token."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_to_tokens(text: str, max_tokens: int = 32000) -> str:
    """Keep a prefix of *text* that fits in roughly *max_tokens* tokens."""
    estimated = estimate_tokens(text)
    if estimated <= max_tokens:
        return text
    target_length = math.floor((max_tokens / estimated) * len(text))
    return text[:target_length]


def fit_to_context(text: str, model: str) -> str:
    """Cut *text* to *model*'s context length; unknown models pass it through."""
    max_tokens = MODEL_CONTEXT_LENGTH.get(model)
    if max_tokens is None:
        return text
    return truncate_to_tokens(text, max_tokens)


def estimate_embedding_cost(token_count: int, model: str = DEFAULT_MODEL) -> float:
    """Estimated USD cost of embedding *token_count* tokens with *model*."""
    price = _PRICE_PER_MILLION.get(model, _DEFAULT_PRICE_PER_MILLION)
    return (token_count / 1_000_000) * price


def parse_provider_error(response: httpx.Response) -> ProviderError:
    """Build a ProviderError from a non-2xx embedding API response."""
    try:
        body = ProviderErrorBody.model_validate(response.json())
    except (ValueError, ValidationError):
        return ProviderError(
            f"Embedding API error: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )

    detail = body.error or ProviderErrorDetail()
    return ProviderError(
        detail.message or "Embedding API error",
        code=detail.code or detail.type,
        status_code=response.status_code,
    )


class EmbeddingClient:
    """Generate text embeddings via a Voyage-compatible HTTP API."""

    def __init__(
        self,
        *,
        credentials: CredentialResolver | None = None,
        model: str | None = None,
        base_url: str | None = None,
        batch_size: int | None = None,
        timeout: float | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.credentials = credentials or default_resolver()
        self.model = model or os.getenv(ENV_EMBEDDING_MODEL, DEFAULT_MODEL)
        self.base_url = resolve_embedding_base_url(base_url)
        self.timeout = resolve_embedding_timeout(timeout)
        self.batch_size = batch_size or MAX_BATCH_SIZE
        if not 0 < self.batch_size <= MAX_BATCH_SIZE:
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")
        self._http_client = http_client

    async def generate_embedding(self, text: str, model: str | None = None) -> list[float]:
        """Embed a single text and return its vector."""
        if not text or not text.strip():
            raise InvalidInputError("Cannot generate embedding for empty text")

        resolved_model = model or self.model
        credential = self.credentials.resolve()
        async with self._session() as http:
            vectors = await self._request(
                http,
                credential=credential,
                payload=fit_to_context(text, resolved_model),
                expected=1,
                model=resolved_model,
            )
        return vectors[0]

    async def generate_embeddings_batch(
        self,
        texts: list[str],
        model: str | None = None,
    ) -> list[list[float]]:
        """Embed a list of texts in sequential sub-batches.

        Blank entries are dropped before sending. Returns one vector per
        remaining text, in input order.
        """
        if not texts:
            raise InvalidInputError("Cannot generate embeddings for empty array")

        resolved_model = model or self.model
        valid_texts = [
            fit_to_context(text, resolved_model) for text in texts if text and text.strip()
        ]
        if not valid_texts:
            raise InvalidInputError("Cannot generate embeddings for empty texts")

        credential = self.credentials.resolve()
        all_embeddings: list[list[float]] = []
        async with self._session() as http:
            for start in range(0, len(valid_texts), self.batch_size):
                batch = valid_texts[start : start + self.batch_size]
                logger.debug(
                    "Embedding batch %d-%d of %d with %s",
                    start,
                    start + len(batch),
                    len(valid_texts),
                    resolved_model,
                )
                all_embeddings.extend(
                    await self._request(
                        http,
                        credential=credential,
                        payload=batch,
                        expected=len(batch),
                        model=resolved_model,
                    )
                )
        return all_embeddings

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            yield client

    async def _request(
        self,
        http: httpx.AsyncClient,
        *,
        credential: Credential,
        payload: str | list[str],
        expected: int,
        model: str,
    ) -> list[list[float]]:
        body: dict[str, Any] = {
            "input": payload,
            "model": model,
            "output_dtype": "float",
        }
        try:
            response = await http.post(
                f"{self.base_url}/embeddings",
                json=body,
                headers={"Authorization": f"Bearer {credential.key}"},
            )
        except httpx.TransportError as exc:
            raise ProviderError(
                f"Embedding API request failed: {exc}",
                code="transport_error",
            ) from exc

        if not response.is_success:
            raise parse_provider_error(response)

        try:
            parsed = EmbeddingResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise ProviderError(
                "Malformed embedding API response",
                code="invalid_response",
                status_code=response.status_code,
            ) from exc

        if len(parsed.data) != expected:
            raise ProviderError(
                f"Embedding API returned {len(parsed.data)} vectors for {expected} inputs",
                code="invalid_response",
                status_code=response.status_code,
            )
        return [item.embedding for item in parsed.data]


async def validate_api_key(
    api_key: str,
    *,
    base_url: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> bool:
    """Return True when a one-word embedding request with *api_key* succeeds."""
    client = EmbeddingClient(
        credentials=CredentialResolver([_StaticCredential(api_key)]),
        base_url=base_url,
        http_client=http_client,
    )
    try:
        await client.generate_embedding("test", model=DEFAULT_MODEL)
    except (ProviderError, httpx.HTTPError):
        return False
    return True


class _StaticCredential:
    def __init__(self, key: str) -> None:
        self._key = key

    def get_credential(self) -> Credential | None:
        return Credential(key=self._key, source="env")
