"""
Configuration helpers for storage and the embedding provider.
"""

from __future__ import annotations

import os
from pathlib import Path


DEFAULT_DB_PATH = "~/.content_rag/rag.duckdb"
ENV_DB_PATH = "CONTENT_RAG_DB_PATH"

DEFAULT_EMBEDDING_BASE_URL = "https://api.voyageai.com/v1"
ENV_EMBEDDING_BASE_URL = "CONTENT_RAG_EMBEDDING_BASE_URL"
ENV_EMBEDDING_MODEL = "CONTENT_RAG_EMBEDDING_MODEL"
ENV_EMBEDDING_TIMEOUT = "CONTENT_RAG_EMBEDDING_TIMEOUT"
DEFAULT_EMBEDDING_TIMEOUT = 60.0

ENV_API_KEY = "VOYAGE_API_KEY"


def resolve_db_path(override_path: str | None = None) -> str:
    """
    Resolve the DuckDB path from CLI override, env var, or default.

    Precedence:
    1) explicit override_path
    2) CONTENT_RAG_DB_PATH
    3) default path
    """
    raw_path = override_path or os.getenv(ENV_DB_PATH) or DEFAULT_DB_PATH
    resolved = Path(raw_path).expanduser().resolve()
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return str(resolved)


def resolve_embedding_base_url(override_url: str | None = None) -> str:
    """Resolve the embedding API base URL, without a trailing slash."""
    raw_url = override_url or os.getenv(ENV_EMBEDDING_BASE_URL) or DEFAULT_EMBEDDING_BASE_URL
    return raw_url.rstrip("/")


def resolve_embedding_timeout(override_timeout: float | None = None) -> float:
    if override_timeout is not None:
        return float(override_timeout)
    raw = os.getenv(ENV_EMBEDDING_TIMEOUT)
    if raw is None or not raw.strip():
        return DEFAULT_EMBEDDING_TIMEOUT
    return float(raw)
