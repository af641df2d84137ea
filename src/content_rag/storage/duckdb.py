"""
DuckDB storage backend for documents and chunk embeddings.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import duckdb

from .base import ApiKeyRecord, ChunkEmbeddingRecord, DocumentRecord, utcnow

_DOCUMENT_COLUMNS = """
    id, user_id, title, category, content, embedded, embedding_status,
    embedding_progress, chunks_count, embedding_model, last_embedded_at,
    created_at, deleted_at
"""

_EMBEDDING_STATE_COLUMNS: frozenset[str] = frozenset(
    {
        "embedded",
        "embedding_status",
        "embedding_progress",
        "chunks_count",
        "embedding_model",
        "last_embedded_at",
    }
)


class DuckDBStorage:
    """DuckDB-backed persistence for documents, chunk embeddings, and API keys."""

    def __init__(
        self,
        db_path: str,
        *,
        read_only: bool = False,
        initialize: bool = True,
    ) -> None:
        self.db_path = str(Path(db_path).expanduser().resolve())
        self.read_only = read_only
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = duckdb.connect(self.db_path, read_only=read_only)
        if initialize and not read_only:
            self.initialize()

    def close(self) -> None:
        """Close the underlying DuckDB connection."""
        self._conn.close()

    def initialize(self) -> None:
        self._conn.execute("CREATE SEQUENCE IF NOT EXISTS documents_id_seq START 1;")
        self._conn.execute(
            "CREATE SEQUENCE IF NOT EXISTS document_embeddings_id_seq START 1;"
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS documents (
                id INTEGER PRIMARY KEY DEFAULT nextval('documents_id_seq'),
                user_id VARCHAR NOT NULL,
                title VARCHAR NOT NULL,
                category VARCHAR NOT NULL DEFAULT 'general',
                content VARCHAR NOT NULL,
                embedded BOOLEAN NOT NULL DEFAULT FALSE,
                embedding_status VARCHAR NOT NULL DEFAULT 'not_started',
                embedding_progress INTEGER NOT NULL DEFAULT 0,
                chunks_count INTEGER NOT NULL DEFAULT 0,
                embedding_model VARCHAR,
                last_embedded_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                deleted_at TIMESTAMP
            );
            """
        )
        # No FK to documents: cascades are done by delete_document.
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS document_embeddings (
                id INTEGER PRIMARY KEY DEFAULT nextval('document_embeddings_id_seq'),
                document_id INTEGER NOT NULL,
                embedding VARCHAR NOT NULL,
                model VARCHAR NOT NULL,
                chunk_index INTEGER NOT NULL,
                chunk_text VARCHAR,
                start_pos INTEGER,
                end_pos INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """
        )
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS api_keys (
                provider VARCHAR PRIMARY KEY,
                encrypted_key VARCHAR NOT NULL,
                nonce VARCHAR NOT NULL,
                is_valid BOOLEAN NOT NULL DEFAULT TRUE
            );
            """
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(
        self,
        *,
        user_id: str,
        title: str,
        content: str,
        category: str = "general",
    ) -> int:
        row = self._conn.execute(
            """
            INSERT INTO documents (user_id, title, content, category)
            VALUES (?, ?, ?, ?)
            RETURNING id
            """,
            [user_id, title, content, category],
        ).fetchone()
        if row is None:
            raise RuntimeError(f"Failed to create document: {title}")
        return int(row[0])

    def get_document(
        self,
        *,
        document_id: int,
        user_id: str,
        include_deleted: bool = False,
    ) -> DocumentRecord | None:
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE id = ? AND user_id = ?
        """
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        sql += " LIMIT 1"
        row = self._conn.execute(sql, [document_id, user_id]).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def list_documents(
        self,
        *,
        user_id: str,
        include_deleted: bool = False,
    ) -> list[DocumentRecord]:
        sql = f"""
            SELECT {_DOCUMENT_COLUMNS}
            FROM documents
            WHERE user_id = ?
        """
        if not include_deleted:
            sql += " AND deleted_at IS NULL"
        sql += " ORDER BY id"
        rows = self._conn.execute(sql, [user_id]).fetchall()
        return [self._row_to_document(row) for row in rows]

    def update_document_embedding_state(
        self,
        *,
        document_id: int,
        **fields: Any,
    ) -> None:
        if not fields:
            return
        unknown = set(fields) - _EMBEDDING_STATE_COLUMNS
        if unknown:
            raise ValueError(f"Unsupported document columns: {sorted(unknown)!r}")

        columns = sorted(fields)
        assignments = ", ".join(f"{column} = ?" for column in columns)
        params: list[Any] = [fields[column] for column in columns]
        params.append(document_id)
        self._conn.execute(
            f"UPDATE documents SET {assignments} WHERE id = ?",
            params,
        )

    def soft_delete_document(self, *, document_id: int, user_id: str) -> bool:
        rows = self._conn.execute(
            """
            UPDATE documents
            SET deleted_at = ?
            WHERE id = ? AND user_id = ? AND deleted_at IS NULL
            RETURNING id
            """,
            [utcnow(), document_id, user_id],
        ).fetchall()
        return len(rows) > 0

    def delete_document(self, *, document_id: int, user_id: str) -> bool:
        if self.get_document(
            document_id=document_id, user_id=user_id, include_deleted=True
        ) is None:
            return False
        self.delete_chunk_embeddings(document_id=document_id)
        self._conn.execute(
            "DELETE FROM documents WHERE id = ? AND user_id = ?",
            [document_id, user_id],
        )
        return True

    def embedding_stats(self, *, user_id: str) -> dict[str, int]:
        row = self._conn.execute(
            """
            SELECT
                COUNT(*),
                COUNT(*) FILTER (WHERE embedded),
                COUNT(*) FILTER (WHERE NOT embedded),
                COUNT(*) FILTER (WHERE embedding_status = 'processing')
            FROM documents
            WHERE user_id = ? AND deleted_at IS NULL
            """,
            [user_id],
        ).fetchone()
        if row is None:
            return {"total": 0, "embedded": 0, "pending": 0, "processing": 0}
        return {
            "total": int(row[0]),
            "embedded": int(row[1]),
            "pending": int(row[2]),
            "processing": int(row[3]),
        }

    # ------------------------------------------------------------------
    # Chunk embeddings
    # ------------------------------------------------------------------

    def fetch_candidate_chunks(
        self,
        *,
        user_id: str,
        categories: list[str],
    ) -> list[dict[str, Any]]:
        if not categories:
            return []

        placeholders = ", ".join(["?"] * len(categories))
        sql = f"""
            SELECT
                e.document_id,
                d.title,
                d.category,
                e.chunk_index,
                e.chunk_text,
                e.embedding,
                e.start_pos,
                e.end_pos
            FROM document_embeddings e
            JOIN documents d ON d.id = e.document_id
            WHERE d.user_id = ?
              AND d.embedded = TRUE
              AND d.deleted_at IS NULL
              AND d.category IN ({placeholders})
            ORDER BY e.document_id ASC, e.chunk_index ASC
        """
        params: list[Any] = [user_id]
        params.extend(categories)
        rows = self._conn.execute(sql, params).fetchall()

        results: list[dict[str, Any]] = []
        for row in rows:
            results.append(
                {
                    "document_id": int(row[0]),
                    "document_title": str(row[1]),
                    "category": str(row[2]) if row[2] is not None else "general",
                    "chunk_index": int(row[3]) if row[3] is not None else 0,
                    "chunk_text": str(row[4]) if row[4] is not None else "",
                    "embedding": json.loads(str(row[5])),
                    "start_pos": int(row[6]) if row[6] is not None else None,
                    "end_pos": int(row[7]) if row[7] is not None else None,
                }
            )
        return results

    def delete_chunk_embeddings(self, *, document_id: int) -> int:
        existing = self.count_chunk_embeddings(document_id=document_id)
        self._conn.execute(
            "DELETE FROM document_embeddings WHERE document_id = ?",
            [document_id],
        )
        return existing

    def insert_chunk_embedding(self, record: ChunkEmbeddingRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO document_embeddings (
                document_id, embedding, model, chunk_index, chunk_text, start_pos, end_pos
            )
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                record.document_id,
                json.dumps(record.embedding),
                record.model,
                record.chunk_index,
                record.chunk_text,
                record.start_pos,
                record.end_pos,
            ],
        )

    def count_chunk_embeddings(self, *, document_id: int) -> int:
        row = self._conn.execute(
            "SELECT COUNT(*) FROM document_embeddings WHERE document_id = ?",
            [document_id],
        ).fetchone()
        return int(row[0]) if row else 0

    def list_chunk_embeddings(self, *, document_id: int) -> list[ChunkEmbeddingRecord]:
        rows = self._conn.execute(
            """
            SELECT document_id, embedding, model, chunk_index, chunk_text, start_pos, end_pos
            FROM document_embeddings
            WHERE document_id = ?
            ORDER BY chunk_index ASC
            """,
            [document_id],
        ).fetchall()
        return [
            ChunkEmbeddingRecord(
                document_id=int(row[0]),
                embedding=json.loads(str(row[1])),
                model=str(row[2]),
                chunk_index=int(row[3]),
                chunk_text=str(row[4]) if row[4] is not None else "",
                start_pos=int(row[5]) if row[5] is not None else 0,
                end_pos=int(row[6]) if row[6] is not None else 0,
            )
            for row in rows
        ]

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    def get_api_key(self, *, provider: str) -> ApiKeyRecord | None:
        row = self._conn.execute(
            """
            SELECT provider, encrypted_key, nonce, is_valid
            FROM api_keys
            WHERE provider = ?
            LIMIT 1
            """,
            [provider],
        ).fetchone()
        if row is None:
            return None
        return ApiKeyRecord(
            provider=str(row[0]),
            encrypted_key=str(row[1]),
            nonce=str(row[2]),
            is_valid=bool(row[3]),
        )

    def save_api_key(self, record: ApiKeyRecord) -> None:
        self._conn.execute(
            """
            INSERT INTO api_keys (provider, encrypted_key, nonce, is_valid)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(provider) DO UPDATE SET
                encrypted_key = excluded.encrypted_key,
                nonce = excluded.nonce,
                is_valid = excluded.is_valid
            """,
            [record.provider, record.encrypted_key, record.nonce, record.is_valid],
        )

    @staticmethod
    def _row_to_document(row: tuple[Any, ...]) -> DocumentRecord:
        return DocumentRecord(
            id=int(row[0]),
            user_id=str(row[1]),
            title=str(row[2]),
            category=str(row[3]) if row[3] is not None else "general",  # type: ignore[arg-type]
            content=str(row[4]),
            embedded=bool(row[5]),
            embedding_status=str(row[6]),  # type: ignore[arg-type]
            embedding_progress=int(row[7]),
            chunks_count=int(row[8]),
            embedding_model=str(row[9]) if row[9] is not None else None,
            last_embedded_at=row[10],
            created_at=row[11],
            deleted_at=row[12],
        )
