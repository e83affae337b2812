"""Relational persistence for documents, agents and API keys (SQLite via aiosqlite)."""

from tenantrag.providers.repository.sqlite_repository import (
    SQLiteDocumentRepository,
    hash_api_key,
)

__all__ = ["SQLiteDocumentRepository", "hash_api_key"]
