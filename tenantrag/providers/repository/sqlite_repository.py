"""SQLite-backed document / agent / API-key / chat-history repository.

Persists the minimal relational state the ingestion and chat pipelines
read and write.  Uses ``aiosqlite`` for async I/O; every call opens a
short-lived connection, so the repository is safe to share across
concurrently running jobs.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from tenantrag.interfaces.document_repository import IDocumentRepository
from tenantrag.models.chat import ChatMessage, ChatSession, MessageRole
from tenantrag.models.document import Agent, ApiKey, Document, SourceKind
from tenantrag.models.job import JobState
from tenantrag.utils.errors import DocumentNotFoundError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/tenantrag.db")

_CREATE_TABLES_SQL = [
    """\
CREATE TABLE IF NOT EXISTS documents (
    document_id   TEXT PRIMARY KEY,
    tenant_id     TEXT NOT NULL,
    name          TEXT NOT NULL,
    source_kind   TEXT NOT NULL,
    size          INTEGER NOT NULL DEFAULT 0,
    status        TEXT NOT NULL,
    storage_path  TEXT,
    content       TEXT,
    source_url    TEXT,
    namespace     TEXT,
    created_at    TEXT NOT NULL,
    updated_at    TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS agents (
    agent_id     TEXT PRIMARY KEY,
    tenant_id    TEXT NOT NULL,
    name         TEXT NOT NULL,
    description  TEXT,
    personality  TEXT NOT NULL,
    namespace    TEXT,
    status       TEXT NOT NULL,
    created_at   TEXT NOT NULL,
    updated_at   TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS agent_documents (
    agent_id     TEXT NOT NULL,
    document_id  TEXT NOT NULL,
    PRIMARY KEY (agent_id, document_id)
);
""",
    """\
CREATE TABLE IF NOT EXISTS api_keys (
    key_hash      TEXT PRIMARY KEY,
    agent_id      TEXT NOT NULL,
    is_active     INTEGER NOT NULL DEFAULT 1,
    created_at    TEXT NOT NULL,
    last_used_at  TEXT
);
""",
    """\
CREATE TABLE IF NOT EXISTS chat_sessions (
    session_id  TEXT PRIMARY KEY,
    agent_id    TEXT NOT NULL,
    user_ip     TEXT NOT NULL,
    user_agent  TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
""",
    """\
CREATE TABLE IF NOT EXISTS chat_messages (
    message_id  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id  TEXT NOT NULL,
    agent_id    TEXT NOT NULL,
    role        TEXT NOT NULL,
    content     TEXT NOT NULL,
    created_at  TEXT NOT NULL
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_documents_tenant ON documents(tenant_id);",
    "CREATE INDEX IF NOT EXISTS idx_agent_documents_doc ON agent_documents(document_id);",
    "CREATE INDEX IF NOT EXISTS idx_api_keys_agent ON api_keys(agent_id);",
    "CREATE INDEX IF NOT EXISTS idx_chat_messages_session "
    "ON chat_messages(session_id, agent_id);",
]

_DOCUMENT_COLUMNS = (
    "document_id, tenant_id, name, source_kind, size, status, storage_path, "
    "content, source_url, namespace, created_at, updated_at"
)


def hash_api_key(raw_key: str) -> str:
    """Keys are stored and looked up as SHA-256 hex digests."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def _now() -> str:
    return datetime.now(tz=timezone.utc).isoformat()  # noqa: UP017


class SQLiteDocumentRepository(IDocumentRepository):
    """SQLite persistence for documents, agents, API keys and chat history."""

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    async def initialize(self) -> None:
        """Create tables and indices if they don't exist."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            for table_sql in _CREATE_TABLES_SQL:
                await db.execute(table_sql)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        logger.info("repository_initialized", path=str(self._db_path))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def create_document(self, document: Document) -> Document:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                f"INSERT INTO documents ({_DOCUMENT_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    document.document_id,
                    document.tenant_id,
                    document.name,
                    document.source_kind.value,
                    document.size,
                    document.status.value,
                    document.storage_path,
                    document.content,
                    document.source_url,
                    document.namespace,
                    document.created_at.isoformat(),
                    document.updated_at.isoformat(),
                ),
            )
            await db.commit()
        logger.info(
            "document_created",
            document_id=document.document_id,
            tenant_id=document.tenant_id,
            source_kind=document.source_kind.value,
        )
        return document

    async def get_document(self, document_id: str) -> Document:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE document_id = ?",
                (document_id,),
            )
            row = await cursor.fetchone()
        if row is None:
            raise DocumentNotFoundError(message=f"Document not found: {document_id}")
        return _row_to_document(dict(row))

    async def list_documents(self, document_ids: list[str]) -> list[Document]:
        if not document_ids:
            return []
        placeholders = ", ".join("?" for _ in document_ids)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT {_DOCUMENT_COLUMNS} FROM documents "
                f"WHERE document_id IN ({placeholders}) ORDER BY created_at",
                tuple(document_ids),
            )
            rows = await cursor.fetchall()
        return [_row_to_document(dict(r)) for r in rows]

    async def update_document_status(
        self,
        document_id: str,
        status: JobState,
        namespace: str | None = None,
    ) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            if namespace is None:
                cursor = await db.execute(
                    "UPDATE documents SET status = ?, updated_at = ? WHERE document_id = ?",
                    (status.value, _now(), document_id),
                )
            else:
                cursor = await db.execute(
                    "UPDATE documents SET status = ?, namespace = ?, updated_at = ? "
                    "WHERE document_id = ?",
                    (status.value, namespace, _now(), document_id),
                )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise DocumentNotFoundError(message=f"Document not found: {document_id}")
        logger.debug("document_status_updated", document_id=document_id, status=status.value)

    async def delete_document(self, document_id: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute("DELETE FROM agent_documents WHERE document_id = ?", (document_id,))
            await db.execute("DELETE FROM documents WHERE document_id = ?", (document_id,))
            await db.commit()
        logger.info("document_deleted", document_id=document_id)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    async def create_agent(self, agent: Agent) -> Agent:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "INSERT INTO agents (agent_id, tenant_id, name, description, personality, "
                "namespace, status, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    agent.agent_id,
                    agent.tenant_id,
                    agent.name,
                    agent.description,
                    agent.personality,
                    agent.namespace,
                    agent.status.value,
                    agent.created_at.isoformat(),
                    agent.updated_at.isoformat(),
                ),
            )
            await db.executemany(
                "INSERT OR IGNORE INTO agent_documents (agent_id, document_id) VALUES (?, ?)",
                [(agent.agent_id, doc_id) for doc_id in agent.document_ids],
            )
            await db.commit()
        logger.info("agent_created", agent_id=agent.agent_id, tenant_id=agent.tenant_id)
        return agent

    async def get_agent(self, agent_id: str) -> Agent:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT agent_id, tenant_id, name, description, personality, namespace, "
                "status, created_at, updated_at FROM agents WHERE agent_id = ?",
                (agent_id,),
            )
            row = await cursor.fetchone()
            if row is None:
                raise DocumentNotFoundError(message=f"Agent not found: {agent_id}")
            cursor = await db.execute(
                "SELECT document_id FROM agent_documents WHERE agent_id = ? ORDER BY document_id",
                (agent_id,),
            )
            doc_rows = await cursor.fetchall()

        data = dict(row)
        return Agent(
            agent_id=data["agent_id"],
            tenant_id=data["tenant_id"],
            name=data["name"],
            description=data["description"],
            personality=data["personality"],
            namespace=data["namespace"],
            status=JobState(data["status"]),
            document_ids=[r["document_id"] for r in doc_rows],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
        )

    async def update_agent(
        self,
        agent_id: str,
        status: JobState | None = None,
        namespace: str | None = None,
    ) -> None:
        assignments = ["updated_at = ?"]
        params: list[Any] = [_now()]
        if status is not None:
            assignments.append("status = ?")
            params.append(status.value)
        if namespace is not None:
            assignments.append("namespace = ?")
            params.append(namespace)
        params.append(agent_id)

        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                f"UPDATE agents SET {', '.join(assignments)} WHERE agent_id = ?",
                tuple(params),
            )
            await db.commit()
            updated = cursor.rowcount
        if updated == 0:
            raise DocumentNotFoundError(message=f"Agent not found: {agent_id}")

    # ------------------------------------------------------------------
    # API keys
    # ------------------------------------------------------------------

    async def create_api_key(self, agent_id: str, raw_key: str) -> ApiKey:
        key_hash = hash_api_key(raw_key)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "INSERT INTO api_keys (key_hash, agent_id, is_active, created_at) "
                "VALUES (?, ?, 1, ?)",
                (key_hash, agent_id, _now()),
            )
            await db.commit()
        logger.info("api_key_created", agent_id=agent_id)
        return ApiKey(key_hash=key_hash, agent_id=agent_id)

    async def resolve_api_key(self, raw_key: str) -> str | None:
        key_hash = hash_api_key(raw_key)
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT agent_id FROM api_keys WHERE key_hash = ? AND is_active = 1",
                (key_hash,),
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            await db.execute(
                "UPDATE api_keys SET last_used_at = ? WHERE key_hash = ?",
                (_now(), key_hash),
            )
            await db.commit()
        return row["agent_id"]

    async def deactivate_api_key(self, raw_key: str) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "UPDATE api_keys SET is_active = 0 WHERE key_hash = ?",
                (hash_api_key(raw_key),),
            )
            await db.commit()

    # ------------------------------------------------------------------
    # Chat history
    # ------------------------------------------------------------------

    async def create_chat_session(self, session: ChatSession) -> ChatSession:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "INSERT INTO chat_sessions (session_id, agent_id, user_ip, user_agent, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    session.session_id,
                    session.agent_id,
                    session.user_ip,
                    session.user_agent,
                    session.created_at.isoformat(),
                ),
            )
            await db.commit()
        logger.debug(
            "chat_session_created", session_id=session.session_id, agent_id=session.agent_id
        )
        return session

    async def add_chat_message(self, message: ChatMessage) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(
                "INSERT INTO chat_messages (session_id, agent_id, role, content, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    message.session_id,
                    message.agent_id,
                    message.role.value,
                    message.content,
                    message.created_at.isoformat(),
                ),
            )
            await db.commit()

    async def list_chat_messages(self, session_id: str, agent_id: str) -> list[ChatMessage]:
        async with aiosqlite.connect(str(self._db_path)) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT session_id, agent_id, role, content, created_at FROM chat_messages "
                "WHERE session_id = ? AND agent_id = ? ORDER BY message_id",
                (session_id, agent_id),
            )
            rows = await cursor.fetchall()
        return [
            ChatMessage(
                session_id=r["session_id"],
                agent_id=r["agent_id"],
                role=MessageRole(r["role"]),
                content=r["content"],
                created_at=datetime.fromisoformat(r["created_at"]),
            )
            for r in rows
        ]


def _row_to_document(row: dict[str, Any]) -> Document:
    return Document(
        document_id=row["document_id"],
        tenant_id=row["tenant_id"],
        name=row["name"],
        source_kind=SourceKind(row["source_kind"]),
        size=row["size"],
        status=JobState(row["status"]),
        storage_path=row["storage_path"],
        content=row["content"],
        source_url=row["source_url"],
        namespace=row["namespace"],
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )
