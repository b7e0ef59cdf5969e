"""Conversation model and SQLite-backed persistence."""

import json
import re
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ai_coding_cli.config import get_config
from ai_coding_cli.exceptions import SessionNotFoundError, ValidationError
from ai_coding_cli.logging import get_logger

log = get_logger(__name__)

PREVIEW_CHARS = 80
_UNSAFE_ID_RE = re.compile(r"[^A-Za-z0-9-]")


def _utcnow_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return datetime.now(UTC).isoformat()


def generate_conversation_id(now: datetime | None = None) -> str:
    """Generate ``YYYYMMDD-HHMMSS-xxxx`` (4 random hex chars)."""
    now = now or datetime.now()
    return f"{now:%Y%m%d-%H%M%S}-{secrets.token_hex(2)}"


def sanitize_id(conversation_id: str) -> str:
    """Strip everything but letters, digits and dashes."""
    return _UNSAFE_ID_RE.sub("", str(conversation_id or ""))


@dataclass
class Conversation:
    """An ordered conversation; message order is never changed."""

    id: str = field(default_factory=generate_conversation_id)
    model: str = ""
    messages: list[dict[str, Any]] = field(default_factory=list)
    created_at: str = field(default_factory=_utcnow_iso)
    updated_at: str = field(default_factory=_utcnow_iso)
    metadata: dict[str, Any] = field(default_factory=dict)

    def add_message(self, role: str, content: str) -> dict[str, Any]:
        """Append a message and return it."""
        message = {
            "role": role,
            "content": content,
            "timestamp": _utcnow_iso(),
        }
        self.messages.append(message)
        self.updated_at = _utcnow_iso()
        return message

    def pop_last_user_message(self) -> dict[str, Any] | None:
        """Remove the trailing message if it is a user message."""
        if self.messages and self.messages[-1].get("role") == "user":
            self.updated_at = _utcnow_iso()
            return self.messages.pop()
        return None

    def first_user_message(self) -> dict[str, Any] | None:
        return next((m for m in self.messages if m.get("role") == "user"), None)

    def clear(self) -> None:
        self.messages.clear()
        self.updated_at = _utcnow_iso()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "model": self.model,
            "messages": self.messages,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Conversation":
        """Create from dictionary."""
        return cls(
            id=data["id"],
            model=data.get("model", ""),
            messages=data.get("messages", []),
            created_at=data.get("created_at", _utcnow_iso()),
            updated_at=data.get("updated_at", _utcnow_iso()),
            metadata=data.get("metadata", {}),
        )


@dataclass
class ConversationSummary:
    """Listing entry for a saved conversation."""

    id: str
    created_at: str
    updated_at: str
    message_count: int
    preview: str


class ConversationStore:
    """Persists conversations in SQLite."""

    def __init__(self, db_path: Path | str | None = None):
        """Initialize the store.

        Args:
            db_path: Optional database path override
        """
        if db_path is None:
            config = get_config()
            self.db_path = Path(config.session.path).expanduser()
        else:
            self.db_path = Path(db_path).expanduser()

        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: aiosqlite.Connection | None = None

    async def _ensure_db(self) -> None:
        """Ensure database is initialized."""
        if self._db is None:
            self._db = await aiosqlite.connect(str(self.db_path))
            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS conversations (
                    id TEXT PRIMARY KEY,
                    model TEXT NOT NULL DEFAULT '',
                    messages TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    metadata TEXT NOT NULL DEFAULT '{}'
                )
            """)
            await self._db.execute(
                "CREATE INDEX IF NOT EXISTS idx_conversations_updated_at ON conversations(updated_at)"
            )
            await self._db.commit()

    async def save(self, conversation: Conversation) -> None:
        """Insert or replace a conversation.

        Raises:
            ValidationError: If the ID has no usable characters
        """
        safe_id = sanitize_id(conversation.id)
        if not safe_id:
            raise ValidationError(f"Invalid conversation ID: {conversation.id!r}")
        await self._ensure_db()

        conversation.id = safe_id
        conversation.updated_at = _utcnow_iso()

        await self._db.execute("""
            INSERT OR REPLACE INTO conversations (id, model, messages, created_at, updated_at, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (
            conversation.id,
            conversation.model,
            json.dumps(conversation.messages),
            conversation.created_at,
            conversation.updated_at,
            json.dumps(conversation.metadata),
        ))
        await self._db.commit()
        log.debug("Saved conversation", conversation_id=conversation.id, messages=len(conversation.messages))

    async def load(self, conversation_id: str) -> Conversation:
        """Load a conversation by ID.

        Raises:
            SessionNotFoundError: If no conversation has this ID
        """
        await self._ensure_db()

        safe_id = sanitize_id(conversation_id)
        async with self._db.execute(
            "SELECT id, model, messages, created_at, updated_at, metadata FROM conversations WHERE id = ?",
            (safe_id,),
        ) as cursor:
            row = await cursor.fetchone()

        if not row:
            raise SessionNotFoundError(safe_id)

        return Conversation.from_dict({
            "id": row[0],
            "model": row[1],
            "messages": json.loads(row[2]),
            "created_at": row[3],
            "updated_at": row[4],
            "metadata": json.loads(row[5]),
        })

    async def list(self, limit: int = 20) -> list[ConversationSummary]:
        """List saved conversations, most recently updated first."""
        await self._ensure_db()

        async with self._db.execute("""
            SELECT id, messages, created_at, updated_at
            FROM conversations
            ORDER BY updated_at DESC
            LIMIT ?
        """, (limit,)) as cursor:
            rows = await cursor.fetchall()

        summaries: list[ConversationSummary] = []
        for row in rows:
            try:
                messages = json.loads(row[1])
            except json.JSONDecodeError:
                log.warning("Skipping unreadable conversation", conversation_id=row[0])
                continue
            first_user = next((m for m in messages if m.get("role") == "user"), None)
            preview = str(first_user.get("content", ""))[:PREVIEW_CHARS] if first_user else "(empty)"
            summaries.append(ConversationSummary(
                id=row[0],
                created_at=row[2],
                updated_at=row[3],
                message_count=len(messages),
                preview=preview,
            ))
        return summaries

    async def delete(self, conversation_id: str) -> bool:
        """Delete a conversation.

        Returns:
            True if deleted, False if not found
        """
        await self._ensure_db()

        cursor = await self._db.execute(
            "DELETE FROM conversations WHERE id = ?",
            (sanitize_id(conversation_id),),
        )
        await self._db.commit()

        return cursor.rowcount > 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None


# Global store
_store: ConversationStore | None = None


def get_conversation_store() -> ConversationStore:
    """Get the global conversation store."""
    global _store
    if _store is None:
        _store = ConversationStore()
    return _store
