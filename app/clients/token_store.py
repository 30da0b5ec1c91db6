"""SQLite-backed storage for marketplace OAuth tokens."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.models.oauth import MarketplaceToken, TokenIdentity
from app.services.token_cipher import TokenCipherService, TokenDecryptionError

logger = logging.getLogger(__name__)


class SQLiteTokenStore:
    """
    Keyed table holding one token record per local user.

    Access and refresh tokens are encrypted at rest; every other field is kept
    in plain columns so sweeps can filter without decrypting.
    """

    def __init__(self, db_path: str, cipher: TokenCipherService) -> None:
        self._db_path = Path(db_path)
        self._cipher = cipher
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS marketplace_tokens (
                    id TEXT PRIMARY KEY,
                    local_user_id TEXT NOT NULL UNIQUE,
                    remote_user_id TEXT NOT NULL,
                    access_token_encrypted TEXT NOT NULL,
                    refresh_token_encrypted TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    is_active INTEGER NOT NULL,
                    scopes TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    last_refresh_at TEXT
                )
                """
            )

    def put(self, token: MarketplaceToken) -> None:
        """Insert or overwrite the record for ``token.id``."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO marketplace_tokens (
                    id, local_user_id, remote_user_id, access_token_encrypted,
                    refresh_token_encrypted, expires_at, is_active, scopes,
                    created_at, updated_at, last_refresh_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    remote_user_id = excluded.remote_user_id,
                    access_token_encrypted = excluded.access_token_encrypted,
                    refresh_token_encrypted = excluded.refresh_token_encrypted,
                    expires_at = excluded.expires_at,
                    is_active = excluded.is_active,
                    scopes = excluded.scopes,
                    updated_at = excluded.updated_at,
                    last_refresh_at = excluded.last_refresh_at
                """,
                (
                    token.id,
                    token.local_user_id,
                    token.remote_user_id,
                    self._cipher.encrypt(token.access_token),
                    self._cipher.encrypt(token.refresh_token),
                    token.expires_at.isoformat(),
                    int(token.is_active),
                    json.dumps(token.scopes),
                    token.created_at.isoformat(),
                    token.updated_at.isoformat(),
                    token.last_refresh_at.isoformat() if token.last_refresh_at else None,
                ),
            )

    def get(self, token_id: str) -> Optional[MarketplaceToken]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM marketplace_tokens WHERE id = ?", (token_id,)
            ).fetchone()
        return self._to_model(row) if row else None

    def find_active_by_user(self, local_user_id: str) -> Optional[MarketplaceToken]:
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT * FROM marketplace_tokens
                WHERE local_user_id = ? AND is_active = 1
                """,
                (local_user_id,),
            ).fetchone()
        return self._to_model(row) if row else None

    def find_identity(self, local_user_id: str) -> Optional[TokenIdentity]:
        """Return the user's record identity without decrypting credentials."""
        with self._connect() as conn:
            row = conn.execute(
                """
                SELECT id, local_user_id, is_active, created_at
                FROM marketplace_tokens WHERE local_user_id = ?
                """,
                (local_user_id,),
            ).fetchone()
        if not row:
            return None
        return TokenIdentity(
            id=row["id"],
            local_user_id=row["local_user_id"],
            is_active=bool(row["is_active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def deactivate(self, token_id: str, updated_at: datetime) -> bool:
        """Mark a record inactive. Returns ``False`` if it was not active."""
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE marketplace_tokens SET is_active = 0, updated_at = ?
                WHERE id = ? AND is_active = 1
                """,
                (updated_at.isoformat(), token_id),
            )
        return cursor.rowcount == 1

    def list_active(self) -> List[MarketplaceToken]:
        """Return every active record; rows that fail to decrypt are skipped."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM marketplace_tokens WHERE is_active = 1 ORDER BY expires_at"
            ).fetchall()
        tokens: List[MarketplaceToken] = []
        for row in rows:
            try:
                tokens.append(self._to_model(row))
            except TokenDecryptionError:
                logger.warning(
                    "Skipping unreadable token record", extra={"token_id": row["id"]}
                )
        return tokens

    def _to_model(self, row: sqlite3.Row) -> MarketplaceToken:
        data: Dict[str, Any] = dict(row)
        last_refresh_at = data.get("last_refresh_at")
        return MarketplaceToken(
            id=data["id"],
            local_user_id=data["local_user_id"],
            remote_user_id=data["remote_user_id"],
            access_token=self._cipher.decrypt(data["access_token_encrypted"]),
            refresh_token=self._cipher.decrypt(data["refresh_token_encrypted"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            is_active=bool(data["is_active"]),
            scopes=json.loads(data["scopes"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            last_refresh_at=(
                datetime.fromisoformat(last_refresh_at) if last_refresh_at else None
            ),
        )


__all__ = ["SQLiteTokenStore"]
