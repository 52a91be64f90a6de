"""
API keys as bearer credentials.

A key resolves to an :class:`Identity` carrying the owner id that scopes every
job and usage row. Only SHA-256 hashes of keys are stored.
"""

import hashlib
import logging
import secrets
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple
from uuid import uuid4

logger = logging.getLogger(__name__)

KEY_PREFIX = "cvt_"


@dataclass(frozen=True)
class Identity:
    owner: str
    key_id: str


class KeyManager:
    """
    Issues, resolves and revokes API keys stored in SQLite.
    """

    def __init__(self, db_path: str = "data/conversions.db"):
        self.db_path = Path(db_path)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self):
        """Initialize the database schema if it doesn't exist."""
        conn = self._get_conn()
        try:
            with conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS api_keys (
                        id TEXT PRIMARY KEY,
                        key_hash TEXT UNIQUE NOT NULL,
                        prefix TEXT NOT NULL,
                        owner TEXT NOT NULL,
                        is_active BOOLEAN DEFAULT 1,
                        created_at TEXT NOT NULL
                    )
                """)
        finally:
            conn.close()

    def _hash_key(self, key: str) -> str:
        """SHA-256 hash of the API key."""
        return hashlib.sha256(key.encode()).hexdigest()

    def create_key(self, owner: str) -> Tuple[str, dict]:
        """
        Generate a new API key for an owner.

        Returns:
            Tuple[str, dict]: (raw_api_key, key_record_dict)
            The raw key is only ever returned here.
        """
        raw_key = f"{KEY_PREFIX}{secrets.token_urlsafe(32)}"
        prefix = raw_key[:8]
        key_id = str(uuid4())
        created_at = datetime.now(timezone.utc).isoformat()

        conn = self._get_conn()
        try:
            with conn:
                conn.execute("""
                    INSERT INTO api_keys (id, key_hash, prefix, owner, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (key_id, self._hash_key(raw_key), prefix, owner, created_at))
        finally:
            conn.close()

        logger.info("Issued API key %s for owner %s", prefix, owner)
        record = {
            "id": key_id,
            "prefix": prefix,
            "owner": owner,
            "is_active": True,
            "created_at": created_at,
        }
        return raw_key, record

    def resolve(self, key: Optional[str]) -> Optional[Identity]:
        """
        Map a raw API key to the identity that owns it.

        Returns None for empty, unknown or revoked keys.
        """
        if not key:
            return None

        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id, owner FROM api_keys WHERE key_hash = ? AND is_active = 1",
                (self._hash_key(key),),
            ).fetchone()
        finally:
            conn.close()

        if row:
            return Identity(owner=row["owner"], key_id=row["id"])
        return None

    def list_keys(self) -> list[dict]:
        """List all API keys (admin only)."""
        conn = self._get_conn()
        try:
            rows = conn.execute(
                "SELECT id, prefix, owner, is_active, created_at FROM api_keys ORDER BY created_at DESC"
            ).fetchall()
        finally:
            conn.close()
        return [{**dict(row), "is_active": bool(row["is_active"])} for row in rows]

    def revoke_key(self, key_id: str) -> bool:
        """Revoke a key by ID."""
        conn = self._get_conn()
        try:
            with conn:
                cursor = conn.execute("UPDATE api_keys SET is_active = 0 WHERE id = ?", (key_id,))
        finally:
            conn.close()
        if cursor.rowcount > 0:
            logger.info("Revoked API key %s", key_id)
            return True
        return False


def parse_bearer(header: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not header:
        return None
    scheme, _, rest = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = rest.strip()
    return token or None
