"""DuckDB-based metadata store.

Holds users, media records and comments for the primary app. Stored
bytes live in the media service; a media record only carries the storage
key that names them.

Database Schema:
    users:    id, username (unique), password_hash, created_at
    media:    id, project_id, title, description, storage_key, kind, uploaded_at
    comments: id, media_id, user_id, text, time, created_at

Thread Safety:
    A DuckDB connection is not thread-safe and sync routes run in a thread
    pool, so every statement runs under one lock.

Usage:
    store = MetadataStore.get_instance()
    record = store.create_media(MediaCreate(...))
    store.delete_comments_for_media(record.id)
"""
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional

import duckdb

from stagebox.config import get_config
from stagebox.errors import ConflictError
from stagebox.media.schemas import MediaKind

from .schemas import Comment, MediaCreate, MediaRecord, User

logger = logging.getLogger(__name__)

_MEDIA_COLUMNS = "id, project_id, title, description, storage_key, kind, uploaded_at"
_COMMENT_COLUMNS = "id, media_id, user_id, text, time, created_at"


class DuplicateUserError(ConflictError):
    default_message = "Username already exists"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _media_from_row(row) -> MediaRecord:
    return MediaRecord(
        id=row[0],
        project_id=row[1],
        title=row[2],
        description=row[3],
        storage_key=row[4],
        kind=MediaKind(row[5]),
        uploaded_at=row[6],
    )


def _comment_from_row(row) -> Comment:
    return Comment(
        id=row[0],
        media_id=row[1],
        user_id=row[2],
        text=row[3],
        time=row[4],
        created_at=row[5],
    )


class MetadataStore:
    """Singleton store for users, media records and comments.

    Attributes:
        _instance: Singleton instance of the store.
        _db_path: Path to the DuckDB database file.
    """

    _instance: Optional["MetadataStore"] = None
    _db_path: str = "stagebox.duckdb"

    def __init__(self, db_path: Optional[str] = None) -> None:
        """Open (or create) the database and its schema.

        Args:
            db_path: Path to the DuckDB file; ``":memory:"`` for a throwaway store.
        """
        if db_path:
            self._db_path = db_path
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._initialize_db()

    @classmethod
    def get_instance(cls, db_path: Optional[str] = None) -> "MetadataStore":
        """Get or create the singleton instance.

        Args:
            db_path: Optional database path (only used on first call);
                defaults to ``metadata.db_path`` from the config.
        """
        if cls._instance is None:
            cls._instance = cls(db_path or get_config().metadata.db_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Close the connection and clear the singleton (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        if self._connection is None:
            self._connection = duckdb.connect(self._db_path)
        return self._connection

    def _initialize_db(self) -> None:
        """Create sequences and tables if missing. Idempotent."""
        with self._lock:
            conn = self._get_connection()
            for name in ("users_seq", "media_seq", "comments_seq"):
                conn.execute(f"CREATE SEQUENCE IF NOT EXISTS {name} START 1")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id INTEGER DEFAULT nextval('users_seq') PRIMARY KEY,
                    username VARCHAR NOT NULL UNIQUE,
                    password_hash VARCHAR NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS media (
                    id INTEGER DEFAULT nextval('media_seq') PRIMARY KEY,
                    project_id INTEGER NOT NULL,
                    title VARCHAR NOT NULL,
                    description VARCHAR,
                    storage_key VARCHAR NOT NULL,
                    kind VARCHAR NOT NULL,
                    uploaded_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS comments (
                    id INTEGER DEFAULT nextval('comments_seq') PRIMARY KEY,
                    media_id INTEGER NOT NULL,
                    user_id INTEGER NOT NULL,
                    text VARCHAR NOT NULL,
                    time DOUBLE,
                    created_at TIMESTAMP NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_media_project_id ON media(project_id)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_comments_media_id ON comments(media_id)")

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def create_user(self, username: str, password_hash: str) -> User:
        created_at = _utcnow()
        with self._lock:
            try:
                row = self._get_connection().execute(
                    """
                    INSERT INTO users (username, password_hash, created_at)
                    VALUES (?, ?, ?)
                    RETURNING id
                    """,
                    [username, password_hash, created_at],
                ).fetchone()
            except duckdb.ConstraintException as exc:
                raise DuplicateUserError() from exc
        return User(id=row[0], username=username, password_hash=password_hash, created_at=created_at)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            row = self._get_connection().execute(
                "SELECT id, username, password_hash, created_at FROM users WHERE username = ?",
                [username],
            ).fetchone()
        if not row:
            return None
        return User(id=row[0], username=row[1], password_hash=row[2], created_at=row[3])

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def create_media(self, entry: MediaCreate) -> MediaRecord:
        """Insert a media record. Call only after the stored file exists."""
        uploaded_at = _utcnow()
        with self._lock:
            row = self._get_connection().execute(
                f"""
                INSERT INTO media (project_id, title, description, storage_key, kind, uploaded_at)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING {_MEDIA_COLUMNS}
                """,
                [
                    entry.project_id,
                    entry.title,
                    entry.description,
                    entry.storage_key,
                    entry.kind.value,
                    uploaded_at,
                ],
            ).fetchone()
        logger.info("Created media %s for project %s (%s)", row[0], entry.project_id, entry.storage_key)
        return _media_from_row(row)

    def get_media(self, media_id: int) -> Optional[MediaRecord]:
        with self._lock:
            row = self._get_connection().execute(
                f"SELECT {_MEDIA_COLUMNS} FROM media WHERE id = ?",
                [media_id],
            ).fetchone()
        return _media_from_row(row) if row else None

    def list_media(self, project_id: int) -> List[MediaRecord]:
        """Media of a project, newest first."""
        with self._lock:
            rows = self._get_connection().execute(
                f"""
                SELECT {_MEDIA_COLUMNS} FROM media
                WHERE project_id = ?
                ORDER BY uploaded_at DESC, id DESC
                """,
                [project_id],
            ).fetchall()
        return [_media_from_row(r) for r in rows]

    def delete_media(self, media_id: int) -> bool:
        with self._lock:
            rows = self._get_connection().execute(
                "DELETE FROM media WHERE id = ? RETURNING id",
                [media_id],
            ).fetchall()
        return bool(rows)

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    def create_comment(
        self,
        media_id: int,
        user_id: int,
        text: str,
        time: Optional[float] = None,
    ) -> Comment:
        created_at = _utcnow()
        with self._lock:
            row = self._get_connection().execute(
                f"""
                INSERT INTO comments (media_id, user_id, text, time, created_at)
                VALUES (?, ?, ?, ?, ?)
                RETURNING {_COMMENT_COLUMNS}
                """,
                [media_id, user_id, text, time, created_at],
            ).fetchone()
        return _comment_from_row(row)

    def list_comments(self, media_id: int) -> List[Comment]:
        with self._lock:
            rows = self._get_connection().execute(
                f"SELECT {_COMMENT_COLUMNS} FROM comments WHERE media_id = ? ORDER BY created_at ASC, id ASC",
                [media_id],
            ).fetchall()
        return [_comment_from_row(r) for r in rows]

    def delete_comments_for_media(self, media_id: int) -> int:
        """Delete all comments on a media record; returns how many were removed."""
        with self._lock:
            rows = self._get_connection().execute(
                "DELETE FROM comments WHERE media_id = ? RETURNING id",
                [media_id],
            ).fetchall()
        return len(rows)

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
