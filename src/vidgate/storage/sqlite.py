"""SQLite implementations of the vidgate repositories."""

import json
import logging
import sqlite3
from datetime import datetime, timezone

from vidgate.config import settings
from vidgate.models import (
    Notification,
    Playlist,
    PlaylistVideo,
    Recommendation,
    User,
    Video,
    WatchEvent,
)
from vidgate.storage.repository import (
    NotificationOutbox,
    PlaylistRepository,
    RecommendationRepository,
    StorageError,
    UserRepository,
    VideoRepository,
    WatchEventRepository,
)

logger = logging.getLogger(__name__)


def connect(db_path: str | None = None) -> sqlite3.Connection:
    """Open a connection to the vidgate database.

    Args:
        db_path: Path to SQLite database file. Defaults to settings.db_path.
                 Use ":memory:" for testing.
    """
    conn = sqlite3.connect(db_path or str(settings.db_path))
    conn.row_factory = sqlite3.Row
    return conn


class _SQLiteRepository:
    """Shared plumbing: one connection, schema bootstrap, error translation.

    Pass ``conn`` to let several repositories share one database
    (required for ":memory:", where every connection is a new database).
    """

    _CREATE_TABLE = ""

    def __init__(self, db_path: str | None = None, conn: sqlite3.Connection | None = None) -> None:
        self._conn = conn or connect(db_path)
        self._execute(self._CREATE_TABLE, commit=True)

    def _execute(self, sql: str, params: tuple = (), *, commit: bool = False) -> sqlite3.Cursor:
        try:
            cur = self._conn.execute(sql, params)
            if commit:
                self._conn.commit()
            return cur
        except sqlite3.Error as e:
            logger.error("SQLite error: %s", e)
            raise StorageError(f"Storage operation failed: {e}") from e

    def _fetchone(self, sql: str, params: tuple = ()) -> sqlite3.Row | None:
        return self._execute(sql, params).fetchone()

    def _fetchall(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        return self._execute(sql, params).fetchall()


class SQLiteVideoRepository(_SQLiteRepository, VideoRepository):
    """SQLite-backed video catalog. Tags live in a JSON column."""

    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS videos (
            video_id      TEXT PRIMARY KEY,
            title         TEXT NOT NULL,
            description   TEXT DEFAULT '',
            category      TEXT DEFAULT 'Uncategorized',
            duration      TEXT DEFAULT '',
            public_id     TEXT DEFAULT '',
            video_url     TEXT DEFAULT '',
            thumbnail_url TEXT DEFAULT '',
            tags          TEXT DEFAULT '[]',
            created_at    TEXT NOT NULL
        )
    """

    def save(self, video: Video) -> None:
        sql = """
            INSERT INTO videos (
                video_id, title, description, category, duration,
                public_id, video_url, thumbnail_url, tags, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(video_id) DO UPDATE SET
                title = excluded.title,
                description = excluded.description,
                category = excluded.category,
                duration = excluded.duration,
                public_id = excluded.public_id,
                video_url = excluded.video_url,
                thumbnail_url = excluded.thumbnail_url,
                tags = excluded.tags
        """
        self._execute(sql, (
            video.video_id,
            video.title,
            video.description,
            video.category,
            video.duration,
            video.public_id,
            video.video_url,
            video.thumbnail_url,
            json.dumps(video.tags),
            video.created_at.isoformat(),
        ), commit=True)

    def get(self, video_id: str) -> Video | None:
        row = self._fetchone("SELECT * FROM videos WHERE video_id = ?", (video_id,))
        return self._row_to_video(row) if row else None

    def list_all(self) -> list[Video]:
        rows = self._fetchall("SELECT * FROM videos ORDER BY created_at DESC")
        return [self._row_to_video(row) for row in rows]

    def delete(self, video_id: str) -> None:
        self._execute("DELETE FROM videos WHERE video_id = ?", (video_id,), commit=True)

    def exists(self, video_id: str) -> bool:
        sql = "SELECT 1 FROM videos WHERE video_id = ? LIMIT 1"
        return self._fetchone(sql, (video_id,)) is not None

    @staticmethod
    def _row_to_video(row: sqlite3.Row) -> Video:
        return Video(
            video_id=row["video_id"],
            title=row["title"],
            description=row["description"],
            category=row["category"],
            duration=row["duration"],
            public_id=row["public_id"],
            video_url=row["video_url"],
            thumbnail_url=row["thumbnail_url"],
            tags=json.loads(row["tags"]),
            created_at=row["created_at"],
        )


class SQLiteUserRepository(_SQLiteRepository, UserRepository):
    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS users (
            user_id     TEXT PRIMARY KEY,
            email       TEXT NOT NULL UNIQUE COLLATE NOCASE,
            is_admin    INTEGER DEFAULT 0,
            created_at  TEXT NOT NULL,
            last_active TEXT
        )
    """

    def save(self, user: User) -> None:
        sql = """
            INSERT INTO users (user_id, email, is_admin, created_at, last_active)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                email = excluded.email,
                is_admin = excluded.is_admin,
                last_active = excluded.last_active
        """
        self._execute(sql, (
            user.user_id,
            user.email,
            int(user.is_admin),
            user.created_at.isoformat(),
            user.last_active.isoformat() if user.last_active else None,
        ), commit=True)

    def get(self, user_id: str) -> User | None:
        row = self._fetchone("SELECT * FROM users WHERE user_id = ?", (user_id,))
        return self._row_to_user(row) if row else None

    def get_by_email(self, email: str) -> User | None:
        row = self._fetchone("SELECT * FROM users WHERE email = ?", (email,))
        return self._row_to_user(row) if row else None

    def list_all(self) -> list[User]:
        rows = self._fetchall("SELECT * FROM users ORDER BY created_at")
        return [self._row_to_user(row) for row in rows]

    def touch(self, user_id: str, at: datetime) -> None:
        sql = "UPDATE users SET last_active = ? WHERE user_id = ?"
        self._execute(sql, (at.isoformat(), user_id), commit=True)

    @staticmethod
    def _row_to_user(row: sqlite3.Row) -> User:
        return User(
            user_id=row["user_id"],
            email=row["email"],
            is_admin=bool(row["is_admin"]),
            created_at=row["created_at"],
            last_active=row["last_active"],
        )


class SQLitePlaylistRepository(_SQLiteRepository, PlaylistRepository):
    """Playlists with their video snapshots embedded as a JSON column."""

    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS playlists (
            playlist_id TEXT PRIMARY KEY,
            user_id     TEXT NOT NULL,
            user_email  TEXT DEFAULT '',
            videos      TEXT NOT NULL,
            unlocked    INTEGER NOT NULL DEFAULT 1,
            created_at  TEXT NOT NULL
        )
    """

    def save(self, playlist: Playlist) -> None:
        sql = """
            INSERT INTO playlists (playlist_id, user_id, user_email, videos, unlocked, created_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """
        self._execute(sql, (
            playlist.playlist_id,
            playlist.user_id,
            playlist.user_email,
            json.dumps([v.model_dump() for v in playlist.videos]),
            playlist.unlocked,
            playlist.created_at.isoformat(),
        ), commit=True)

    def get(self, playlist_id: str) -> Playlist | None:
        row = self._fetchone("SELECT * FROM playlists WHERE playlist_id = ?", (playlist_id,))
        return self._row_to_playlist(row) if row else None

    def find_by_user(self, user_id: str) -> list[Playlist]:
        sql = "SELECT * FROM playlists WHERE user_id = ? ORDER BY created_at DESC"
        return [self._row_to_playlist(row) for row in self._fetchall(sql, (user_id,))]

    def update_unlocked(self, playlist_id: str, unlocked: int) -> None:
        sql = "UPDATE playlists SET unlocked = ? WHERE playlist_id = ?"
        cur = self._execute(sql, (unlocked, playlist_id), commit=True)
        if cur.rowcount == 0:
            raise StorageError(f"Playlist vanished while updating: {playlist_id}")

    @staticmethod
    def _row_to_playlist(row: sqlite3.Row) -> Playlist:
        return Playlist(
            playlist_id=row["playlist_id"],
            user_id=row["user_id"],
            user_email=row["user_email"],
            videos=tuple(PlaylistVideo(**v) for v in json.loads(row["videos"])),
            unlocked=row["unlocked"],
            created_at=row["created_at"],
        )


class SQLiteWatchEventRepository(_SQLiteRepository, WatchEventRepository):
    """Append-only watch log. There is no update or delete."""

    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS watch_events (
            seq            INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id       TEXT NOT NULL UNIQUE,
            video_id       TEXT NOT NULL,
            video_title    TEXT DEFAULT '',
            user_id        TEXT NOT NULL,
            user_email     TEXT DEFAULT '',
            playlist_id    TEXT,
            event_type     TEXT NOT NULL,
            watch_duration REAL DEFAULT 0.0,
            completed      INTEGER DEFAULT 0,
            skipped        INTEGER DEFAULT 0,
            rewatched      INTEGER DEFAULT 0,
            watched_at     TEXT NOT NULL
        )
    """

    def append(self, event: WatchEvent) -> WatchEvent:
        stamped = event.model_copy(update={"watched_at": datetime.now(timezone.utc)})
        sql = """
            INSERT INTO watch_events (
                event_id, video_id, video_title, user_id, user_email, playlist_id,
                event_type, watch_duration, completed, skipped, rewatched, watched_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(sql, (
            stamped.event_id,
            stamped.video_id,
            stamped.video_title,
            stamped.user_id,
            stamped.user_email,
            stamped.playlist_id,
            stamped.event_type.value,
            stamped.watch_duration,
            int(stamped.completed),
            int(stamped.skipped),
            int(stamped.rewatched),
            stamped.watched_at.isoformat(),
        ), commit=True)
        return stamped

    def list_all(
        self, user_id: str | None = None, video_id: str | None = None
    ) -> list[WatchEvent]:
        clauses, params = [], []
        if user_id is not None:
            clauses.append("user_id = ?")
            params.append(user_id)
        if video_id is not None:
            clauses.append("video_id = ?")
            params.append(video_id)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        sql = f"SELECT * FROM watch_events{where} ORDER BY seq"
        return [self._row_to_event(row) for row in self._fetchall(sql, tuple(params))]

    def has_completed(self, user_id: str, video_id: str) -> bool:
        sql = """
            SELECT 1 FROM watch_events
            WHERE user_id = ? AND video_id = ? AND completed = 1 LIMIT 1
        """
        return self._fetchone(sql, (user_id, video_id)) is not None

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> WatchEvent:
        return WatchEvent(
            event_id=row["event_id"],
            video_id=row["video_id"],
            video_title=row["video_title"],
            user_id=row["user_id"],
            user_email=row["user_email"],
            playlist_id=row["playlist_id"],
            event_type=row["event_type"],
            watch_duration=row["watch_duration"],
            completed=bool(row["completed"]),
            skipped=bool(row["skipped"]),
            rewatched=bool(row["rewatched"]),
            watched_at=row["watched_at"],
        )


class SQLiteRecommendationRepository(_SQLiteRepository, RecommendationRepository):
    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS recommendations (
            recommendation_id TEXT PRIMARY KEY,
            user_id           TEXT NOT NULL,
            user_email        TEXT DEFAULT '',
            playlist_id       TEXT NOT NULL,
            text              TEXT NOT NULL,
            kind              TEXT DEFAULT 'playlist_creation',
            created_at        TEXT NOT NULL
        )
    """

    def save(self, recommendation: Recommendation) -> None:
        sql = """
            INSERT INTO recommendations (
                recommendation_id, user_id, user_email, playlist_id, text, kind, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
        """
        r = recommendation
        self._execute(sql, (
            r.recommendation_id, r.user_id, r.user_email, r.playlist_id,
            r.text, r.kind, r.created_at.isoformat(),
        ), commit=True)

    def list_all(self, kind: str | None = None) -> list[Recommendation]:
        if kind is None:
            rows = self._fetchall("SELECT * FROM recommendations ORDER BY created_at DESC")
        else:
            rows = self._fetchall(
                "SELECT * FROM recommendations WHERE kind = ? ORDER BY created_at DESC", (kind,)
            )
        return [Recommendation(**dict(row)) for row in rows]


class SQLiteNotificationOutbox(_SQLiteRepository, NotificationOutbox):
    _CREATE_TABLE = """
        CREATE TABLE IF NOT EXISTS notifications (
            notification_id TEXT PRIMARY KEY,
            recipient       TEXT NOT NULL,
            subject         TEXT NOT NULL,
            html            TEXT NOT NULL,
            attempts        INTEGER DEFAULT 0,
            delivered       INTEGER DEFAULT 0,
            last_error      TEXT DEFAULT '',
            created_at      TEXT NOT NULL
        )
    """

    def add(self, notification: Notification) -> None:
        n = notification
        sql = """
            INSERT INTO notifications (
                notification_id, recipient, subject, html, attempts, delivered, last_error, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """
        self._execute(sql, (
            n.notification_id, n.to, n.subject, n.html, n.attempts,
            int(n.delivered), n.last_error, n.created_at.isoformat(),
        ), commit=True)

    def pending(self) -> list[Notification]:
        sql = "SELECT * FROM notifications WHERE delivered = 0 ORDER BY created_at"
        return [
            Notification(
                notification_id=row["notification_id"],
                to=row["recipient"],
                subject=row["subject"],
                html=row["html"],
                attempts=row["attempts"],
                delivered=bool(row["delivered"]),
                last_error=row["last_error"],
                created_at=row["created_at"],
            )
            for row in self._fetchall(sql)
        ]

    def record_attempt(self, notification_id: str, delivered: bool, error: str = "") -> None:
        sql = """
            UPDATE notifications
            SET attempts = attempts + 1, delivered = ?, last_error = ?
            WHERE notification_id = ?
        """
        self._execute(sql, (int(delivered), error, notification_id), commit=True)


class SQLiteStore:
    """All vidgate repositories over a single SQLite connection."""

    def __init__(self, db_path: str | None = None) -> None:
        self._conn = connect(db_path)
        self.videos = SQLiteVideoRepository(conn=self._conn)
        self.users = SQLiteUserRepository(conn=self._conn)
        self.playlists = SQLitePlaylistRepository(conn=self._conn)
        self.events = SQLiteWatchEventRepository(conn=self._conn)
        self.recommendations = SQLiteRecommendationRepository(conn=self._conn)
        self.outbox = SQLiteNotificationOutbox(conn=self._conn)

    def close(self) -> None:
        self._conn.close()
