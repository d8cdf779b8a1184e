"""Abstract repository interfaces for vidgate storage."""

from abc import ABC, abstractmethod
from datetime import datetime

from vidgate.models import Notification, Playlist, Recommendation, User, Video, WatchEvent


class StorageError(Exception):
    """Raised when the backing store cannot complete a read or write."""


class VideoRepository(ABC):
    """Catalog storage contract.

    All concrete storage implementations must implement this interface,
    so the service layer depends on abstractions, not on SQLite.
    """

    @abstractmethod
    def save(self, video: Video) -> None:
        """Persist a video. Upserts if video_id already exists."""

    @abstractmethod
    def get(self, video_id: str) -> Video | None:
        """Retrieve a video by ID. Returns None if not found."""

    @abstractmethod
    def list_all(self) -> list[Video]:
        """List the whole catalog, most recent first."""

    @abstractmethod
    def delete(self, video_id: str) -> None:
        """Remove a video. No-op if video_id does not exist."""

    @abstractmethod
    def exists(self, video_id: str) -> bool:
        """Check whether a video with the given ID is in the catalog."""


class UserRepository(ABC):
    """User directory contract."""

    @abstractmethod
    def save(self, user: User) -> None:
        """Persist a user. Upserts if user_id already exists."""

    @abstractmethod
    def get(self, user_id: str) -> User | None:
        """Retrieve a user by ID. Returns None if not found."""

    @abstractmethod
    def get_by_email(self, email: str) -> User | None:
        """Retrieve a user by e-mail (case-insensitive). Returns None if not found."""

    @abstractmethod
    def list_all(self) -> list[User]:
        """List every user in the directory."""

    @abstractmethod
    def touch(self, user_id: str, at: datetime) -> None:
        """Record activity for a user. No-op if user_id does not exist."""


class PlaylistRepository(ABC):
    """Playlist storage contract.

    Only ``unlocked`` may change after a playlist is saved.
    """

    @abstractmethod
    def save(self, playlist: Playlist) -> None:
        """Persist a new playlist."""

    @abstractmethod
    def get(self, playlist_id: str) -> Playlist | None:
        """Retrieve a playlist by ID. Returns None if not found."""

    @abstractmethod
    def find_by_user(self, user_id: str) -> list[Playlist]:
        """List a user's playlists, most recent first."""

    @abstractmethod
    def update_unlocked(self, playlist_id: str, unlocked: int) -> None:
        """Overwrite the unlock cursor. Last writer wins."""


class WatchEventRepository(ABC):
    """Append-only watch log contract."""

    @abstractmethod
    def append(self, event: WatchEvent) -> WatchEvent:
        """Append an event and return it with the store-assigned timestamp."""

    @abstractmethod
    def list_all(
        self, user_id: str | None = None, video_id: str | None = None
    ) -> list[WatchEvent]:
        """List events in log order (oldest first), optionally filtered."""

    @abstractmethod
    def has_completed(self, user_id: str, video_id: str) -> bool:
        """Check whether the user already finished the video at least once."""


class RecommendationRepository(ABC):
    @abstractmethod
    def save(self, recommendation: Recommendation) -> None:
        """Persist a recommendation."""

    @abstractmethod
    def list_all(self, kind: str | None = None) -> list[Recommendation]:
        """List recommendations, most recent first, optionally of one kind."""


class NotificationOutbox(ABC):
    """Outgoing e-mails that still have to be delivered."""

    @abstractmethod
    def add(self, notification: Notification) -> None:
        """Store a notification."""

    @abstractmethod
    def pending(self) -> list[Notification]:
        """List undelivered notifications, oldest first."""

    @abstractmethod
    def record_attempt(self, notification_id: str, delivered: bool, error: str = "") -> None:
        """Count a delivery attempt and its outcome."""
