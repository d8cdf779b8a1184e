"""Domain models for vidgate."""

from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

DEFAULT_CATEGORY = "Uncategorized"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid4().hex


def _dedupe(tags: list[str]) -> list[str]:
    return list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))


class Video(BaseModel):
    """Catalog entry for an uploaded video."""

    video_id: str = Field(default_factory=_new_id)
    title: str = ""
    description: str = ""
    category: str = DEFAULT_CATEGORY
    duration: str = ""  # display string, e.g. "12:30"
    public_id: str = ""  # media host identifier
    video_url: str = ""
    thumbnail_url: str = ""
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("tags")
    @classmethod
    def normalize_tags(cls, tags: list[str]) -> list[str]:
        return _dedupe(tags)

    @model_validator(mode="after")
    def apply_fallbacks(self) -> "Video":
        if not self.title.strip():
            self.title = f"Video {self.video_id[:6]}"
        if not self.category.strip():
            self.category = DEFAULT_CATEGORY
        return self


class PlaylistVideo(BaseModel):
    """Snapshot of a catalog video, frozen at playlist creation time.

    Later edits to the catalog entry never reach an existing playlist.
    """

    model_config = ConfigDict(frozen=True)

    video_id: str
    title: str
    description: str = ""
    category: str = DEFAULT_CATEGORY
    duration: str = ""
    public_id: str = ""
    video_url: str = ""
    thumbnail_url: str = ""
    tags: tuple[str, ...] = ()

    @classmethod
    def from_video(cls, video: Video) -> "PlaylistVideo":
        return cls(
            video_id=video.video_id,
            title=video.title,
            description=video.description,
            category=video.category,
            duration=video.duration,
            public_id=video.public_id,
            video_url=video.video_url,
            thumbnail_url=video.thumbnail_url,
            tags=tuple(video.tags),
        )


class Playlist(BaseModel):
    """A user's ordered video selection with its sequential unlock cursor."""

    playlist_id: str = Field(default_factory=_new_id)
    user_id: str
    user_email: str = ""
    videos: tuple[PlaylistVideo, ...] = Field(min_length=1)
    unlocked: int = 1  # number of leading videos that are playable
    created_at: datetime = Field(default_factory=_utcnow)

    @model_validator(mode="after")
    def check_unlocked(self) -> "Playlist":
        if not 1 <= self.unlocked <= len(self.videos):
            raise ValueError(
                f"unlocked must be between 1 and {len(self.videos)}, got {self.unlocked}"
            )
        return self

    @computed_field
    @property
    def video_count(self) -> int:
        return len(self.videos)


class EventType(str, Enum):
    """Kind of playback lifecycle transition recorded in the watch log."""

    PLAY = "play"
    PAUSE = "pause"
    COMPLETED = "completed"
    WATCH_DURATION = "watchDuration"  # generic duration sample


class WatchEvent(BaseModel):
    """Append-only record of one playback lifecycle transition.

    Title and e-mail are copied at write time so historical analytics
    show the video and user as they were when the event happened.
    """

    event_id: str = Field(default_factory=_new_id)
    video_id: str
    video_title: str = ""
    user_id: str
    user_email: str = ""
    playlist_id: str | None = None
    event_type: EventType
    watch_duration: float = Field(default=0.0, ge=0.0)  # seconds
    completed: bool = False
    skipped: bool = False
    rewatched: bool = False
    watched_at: datetime = Field(default_factory=_utcnow)


class User(BaseModel):
    """Entry in the user directory."""

    user_id: str = Field(default_factory=_new_id)
    email: str
    is_admin: bool = False
    created_at: datetime = Field(default_factory=_utcnow)
    last_active: datetime | None = None


class Identity(BaseModel):
    """The authenticated caller, as vouched for by the auth provider."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str = ""


RECOMMENDATION = "playlist_creation"
FEEDBACK = "feedback"


class Recommendation(BaseModel):
    """Free text left by a user about a playlist.

    ``kind`` tells content suggestions (RECOMMENDATION) apart from
    general feedback on the portal (FEEDBACK).
    """

    recommendation_id: str = Field(default_factory=_new_id)
    user_id: str
    user_email: str = ""
    playlist_id: str
    text: str
    kind: str = RECOMMENDATION
    created_at: datetime = Field(default_factory=_utcnow)


class Notification(BaseModel):
    """An outgoing e-mail, kept in the outbox until it is delivered."""

    notification_id: str = Field(default_factory=_new_id)
    to: str
    subject: str
    html: str
    attempts: int = 0
    delivered: bool = False
    last_error: str = ""
    created_at: datetime = Field(default_factory=_utcnow)


class VideoAnalytics(BaseModel):
    video_id: str
    title: str
    total_views: int = 0
    unique_viewers: int = 0
    total_watch_time: float = 0.0
    average_watch_time: float = 0.0
    completion_rate: float = 0.0
    skip_rate: float = 0.0
    rewatch_rate: float = 0.0


class UserEngagement(BaseModel):
    user_id: str
    email: str
    total_videos_watched: int = 0
    distinct_videos: int = 0
    total_watch_time: float = 0.0
    average_watch_time: float = 0.0
    completion_rate: float = 0.0
    last_active: datetime


class AnalyticsSummary(BaseModel):
    """Everything the admin analytics view shows, computed from the watch log."""

    videos: list[VideoAnalytics] = Field(default_factory=list)
    users: list[UserEngagement] = Field(default_factory=list)
    total_users: int = 0
    total_videos: int = 0
    total_views: int = 0
    average_engagement: float = 0.0
    generated_at: datetime = Field(default_factory=_utcnow)
