"""Core business logic for vidgate."""

import logging
from datetime import datetime

from vidgate.analytics import ViewPolicy, summarize
from vidgate.config import settings
from vidgate.models import (
    FEEDBACK,
    RECOMMENDATION,
    AnalyticsSummary,
    Identity,
    Notification,
    Playlist,
    PlaylistVideo,
    Recommendation,
    User,
    Video,
    WatchEvent,
)
from vidgate.notify import PLAYLIST_READY_SUBJECT, EmailError, EmailSender, playlist_ready_html
from vidgate.playback import PlaybackSession
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


class AuthorizationError(Exception):
    """Base for errors about who the caller is or what they may do."""


class NotAuthenticatedError(AuthorizationError):
    """Raised when no signed-in identity accompanies a request."""


class NotAuthorizedError(AuthorizationError):
    """Raised when the caller is signed in but lacks the required rights."""


class VideoNotFoundError(Exception):
    """Raised when a requested video is not in the catalog."""


class VideoAlreadyExistsError(Exception):
    """Raised when adding a video whose ID is already in the catalog."""


class PlaylistNotFoundError(Exception):
    """Raised when a playlist ID does not resolve, or a user has no playlist."""


class InvalidInputError(Exception):
    """Raised for input rejected before any storage is touched."""


class EmptySelectionError(InvalidInputError):
    """Raised when a playlist is requested without any videos."""


class AnalyticsUnavailableError(Exception):
    """Raised when the data behind the analytics view cannot be read."""


class PortalService:
    """Core service layer: the single orchestration point for all vidgate operations.

    Both the CLI and MCP server are thin wrappers over this class.
    Storage and the e-mail sender are injected via the constructor; the
    caller's identity is passed to every operation that needs one.
    """

    def __init__(
        self,
        videos: VideoRepository,
        users: UserRepository,
        playlists: PlaylistRepository,
        events: WatchEventRepository,
        recommendations: RecommendationRepository | None = None,
        outbox: NotificationOutbox | None = None,
        email_sender: EmailSender | None = None,
    ) -> None:
        self._videos = videos
        self._users = users
        self._playlists = playlists
        self._events = events
        self._recommendations = recommendations
        self._outbox = outbox
        self._email = email_sender or EmailSender()

    # -- identity ---------------------------------------------------------

    def register_user(self, email: str, is_admin: bool | None = None) -> User:
        """Return the directory entry for ``email``, creating it on first sign-in.

        When ``is_admin`` is not given, addresses containing the configured
        admin marker are registered as admins.
        """
        email = email.strip()
        if not email:
            raise InvalidInputError("An e-mail address is required.")
        existing = self._users.get_by_email(email)
        if existing is not None:
            return existing
        if is_admin is None:
            is_admin = settings.admin_email_marker in email.lower()
        user = User(email=email, is_admin=is_admin)
        self._users.save(user)
        logger.info("User registered: %s (admin=%s)", email, is_admin)
        return user

    def _require_identity(self, identity: Identity | None) -> Identity:
        if identity is None or not identity.user_id:
            raise NotAuthenticatedError("User not authenticated. Please sign in.")
        return identity

    def _is_admin(self, identity: Identity) -> bool:
        user = self._users.get(identity.user_id)
        if user is None and identity.email:
            user = self._users.get_by_email(identity.email)
        return user is not None and user.is_admin

    def _require_admin(self, identity: Identity | None) -> Identity:
        identity = self._require_identity(identity)
        if not self._is_admin(identity):
            raise NotAuthorizedError("Admin rights required.")
        return identity

    # -- catalog ----------------------------------------------------------

    def add_video(
        self,
        identity: Identity | None,
        title: str,
        *,
        public_id: str = "",
        description: str = "",
        category: str = "",
        duration: str = "",
        tags: list[str] | None = None,
        video_url: str = "",
        thumbnail_url: str = "",
        video_id: str | None = None,
    ) -> Video:
        """Register an uploaded video in the catalog.

        When only ``public_id`` is given, the playback and thumbnail URLs
        are derived from the media host base URL.

        Raises:
            AuthorizationError: If the caller is not an admin.
            VideoAlreadyExistsError: If ``video_id`` is already taken.
        """
        self._require_admin(identity)
        fields = {"video_id": video_id} if video_id else {}
        video = Video(
            **fields,
            title=title,
            description=description,
            category=category,
            duration=duration,
            public_id=public_id,
            video_url=video_url or self.media_url(public_id, "mp4"),
            thumbnail_url=thumbnail_url or self.media_url(public_id, "jpg"),
            tags=tags or [],
        )
        if self._videos.exists(video.video_id):
            raise VideoAlreadyExistsError(f"Video already in catalog: {video.video_id}")
        self._videos.save(video)
        logger.info("Video added: %s (%s)", video.video_id, video.title)
        return video

    @staticmethod
    def media_url(public_id: str, ext: str) -> str:
        if not public_id:
            return ""
        return f"{settings.media_base_url.rstrip('/')}/{public_id}.{ext}"

    def list_videos(self) -> list[Video]:
        return self._videos.list_all()

    def get_video(self, video_id: str) -> Video:
        video = self._videos.get(video_id)
        if video is None:
            raise VideoNotFoundError(f"Video not found: {video_id}")
        return video

    def remove_video(self, identity: Identity | None, video_id: str) -> None:
        """Remove a video from the catalog. Existing playlists keep their snapshot."""
        self._require_admin(identity)
        if not self._videos.exists(video_id):
            raise VideoNotFoundError(f"Video not found: {video_id}")
        self._videos.delete(video_id)
        logger.info("Video removed: %s", video_id)

    # -- playlists --------------------------------------------------------

    def create_playlist(self, identity: Identity | None, video_ids: list[str]) -> Playlist:
        """Create a playlist from a selection of catalog videos.

        Videos are snapshotted in the order selected and only the first
        one starts unlocked. The "playlist ready" e-mail is sent
        afterwards; if it cannot be delivered it is queued in the outbox
        and the playlist is still returned.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
            EmptySelectionError: If ``video_ids`` is empty.
            VideoNotFoundError: If any selected video is not in the catalog.
        """
        identity = self._require_identity(identity)
        selection = list(dict.fromkeys(v for v in video_ids if v))
        if not selection:
            raise EmptySelectionError("Select at least one video for your playlist.")

        snapshots = tuple(PlaylistVideo.from_video(self.get_video(vid)) for vid in selection)
        playlist = Playlist(
            user_id=identity.user_id,
            user_email=identity.email,
            videos=snapshots,
            unlocked=1,
        )
        self._playlists.save(playlist)
        logger.info("Playlist created: %s (%d videos) for %s",
                    playlist.playlist_id, len(snapshots), identity.email or identity.user_id)

        if identity.email:
            self._notify(
                identity.email,
                PLAYLIST_READY_SUBJECT,
                playlist_ready_html(self.playlist_url(playlist.playlist_id)),
            )
        return playlist

    @staticmethod
    def playlist_url(playlist_id: str) -> str:
        return f"{settings.portal_url.rstrip('/')}/playlist/{playlist_id}"

    def get_playlist(self, identity: Identity | None, playlist_id: str) -> Playlist:
        """Load a playlist owned by the caller (admins may load any).

        Raises:
            PlaylistNotFoundError: If the ID does not resolve.
            NotAuthorizedError: If the caller neither owns it nor is an admin.
        """
        identity = self._require_identity(identity)
        playlist = self._playlists.get(playlist_id)
        if playlist is None:
            raise PlaylistNotFoundError(f"Playlist not found: {playlist_id}")
        if playlist.user_id != identity.user_id and not self._is_admin(identity):
            raise NotAuthorizedError("This playlist belongs to another user.")
        return playlist

    def playlist_for_user(self, identity: Identity | None) -> Playlist:
        """The caller's most recent playlist."""
        identity = self._require_identity(identity)
        playlists = self._playlists.find_by_user(identity.user_id)
        if not playlists:
            raise PlaylistNotFoundError("No playlist found for user.")
        return playlists[0]

    def open_session(self, identity: Identity | None, playlist_id: str | None = None) -> PlaybackSession:
        """Open a playback session on a playlist (the caller's latest by default)."""
        identity = self._require_identity(identity)
        playlist = (
            self.get_playlist(identity, playlist_id)
            if playlist_id
            else self.playlist_for_user(identity)
        )
        return PlaybackSession(
            playlist=playlist,
            identity=identity,
            playlists=self._playlists,
            events=self._events,
            users=self._users,
        )

    # -- recommendations and feedback ---------------------------------------

    def submit_recommendation(
        self, identity: Identity | None, playlist_id: str, text: str
    ) -> Recommendation:
        """Store a content suggestion for future playlists."""
        return self._submit_note(
            identity, playlist_id, text, RECOMMENDATION,
            "Please share your suggestions before submitting.",
        )

    def list_recommendations(self, identity: Identity | None) -> list[Recommendation]:
        self._require_admin(identity)
        if self._recommendations is None:
            return []
        return self._recommendations.list_all(kind=RECOMMENDATION)

    def submit_feedback(
        self, identity: Identity | None, playlist_id: str, text: str
    ) -> Recommendation:
        """Store the user's feedback on the portal and their playlist.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
            InvalidInputError: If ``text`` is blank.
        """
        return self._submit_note(
            identity, playlist_id, text, FEEDBACK,
            "Please enter your feedback before submitting.",
        )

    def list_feedback(self, identity: Identity | None) -> list[Recommendation]:
        """All feedback, newest first (admin only)."""
        self._require_admin(identity)
        if self._recommendations is None:
            return []
        return self._recommendations.list_all(kind=FEEDBACK)

    def _submit_note(
        self, identity: Identity | None, playlist_id: str, text: str, kind: str, blank_message: str
    ) -> Recommendation:
        identity = self._require_identity(identity)
        if not text.strip():
            raise InvalidInputError(blank_message)
        if self._recommendations is None:
            raise RuntimeError("Recommendations require a recommendation repository.")
        note = Recommendation(
            user_id=identity.user_id,
            user_email=identity.email,
            playlist_id=playlist_id,
            text=text.strip(),
            kind=kind,
        )
        self._recommendations.save(note)
        logger.info("Note (%s) received from %s", kind, identity.email or identity.user_id)
        return note

    # -- analytics --------------------------------------------------------

    def analytics(
        self,
        identity: Identity | None,
        *,
        policy: ViewPolicy = ViewPolicy.ALL_EVENTS,
        since: datetime | None = None,
        now: datetime | None = None,
    ) -> AnalyticsSummary:
        """Aggregate the watch log for the admin analytics view.

        All-or-nothing: if any input cannot be read no partial result
        is returned.

        Raises:
            AuthorizationError: If the caller is not an admin.
            AnalyticsUnavailableError: If the log, catalog or directory read fails.
        """
        try:
            self._require_admin(identity)
            events = self._events.list_all()
            videos = self._videos.list_all()
            users = self._users.list_all()
        except StorageError as e:
            logger.error("Analytics read failed: %s", e)
            raise AnalyticsUnavailableError("Failed to fetch analytics.") from e
        return summarize(events, videos, users, policy=policy, since=since, now=now)

    def list_events(
        self,
        identity: Identity | None,
        user_id: str | None = None,
        video_id: str | None = None,
        limit: int | None = None,
    ) -> list[WatchEvent]:
        """Watch log entries, newest first."""
        self._require_admin(identity)
        events = self._events.list_all(user_id=user_id, video_id=video_id)
        events.reverse()
        return events[:limit] if limit is not None else events

    # -- notifications ----------------------------------------------------

    def _notify(self, to: str, subject: str, html: str) -> bool:
        """Send an e-mail; on failure queue it for a later retry."""
        try:
            self._email.send(to, subject, html)
            return True
        except EmailError as e:
            logger.warning("Email to %s failed, queued for retry: %s", to, e)
            if self._outbox is None:
                return False
            notification = Notification(to=to, subject=subject, html=html, attempts=1, last_error=str(e))
            try:
                self._outbox.add(notification)
            except StorageError as se:
                logger.error("Could not queue email to %s: %s", to, se)
            return False

    def pending_notifications(self, identity: Identity | None) -> list[Notification]:
        self._require_admin(identity)
        return self._outbox.pending() if self._outbox else []

    def retry_notifications(self, identity: Identity | None) -> tuple[int, int]:
        """Re-send every queued e-mail once.

        Returns:
            Tuple of (delivered, still pending).
        """
        self._require_admin(identity)
        if self._outbox is None:
            return 0, 0
        delivered = failed = 0
        for n in self._outbox.pending():
            try:
                self._email.send(n.to, n.subject, n.html)
            except EmailError as e:
                self._outbox.record_attempt(n.notification_id, delivered=False, error=str(e))
                failed += 1
            else:
                self._outbox.record_attempt(n.notification_id, delivered=True)
                delivered += 1
        logger.info("Notification retry: %d delivered, %d pending", delivered, failed)
        return delivered, failed
