"""FastMCP server: a thin wrapper exposing PortalService as MCP tools.

Callers identify themselves by e-mail on every tool call; the auth
provider in front of the server is trusted to have verified it.
"""

from collections import OrderedDict
from datetime import datetime, timedelta, timezone

from fastmcp import FastMCP

from vidgate.analytics import ViewPolicy
from vidgate.config import settings
from vidgate.models import Identity, Playlist, Video
from vidgate.notify import EmailSender
from vidgate.playback import PlaybackSession, UnlockPersistError
from vidgate.service import (
    AnalyticsUnavailableError,
    AuthorizationError,
    InvalidInputError,
    PlaylistNotFoundError,
    PortalService,
    VideoAlreadyExistsError,
    VideoNotFoundError,
)
from vidgate.storage.repository import StorageError
from vidgate.storage.sqlite import SQLiteStore


mcp = FastMCP(
    name="vidgate",
    instructions=(
        "vidgate serves video playlists that unlock one video at a time. "
        "Use list_videos and create_playlist to build a playlist, then "
        "select_video, play_video, report_progress, pause_video and end_video "
        "to drive playback. Users can leave feedback with submit_feedback; "
        "admins can call get_analytics and list_feedback."
    ),
)

_ERRORS = (
    AuthorizationError,
    VideoNotFoundError,
    VideoAlreadyExistsError,
    PlaylistNotFoundError,
    InvalidInputError,
    AnalyticsUnavailableError,
    UnlockPersistError,
    StorageError,
)

_service: PortalService | None = None
# Open sessions by (user_id, playlist_id), least recently used first
_sessions: OrderedDict[tuple[str, str], PlaybackSession] = OrderedDict()
_MAX_SESSIONS = 256


def _get_service() -> PortalService:
    """Lazy-initialise the service singleton with default dependencies."""
    global _service
    if _service is None:
        settings.ensure_dirs()
        store = SQLiteStore()
        _service = PortalService(
            videos=store.videos,
            users=store.users,
            playlists=store.playlists,
            events=store.events,
            recommendations=store.recommendations,
            outbox=store.outbox,
            email_sender=EmailSender(),
        )
    return _service


def _identity(email: str) -> Identity:
    user = _get_service().register_user(email)
    return Identity(user_id=user.user_id, email=user.email)


def _session(email: str, playlist_id: str | None) -> PlaybackSession:
    """Return the open session for this user and playlist, opening it if needed."""
    svc = _get_service()
    identity = _identity(email)
    if playlist_id is None:
        playlist_id = svc.playlist_for_user(identity).playlist_id
    key = (identity.user_id, playlist_id)
    if key in _sessions:
        _sessions.move_to_end(key)
        return _sessions[key]
    session = svc.open_session(identity, playlist_id)
    _sessions[key] = session
    while len(_sessions) > _MAX_SESSIONS:
        _sessions.popitem(last=False)
    return session


@mcp.tool(annotations={"readOnlyHint": True})
def list_videos() -> list[dict]:
    """List every video in the catalog."""
    return [_video_summary(v) for v in _get_service().list_videos()]


@mcp.tool(annotations={"readOnlyHint": True})
def get_video(video_id: str) -> dict:
    """Get full details for a catalog video.

    Args:
        video_id: Catalog video ID.
    """
    try:
        return _get_service().get_video(video_id).model_dump(mode="json")
    except VideoNotFoundError as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False, "idempotentHint": False})
def add_video(
    admin_email: str,
    title: str,
    public_id: str = "",
    category: str = "",
    description: str = "",
    tags: list[str] | None = None,
) -> dict:
    """Register an uploaded video in the catalog (admin only).

    Args:
        admin_email: E-mail of the signed-in admin.
        title: Video title.
        public_id: Media host public ID; playback URLs are derived from it.
        category: Category, "Uncategorized" when empty.
        description: Optional description.
        tags: Optional tags.
    """
    try:
        video = _get_service().add_video(
            _identity(admin_email), title,
            public_id=public_id, category=category, description=description, tags=tags,
        )
        return _video_summary(video)
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False, "idempotentHint": False})
def create_playlist(user_email: str, video_ids: list[str]) -> dict:
    """Create a playlist from selected videos. Only the first starts unlocked.

    Args:
        user_email: E-mail of the signed-in user.
        video_ids: Catalog video IDs in playback order.
    """
    try:
        svc = _get_service()
        playlist = svc.create_playlist(_identity(user_email), video_ids)
        return {**_playlist_summary(playlist), "url": svc.playlist_url(playlist.playlist_id)}
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": True})
def get_playlist(user_email: str, playlist_id: str | None = None) -> dict:
    """Show a playlist with the lock state of each video.

    Args:
        user_email: E-mail of the signed-in user.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        return _session_summary(_session(user_email, playlist_id))
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def select_video(user_email: str, index: int, playlist_id: str | None = None) -> dict:
    """Switch to the video at ``index`` (0-based). Locked videos are refused.

    Args:
        user_email: E-mail of the signed-in user.
        index: Position of the video in the playlist.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        session = _session(user_email, playlist_id)
        if not session.switch_video(index):
            return {"error": f"Video {index} is locked. Finish the previous videos first."}
        return _session_summary(session)
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def play_video(user_email: str, position: float = 0.0, playlist_id: str | None = None) -> dict:
    """Report that playback of the active video started or resumed.

    Args:
        user_email: E-mail of the signed-in user.
        position: Playback position in seconds.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        session = _session(user_email, playlist_id)
        session.play(position)
        return _session_summary(session)
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def report_progress(
    user_email: str, position: float, duration: float, playlist_id: str | None = None
) -> dict:
    """Report the player position. Forward seeks are rejected.

    The returned ``position`` is where the player must be; it differs from
    the reported one when a seek was suppressed.

    Args:
        user_email: E-mail of the signed-in user.
        position: Current playback position in seconds.
        duration: Total length of the video in seconds.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        session = _session(user_email, playlist_id)
        accepted = session.progress_to(position, duration)
        return {
            "position": accepted,
            "seek_rejected": accepted != max(position, 0.0),
            "progress": session.progress,
        }
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def pause_video(user_email: str, position: float, playlist_id: str | None = None) -> dict:
    """Report that playback paused.

    Args:
        user_email: E-mail of the signed-in user.
        position: Playback position in seconds.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        session = _session(user_email, playlist_id)
        event = session.pause(position)
        return {"watch_duration": event.watch_duration if event else 0.0, **_session_summary(session)}
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False, "idempotentHint": False})
def end_video(user_email: str, position: float, playlist_id: str | None = None) -> dict:
    """Report that the active video played to its end; unlocks the next one.

    Args:
        user_email: E-mail of the signed-in user.
        position: Final playback position in seconds.
        playlist_id: Playlist ID; defaults to the user's latest playlist.
    """
    try:
        session = _session(user_email, playlist_id)
        before = session.state.unlocked
        state = session.end(position)
        return {"newly_unlocked": state.unlocked > before, **_session_summary(session)}
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def submit_recommendation(user_email: str, playlist_id: str, text: str) -> dict:
    """Suggest topics for future playlists.

    Args:
        user_email: E-mail of the signed-in user.
        playlist_id: Playlist the suggestion relates to.
        text: The suggestion.
    """
    try:
        rec = _get_service().submit_recommendation(_identity(user_email), playlist_id, text)
        return {"status": "received", "recommendation_id": rec.recommendation_id}
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": False})
def submit_feedback(user_email: str, playlist_id: str, text: str) -> dict:
    """Leave feedback on the portal and a playlist.

    Args:
        user_email: E-mail of the signed-in user.
        playlist_id: Playlist the feedback relates to.
        text: The feedback.
    """
    try:
        note = _get_service().submit_feedback(_identity(user_email), playlist_id, text)
        return {"status": "received", "feedback_id": note.recommendation_id}
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": True})
def list_feedback(admin_email: str) -> list[dict] | dict:
    """List received feedback, newest first (admin only).

    Args:
        admin_email: E-mail of the signed-in admin.
    """
    try:
        received = _get_service().list_feedback(_identity(admin_email))
        return [
            {
                "user_id": f.user_id,
                "user_email": f.user_email,
                "playlist_id": f.playlist_id,
                "feedback": f.text,
                "created_at": f.created_at.isoformat(),
            }
            for f in received
        ]
    except _ERRORS as e:
        return {"error": str(e)}


@mcp.tool(annotations={"readOnlyHint": True})
def get_analytics(admin_email: str, play_events_only: bool = False, days: int | None = None) -> dict:
    """Per-video, per-user and global watch statistics (admin only).

    Args:
        admin_email: E-mail of the signed-in admin.
        play_events_only: Count only play events as views.
        days: Only consider events from the last N days.
    """
    try:
        since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
        policy = ViewPolicy.PLAY_EVENTS if play_events_only else ViewPolicy.ALL_EVENTS
        summary = _get_service().analytics(_identity(admin_email), policy=policy, since=since)
        return summary.model_dump(mode="json")
    except _ERRORS as e:
        return {"error": str(e)}


def _video_summary(video: Video) -> dict:
    """Create a concise summary dict for tool responses."""
    return {
        "video_id": video.video_id,
        "title": video.title,
        "category": video.category,
        "duration": video.duration,
        "url": video.video_url,
        "tags": video.tags,
    }


def _playlist_summary(playlist: Playlist) -> dict:
    return {
        "playlist_id": playlist.playlist_id,
        "unlocked": playlist.unlocked,
        "videos": [{"video_id": v.video_id, "title": v.title} for v in playlist.videos],
    }


def _session_summary(session: PlaybackSession) -> dict:
    pl = session.playlist
    return {
        "playlist_id": pl.playlist_id,
        "unlocked": session.state.unlocked,
        "current_index": session.current_index,
        "progress": session.progress,
        "videos": [
            {"video_id": v.video_id, "title": v.title, "state": state.value, "url": v.video_url}
            for v, state in zip(pl.videos, session.video_states())
        ],
    }
