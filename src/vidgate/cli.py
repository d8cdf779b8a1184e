"""CLI interface: a thin wrapper over PortalService and the FastMCP server."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import typer

from vidgate.analytics import ViewPolicy
from vidgate.config import settings
from vidgate.models import Identity
from vidgate.notify import EmailSender
from vidgate.report import ReportBuilder, format_duration
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
from vidgate.unlock import VideoState


app = typer.Typer(
    name="vidgate",
    help="Video portal with sequentially unlocked playlists and watch analytics.",
    no_args_is_help=True,
)

# Errors that are reported to the user instead of crashing the command
_USER_ERRORS = (
    AnalyticsUnavailableError,
    AuthorizationError,
    VideoNotFoundError,
    PlaylistNotFoundError,
    InvalidInputError,
    StorageError,
)


def _get_service() -> PortalService:
    """Create a service instance with default dependencies."""
    settings.ensure_dirs()
    store = SQLiteStore()
    return PortalService(
        videos=store.videos,
        users=store.users,
        playlists=store.playlists,
        events=store.events,
        recommendations=store.recommendations,
        outbox=store.outbox,
        email_sender=EmailSender(),
    )


def _sign_in(svc: PortalService, email: str) -> Identity:
    """Resolve ``--as EMAIL`` to an identity, registering first-time users."""
    try:
        user = svc.register_user(email)
    except InvalidInputError as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    return Identity(user_id=user.user_id, email=user.email)


def _fail(e: Exception) -> None:
    typer.echo(f"❌ {e}", err=True)
    raise typer.Exit(code=1)


AS_OPTION = typer.Option(..., "--as", help="E-mail of the signed-in user.")


@app.command()
def register(
    email: str = typer.Argument(..., help="E-mail address of the user."),
    admin: bool | None = typer.Option(None, "--admin/--no-admin", help="Grant or deny admin rights."),
) -> None:
    """Add a user to the directory."""
    svc = _get_service()
    try:
        user = svc.register_user(email, is_admin=admin)
    except _USER_ERRORS as e:
        _fail(e)
    role = "admin" if user.is_admin else "viewer"
    typer.echo(f"✅ {user.email} ({role})  ID: {user.user_id}")


@app.command()
def add(
    title: str = typer.Argument(..., help="Video title."),
    as_: str = AS_OPTION,
    public_id: str = typer.Option("", "--public-id", "-p", help="Media host public ID."),
    category: str = typer.Option("", "--category", "-c", help="Category."),
    description: str = typer.Option("", "--description", "-d", help="Description."),
    duration: str = typer.Option("", "--duration", help="Display duration, e.g. 12:30."),
    tags: list[str] | None = typer.Option(None, "--tag", "-t", help="Tag (repeatable)."),
    video_url: str = typer.Option("", "--url", help="Playback URL, if not derived from the public ID."),
) -> None:
    """Register an uploaded video in the catalog (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        video = svc.add_video(
            identity, title,
            public_id=public_id, category=category, description=description,
            duration=duration, tags=tags or [], video_url=video_url,
        )
    except VideoAlreadyExistsError as e:
        typer.echo(f"⚠️  {e}", err=True)
        raise typer.Exit(code=1)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo(f"✅ Added: {video.title}")
    typer.echo(f"   ID:       {video.video_id}")
    typer.echo(f"   Category: {video.category}")
    typer.echo(f"   URL:      {video.video_url or '(none)'}")


@app.command(name="list")
def list_videos() -> None:
    """List all videos in the catalog."""
    svc = _get_service()
    videos = svc.list_videos()
    if not videos:
        typer.echo("Catalog is empty. Use 'vidgate add <title>' to add a video.")
        return
    for i, v in enumerate(videos, 1):
        tags = f" [{', '.join(v.tags)}]" if v.tags else ""
        typer.echo(f"  {i}. {v.video_id}  {v.duration:>6s}  {v.category:<16s}  {v.title}{tags}")


@app.command()
def info(video_id: str = typer.Argument(..., help="Video ID.")) -> None:
    """Show full details for a video."""
    svc = _get_service()
    try:
        video = svc.get_video(video_id)
    except VideoNotFoundError as e:
        _fail(e)
    typer.echo(f"Title:       {video.title}")
    typer.echo(f"Category:    {video.category}")
    typer.echo(f"Duration:    {video.duration or '(unknown)'}")
    typer.echo(f"URL:         {video.video_url}")
    typer.echo(f"Thumbnail:   {video.thumbnail_url}")
    typer.echo(f"Tags:        {', '.join(video.tags) or '(none)'}")
    typer.echo(f"Added:       {video.created_at}")
    if video.description:
        typer.echo(f"\n{video.description}")


@app.command()
def remove(
    video_id: str = typer.Argument(..., help="Video ID."),
    as_: str = AS_OPTION,
) -> None:
    """Remove a video from the catalog (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        svc.remove_video(identity, video_id)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo(f"🗑️  Removed: {video_id}")


@app.command()
def create_playlist(
    video_ids: list[str] = typer.Argument(..., help="Video IDs in playback order."),
    as_: str = AS_OPTION,
) -> None:
    """Create a playlist for the signed-in user."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        playlist = svc.create_playlist(identity, video_ids)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo(f"🎉 Playlist created with {playlist.video_count} video(s)")
    typer.echo(f"   ID:   {playlist.playlist_id}")
    typer.echo(f"   Link: {svc.playlist_url(playlist.playlist_id)}")


@app.command()
def playlist(
    playlist_id: str | None = typer.Argument(None, help="Playlist ID. Defaults to your latest."),
    as_: str = AS_OPTION,
) -> None:
    """Show a playlist and which of its videos are unlocked."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        session = svc.open_session(identity, playlist_id)
    except _USER_ERRORS as e:
        _fail(e)
    pl = session.playlist
    typer.echo(f"Playlist {pl.playlist_id}  ({pl.unlocked}/{pl.video_count} unlocked)")
    for i, (video, state) in enumerate(zip(pl.videos, session.video_states()), 1):
        icon = "▶️ " if state is VideoState.PLAYABLE else "🔒"
        typer.echo(f"  {icon} {i}. {video.title}")


@app.command()
def recommend(
    playlist_id: str = typer.Argument(..., help="Playlist the suggestion relates to."),
    text: str = typer.Argument(..., help="Topics you would like to see next."),
    as_: str = AS_OPTION,
) -> None:
    """Suggest content for future playlists."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        svc.submit_recommendation(identity, playlist_id, text)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo("✨ Thank you! Your suggestions will help us improve our content.")


@app.command()
def feedback(
    playlist_id: str = typer.Argument(..., help="Playlist the feedback relates to."),
    text: str = typer.Argument(..., help="Your feedback."),
    as_: str = AS_OPTION,
) -> None:
    """Tell us what you think of the portal."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        svc.submit_feedback(identity, playlist_id, text)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo("✅ Thank you for your feedback!")


@app.command()
def list_feedback(as_: str = AS_OPTION) -> None:
    """Show received feedback, newest first (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        received = svc.list_feedback(identity)
    except _USER_ERRORS as e:
        _fail(e)
    if not received:
        typer.echo("No feedback received yet.")
        return
    for f in received:
        typer.echo(f"  {f.created_at:%Y-%m-%d %H:%M}  {f.user_email or f.user_id}  [{f.playlist_id}]")
        typer.echo(f"    {f.text}")


@app.command()
def analytics(
    as_: str = AS_OPTION,
    policy: ViewPolicy = typer.Option(ViewPolicy.ALL_EVENTS, "--views", help="Count every event or only plays as views."),
    days: int | None = typer.Option(None, "--days", help="Only consider the last N days."),
    fmt: str = typer.Option("markdown", "--format", help="Output format: markdown or html."),
    output: str | None = typer.Option(None, "--output", "-o", help="Save report to file."),
) -> None:
    """Show watch analytics (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    since = datetime.now(timezone.utc) - timedelta(days=days) if days else None
    try:
        summary = svc.analytics(identity, policy=policy, since=since)
    except _USER_ERRORS as e:
        _fail(e)

    builder = ReportBuilder()
    rendered = builder.to_html(summary) if fmt == "html" else builder.to_markdown(summary)
    if output:
        Path(output).write_text(rendered, encoding="utf-8")
        typer.echo(f"✅ Report saved: {output}")
    else:
        typer.echo(rendered)


@app.command()
def events(
    as_: str = AS_OPTION,
    user: str | None = typer.Option(None, "--user", "-u", help="Filter by user ID."),
    video: str | None = typer.Option(None, "--video", "-v", help="Filter by video ID."),
    limit: int = typer.Option(50, "--limit", "-n", help="Maximum events."),
) -> None:
    """List the most recent watch events (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        log = svc.list_events(identity, user_id=user, video_id=video, limit=limit)
    except _USER_ERRORS as e:
        _fail(e)
    if not log:
        typer.echo("No watch events yet.")
        return
    for e in log:
        flags = "".join(
            mark for mark, on in (("✓", e.completed), ("↷", e.skipped), ("↺", e.rewatched)) if on
        )
        typer.echo(
            f"  {e.watched_at:%Y-%m-%d %H:%M:%S}  {e.event_type.value:<13s} "
            f"{format_duration(e.watch_duration):>7s}  {e.user_email:<24s}  {e.video_title} {flags}"
        )


@app.command()
def retry_notifications(as_: str = AS_OPTION) -> None:
    """Re-send e-mails that could not be delivered (admin)."""
    svc = _get_service()
    identity = _sign_in(svc, as_)
    try:
        delivered, pending = svc.retry_notifications(identity)
    except _USER_ERRORS as e:
        _fail(e)
    typer.echo(f"📧 Delivered: {delivered}  Still pending: {pending}")


@app.command()
def serve(
    stdio: bool = typer.Option(False, "--stdio", help="Use stdio transport instead of HTTP."),
    host: str = typer.Option(settings.host, "--host", help="Host to bind to."),
    port: int = typer.Option(settings.port, "--port", help="Port to bind to."),
) -> None:
    """Start the vidgate MCP server."""
    from vidgate.server import mcp

    if stdio:
        typer.echo("Starting vidgate MCP server (stdio)...", err=True)
        mcp.run(transport="stdio")
    else:
        typer.echo(f"Starting vidgate MCP server on http://{host}:{port}/mcp")
        mcp.run(transport="streamable-http", host=host, port=port)
