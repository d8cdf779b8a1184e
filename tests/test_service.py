# tests/test_service.py
"""Tests for PortalService orchestration and error taxonomy."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from vidgate.config import settings
from vidgate.models import FEEDBACK, Identity
from vidgate.notify import PLAYLIST_READY_SUBJECT, EmailError
from vidgate.service import (
    AnalyticsUnavailableError,
    EmptySelectionError,
    InvalidInputError,
    NotAuthenticatedError,
    NotAuthorizedError,
    PlaylistNotFoundError,
    VideoAlreadyExistsError,
    VideoNotFoundError,
)
from vidgate.storage.repository import StorageError


class TestUsers:
    def test_admin_marker_in_email(self, service):
        assert service.register_user("team-admin@example.com").is_admin
        assert not service.register_user("someone@example.com").is_admin

    def test_explicit_flag_wins(self, service):
        assert not service.register_user("admin2@example.com", is_admin=False).is_admin
        assert service.register_user("boss@example.com", is_admin=True).is_admin

    def test_register_is_idempotent(self, service):
        first = service.register_user("viewer@example.com")
        again = service.register_user("Viewer@Example.com")
        assert again.user_id == first.user_id

    def test_blank_email_rejected(self, service):
        with pytest.raises(InvalidInputError):
            service.register_user("   ")


class TestCatalog:
    def test_add_video_derives_media_urls(self, service, admin):
        video = service.add_video(admin, "Security 101", public_id="sec/101", category="Compliance")
        base = settings.media_base_url.rstrip("/")
        assert video.video_url == f"{base}/sec/101.mp4"
        assert video.thumbnail_url == f"{base}/sec/101.jpg"
        assert service.get_video(video.video_id).title == "Security 101"

    def test_add_video_explicit_url_kept(self, service, admin):
        video = service.add_video(admin, "Hosted", video_url="https://cdn.example.com/x.mp4")
        assert video.video_url == "https://cdn.example.com/x.mp4"
        assert video.thumbnail_url == ""

    def test_add_video_defaults(self, service, admin):
        video = service.add_video(admin, "", video_id="abcdef123", tags=["a", "a", " b "])
        assert video.title == "Video abcdef"
        assert video.category == "Uncategorized"
        assert video.tags == ["a", "b"]

    def test_add_video_requires_admin(self, service, viewer):
        with pytest.raises(NotAuthorizedError):
            service.add_video(viewer, "Nope")
        assert service.list_videos() == []

    def test_add_video_requires_identity(self, service):
        with pytest.raises(NotAuthenticatedError):
            service.add_video(None, "Nope")

    def test_duplicate_video_id(self, service, admin):
        service.add_video(admin, "One", video_id="same")
        with pytest.raises(VideoAlreadyExistsError):
            service.add_video(admin, "Two", video_id="same")

    def test_get_missing_video(self, service):
        with pytest.raises(VideoNotFoundError):
            service.get_video("missing")

    def test_remove_video(self, service, admin, catalog):
        service.remove_video(admin, "vid-tools")
        assert [v.video_id for v in service.list_videos()] == ["vid-safety", "vid-intro"]
        with pytest.raises(VideoNotFoundError):
            service.remove_video(admin, "vid-tools")


class TestCreatePlaylist:
    def test_only_first_video_unlocked(self, service, viewer, catalog):
        playlist = service.create_playlist(viewer, ["vid-safety", "vid-intro"])
        assert playlist.unlocked == 1
        assert [v.video_id for v in playlist.videos] == ["vid-safety", "vid-intro"]
        assert playlist.user_id == viewer.user_id

    def test_duplicates_dropped(self, service, viewer, catalog):
        playlist = service.create_playlist(viewer, ["vid-intro", "vid-tools", "vid-intro"])
        assert [v.video_id for v in playlist.videos] == ["vid-intro", "vid-tools"]

    def test_empty_selection_rejected_before_write(self, service, viewer, store):
        with pytest.raises(EmptySelectionError):
            service.create_playlist(viewer, [])
        assert store.playlists.find_by_user(viewer.user_id) == []

    def test_unknown_video_rejected_before_write(self, service, viewer, catalog, store, mock_email):
        with pytest.raises(VideoNotFoundError):
            service.create_playlist(viewer, ["vid-intro", "ghost"])
        assert store.playlists.find_by_user(viewer.user_id) == []
        mock_email.send.assert_not_called()

    def test_requires_identity(self, service, catalog):
        with pytest.raises(NotAuthenticatedError):
            service.create_playlist(Identity(user_id=""), ["vid-intro"])

    def test_sends_ready_email(self, service, viewer, catalog, mock_email):
        playlist = service.create_playlist(viewer, ["vid-intro"])
        mock_email.send.assert_called_once()
        to, subject, html = mock_email.send.call_args.args
        assert to == viewer.email
        assert subject == PLAYLIST_READY_SUBJECT
        assert service.playlist_url(playlist.playlist_id) in html

    def test_email_failure_queues_notification(self, service, viewer, admin, catalog, store, mock_email):
        mock_email.send.side_effect = EmailError("Unable to connect to email server. Try again later.")
        playlist = service.create_playlist(viewer, ["vid-intro"])
        assert store.playlists.get(playlist.playlist_id) is not None

        pending = service.pending_notifications(admin)
        assert len(pending) == 1
        assert pending[0].to == viewer.email
        assert pending[0].attempts == 1
        assert "Unable to connect" in pending[0].last_error

    def test_snapshot_survives_catalog_edit(self, service, viewer, catalog, store):
        playlist = service.create_playlist(viewer, ["vid-intro"])
        store.videos.save(catalog[0].model_copy(update={"title": "Renamed"}))
        store.videos.delete("vid-intro")
        loaded = service.get_playlist(viewer, playlist.playlist_id)
        assert loaded.videos[0].title == "Welcome to the Team"


class TestNotifications:
    def test_retry_delivers_pending(self, service, viewer, admin, catalog, mock_email):
        mock_email.send.side_effect = EmailError("down")
        service.create_playlist(viewer, ["vid-intro"])
        service.create_playlist(viewer, ["vid-tools"])

        mock_email.send.side_effect = None
        assert service.retry_notifications(admin) == (2, 0)
        assert service.pending_notifications(admin) == []

    def test_retry_keeps_failures_pending(self, service, viewer, admin, catalog, mock_email):
        mock_email.send.side_effect = EmailError("down")
        service.create_playlist(viewer, ["vid-intro"])
        assert service.retry_notifications(admin) == (0, 1)
        pending = service.pending_notifications(admin)
        assert pending[0].attempts == 2

    def test_retry_requires_admin(self, service, viewer):
        with pytest.raises(NotAuthorizedError):
            service.retry_notifications(viewer)


class TestPlaylistLookup:
    def test_owner_can_load(self, service, viewer, playlist):
        assert service.get_playlist(viewer, playlist.playlist_id).playlist_id == playlist.playlist_id

    def test_admin_can_load_any(self, service, admin, playlist):
        assert service.get_playlist(admin, playlist.playlist_id).user_id != admin.user_id

    def test_other_user_refused(self, service, playlist):
        user = service.register_user("nosy@example.com")
        with pytest.raises(NotAuthorizedError):
            service.get_playlist(Identity(user_id=user.user_id, email=user.email), playlist.playlist_id)

    def test_missing_playlist(self, service, viewer):
        with pytest.raises(PlaylistNotFoundError):
            service.get_playlist(viewer, "missing")

    def test_playlist_for_user_without_any(self, service, viewer):
        with pytest.raises(PlaylistNotFoundError, match="No playlist found for user."):
            service.playlist_for_user(viewer)

    def test_open_session_defaults_to_latest(self, service, viewer, playlist):
        session = service.open_session(viewer)
        assert session.playlist.playlist_id == playlist.playlist_id

    def test_reopened_session_keeps_progress(self, service, viewer, playlist, session, watch):
        watch(session, 2)
        reopened = service.open_session(viewer, playlist.playlist_id)
        assert reopened.state.unlocked == 2


class TestRecommendations:
    def test_submit_and_list(self, service, viewer, admin, playlist):
        service.submit_recommendation(viewer, playlist.playlist_id, "  More on security  ")
        recs = service.list_recommendations(admin)
        assert [r.text for r in recs] == ["More on security"]
        assert recs[0].user_email == viewer.email

    def test_blank_text_rejected(self, service, viewer, playlist):
        with pytest.raises(InvalidInputError):
            service.submit_recommendation(viewer, playlist.playlist_id, "   ")

    def test_list_requires_admin(self, service, viewer):
        with pytest.raises(NotAuthorizedError):
            service.list_recommendations(viewer)


class TestFeedback:
    def test_submit_and_list(self, service, viewer, admin, playlist):
        service.submit_feedback(viewer, playlist.playlist_id, "The videos were clear")
        service.submit_feedback(viewer, playlist.playlist_id, "  Audio was quiet  ")
        feedback = service.list_feedback(admin)
        assert sorted(f.text for f in feedback) == ["Audio was quiet", "The videos were clear"]
        assert all(f.kind == FEEDBACK for f in feedback)
        assert feedback[0].user_email == viewer.email
        assert feedback[0].playlist_id == playlist.playlist_id

    def test_blank_text_rejected(self, service, viewer, playlist, store):
        with pytest.raises(InvalidInputError, match="Please enter your feedback before submitting."):
            service.submit_feedback(viewer, playlist.playlist_id, "  ")
        assert store.recommendations.list_all() == []

    def test_requires_identity(self, service, playlist):
        with pytest.raises(NotAuthenticatedError):
            service.submit_feedback(None, playlist.playlist_id, "Nice")

    def test_list_requires_admin(self, service, viewer):
        with pytest.raises(NotAuthorizedError):
            service.list_feedback(viewer)

    def test_kept_apart_from_recommendations(self, service, viewer, admin, playlist):
        service.submit_feedback(viewer, playlist.playlist_id, "Loved it")
        service.submit_recommendation(viewer, playlist.playlist_id, "More security")
        assert [f.text for f in service.list_feedback(admin)] == ["Loved it"]
        assert [r.text for r in service.list_recommendations(admin)] == ["More security"]


class TestAnalytics:
    def test_requires_admin(self, service, viewer):
        with pytest.raises(NotAuthorizedError):
            service.analytics(viewer)

    def test_requires_identity(self, service):
        with pytest.raises(NotAuthenticatedError):
            service.analytics(None)

    def test_reflects_playback(self, service, admin, viewer, session, watch):
        watch(session, 4)
        summary = service.analytics(admin)
        intro = next(v for v in summary.videos if v.video_id == "vid-intro")
        assert intro.unique_viewers == 1
        assert intro.total_watch_time == 4.0
        assert intro.completion_rate > 0
        tools = next(v for v in summary.videos if v.video_id == "vid-tools")
        assert tools.total_views == 0
        assert summary.total_users == 2
        assert summary.total_videos == 3

    def test_storage_failure_is_all_or_nothing(self, service, admin, store):
        with patch.object(store.events, "list_all", side_effect=StorageError("unreachable")):
            with pytest.raises(AnalyticsUnavailableError, match="Failed to fetch analytics."):
                service.analytics(admin)

    def test_directory_failure_during_admin_check(self, service, admin, store):
        with patch.object(store.users, "get", side_effect=StorageError("unreachable")):
            with pytest.raises(AnalyticsUnavailableError, match="Failed to fetch analytics."):
                service.analytics(admin)

    def test_fixed_now_is_reproducible(self, service, admin, catalog):
        now = datetime(2025, 7, 1, tzinfo=timezone.utc)
        first = service.analytics(admin, now=now)
        second = service.analytics(admin, now=now)
        assert first.model_dump() == second.model_dump()

    def test_list_events_newest_first(self, service, admin, viewer, session):
        session.play(0.0)
        session.progress_to(1.0, 10)
        session.pause(1.0)
        log = service.list_events(admin)
        assert [e.event_type.value for e in log] == ["pause", "play"]
        assert len(service.list_events(admin, limit=1)) == 1
        assert service.list_events(admin, user_id=admin.user_id) == []

    def test_list_events_zero_limit(self, service, admin, viewer, session):
        session.play(0.0)
        assert service.list_events(admin, limit=0) == []
        assert len(service.list_events(admin)) == 1
