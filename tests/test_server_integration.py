# tests/test_server_integration.py
"""MCP server integration tests: call the tool functions directly."""

from unittest.mock import patch

import pytest

import vidgate.server as server_mod
from vidgate.storage.repository import StorageError

ADMIN = "admin@example.com"
VIEWER = "viewer@example.com"


def _call(tool, *args, **kwargs):
    """Invoke a registered tool's underlying function."""
    return getattr(tool, "fn", tool)(*args, **kwargs)


@pytest.fixture
def server_service(service):
    """Patch the server's _get_service to use the in-memory service."""
    with patch.object(server_mod, "_service", service):
        with patch.object(server_mod, "_get_service", return_value=service):
            with patch.dict(server_mod._sessions, clear=True):
                yield service


@pytest.fixture
def created(server_service, catalog):
    """A viewer playlist over the whole catalog, created through the tool."""
    return _call(server_mod.create_playlist, VIEWER, [v.video_id for v in catalog])


def _play_to_end(length: int, playlist_id=None):
    _call(server_mod.play_video, VIEWER, 0.0, playlist_id)
    for second in range(1, length + 1):
        _call(server_mod.report_progress, VIEWER, float(second), float(length), playlist_id)
    return _call(server_mod.end_video, VIEWER, float(length), playlist_id)


class TestCatalogTools:
    def test_add_and_list(self, server_service):
        added = _call(server_mod.add_video, ADMIN, "Safety Basics", public_id="compliance/safety")
        assert added["title"] == "Safety Basics"
        assert added["url"].endswith("compliance/safety.mp4")

        listed = _call(server_mod.list_videos)
        assert [v["video_id"] for v in listed] == [added["video_id"]]

    def test_add_requires_admin(self, server_service):
        result = _call(server_mod.add_video, VIEWER, "Nope")
        assert "error" in result

    def test_get_video(self, server_service, catalog):
        assert _call(server_mod.get_video, "vid-intro")["title"] == "Welcome to the Team"
        assert "error" in _call(server_mod.get_video, "missing")


class TestPlaybackTools:
    def test_create_playlist(self, created):
        assert created["unlocked"] == 1
        assert len(created["videos"]) == 3
        assert "/playlist/" in created["url"]

    def test_create_playlist_empty(self, server_service):
        assert "error" in _call(server_mod.create_playlist, VIEWER, [])

    def test_get_playlist_states(self, created):
        result = _call(server_mod.get_playlist, VIEWER)
        assert [v["state"] for v in result["videos"]] == ["playable", "locked", "locked"]

    def test_select_locked_video(self, created):
        result = _call(server_mod.select_video, VIEWER, 1)
        assert "locked" in result["error"]

    def test_seek_rejected(self, created):
        _call(server_mod.play_video, VIEWER, 0.0)
        result = _call(server_mod.report_progress, VIEWER, 45.0, 120.0)
        assert result["seek_rejected"] is True
        assert result["position"] == 0.0

    def test_end_unlocks_next(self, created):
        result = _play_to_end(3)
        assert result["newly_unlocked"] is True
        assert result["unlocked"] == 2

        selected = _call(server_mod.select_video, VIEWER, 1)
        assert selected["current_index"] == 1

    def test_pause_reports_duration(self, created):
        _call(server_mod.play_video, VIEWER, 0.0)
        _call(server_mod.report_progress, VIEWER, 1.0, 10.0)
        result = _call(server_mod.pause_video, VIEWER, 1.0)
        assert result["watch_duration"] == 1.0

    def test_end_persist_failure(self, created, store):
        _call(server_mod.play_video, VIEWER, 0.0)
        _call(server_mod.report_progress, VIEWER, 1.0, 1.0)
        with patch.object(store.playlists, "update_unlocked", side_effect=StorageError("offline")):
            result = _call(server_mod.end_video, VIEWER, 1.0)
        assert "Failed to unlock next video" in result["error"]
        assert _call(server_mod.get_playlist, VIEWER)["unlocked"] == 1

    def test_other_users_playlist_refused(self, created):
        result = _call(server_mod.get_playlist, "nosy@example.com", created["playlist_id"])
        assert "error" in result

    def test_submit_recommendation(self, created):
        result = _call(server_mod.submit_recommendation, VIEWER, created["playlist_id"], "More please")
        assert result["status"] == "received"

    def test_sessions_are_bounded(self, server_service, catalog):
        emails = [f"user{i}@example.com" for i in range(3)]
        with patch.object(server_mod, "_MAX_SESSIONS", 2):
            for email in emails:
                _call(server_mod.create_playlist, email, ["vid-intro"])
                _call(server_mod.get_playlist, email)
            assert len(server_mod._sessions) == 2
            assert "error" not in _call(server_mod.get_playlist, emails[0])
            assert len(server_mod._sessions) == 2


class TestFeedbackTools:
    def test_submit_and_list(self, created):
        result = _call(server_mod.submit_feedback, VIEWER, created["playlist_id"], "Great pacing")
        assert result["status"] == "received"

        listed = _call(server_mod.list_feedback, ADMIN)
        assert [f["feedback"] for f in listed] == ["Great pacing"]
        assert listed[0]["user_email"] == VIEWER
        assert listed[0]["playlist_id"] == created["playlist_id"]

    def test_blank_feedback(self, created):
        result = _call(server_mod.submit_feedback, VIEWER, created["playlist_id"], "")
        assert result["error"] == "Please enter your feedback before submitting."

    def test_list_requires_admin(self, created):
        assert "error" in _call(server_mod.list_feedback, VIEWER)


class TestAnalyticsTool:
    def test_admin_gets_summary(self, created):
        _play_to_end(2)
        result = _call(server_mod.get_analytics, ADMIN)
        assert result["total_videos"] == 3
        intro = next(v for v in result["videos"] if v["video_id"] == "vid-intro")
        assert intro["total_views"] == 2
        assert intro["completion_rate"] == 50.0

    def test_play_events_only(self, created):
        _play_to_end(2)
        result = _call(server_mod.get_analytics, ADMIN, play_events_only=True)
        intro = next(v for v in result["videos"] if v["video_id"] == "vid-intro")
        assert intro["total_views"] == 1

    def test_viewer_refused(self, created):
        assert "error" in _call(server_mod.get_analytics, VIEWER)
