# tests/conftest.py
"""Shared fixtures for vidgate tests."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from vidgate.models import Identity, Video
from vidgate.notify import EmailSender
from vidgate.storage.sqlite import SQLiteStore


@pytest.fixture
def sample_videos():
    """Three catalog videos, oldest first."""
    return [
        Video(
            video_id="vid-intro",
            title="Welcome to the Team",
            category="Onboarding",
            duration="2:00",
            public_id="onboarding/intro",
            video_url="https://media.example.com/onboarding/intro.mp4",
            tags=["basics", "welcome"],
            created_at=datetime(2025, 6, 1, 9, 0, 0, tzinfo=timezone.utc),
        ),
        Video(
            video_id="vid-tools",
            title="Our Tooling",
            category="Onboarding",
            duration="5:30",
            public_id="onboarding/tools",
            tags=["tools"],
            created_at=datetime(2025, 6, 2, 9, 0, 0, tzinfo=timezone.utc),
        ),
        Video(
            video_id="vid-safety",
            title="Safety Basics",
            category="Compliance",
            duration="10:00",
            public_id="compliance/safety",
            created_at=datetime(2025, 6, 3, 9, 0, 0, tzinfo=timezone.utc),
        ),
    ]


@pytest.fixture
def store():
    """All repositories sharing one in-memory database."""
    s = SQLiteStore(":memory:")
    yield s
    s.close()


@pytest.fixture
def mock_email():
    """EmailSender that accepts everything without touching the network."""
    return MagicMock(spec=EmailSender)


@pytest.fixture
def service(store, mock_email):
    """Fully wired PortalService over the in-memory store."""
    from vidgate.service import PortalService

    return PortalService(
        videos=store.videos,
        users=store.users,
        playlists=store.playlists,
        events=store.events,
        recommendations=store.recommendations,
        outbox=store.outbox,
        email_sender=mock_email,
    )


@pytest.fixture
def admin(service):
    user = service.register_user("admin@example.com")
    return Identity(user_id=user.user_id, email=user.email)


@pytest.fixture
def viewer(service):
    user = service.register_user("viewer@example.com")
    return Identity(user_id=user.user_id, email=user.email)


@pytest.fixture
def catalog(store, sample_videos):
    """The sample videos saved in the catalog."""
    for video in sample_videos:
        store.videos.save(video)
    return sample_videos


@pytest.fixture
def playlist(service, viewer, catalog):
    """The viewer's playlist over the whole catalog, in catalog order."""
    return service.create_playlist(viewer, [v.video_id for v in catalog])


@pytest.fixture
def session(service, viewer, playlist):
    """Playback session on the viewer's playlist."""
    return service.open_session(viewer, playlist.playlist_id)


def _watch_through(session, length: float, step: float = 1.0):
    """Play the active video from its start to ``length`` without seeking."""
    session.play(0.0)
    position = 0.0
    while position < length:
        position = min(position + step, length)
        session.progress_to(position, length)
    return session.end(length)


@pytest.fixture
def watch():
    """Helper that plays the active video of a session to its end."""
    return _watch_through
