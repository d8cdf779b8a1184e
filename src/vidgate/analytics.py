"""Watch-event aggregation: folds the watch log into summary statistics.

Every function here is a pure function of its arguments. All rates and
averages divide by ``count or 1``, so an entity without events reports
0.0 rather than NaN.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, timedelta, timezone
from enum import Enum

from vidgate.models import (
    AnalyticsSummary,
    EventType,
    User,
    UserEngagement,
    Video,
    VideoAnalytics,
    WatchEvent,
)

UNKNOWN_VIDEO = "Unknown Video"


class ViewPolicy(str, Enum):
    """What counts as one view of a video."""

    ALL_EVENTS = "all"  # every logged event
    PLAY_EVENTS = "play"  # only play events


def _rate(count: int, total: int) -> float:
    return count / (total or 1) * 100


def _count_views(events: list[WatchEvent], policy: ViewPolicy) -> int:
    if policy is ViewPolicy.PLAY_EVENTS:
        return sum(1 for e in events if e.event_type is EventType.PLAY)
    return len(events)


def filter_since(events: list[WatchEvent], since: datetime | None) -> list[WatchEvent]:
    if since is None:
        return list(events)
    return [e for e in events if e.watched_at >= since]


def video_analytics(
    video_id: str,
    events: list[WatchEvent],
    *,
    title: str = UNKNOWN_VIDEO,
    policy: ViewPolicy = ViewPolicy.ALL_EVENTS,
) -> VideoAnalytics:
    """Summarise one video's events (all of which must belong to it)."""
    views = _count_views(events, policy)
    total_watch_time = sum(e.watch_duration for e in events)
    return VideoAnalytics(
        video_id=video_id,
        title=(events[-1].video_title or title) if events else title,
        total_views=views,
        unique_viewers=len({e.user_id for e in events}),
        total_watch_time=total_watch_time,
        average_watch_time=total_watch_time / (views or 1),
        completion_rate=_rate(sum(1 for e in events if e.completed), views),
        skip_rate=_rate(sum(1 for e in events if e.skipped), views),
        rewatch_rate=_rate(sum(1 for e in events if e.rewatched), views),
    )


def aggregate_videos(
    events: list[WatchEvent],
    videos: list[Video] | None = None,
    policy: ViewPolicy = ViewPolicy.ALL_EVENTS,
) -> list[VideoAnalytics]:
    """Per-video statistics.

    Catalog videos come first in catalog order, zero-filled when they have
    no events; videos known only from the log follow in order of first
    appearance.
    """
    by_video: dict[str, list[WatchEvent]] = defaultdict(list)
    for event in events:
        by_video[event.video_id].append(event)

    titles = {v.video_id: v.title for v in videos or []}
    ordered = list(titles) + [vid for vid in by_video if vid not in titles]
    return [
        video_analytics(
            vid, by_video.get(vid, []), title=titles.get(vid, UNKNOWN_VIDEO), policy=policy
        )
        for vid in ordered
    ]


def user_engagement(user: User, events: list[WatchEvent], now: datetime) -> UserEngagement:
    """Summarise one user's events (all of which must belong to them)."""
    watched = len(events)
    total_watch_time = sum(e.watch_duration for e in events)
    activity = [e.watched_at for e in events]
    if user.last_active is not None:
        activity.append(user.last_active)
    return UserEngagement(
        user_id=user.user_id,
        email=user.email,
        total_videos_watched=watched,
        distinct_videos=len({e.video_id for e in events}),
        total_watch_time=total_watch_time,
        average_watch_time=total_watch_time / (watched or 1),
        completion_rate=_rate(sum(1 for e in events if e.completed), watched),
        last_active=max(activity) if activity else now,
    )


def aggregate_users(
    events: list[WatchEvent], users: list[User], now: datetime
) -> list[UserEngagement]:
    by_user: dict[str, list[WatchEvent]] = defaultdict(list)
    for event in events:
        by_user[event.user_id].append(event)
    return [user_engagement(u, by_user.get(u.user_id, []), now) for u in users]


def summarize(
    events: list[WatchEvent],
    videos: list[Video],
    users: list[User],
    *,
    policy: ViewPolicy = ViewPolicy.ALL_EVENTS,
    since: datetime | None = None,
    now: datetime | None = None,
) -> AnalyticsSummary:
    """Build the full analytics view from the watch log, catalog and directory.

    Args:
        events: The watch log.
        videos: The whole catalog; its size is ``total_videos``.
        users: The user directory; one engagement row per user.
        policy: What counts as a view in per-video statistics.
        since: Only consider events at or after this moment.
        now: Fallback ``last_active`` for users without any activity.
            Pass a fixed value to make the result reproducible.
    """
    now = now or datetime.now(timezone.utc)
    events = filter_since(events, since)
    engagement = aggregate_users(events, users, now)
    return AnalyticsSummary(
        videos=aggregate_videos(events, videos, policy),
        users=engagement,
        total_users=len(users),
        total_videos=len(videos),
        total_views=len(events),
        average_engagement=sum(u.completion_rate for u in engagement) / (len(users) or 1),
        generated_at=now,
    )


def daily_views(events: list[WatchEvent], days: int, today: date) -> list[tuple[date, int]]:
    """Play events per calendar day (UTC) for the ``days`` days ending ``today``."""
    start = today - timedelta(days=days - 1)
    counts = Counter(
        e.watched_at.astimezone(timezone.utc).date()
        for e in events
        if e.event_type is EventType.PLAY
    )
    return [(start + timedelta(days=i), counts.get(start + timedelta(days=i), 0)) for i in range(days)]


def category_breakdown(videos: list[Video]) -> dict[str, int]:
    """Number of catalog videos per category, largest first."""
    return dict(Counter(v.category for v in videos).most_common())
