"""Playback sessions: player lifecycle events in, watch log and unlock progress out."""

import logging

from vidgate.config import settings
from vidgate.models import EventType, Identity, Playlist, PlaylistVideo, WatchEvent
from vidgate.storage.repository import (
    PlaylistRepository,
    StorageError,
    UserRepository,
    WatchEventRepository,
)
from vidgate.unlock import UnlockState, VideoEnded, VideoSelected, VideoState, can_select, transition

logger = logging.getLogger(__name__)


class UnlockPersistError(Exception):
    """Raised when the advanced unlock cursor could not be saved."""


class PlaybackSession:
    """One viewer's open playlist.

    The player reports its lifecycle (play, progress, pause, end) here.
    The session gates which video may be selected, suppresses forward
    seeks, appends a WatchEvent for every transition and persists the
    unlock cursor when a video is finished. Positions are in seconds.
    """

    def __init__(
        self,
        playlist: Playlist,
        identity: Identity,
        playlists: PlaylistRepository,
        events: WatchEventRepository,
        users: UserRepository | None = None,
        seek_tolerance: float | None = None,
    ) -> None:
        self._playlist = playlist
        self._identity = identity
        self._playlists = playlists
        self._events = events
        self._users = users
        self._seek_tolerance = settings.seek_tolerance if seek_tolerance is None else seek_tolerance
        self._state = UnlockState(unlocked=playlist.unlocked, total=len(playlist.videos))
        self._index = 0
        self._reset_progress()

    def _reset_progress(self) -> None:
        self._progress = 0.0
        self._position = 0.0  # last legitimate playback position
        self._anchor: float | None = None  # where the current stretch started
        self._watched = 0.0  # seconds watched in this viewing session
        self._played = False
        self._duration: float | None = None  # length last reported by the player

    @property
    def playlist(self) -> Playlist:
        return self._playlist

    @property
    def state(self) -> UnlockState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def current_video(self) -> PlaylistVideo:
        return self._playlist.videos[self._index]

    @property
    def progress(self) -> float:
        """Percentage of the current video played, 0-100."""
        return self._progress

    @property
    def position(self) -> float:
        return self._position

    @property
    def is_playing(self) -> bool:
        return self._anchor is not None

    def video_states(self) -> list[VideoState]:
        return self._state.states()

    def switch_video(self, index: int) -> bool:
        """Make the video at ``index`` the active one.

        Returns False and changes nothing if that video is still locked.
        Leaving a video mid-play is logged as a skipped pause; selecting
        the video that is already playing changes nothing.
        """
        if not can_select(self._state, index):
            logger.info("Rejected switch to locked video %d in %s", index, self._playlist.playlist_id)
            return False
        self._state = transition(self._state, VideoSelected(index))
        if self.is_playing and index == self._index:
            return True
        if self.is_playing:
            stretch = max(self._position - self._anchor, 0.0)
            self._record(EventType.PAUSE, stretch, skipped=True)
        self._index = index
        self._reset_progress()
        return True

    def play(self, position: float = 0.0) -> WatchEvent | None:
        """Playback started or resumed at ``position``."""
        self._anchor = self._check_seek(position)
        self._played = True
        return self._record(EventType.PLAY, 0.0)

    def progress_to(self, position: float, duration: float) -> float:
        """Report the player's position; returns the position it must be at.

        A jump ahead of the last legitimate position by more than the seek
        tolerance is rejected and the previous position is returned, so the
        player can reset itself.
        """
        position = self._check_seek(position)
        if duration > 0:
            self._duration = duration
            self._progress = min(position / duration * 100, 100.0)
        return position

    def pause(self, position: float) -> WatchEvent | None:
        """Playback paused. Records the time watched since the last play."""
        if self._anchor is None:
            return None
        position = self._check_seek(position)
        stretch = max(position - self._anchor, 0.0)
        self._watched += stretch
        self._anchor = None
        return self._record(EventType.PAUSE, stretch)

    def end(self, position: float) -> UnlockState:
        """The active video reached its natural end.

        Only accepted once the video was played in this viewing and the
        legitimate position has reached the length reported through
        ``progress_to``. Records a completed event, then unlocks the next
        video. The new cursor is kept only once it has been saved.

        Raises:
            UnlockPersistError: If saving the new cursor fails.
        """
        if not self._played or self._duration is None:
            logger.warning("Ignoring end of video %d that was not played through", self._index)
            return self._state
        if (
            position - self._position > self._seek_tolerance
            or self._duration - position > self._seek_tolerance
        ):
            logger.warning(
                "Ignoring end of video %d reported at %.1fs, last legitimate position %.1fs of %.1fs",
                self._index, position, self._position, self._duration,
            )
            return self._state

        self._position = position
        if self._anchor is not None:
            self._watched += max(position - self._anchor, 0.0)
        self._anchor = None
        self._progress = 100.0
        self._record(EventType.COMPLETED, self._watched, completed=True)
        # a replay of the same video starts a new viewing
        self._watched = 0.0
        self._played = False

        new_state = transition(self._state, VideoEnded(self._index))
        if new_state == self._state:
            return self._state

        try:
            self._playlists.update_unlocked(self._playlist.playlist_id, new_state.unlocked)
        except StorageError as e:
            logger.error("Failed to unlock next video in %s: %s", self._playlist.playlist_id, e)
            raise UnlockPersistError("Failed to unlock next video. Please try again.") from e

        self._state = new_state
        self._playlist.unlocked = new_state.unlocked
        logger.info(
            "Playlist %s unlocked %d/%d",
            self._playlist.playlist_id, new_state.unlocked, new_state.total,
        )
        return new_state

    def _check_seek(self, position: float) -> float:
        """Apply seek suppression and return the accepted position."""
        position = max(position, 0.0)
        if position - self._position > self._seek_tolerance:
            logger.debug("Seek suppressed: %.1fs -> %.1fs", self._position, position)
            return self._position
        self._position = position
        return position

    def _record(
        self,
        event_type: EventType,
        duration: float,
        *,
        completed: bool = False,
        skipped: bool = False,
    ) -> WatchEvent | None:
        """Append a WatchEvent for the active video.

        The watch log is best effort: a failed append is logged and
        playback carries on.
        """
        video = self.current_video
        try:
            rewatched = self._events.has_completed(self._identity.user_id, video.video_id)
            event = self._events.append(WatchEvent(
                video_id=video.video_id,
                video_title=video.title,
                user_id=self._identity.user_id,
                user_email=self._identity.email,
                playlist_id=self._playlist.playlist_id,
                event_type=event_type,
                watch_duration=duration,
                completed=completed,
                skipped=skipped,
                rewatched=rewatched,
            ))
            if self._users is not None:
                self._users.touch(self._identity.user_id, event.watched_at)
        except StorageError as e:
            logger.warning("Failed to record %s event for %s: %s", event_type.value, video.video_id, e)
            return None
        return event
