"""Sequential unlock state machine for playlists.

A playlist of N videos carries a single cursor, ``unlocked`` (1..N).
The video at index ``i`` is playable iff ``i < unlocked``. Finishing a
playable video at index ``i`` raises the cursor to ``min(i + 2, N)``,
which makes the video at ``i + 1`` playable. Everything here is pure:
the persistence side lives in ``vidgate.playback``.
"""

from dataclasses import dataclass
from enum import Enum


class VideoState(str, Enum):
    LOCKED = "locked"
    PLAYABLE = "playable"


@dataclass(frozen=True)
class UnlockState:
    """The unlock cursor of one playlist."""

    unlocked: int
    total: int

    def __post_init__(self) -> None:
        if self.total < 1:
            raise ValueError("A playlist needs at least one video.")
        if not 1 <= self.unlocked <= self.total:
            raise ValueError(
                f"unlocked must be between 1 and {self.total}, got {self.unlocked}"
            )

    def state_of(self, index: int) -> VideoState:
        """Return whether the video at ``index`` may be played."""
        if 0 <= index < self.unlocked:
            return VideoState.PLAYABLE
        return VideoState.LOCKED

    def states(self) -> list[VideoState]:
        return [self.state_of(i) for i in range(self.total)]

    @property
    def fully_unlocked(self) -> bool:
        return self.unlocked == self.total


@dataclass(frozen=True)
class VideoEnded:
    """The video at ``index`` played through to its natural end."""

    index: int


@dataclass(frozen=True)
class VideoSelected:
    """The viewer asked to switch to the video at ``index``."""

    index: int


def initial_state(total: int) -> UnlockState:
    """State of a freshly created playlist: only the first video is playable."""
    return UnlockState(unlocked=1, total=total)


def can_select(state: UnlockState, index: int) -> bool:
    return state.state_of(index) is VideoState.PLAYABLE


def advance(state: UnlockState, index: int) -> UnlockState:
    """Apply the end of the video at ``index``.

    Ends reported for locked videos are ignored, and the cursor never
    moves backwards or past the last video.
    """
    if not can_select(state, index):
        return state
    unlocked = max(state.unlocked, min(index + 2, state.total))
    if unlocked == state.unlocked:
        return state
    return UnlockState(unlocked=unlocked, total=state.total)


def transition(state: UnlockState, event: VideoEnded | VideoSelected) -> UnlockState:
    """Pure transition function ``(state, event) -> state``."""
    if isinstance(event, VideoEnded):
        return advance(state, event.index)
    if isinstance(event, VideoSelected):
        # selection never moves the cursor
        return state
    raise TypeError(f"Unknown unlock event: {event!r}")
