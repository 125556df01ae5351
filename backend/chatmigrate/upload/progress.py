"""Upload progress as shown to the user.

While a request is in flight without chunk metadata the percentage is
cosmetic: it climbs quickly, slows past 50/70/90 percent and never reaches
100. With chunk metadata it is derived from the chunk counter. Only a
confirmed completion shows 100.
"""

import math
from dataclasses import dataclass

from chatmigrate.upload.state import UploadSession, UploadStatus

TICK_SECONDS = 0.2
COSMETIC_CEILING = 99.0
IN_FLIGHT_CREDIT = 0.9
DISMISS_AFTER_COMPLETE = 0.8
DISMISS_AFTER_ERROR = 0.5


def cosmetic_step(value: float) -> float:
    """One simulated tick."""
    if value >= 90:
        step = 0.1
    elif value >= 70:
        step = 0.5
    elif value >= 50:
        step = 1.0
    else:
        step = 2.0
    return min(value + step, COSMETIC_CEILING)


def cosmetic_progress(elapsed: float) -> float:
    """Simulated percentage after `elapsed` seconds of waiting."""
    value = 0.0
    for _ in range(max(int(elapsed / TICK_SECONDS), 0)):
        value = cosmetic_step(value)
        if value >= COSMETIC_CEILING:
            break
    return value


def chunk_progress(current_chunk: int, total_chunks: int) -> float:
    """Completed chunks plus partial credit for the one in flight."""
    weight = 100 / total_chunks
    return (current_chunk - 1) * weight + weight * IN_FLIGHT_CREDIT


@dataclass(frozen=True)
class ProgressSnapshot:
    percent: int
    visible: bool


class ProgressTracker:
    """Remembers when an upload started and ended; computes snapshots lazily."""

    def __init__(self) -> None:
        self._started_at: float | None = None
        self._finished_at: float | None = None
        self._frozen: float = 0.0

    def start(self, now: float) -> None:
        self._started_at = now
        self._finished_at = None
        self._frozen = 0.0

    def finish(self, session: UploadSession, now: float) -> None:
        """Freeze the displayed value at the moment the session ended."""
        self._frozen = self._raw(session, now)
        self._finished_at = now

    def reset(self) -> None:
        self._started_at = None
        self._finished_at = None
        self._frozen = 0.0

    def snapshot(self, session: UploadSession, now: float) -> ProgressSnapshot:
        if session.status == UploadStatus.IDLE or self._started_at is None:
            return ProgressSnapshot(percent=0, visible=False)

        if session.status == UploadStatus.COMPLETE and session.confirmed:
            value = 100.0
        elif session.is_terminal:
            value = self._frozen
        else:
            value = self._raw(session, now)

        return ProgressSnapshot(
            percent=min(math.floor(value + 0.5), 100),
            visible=self._visible(session, now),
        )

    def _raw(self, session: UploadSession, now: float) -> float:
        if session.total_chunks and session.current_chunk:
            return chunk_progress(session.current_chunk, session.total_chunks)
        started = self._started_at if self._started_at is not None else now
        return cosmetic_progress(now - started)

    def _visible(self, session: UploadSession, now: float) -> bool:
        if not session.is_terminal or self._finished_at is None:
            return True
        if session.status == UploadStatus.ERROR:
            return now - self._finished_at < DISMISS_AFTER_ERROR
        if session.confirmed:
            return now - self._finished_at < DISMISS_AFTER_COMPLETE
        # Timed out while polling: stay up so the warning is seen.
        return True
