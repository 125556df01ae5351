"""Tests for displayed upload progress."""

import pytest

from chatmigrate.upload.progress import (
    COSMETIC_CEILING,
    ProgressTracker,
    chunk_progress,
    cosmetic_progress,
    cosmetic_step,
)
from chatmigrate.upload.state import (
    ChunksPlanned,
    ChunkStarted,
    PollTimedOut,
    TransientFailure,
    UploadFailed,
    UploadSession,
    UploadStarted,
    UploadSucceeded,
    reduce,
)


class TestCosmeticProgress:
    def test_step_slows_down(self):
        assert cosmetic_step(0) == 2
        assert cosmetic_step(50) == 51
        assert cosmetic_step(70) == 70.5
        assert cosmetic_step(90) == pytest.approx(90.1)

    def test_never_reaches_100(self):
        assert cosmetic_progress(3600) == COSMETIC_CEILING
        assert cosmetic_step(COSMETIC_CEILING) == COSMETIC_CEILING

    def test_monotonic(self):
        values = [cosmetic_progress(t) for t in (0, 1, 5, 10, 30, 60)]
        assert values == sorted(values)
        assert values[0] == 0


class TestChunkProgress:
    def test_partial_credit_for_in_flight_chunk(self):
        assert chunk_progress(1, 4) == pytest.approx(22.5)
        assert chunk_progress(4, 4) == pytest.approx(97.5)


class TestProgressTracker:
    def test_idle_is_hidden(self):
        tracker = ProgressTracker()
        snapshot = tracker.snapshot(UploadSession(), 0.0)
        assert snapshot.percent == 0
        assert not snapshot.visible

    def test_chunked_progress_is_deterministic(self):
        tracker = ProgressTracker()
        tracker.start(0.0)
        session = reduce(reduce(UploadSession(), UploadStarted("f")), ChunksPlanned(2))
        session = reduce(reduce(session, ChunkStarted(1)), ChunkStarted(2))
        snapshot = tracker.snapshot(session, 500.0)
        assert snapshot.percent == 95
        assert snapshot.visible

    def test_confirmed_completion_shows_100_then_dismisses(self):
        tracker = ProgressTracker()
        tracker.start(0.0)
        session = reduce(reduce(UploadSession(), UploadStarted("f")), UploadSucceeded())
        tracker.finish(session, 2.0)
        assert tracker.snapshot(session, 2.5) == tracker.snapshot(session, 2.0)
        assert tracker.snapshot(session, 2.5).percent == 100
        assert tracker.snapshot(session, 2.5).visible
        assert not tracker.snapshot(session, 2.9).visible

    def test_error_freezes_and_dismisses_sooner(self):
        tracker = ProgressTracker()
        tracker.start(0.0)
        session = reduce(UploadSession(), UploadStarted("f"))
        failed = reduce(session, UploadFailed("nope"))
        tracker.finish(session, 1.0)
        frozen = tracker.snapshot(failed, 1.2)
        assert frozen.percent < 100
        assert frozen.visible
        assert not tracker.snapshot(failed, 1.6).visible

    def test_poll_timeout_stays_visible_below_100(self):
        tracker = ProgressTracker()
        tracker.start(0.0)
        session = reduce(reduce(UploadSession(), UploadStarted("f")), TransientFailure("x"))
        timed_out = reduce(session, PollTimedOut("slow"))
        tracker.finish(timed_out, 120.0)
        snapshot = tracker.snapshot(timed_out, 1000.0)
        assert snapshot.visible
        assert snapshot.percent == 99

    def test_start_at_time_zero_counts_elapsed(self):
        tracker = ProgressTracker()
        tracker.start(0.0)
        session = reduce(UploadSession(), UploadStarted("f"))
        assert tracker.snapshot(session, 2.1).percent == 20
