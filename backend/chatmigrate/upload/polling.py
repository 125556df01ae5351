"""Completion polling after an ambiguous upload outcome.

Each attempt invalidates the conversation cache so the next read refetches
from the destination. When a probe is supplied it is asked, after every
invalidation, whether the import has landed.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import StrEnum

from chatmigrate.upload.cache import ConversationListCache
from chatmigrate.upload.errors import UploadError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLL_ATTEMPTS = 24

Sleep = Callable[[float], Awaitable[None]]


class PollOutcome(StrEnum):
    LANDED = "landed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"
    CANCELLED = "cancelled"


class PollerAlreadyRunningError(Exception):
    pass


class CompletionPoller:
    """One polling loop, run as a task this object owns."""

    def __init__(
        self,
        cache: ConversationListCache,
        *,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
        on_tick: Callable[[int], Awaitable[None]] | None = None,
        on_finish: Callable[[PollOutcome], Awaitable[None]] | None = None,
        probe: Callable[[], Awaitable[bool]] | None = None,
    ) -> None:
        self._cache = cache
        self._interval = interval
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._on_tick = on_tick
        self._on_finish = on_finish
        self._probe = probe
        self._task: asyncio.Task[PollOutcome] | None = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def start(self) -> asyncio.Task[PollOutcome]:
        if self.active:
            raise PollerAlreadyRunningError("A polling loop is already running")
        self._task = asyncio.create_task(self._run(), name="import-completion-poller")
        self._task.add_done_callback(_log_finish_failure)
        return self._task

    async def wait(self) -> PollOutcome:
        if self._task is None:
            raise RuntimeError("Poller was never started")
        try:
            return await self._task
        except asyncio.CancelledError:
            if self._task.cancelled():
                return PollOutcome.CANCELLED
            raise

    def cancel(self) -> None:
        """Stop the loop. Safe to call repeatedly or before start."""
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _run(self) -> PollOutcome:
        try:
            outcome = await self._poll()
        except Exception:
            # on_finish still runs so the session leaves the polling state.
            logger.exception("Completion polling stopped unexpectedly")
            outcome = PollOutcome.FAILED
        if self._on_finish is not None:
            await self._on_finish(outcome)
        return outcome

    async def _poll(self) -> PollOutcome:
        for attempt in range(1, self._max_attempts + 1):
            self._cache.invalidate()
            if self._on_tick is not None:
                await self._on_tick(attempt)
            if await self._landed():
                logger.info("Import confirmed after %d poll attempt(s)", attempt)
                return PollOutcome.LANDED
            if attempt < self._max_attempts:
                await self._sleep(self._interval)

        logger.warning(
            "Import not confirmed after %d poll attempts; it may still be processing",
            self._max_attempts,
        )
        return PollOutcome.TIMED_OUT

    async def _landed(self) -> bool:
        if self._probe is None:
            return False
        try:
            return await self._probe()
        except UploadError as e:
            # A failed refetch proves nothing either way; try again next tick.
            logger.warning("Completion check failed: %s", e)
            return False


def _log_finish_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Completion poller failed to finish: %s", error, exc_info=error)
