"""UploadOrchestrator: sends an import to the destination and tracks it.

Three paths share one session state machine:

- single-shot: the raw file in one request (small files, non-arrays,
  unparseable files, or arrays that fit in one chunk);
- chunked: a large JSON array split by the chunker and sent strictly in
  order, one request per chunk;
- selected: raw conversation objects picked in batch or selective mode, sent
  to the selective import endpoint.

A TransientNetworkError, or a reply saying the import is still processing,
hands over to a CompletionPoller instead of ending the session.
"""

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable, Collection
from typing import Any

from chatmigrate.importer.chunker import (
    DEFAULT_CHUNK_THRESHOLD,
    chunk_file_name,
    split_json_array_into_chunks,
)
from chatmigrate.upload.cache import ConversationListCache
from chatmigrate.upload.client import DestinationClient
from chatmigrate.upload.errors import (
    ChunkUploadError,
    FileTooLargeError,
    TransientNetworkError,
    UnsupportedImportTypeError,
    UploadError,
    UploadRejectedError,
    check_file_size,
)
from chatmigrate.upload.polling import (
    DEFAULT_MAX_POLL_ATTEMPTS,
    DEFAULT_POLL_INTERVAL,
    CompletionPoller,
    PollOutcome,
    Sleep,
)
from chatmigrate.upload.progress import ProgressSnapshot, ProgressTracker
from chatmigrate.upload.state import (
    ChunksPlanned,
    ChunkStarted,
    ImportLanded,
    PollTick,
    PollTimedOut,
    ProcessingAcknowledged,
    SessionReset,
    TransientFailure,
    UploadEvent,
    UploadFailed,
    UploadSession,
    UploadStarted,
    UploadSucceeded,
    reduce,
)
from chatmigrate.utils.json import compact_bytes, serialized_size

logger = logging.getLogger(__name__)

POLL_TIMEOUT_WARNING = (
    "The import is taking longer than expected. It may still be processing;"
    " check your conversations again in a few minutes."
)
POLL_CHECK_FAILED_WARNING = (
    "Could not confirm whether the import finished. It may still be processing;"
    " check your conversations again in a few minutes."
)


def plan_chunks(content: bytes, threshold: int) -> list[list[Any]] | None:
    """Chunks for a chunked upload, or None when one request will do."""
    if len(content) < threshold:
        return None
    try:
        parsed = json.loads(content)
    except ValueError:
        logger.info("Large upload is not valid JSON; sending it as-is")
        return None
    if not isinstance(parsed, list):
        return None
    chunks = split_json_array_into_chunks(parsed, threshold)
    if len(chunks) <= 1:
        return None
    return chunks


def error_kind(error: BaseException) -> str:
    """Stable identifier of a failure class, for clients to branch on."""
    cause = error.cause if isinstance(error, ChunkUploadError) else error
    if isinstance(cause, UnsupportedImportTypeError):
        return "unsupported_import_type"
    if isinstance(error, ChunkUploadError):
        return "chunk_upload_failure"
    if isinstance(error, FileTooLargeError):
        return "file_too_large"
    if isinstance(error, UploadRejectedError):
        return "upload_rejected"
    return "unexpected"


class UploadOrchestrator:
    """Drives one upload session at a time and owns its polling task."""

    def __init__(
        self,
        client: DestinationClient,
        cache: ConversationListCache,
        *,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
        max_file_size: int | None = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_poll_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        on_change: Callable[[UploadSession], Awaitable[None]] | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._chunk_threshold = chunk_threshold
        self._max_file_size = max_file_size
        self._poll_interval = poll_interval
        self._max_poll_attempts = max_poll_attempts
        self._sleep = sleep
        self._clock = clock
        self._on_change = on_change

        self._session = UploadSession()
        self._progress = ProgressTracker()
        self._poller: CompletionPoller | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def session(self) -> UploadSession:
        return self._session

    @property
    def max_poll_attempts(self) -> int:
        return self._max_poll_attempts

    def progress(self) -> ProgressSnapshot:
        return self._progress.snapshot(self._session, self._clock())

    async def upload_file(
        self,
        content: bytes,
        file_name: str,
        *,
        expected_ids: Collection[str] = (),
    ) -> UploadSession:
        """Upload a whole export file, chunking it when it is a large array.

        Raises FileTooLargeError before any request. Upload failures are
        recorded on the returned session rather than raised.
        """
        check_file_size(len(content), self._max_file_size)

        await self._begin(file_name)
        try:
            chunks = await asyncio.to_thread(plan_chunks, content, self._chunk_threshold)
            if chunks is None:
                await self._send_single(content, file_name, expected_ids)
            else:
                await self._send_chunks(chunks, file_name, expected_ids)
        except UploadError as e:
            await self._fail(e)
        except Exception as e:
            logger.exception("Unexpected error while uploading %s", file_name)
            await self._fail(e)
            raise
        return self._session

    async def upload_conversations(
        self,
        conversations: list[Any],
        label: str,
        *,
        expected_ids: Collection[str] = (),
    ) -> UploadSession:
        """Upload selected raw conversations through the selective endpoint."""
        check_file_size(serialized_size(conversations), self._max_file_size)

        await self._begin(label)
        try:
            try:
                response = await self._client.import_conversations(conversations)
            except TransientNetworkError as e:
                await self._start_polling(TransientFailure(str(e)), expected_ids)
                return self._session

            if response.is_processing:
                await self._start_polling(ProcessingAcknowledged(response.message), expected_ids)
                return self._session

            if response.failed:
                logger.warning(
                    "%d of %d selected conversations failed to import",
                    len(response.failed), len(conversations),
                )
            self._cache.invalidate()
            await self._finish(UploadSucceeded(
                message=response.message,
                imported_count=len(response.success),
                failed_items=tuple(response.failed),
            ))
        except UploadError as e:
            await self._fail(e)
        except Exception as e:
            logger.exception("Unexpected error while importing %s", label)
            await self._fail(e)
            raise
        return self._session

    async def wait_for_polling(self) -> PollOutcome | None:
        """Block until the current polling loop ends. None if none was started."""
        if self._poller is None:
            return None
        return await self._poller.wait()

    async def reset(self) -> None:
        """Return a finished session to idle so the orchestrator can be reused."""
        self._stop_polling()
        await self._apply(SessionReset())
        self._progress.reset()

    async def aclose(self) -> None:
        """Tear down: cancel polling and wait for it to settle."""
        if self._poller is not None and self._poller.active:
            self._poller.cancel()
            await self._poller.wait()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _apply(self, event: UploadEvent) -> None:
        self._session = reduce(self._session, event)
        if self._on_change is not None:
            await self._on_change(self._session)

    async def _begin(self, file_name: str) -> None:
        await self._apply(UploadStarted(file_name))
        self._progress.start(self._clock())

    async def _send_single(
        self, content: bytes, file_name: str, expected_ids: Collection[str]
    ) -> None:
        try:
            response = await self._client.upload_file(file_name, content)
        except TransientNetworkError as e:
            await self._start_polling(TransientFailure(str(e)), expected_ids)
            return

        if response.is_processing:
            await self._start_polling(ProcessingAcknowledged(response.message), expected_ids)
            return

        self._cache.invalidate()
        await self._finish(UploadSucceeded(message=response.message))

    async def _send_chunks(
        self, chunks: list[list[Any]], file_name: str, expected_ids: Collection[str]
    ) -> None:
        total = len(chunks)
        await self._apply(ChunksPlanned(total))
        logger.info("Uploading %s in %d chunks", file_name, total)

        for index, chunk in enumerate(chunks, start=1):
            await self._apply(ChunkStarted(index))
            try:
                await self._client.upload_file(
                    chunk_file_name(file_name, index, total), compact_bytes(chunk)
                )
            except TransientNetworkError as e:
                if index == total:
                    await self._start_polling(TransientFailure(str(e)), expected_ids)
                    return
                # Later chunks were never sent; polling cannot recover them.
                raise ChunkUploadError(index, total, e) from e
            except UploadError as e:
                raise ChunkUploadError(index, total, e) from e
            self._cache.invalidate()

        await self._finish(UploadSucceeded())

    async def _start_polling(
        self,
        event: TransientFailure | ProcessingAcknowledged,
        expected_ids: Collection[str],
    ) -> None:
        await self._apply(event)
        if isinstance(event, TransientFailure):
            logger.warning("Upload outcome unknown (%s); polling for completion", event.reason)

        probe = None
        if expected_ids:
            expected = frozenset(expected_ids)

            async def probe() -> bool:
                return expected <= await self._cache.existing_ids()

        self._stop_polling()
        self._poller = CompletionPoller(
            self._cache,
            interval=self._poll_interval,
            max_attempts=self._max_poll_attempts,
            sleep=self._sleep,
            on_tick=self._on_poll_tick,
            on_finish=self._on_poll_finish,
            probe=probe,
        )
        self._poller.start()

    async def _on_poll_tick(self, attempt: int) -> None:
        await self._apply(PollTick(attempt))

    async def _on_poll_finish(self, outcome: PollOutcome) -> None:
        if outcome == PollOutcome.LANDED:
            event = ImportLanded()
        elif outcome == PollOutcome.FAILED:
            event = PollTimedOut(POLL_CHECK_FAILED_WARNING)
        else:
            event = PollTimedOut(POLL_TIMEOUT_WARNING)
        try:
            await self._apply(event)
        finally:
            self._progress.finish(self._session, self._clock())

    async def _finish(self, event: UploadSucceeded) -> None:
        await self._apply(event)
        self._progress.finish(self._session, self._clock())
        self._stop_polling()

    async def _fail(self, error: BaseException) -> None:
        logger.warning("Upload of %s failed: %s", self._session.file_name, error)
        await self._apply(UploadFailed(str(error), kind=error_kind(error)))
        self._progress.finish(self._session, self._clock())
        self._stop_polling()

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.cancel()
