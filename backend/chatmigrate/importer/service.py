"""ImportService: one pending import per uploaded file, from preview to upload."""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import PurePath
from typing import Any
from uuid import uuid4

from chatmigrate.importer.chunker import DEFAULT_CHUNK_THRESHOLD
from chatmigrate.importer.duplicates import mark_duplicates
from chatmigrate.importer.models import ImportFormat
from chatmigrate.importer.parse import parse_import_file
from chatmigrate.importer.parsers.detection import UnsupportedFormatError
from chatmigrate.importer.schemas import (
    ConversationPreviewSchema,
    FlowResponse,
    ImportPreviewResponse,
    UploadStatusResponse,
)
from chatmigrate.importer.selection import (
    MAX_SELECTION,
    DateFilter,
    ImportMode,
    ImportStep,
    SelectionFlow,
    SelectionValidationError,
    choose_mode,
    clear_selection,
    confirm_full,
    filter_previews,
    open_mode_selection,
    reset,
    select_all_visible,
    start_flow,
    submit_batch_range,
    submit_selection,
    toggle,
)
from chatmigrate.upload.cache import ConversationListCache
from chatmigrate.upload.client import DestinationClient
from chatmigrate.upload.errors import check_file_size
from chatmigrate.upload.orchestrator import UploadOrchestrator
from chatmigrate.upload.polling import DEFAULT_MAX_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL, Sleep
from chatmigrate.upload.progress import ProgressSnapshot
from chatmigrate.upload.state import UploadSession, UploadStatus
from chatmigrate.upload.store import ImportSessionStore

logger = logging.getLogger(__name__)

ACCEPTED_SUFFIX = ".json"
ACCEPTED_CONTENT_TYPE = "application/json"

_MODE_STEPS = (ImportStep.FULL, ImportStep.BATCH_RANGE, ImportStep.SELECTIVE)

DEFAULT_IDLE_TTL = 30 * 60


class ImportSessionNotFoundError(Exception):
    pass


class ImportInProgressError(Exception):
    """The operation needs the upload to be idle or finished."""


@dataclass
class PendingImport:
    session_id: str
    file_name: str
    format: ImportFormat
    orchestrator: UploadOrchestrator
    content: bytes | None
    flow: SelectionFlow | None
    sent: list[Any] = field(default_factory=list)
    task: asyncio.Task | None = None
    last_used: float = 0.0


class ImportService:
    def __init__(
        self,
        client: DestinationClient,
        cache: ConversationListCache,
        store: ImportSessionStore,
        *,
        max_file_size: int | None = None,
        chunk_threshold: int = DEFAULT_CHUNK_THRESHOLD,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        poll_max_attempts: int = DEFAULT_MAX_POLL_ATTEMPTS,
        idle_ttl: float = DEFAULT_IDLE_TTL,
        sleep: Sleep = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._client = client
        self._cache = cache
        self._store = store
        self._max_file_size = max_file_size
        self._chunk_threshold = chunk_threshold
        self._poll_interval = poll_interval
        self._poll_max_attempts = poll_max_attempts
        self._idle_ttl = idle_ttl
        self._sleep = sleep
        self._clock = clock
        self._now = now
        self._pending: dict[str, PendingImport] = {}

    @property
    def max_file_size(self) -> int | None:
        return self._max_file_size

    # ------------------------------------------------------------------
    # Preview
    # ------------------------------------------------------------------

    async def preview(
        self, content: bytes, filename: str, content_type: str | None = None
    ) -> ImportPreviewResponse:
        """Parse a file, mark duplicates, and open mode selection for it."""
        if not _is_accepted(filename, content_type):
            raise UnsupportedFormatError("Only .json files can be imported")
        check_file_size(len(content), self._max_file_size)
        await self.evict_idle()

        result = parse_import_file(content)
        existing = await self._cache.existing_ids()
        previews = mark_duplicates(result.conversations, existing)

        session_id = str(uuid4())
        pending = PendingImport(
            session_id=session_id,
            file_name=filename,
            format=result.format,
            orchestrator=self._make_orchestrator(session_id),
            content=content,
            flow=start_flow(previews),
            last_used=self._clock(),
        )
        self._pending[session_id] = pending
        logger.info(
            "Parsed %s as %s: %d conversations",
            filename, result.format, result.total_count,
        )

        duplicate_count = pending.flow.duplicate_count
        return ImportPreviewResponse(
            session_id=session_id,
            format=result.format,
            total_count=result.total_count,
            duplicate_count=duplicate_count,
            importable_count=result.total_count - duplicate_count,
            conversations=[ConversationPreviewSchema.from_preview(p) for p in previews],
        )

    # ------------------------------------------------------------------
    # Mode selection
    # ------------------------------------------------------------------

    async def choose_mode(
        self,
        session_id: str,
        mode: ImportMode,
        *,
        start: int | None = None,
        end: int | None = None,
    ) -> FlowResponse:
        """Full and batch start uploading immediately; selective opens browsing."""
        pending = self._get(session_id)
        self._require_upload_idle(pending)
        flow = self._flow(pending)

        if flow.step == ImportStep.PARSED_IDLE or flow.step in _MODE_STEPS:
            flow = open_mode_selection(flow)
        flow = choose_mode(flow, mode)

        if mode == "full":
            flow = confirm_full(flow)
        elif mode == "batch":
            flow = submit_batch_range(flow, start, end)

        pending.flow = flow
        if flow.step == ImportStep.UPLOAD_READY:
            await self._start_upload(pending)
        return self._flow_response(pending)

    # ------------------------------------------------------------------
    # Selective mode
    # ------------------------------------------------------------------

    def browse(
        self, session_id: str, query: str = "", date_filter: DateFilter = "all"
    ) -> list[ConversationPreviewSchema]:
        flow = self._flow(self._get(session_id))
        visible = filter_previews(flow.importable, query, date_filter, now=self._now())
        return [ConversationPreviewSchema.from_preview(p) for p in visible]

    def toggle(self, session_id: str, preview_id: str) -> FlowResponse:
        pending = self._get(session_id)
        pending.flow = toggle(self._flow(pending), preview_id)
        return self._flow_response(pending)

    def select_visible(
        self, session_id: str, query: str = "", date_filter: DateFilter = "all"
    ) -> FlowResponse:
        pending = self._get(session_id)
        pending.flow = select_all_visible(
            self._flow(pending), query, date_filter, now=self._now()
        )
        return self._flow_response(pending)

    def clear_selection(self, session_id: str) -> FlowResponse:
        pending = self._get(session_id)
        pending.flow = clear_selection(self._flow(pending))
        return self._flow_response(pending)

    async def submit_selection(self, session_id: str) -> FlowResponse:
        pending = self._get(session_id)
        self._require_upload_idle(pending)
        pending.flow = submit_selection(self._flow(pending))
        await self._start_upload(pending)
        return self._flow_response(pending)

    # ------------------------------------------------------------------
    # Upload status and follow-up
    # ------------------------------------------------------------------

    async def status(self, session_id: str) -> UploadStatusResponse:
        """Live status, or the last persisted snapshot once the import is gone."""
        pending = self._pending.get(session_id)
        if pending is not None:
            return self._status_response(session_id, pending.orchestrator)

        session = await self._store.get(session_id)
        if session is None:
            raise ImportSessionNotFoundError(f"Import session {session_id} not found")
        percent = 100 if session.status == UploadStatus.COMPLETE and session.confirmed else 0
        return _status_from_session(
            session_id,
            session,
            ProgressSnapshot(percent=percent, visible=False),
            self._poll_max_attempts,
        )

    async def wait_until_settled(self, session_id: str) -> UploadStatusResponse:
        """Block until the background upload and any polling have finished."""
        pending = self._pending.get(session_id)
        if pending is None:
            return await self.status(session_id)
        if pending.task is not None:
            await asyncio.gather(pending.task, return_exceptions=True)
        await pending.orchestrator.wait_for_polling()
        return self._status_response(session_id, pending.orchestrator)

    async def retry_failed(self, session_id: str) -> UploadStatusResponse:
        """Resend only the conversations the destination reported as failed."""
        pending = self._get(session_id)
        session = pending.orchestrator.session
        if session.status != UploadStatus.COMPLETE or not session.failed_items:
            raise SelectionValidationError("There are no failed conversations to retry")

        retry = [
            pending.sent[item.index]
            for item in session.failed_items
            if 0 <= item.index < len(pending.sent)
        ]
        if not retry:
            raise SelectionValidationError("Failed conversations are no longer available")

        await pending.orchestrator.reset()
        pending.sent = retry
        expected = _conversation_ids(item.conversation_id for item in session.failed_items)
        pending.task = self._spawn(
            pending.orchestrator.upload_conversations(
                retry, pending.file_name, expected_ids=expected
            )
        )
        await asyncio.sleep(0)
        return self._status_response(session_id, pending.orchestrator)

    async def cancel(self, session_id: str) -> None:
        """Discard an import. Not allowed while an upload is running."""
        pending = self._get(session_id)
        self._require_upload_idle(pending)
        await pending.orchestrator.aclose()
        del self._pending[session_id]
        logger.info("Discarded import session %s", session_id)

    async def evict_idle(self) -> int:
        """Drop pending imports untouched for longer than the idle TTL.

        Running uploads are kept. Evicted sessions still report their last
        persisted status.
        """
        cutoff = self._clock() - self._idle_ttl
        stale = [
            pending for pending in self._pending.values()
            if pending.last_used < cutoff and not self._is_busy(pending)
        ]
        for pending in stale:
            await pending.orchestrator.aclose()
            self._pending.pop(pending.session_id, None)
        if stale:
            logger.info("Evicted %d idle import session(s)", len(stale))
        return len(stale)

    async def close(self) -> None:
        """Tear down every pending import: background uploads and pollers."""
        for pending in list(self._pending.values()):
            if pending.task is not None and not pending.task.done():
                pending.task.cancel()
                await asyncio.gather(pending.task, return_exceptions=True)
            await pending.orchestrator.aclose()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _get(self, session_id: str) -> PendingImport:
        try:
            pending = self._pending[session_id]
        except KeyError:
            raise ImportSessionNotFoundError(
                f"Import session {session_id} not found"
            ) from None
        pending.last_used = self._clock()
        return pending

    @staticmethod
    def _flow(pending: PendingImport) -> SelectionFlow:
        if pending.flow is None:
            raise ImportInProgressError("This import has already been uploaded")
        return pending.flow

    @staticmethod
    def _is_busy(pending: PendingImport) -> bool:
        session = pending.orchestrator.session
        running = pending.task is not None and not pending.task.done()
        return running or session.is_uploading or session.is_polling

    def _require_upload_idle(self, pending: PendingImport) -> None:
        if self._is_busy(pending):
            raise ImportInProgressError("An upload is already in progress for this import")

    def _make_orchestrator(self, session_id: str) -> UploadOrchestrator:
        async def on_change(session: UploadSession) -> None:
            pending = self._pending.get(session_id)
            if pending is not None and session.is_terminal:
                self._settle(pending, session)
            await self._store.save(session_id, session)

        return UploadOrchestrator(
            self._client,
            self._cache,
            chunk_threshold=self._chunk_threshold,
            max_file_size=self._max_file_size,
            poll_interval=self._poll_interval,
            max_poll_attempts=self._poll_max_attempts,
            sleep=self._sleep,
            clock=self._clock,
            on_change=on_change,
        )

    @staticmethod
    def _settle(pending: PendingImport, session: UploadSession) -> None:
        """Return the flow to idle; drop parsed state once delivery is confirmed."""
        if pending.flow is not None and pending.flow.step != ImportStep.PARSED_IDLE:
            pending.flow = reset(pending.flow)
        if session.status == UploadStatus.COMPLETE and session.confirmed:
            pending.flow = None
            pending.content = None
            if not session.failed_items:
                pending.sent = []

    async def _start_upload(self, pending: PendingImport) -> None:
        flow = self._flow(pending)
        orchestrator = pending.orchestrator
        if orchestrator.session.is_terminal:
            await orchestrator.reset()

        selected = flow.selected_previews
        expected = _conversation_ids(p.conversation_id for p in selected)
        if flow.mode == "full":
            if pending.content is None:
                raise ImportInProgressError("The original file is no longer available")
            coro = orchestrator.upload_file(
                pending.content, pending.file_name, expected_ids=expected
            )
        else:
            pending.sent = [p.raw_data for p in selected]
            coro = orchestrator.upload_conversations(
                pending.sent, pending.file_name, expected_ids=expected
            )

        logger.info(
            "Starting %s import of %d conversation(s) from %s",
            flow.mode, len(selected), pending.file_name,
        )
        pending.task = self._spawn(coro)
        # Let the upload reach its first state change before reporting.
        await asyncio.sleep(0)

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        task.add_done_callback(_log_task_failure)
        return task

    def _flow_response(self, pending: PendingImport) -> FlowResponse:
        flow = pending.flow
        upload = None
        if pending.orchestrator.session.status != UploadStatus.IDLE:
            upload = self._status_response(pending.session_id, pending.orchestrator)
        if flow is None:
            return FlowResponse(
                session_id=pending.session_id,
                step=ImportStep.PARSED_IDLE.value,
                mode=None,
                selected_ids=[],
                selected_count=0,
                max_selection=MAX_SELECTION,
                upload=upload,
            )
        selected_ids = [p.id for p in flow.selected_previews]
        return FlowResponse(
            session_id=pending.session_id,
            step=flow.step.value,
            mode=flow.mode,
            selected_ids=selected_ids,
            selected_count=len(selected_ids),
            max_selection=MAX_SELECTION,
            warning=flow.warning,
            upload=upload,
        )

    def _status_response(
        self, session_id: str, orchestrator: UploadOrchestrator
    ) -> UploadStatusResponse:
        return _status_from_session(
            session_id,
            orchestrator.session,
            orchestrator.progress(),
            orchestrator.max_poll_attempts,
        )


def _is_accepted(filename: str, content_type: str | None) -> bool:
    if PurePath(filename or "").suffix.lower() == ACCEPTED_SUFFIX:
        return True
    return (content_type or "").split(";")[0].strip().lower() == ACCEPTED_CONTENT_TYPE


def _conversation_ids(ids) -> frozenset[str]:
    return frozenset(i for i in ids if i and not i.startswith("unknown-"))


def _status_from_session(
    session_id: str,
    session: UploadSession,
    progress: ProgressSnapshot,
    max_poll_attempts: int,
) -> UploadStatusResponse:
    return UploadStatusResponse(
        session_id=session_id,
        file_name=session.file_name,
        status=session.status.value,
        is_polling=session.is_polling,
        total_chunks=session.total_chunks,
        current_chunk=session.current_chunk,
        poll_attempt=session.poll_attempt,
        max_poll_attempts=max_poll_attempts,
        progress=progress.percent,
        show_progress=progress.visible,
        confirmed=session.confirmed,
        message=session.message,
        warning=session.warning,
        error=session.error,
        error_kind=session.error_kind,
        imported_count=session.imported_count,
        failed_items=list(session.failed_items),
    )


def _log_task_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error("Background import task failed: %s", error, exc_info=error)
