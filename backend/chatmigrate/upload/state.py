"""Upload session state machine.

UploadSession is an immutable snapshot; reduce() applies one event through
the transition table and returns the next snapshot. Anything not listed in
_TRANSITIONS is an InvalidUploadTransitionError, which keeps the orchestrator
honest about where it is (no chunk progress after an error, no second upload
while one is running).
"""

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum

from chatmigrate.upload.client import ItemImportResult


class UploadStatus(StrEnum):
    IDLE = "idle"
    UPLOADING = "uploading"
    POLLING = "polling"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class UploadSession:
    file_name: str = ""
    status: UploadStatus = UploadStatus.IDLE
    total_chunks: int | None = None
    current_chunk: int | None = None
    poll_attempt: int = 0
    message: str | None = None
    warning: str | None = None
    error: str | None = None
    error_kind: str | None = None
    confirmed: bool = False
    imported_count: int | None = None
    failed_items: tuple[ItemImportResult, ...] = ()

    @property
    def is_polling(self) -> bool:
        return self.status == UploadStatus.POLLING

    @property
    def is_uploading(self) -> bool:
        return self.status == UploadStatus.UPLOADING

    @property
    def is_terminal(self) -> bool:
        return self.status in (UploadStatus.COMPLETE, UploadStatus.ERROR)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class UploadStarted:
    file_name: str


@dataclass(frozen=True)
class ChunksPlanned:
    total: int


@dataclass(frozen=True)
class ChunkStarted:
    index: int  # 1-based


@dataclass(frozen=True)
class UploadSucceeded:
    message: str | None = None
    imported_count: int | None = None
    failed_items: tuple[ItemImportResult, ...] = ()


@dataclass(frozen=True)
class ProcessingAcknowledged:
    """The destination accepted the upload and is still importing it."""

    message: str | None = None


@dataclass(frozen=True)
class TransientFailure:
    reason: str


@dataclass(frozen=True)
class UploadFailed:
    error: str
    kind: str = "upload_error"


@dataclass(frozen=True)
class PollTick:
    attempt: int


@dataclass(frozen=True)
class ImportLanded:
    """Polling found the imported conversations at the destination."""


@dataclass(frozen=True)
class PollTimedOut:
    warning: str


@dataclass(frozen=True)
class SessionReset:
    pass


UploadEvent = (
    UploadStarted | ChunksPlanned | ChunkStarted | UploadSucceeded | ProcessingAcknowledged
    | TransientFailure | UploadFailed | PollTick | ImportLanded | PollTimedOut | SessionReset
)


class InvalidUploadTransitionError(Exception):
    pass


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _started(session: UploadSession, event: UploadStarted) -> UploadSession:
    return UploadSession(file_name=event.file_name, status=UploadStatus.UPLOADING)


def _chunks_planned(session: UploadSession, event: ChunksPlanned) -> UploadSession:
    if session.total_chunks is not None or event.total < 1:
        raise InvalidUploadTransitionError(f"Cannot plan {event.total} chunks now")
    return replace(session, total_chunks=event.total, current_chunk=None)


def _chunk_started(session: UploadSession, event: ChunkStarted) -> UploadSession:
    expected = (session.current_chunk or 0) + 1
    if session.total_chunks is None or event.index != expected or event.index > session.total_chunks:
        raise InvalidUploadTransitionError(
            f"Chunk {event.index} out of order (expected {expected} of {session.total_chunks})"
        )
    return replace(session, current_chunk=event.index)


def _succeeded(session: UploadSession, event: UploadSucceeded) -> UploadSession:
    return replace(
        session,
        status=UploadStatus.COMPLETE,
        message=event.message,
        confirmed=True,
        imported_count=event.imported_count,
        failed_items=event.failed_items,
    )


def _processing(session: UploadSession, event: ProcessingAcknowledged) -> UploadSession:
    return replace(session, status=UploadStatus.POLLING, message=event.message, poll_attempt=0)


def _transient(session: UploadSession, event: TransientFailure) -> UploadSession:
    return replace(session, status=UploadStatus.POLLING, warning=event.reason, poll_attempt=0)


def _failed(session: UploadSession, event: UploadFailed) -> UploadSession:
    return replace(session, status=UploadStatus.ERROR, error=event.error, error_kind=event.kind)


def _poll_tick(session: UploadSession, event: PollTick) -> UploadSession:
    if event.attempt != session.poll_attempt + 1:
        raise InvalidUploadTransitionError(
            f"Poll attempt {event.attempt} out of order (last was {session.poll_attempt})"
        )
    return replace(session, poll_attempt=event.attempt)


def _landed(session: UploadSession, event: ImportLanded) -> UploadSession:
    return replace(session, status=UploadStatus.COMPLETE, confirmed=True, warning=None)


def _timed_out(session: UploadSession, event: PollTimedOut) -> UploadSession:
    # Not a failure: the destination may still finish on its own.
    return replace(session, status=UploadStatus.COMPLETE, confirmed=False, warning=event.warning)


def _reset(session: UploadSession, event: SessionReset) -> UploadSession:
    return UploadSession()


_S = UploadStatus
_TRANSITIONS: dict[tuple[UploadStatus, type], Callable[[UploadSession, object], UploadSession]] = {
    (_S.IDLE, UploadStarted): _started,
    (_S.UPLOADING, ChunksPlanned): _chunks_planned,
    (_S.UPLOADING, ChunkStarted): _chunk_started,
    (_S.UPLOADING, UploadSucceeded): _succeeded,
    (_S.UPLOADING, ProcessingAcknowledged): _processing,
    (_S.UPLOADING, TransientFailure): _transient,
    (_S.UPLOADING, UploadFailed): _failed,
    (_S.POLLING, PollTick): _poll_tick,
    (_S.POLLING, ImportLanded): _landed,
    (_S.POLLING, PollTimedOut): _timed_out,
    (_S.COMPLETE, SessionReset): _reset,
    (_S.ERROR, SessionReset): _reset,
    (_S.IDLE, SessionReset): _reset,
}


def reduce(session: UploadSession, event: UploadEvent) -> UploadSession:
    """Apply one event. Raises InvalidUploadTransitionError if not allowed."""
    handler = _TRANSITIONS.get((session.status, type(event)))
    if handler is None:
        raise InvalidUploadTransitionError(
            f"{type(event).__name__} is not allowed while {session.status.value}"
        )
    return handler(session, event)
