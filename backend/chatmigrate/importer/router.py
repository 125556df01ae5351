"""Import API routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, UploadFile, status

from chatmigrate.importer.parsers.detection import ImportFormatError
from chatmigrate.importer.schemas import (
    ConversationPreviewSchema,
    FlowResponse,
    ImportPreviewResponse,
    ModeRequest,
    ToggleRequest,
    UploadStatusResponse,
    VisibleSelectionRequest,
)
from chatmigrate.importer.selection import (
    DateFilter,
    InvalidSelectionTransitionError,
    SelectionValidationError,
)
from chatmigrate.importer.service import (
    ImportInProgressError,
    ImportService,
    ImportSessionNotFoundError,
)
from chatmigrate.upload.errors import FileTooLargeError, UploadError
from chatmigrate.upload.state import InvalidUploadTransitionError

router = APIRouter(prefix="/api/import", tags=["import"])

# First match wins, so subclasses go before their bases.
_ERROR_STATUS: tuple[tuple[type[Exception], int], ...] = (
    (ImportSessionNotFoundError, status.HTTP_404_NOT_FOUND),
    (ImportFormatError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SelectionValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (FileTooLargeError, status.HTTP_413_REQUEST_ENTITY_TOO_LARGE),
    (InvalidSelectionTransitionError, status.HTTP_409_CONFLICT),
    (InvalidUploadTransitionError, status.HTTP_409_CONFLICT),
    (ImportInProgressError, status.HTTP_409_CONFLICT),
    (UploadError, status.HTTP_502_BAD_GATEWAY),
)
_HANDLED = tuple(error_type for error_type, _ in _ERROR_STATUS)


def _http_error(error: Exception) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return HTTPException(status_code=status_code, detail=str(error))
    return HTTPException(status_code=500, detail=str(error))


def get_import_service() -> ImportService:
    """Dependency placeholder — overridden at startup."""
    raise RuntimeError("ImportService not configured")


@router.post("/preview")
async def preview_import(
    file: UploadFile,
    service: ImportService = Depends(get_import_service),
) -> ImportPreviewResponse:
    """Parse an export file, mark duplicates, and open mode selection."""
    content = await file.read()
    try:
        return await service.preview(content, file.filename or "unknown", file.content_type)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.post("/{session_id}/mode")
async def choose_mode(
    session_id: str,
    request: ModeRequest,
    service: ImportService = Depends(get_import_service),
) -> FlowResponse:
    """Full and batch modes start uploading; selective opens browsing."""
    try:
        return await service.choose_mode(
            session_id, request.mode, start=request.start, end=request.end
        )
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{session_id}/conversations")
async def browse_conversations(
    session_id: str,
    query: str = Query(""),
    date_filter: DateFilter = Query("all"),
    service: ImportService = Depends(get_import_service),
) -> list[ConversationPreviewSchema]:
    try:
        return service.browse(session_id, query, date_filter)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.post("/{session_id}/selection/toggle")
async def toggle_selection(
    session_id: str,
    request: ToggleRequest,
    service: ImportService = Depends(get_import_service),
) -> FlowResponse:
    try:
        return service.toggle(session_id, request.preview_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.post("/{session_id}/selection/visible")
async def select_visible(
    session_id: str,
    request: VisibleSelectionRequest,
    service: ImportService = Depends(get_import_service),
) -> FlowResponse:
    try:
        return service.select_visible(session_id, request.query, request.date_filter)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete("/{session_id}/selection")
async def clear_selection(
    session_id: str,
    service: ImportService = Depends(get_import_service),
) -> FlowResponse:
    try:
        return service.clear_selection(session_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.post("/{session_id}/selection/submit")
async def submit_selection(
    session_id: str,
    service: ImportService = Depends(get_import_service),
) -> FlowResponse:
    try:
        return await service.submit_selection(session_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.get("/{session_id}/status")
async def upload_status(
    session_id: str,
    wait: bool = Query(False),
    service: ImportService = Depends(get_import_service),
) -> UploadStatusResponse:
    """Current status; with wait=true, the status once the upload has settled."""
    try:
        if wait:
            return await service.wait_until_settled(session_id)
        return await service.status(session_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.post("/{session_id}/retry")
async def retry_failed(
    session_id: str,
    service: ImportService = Depends(get_import_service),
) -> UploadStatusResponse:
    """Resend the conversations the destination reported as failed."""
    try:
        return await service.retry_failed(session_id)
    except _HANDLED as e:
        raise _http_error(e) from e


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def cancel_import(
    session_id: str,
    service: ImportService = Depends(get_import_service),
) -> None:
    try:
        await service.cancel(session_id)
    except _HANDLED as e:
        raise _http_error(e) from e
