"""Selection flow: choosing which parsed conversations to import.

The flow is an immutable SelectionFlow value advanced by pure functions.
Every step change is checked against _TRANSITIONS, so an illegal move (say,
toggling items while still choosing a mode) raises instead of silently
corrupting the selection.

Full mode uploads the original file and is not subject to MAX_SELECTION;
batch and selective modes build a curated subset that is.
"""

from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import Literal

from chatmigrate.importer.duplicates import count_duplicates
from chatmigrate.importer.models import ConversationPreview

MAX_SELECTION = 500

ImportMode = Literal["full", "batch", "selective"]
DateFilter = Literal["all", "7days", "30days"]

_DATE_FILTER_DAYS: dict[str, int] = {"7days": 7, "30days": 30}


class ImportStep(StrEnum):
    PARSED_IDLE = "parsed_idle"
    MODE_SELECTION = "mode_selection"
    FULL = "full"
    BATCH_RANGE = "batch_range"
    SELECTIVE = "selective"
    UPLOAD_READY = "upload_ready"


_MODE_STEPS: dict[str, ImportStep] = {
    "full": ImportStep.FULL,
    "batch": ImportStep.BATCH_RANGE,
    "selective": ImportStep.SELECTIVE,
}

_TRANSITIONS: dict[ImportStep, frozenset[ImportStep]] = {
    ImportStep.PARSED_IDLE: frozenset({ImportStep.MODE_SELECTION}),
    ImportStep.MODE_SELECTION: frozenset({
        ImportStep.FULL,
        ImportStep.BATCH_RANGE,
        ImportStep.SELECTIVE,
        ImportStep.PARSED_IDLE,
    }),
    ImportStep.FULL: frozenset({
        ImportStep.UPLOAD_READY, ImportStep.MODE_SELECTION, ImportStep.PARSED_IDLE,
    }),
    ImportStep.BATCH_RANGE: frozenset({
        ImportStep.UPLOAD_READY, ImportStep.MODE_SELECTION, ImportStep.PARSED_IDLE,
    }),
    ImportStep.SELECTIVE: frozenset({
        ImportStep.UPLOAD_READY, ImportStep.MODE_SELECTION, ImportStep.PARSED_IDLE,
    }),
    ImportStep.UPLOAD_READY: frozenset({ImportStep.PARSED_IDLE}),
}


class SelectionValidationError(Exception):
    """User input violates a selection rule. The flow is left unchanged."""


class InvalidSelectionTransitionError(Exception):
    """The requested operation is not allowed in the flow's current step."""


@dataclass(frozen=True)
class SelectionFlow:
    previews: tuple[ConversationPreview, ...]
    step: ImportStep = ImportStep.PARSED_IDLE
    mode: ImportMode | None = None
    selected: frozenset[str] = frozenset()
    warning: str | None = None

    @property
    def importable(self) -> list[ConversationPreview]:
        """Non-duplicate previews, in file order."""
        return [p for p in self.previews if not p.is_duplicate]

    @property
    def duplicate_count(self) -> int:
        return count_duplicates(self.previews)

    @property
    def selected_previews(self) -> list[ConversationPreview]:
        """Selected previews, in file order."""
        return [p for p in self.previews if p.id in self.selected]

    @property
    def remaining_capacity(self) -> int:
        return max(MAX_SELECTION - len(self.selected), 0)


def _advance(flow: SelectionFlow, step: ImportStep, **changes) -> SelectionFlow:
    if step not in _TRANSITIONS[flow.step]:
        raise InvalidSelectionTransitionError(
            f"Cannot move from {flow.step.value} to {step.value}"
        )
    return replace(flow, step=step, **changes)


def _require_step(flow: SelectionFlow, step: ImportStep) -> None:
    if flow.step != step:
        raise InvalidSelectionTransitionError(
            f"Operation requires step {step.value}, flow is in {flow.step.value}"
        )


def start_flow(previews: Iterable[ConversationPreview]) -> SelectionFlow:
    """New flow over marked previews, opened at mode selection."""
    return open_mode_selection(SelectionFlow(previews=tuple(previews)))


def open_mode_selection(flow: SelectionFlow) -> SelectionFlow:
    return _advance(flow, ImportStep.MODE_SELECTION, mode=None, selected=frozenset(), warning=None)


def choose_mode(flow: SelectionFlow, mode: ImportMode) -> SelectionFlow:
    try:
        step = _MODE_STEPS[mode]
    except KeyError:
        raise SelectionValidationError(f"Unknown import mode: {mode}") from None
    return _advance(flow, step, mode=mode, selected=frozenset(), warning=None)


def confirm_full(flow: SelectionFlow) -> SelectionFlow:
    """Select every non-duplicate preview. Not capped."""
    _require_step(flow, ImportStep.FULL)
    return _advance(
        flow,
        ImportStep.UPLOAD_READY,
        selected=frozenset(p.id for p in flow.importable),
    )


def validate_batch_range(start: int | None, end: int | None, total: int) -> None:
    """Check a 1-based inclusive range over `total` importable conversations."""
    if not isinstance(start, int) or not isinstance(end, int):
        raise SelectionValidationError("Please enter valid numbers")
    if total < 1:
        raise SelectionValidationError("There are no new conversations to import")
    if start < 1 or end > total:
        raise SelectionValidationError(f"Range must be between 1 and {total:,}")
    if start > end:
        raise SelectionValidationError("Start position cannot be greater than end position")
    size = end - start + 1
    if size > MAX_SELECTION:
        raise SelectionValidationError(
            f"Batch of {size:,} conversations exceeds max {MAX_SELECTION} per import"
        )


def submit_batch_range(flow: SelectionFlow, start: int | None, end: int | None) -> SelectionFlow:
    """Select importable[start-1:end]. Raises before any change on bad input."""
    _require_step(flow, ImportStep.BATCH_RANGE)
    importable = flow.importable
    validate_batch_range(start, end, len(importable))
    chosen = importable[start - 1:end]
    return _advance(
        flow,
        ImportStep.UPLOAD_READY,
        selected=frozenset(p.id for p in chosen),
        warning=None,
    )


def filter_previews(
    previews: Iterable[ConversationPreview],
    query: str = "",
    date_filter: DateFilter = "all",
    *,
    now: datetime | None = None,
) -> list[ConversationPreview]:
    """Case-insensitive search over title and preview text, plus a recency cut."""
    result = list(previews)

    needle = query.strip().lower()
    if needle:
        result = [
            p for p in result
            if needle in p.title.lower() or needle in p.first_message_preview.lower()
        ]

    days = _DATE_FILTER_DAYS.get(date_filter)
    if days is not None:
        cutoff = (now or datetime.now(UTC)) - timedelta(days=days)
        result = [p for p in result if p.created_at >= cutoff]

    return result


def toggle(flow: SelectionFlow, preview_id: str) -> SelectionFlow:
    """Select or deselect one preview.

    Selecting past MAX_SELECTION, or selecting a duplicate, keeps the current
    selection and records a warning instead.
    """
    _require_step(flow, ImportStep.SELECTIVE)
    preview = next((p for p in flow.previews if p.id == preview_id), None)
    if preview is None:
        raise SelectionValidationError(f"Unknown conversation: {preview_id}")

    if preview_id in flow.selected:
        return replace(flow, selected=flow.selected - {preview_id}, warning=None)
    if preview.is_duplicate:
        return replace(flow, warning="This conversation already exists and cannot be selected")
    if not flow.remaining_capacity:
        return replace(flow, warning=f"You can select at most {MAX_SELECTION} conversations")
    return replace(flow, selected=flow.selected | {preview_id}, warning=None)


def select_all_visible(
    flow: SelectionFlow,
    query: str = "",
    date_filter: DateFilter = "all",
    *,
    now: datetime | None = None,
) -> SelectionFlow:
    """Add filtered non-duplicate previews until the cap is reached."""
    _require_step(flow, ImportStep.SELECTIVE)
    selected = set(flow.selected)
    for preview in filter_previews(flow.previews, query, date_filter, now=now):
        if len(selected) >= MAX_SELECTION:
            break
        if not preview.is_duplicate:
            selected.add(preview.id)
    return replace(flow, selected=frozenset(selected), warning=None)


def clear_selection(flow: SelectionFlow) -> SelectionFlow:
    _require_step(flow, ImportStep.SELECTIVE)
    return replace(flow, selected=frozenset(), warning=None)


def submit_selection(flow: SelectionFlow) -> SelectionFlow:
    _require_step(flow, ImportStep.SELECTIVE)
    if not flow.selected:
        raise SelectionValidationError("Select at least one conversation")
    return _advance(flow, ImportStep.UPLOAD_READY, warning=None)


def reset(flow: SelectionFlow) -> SelectionFlow:
    """Back to idle after completion or cancel."""
    return _advance(flow, ImportStep.PARSED_IDLE, mode=None, selected=frozenset(), warning=None)
