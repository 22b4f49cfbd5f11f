# scheduler.py
from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Mapping, Optional

import settings
from exceptions import LexgridError
from models import Column, ExtractionResult

ProgressFn = Callable[[int, int], None]
ResultFn = Callable[[str, str, ExtractionResult], None]
ExtractFn = Callable[..., Awaitable[ExtractionResult]]

_sleep = asyncio.sleep


def _bulk_log(msg: str) -> None:
    print(f"[bulk] {msg}")


@dataclass(frozen=True)
class Cell:
    document_id: str
    column_id: str
    content: str
    prompt: str
    type: Any
    options: Optional[List[str]]


@dataclass
class BulkRunSummary:
    total: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: bool = False

    def as_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "completed": self.completed,
                "failed": self.failed, "cancelled": self.cancelled}


def _attr(obj: Any, name: str, default: Any = None) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def plan_cells(
    documents: Iterable[Any],
    columns: Iterable[Any],
    existing_results: Mapping[str, Mapping[str, ExtractionResult]],
) -> List[Cell]:
    """
    documents x columns, minus cells that already hold a ready answer.
    Pending and failed cells are planned again, so re-running a sweep only
    redoes what is missing. Accepts model objects or plain dicts.
    """
    columns = list(columns)
    cells: List[Cell] = []
    for doc in documents:
        doc_id = _attr(doc, "id")
        row = existing_results.get(doc_id) or {}
        for col in columns:
            col_id = _attr(col, "id")
            current = row.get(col_id)
            if current is not None and current.is_ready:
                continue
            cells.append(Cell(
                document_id=doc_id,
                column_id=col_id,
                content=_attr(doc, "content", ""),
                prompt=_attr(col, "prompt", ""),
                type=_attr(col, "type", "text"),
                options=_attr(col, "options"),
            ))
    return cells


async def extract_with_retry(
    extract: ExtractFn,
    cell: Cell,
    max_retries: int,
    retry_delay: float,
) -> ExtractionResult:
    """
    Outer retry layer: whatever the per-cell protocol finally raised gets
    `max_retries` more attempts, waiting retry_delay * attempt in between.
    Non-retryable errors (bad key, missing fields) fail at once.
    """
    attempt = 0
    while True:
        if attempt > 0:
            await _sleep(retry_delay * attempt)
        try:
            return await extract(cell.content, cell.prompt, cell.type, cell.options)
        except Exception as e:
            retryable = e.retryable if isinstance(e, LexgridError) else True
            _bulk_log(f"attempt {attempt + 1} failed for {cell.document_id}/{cell.column_id}: {e}")
            if not retryable or attempt >= max_retries:
                raise
            attempt += 1


async def extract_single_cell(
    document: Any,
    column: Column,
    on_result: ResultFn,
    extract: ExtractFn,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
) -> ExtractionResult:
    """Re-run one cell regardless of its current state (one-click retry)."""
    cell = plan_cells([document], [column], {})[0]
    return await _process(
        cell, on_result, extract,
        settings.CELL_MAX_RETRIES if max_retries is None else max_retries,
        settings.CELL_RETRY_DELAY if retry_delay is None else retry_delay,
    )


async def _process(cell: Cell, on_result: ResultFn, extract: ExtractFn,
                   max_retries: int, retry_delay: float) -> ExtractionResult:
    on_result(cell.document_id, cell.column_id, ExtractionResult.pending())
    try:
        result = await extract_with_retry(extract, cell, max_retries, retry_delay)
    except Exception as e:
        result = ExtractionResult.failed(str(e) or e.__class__.__name__)
    on_result(cell.document_id, cell.column_id, result)
    return result


async def run_bulk_extraction(
    documents: Iterable[Any],
    columns: Iterable[Any],
    existing_results: Mapping[str, Mapping[str, ExtractionResult]],
    on_progress: ProgressFn,
    on_result: ResultFn,
    extract: ExtractFn,
    concurrency: Optional[int] = None,
    request_delay: Optional[float] = None,
    max_retries: Optional[int] = None,
    retry_delay: Optional[float] = None,
    cancel_event: Optional[asyncio.Event] = None,
) -> BulkRunSummary:
    """
    Sweep every cell that still needs an answer with a fixed pool of workers.

    Each cell gets a pending write, then exactly one final write (ready or
    error), then a progress tick. A failing cell never stops its siblings.
    Setting `cancel_event` stops workers from claiming new cells; cells
    already in flight still finish.
    """
    concurrency = settings.EXTRACTION_CONCURRENCY if concurrency is None else concurrency
    request_delay = settings.REQUEST_DELAY if request_delay is None else request_delay
    max_retries = settings.CELL_MAX_RETRIES if max_retries is None else max_retries
    retry_delay = settings.CELL_RETRY_DELAY if retry_delay is None else retry_delay

    queue: Deque[Cell] = deque(plan_cells(documents, columns, existing_results))
    summary = BulkRunSummary(total=len(queue))
    _bulk_log(f"start cells={summary.total} workers={concurrency}")

    async def worker() -> None:
        # Single event loop: nothing awaits between the emptiness check and
        # popleft, so two workers never claim the same cell.
        while queue:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                return
            cell = queue.popleft()
            await _sleep(request_delay)
            result = await _process(cell, on_result, extract, max_retries, retry_delay)
            if result.is_ready:
                summary.completed += 1
            else:
                summary.failed += 1
            on_progress(summary.completed + summary.failed, summary.total)

    if summary.total:
        await asyncio.gather(*(worker() for _ in range(max(1, concurrency))))
    if cancel_event is not None and cancel_event.is_set():
        summary.cancelled = True
    _bulk_log(
        f"done completed={summary.completed} failed={summary.failed} "
        f"cancelled={summary.cancelled}"
    )
    return summary
