"""
Progress reporting and cooperative cancellation for import sessions.

Each pipeline stage is a generator that yields an ``ImportProgress`` event
after every batch and returns its result when done. The drivers below pull
events from such a generator, forward them to an optional callback and
check the cancellation token at every batch boundary.
"""
import asyncio
import logging
import threading
from typing import Callable, Generator, Optional, TypeVar

from tracker.api.schemas.shared import ImportProgress, ImportStage

from .errors import ImportCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")

ProgressCallback = Callable[[ImportProgress], None]
ProgressSteps = Generator[ImportProgress, None, T]


class CancellationToken:
    """Caller-held cancellation flag; safe to set from another thread."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def _cancel(steps: ProgressSteps, last: Optional[ImportProgress], on_progress: Optional[ProgressCallback]) -> ImportCancelledError:
    steps.close()
    stage = last.stage.value if last else ImportStage.PARSING.value
    rows = (last.current_row or 0) if last else 0
    logger.info("Import cancelled during %s after %d rows", stage, rows)
    if on_progress is not None:
        on_progress(ImportProgress(
            stage=ImportStage.CANCELLED,
            progress=last.progress if last else 0,
            message="Processing cancelled",
            current_row=rows,
            total_rows=last.total_rows if last else None,
        ))
    return ImportCancelledError(stage, rows)


def run_steps(
    steps: ProgressSteps,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> T:
    """
    Drive a stage generator to completion.

    Raises:
        ImportCancelledError: if the token is set at a batch boundary; the
            generator is closed and no partial result is returned
    """
    last: Optional[ImportProgress] = None
    while True:
        if cancel_token is not None and cancel_token.cancelled:
            raise _cancel(steps, last, on_progress)
        try:
            last = next(steps)
        except StopIteration as stop:
            return stop.value
        if on_progress is not None:
            on_progress(last)


async def arun_steps(
    steps: ProgressSteps,
    on_progress: Optional[ProgressCallback] = None,
    cancel_token: Optional[CancellationToken] = None,
) -> T:
    """Like ``run_steps`` but yields to the event loop between batches."""
    last: Optional[ImportProgress] = None
    while True:
        if cancel_token is not None and cancel_token.cancelled:
            raise _cancel(steps, last, on_progress)
        try:
            last = next(steps)
        except StopIteration as stop:
            return stop.value
        if on_progress is not None:
            on_progress(last)
        await asyncio.sleep(0)


def percent(done: int, total: int, start: float = 0.0, end: float = 100.0) -> float:
    """Map ``done/total`` onto the ``start..end`` slice of the progress bar."""
    if total <= 0:
        return end
    return round(start + (end - start) * min(done, total) / total, 2)
