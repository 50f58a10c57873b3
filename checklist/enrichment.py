# checklist/enrichment.py
import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Sequence, Set

from .logger import get_logger
from .models import Item
from .store import ItemStore

logger = get_logger(__name__)

BATCH_SIZE = int(os.getenv("ENRICH_BATCH_SIZE", "20"))
# Pause between two batch lookups
BATCH_DELAY = int(os.getenv("ENRICH_DELAY_MS", "800")) / 1000.0
# How long a finished run keeps showing its final progress before going idle
RESET_DELAY = int(os.getenv("ENRICH_RESET_DELAY_MS", "2000")) / 1000.0

Lookup = Callable[[Sequence[Item]], Sequence[Item]]


class EnrichmentState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"  # finished, but at least one batch failed
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset(
    {EnrichmentState.COMPLETED, EnrichmentState.FAILED, EnrichmentState.CANCELLED}
)


class EnrichmentBusy(Exception):
    """An enrichment run is already in progress."""


class BatchFailure(Exception):
    """
    One batch could not be looked up or merged. Recorded on the report;
    never raised out of a run.
    """

    def __init__(self, batch_index: int, item_ids: Sequence[str], cause: BaseException):
        super().__init__(
            f"Batch {batch_index + 1} ({len(item_ids)} items) failed: {cause}"
        )
        self.batch_index = batch_index
        self.item_ids = tuple(item_ids)
        self.cause = cause


@dataclass(frozen=True)
class EnrichmentProgress:
    state: EnrichmentState = EnrichmentState.IDLE
    done: int = 0
    total: int = 0
    percent: int = 0
    message: str = ""
    batch_index: int | None = None


IDLE = EnrichmentProgress()


@dataclass
class EnrichmentReport:
    state: EnrichmentState
    total: int = 0
    batch_sizes: List[int] = field(default_factory=list)
    dispatched: int = 0
    identified: int = 0
    failures: List[BatchFailure] = field(default_factory=list)
    message: str = ""

    @property
    def failed_item_ids(self) -> Set[str]:
        return {iid for f in self.failures for iid in f.item_ids}


def partition(items: Sequence[Item], size: int) -> List[List[Item]]:
    """Order-preserving slices of at most size items; the last may be shorter."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def percent_of(done: int, total: int) -> int:
    """done/total as a whole percentage, halves rounded up."""
    if total <= 0:
        return 100
    return (200 * done + total) // (2 * total)


class EnrichmentEngine:
    """
    Looks up every unidentified item in fixed-size batches, one batch at a
    time, and merges whatever comes back into the store.

    A failed batch is recorded and skipped; the sweep carries on with the
    next one. Only one run may be active per engine.
    """

    def __init__(
        self,
        store: ItemStore,
        lookup: Lookup,
        batch_size: int = BATCH_SIZE,
        delay: float = BATCH_DELAY,
        reset_delay: float = RESET_DELAY,
        on_progress: Callable[[EnrichmentProgress], None] | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch size must be at least 1")
        self._store = store
        self._lookup = lookup
        self.batch_size = batch_size
        self.delay = delay
        self.reset_delay = reset_delay
        self._on_progress = on_progress

        self._run_lock = threading.Lock()
        self._cancel = threading.Event()
        self._progress_lock = threading.Lock()
        self._progress = IDLE
        self._run_id = 0
        self._reset_timer: threading.Timer | None = None

    @property
    def progress(self) -> EnrichmentProgress:
        return self._progress

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def cancel(self) -> None:
        """Stop the current run before its next batch. No-op when idle."""
        if self.is_running:
            logger.info("Cancellation requested for auto-identification.")
            self._cancel.set()

    def enrich_all(self) -> EnrichmentReport:
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Auto-identification already running; ignoring new request.")
            raise EnrichmentBusy("Auto-identification is already running.")
        try:
            # A cancel() that landed while the previous run was shutting down
            # must not stop this one
            self._cancel.clear()
            with self._progress_lock:
                self._run_id += 1
                run_id = self._run_id
                if self._reset_timer is not None:
                    self._reset_timer.cancel()
                    self._reset_timer = None
            return self._run(run_id)
        finally:
            self._cancel.clear()
            self._run_lock.release()

    def _run(self, run_id: int) -> EnrichmentReport:
        pending = [it for it in self._store.all() if not it.identified]
        if not pending:
            msg = "All items are already identified."
            logger.info(msg)
            self._emit(EnrichmentProgress(message=msg))
            return EnrichmentReport(state=EnrichmentState.COMPLETED, message=msg)

        batches = partition(pending, self.batch_size)
        total = len(pending)
        report = EnrichmentReport(
            state=EnrichmentState.DISPATCHING,
            total=total,
            batch_sizes=[len(b) for b in batches],
        )
        logger.info(
            "Starting auto-identification: %d items in %d batches of up to %d.",
            total,
            len(batches),
            self.batch_size,
        )

        state = EnrichmentState.DISPATCHING
        index = 0
        done = 0

        while state not in TERMINAL_STATES:
            if state is EnrichmentState.DISPATCHING:
                if self._cancel.is_set():
                    state = EnrichmentState.CANCELLED
                    continue

                batch = batches[index]
                self._emit(
                    EnrichmentProgress(
                        state=state,
                        done=done,
                        total=total,
                        percent=percent_of(done, total),
                        message=f"Auto-identifying batch {index + 1}/{len(batches)}",
                        batch_index=index,
                    )
                )
                self._dispatch(index, batch, report)
                done += len(batch)
                self._emit(
                    EnrichmentProgress(
                        state=state,
                        done=done,
                        total=total,
                        percent=percent_of(done, total),
                        message=f"Auto-identifying: {done}/{total}",
                        batch_index=index,
                    )
                )
                index += 1
                if index < len(batches):
                    state = EnrichmentState.PAUSED
                elif report.failures:
                    state = EnrichmentState.FAILED
                else:
                    state = EnrichmentState.COMPLETED

            elif state is EnrichmentState.PAUSED:
                self._emit(
                    EnrichmentProgress(
                        state=state,
                        done=done,
                        total=total,
                        percent=percent_of(done, total),
                        message=f"Auto-identifying: {done}/{total}",
                        batch_index=index - 1,
                    )
                )
                # wait() returns True as soon as cancel() is called
                if self._cancel.wait(self.delay):
                    state = EnrichmentState.CANCELLED
                else:
                    state = EnrichmentState.DISPATCHING

        report.state = state
        if state is EnrichmentState.CANCELLED:
            report.message = f"Auto-identification cancelled at {done}/{total}."
            percent = percent_of(done, total)
        else:
            report.message = "Auto-identification complete."
            if report.failures:
                report.message += (
                    f" {len(report.failures)} of {len(batches)} batches failed."
                )
            percent = 100

        logger.info(
            "%s %d newly identified, %d batches dispatched.",
            report.message,
            report.identified,
            report.dispatched,
        )
        self._emit(
            EnrichmentProgress(
                state=state,
                done=done,
                total=total,
                percent=percent,
                message=report.message,
            )
        )
        self._schedule_reset(run_id)
        return report

    def _dispatch(self, index: int, batch: List[Item], report: EnrichmentReport) -> None:
        ids = [it.item_id for it in batch]
        wanted = set(ids)
        report.dispatched += 1
        try:
            records = list(self._lookup(batch))
            unexpected = [r.item_id for r in records if r.item_id not in wanted]
            if unexpected:
                logger.warning(
                    "Batch %d: lookup returned %d records outside the batch; ignoring them.",
                    index + 1,
                    len(unexpected),
                )
            already = set()
            for iid in ids:
                current = self._store.get(iid)
                if current is not None and current.identified:
                    already.add(iid)
            merged = self._store.merge_enrichment(r for r in records if r.item_id in wanted)
        except Exception as e:
            failure = BatchFailure(index, ids, e)
            report.failures.append(failure)
            logger.warning("%s; continuing with the next batch.", failure)
            return

        newly = sum(1 for it in merged if it.identified and it.item_id not in already)
        report.identified += newly
        logger.debug("Batch %d: %d/%d newly identified.", index + 1, newly, len(batch))

    def _emit(self, progress: EnrichmentProgress, reset_of: int | None = None) -> None:
        with self._progress_lock:
            if reset_of is not None and (
                reset_of != self._run_id or self._progress.state not in TERMINAL_STATES
            ):
                # A newer run owns the progress now
                return
            self._progress = progress
        if self._on_progress is not None:
            try:
                self._on_progress(progress)
            except Exception:
                logger.exception("Progress callback failed")

    def _schedule_reset(self, run_id: int) -> None:
        if self.reset_delay <= 0:
            self._reset(run_id)
            return
        timer = threading.Timer(self.reset_delay, self._reset, args=(run_id,))
        timer.daemon = True
        with self._progress_lock:
            self._reset_timer = timer
        timer.start()

    def _reset(self, run_id: int) -> None:
        self._emit(IDLE, reset_of=run_id)
