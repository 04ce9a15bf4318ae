"""
Batch scheduler: run many job lifecycles under a hard concurrency bound.

Inputs start in insertion order; completions come back in whatever order the
hub finishes them. A slot freed by a finished job is refilled before the
scheduler waits again. Per-job failures land in the BatchResult; only bad
arguments raise, and they raise before any job starts.
"""

import logging
import threading
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from pathlib import Path
from typing import Callable, Deque, Dict, Iterable, Optional, Sequence, Set

from rayment.clock import Clock, SystemClock
from rayment.errors import ValidationError
from rayment.hub import JobApi
from rayment.lifecycle import JobLifecycle
from rayment.payments import SendPayment
from rayment.progress import aggregate, summarize
from rayment.schema import (
    BatchProgress,
    BatchResult,
    FileStatus,
    JobRecord,
    JobStatus,
    RenderSettings,
)

logger = logging.getLogger(__name__)

REASON_NOT_STARTED = "not started: batch stopped"
REASON_NOT_STARTED_AFTER_FAILURE = "not started: batch stopped after a failure"


class BatchObserver:
    """Progress listener. Both hooks are no-ops; override what you need."""

    def on_file_progress(self, input_ref: str, status: FileStatus) -> None:
        pass

    def on_batch_progress(self, progress: BatchProgress) -> None:
        pass


class CallbackObserver(BatchObserver):
    """Adapts two optional plain callables to BatchObserver."""

    def __init__(
        self,
        on_file_progress: Optional[Callable[[str, FileStatus], None]] = None,
        on_batch_progress: Optional[Callable[[BatchProgress], None]] = None,
    ):
        self._on_file_progress = on_file_progress
        self._on_batch_progress = on_batch_progress

    def on_file_progress(self, input_ref: str, status: FileStatus) -> None:
        if self._on_file_progress is not None:
            self._on_file_progress(input_ref, status)

    def on_batch_progress(self, progress: BatchProgress) -> None:
        if self._on_batch_progress is not None:
            self._on_batch_progress(progress)


class StatusTable:
    """
    input_ref → FileStatus for one run_batch call. Each lifecycle writes only
    its own key; the lock serializes writes with snapshot reads and with the
    observer calls, so every progress report is computed on the latest state.
    """

    def __init__(self, input_refs: Sequence[str], clock: Clock, observer: BatchObserver):
        self._clock = clock
        self._observer = observer
        self._lock = threading.RLock()
        self._entries: Dict[str, FileStatus] = {ref: FileStatus(input_ref=ref) for ref in input_refs}
        self.started_at = clock.now()

    def update(self, status: FileStatus) -> BatchProgress:
        with self._lock:
            self._entries[status.input_ref] = status
            progress = aggregate(self._entries, self.started_at, self._clock.now())
            try:
                self._observer.on_file_progress(status.input_ref, status)
                self._observer.on_batch_progress(progress)
            except Exception:
                logger.exception("Progress observer raised for %s", status.input_ref)
        return progress

    def snapshot(self) -> Dict[str, FileStatus]:
        with self._lock:
            return dict(self._entries)

    def progress(self) -> BatchProgress:
        with self._lock:
            return aggregate(self._entries, self.started_at, self._clock.now())

    def first_failure(self) -> Optional[FileStatus]:
        """The first entry that is failed or cancelled, if any."""
        with self._lock:
            for status in self._entries.values():
                if status.status in (JobStatus.FAILED, JobStatus.CANCELLED):
                    return status
        return None


LifecycleFactory = Callable[[str, threading.Event, Callable[[JobRecord], None]], JobLifecycle]


class BatchScheduler:
    """
    Runs JobLifecycles on a thread pool of at most `concurrency` workers.

    Lifecycle options (poll interval, timeout, output_dir, ...) are fixed per
    scheduler; pass lifecycle_factory to build lifecycles some other way.
    """

    def __init__(
        self,
        api: JobApi,
        send_payment: SendPayment,
        wallet_address: str,
        settings: Optional[RenderSettings] = None,
        provider_id: Optional[str] = None,
        clock: Optional[Clock] = None,
        poll_interval: float = 2.0,
        timeout: float = 600.0,
        poll_retries: int = 3,
        poll_backoff: float = 1.0,
        max_price: Optional[float] = None,
        output_dir: Optional[Path] = None,
        lifecycle_factory: Optional[LifecycleFactory] = None,
    ):
        self.api = api
        self.send_payment = send_payment
        self.wallet_address = wallet_address
        self.settings = settings
        self.provider_id = provider_id
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.poll_retries = poll_retries
        self.poll_backoff = poll_backoff
        self.max_price = max_price
        self.output_dir = output_dir
        self.lifecycle_factory = lifecycle_factory or self._default_lifecycle
        self._runs_lock = threading.Lock()
        self._active_stops: Set[threading.Event] = set()

    def _default_lifecycle(
        self,
        input_ref: str,
        stop_event: threading.Event,
        on_transition: Callable[[JobRecord], None],
    ) -> JobLifecycle:
        return JobLifecycle(
            input_ref,
            self.api,
            self.send_payment,
            self.wallet_address,
            settings=self.settings,
            provider_id=self.provider_id,
            clock=self.clock,
            poll_interval=self.poll_interval,
            timeout=self.timeout,
            poll_retries=self.poll_retries,
            poll_backoff=self.poll_backoff,
            max_price=self.max_price,
            output_dir=self.output_dir,
            stop_event=stop_event,
            on_transition=on_transition,
        )

    def cancel(self) -> None:
        """
        Stop every batch currently running on this scheduler: nothing new
        starts, and in-flight jobs stop at their next poll (unpaid ones are
        cancelled, paid ones fail).

        A run_batch call that has not started yet is not affected. To stop one
        particular run, including before it starts, pass it a stop_event and
        set that instead.
        """
        with self._runs_lock:
            stops = list(self._active_stops)
        logger.info("Batch cancel requested (%d running)", len(stops))
        for stop in stops:
            stop.set()

    def run_batch(
        self,
        inputs: Iterable,
        concurrency: int,
        stop_on_error: bool = False,
        on_file_progress: Optional[Callable[[str, FileStatus], None]] = None,
        on_batch_progress: Optional[Callable[[BatchProgress], None]] = None,
        observer: Optional[BatchObserver] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> BatchResult:
        """
        Run every input through a lifecycle with at most `concurrency` in flight.

        With stop_on_error, the first failed job stops new starts; jobs already
        running finish and are reported. Inputs never started are reported as
        cancelled failures.

        stop_event is this run's stop handle: setting it acts like cancel() for
        this run only. If it is already set, nothing is submitted.
        """
        refs = [str(i) for i in (inputs or [])]
        if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency <= 0:
            raise ValidationError(f"concurrency must be a positive integer, got {concurrency!r}")
        if not refs:
            raise ValidationError("no work provided")
        if len(set(refs)) != len(refs):
            dupes = sorted({r for r in refs if refs.count(r) > 1})
            raise ValidationError(f"duplicate inputs: {', '.join(dupes)}")

        if observer is None:
            observer = CallbackObserver(on_file_progress, on_batch_progress)
        stop = stop_event if stop_event is not None else threading.Event()
        table = StatusTable(refs, self.clock, observer)
        pending: Deque[str] = deque(refs)
        in_flight: Dict[Future, JobLifecycle] = {}

        def on_transition(record: JobRecord) -> None:
            table.update(FileStatus.from_record(record))

        def drain(reason: str) -> None:
            while pending:
                ref = pending.popleft()
                table.update(FileStatus(input_ref=ref, status=JobStatus.CANCELLED, error=reason))

        with self._runs_lock:
            self._active_stops.add(stop)
        logger.info("Batch started: %d inputs, concurrency %d", len(refs), concurrency)
        try:
            with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="rayment-job") as pool:
                while pending or in_flight:
                    if stop.is_set():
                        drain(REASON_NOT_STARTED)
                    elif stop_on_error and pending:
                        failure = table.first_failure()
                        if failure is not None:
                            logger.warning(
                                "Job for %s failed (%s); not starting %d remaining inputs",
                                failure.input_ref, failure.error, len(pending),
                            )
                            drain(REASON_NOT_STARTED_AFTER_FAILURE)
                    while pending and len(in_flight) < concurrency:
                        lifecycle = self.lifecycle_factory(pending.popleft(), stop, on_transition)
                        in_flight[pool.submit(lifecycle.run)] = lifecycle
                    if not in_flight:
                        break

                    done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
                    for future in done:
                        lifecycle = in_flight.pop(future)
                        try:
                            record = future.result()
                        except Exception as e:
                            logger.exception("Lifecycle for %s raised", lifecycle.record.input_ref)
                            record = lifecycle.record
                            if record.status is None or not record.status.is_terminal:
                                record.status = JobStatus.FAILED
                                record.error_message = f"unexpected error: {e}"
                        table.update(FileStatus.from_record(record))
        finally:
            with self._runs_lock:
                self._active_stops.discard(stop)

        snapshot = table.snapshot()
        result = summarize((snapshot[ref] for ref in refs), total_time=self.clock.now() - table.started_at)
        logger.info(
            "Batch finished: %d completed, %d failed, cost %s",
            result.stats.completed, result.stats.failed, result.total_cost,
        )
        return result
