"""
One job, start to finish: submit → pay → confirm → poll → fetch.

    submitted → payment_pending → paid → queued ⇄ running → completed
        any non-terminal state → failed
        before payment starts  → cancelled

Payment is never retried: once the payment capability has been called, money
may have left the wallet, so a refused confirmation fails the job and a
cancel() raises. Only status polls are retried, and only on transient network
errors. The deadline is measured from the moment the hub accepted the job.
"""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, FrozenSet, Optional

from rayment.clock import Clock, SystemClock
from rayment.errors import (
    CancellationError,
    DeadlineExceeded,
    JobStopped,
    QuoteExpired,
    RaymentError,
    RemoteRejection,
    TransientNetworkError,
    ValidationError,
)
from rayment.hub import JobApi
from rayment.payments import SendPayment
from rayment.schema import JobRecord, JobStatus, Quote, RenderSettings, StatusReport

logger = logging.getLogger(__name__)

S = JobStatus

_TRANSITIONS: Dict[Optional[JobStatus], FrozenSet[JobStatus]] = {
    None: frozenset({S.SUBMITTED, S.FAILED, S.CANCELLED}),
    S.SUBMITTED: frozenset({S.PAYMENT_PENDING, S.FAILED, S.CANCELLED}),
    S.PAYMENT_PENDING: frozenset({S.PAID, S.FAILED, S.CANCELLED}),
    S.PAID: frozenset({S.QUEUED, S.RUNNING, S.COMPLETED, S.FAILED, S.CANCELLED}),
    S.QUEUED: frozenset({S.RUNNING, S.COMPLETED, S.FAILED, S.CANCELLED}),
    S.RUNNING: frozenset({S.QUEUED, S.COMPLETED, S.FAILED, S.CANCELLED}),
}

REASON_PAYMENT_REJECTED = "payment rejected"
REASON_QUOTE_EXPIRED = "quote expired"
REASON_RETRIES_EXHAUSTED = "status check exhausted retries"
REASON_DEADLINE = "deadline exceeded"
REASON_STOPPED = "stopped before completion"
REASON_CANNOT_CANCEL = "cannot cancel after payment"


class JobLifecycle:
    """
    Drives exactly one job against a JobApi and a SendPayment capability.

    Use run() for the whole flow, or the individual steps (submit, pay,
    confirm_payment, wait, fetch) for a manual one. Every state change is
    reported through on_transition with a copy of the record.
    """

    def __init__(
        self,
        input_ref: str,
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
        output_path: Optional[Path] = None,
        stop_event: Optional[threading.Event] = None,
        on_transition: Optional[Callable[[JobRecord], None]] = None,
    ):
        if poll_interval < 0 or timeout <= 0 or poll_retries < 0 or poll_backoff < 0:
            raise ValidationError("poll_interval, poll_retries and poll_backoff must be >= 0; timeout must be > 0")
        self.api = api
        self.send_payment = send_payment
        self.wallet_address = wallet_address
        self.settings = settings or RenderSettings()
        self.provider_id = provider_id
        self.clock = clock or SystemClock()
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.poll_retries = poll_retries
        self.poll_backoff = poll_backoff
        self.max_price = max_price
        self.output_dir = Path(output_dir) if output_dir else None
        self.output_path = Path(output_path) if output_path else None
        self.stop_event = stop_event or threading.Event()
        self.on_transition = on_transition

        self._record = JobRecord(input_ref=str(input_ref))
        self._lock = threading.RLock()
        self._payment_started = False

    # -- state --------------------------------------------------------------

    @property
    def record(self) -> JobRecord:
        with self._lock:
            return self._record.model_copy()

    @property
    def status(self) -> Optional[JobStatus]:
        return self._record.status

    def _transition(self, status: JobStatus, error: Optional[str] = None) -> bool:
        """Move to status if the state machine allows it. Terminal states are sticky."""
        with self._lock:
            current = self._record.status
            if status == current:
                return False
            if status not in _TRANSITIONS.get(current, frozenset()):
                logger.debug("Job %s: ignoring %s → %s", self._label, current, status.value)
                return False
            now = self.clock.now()
            self._record.status = status
            if status == S.SUBMITTED:
                self._record.created_at = now
            elif status == S.PAID:
                self._record.paid_at = now
            elif status == S.RUNNING and self._record.started_at is None:
                self._record.started_at = now
            if status.is_terminal:
                self._record.completed_at = now
            if error:
                self._record.error_message = error
            snapshot = self._record.model_copy()
        log = logger.warning if status == S.FAILED else logger.info
        log("Job %s: %s%s", self._label, status.value, f" ({error})" if error else "")
        self._notify(snapshot)
        return True

    def _fail(self, reason: str) -> None:
        self._transition(S.FAILED, reason)

    def _notify(self, snapshot: Optional[JobRecord] = None) -> None:
        if self.on_transition is not None:
            self.on_transition(snapshot or self.record)

    @property
    def _label(self) -> str:
        return self._record.id or self._record.input_ref

    # -- steps --------------------------------------------------------------

    def submit(self) -> Quote:
        """Upload the input; the hub answers with a quote and assigns the job id."""
        try:
            quote = self.api.submit_job(
                self._record.input_ref,
                self.wallet_address,
                settings=self.settings,
                provider_id=self.provider_id,
            )
        except Exception as e:
            self._fail(f"submission failed: {e}")
            raise
        with self._lock:
            self._record.id = quote.job_id
            self._record.price = quote.price
            if not self._transition(S.SUBMITTED):
                raise CancellationError(f"job {quote.job_id} was cancelled during submission")
        self._transition(S.PAYMENT_PENDING)
        return quote

    def pay(self, quote: Quote) -> str:
        """
        Send the payment for quote. Checks expiry and max_price first; once the
        payment capability is called the job can no longer be cancelled.
        """
        with self._lock:
            if self._record.status != S.PAYMENT_PENDING:
                if self._record.status == S.CANCELLED:
                    raise CancellationError(f"job {self._label} was cancelled")
                raise RaymentError(f"cannot pay job {self._label} in state {self._record.status}")
            if self.stop_event.is_set():
                self._transition(S.CANCELLED, "batch stopped before payment")
                raise JobStopped(f"job {self._label} stopped before payment")
            if quote.is_expired(self.clock.now()):
                self._fail(REASON_QUOTE_EXPIRED)
                raise QuoteExpired(f"quote for job {quote.job_id} expired at {quote.expires_at}")
            if self.max_price is not None and quote.price > self.max_price:
                reason = f"quote exceeds max price ({quote.price} > {self.max_price})"
                self._fail(reason)
                raise ValidationError(reason)
            self._payment_started = True

        logger.info("Job %s: paying %s to %s", self._label, quote.price, quote.pay_to)
        try:
            proof = self.send_payment(quote.pay_to, quote.price, quote.memo)
        except Exception as e:
            self._fail(f"payment failed: {e}")
            raise
        with self._lock:
            self._record.payment_ref = proof
        return proof

    def confirm_payment(self, payment_ref: str) -> None:
        """Hand the payment proof to the hub. A refusal is final: no retry."""
        job_id = self._record.id
        try:
            accepted = self.api.confirm_payment(job_id, payment_ref)
        except Exception as e:
            self._fail(f"payment confirmation failed: {e}")
            raise
        if not accepted:
            self._fail(REASON_PAYMENT_REJECTED)
            raise RemoteRejection(f"hub rejected payment {payment_ref} for job {job_id}")
        self._transition(S.PAID)

    def wait(self) -> JobStatus:
        """
        Poll until the hub reports a terminal state. Raises if the job ends
        anywhere but 'completed'.
        """
        job_id = self._record.id
        deadline = (self._record.created_at or self.clock.now()) + self.timeout
        failures = 0

        while True:
            if self.stop_event.is_set():
                self._fail(REASON_STOPPED)
                raise JobStopped(f"job {job_id} stopped before completion")
            if self.clock.now() >= deadline:
                self._fail(REASON_DEADLINE)
                raise DeadlineExceeded(f"job {job_id} did not finish within {self.timeout}s")

            try:
                report = self.api.poll_job_status(job_id)
            except TransientNetworkError as e:
                failures += 1
                if failures > self.poll_retries:
                    self._fail(REASON_RETRIES_EXHAUSTED)
                    raise
                delay = self.poll_backoff * 2 ** (failures - 1)
                logger.warning(
                    "Job %s: status check failed (%s), retry %d/%d in %.1fs",
                    job_id, e, failures, self.poll_retries, delay,
                )
                self.clock.sleep(min(delay, max(0.0, deadline - self.clock.now())), self.stop_event)
                continue
            except Exception as e:
                self._fail(f"status check failed: {e}")
                raise
            failures = 0

            status = self._apply(report)
            if status is not None and status.is_terminal:
                if status == S.FAILED:
                    raise RemoteRejection(self._record.error_message or "job failed")
                if status == S.CANCELLED:
                    raise RemoteRejection(self._record.error_message or "job cancelled by hub")
                return status

            self.clock.sleep(min(self.poll_interval, max(0.0, deadline - self.clock.now())), self.stop_event)

    def _apply(self, report: StatusReport) -> Optional[JobStatus]:
        if report.status == S.COMPLETED:
            with self._lock:
                self._record.render_time = report.render_time
                self._record.result_ref = report.result_ref
            self._transition(S.COMPLETED)
        elif report.status == S.FAILED:
            self._transition(S.FAILED, report.error or "job failed")
        elif report.status == S.CANCELLED:
            self._transition(S.CANCELLED, report.error or "cancelled by hub")
        elif report.status in (S.QUEUED, S.RUNNING):
            self._transition(report.status)
        return self._record.status

    def fetch(self) -> bytes:
        """
        Download the result of a completed job. A failure here keeps the job
        'completed' and records the error instead.
        """
        if self._record.status != S.COMPLETED:
            raise RaymentError(f"job {self._label} has no result (status {self._record.status})")
        try:
            data = self.api.fetch_result(self._record.id)
            target = self._result_path()
            if target is not None:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(data)
        except Exception as e:
            with self._lock:
                self._record.error_message = f"result fetch failed: {e}"
            logger.warning("Job %s: completed but result fetch failed: %s", self._label, e)
            self._notify()
            raise
        with self._lock:
            if target is not None:
                self._record.result_ref = str(target)
            else:
                self._record.result = data
        self._notify()
        return data

    def _result_path(self) -> Optional[Path]:
        if self.output_path is not None:
            if self.output_path.suffix:
                return self.output_path
            return self.output_path.with_suffix(self.settings.file_extension)
        if self.output_dir is not None:
            return self.output_dir / (Path(self._record.input_ref).stem + self.settings.file_extension)
        return None

    def cancel(self) -> None:
        """Cancel before payment. After payment has started this raises."""
        with self._lock:
            status = self._record.status
            if status == S.CANCELLED:
                return
            if self._payment_started or status in (S.PAID, S.QUEUED, S.RUNNING, S.COMPLETED):
                raise CancellationError(REASON_CANNOT_CANCEL)
            if status is not None and status.is_terminal:
                raise CancellationError(f"job {self._label} already {status.value}")
            self._transition(S.CANCELLED, "cancelled by caller")

    # -- whole flow ---------------------------------------------------------

    def run(self) -> JobRecord:
        """Run every step. Errors end up in the returned record, not raised."""
        try:
            quote = self.submit()
            proof = self.pay(quote)
            self.confirm_payment(proof)
            self.wait()
        except RaymentError as e:
            logger.info("Job %s ended early: %s", self._label, e)
            return self.record
        except Exception as e:
            logger.exception("Job %s: unexpected error", self._label)
            self._fail(f"unexpected error: {e}")
            return self.record

        try:
            self.fetch()
        except Exception as e:
            # Already recorded on the (still completed) job.
            logger.debug("Job %s: fetch error kept on record: %s", self._label, e)
        return self.record
