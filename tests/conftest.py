"""
Pytest fixtures.

Provides:
- clock: ManualClock (sleep advances time instantly)
- hub: FakeHub, an in-memory JobApi with per-input scripted behaviour
- payment: RecordingPayment, a SendPayment that records every call
"""

import threading
from typing import Dict, List, Optional

import pytest

from rayment.clock import ManualClock
from rayment.schema import Quote, StatusReport

PROVIDER_WALLET = "0x" + "22" * 20
CLIENT_WALLET = "0x" + "33" * 20


class Script:
    """How FakeHub treats one input."""

    def __init__(
        self,
        statuses: Optional[List] = None,
        accept: bool = True,
        price: float = 0.01,
        expires_in: float = 300.0,
        submit_error: Optional[Exception] = None,
        fetch_error: Optional[Exception] = None,
        result: bytes = b"\x89PNG fake",
        render_time: float = 12.5,
        gate: Optional[threading.Event] = None,
    ):
        self.statuses = list(statuses) if statuses is not None else ["queued", "rendering", "completed"]
        self.accept = accept
        self.price = price
        self.expires_in = expires_in
        self.submit_error = submit_error
        self.fetch_error = fetch_error
        self.result = result
        self.render_time = render_time
        self.gate = gate


class FakeHub:
    """
    Thread-safe in-memory hub. Status scripts are consumed one poll at a time;
    the last entry repeats. An Exception instance in a script is raised.
    """

    def __init__(self, clock: ManualClock):
        self.clock = clock
        self.scripts: Dict[str, Script] = {}
        self.default = Script()
        self.submitted: List[str] = []
        self.confirmations: List[tuple] = []
        self.polls: Dict[str, int] = {}
        self.fetches: List[str] = []
        self._jobs: Dict[str, str] = {}
        self._lock = threading.Lock()

    def script(self, input_ref: str, **kwargs) -> Script:
        self.scripts[str(input_ref)] = Script(**kwargs)
        return self.scripts[str(input_ref)]

    def _script_for_job(self, job_id: str) -> Script:
        return self.scripts.get(self._jobs[job_id], self.default)

    def submit_job(self, input_ref, wallet_address, settings=None, provider_id=None) -> Quote:
        script = self.scripts.get(str(input_ref), self.default)
        with self._lock:
            self.submitted.append(str(input_ref))
            if script.submit_error is not None:
                raise script.submit_error
            job_id = f"job-{len(self.submitted)}"
            self._jobs[job_id] = str(input_ref)
            self.polls[job_id] = 0
        return Quote(
            job_id=job_id,
            price=script.price,
            pay_to=PROVIDER_WALLET,
            expires_at=self.clock.now() + script.expires_in,
            memo=f"rayment:{job_id}",
        )

    def confirm_payment(self, job_id: str, payment_proof: str) -> bool:
        with self._lock:
            self.confirmations.append((job_id, payment_proof))
        return self._script_for_job(job_id).accept

    def poll_job_status(self, job_id: str) -> StatusReport:
        script = self._script_for_job(job_id)
        if script.gate is not None:
            script.gate.wait(timeout=5)
        with self._lock:
            n = self.polls[job_id]
            self.polls[job_id] = n + 1
            item = script.statuses[min(n, len(script.statuses) - 1)]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, StatusReport):
            return item
        report = {"status": item}
        if item == "completed":
            report.update(resultUrl=f"https://hub.test/render/{job_id}/result", renderTime=script.render_time)
        if item == "failed":
            report["error"] = "render crashed"
        return StatusReport.model_validate(report)

    def fetch_result(self, job_id: str) -> bytes:
        script = self._script_for_job(job_id)
        with self._lock:
            self.fetches.append(job_id)
        if script.fetch_error is not None:
            raise script.fetch_error
        return script.result


class RecordingPayment:
    """SendPayment that returns a fake tx hash and remembers every call."""

    def __init__(self, error: Optional[Exception] = None):
        self.calls: List[tuple] = []
        self.error = error
        self._lock = threading.Lock()

    def __call__(self, pay_to: str, amount: float, memo: str = "") -> str:
        with self._lock:
            self.calls.append((pay_to, amount, memo))
            n = len(self.calls)
        if self.error is not None:
            raise self.error
        return f"0x{n:064x}"


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def hub(clock):
    return FakeHub(clock)


@pytest.fixture
def payment():
    return RecordingPayment()

