"""
Tests for wire models and the clocks.
"""

import threading

import pytest

from rayment.clock import ManualClock, SystemClock
from rayment.schema import JobStatus, Quote, RenderSettings


class TestJobStatus:
    def test_terminal_states(self):
        assert {s for s in JobStatus if s.is_terminal} == {
            JobStatus.COMPLETED,
            JobStatus.FAILED,
            JobStatus.CANCELLED,
        }

    def test_unknown_wire_status(self):
        with pytest.raises(ValueError):
            JobStatus.from_wire("exploded")


class TestQuote:
    def test_seconds_kept(self):
        quote = Quote(job_id="j", price=0.1, pay_to="0x1", expires_at=1_700_000_000)
        assert quote.expires_at == 1_700_000_000

    def test_expiry_boundary(self):
        quote = Quote(job_id="j", price=0.1, pay_to="0x1", expires_at=100.0)
        assert not quote.is_expired(99.9)
        assert quote.is_expired(100.0)


class TestRenderSettings:
    def test_wire_form(self):
        settings = RenderSettings(frames={"start": 1, "end": 10}, engine="cycles", output_format="EXR")

        wire = settings.to_wire()

        assert wire["outputFormat"] == "EXR"
        assert wire["frames"] == {"start": 1, "end": 10}
        assert "samples" not in wire
        assert settings.frame_count == 10
        assert settings.file_extension == ".exr"

    def test_backwards_frame_range(self):
        with pytest.raises(ValueError):
            RenderSettings(frames={"start": 10, "end": 1})


class TestClocks:
    def test_manual_clock_sleep_advances(self):
        clock = ManualClock(start=0.0)
        assert clock.sleep(2.5) is False
        assert clock.now() == 2.5

    def test_manual_clock_wakes_on_stop(self):
        clock = ManualClock(start=0.0)
        stop = threading.Event()
        stop.set()

        assert clock.sleep(10, stop) is True
        assert clock.now() == 0.0

    def test_system_clock_wakes_on_stop(self):
        stop = threading.Event()
        stop.set()
        assert SystemClock().sleep(30, stop) is True
