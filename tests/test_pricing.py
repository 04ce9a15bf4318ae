"""
Tests for price estimation.

Covers:
1. The reference scenario (100 MiB, 1 frame, 60 s)
2. Minimum price floor
3. Rounding of the total only (up, so the minimum plus fee is always covered)
4. Bad fee rate
"""

from decimal import Decimal

import pytest

from rayment.errors import ValidationError
from rayment.pricing import BYTES_PER_GB, PLATFORM_FEE_RATE, ceil_amount, estimate, round_amount, to_decimal
from rayment.schema import JobCharacteristics, RenderSettings, Tariff


@pytest.fixture
def tariff():
    return Tariff(
        price_per_unit_work=0.001,
        price_per_unit_time=0.0001,
        price_per_unit_size=0.01,
        minimum_price=0.005,
    )


@pytest.fixture
def hundred_mib_frame():
    return JobCharacteristics(size_bytes=100 * 1024 * 1024, work_units=1, estimated_time_seconds=60)


class TestEstimate:
    def test_reference_scenario(self, tariff, hundred_mib_frame):
        b = estimate(tariff, hundred_mib_frame)

        assert b.size_fee == pytest.approx(0.0009765625)
        assert b.work_fee == pytest.approx(0.001)
        assert b.time_fee == pytest.approx(0.006)
        assert b.base_price == pytest.approx(0.0079765625)
        assert b.platform_fee == pytest.approx(0.000398828125)
        # 0.008375390625 rounded up to 6 places
        assert b.total == 0.008376

    def test_components_are_not_rounded(self, tariff, hundred_mib_frame):
        b = estimate(tariff, hundred_mib_frame)
        assert b.size_fee != round(b.size_fee, 6)

    def test_minimum_price_floor(self):
        tariff = Tariff(
            price_per_unit_work=0.0001,
            price_per_unit_time=0.0,
            price_per_unit_size=0.0,
            minimum_price=0.05,
        )
        job = JobCharacteristics(size_bytes=10, work_units=1, estimated_time_seconds=1)

        b = estimate(tariff, job)

        assert b.base_price == 0.05
        assert b.total == 0.0525
        assert b.total >= tariff.minimum_price

    def test_total_never_below_minimum(self, tariff):
        for size in (0, 1, 1024, BYTES_PER_GB):
            for frames in (0, 1, 250):
                job = JobCharacteristics(size_bytes=size, work_units=frames, estimated_time_seconds=0)
                assert estimate(tariff, job).total >= tariff.minimum_price

    @pytest.mark.parametrize("minimum", [0.0012345, 0.0000001, 0.00999999, 0.1234567, 1.0000001])
    @pytest.mark.parametrize("rate", [0.0, PLATFORM_FEE_RATE, 0.0333333])
    def test_total_covers_minimum_plus_fee(self, minimum, rate):
        tariff = Tariff(
            price_per_unit_work=0.0,
            price_per_unit_time=0.0,
            price_per_unit_size=0.0,
            minimum_price=minimum,
        )
        job = JobCharacteristics(size_bytes=0, work_units=1, estimated_time_seconds=0)

        total = estimate(tariff, job, platform_fee_rate=rate).total

        assert to_decimal(total) >= to_decimal(minimum) * (1 + to_decimal(rate))
        assert to_decimal(total) - to_decimal(minimum) * (1 + to_decimal(rate)) < Decimal("0.000001")

    def test_deterministic(self, tariff, hundred_mib_frame):
        assert estimate(tariff, hundred_mib_frame) == estimate(tariff, hundred_mib_frame)

    def test_custom_fee_rate(self, tariff, hundred_mib_frame):
        b = estimate(tariff, hundred_mib_frame, platform_fee_rate=0.0)
        assert b.platform_fee == 0.0
        assert b.total == ceil_amount(b.base_price) == 0.007977

    def test_negative_fee_rate_rejected(self, tariff, hundred_mib_frame):
        with pytest.raises(ValidationError):
            estimate(tariff, hundred_mib_frame, platform_fee_rate=-0.01)

    def test_one_gib_costs_size_price(self, tariff):
        job = JobCharacteristics(size_bytes=BYTES_PER_GB, work_units=0, estimated_time_seconds=0)
        assert estimate(tariff, job).size_fee == pytest.approx(0.01)


class TestRoundAmount:
    def test_half_up(self):
        assert round_amount(0.0000005) == 0.000001
        assert round_amount(0.0000015) == 0.000002

    def test_six_places(self):
        assert round_amount(1.23456789) == 1.234568

    def test_ceil_rounds_up(self):
        assert ceil_amount(0.0012962250) == 0.001297
        assert ceil_amount(0.0525) == 0.0525


class TestTariffWire:
    def test_from_hub_payload(self):
        tariff = Tariff.model_validate(
            {"pricePerFrame": 0.001, "pricePerSecond": 0.0001, "pricePerGb": 1, "minimumPrice": 0.001}
        )
        assert tariff.price_per_unit_size == 1.0
        assert tariff.currency == "ETH"

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            Tariff(price_per_unit_work=-1, price_per_unit_time=0, price_per_unit_size=0)


class TestCharacteristics:
    def test_for_file_uses_size_and_frame_range(self, tmp_path):
        scene = tmp_path / "scene.blend"
        scene.write_bytes(b"x" * 2048)
        settings = RenderSettings(frames={"start": 1, "end": 24})

        job = JobCharacteristics.for_file(scene, settings, estimated_time_seconds=90)

        assert job.size_bytes == 2048
        assert job.work_units == 24
        assert job.estimated_time_seconds == 90

    def test_for_file_defaults_to_one_frame(self, tmp_path):
        scene = tmp_path / "scene.blend"
        scene.write_bytes(b"x")
        assert JobCharacteristics.for_file(scene).work_units == 1
