"""Unit tests for flow meter calibration and volume accounting."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from models.kegs import get_keg_type
from services.errors import InvalidCalibrationError
from services.flow_meter import FlowMeter, flow_per_event

T0 = datetime(2024, 1, 1, 18, 0, tzinfo=timezone.utc)


def _keg(pin: int = 17, constant: float = 7.5, **kwargs) -> FlowMeter:
    return FlowMeter(pin=pin, keg_type=get_keg_type("corny"), flow_constant=constant, **kwargs)


def test_new_meter_derives_flow_per_event_and_capacity() -> None:
    keg = _keg(contents="Pale Ale")

    assert keg.flow_per_event == 1.0 / (7.5 * 60.0)
    assert keg.total_volume == 18.93
    assert keg.remaining_volume() == 18.93


def test_non_positive_constant_is_rejected_at_construction() -> None:
    with pytest.raises(ValueError):
        _keg(constant=0)


def test_accumulate_uses_constant_in_effect_at_call_time() -> None:
    keg = _keg()

    keg.calibrate(constant=5.0)
    added = keg.accumulate(120, at=T0)

    assert added == 120 * (1.0 / (5.0 * 60.0))
    assert keg.dispensed_volume == 120 * (1.0 / (5.0 * 60.0))
    assert keg.pulse_accumulator == 120

    keg.calibrate(constant="10")
    keg.accumulate(30, at=T0)

    assert keg.dispensed_volume == 120 * flow_per_event(5.0) + 30 * flow_per_event(10.0)


def test_accumulate_rejects_negative_pulses() -> None:
    with pytest.raises(ValueError):
        _keg().accumulate(-1)


def test_remaining_volume_is_never_negative() -> None:
    keg = _keg(constant=0.001, total_volume=1.0)

    keg.accumulate(5, at=T0)

    assert keg.dispensed_volume > keg.total_volume
    assert keg.remaining_volume() == 0.0
    assert keg.snapshot().remaining_volume == 0.0


def test_relative_calibration_with_unit_coefficient_is_a_no_op(caplog) -> None:
    keg = _keg()

    with caplog.at_level(logging.WARNING, logger="services.flow_meter"):
        result = keg.calibrate(coefficient=1.0)

    assert result.applied is False
    assert keg.flow_constant == 7.5
    assert keg.flow_per_event == flow_per_event(7.5)
    assert any("unchanged" in record.getMessage() for record in caplog.records)


def test_relative_calibration_rounds_down_and_compounds() -> None:
    keg = _keg()

    first = keg.calibrate(coefficient="1.1")
    second = keg.calibrate(coefficient=1.1)

    assert first.applied is True
    assert first.previous_constant == 7.5
    assert first.flow_constant == 8.25
    assert second.flow_constant == 9.07
    assert keg.flow_constant == 9.07
    assert keg.flow_per_event == 1.0 / (9.07 * 60.0)


@pytest.mark.parametrize(
    "kwargs",
    [
        {},
        {"constant": 5.0, "coefficient": 1.1},
        {"constant": "abc"},
        {"coefficient": "not-a-number"},
        {"constant": "nan"},
        {"constant": "0"},
        {"constant": -3.0},
        {"coefficient": 0},
        {"coefficient": 0.0001},
        {"coefficient": "1e308"},
        {"constant": "1e-320"},
        {"constant": "1e308"},
    ],
)
def test_invalid_calibration_input_is_rejected(kwargs) -> None:
    keg = _keg()

    with pytest.raises(InvalidCalibrationError):
        keg.calibrate(**kwargs)

    assert keg.flow_constant == 7.5


def test_rejected_tiny_constant_keeps_volume_accounting_finite() -> None:
    keg = _keg()

    with pytest.raises(InvalidCalibrationError):
        keg.calibrate(constant="1e-320")
    keg.accumulate(100, at=T0)

    assert keg.flow_per_event == flow_per_event(7.5)
    assert keg.dispensed_volume == pytest.approx(100 * flow_per_event(7.5))


def test_invalid_calibration_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        _keg().calibrate()


def test_refill_resets_volume_and_keeps_history() -> None:
    keg = _keg(contents="Pale Ale")
    keg.accumulate(100, at=T0)
    keg.finish_pour()
    keg.accumulate(50, at=T0 + timedelta(minutes=5))

    contents = keg.refill("IPA")

    assert contents == "IPA"
    assert keg.contents == "IPA"
    assert keg.dispensed_volume == 0.0
    assert keg.pulse_accumulator == 0
    assert len(keg.pours) == 1
    # the pour that was open at refill time is discarded
    assert keg.finish_pour() is None


def test_refill_without_contents_keeps_previous_contents() -> None:
    keg = _keg(contents="Stout")
    keg.accumulate(10, at=T0)

    assert keg.refill() == "Stout"
    assert keg.dispensed_volume == 0.0


def test_finish_pour_records_volume_and_times() -> None:
    keg = _keg()
    keg.accumulate(60, at=T0)
    keg.accumulate(40, at=T0 + timedelta(seconds=2))

    pour = keg.finish_pour()

    assert pour is not None
    assert pour.start_time == T0
    assert pour.end_time == T0 + timedelta(seconds=2)
    assert pour.volume == pytest.approx(100 * flow_per_event(7.5))
    assert pour.keg_pin == 17
    assert keg.pours == (pour,)


def test_idle_pour_is_closed_only_after_timeout() -> None:
    keg = _keg()
    keg.accumulate(60, at=T0)

    assert keg.close_idle_pour(T0 + timedelta(seconds=1), idle_after=3.0) is None
    pour = keg.close_idle_pour(T0 + timedelta(seconds=5), idle_after=3.0)

    assert pour is not None
    assert pour.end_time == T0
    assert keg.close_idle_pour(T0 + timedelta(seconds=10), idle_after=3.0) is None


def test_zero_pulses_do_not_open_a_pour() -> None:
    keg = _keg()

    keg.accumulate(0, at=T0)

    assert keg.finish_pour() is None


def test_bounded_history_keeps_most_recent_pours() -> None:
    keg = _keg(max_pours=2)
    for minute in range(3):
        keg.accumulate(10, at=T0 + timedelta(minutes=minute))
        keg.finish_pour()

    assert [pour.start_time for pour in keg.pours] == [
        T0 + timedelta(minutes=1),
        T0 + timedelta(minutes=2),
    ]


def test_concurrent_accumulate_does_not_lose_pulses() -> None:
    keg = _keg()
    workers = 8
    per_worker = 500

    def pump() -> None:
        for _ in range(per_worker):
            keg.accumulate(1, at=T0)

    threads = [threading.Thread(target=pump) for _ in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert keg.pulse_accumulator == workers * per_worker
