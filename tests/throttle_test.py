from __future__ import annotations

import pytest

from weather_core.throttle import Throttle


def test_first_acquire_does_not_wait(make_throttle, time_controller):
    throttle = make_throttle(1.0)

    assert throttle.acquire() == 0.0
    assert time_controller.sleeps == []


def test_consecutive_acquires_are_spaced_by_min_interval(make_throttle, time_controller):
    throttle = make_throttle(1.0)

    throttle.acquire()
    first = time_controller.now
    time_controller.advance(0.25)
    throttle.acquire()
    second = time_controller.now

    assert time_controller.sleeps == [pytest.approx(0.75)]
    assert second - first >= 1.0


def test_acquire_after_interval_has_passed_does_not_wait(make_throttle, time_controller):
    throttle = make_throttle(0.05)

    throttle.acquire()
    time_controller.advance(0.2)
    assert throttle.acquire() == 0.0
    assert time_controller.sleeps == []


def test_touch_measures_spacing_from_completion(make_throttle, time_controller):
    throttle = make_throttle(1.0)

    throttle.acquire()
    time_controller.advance(0.8)  # slow response
    throttle.touch()
    throttle.acquire()

    assert time_controller.sleeps == [pytest.approx(1.0)]


def test_negative_interval_is_rejected():
    with pytest.raises(ValueError):
        Throttle(-1)
