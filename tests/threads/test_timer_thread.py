"""
Tests for the TimerThread
"""
# Standard
import time

# Third Party
import pytest

# Local
from tenantop.test_helpers.helpers import wait_until
from tenantop.threads import TimerThread

## Helpers #####################################################################


class Counter:
    def __init__(self, initial_value=0):
        self.value = initial_value

    def increment(self, value=1):
        self.value += value


@pytest.mark.timeout(5)
def test_timer_thread_happy_path():
    timer = TimerThread()
    timer.start_thread()

    value_tracker = Counter()
    timer.put_event(0, value_tracker.increment)
    timer.put_event(0.1, value_tracker.increment)
    timer.put_event(0.2, value_tracker.increment, 2)
    timer.put_event(0.3, value_tracker.increment, value=2)
    assert wait_until(lambda: value_tracker.value == 6, timeout=3)
    timer.stop_thread()


@pytest.mark.timeout(5)
def test_timer_thread_canceled():
    timer = TimerThread()

    value_tracker = Counter()
    timer.put_event(0, value_tracker.increment)
    canceled_event = timer.put_event(0.2, value_tracker.increment)
    canceled_event.cancel()
    assert timer.pending() == 1

    timer.start_thread()
    time.sleep(0.5)
    timer.stop_thread()
    assert value_tracker.value == 1


@pytest.mark.timeout(5)
def test_timer_thread_runs_in_deadline_order():
    timer = TimerThread()
    order = []
    timer.put_event(0.2, order.append, "late")
    timer.put_event(0.05, order.append, "early")
    timer.put_event(0.05, order.append, "early_second")
    timer.start_thread()
    assert wait_until(lambda: len(order) == 3, timeout=3)
    timer.stop_thread()
    assert order == ["early", "early_second", "late"]


def test_timer_thread_rejects_events_after_stop():
    timer = TimerThread()
    timer.stop_thread()
    assert timer.put_event(0, print) is None
