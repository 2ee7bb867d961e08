"""
Tests for the fixed-interval gate.
"""
from utils.throttle import NoThrottle, Throttle


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


class TestThrottle:
    def test_first_wait_never_sleeps(self):
        clock = FakeClock()
        gate = Throttle(5.0, sleep=clock.sleep, clock=clock)
        assert gate.wait() == 0.0

    def test_back_to_back_waits_sleep_full_interval(self):
        clock = FakeClock()
        gate = Throttle(5.0, sleep=clock.sleep, clock=clock)
        gate.wait()
        assert gate.wait() == 5.0
        assert clock.now == 105.0

    def test_sleeps_only_the_remainder(self):
        clock = FakeClock()
        gate = Throttle(10.0, sleep=clock.sleep, clock=clock)
        gate.wait()
        clock.now += 4.0
        assert gate.wait() == 6.0

    def test_no_sleep_after_long_gap(self):
        clock = FakeClock()
        gate = Throttle(5.0, sleep=clock.sleep, clock=clock)
        gate.wait()
        clock.now += 30.0
        assert gate.wait() == 0.0

    def test_reset_opens_gate(self):
        clock = FakeClock()
        gate = Throttle(5.0, sleep=clock.sleep, clock=clock)
        gate.wait()
        gate.reset()
        assert gate.wait() == 0.0

    def test_negative_interval_clamped(self):
        assert Throttle(-1.0).interval == 0.0


class TestNoThrottle:
    def test_never_waits(self):
        gate = NoThrottle()
        assert [gate.wait() for _ in range(3)] == [0.0, 0.0, 0.0]
