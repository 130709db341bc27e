"""
Unit tests for the polling primitive.
"""

import pytest

from withdrawer.utils.polling import PollCancelled, PollTimeout, poll_until

from conftest import FakeClock, FakeEvent


class TestPollUntil:
    """Tests for `poll_until`."""

    def test_returns_first_value(self, fake_clock):
        """The first non-None result ends the loop without waiting."""
        event = FakeEvent(fake_clock)

        result = poll_until(lambda: "done", 5, 60, cancel_event=event, clock=fake_clock)

        assert result == "done"
        assert event.waits == []

    def test_waits_between_checks(self, fake_clock):
        """Empty checks are retried at the given interval."""
        event = FakeEvent(fake_clock)
        results = iter([None, None, 0])

        result = poll_until(lambda: next(results), 5, 60, cancel_event=event, clock=fake_clock)

        # falsy values other than None are results
        assert result == 0
        assert event.waits == [5, 5]

    def test_timeout_not_before_deadline(self, fake_clock):
        """`PollTimeout` is raised only once the deadline has passed."""
        event = FakeEvent(fake_clock)
        start = fake_clock.now

        with pytest.raises(PollTimeout):
            poll_until(lambda: None, 5, 12, cancel_event=event, clock=fake_clock)

        assert fake_clock.now - start >= 12
        # the last wait is shortened to the remaining time
        assert event.waits == [5, 5, 2]

    def test_cancel_during_wait(self, fake_clock):
        """Setting the event interrupts the wait."""
        event = FakeEvent(fake_clock, cancel_after=2)
        checks = []

        with pytest.raises(PollCancelled):
            poll_until(lambda: checks.append(1), 5, 600, cancel_event=event, clock=fake_clock)

        assert len(checks) == 2

    def test_cancelled_before_first_check(self, fake_clock):
        """An already set event stops before checking."""
        event = FakeEvent(fake_clock)
        event.set()
        checks = []

        with pytest.raises(PollCancelled):
            poll_until(lambda: checks.append(1), 5, 600, cancel_event=event, clock=fake_clock)

        assert checks == []

    def test_check_errors_propagate(self, fake_clock):
        """Exceptions of the check end the loop unchanged."""

        def check():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            poll_until(check, 5, 60, cancel_event=FakeEvent(fake_clock), clock=fake_clock)

    def test_on_wait_called_per_empty_check(self, fake_clock):
        """`on_wait` runs once before every wait."""
        results = iter([None, None, "ok"])
        waits = []

        poll_until(
            lambda: next(results),
            5,
            60,
            cancel_event=FakeEvent(fake_clock),
            clock=fake_clock,
            on_wait=lambda: waits.append(1),
        )

        assert len(waits) == 2

    def test_rejects_non_positive_interval(self):
        """A zero interval would spin."""
        with pytest.raises(ValueError):
            poll_until(lambda: "x", 0, 60, clock=FakeClock())
