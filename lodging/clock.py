from datetime import timedelta

from django.utils import timezone


class Clock:
    def now(self):
        return timezone.now()

    def today(self):
        return timezone.localdate(self.now())


class FixedClock(Clock):
    """Clock pinned to a given aware datetime, for tests and replays."""

    def __init__(self, now):
        self._now = now

    def now(self):
        return self._now

    def advance(self, **kwargs):
        self._now = self._now + timedelta(**kwargs)


system_clock = Clock()


def resolve_clock(clock=None):
    return clock or system_clock
