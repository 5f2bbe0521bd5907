"""
Clock abstraction.

Everything that compares against "now" (outbox due times, sync throttling,
cache expiry) takes a Clock so tests can move time forward without sleeping.
All datetimes are naive UTC, which is what SQLite hands back to us.
"""
from datetime import datetime, timedelta, timezone


def to_epoch_ms(dt: datetime) -> int:
    """Naive-UTC datetime → epoch milliseconds."""
    return int(dt.replace(tzinfo=timezone.utc).timestamp() * 1000)


def to_iso(dt: datetime) -> str:
    """Naive-UTC datetime → ISO-8601 string with a Z suffix."""
    return dt.replace(tzinfo=None).isoformat(timespec="milliseconds") + "Z"


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into a naive-UTC datetime.

    Raises:
        ValueError: if the string is not ISO-8601.
    """
    s = value.strip()
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


class Clock:
    """Wall clock. Subclass or swap for tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)

    def now_ms(self) -> int:
        return to_epoch_ms(self.now())


class ManualClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, start: datetime):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        """Move forward by timedelta(**kwargs) and return the new time."""
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, value: datetime) -> None:
        self._now = value
