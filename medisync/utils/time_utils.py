from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time as a naive datetime.

    Everything stored by the app (creation times, appointment instants and the
    ``Prescribed on`` line) is naive UTC, so comparisons never mix aware and
    naive values.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(dt: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are returned as-is."""
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
