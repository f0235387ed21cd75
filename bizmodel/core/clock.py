# bizmodel/core/clock.py
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes read back from the database.

    SQLite returns naive values even for timezone-aware columns; everything we
    store is UTC, so comparisons in Python stay consistent across backends.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
