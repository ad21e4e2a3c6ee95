"""Wall-clock helpers; local time is a fixed UTC offset for the service area."""

import datetime


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(ts: datetime.datetime) -> datetime.datetime:
    """Treat naive timestamps as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=datetime.timezone.utc)
    return ts.astimezone(datetime.timezone.utc)


def to_local(ts: datetime.datetime, utc_offset_minutes: int) -> datetime.datetime:
    tz = datetime.timezone(datetime.timedelta(minutes=utc_offset_minutes))
    return as_utc(ts).astimezone(tz)
