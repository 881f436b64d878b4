"""Wall-clock injection and ISO-8601 helpers."""
from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Callable, Iterable, List, Optional, TypeVar

Clock = Callable[[], datetime]

T = TypeVar("T")


def local_now(tz: Optional[tzinfo] = None) -> datetime:
    """Aware current time in ``tz`` or the system zone."""
    if tz is not None:
        return datetime.now(tz)
    return datetime.now().astimezone()


def system_clock(tz: Optional[tzinfo] = None) -> Clock:
    return lambda: local_now(tz)


def iso_timestamp(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds")


def parse_iso8601(value: object) -> Optional[datetime]:
    """Parse an ISO-8601 string; ``None`` for anything unusable.

    Naive results are left naive, the caller decides which zone they mean.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def as_local(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Convert to local time; naive values are read as already local.

    Model output is requested in local time without an offset, so a naive
    value must not be taken as UTC.
    """
    if moment.tzinfo is None:
        if tz is not None:
            return moment.replace(tzinfo=tz)
        return moment.astimezone()
    return moment.astimezone(tz) if tz is not None else moment.astimezone()


def sort_newest_first(items: Iterable[T], timestamp_of: Callable[[T], object]) -> List[T]:
    """Descending by parsed timestamp; unparseable ones trail in input order."""
    dated: list[tuple[datetime, T]] = []
    undated: list[T] = []
    for item in items:
        moment = parse_iso8601(timestamp_of(item))
        if moment is None:
            undated.append(item)
        else:
            dated.append((as_local(moment), item))
    dated.sort(key=lambda pair: pair[0], reverse=True)
    return [item for _, item in dated] + undated
