from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from .host import Storage
from .models import Event

MIN_DAILY_TTL = timedelta(minutes=5)

Merge = Callable[[List[Event], List[Event]], List[Event]]


def _decode(value: Any) -> List[Event]:
    if not isinstance(value, list):
        return []
    return [Event.from_dict(item) for item in value if isinstance(item, dict)]


def _encode(events: List[Event]) -> List[Dict[str, Any]]:
    return [e.to_dict() for e in events]


def merge_events(cached: List[Event], fresh: List[Event]) -> List[Event]:
    """Union by href (fresh wins), newest first. Events without an href are dropped."""
    by_href: Dict[str, Event] = {}
    for e in cached:
        if e.href:
            by_href[e.href] = e
    for e in fresh:
        if e.href:
            by_href[e.href] = e
    return sorted(by_href.values(), key=lambda e: e.start_date, reverse=True)


def ttl_until_end_of_day(now: datetime) -> timedelta:
    end_of_day = now.replace(hour=23, minute=59, second=59, microsecond=999000)
    return max(end_of_day - now, MIN_DAILY_TTL)


def cached_fetch(
    storage: Storage,
    key: str,
    fetch: Callable[[], List[Event]],
    ttl: timedelta,
    merge: Optional[Merge] = None,
    log: Optional[Callable[[str], None]] = None,
) -> List[Event]:
    """Read-through TTL cache around ``fetch``.

    Without ``merge`` a cached value (even an empty list) short-circuits the
    fetch. With ``merge`` the fetch always runs, its result is merged into
    the cached list, and a failing fetch falls back to a non-empty cache.
    """
    cached_value = storage.get(key)

    if merge is None:
        if cached_value is not None:
            return _decode(cached_value)
        events = fetch()
        storage.set(key, _encode(events), ttl)
        return events

    cached = _decode(cached_value)
    try:
        merged = merge(cached, fetch())
    except Exception as e:
        # host HTTP clients are not limited to FeedError
        if log is not None:
            log(f"fetch for {key} failed: {e}")
        if cached:
            return cached
        raise
    storage.set(key, _encode(merged), ttl)
    return merged
