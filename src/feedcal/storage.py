from __future__ import annotations
from datetime import datetime, timedelta, timezone
import json
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


class MemoryStorage:
    """Process-local key/value store with per-key expiry."""

    def __init__(self, clock: Optional[Clock] = None) -> None:
        self._clock = clock or _utcnow
        self._items: Dict[str, Tuple[Any, datetime]] = {}

    def get(self, key: str) -> Any:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            del self._items[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        self._items[key] = (value, self._clock() + ttl)


class JsonFileStorage:
    """Key/value store persisted to a single JSON file.

    Each entry is stored as ``{"value": ..., "expires_at": <iso8601>}``; expired
    entries read as missing and are pruned on the next write.
    """

    def __init__(self, path: str, clock: Optional[Clock] = None) -> None:
        self.path = Path(path)
        self._clock = clock or _utcnow

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    def _is_live(self, entry: Any, now: datetime) -> bool:
        if not isinstance(entry, dict) or "value" not in entry:
            return False
        try:
            expires_at = datetime.fromisoformat(str(entry.get("expires_at", "")))
        except ValueError:
            return False
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now < expires_at

    def get(self, key: str) -> Any:
        entry = self._load().get(key)
        if not self._is_live(entry, self._clock()):
            return None
        return entry["value"]

    def set(self, key: str, value: Any, ttl: timedelta) -> None:
        now = self._clock()
        data = {k: v for k, v in self._load().items() if self._is_live(v, now)}
        data[key] = {"value": value, "expires_at": (now + ttl).isoformat()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
