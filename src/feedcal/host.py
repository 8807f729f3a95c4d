from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
import logging
from typing import Any, Callable, Dict, Optional, Protocol
from zoneinfo import ZoneInfo

import requests

from .errors import TransientFetchError
from .storage import MemoryStorage

logger = logging.getLogger("feedcal.host")

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 13_0) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/118.0.0.0 Safari/537.36"
)
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class HttpClient(Protocol):
    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> str: ...


class Storage(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl: timedelta) -> None: ...


class RequestsHttpClient:
    """GET-only client; returns the body text of any non-5xx response."""

    def __init__(self, timeout: float = 10, session: Optional[requests.Session] = None) -> None:
        self.timeout = timeout
        self._session = session or requests.Session()

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        try:
            resp = self._session.get(url, headers=headers or {}, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransientFetchError(f"request to {url} failed: {e}") from e
        # 4xx bodies carry structured API errors ({"message": ...}); let the parser report them.
        if resp.status_code >= 500:
            raise TransientFetchError(f"{url} answered HTTP {resp.status_code}")
        return resp.text


def make_date_formatter(tz: ZoneInfo) -> Callable[[float], str]:
    def format_date(unix_seconds: float) -> str:
        return datetime.fromtimestamp(unix_seconds, tz=tz).strftime(DATE_FORMAT)

    return format_date


def _log(message: str) -> None:
    logger.info(message)


@dataclass
class Host:
    """Capabilities a feed source needs from its host application."""

    tz: ZoneInfo
    http: HttpClient = field(default_factory=RequestsHttpClient)
    storage: Storage = field(default_factory=MemoryStorage)
    log: Callable[[str], None] = _log
    format_date: Optional[Callable[[float], str]] = None
    clock: Optional[Callable[[], datetime]] = None

    def __post_init__(self) -> None:
        if self.format_date is None:
            self.format_date = make_date_formatter(self.tz)

    def now(self) -> datetime:
        if self.clock is not None:
            return self.clock().astimezone(self.tz)
        return datetime.now(tz=self.tz)
