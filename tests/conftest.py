from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from feedcal.host import Host
from feedcal.storage import MemoryStorage

TZ = ZoneInfo("Asia/Shanghai")


class StubHttp:
    def __init__(self, body: str = "", error: Optional[Exception] = None):
        self.body = body
        self.error = error
        self.calls: List[tuple[str, Dict[str, str]]] = []

    def get(self, url: str, headers: Optional[Dict[str, str]] = None) -> str:
        self.calls.append((url, headers or {}))
        if self.error is not None:
            raise self.error
        return self.body


class FixedClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def make_host():
    def _make(body: str = "", error: Optional[Exception] = None, now: Optional[datetime] = None) -> Host:
        clock = FixedClock(now or datetime(2026, 3, 14, 9, 30, tzinfo=TZ))
        return Host(
            tz=TZ,
            http=StubHttp(body, error),
            storage=MemoryStorage(clock=clock),
            log=lambda _message: None,
            clock=clock,
        )

    return _make
