from __future__ import annotations
from dataclasses import dataclass, field
import os
from pathlib import Path
import re
from typing import Any, Dict, List, Mapping
import yaml

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def parse_limit(value: Any, default: int, low: int, high: int) -> int:
    """Leading-integer parse; zero or garbage falls back to ``default``, then clamp."""
    if isinstance(value, bool):
        value = None
    m = _LEADING_INT.match(str(value)) if value is not None else None
    limit = int(m.group(1)) if m else 0
    if limit == 0:
        limit = default
    return max(low, min(high, limit))


def parse_allowlist(value: Any) -> List[str]:
    if not value or not str(value).strip():
        return []
    return [item.strip() for item in str(value).split(",")]


@dataclass
class GitHubNotificationsConfig:
    token: str = ""
    limit: int = 20
    show_participating: bool = False
    show_all: bool = True
    notification_types: List[str] = field(default_factory=list)
    enabled: bool = True

    MIN_LIMIT = 1
    MAX_LIMIT = 50

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GitHubNotificationsConfig":
        return cls(
            token=str(data.get("token") or ""),
            limit=parse_limit(data.get("limit"), 20, cls.MIN_LIMIT, cls.MAX_LIMIT),
            # only an explicit true enables, only an explicit false disables
            show_participating=data.get("showParticipating", data.get("show_participating")) is True,
            show_all=data.get("showAll", data.get("show_all")) is not False,
            notification_types=parse_allowlist(
                data.get("notificationTypes", data.get("notification_types"))
            ),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class GitHubUserEventsConfig:
    username: str = ""
    token: str = ""
    limit: int = 10
    filter_self: bool = False
    enabled: bool = True

    MIN_LIMIT = 1
    MAX_LIMIT = 100

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "GitHubUserEventsConfig":
        filter_self = data.get("filterSelf", data.get("filter_self"))
        return cls(
            username=str(data.get("username") or ""),
            token=str(data.get("token") or ""),
            limit=parse_limit(data.get("limit"), 10, cls.MIN_LIMIT, cls.MAX_LIMIT),
            filter_self=filter_self is True or filter_self == "true",
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class V2exConfig:
    token: str = ""
    enabled: bool = True

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "V2exConfig":
        return cls(
            token=str(data.get("token") or ""),
            enabled=bool(data.get("enabled", True)),
        )


@dataclass
class AppConfig:
    timezone: str
    cache_path: str
    github_notifications: GitHubNotificationsConfig
    github_user_events: GitHubUserEventsConfig
    v2ex: V2exConfig


def load_config(path: str) -> AppConfig:
    p = Path(path)
    data: Dict[str, Any] = yaml.safe_load(p.read_text(encoding="utf-8")) or {}

    notifications = dict(data.get("github_notifications") or {})
    user_events = dict(data.get("github_user_events") or {})
    v2ex = dict(data.get("v2ex") or {})

    # Secrets normally live in the environment (.env), not in the YAML file.
    github_token = os.environ.get("GITHUB_TOKEN", "")
    if not notifications.get("token"):
        notifications["token"] = github_token
    if not user_events.get("token"):
        user_events["token"] = github_token
    if not v2ex.get("token"):
        v2ex["token"] = os.environ.get("V2EX_TOKEN", "")

    return AppConfig(
        timezone=str(data.get("timezone", "Asia/Shanghai")),
        cache_path=str(data.get("cache_path", "/var/lib/feedcal/cache.json")),
        github_notifications=GitHubNotificationsConfig.from_mapping(notifications),
        github_user_events=GitHubUserEventsConfig.from_mapping(user_events),
        v2ex=V2exConfig.from_mapping(v2ex),
    )
