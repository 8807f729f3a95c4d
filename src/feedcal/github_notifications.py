from __future__ import annotations
from datetime import timedelta
from typing import Any, Callable, Dict, List

from .cache import cached_fetch
from .config import GitHubNotificationsConfig
from .errors import ConfigurationError, FeedError, TransientFetchError, with_prefix
from .github_api import API_ROOT, FAVICON, WEB_ROOT, build_headers, parse_json_array, parse_timestamp
from .host import Host
from .models import Event

ERROR_PREFIX = "Failed to fetch GitHub notifications"
CACHE_TTL = timedelta(minutes=10)
EVENT_DURATION = timedelta(minutes=30)
DEFAULT_COLOR = "#95A5A6"

REASON_LABELS: Dict[str, str] = {
    "mention": "@mention",
    "assign": "assign",
    "review_requested": "review",
    "subscribed": "subscribed",
    "author": "author",
    "manual": "manual",
    "security_alert": "security",
}

REASON_COLORS: Dict[str, str] = {
    "mention": "#FF6B6B",
    "assign": "#4ECDC4",
    "review_requested": "#45B7D1",
    "subscribed": "#96CEB4",
    "author": "#DDA0DD",
    "manual": "#98D8C8",
    "security_alert": "#DC3545",
}

REASON_DETAILS: Dict[str, str] = {
    "mention": "You were @mentioned in a comment",
    "assign": "You were assigned to this task",
    "review_requested": "Code review requested from you",
    "subscribed": "You subscribed to updates",
    "author": "You are the author",
    "manual": "Manually subscribed",
    "security_alert": "Security vulnerability found",
}


def reason_label(reason: str) -> str:
    return REASON_LABELS.get(reason) or str(reason)


def reason_color(reason: str) -> str:
    return REASON_COLORS.get(reason, DEFAULT_COLOR)


def notification_title(notification: Dict[str, Any]) -> str:
    label = reason_label(notification.get("reason", ""))
    repo_name = notification["repository"]["name"]
    subject = notification["subject"]["title"]
    return f"[{label}] {repo_name}: {subject}"


def notification_notes(notification: Dict[str, Any]) -> str:
    lines = [
        f"Repository: {notification['repository'].get('full_name')}",
        f"Subject: {notification['subject'].get('type')}",
        "Status: Unread" if notification.get("unread") else "Status: Read",
    ]
    details = REASON_DETAILS.get(notification.get("reason", ""), "")
    if details:
        lines.append(f"Details: {details}")
    return "\n".join(lines)


def notification_url(notification: Dict[str, Any]) -> str:
    subject_url = notification["subject"].get("url")
    if subject_url:
        url = subject_url.replace(f"{API_ROOT}/repos/", f"{WEB_ROOT}/", 1)
        return url.replace("/pulls/", "/pull/", 1)

    repository = notification["repository"]
    if repository.get("html_url"):
        return repository["html_url"]
    return f"{WEB_ROOT}/{repository.get('full_name')}"


def normalize_notification(notification: Dict[str, Any], format_date: Callable[[float], str]) -> Event:
    start = parse_timestamp(notification["updated_at"])
    end = start + EVENT_DURATION.total_seconds()
    return Event(
        title=notification_title(notification),
        start_date=format_date(start),
        end_date=format_date(end),
        color=reason_color(notification.get("reason", "")),
        notes=notification_notes(notification),
        icon=FAVICON,
        href=notification_url(notification),
    )


def build_url(cfg: GitHubNotificationsConfig) -> str:
    url = f"{API_ROOT}/notifications?per_page={cfg.limit}"
    if cfg.show_participating and not cfg.show_all:
        url += "&participating=true"
    if cfg.show_all:
        url += "&all=true"
    return url


def cache_key(cfg: GitHubNotificationsConfig) -> str:
    scope = "participating" if cfg.show_participating else "all"
    return f"github_notifications_{scope}_{cfg.limit}"


def _fetch(cfg: GitHubNotificationsConfig, host: Host) -> List[Event]:
    body = host.http.get(build_url(cfg), build_headers(cfg.token))
    notifications = parse_json_array(body)
    host.log(f"[GitHub notifications] processing {len(notifications)} notifications")

    events: List[Event] = []
    for notification in notifications:
        if not isinstance(notification, dict):
            continue
        reason = notification.get("reason")
        if cfg.notification_types and reason not in cfg.notification_types:
            host.log(f"[GitHub notifications] skipping type: {reason}")
            continue
        try:
            events.append(normalize_notification(notification, host.format_date))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            host.log(f"[GitHub notifications] skipping malformed notification: {e!r}")
    return events


def fetch_github_notifications(cfg: GitHubNotificationsConfig, host: Host) -> List[Event]:
    try:
        if not cfg.token or not cfg.token.strip():
            raise ConfigurationError("Please configure GitHub Personal Access Token")
        return cached_fetch(host.storage, cache_key(cfg), lambda: _fetch(cfg, host), CACHE_TTL)
    except FeedError as e:
        raise with_prefix(ERROR_PREFIX, e) from e
    except Exception as e:
        raise TransientFetchError(f"{ERROR_PREFIX}: {e}") from e
