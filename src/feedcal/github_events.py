from __future__ import annotations
from datetime import timedelta
from typing import Any, Callable, Dict, List
from urllib.parse import quote

from .cache import cached_fetch
from .config import GitHubUserEventsConfig
from .errors import ConfigurationError, FeedError, TransientFetchError, with_prefix
from .github_api import API_ROOT, FAVICON, WEB_ROOT, build_headers, parse_json_array, parse_timestamp
from .host import Host
from .models import Event

ERROR_PREFIX = "Failed to fetch GitHub user events"
CACHE_TTL = timedelta(minutes=30)
DEFAULT_COLOR = "#666666"

EVENT_COLORS: Dict[str, str] = {
    "PushEvent": "#4285f4",
    "CreateEvent": "#ff6d01",
    "DeleteEvent": "#ea4335",
    "ForkEvent": "#34a853",
    "WatchEvent": "#f1c232",
    "IssuesEvent": "#ea4335",
    "IssueCommentEvent": "#ea4335",
    "PullRequestEvent": "#9b59b6",
    "PullRequestReviewEvent": "#9b59b6",
    "ReleaseEvent": "#ff6d01",
}


def event_color(event_type: str) -> str:
    return EVENT_COLORS.get(event_type, DEFAULT_COLOR)


def _number(obj: Any) -> Any:
    return obj.get("number", "") if obj else ""


def event_title(event: Dict[str, Any]) -> str:
    actor = event["actor"]["login"]
    repo = event["repo"]["name"] if event.get("repo") else ""
    payload = event.get("payload") or {}
    event_type = event.get("type", "")

    if event_type == "PushEvent":
        commits = payload.get("commits") or []
        if not commits:
            # force pushes and branch deletions carry no commits
            return f"{actor} pushed to {repo}"
        return f"{actor} pushed {len(commits)} commits to {repo}"

    if event_type == "CreateEvent":
        ref_type = payload.get("ref_type")
        if ref_type == "repository":
            return f"{actor} created repository {repo}"
        if ref_type in ("branch", "tag"):
            return f"{actor} created {ref_type} {payload.get('ref')} in {repo}"
        return f"{actor} created {ref_type} in {repo}"

    if event_type == "DeleteEvent":
        return f"{actor} deleted {payload.get('ref_type')} {payload.get('ref')} in {repo}"
    if event_type == "ForkEvent":
        return f"{actor} forked {repo}"
    if event_type == "WatchEvent":
        return f"{actor} starred {repo}"
    if event_type == "IssuesEvent":
        return f"{actor} {payload.get('action')} issue #{_number(payload.get('issue'))} in {repo}"
    if event_type == "IssueCommentEvent":
        return f"{actor} commented on issue #{_number(payload.get('issue'))} in {repo}"
    if event_type == "PullRequestEvent":
        return f"{actor} {payload.get('action')} PR #{_number(payload.get('pull_request'))} in {repo}"
    if event_type == "PullRequestReviewEvent":
        return f"{actor} reviewed PR #{_number(payload.get('pull_request'))} in {repo}"
    if event_type == "ReleaseEvent":
        release = payload.get("release") or {}
        return f"{actor} released {release.get('tag_name', '')} in {repo}"

    return f"{actor} {event_type.replace('Event', '', 1)} in {repo}"


def event_notes(event: Dict[str, Any]) -> str:
    notes = ["GitHub Activity"]
    if event.get("repo"):
        notes.append(f"Repository: {event['repo']['name']}")

    payload = event.get("payload") or {}
    event_type = event.get("type")
    if event_type == "PushEvent":
        commits = payload.get("commits") or []
        if commits:
            notes.append(f"Latest commit: {commits[0].get('message')}")
    elif event_type in ("IssuesEvent", "PullRequestEvent"):
        item = payload.get("issue") or payload.get("pull_request")
        if item and item.get("title"):
            notes.append(f"Title: {item['title']}")
    elif event_type == "ReleaseEvent":
        release = payload.get("release")
        if release:
            notes.append(f"Version: {release.get('tag_name')}")
            if release.get("name"):
                notes.append(f"Name: {release['name']}")

    return "\n".join(notes)


def event_url(event: Dict[str, Any]) -> str:
    if not event.get("repo"):
        return f"{WEB_ROOT}/{event['actor']['login']}"

    base = f"{WEB_ROOT}/{event['repo']['name']}"
    payload = event.get("payload") or {}
    event_type = event.get("type")

    if event_type == "IssuesEvent" and payload.get("issue"):
        return f"{base}/issues/{payload['issue'].get('number')}"
    if event_type == "PullRequestEvent" and payload.get("pull_request"):
        return f"{base}/pull/{payload['pull_request'].get('number')}"
    if event_type == "ReleaseEvent" and payload.get("release"):
        return f"{base}/releases/tag/{payload['release'].get('tag_name')}"
    if event_type == "CreateEvent":
        if payload.get("ref_type") == "branch":
            return f"{base}/tree/{payload.get('ref')}"
        if payload.get("ref_type") == "tag":
            return f"{base}/releases/tag/{payload.get('ref')}"
    return base


def normalize_event(event: Dict[str, Any], format_date: Callable[[float], str]) -> Event:
    when = format_date(parse_timestamp(event["created_at"]))
    return Event(
        title=event_title(event),
        start_date=when,
        end_date=when,
        color=event_color(event.get("type", "")),
        notes=event_notes(event),
        icon=event["actor"].get("avatar_url") or FAVICON,
        href=event_url(event),
    )


def build_url(cfg: GitHubUserEventsConfig) -> str:
    return f"{API_ROOT}/users/{quote(cfg.username, safe='')}/events/public?per_page={cfg.limit}"


def cache_key(cfg: GitHubUserEventsConfig) -> str:
    return f"github_user_events_{cfg.username}"


def _fetch(cfg: GitHubUserEventsConfig, host: Host) -> List[Event]:
    body = host.http.get(build_url(cfg), build_headers(cfg.token))

    events: List[Event] = []
    for item in parse_json_array(body):
        if not isinstance(item, dict):
            continue
        actor = item.get("actor")
        if not isinstance(actor, dict):
            host.log(f"[GitHub events] skipping event without an actor: {item.get('id')}")
            continue
        if cfg.filter_self and actor.get("login") == cfg.username:
            continue
        try:
            events.append(normalize_event(item, host.format_date))
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            host.log(f"[GitHub events] skipping malformed event: {e!r}")
    return events


def fetch_github_user_events(cfg: GitHubUserEventsConfig, host: Host) -> List[Event]:
    try:
        if not cfg.username:
            raise ConfigurationError("Please configure username parameter")
        return cached_fetch(host.storage, cache_key(cfg), lambda: _fetch(cfg, host), CACHE_TTL)
    except FeedError as e:
        raise with_prefix(ERROR_PREFIX, e) from e
    except Exception as e:
        raise TransientFetchError(f"{ERROR_PREFIX}: {e}") from e
