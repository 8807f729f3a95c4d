from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import timedelta
import html
import re
from typing import Any, Callable, List, Optional

import feedparser

from .cache import cached_fetch, merge_events, ttl_until_end_of_day
from .config import V2exConfig
from .errors import ConfigurationError, FeedError, TransientFetchError, UpstreamFormatError, with_prefix
from .host import Host
from .models import Event

ERROR_PREFIX = "Failed to fetch V2EX notifications"
FEED_URL = "https://www.v2ex.com/n/{token}.xml"
FAVICON = "https://www.v2ex.com/static/favicon.ico"
EVENT_DURATION = timedelta(minutes=30)
ANONYMOUS = "有人"

_TAG_RE = re.compile(r"<[^>]*>")
_SPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class EntryType:
    id: str
    label: str


REPLY = EntryType("reply", "回复")
THANKS = EntryType("thanks", "点赞")
MENTION = EntryType("mention", "提及")
FAVORITE = EntryType("favorite", "收藏")
OTHER = EntryType("other", "通知")

TYPE_COLORS = {
    REPLY.id: "#4ECDC4",
    THANKS.id: "#FFD93D",
    MENTION.id: "#FF6B6B",
    FAVORITE.id: "#FF8B13",
    OTHER.id: "#95A5A6",
}

# Ordered; the first rule whose needles occur in the title wins.
_TITLE_RULES = [
    (("回复了你", "回复了"), REPLY),
    (("感谢了你", "感谢了"), THANKS),
    (("提到你", "提到了你"), MENTION),
    (("收藏了",), FAVORITE),
]


def clean_content(content: Optional[str]) -> str:
    """Strip tags and entities from entry HTML, collapsing whitespace."""
    if not content:
        return ""
    text = html.unescape(_TAG_RE.sub(" ", content))
    return _SPACE_RE.sub(" ", text.strip())


def detect_type(title: str, content: str) -> EntryType:
    # V2EX leaves the title blank for thanks (content present) and favorites (no content).
    if not title or not title.strip():
        return THANKS if clean_content(content) else FAVORITE

    text = title.lower()
    for needles, entry_type in _TITLE_RULES:
        if any(needle in text for needle in needles):
            return entry_type
    return OTHER


def type_color(entry_type: EntryType) -> str:
    return TYPE_COLORS.get(entry_type.id, TYPE_COLORS[OTHER.id])


def display_title(title: str, entry_type: EntryType, author: str) -> str:
    if title:
        return title
    who = author or ANONYMOUS
    if entry_type == THANKS:
        return f"{who} 感谢了你的回复"
    if entry_type == FAVORITE:
        return f"{who} 收藏了你的主题"
    return f"{who} 发送了新消息"


def extract_tag_content(entry: Any, tag: str, parent: Optional[str] = None) -> str:
    """Text of ``tag`` in a parsed entry (or inside ``parent``); "" when absent."""
    node = entry.get(f"{parent}_detail") if parent else entry
    if not node:
        return ""
    value = node.get(tag)
    if isinstance(value, list):
        # <content> may repeat; feedparser keeps a list of {"value": ...}
        value = value[0].get("value") if value else None
    return str(value).strip() if value else ""


def extract_tag_attribute(entry: Any, tag: str, attr: str) -> str:
    """Attribute ``attr`` of the first ``tag`` element carrying it; "" when absent."""
    for element in entry.get(f"{tag}s") or []:
        if element.get(attr):
            return str(element[attr])
    element = entry.get(tag)
    if isinstance(element, dict) and element.get(attr):
        return str(element[attr])
    return ""


def normalize_entry(entry: Any, format_date: Callable[[float], str]) -> Event:
    published = entry.get("published_parsed")
    if not published:
        raise ValueError(f"entry has no usable <published>: {extract_tag_content(entry, 'published')!r}")

    title = extract_tag_content(entry, "title")
    content = extract_tag_content(entry, "content")
    author = extract_tag_content(entry, "name", parent="author")
    entry_type = detect_type(title, content)

    start = calendar.timegm(published)
    return Event(
        title=display_title(title, entry_type, author),
        start_date=format_date(start),
        end_date=format_date(start + EVENT_DURATION.total_seconds()),
        color=type_color(entry_type),
        notes=None if entry_type == FAVORITE else clean_content(content),
        icon=FAVICON,
        href=extract_tag_attribute(entry, "link", "href"),
    )


def parse_feed(body: str, format_date: Callable[[float], str], log: Callable[[str], None]) -> List[Event]:
    feed = feedparser.parse(body.encode("utf-8"))
    if feed.bozo and not feed.entries and not feed.get("version"):
        raise UpstreamFormatError(f"V2EX returned an unreadable feed: {feed.get('bozo_exception')}")

    events: List[Event] = []
    for entry in feed.entries:
        try:
            events.append(normalize_entry(entry, format_date))
        except (KeyError, TypeError, ValueError) as e:
            log(f"[V2EX] skipping malformed entry: {e}")
    return events


def hash_string(value: str) -> str:
    """31-multiplier 32-bit string hash, as lowercase hex of its absolute value."""
    h = 0
    for ch in value:
        h = (h * 31 + ord(ch)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return format(abs(h), "x")


def cache_key(token: str, host: Host) -> str:
    now = host.now()
    return f"v2ex_notifications_{hash_string(token)}_{now.year}-{now.month}-{now.day}"


def _fetch(cfg: V2exConfig, host: Host) -> List[Event]:
    body = host.http.get(FEED_URL.format(token=cfg.token.strip()))
    if not body:
        raise TransientFetchError("empty response from the V2EX feed")
    return parse_feed(body, host.format_date, host.log)


def fetch_v2ex_notifications(cfg: V2exConfig, host: Host) -> List[Event]:
    try:
        if not cfg.token or not cfg.token.strip():
            raise ConfigurationError("Please configure your V2EX private RSS token")
        return cached_fetch(
            host.storage,
            cache_key(cfg.token, host),
            lambda: _fetch(cfg, host),
            ttl_until_end_of_day(host.now()),
            merge=merge_events,
            log=host.log,
        )
    except FeedError as e:
        raise with_prefix(ERROR_PREFIX, e) from e
    except Exception as e:
        raise TransientFetchError(f"{ERROR_PREFIX}: {e}") from e
