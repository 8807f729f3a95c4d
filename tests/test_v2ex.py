from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import feedparser
import pytest

from feedcal.cache import merge_events, ttl_until_end_of_day
from feedcal.config import V2exConfig
from feedcal.errors import ConfigurationError, TransientFetchError
from feedcal.host import make_date_formatter
from feedcal.models import Event
from feedcal.v2ex import (
    FAVORITE,
    MENTION,
    OTHER,
    REPLY,
    THANKS,
    cache_key,
    clean_content,
    detect_type,
    display_title,
    extract_tag_attribute,
    extract_tag_content,
    fetch_v2ex_notifications,
    hash_string,
    normalize_entry,
    parse_feed,
)

TZ = ZoneInfo("Asia/Shanghai")

FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>V2EX 的提醒</title>
  <id>https://www.v2ex.com/n/secret.xml</id>
  <updated>2026-03-14T03:00:00Z</updated>
  <entry>
    <title>alice 在 选购显示器 里回复了你</title>
    <link rel="alternate" type="text/html" href="https://www.v2ex.com/t/100#reply5" />
    <id>tag:www.v2ex.com,2026-03-14:/n/1</id>
    <published>2026-03-14T01:00:00Z</published>
    <updated>2026-03-14T01:00:00Z</updated>
    <author><name>alice</name></author>
    <content type="html"><![CDATA[<p>try the <b>27 inch</b> one &amp; see</p>]]></content>
  </entry>
  <entry>
    <title></title>
    <link rel="alternate" type="text/html" href="https://www.v2ex.com/t/200#reply1" />
    <id>tag:www.v2ex.com,2026-03-14:/n/2</id>
    <published>2026-03-14T02:00:00Z</published>
    <updated>2026-03-14T02:00:00Z</updated>
    <author><name>bob</name></author>
    <content type="html"><![CDATA[<p>a reply of yours</p>]]></content>
  </entry>
  <entry>
    <title></title>
    <link rel="alternate" type="text/html" href="https://www.v2ex.com/t/300" />
    <id>tag:www.v2ex.com,2026-03-14:/n/3</id>
    <published>2026-03-14T03:00:00Z</published>
    <updated>2026-03-14T03:00:00Z</updated>
  </entry>
  <entry>
    <title>no timestamp here</title>
    <link rel="alternate" type="text/html" href="https://www.v2ex.com/t/400" />
    <id>tag:www.v2ex.com,2026-03-14:/n/4</id>
  </entry>
</feed>
"""


def _noop(_message):
    return None


def _event(href, start, title="cached"):
    return Event(
        title=title,
        start_date=start,
        end_date=start,
        color="#95A5A6",
        href=href,
        icon="https://www.v2ex.com/static/favicon.ico",
    )


def test_detect_type_rules_first_match_wins():
    assert detect_type("alice 在 x 里回复了你", "") == REPLY
    assert detect_type("alice 感谢了你在 x 里的回复", "") == THANKS
    assert detect_type("alice 在 x 里提到了你", "") == MENTION
    assert detect_type("alice 收藏了你发布的主题", "") == FAVORITE
    assert detect_type("系统消息", "") == OTHER
    # reply is checked before thanks
    assert detect_type("回复了 并且 感谢了", "") == REPLY


def test_detect_type_blank_title_uses_content():
    assert detect_type("", "<p>hello</p>") == THANKS
    assert detect_type("   ", "<p> </p>") == FAVORITE
    assert detect_type("", "") == FAVORITE


def test_display_title_for_blank_titles():
    assert display_title("", THANKS, "bob") == "bob 感谢了你的回复"
    assert display_title("", THANKS, "") == "有人 感谢了你的回复"
    assert display_title("", FAVORITE, "") == "有人 收藏了你的主题"
    assert display_title("", OTHER, "carol") == "carol 发送了新消息"
    assert display_title("kept as is", OTHER, "carol") == "kept as is"


def test_clean_content_strips_markup_and_entities():
    assert clean_content("<p>a&nbsp;<b>b</b>\n\n&quot;c&quot; &lt;d&gt;</p>") == 'a b "c" <d>'
    assert clean_content(None) == ""


def test_extract_helpers_return_empty_when_missing():
    entry = feedparser.parse(FEED.encode("utf-8")).entries[2]

    assert extract_tag_content(entry, "title") == ""
    assert extract_tag_content(entry, "content") == ""
    assert extract_tag_content(entry, "name", parent="author") == ""
    assert extract_tag_attribute(entry, "link", "href") == "https://www.v2ex.com/t/300"
    assert extract_tag_attribute(entry, "link", "hreflang") == ""


def test_parse_feed_maps_entries_and_skips_undated_ones():
    events = parse_feed(FEED, make_date_formatter(TZ), _noop)

    assert [e.href for e in events] == [
        "https://www.v2ex.com/t/100#reply5",
        "https://www.v2ex.com/t/200#reply1",
        "https://www.v2ex.com/t/300",
    ]
    reply, thanks, favorite = events

    assert reply.title == "alice 在 选购显示器 里回复了你"
    assert reply.color == "#4ECDC4"
    assert reply.notes == "try the 27 inch one & see"
    assert reply.start_date == "2026-03-14 09:00:00"
    assert reply.end_date == "2026-03-14 09:30:00"

    assert thanks.title == "bob 感谢了你的回复"
    assert thanks.color == "#FFD93D"
    assert thanks.notes == "a reply of yours"

    assert favorite.title == "有人 收藏了你的主题"
    assert favorite.color == "#FF8B13"
    assert favorite.notes is None


def test_merge_keeps_one_event_per_href_preferring_fresh():
    cached = [_event("h1", "2026-03-14 08:00:00"), _event("h2", "2026-03-14 07:00:00")]
    fresh = [_event("h1", "2026-03-14 08:00:00", title="fresh"), _event("h3", "2026-03-14 09:00:00")]

    merged = merge_events(cached, fresh)

    assert [e.href for e in merged] == ["h3", "h1", "h2"]
    assert [e for e in merged if e.href == "h1"] == [fresh[0]]
    starts = [e.start_date for e in merged]
    assert starts == sorted(starts, reverse=True)


def test_merge_drops_events_without_href():
    assert merge_events([_event("", "2026-03-14 08:00:00")], []) == []


def test_ttl_is_rest_of_day_with_five_minute_floor():
    assert ttl_until_end_of_day(datetime(2026, 3, 14, 23, 59, 58, tzinfo=TZ)) == timedelta(minutes=5)
    assert ttl_until_end_of_day(datetime(2026, 3, 14, 12, 0, tzinfo=TZ)) == timedelta(
        hours=11, minutes=59, seconds=59, milliseconds=999
    )


def test_hash_and_daily_cache_key(make_host):
    assert hash_string("abc") == "17862"
    assert hash_string("") == "0"

    host = make_host(now=datetime(2026, 3, 4, 8, 0, tzinfo=TZ))
    assert cache_key("abc", host) == "v2ex_notifications_17862_2026-3-4"


def test_fetch_merges_with_todays_cache_and_stores_result(make_host):
    host = make_host(FEED)
    key = cache_key(" secret ", host)
    host.storage.set(key, [_event("https://www.v2ex.com/t/50", "2026-03-14 08:00:00").to_dict()], timedelta(hours=1))

    events = fetch_v2ex_notifications(V2exConfig(token=" secret "), host)

    assert host.http.calls[0][0] == "https://www.v2ex.com/n/secret.xml"
    assert [e.href for e in events] == [
        "https://www.v2ex.com/t/300",
        "https://www.v2ex.com/t/200#reply1",
        "https://www.v2ex.com/t/100#reply5",
        "https://www.v2ex.com/t/50",
    ]
    assert [Event.from_dict(d) for d in host.storage.get(key)] == events


def test_fetch_failure_returns_stale_cache(make_host):
    host = make_host(error=TransientFetchError("timed out"))
    cached = [_event("https://www.v2ex.com/t/50", "2026-03-14 08:00:00")]
    host.storage.set(cache_key("secret", host), [e.to_dict() for e in cached], timedelta(hours=1))

    assert fetch_v2ex_notifications(V2exConfig(token="secret"), host) == cached


def test_stale_cache_survives_non_feed_errors_from_the_http_client(make_host):
    host = make_host(error=ConnectionError("socket closed"))
    cached = [_event("https://www.v2ex.com/t/50", "2026-03-14 08:00:00")]
    host.storage.set(cache_key("secret", host), [e.to_dict() for e in cached], timedelta(hours=1))

    assert fetch_v2ex_notifications(V2exConfig(token="secret"), host) == cached


def test_non_feed_error_without_cache_is_prefixed(make_host):
    host = make_host(error=ConnectionError("socket closed"))

    with pytest.raises(TransientFetchError, match="^Failed to fetch V2EX notifications: socket closed$"):
        fetch_v2ex_notifications(V2exConfig(token="secret"), host)


def test_normalizing_an_entry_twice_gives_equal_events():
    entry = feedparser.parse(FEED.encode("utf-8")).entries[0]
    fmt = make_date_formatter(TZ)

    assert normalize_entry(entry, fmt) == normalize_entry(entry, fmt)


def test_fetch_failure_without_cache_raises(make_host):
    with pytest.raises(TransientFetchError, match="^Failed to fetch V2EX notifications: timed out$"):
        fetch_v2ex_notifications(V2exConfig(token="secret"), make_host(error=TransientFetchError("timed out")))


def test_empty_body_without_cache_raises(make_host):
    with pytest.raises(TransientFetchError, match="empty response"):
        fetch_v2ex_notifications(V2exConfig(token="secret"), make_host(""))


def test_missing_token_is_a_configuration_error(make_host):
    host = make_host(FEED)

    with pytest.raises(ConfigurationError):
        fetch_v2ex_notifications(V2exConfig(token=""), host)
    assert host.http.calls == []
