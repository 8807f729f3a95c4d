from __future__ import annotations

import json
import logging
import sys
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .errors import FeedError
from .github_events import fetch_github_user_events
from .github_notifications import fetch_github_notifications
from .host import Host
from .models import Event
from .storage import JsonFileStorage
from .v2ex import fetch_v2ex_notifications

CONFIG_PATH_DEFAULT = "/etc/feedcal/config.yaml"

SourceRunner = Tuple[Callable[[AppConfig], Any], Callable[[Any, Host], List[Event]]]

SOURCES: Dict[str, SourceRunner] = {
    "github_notifications": (lambda cfg: cfg.github_notifications, fetch_github_notifications),
    "github_user_events": (lambda cfg: cfg.github_user_events, fetch_github_user_events),
    "v2ex": (lambda cfg: cfg.v2ex, fetch_v2ex_notifications),
}


def run_once(
    config_path: str = CONFIG_PATH_DEFAULT,
    cache_path: Optional[str] = None,
    sources: Optional[Sequence[str]] = None,
    as_json: bool = False,
    host: Optional[Host] = None,
) -> Dict[str, List[Event]]:
    load_dotenv()
    cfg = load_config(config_path)
    if host is None:
        host = Host(tz=ZoneInfo(cfg.timezone), storage=JsonFileStorage(cache_path or cfg.cache_path))

    # keep stdout clean for the JSON document
    out = sys.stderr if as_json else sys.stdout

    results: Dict[str, List[Event]] = {}
    for name in sources or SOURCES:
        get_settings, fetch = SOURCES[name]
        settings = get_settings(cfg)
        if not settings.enabled:
            print(f"{name} disabled; skipping", file=out)
            continue
        try:
            events = fetch(settings, host)
        except FeedError as e:
            print(f"{name} fetch failed; continuing without it. Error: {e}", file=out)
            continue
        results[name] = events
        print(f"{name}: {len(events)} events", file=out)

    if as_json:
        payload = {name: [e.to_dict() for e in events] for name, events in results.items()}
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for name, events in results.items():
            for e in events:
                print(f"  [{name}] {e.start_date}  {e.title}  {e.href}")
    return results


def main():
    import argparse

    ap = argparse.ArgumentParser()
    ap.add_argument("--config", default=CONFIG_PATH_DEFAULT)
    ap.add_argument("--cache", default=None, help="cache file (defaults to cache_path in the config)")
    ap.add_argument("--source", action="append", choices=sorted(SOURCES), dest="sources")
    ap.add_argument("--json", action="store_true")
    ap.add_argument("-v", "--verbose", action="store_true")
    args = ap.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    run_once(config_path=args.config, cache_path=args.cache, sources=args.sources, as_json=args.json)


if __name__ == "__main__":
    main()
