from __future__ import annotations

from datetime import datetime
import json
from typing import Any, Dict, List

from .errors import UpstreamFormatError
from .host import BROWSER_USER_AGENT

API_ROOT = "https://api.github.com"
WEB_ROOT = "https://github.com"
FAVICON = "https://github.com/favicon.ico"


def build_headers(token: str = "") -> Dict[str, str]:
    headers = {
        "User-Agent": BROWSER_USER_AGENT,
        "Accept": "application/vnd.github.v3+json",
    }
    if token and token.strip():
        headers["Authorization"] = "token " + token.strip()
    return headers


def parse_json_array(body: str) -> List[Any]:
    if not body or not body.strip():
        raise UpstreamFormatError("GitHub API returned empty response")
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise UpstreamFormatError("GitHub API returned non-JSON data") from e
    if not isinstance(payload, list):
        if isinstance(payload, dict) and payload.get("message"):
            raise UpstreamFormatError(f"GitHub API error: {payload['message']}")
        raise UpstreamFormatError("GitHub API returned invalid data format")
    return payload


def parse_timestamp(value: str) -> float:
    """ISO 8601 ("2024-05-01T12:00:00Z") -> unix seconds."""
    return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
