from __future__ import annotations


class FeedError(Exception):
    """Base class for every error a feed source raises."""


class ConfigurationError(FeedError):
    """A required credential or identifier is missing or blank."""


class UpstreamFormatError(FeedError):
    """The upstream answered, but not with the payload shape we expect."""


class TransientFetchError(FeedError):
    """The request itself failed (network error, server error)."""


def with_prefix(prefix: str, err: FeedError) -> FeedError:
    """Return a copy of ``err`` whose message names the failing source."""
    return type(err)(f"{prefix}: {err}")
