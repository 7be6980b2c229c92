"""
Base classes, errors and data records shared by the ingestion pipeline.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Current time as naive UTC, the representation stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# Errors
# =============================================================================

class IngestionError(Exception):
    """Base class for every failure raised by the ingestion pipeline."""


class InvalidSourceUrlError(IngestionError):
    """A URL offered for monitoring is malformed or not fetchable."""


class DuplicateSourceError(IngestionError):
    """The canonical URL is already being watched."""


class SourceNotFoundError(IngestionError):
    """No monitored source has the requested id."""


class BlockedNetworkError(IngestionError):
    """The request target failed the private-network guard."""


class RobotsDisallowedError(IngestionError):
    """robots.txt forbids fetching the target."""


class FetchError(IngestionError):
    """An outbound request did not produce a usable response."""


class FetchTimeoutError(FetchError):
    """The request exceeded its timeout."""


class FetchFailedError(FetchError):
    """The request failed, optionally with an HTTP status code."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FeedParseError(IngestionError):
    """A syndication document could not be parsed as XML."""


# =============================================================================
# Records
# =============================================================================

@dataclass
class FetchResponse:
    """Body of a successful fetch together with the validated URL it came from."""
    url: str
    status_code: int
    content: bytes
    text: str
    content_type: str = ""


@dataclass
class ParsedArticle:
    """
    Article as extracted from a feed or page, before tagging.

    This is the intermediate format between the parsers and the
    ArticleCandidate handed to the ingestion writer.
    """
    title: str
    url: str
    excerpt: str = ""
    published_at: Optional[datetime] = None

    def __hash__(self):
        return hash(self.url)

    def __eq__(self, other):
        if not isinstance(other, ParsedArticle):
            return False
        return self.url == other.url
