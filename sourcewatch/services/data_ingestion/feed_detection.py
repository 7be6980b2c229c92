"""
Feed-type detection for newly registered sources.

Decides whether a URL is a syndication feed or an ordinary page, follows
advertised feed links on pages, and proposes a display name.
"""

import logging
from typing import Optional

from bs4 import BeautifulSoup

from sourcewatch.models.domain import DetectedFeed, SourceKind
from sourcewatch.services.data_ingestion.base import FetchResponse, IngestionError
from sourcewatch.services.data_ingestion.rss import FeedParser
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher
from sourcewatch.services.data_ingestion.urls import canonicalize_url, hostname_label

logger = logging.getLogger(__name__)

FEED_CONTENT_TYPES = ("xml", "rss", "atom")
FEED_LINK_TYPES = ("application/rss+xml", "application/atom+xml")
FEED_HREF_HINTS = ("rss", "feed", "atom")


def looks_like_feed(response: FetchResponse) -> bool:
    """Content-type or leading markup says this body is RSS/Atom."""
    content_type = response.content_type.lower()
    if "html" not in content_type and any(t in content_type for t in FEED_CONTENT_TYPES):
        return True

    head = response.text.lstrip()
    if head.startswith("<rss") or head.startswith("<feed"):
        return True
    if head.startswith("<?xml") and "<html" not in head[:2048].lower():
        return True
    return "<channel>" in head or "<entry>" in head


def has_feed_markers(text: str) -> bool:
    return "<rss" in text or "<feed" in text or "<channel>" in text or "<rdf:RDF" in text


def find_feed_links(soup: BeautifulSoup, page_url: str, limit: int = 3) -> list[str]:
    """
    Feed URLs advertised by a page, best candidates first.

    Order: <link rel="alternate"> with an RSS/Atom type, then anchors whose
    href or text mentions rss/feed/atom. Conventional paths such as /feed or
    /rss.xml are caught by the anchor hints. Only URLs present in the markup
    are returned.
    """
    hrefs: list[str] = []

    for link in soup.find_all("link", href=True):
        rel = [r.lower() for r in (link.get("rel") or [])]
        link_type = (link.get("type") or "").lower()
        if "alternate" in rel and link_type in FEED_LINK_TYPES:
            hrefs.append(link["href"])

    anchors = soup.find_all("a", href=True)
    for anchor in anchors:
        haystack = f"{anchor['href']} {anchor.get_text(' ')}".lower()
        if any(hint in haystack for hint in FEED_HREF_HINTS):
            hrefs.append(anchor["href"])

    candidates: list[str] = []
    for href in hrefs:
        try:
            url = canonicalize_url(href, base=page_url)
        except IngestionError:
            continue
        if url != page_url and url not in candidates:
            candidates.append(url)
        if len(candidates) >= limit:
            break
    return candidates


class FeedDetector:
    """
    Classifies a URL as feed or page.

    The initial fetch failing is a hard error. Anything that goes wrong
    while following advertised feed links, including the private-network
    guard rejecting a link, only degrades the result to a page.
    """

    def __init__(
        self,
        fetcher: SafeFetcher,
        feed_parser: Optional[FeedParser] = None,
        max_candidates: int = 3,
    ):
        self.fetcher = fetcher
        self.feed_parser = feed_parser or FeedParser()
        self.max_candidates = max_candidates

    async def detect(self, url: str) -> DetectedFeed:
        """
        Fetch a URL and classify it.

        Args:
            url: Canonical URL offered for monitoring

        Returns:
            DetectedFeed with the URL to poll and a proposed name

        Raises:
            BlockedNetworkError: The URL failed the guard
            FetchError: The URL could not be fetched
        """
        response = await self.fetcher.fetch(url)

        if looks_like_feed(response):
            logger.info(f"{url} is a feed")
            return DetectedFeed(
                kind=SourceKind.FEED,
                feed_url=url,
                name=self.feed_parser.feed_title(response.content) or hostname_label(url),
            )

        soup = BeautifulSoup(response.text, "html.parser")
        page_title = _page_title(soup)

        for candidate in find_feed_links(soup, url, limit=self.max_candidates):
            try:
                feed_response = await self.fetcher.fetch(candidate)
            except IngestionError as e:
                logger.info(f"Advertised feed {candidate} not usable: {e}")
                continue

            if has_feed_markers(feed_response.text):
                logger.info(f"{url} advertises feed {candidate}")
                return DetectedFeed(
                    kind=SourceKind.FEED,
                    feed_url=candidate,
                    name=(
                        self.feed_parser.feed_title(feed_response.content)
                        or page_title
                        or hostname_label(url)
                    ),
                )

        logger.info(f"{url} is an HTML page")
        return DetectedFeed(
            kind=SourceKind.PAGE,
            feed_url=url,
            name=page_title or hostname_label(url),
        )


def _page_title(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    title = " ".join(soup.title.get_text(" ").split())
    return title or None
