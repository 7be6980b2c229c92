"""
RSS/Atom feed parsing.

Handles RSS 2.0, RSS 1.0 (RDF) and Atom documents and normalizes their
items to ParsedArticle records.
"""

from datetime import datetime
from email.utils import parsedate_to_datetime
from html import unescape
from typing import Optional, Union
from xml.etree import ElementTree
import logging
import re

from sourcewatch.services.data_ingestion.base import FeedParseError, ParsedArticle

logger = logging.getLogger(__name__)

# XML namespaces
ATOM_NS = "{http://www.w3.org/2005/Atom}"
RSS1_NS = "{http://purl.org/rss/1.0/}"
DC_NS = "{http://purl.org/dc/elements/1.1/}"
CONTENT_NS = "{http://purl.org/rss/1.0/modules/content/}"

_TAG_RE = re.compile(r"<[^>]+>")


def clean_html(html: Optional[str]) -> str:
    """Strip markup, decode entities and collapse whitespace."""
    if not html:
        return ""
    # Entity-encoded markup is common in descriptions, so decode before stripping
    text = _TAG_RE.sub(" ", unescape(html))
    return " ".join(text.split())


def parse_rss_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse RSS date format (RFC 822), falling back to ISO 8601."""
    if not date_str:
        return None

    try:
        return parsedate_to_datetime(date_str.strip())
    except (ValueError, TypeError, IndexError):
        pass

    return parse_iso_date(date_str)


def parse_iso_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse Atom/ISO date format."""
    if not date_str:
        return None
    date_str = date_str.strip()

    try:
        return datetime.fromisoformat(date_str.replace("Z", "+00:00"))
    except ValueError:
        pass

    try:
        # Try without timezone
        return datetime.fromisoformat(date_str[:19])
    except ValueError:
        return None


class FeedParser:
    """
    Syndication feed parser.

    Items without a title or link are dropped silently; a feed with no
    usable items yields an empty list.
    """

    def __init__(self, excerpt_max_chars: int = 500):
        self.excerpt_max_chars = excerpt_max_chars

    def parse(self, document: Union[str, bytes]) -> list[ParsedArticle]:
        """
        Parse a feed document into articles.

        Args:
            document: Raw feed XML. Bytes are preferred so the declared
                encoding is honoured.

        Returns:
            Articles in document order

        Raises:
            FeedParseError: The document is not well-formed XML
        """
        root = self._parse_root(document)

        if root.tag == f"{ATOM_NS}feed":
            entries = root.findall(f"{ATOM_NS}entry")
            parse_item = self._parse_atom_entry
        else:
            entries = root.findall(".//item") + root.findall(f".//{RSS1_NS}item")
            parse_item = self._parse_rss_item

        articles = []
        for entry in entries:
            article = parse_item(entry)
            if article:
                articles.append(article)

        logger.debug(f"Parsed {len(articles)} of {len(entries)} feed items")
        return articles

    def feed_title(self, document: Union[str, bytes]) -> Optional[str]:
        """Title of the channel or feed, if the document parses and has one."""
        try:
            root = self._parse_root(document)
        except FeedParseError:
            return None

        for path in (
            f"{ATOM_NS}title",
            "channel/title",
            f"{RSS1_NS}channel/{RSS1_NS}title",
        ):
            title = clean_html(root.findtext(path))
            if title:
                return title
        return None

    def _parse_root(self, document: Union[str, bytes]) -> ElementTree.Element:
        try:
            return ElementTree.fromstring(document.lstrip())
        except (ElementTree.ParseError, ValueError) as e:
            raise FeedParseError(f"Failed to parse feed: {e}") from e

    def _excerpt(self, *candidates: Optional[str]) -> str:
        for candidate in candidates:
            text = clean_html(candidate)
            if text:
                return text[: self.excerpt_max_chars]
        return ""

    def _parse_rss_item(self, item: ElementTree.Element) -> Optional[ParsedArticle]:
        """Parse a single RSS 2.0 or RSS 1.0 item."""
        title = self._rss_text(item, "title")
        if not title:
            return None

        link = self._rss_text(item, "link")
        if not link:
            return None

        excerpt = self._excerpt(
            item.findtext(f"{CONTENT_NS}encoded"),
            self._rss_text(item, "description"),
            item.findtext("summary"),
        )

        published_at = parse_rss_date(item.findtext("pubDate")) or parse_iso_date(
            item.findtext(f"{DC_NS}date")
        )

        return ParsedArticle(
            title=clean_html(title),
            url=link,
            excerpt=excerpt,
            published_at=published_at,
        )

    @staticmethod
    def _rss_text(item: ElementTree.Element, name: str) -> str:
        value = item.findtext(name)
        if value is None:
            value = item.findtext(f"{RSS1_NS}{name}")
        return (value or "").strip()

    def _parse_atom_entry(self, entry: ElementTree.Element) -> Optional[ParsedArticle]:
        """Parse a single Atom entry."""
        title = clean_html(entry.findtext(f"{ATOM_NS}title"))
        if not title:
            return None

        link = None
        for link_elem in entry.findall(f"{ATOM_NS}link"):
            rel = link_elem.get("rel", "alternate")
            if rel == "alternate" and link_elem.get("href"):
                link = link_elem.get("href").strip()
                break
        if not link:
            return None

        excerpt = self._excerpt(
            self._atom_text(entry, "content"),
            self._atom_text(entry, "summary"),
        )

        published_at = parse_iso_date(entry.findtext(f"{ATOM_NS}published")) or parse_iso_date(
            entry.findtext(f"{ATOM_NS}updated")
        )

        return ParsedArticle(
            title=title,
            url=link,
            excerpt=excerpt,
            published_at=published_at,
        )

    @staticmethod
    def _atom_text(entry: ElementTree.Element, name: str) -> Optional[str]:
        """Text of an Atom text construct, including inline XHTML content."""
        elem = entry.find(f"{ATOM_NS}{name}")
        if elem is None:
            return None
        if elem.get("type") == "xhtml":
            return " ".join(elem.itertext())
        return elem.text
