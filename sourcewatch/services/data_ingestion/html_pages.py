"""
Heuristic article extraction from ordinary HTML news pages.

Pages without a feed are scanned for repeated article containers. The
container selectors are an ordered list of strategy objects: the first
strategy that yields at least one article is used exclusively, and
strategies are never merged. Site-specific strategies can be placed in
front of the defaults without touching the scan loop.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Sequence
from urllib.parse import urlsplit

from bs4 import BeautifulSoup, Tag
from dateutil import parser as date_parser

from sourcewatch.services.data_ingestion.base import InvalidSourceUrlError, ParsedArticle
from sourcewatch.services.data_ingestion.rss import parse_iso_date
from sourcewatch.services.data_ingestion.urls import canonicalize_url

logger = logging.getLogger(__name__)

# Page chrome removed before any container is considered
STRIP_ELEMENTS = ["script", "style", "noscript", "nav", "footer", "header", "aside"]

MIN_TITLE_LENGTH = 10

NON_ARTICLE_EXTENSIONS = (
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg",
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".zip",
    ".mp3", ".mp4", ".mov",
)

# Path segments that lead to listings rather than articles
LISTING_SEGMENTS = {"tag", "tags", "category", "categories", "author", "authors", "page"}

_WS_RE = re.compile(r"\s+")


def collapse_whitespace(text: Optional[str]) -> str:
    return _WS_RE.sub(" ", text or "").strip()


@dataclass
class PageContext:
    """State shared by every container scanned on one page."""
    page_url: str
    base_url: str
    excerpt_max_chars: int = 500
    seen_urls: set[str] = field(default_factory=set)


class ContainerStrategy:
    """
    Finds article containers with one CSS selector and extracts an article
    from each.

    Subclass and override `extract` for site-specific markup.
    """

    def __init__(self, selector: str):
        self.selector = selector

    def match(self, soup: BeautifulSoup) -> list[Tag]:
        return soup.select(self.selector)

    def extract(self, container: Tag, context: PageContext) -> Optional[ParsedArticle]:
        link = container.find("a", href=True)
        if link is None:
            return None

        try:
            url = canonicalize_url(link["href"], base=context.base_url)
        except InvalidSourceUrlError:
            return None

        if url in context.seen_urls or url == context.page_url:
            return None
        if not is_article_url(url):
            return None

        heading = container.find(["h1", "h2", "h3", "h4"])
        title = collapse_whitespace((heading or link).get_text(" "))
        if len(title) < MIN_TITLE_LENGTH:
            return None
        context.seen_urls.add(url)

        paragraph = container.find("p")
        excerpt = collapse_whitespace(paragraph.get_text(" ")) if paragraph else ""

        return ParsedArticle(
            title=title,
            url=url,
            excerpt=excerpt[: context.excerpt_max_chars],
            published_at=self.published_at(container),
        )

    def published_at(self, container: Tag) -> Optional[datetime]:
        """Machine-readable datetime attribute first, then the visible text."""
        date_el = container.select_one("time, [class*='date'], [class*='time']")
        if date_el is None:
            return None

        machine = date_el.get("datetime")
        if machine:
            parsed = parse_iso_date(machine) or _parse_loose_date(machine)
            if parsed:
                return parsed

        return _parse_loose_date(collapse_whitespace(date_el.get_text(" ")))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.selector!r})"


DEFAULT_STRATEGIES: list[ContainerStrategy] = [
    # Semantic containers
    ContainerStrategy("article"),
    # Class-name heuristics
    ContainerStrategy('[class*="post"]'),
    ContainerStrategy('[class*="article"]'),
    ContainerStrategy('[class*="news-item"]'),
    ContainerStrategy('[class*="story"]'),
    ContainerStrategy('[class*="card"]'),
    # Generic list items
    ContainerStrategy(".entry"),
    ContainerStrategy(".item"),
]


def is_article_url(url: str) -> bool:
    """Reject media/document files and tag, category, author or pagination listings."""
    path = urlsplit(url).path.lower()
    if path.endswith(NON_ARTICLE_EXTENSIONS):
        return False
    directories = path.split("/")[:-1]
    return not any(segment in LISTING_SEGMENTS for segment in directories)


# Two unrelated fill-in dates. Text that parses the same against both
# carries its own year, month and day.
_FILL_IN_DEFAULTS = (datetime(2000, 1, 1), datetime(2011, 12, 31))


def _parse_loose_date(text: str) -> Optional[datetime]:
    """
    Parse a visible date such as "12 February 2024".

    Relative or partial text ("3h", "Tuesday", "5 March") returns None
    instead of borrowing the missing parts from today.
    """
    if not text:
        return None
    try:
        first, second = (date_parser.parse(text, default=d) for d in _FILL_IN_DEFAULTS)
    except (ValueError, OverflowError):
        return None
    if first != second:
        return None
    return first


class HtmlArticleExtractor:
    """
    Extracts up to `max_articles` articles from an HTML page.

    Document order is used as a proxy for recency.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[ContainerStrategy]] = None,
        max_articles: int = 20,
        excerpt_max_chars: int = 500,
    ):
        self.strategies = list(strategies) if strategies is not None else list(DEFAULT_STRATEGIES)
        self.max_articles = max_articles
        self.excerpt_max_chars = excerpt_max_chars

    def extract(self, html: str, page_url: str, base_url: Optional[str] = None) -> list[ParsedArticle]:
        """
        Scan a page for article containers.

        Args:
            html: Page markup
            page_url: URL of the monitored page; links back to it are skipped
            base_url: URL relative links resolve against, when it differs
                from `page_url` (e.g. after a redirect or via <base href>)

        Returns:
            Articles in document order, at most `max_articles`
        """
        soup = BeautifulSoup(html, "html.parser")
        for element in soup(STRIP_ELEMENTS):
            element.decompose()

        page_url = canonicalize_url(page_url)
        base = base_url or page_url
        base_tag = soup.find("base", href=True)
        if base_tag is not None:
            base = canonicalize_url(base_tag["href"], base=base)

        context = PageContext(
            page_url=page_url,
            base_url=base,
            excerpt_max_chars=self.excerpt_max_chars,
        )

        for strategy in self.strategies:
            containers = strategy.match(soup)
            if not containers:
                continue

            articles = []
            for container in containers:
                article = strategy.extract(container, context)
                if article is None:
                    continue
                articles.append(article)
                if len(articles) >= self.max_articles:
                    break

            logger.debug(
                f"{strategy!r} matched {len(containers)} containers on {page_url}, "
                f"kept {len(articles)} articles"
            )
            if articles:
                return articles

        return []
