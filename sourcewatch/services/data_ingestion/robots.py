"""
Robots exclusion compliance.

Parses robots.txt, caches the rules per origin and answers whether a URL
may be fetched and how long to wait before fetching it.

Unreachable or unsuccessful robots.txt responses are treated as fully
permissive, which is the standard crawling convention.

Reference: https://www.rfc-editor.org/rfc/rfc9309
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional
from urllib.parse import urlsplit

from sourcewatch.services.data_ingestion.base import FetchError, IngestionError
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher
from sourcewatch.services.data_ingestion.urls import origin_of

logger = logging.getLogger(__name__)

DISALLOWED_REASON = "Disallowed by robots.txt"


# =============================================================================
# Parsing
# =============================================================================

@dataclass
class RobotRule:
    """A single Allow or Disallow line."""
    path: str
    allowed: bool
    _pattern: Optional[re.Pattern] = field(default=None, init=False, repr=False, compare=False)

    def matches(self, url_path: str) -> bool:
        """Prefix match with `*` wildcards and an optional `$` end anchor."""
        if not self.path:
            # "Disallow:" with no value allows everything
            return False
        if self._pattern is None:
            anchored = self.path.endswith("$")
            body = self.path[:-1] if anchored else self.path
            regex = ".*".join(re.escape(part) for part in body.split("*"))
            self._pattern = re.compile(f"^{regex}{'$' if anchored else ''}")
        return bool(self._pattern.match(url_path))


@dataclass
class RobotGroup:
    """Rules shared by one or more user agents."""
    user_agents: list[str] = field(default_factory=list)
    rules: list[RobotRule] = field(default_factory=list)
    crawl_delay: Optional[float] = None

    def is_allowed(self, url_path: str) -> bool:
        """
        The longest matching rule wins. On equal length, Allow wins.
        No matching rule means allowed.
        """
        best: Optional[RobotRule] = None
        for rule in self.rules:
            if not rule.matches(url_path):
                continue
            if best is None or (len(rule.path), rule.allowed) > (len(best.path), best.allowed):
                best = rule
        return True if best is None else best.allowed


@dataclass
class RobotsRules:
    """Parsed robots.txt for one origin."""
    groups: list[RobotGroup] = field(default_factory=list)
    sitemaps: list[str] = field(default_factory=list)

    @classmethod
    def permissive(cls) -> "RobotsRules":
        return cls()

    def group_for(self, user_agent: str) -> Optional[RobotGroup]:
        """
        Pick the group for a client label.

        The product token (text before the first "/" or space) must equal a
        group user agent, ignoring case; otherwise the "*" group applies.
        """
        token = re.split(r"[/\s]", user_agent.strip(), maxsplit=1)[0].lower()
        wildcard = None
        for group in self.groups:
            for agent in group.user_agents:
                agent = agent.lower()
                if agent == "*":
                    wildcard = wildcard or group
                elif token and agent == token:
                    return group
        return wildcard

    def is_allowed(self, url: str, user_agent: str) -> bool:
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        if path == "/robots.txt":
            return True

        group = self.group_for(user_agent)
        return True if group is None else group.is_allowed(path)

    def crawl_delay(self, user_agent: str) -> Optional[float]:
        group = self.group_for(user_agent)
        return group.crawl_delay if group else None


def parse_robots_txt(content: str) -> RobotsRules:
    """
    Parse robots.txt content.

    Consecutive User-agent lines open a group; the rules that follow belong
    to every agent in it. Unknown directives and malformed lines are skipped.
    """
    rules = RobotsRules()
    current: Optional[RobotGroup] = None
    collecting_agents = False

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue

        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            if current is None or not collecting_agents:
                current = RobotGroup()
                rules.groups.append(current)
            # An empty agent still opens a group so its rules are not misfiled
            if value:
                current.user_agents.append(value)
            collecting_agents = True
            continue

        if directive == "sitemap":
            if value:
                rules.sitemaps.append(value)
            continue

        collecting_agents = False
        if current is None:
            continue

        if directive == "disallow":
            current.rules.append(RobotRule(path=value, allowed=False))
        elif directive == "allow":
            current.rules.append(RobotRule(path=value, allowed=True))
        elif directive == "crawl-delay":
            try:
                delay = float(value)
            except ValueError:
                continue
            if delay >= 0:
                current.crawl_delay = delay

    return rules


# =============================================================================
# Cache
# =============================================================================

@dataclass
class RobotsCacheEntry:
    rules: RobotsRules
    fetched_at: float
    ttl: float


class RobotsCache:
    """
    Per-origin robots.txt cache.

    Owned by whoever composes a sweep. Entries are idempotent to rebuild, so
    two sweeps racing to populate the same origin is harmless.

    Args:
        ttl_seconds: How long an entry stays fresh
        clock: Monotonic seconds source, injectable for tests
    """

    def __init__(self, ttl_seconds: float = 3600.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, RobotsCacheEntry] = {}

    def get(self, origin: str) -> Optional[RobotsRules]:
        entry = self._entries.get(origin)
        if entry is None:
            return None
        if self.clock() - entry.fetched_at >= entry.ttl:
            del self._entries[origin]
            return None
        return entry.rules

    def put(self, origin: str, rules: RobotsRules) -> None:
        self._entries[origin] = RobotsCacheEntry(
            rules=rules,
            fetched_at=self.clock(),
            ttl=self.ttl_seconds,
        )

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# Gate
# =============================================================================

@dataclass(frozen=True)
class RobotsDecision:
    """Whether a fetch may proceed, and the delay to honour first."""
    allowed: bool
    crawl_delay: Optional[float] = None
    reason: Optional[str] = None


class RobotsGate:
    """Authorizes fetches against the target origin's robots.txt."""

    def __init__(
        self,
        fetcher: SafeFetcher,
        cache: Optional[RobotsCache] = None,
        timeout: float = 5.0,
    ):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else RobotsCache()
        self.timeout = timeout

    async def check(self, url: str, user_agent: str) -> RobotsDecision:
        """
        Decide whether `user_agent` may fetch `url`.

        Args:
            url: Target URL
            user_agent: Client label; its product token selects the rule group

        Returns:
            RobotsDecision with `reason` set only when disallowed
        """
        origin = origin_of(url)
        rules = self.cache.get(origin)
        if rules is None:
            rules = await self._load(origin)
            self.cache.put(origin, rules)

        allowed = rules.is_allowed(url, user_agent)
        return RobotsDecision(
            allowed=allowed,
            crawl_delay=rules.crawl_delay(user_agent),
            reason=None if allowed else DISALLOWED_REASON,
        )

    async def _load(self, origin: str) -> RobotsRules:
        robots_url = f"{origin}/robots.txt"
        try:
            response = await self.fetcher.fetch(robots_url, timeout=self.timeout)
        except FetchError as e:
            logger.info(f"robots.txt unavailable at {robots_url} ({e}); treating as permissive")
            return RobotsRules.permissive()
        except IngestionError as e:
            # The target itself is rejected by the guard; the content fetch reports it
            logger.info(f"robots.txt not fetched for {origin}: {e}")
            return RobotsRules.permissive()

        return parse_robots_txt(response.text)
