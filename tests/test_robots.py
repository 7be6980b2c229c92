"""
Tests for robots.txt parsing, caching and the compliance gate.
"""

import asyncio

from sourcewatch.services.data_ingestion.robots import (
    DISALLOWED_REASON,
    RobotsCache,
    RobotsGate,
    RobotsRules,
    parse_robots_txt,
)

from conftest import TEST_USER_AGENT

SAMPLE_ROBOTS = """
# Example robots.txt
User-agent: *
Disallow: /private/
Allow: /private/press/
Disallow: /*.pdf$
Crawl-delay: 2

User-agent: sourcewatch-test
User-agent: otherbot
Disallow: /drafts
Crawl-delay: 0.5

User-agent: BadBot
Disallow: /

Sitemap: https://example.org/sitemap.xml
"""


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class TestRobotsParser:
    """Tests for robots.txt parsing and matching."""

    def test_groups_and_sitemaps(self):
        rules = parse_robots_txt(SAMPLE_ROBOTS)

        assert len(rules.groups) == 3
        assert rules.groups[1].user_agents == ["sourcewatch-test", "otherbot"]
        assert rules.sitemaps == ["https://example.org/sitemap.xml"]

    def test_wildcard_group(self):
        rules = parse_robots_txt(SAMPLE_ROBOTS)
        agent = "somebot/2.0"

        assert rules.is_allowed("https://example.org/news/today", agent)
        assert not rules.is_allowed("https://example.org/private/notes", agent)
        assert rules.crawl_delay(agent) == 2.0

    def test_longest_match_wins(self):
        rules = parse_robots_txt(SAMPLE_ROBOTS)

        assert rules.is_allowed("https://example.org/private/press/release-1", "somebot")

    def test_allow_wins_ties(self):
        rules = parse_robots_txt("User-agent: *\nDisallow: /news\nAllow: /news\n")

        assert rules.is_allowed("https://example.org/news/1", "anybot")

    def test_end_anchor_and_wildcard(self):
        rules = parse_robots_txt(SAMPLE_ROBOTS)

        assert not rules.is_allowed("https://example.org/files/report.pdf", "somebot")
        assert rules.is_allowed("https://example.org/files/report.pdf?download=1", "somebot")

    def test_product_token_selects_group(self):
        """The client label's product token picks its own group instead of '*'."""
        rules = parse_robots_txt(SAMPLE_ROBOTS)

        assert not rules.is_allowed("https://example.org/drafts/one", TEST_USER_AGENT)
        assert rules.is_allowed("https://example.org/private/notes", TEST_USER_AGENT)
        assert rules.crawl_delay(TEST_USER_AGENT) == 0.5

    def test_agent_matching_is_case_insensitive(self):
        rules = parse_robots_txt(SAMPLE_ROBOTS)

        assert not rules.is_allowed("https://example.org/", "badbot/1.0")

    def test_empty_user_agent_matches_nobody(self):
        rules = parse_robots_txt("User-agent:\nDisallow: /\n\nUser-agent: *\nAllow: /\n")

        assert rules.is_allowed("https://example.org/news", "sourcewatch/0.1")

    def test_empty_user_agent_rules_stay_in_their_group(self):
        rules = parse_robots_txt("User-agent: *\nAllow: /\n\nUser-agent:\nDisallow: /\n")

        assert rules.is_allowed("https://example.org/news", "sourcewatch/0.1")

    def test_agent_must_equal_product_token(self):
        """A short agent that is only part of the token does not claim the client."""
        rules = parse_robots_txt("User-agent: s\nDisallow: /\n\nUser-agent: sourcewatch-testing\nDisallow: /\n")

        assert rules.is_allowed("https://example.org/news", "sourcewatch/0.1")
        assert rules.is_allowed("https://example.org/news", TEST_USER_AGENT)

    def test_empty_disallow_allows_everything(self):
        rules = parse_robots_txt("User-agent: *\nDisallow:\n")

        assert rules.is_allowed("https://example.org/anything", "somebot")

    def test_robots_txt_itself_always_allowed(self):
        rules = parse_robots_txt("User-agent: *\nDisallow: /\n")

        assert rules.is_allowed("https://example.org/robots.txt", "somebot")
        assert not rules.is_allowed("https://example.org/", "somebot")

    def test_malformed_lines_ignored(self):
        rules = parse_robots_txt(
            "garbage line\nDisallow: /orphan\nUser-agent: *\nCrawl-delay: soon\nDisallow: /x\n"
        )

        assert rules.is_allowed("https://example.org/orphan", "somebot")
        assert not rules.is_allowed("https://example.org/x", "somebot")
        assert rules.crawl_delay("somebot") is None

    def test_permissive(self):
        rules = RobotsRules.permissive()

        assert rules.is_allowed("https://example.org/private", "somebot")
        assert rules.crawl_delay("somebot") is None


class TestRobotsCache:
    """Tests for the per-origin cache."""

    def test_entries_expire(self):
        clock = FakeClock()
        cache = RobotsCache(ttl_seconds=60, clock=clock)
        cache.put("https://example.org", RobotsRules.permissive())

        clock.advance(59)
        assert cache.get("https://example.org") is not None

        clock.advance(1)
        assert cache.get("https://example.org") is None
        assert len(cache) == 0

    def test_clear(self):
        cache = RobotsCache()
        cache.put("https://a.example.org", RobotsRules.permissive())
        cache.put("https://b.example.org", RobotsRules.permissive())

        cache.clear()

        assert len(cache) == 0


class TestRobotsGate:
    """Tests for fetch authorization."""

    def test_disallowed_with_reason(self, site):
        site.add("https://example.org/robots.txt", SAMPLE_ROBOTS, content_type="text/plain")
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("https://example.org/private/x", "somebot/1.0"))

        assert decision.allowed is False
        assert decision.reason == DISALLOWED_REASON

    def test_allowed_with_crawl_delay(self, site):
        site.add("https://example.org/robots.txt", SAMPLE_ROBOTS, content_type="text/plain")
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("https://example.org/news", "somebot/1.0"))

        assert decision.allowed is True
        assert decision.crawl_delay == 2.0
        assert decision.reason is None

    def test_missing_robots_is_permissive(self, site):
        """A 404 for robots.txt allows the fetch and records no reason."""
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("https://example.org/private/x", "somebot/1.0"))

        assert decision.allowed is True
        assert decision.reason is None
        assert decision.crawl_delay is None

    def test_unreachable_robots_is_permissive(self, site):
        site.fail("https://example.org/robots.txt")
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("https://example.org/page", "somebot/1.0"))

        assert decision.allowed is True

    def test_server_error_is_permissive(self, site):
        site.add("https://example.org/robots.txt", "oops", status=503)
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("https://example.org/page", "somebot/1.0"))

        assert decision.allowed is True

    def test_cache_hit_skips_network(self, site):
        site.add("https://example.org/robots.txt", SAMPLE_ROBOTS, content_type="text/plain")
        gate = RobotsGate(site.fetcher())

        async def check_twice():
            await gate.check("https://example.org/a", "somebot")
            await gate.check("https://example.org/b", "somebot")

        asyncio.run(check_twice())

        assert site.requested("https://example.org/robots.txt") == 1

    def test_expired_entry_refetched(self, site):
        site.add("https://example.org/robots.txt", SAMPLE_ROBOTS, content_type="text/plain")
        clock = FakeClock()
        gate = RobotsGate(site.fetcher(), cache=RobotsCache(ttl_seconds=3600, clock=clock))

        async def check_across_expiry():
            await gate.check("https://example.org/a", "somebot")
            clock.advance(3600)
            await gate.check("https://example.org/b", "somebot")

        asyncio.run(check_across_expiry())

        assert site.requested("https://example.org/robots.txt") == 2

    def test_origins_cached_separately(self, site):
        site.add("https://a.example.org/robots.txt", "User-agent: *\nDisallow: /\n", content_type="text/plain")
        gate = RobotsGate(site.fetcher())

        async def check_both():
            return (
                await gate.check("https://a.example.org/page", "somebot"),
                await gate.check("https://b.example.org/page", "somebot"),
            )

        blocked, allowed = asyncio.run(check_both())

        assert blocked.allowed is False
        assert allowed.allowed is True
        assert len(gate.cache) == 2

    def test_blocked_origin_is_not_fetched(self, site):
        gate = RobotsGate(site.fetcher())

        decision = asyncio.run(gate.check("http://127.0.0.1/page", "somebot"))

        assert decision.allowed is True
        assert site.requests == []
