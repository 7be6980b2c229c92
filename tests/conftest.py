"""
Shared fixtures: a fake web served through httpx.MockTransport, a fake DNS
resolver, and a throwaway SQLite database per test.
"""

import asyncio

import httpx
import pytest

from sourcewatch.models.database import Database
from sourcewatch.services.data_ingestion.safe_fetch import SafeFetcher

PUBLIC_IP = "93.184.216.34"
TEST_USER_AGENT = "sourcewatch-test/1.0 (+https://example.invalid)"


class FakeResolver:
    """Resolves every name to a public address unless told otherwise."""

    def __init__(self):
        self.answers: dict = {}
        self.lookups: list[str] = []

    def set(self, host: str, *addresses: str):
        self.answers[host] = list(addresses)

    def fail(self, host: str, error: Exception):
        self.answers[host] = error

    async def __call__(self, host: str, port: int) -> list[str]:
        self.lookups.append(host)
        if host in self.answers:
            answer = self.answers[host]
            if isinstance(answer, Exception):
                raise answer
            return answer
        return [PUBLIC_IP]


class FakeSite:
    """
    Canned HTTP responses keyed by host and path.

    Requests are matched on the Host header, since the fetcher connects to
    the resolved address rather than the name.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], object] = {}
        self.requests: list[httpx.Request] = []

    def add(self, url: str, body="", status: int = 200, content_type: str = "text/html", headers=None):
        target = httpx.URL(url)
        response_headers = {"content-type": content_type}
        response_headers.update(headers or {})
        self.routes[(target.host, target.raw_path.decode())] = (status, body, response_headers)

    def redirect(self, url: str, location: str, status: int = 301):
        self.add(url, status=status, headers={"location": location})

    def fail(self, url: str, exc_type=httpx.ReadTimeout):
        target = httpx.URL(url)
        self.routes[(target.host, target.raw_path.decode())] = exc_type

    def requested(self, url: str) -> int:
        target = httpx.URL(url)
        key = (target.host, target.raw_path.decode())
        return sum(1 for r in self.requests if self._key(r) == key)

    @staticmethod
    def _key(request: httpx.Request) -> tuple[str, str]:
        host = request.headers["host"]
        if not host.startswith("[") and ":" in host:
            host = host.rsplit(":", 1)[0]
        return host, request.url.raw_path.decode()

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(self._key(request))
        if route is None:
            return httpx.Response(404, text="not found")
        if isinstance(route, type):
            raise route("simulated failure", request=request)
        status, body, headers = route
        content = body.encode("utf-8") if isinstance(body, str) else body
        return httpx.Response(status, headers=headers, content=content)

    def fetcher(self, resolver=None, **kwargs) -> SafeFetcher:
        return SafeFetcher(
            user_agent=TEST_USER_AGENT,
            resolver=resolver or FakeResolver(),
            transport=httpx.MockTransport(self.handler),
            **kwargs,
        )


@pytest.fixture
def resolver():
    return FakeResolver()


@pytest.fixture
def site():
    return FakeSite()


@pytest.fixture
def run_db(tmp_path):
    """
    Run an async scenario against a fresh database.

    The engine is created and disposed inside the same event loop as the
    scenario, so each test gets one asyncio.run call.
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"

    def run(scenario):
        async def runner():
            database = Database(url)
            await database.create_tables()
            try:
                return await scenario(database)
            finally:
                await database.dispose()

        return asyncio.run(runner())

    return run
