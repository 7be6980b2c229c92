"""
Outbound HTTP behind a private-network guard.

Every URL is validated before any connection is attempted:

- scheme must be http or https
- no user:password@ credentials
- no localhost or *.local host names
- literal IPs must be public
- host names are resolved once and rejected if any address is private

The connection is then made to the address that was validated, with the
original host name carried in the Host header and TLS SNI, so a second DNS
answer can never redirect the request. Redirects are followed by hand and
each hop goes through the same validation. No retries happen here.
"""

import asyncio
import codecs
import ipaddress
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from urllib.parse import urljoin, urlsplit

import httpx

from sourcewatch.services.data_ingestion.base import (
    BlockedNetworkError,
    FetchFailedError,
    FetchResponse,
    FetchTimeoutError,
    InvalidSourceUrlError,
)

logger = logging.getLogger(__name__)

BLOCKED_NETWORKS = [
    ipaddress.ip_network(cidr)
    for cidr in (
        "0.0.0.0/8",
        "10.0.0.0/8",
        "100.64.0.0/10",  # carrier-grade NAT
        "127.0.0.0/8",
        "169.254.0.0/16",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "224.0.0.0/3",  # multicast and reserved, 224.0.0.0 and above
        "::/128",
        "::1/128",
        "fc00::/7",  # unique local, fc00::/8 and fd00::/8
        "fe80::/10",
    )
]

_DEFAULT_PORTS = {"http": 80, "https": 443}

Resolver = Callable[[str, int], Awaitable[list[str]]]


def is_blocked_address(address: str) -> bool:
    """True if an IP address falls in a private, loopback or reserved range."""
    try:
        ip = ipaddress.ip_address(address.split("%", 1)[0])
    except ValueError:
        return True
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return any(ip in network for network in BLOCKED_NETWORKS)


def _is_ip_literal(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


async def resolve_host(host: str, port: int) -> list[str]:
    """Resolve a host name to its unique addresses using the event loop resolver."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    addresses: list[str] = []
    for _family, _type, _proto, _canonname, sockaddr in infos:
        if sockaddr[0] not in addresses:
            addresses.append(sockaddr[0])
    return addresses


@dataclass(frozen=True)
class ValidatedTarget:
    """A URL that passed the guard and the address its connection is pinned to."""
    url: str
    scheme: str
    host: str
    authority: str
    address: str

    @property
    def pinned_url(self) -> httpx.URL:
        host = f"[{self.address}]" if ":" in self.address else self.address
        return httpx.URL(self.url).copy_with(host=host)


class SafeFetcher:
    """
    HTTP GET client that refuses internal network targets.

    Args:
        user_agent: Client label sent with every request
        timeout: Default per-request timeout in seconds
        max_redirects: Redirect hops followed before giving up
        max_response_bytes: Largest body accepted
        resolver: Async callable (host, port) -> addresses, injectable for tests
        transport: httpx transport, injectable for tests
    """

    def __init__(
        self,
        user_agent: str,
        timeout: float = 15.0,
        max_redirects: int = 5,
        max_response_bytes: int = 5_000_000,
        resolver: Optional[Resolver] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.user_agent = user_agent
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.max_response_bytes = max_response_bytes
        self.resolver = resolver or resolve_host
        self.transport = transport

    async def validate(self, url: str) -> ValidatedTarget:
        """
        Check a URL against the guard and resolve the address to connect to.

        Raises:
            InvalidSourceUrlError: The URL cannot be parsed or has no host
            BlockedNetworkError: The URL points at a disallowed target
            FetchFailedError: The host name does not resolve
        """
        try:
            parts = urlsplit(url.strip())
            port = parts.port
        except ValueError as e:
            raise InvalidSourceUrlError(f"Invalid URL: {url!r}") from e

        scheme = parts.scheme.lower()
        if scheme not in _DEFAULT_PORTS:
            raise BlockedNetworkError("Only http/https URLs are allowed")
        if parts.username or parts.password:
            raise BlockedNetworkError("Credentials in URL are not allowed")

        host = (parts.hostname or "").lower()
        if not host:
            raise InvalidSourceUrlError(f"Invalid URL: {url!r}")
        if host == "localhost" or host.endswith(".localhost") or host.endswith(".local"):
            raise BlockedNetworkError("Localhost URLs are blocked")

        port = port or _DEFAULT_PORTS[scheme]

        if _is_ip_literal(host):
            if is_blocked_address(host):
                raise BlockedNetworkError("Private network URLs are blocked")
            address = host
        else:
            try:
                addresses = await self.resolver(host, port)
            except OSError as e:
                raise FetchFailedError(f"Could not resolve host {host}") from e
            if not addresses:
                raise FetchFailedError(f"Could not resolve host {host}")
            for candidate in addresses:
                if is_blocked_address(candidate):
                    logger.warning(f"Blocked {host}: resolves to private address {candidate}")
                    raise BlockedNetworkError("Private network URLs are blocked")
            address = addresses[0]

        return ValidatedTarget(
            url=url.strip(),
            scheme=scheme,
            host=host,
            authority=parts.netloc,
            address=address,
        )

    async def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResponse:
        """
        Validate and GET a URL.

        Args:
            url: Absolute http(s) URL
            timeout: Override for the default timeout in seconds. It bounds
                the whole call, redirects and body download included

        Returns:
            FetchResponse carrying the validated final URL

        Raises:
            BlockedNetworkError: The URL or a redirect hop failed the guard
            FetchTimeoutError: The request timed out
            FetchFailedError: Non-success status, oversized body or transport error
        """
        limit = timeout or self.timeout
        try:
            return await asyncio.wait_for(self._follow(url, limit), timeout=limit)
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Timed out fetching {url}") from e

    async def _follow(self, url: str, limit: float) -> FetchResponse:
        """GET a URL, following redirects by hand and validating every hop."""
        current = url

        async with httpx.AsyncClient(
            transport=self.transport,
            follow_redirects=False,
            timeout=httpx.Timeout(limit),
        ) as client:
            for _ in range(self.max_redirects + 1):
                target = await self.validate(current)
                logger.debug(f"GET {target.url} via {target.address}")

                try:
                    result = await self._get(client, target)
                except httpx.TimeoutException as e:
                    raise FetchTimeoutError(f"Timed out fetching {target.url}") from e
                except httpx.HTTPError as e:
                    raise FetchFailedError(f"Error fetching {target.url}: {e}") from e

                if isinstance(result, str):
                    current = result
                    continue
                return result

        raise FetchFailedError(f"Too many redirects fetching {url}")

    async def _get(self, client: httpx.AsyncClient, target: ValidatedTarget):
        """GET a validated target. Returns a redirect location or a FetchResponse."""
        extensions = {"sni_hostname": target.host} if target.scheme == "https" else {}
        headers = {
            "Host": target.authority,
            "User-Agent": self.user_agent,
        }

        async with client.stream(
            "GET",
            target.pinned_url,
            headers=headers,
            extensions=extensions,
        ) as response:
            if response.is_redirect:
                location = response.headers["location"]
                logger.debug(f"Redirect {response.status_code} from {target.url} to {location}")
                return urljoin(target.url, location)

            if not response.is_success:
                raise FetchFailedError(
                    f"Fetch failed ({response.status_code})",
                    status_code=response.status_code,
                )

            declared = response.headers.get("content-length")
            if declared and declared.isdigit() and int(declared) > self.max_response_bytes:
                raise FetchFailedError(f"Response too large ({declared} bytes)")

            chunks: list[bytes] = []
            total = 0
            async for chunk in response.aiter_bytes():
                total += len(chunk)
                if total > self.max_response_bytes:
                    raise FetchFailedError(f"Response too large (over {self.max_response_bytes} bytes)")
                chunks.append(chunk)

            content = b"".join(chunks)
            return FetchResponse(
                url=target.url,
                status_code=response.status_code,
                content=content,
                text=content.decode(_encoding_of(response), errors="replace"),
                content_type=response.headers.get("content-type", ""),
            )


def _encoding_of(response: httpx.Response) -> str:
    encoding = response.charset_encoding or "utf-8"
    try:
        codecs.lookup(encoding)
    except LookupError:
        return "utf-8"
    return encoding
