"""Best-effort IP geolocation through ipinfo.io.

Lookups never block a login: loopback and private addresses are skipped
without a request, and provider failures come back as ``Err``.
"""

import ipaddress

import httpx
from config.config import settings
from core.errors import DownstreamDegraded
from core.logging import logger
from core.result import Err, Ok, Result

IPINFO_URL = "https://ipinfo.io/{ip}"


def is_public_ip(ip: str | None) -> bool:
    """Return True when `ip` parses and is globally routable."""

    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip)
    except ValueError:
        return False
    return not (address.is_loopback or address.is_private or address.is_link_local)


class Geolocator:
    provider = "ipinfo"

    def __init__(
        self,
        token: str = settings.IPINFO_TOKEN,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.token = token
        self.timeout = timeout
        self.transport = transport

    async def lookup(self, ip: str | None) -> Result[dict | None]:
        """Resolve `ip` to a coarse location.

        Args:
            ip: Client IP address.

        Returns:
            Result[dict | None]: ``Ok(None)`` for local addresses,
                ``Ok({city, region, country, loc})`` on success, ``Err`` when
                the provider cannot be reached or answers with an error.
        """
        if not is_public_ip(ip):
            return Ok(None)

        params = {"token": self.token} if self.token else None
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(IPINFO_URL.format(ip=ip), params=params)
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Failed to fetch IP location ip={}: {}", ip, exc)
            return Err(DownstreamDegraded(self.provider, str(exc)))

        if not isinstance(data, dict):
            logger.warning("Unexpected IP location payload ip={}: {!r}", ip, data)
            return Err(DownstreamDegraded(self.provider, "unexpected payload"))

        return Ok(
            {
                "city": data.get("city"),
                "region": data.get("region"),
                "country": data.get("country"),
                "loc": data.get("loc"),
            }
        )


_geolocator = Geolocator()


def get_geolocator() -> Geolocator:
    """FastAPI dependency returning the shared geolocator."""
    return _geolocator
