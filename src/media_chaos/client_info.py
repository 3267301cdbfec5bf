"""Client network metadata lookup.

Queries an ipapi-style JSON endpoint for the IP, location and ISP of the
machine running the tests. The result is shown next to the report only;
the engine never reads it.
"""

from __future__ import annotations

import logging

import aiohttp

from .models import ClientInfo

logger = logging.getLogger("media-chaos")

DEFAULT_CLIENT_INFO_URL = "https://ipapi.co/json/"


def _from_payload(data: dict) -> ClientInfo:
    def field(key: str, default: str = "Unknown") -> str:
        value = data.get(key)
        return str(value) if value else default

    return ClientInfo(
        ip=field("ip"),
        city=field("city"),
        region=field("region"),
        country=field("country_name"),
        org=field("org", "Unknown ISP"),
    )


async def fetch_client_info(
    url: str = DEFAULT_CLIENT_INFO_URL,
    timeout: float = 5.0,
    session: aiohttp.ClientSession | None = None,
) -> ClientInfo:
    """Fetch client metadata. Returns ClientInfo.unknown() on any failure."""
    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout)
        )
    try:
        async with session.get(url) as resp:
            if resp.status >= 400:
                logger.warning(f"Client info lookup failed: HTTP {resp.status} → {url}")
                return ClientInfo.unknown()
            data = await resp.json(content_type=None)
        if not isinstance(data, dict):
            logger.warning(f"Client info lookup returned unexpected payload from {url}")
            return ClientInfo.unknown()
        return _from_payload(data)
    except Exception as e:
        logger.warning(f"Failed to fetch client info: {e}")
        return ClientInfo.unknown()
    finally:
        if owns_session:
            await session.close()
