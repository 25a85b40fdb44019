"""
Shared aiohttp session factory for feed and page fetching.
"""

import ssl
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import aiohttp
import certifi

from ..config.settings import FetchSettings


def create_ssl_context() -> ssl.SSLContext:
    return ssl.create_default_context(cafile=certifi.where())


@asynccontextmanager
async def http_session(
    settings: Optional[FetchSettings] = None,
) -> AsyncGenerator[aiohttp.ClientSession, None]:
    """Yield a pooled ClientSession verified against certifi's CA bundle.

    Timeouts and headers are set per request by the feed reader and the
    webpage fetcher, since they differ between the two.
    """
    settings = settings or FetchSettings()

    connector = aiohttp.TCPConnector(
        ssl=create_ssl_context(),
        limit=settings.connection_limit,
        limit_per_host=settings.limit_per_host,
        enable_cleanup_closed=True,
    )

    async with aiohttp.ClientSession(connector=connector) as session:
        yield session
