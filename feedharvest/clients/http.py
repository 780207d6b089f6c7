"""
HTTP Session Factory
====================

Shared aiohttp session configuration for feed, page and CMS requests.
"""

import ssl

import aiohttp
import certifi


def create_ssl_context() -> ssl.SSLContext:
    """SSL context backed by the certifi CA bundle."""
    return ssl.create_default_context(cafile=certifi.where())


def create_session(
    request_timeout: int = 30,
    max_connections: int = 10,
    limit_per_host: int = 5,
    headers: dict = None,
) -> aiohttp.ClientSession:
    """Create a client session. The caller owns it and must close it.

    Args:
        request_timeout: Total timeout applied to every request, in seconds
        max_connections: Connection pool size
        limit_per_host: Connections allowed per host
        headers: Default headers for every request
    """
    connector = aiohttp.TCPConnector(
        ssl=create_ssl_context(),
        limit=max_connections,
        limit_per_host=limit_per_host,
        enable_cleanup_closed=True,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=aiohttp.ClientTimeout(total=request_timeout),
        headers=headers,
    )
