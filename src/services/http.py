"""
Shared httpx client construction
"""
from typing import Dict, Optional

import httpx

BROWSER_HEADERS: Dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}

FEED_HEADERS: Dict[str, str] = {
    "User-Agent": "Mozilla/5.0 (compatible; NewsHarvester/1.0; +https://news.google.com)",
    "Accept": "application/rss+xml, application/atom+xml, application/xml;q=0.9, */*;q=0.8",
}


def create_client(
    *,
    timeout: float = 15.0,
    connect_timeout: float = 5.0,
    headers: Optional[Dict[str, str]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """
    Build an AsyncClient with an explicit timeout that follows redirects.
    A custom transport can be supplied (tests use httpx.MockTransport).
    """
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout, connect=connect_timeout),
        headers=headers or BROWSER_HEADERS,
        follow_redirects=True,
        transport=transport,
    )
