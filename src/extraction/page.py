"""
Source page retrieval
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from services.http import BROWSER_HEADERS
from services.retry import NO_RETRY, RETRYABLE_STATUS, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FetchedPage:
    url: str
    final_url: str
    html: str = ""
    status: Optional[int] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.status is not None and 200 <= self.status < 300


class PageFetcher:
    """
    Fetches a source page with browser-like headers, following redirects.
    Never raises: failures are reported on the returned FetchedPage.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = 15.0,
        retry_policy: Optional[RetryPolicy] = None,
    ):
        self.client = client
        self.timeout = timeout
        self.retry_policy = retry_policy or NO_RETRY

    async def _get(self, url: str) -> httpx.Response:
        response = await self.client.get(url, headers=BROWSER_HEADERS, timeout=self.timeout)
        if response.status_code in RETRYABLE_STATUS:
            response.raise_for_status()
        return response

    async def fetch(self, url: str) -> FetchedPage:
        try:
            response = await self.retry_policy.run(self._get, url, description=f"page {url}")
        except httpx.HTTPStatusError as e:
            logger.warning(f"Page {url} returned HTTP {e.response.status_code}")
            return FetchedPage(
                url=url,
                final_url=str(e.response.url),
                status=e.response.status_code,
                error=f"HTTP {e.response.status_code}",
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            logger.warning(f"Page {url} timed out after {self.timeout}s")
            return FetchedPage(url=url, final_url=url, error="timeout")
        except httpx.HTTPError as e:
            logger.warning(f"Page {url} failed: {e.__class__.__name__}: {e}")
            return FetchedPage(url=url, final_url=url, error=f"{e.__class__.__name__}: {e}")
        except (httpx.InvalidURL, ValueError) as e:
            logger.warning(f"Page url {url[:200]} is not fetchable: {e}")
            return FetchedPage(url=url, final_url=url, error=f"invalid url: {e}")

        final_url = str(response.url)
        if not response.is_success:
            logger.warning(f"Page {url} returned HTTP {response.status_code}")
            return FetchedPage(
                url=url,
                final_url=final_url,
                status=response.status_code,
                error=f"HTTP {response.status_code}",
            )

        content_type = response.headers.get("content-type", "")
        if content_type and "html" not in content_type and "xml" not in content_type:
            return FetchedPage(
                url=url,
                final_url=final_url,
                status=response.status_code,
                error=f"unsupported content type {content_type}",
            )

        if final_url != url:
            logger.debug(f"Resolved {url} -> {final_url}")

        return FetchedPage(url=url, final_url=final_url, html=response.text, status=response.status_code)
