"""HTTP reachability probe: times a single GET until headers arrive."""

import asyncio
import time

import httpx
import structlog

from statussentinel.schemas.probes import ProbeKind, ProbeOutcome, ProbeTarget
from statussentinel.services.probes.base import DEFAULT_TIMEOUT, ProbeStrategy

logger = structlog.get_logger()

MAX_REDIRECTS = 10

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.3"
    ),
    "Accept": "*/*",
    "Connection": "keep-alive",
}


class ReachabilityProbe(ProbeStrategy):
    """Issues one GET and measures time to response headers.

    Certificates are not verified: targets are operator-controlled and
    self-signed endpoints are common.
    """

    kind = ProbeKind.HTTP

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http_client = http_client

    async def probe(self, target: ProbeTarget, timeout: float = DEFAULT_TIMEOUT) -> ProbeOutcome:
        try:
            return await asyncio.wait_for(self._request(target.address, timeout), timeout)
        except asyncio.TimeoutError:
            logger.debug("reachability_probe_timeout", target=target.address, timeout=timeout)
            return ProbeOutcome.failure(error="timed out")
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.debug("reachability_probe_failed", target=target.address, error=str(e))
            return ProbeOutcome.failure(error=str(e) or type(e).__name__)

    async def _request(self, url: str, timeout: float) -> ProbeOutcome:
        if self._http_client is not None:
            return await self._timed_get(self._http_client, url, timeout)
        async with httpx.AsyncClient(
            verify=False,
            timeout=timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
        ) as client:
            return await self._timed_get(client, url, timeout)

    async def _timed_get(self, client: httpx.AsyncClient, url: str, timeout: float) -> ProbeOutcome:
        start = time.monotonic()
        # Status is that of the final hop; the body is never read
        async with client.stream(
            "GET", url, headers=BROWSER_HEADERS, timeout=timeout, follow_redirects=True
        ) as resp:
            elapsed_ms = int((time.monotonic() - start) * 1000)
            if resp.is_success:
                return ProbeOutcome.success(elapsed_ms)
            return ProbeOutcome.failure(
                status=str(resp.status_code),
                error=f"HTTP {resp.status_code}",
            )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
