from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter
from tenacity.wait import wait_base

from shopfloor.app.config.env import get_allocation_api_env, load_env


# The upstream app gives up after three tries
MAX_ATTEMPTS = 3

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AllocationApiConfig:
    base_url: str
    token: str = ""
    timeout_s: float = 30.0


def _read_config_from_env() -> AllocationApiConfig:
    load_env()
    base_url, token = get_allocation_api_env()
    if not base_url:
        raise RuntimeError("Missing required environment variable for allocation client: ALLOCATION_API_BASE_URL")
    return AllocationApiConfig(base_url=base_url, token=token)


class AllocationApiClient:
    """Async client for the upstream allocation-report REST backend.

    - Reads base URL and bearer token from env by default
    - Retries transport errors and 5xx responses, up to three attempts
    - Manages the httpx client lifetime via async context manager
    """

    def __init__(
        self,
        config: Optional[AllocationApiConfig] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_attempts: int = MAX_ATTEMPTS,
        wait: Optional[wait_base] = None,
    ) -> None:
        self._config = config or _read_config_from_env()
        self._transport = transport
        self._max_attempts = max_attempts
        self._wait = wait or wait_exponential_jitter(initial=0.5, max=5)
        self._httpx: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "AllocationApiClient":
        headers = {"Accept": "application/json"}
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        self._httpx = httpx.AsyncClient(
            base_url=self._config.base_url.rstrip("/"),
            headers=headers,
            timeout=self._config.timeout_s,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._httpx is not None:
            await self._httpx.aclose()
            self._httpx = None

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        if self._httpx is None:
            raise RuntimeError("AllocationApiClient must be used as an async context manager")
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type((httpx.TransportError, httpx.HTTPStatusError)),
            reraise=True,
        ):
            with attempt:
                n = attempt.retry_state.attempt_number
                if n > 1:
                    logger.warning("Retrying GET %s (attempt %d of %d)", path, n, self._max_attempts)
                resp = await self._httpx.get(path, params=params)
                if resp.status_code >= 500:
                    resp.raise_for_status()
                break
        # 4xx is not retried
        resp.raise_for_status()
        return resp.json()

    async def fetch_allocations(self, **filters: Any) -> List[Dict[str, Any]]:
        """Allocation records as raw dicts; empty filter values are not sent."""
        params = {k: v for k, v in filters.items() if v not in (None, "")}
        data = await self._get_json("/api/allocation-report", params=params or None)
        # Some deployments wrap the list in a page envelope
        if isinstance(data, dict):
            data = data.get("items") or data.get("data") or []
        return list(data)

    async def fetch_worker_options(self) -> List[str]:
        return list(await self._get_json("/api/worker-options"))


__all__ = ["AllocationApiClient", "AllocationApiConfig"]
