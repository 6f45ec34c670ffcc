import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Mapping

import httpx

from pegeldict.errors import MalformedPayloadError, TransportError

DEFAULT_MAX_CONCURRENT = 99


@dataclass
class HttpMetrics:
    total_requests: int = 0
    status_code_counts: dict[int, int] = field(default_factory=lambda: defaultdict(int))
    transport_errors: int = 0
    max_in_flight: int = 0

    def to_dict(self) -> dict[str, int | dict[int, int]]:
        return {
            "total_requests": self.total_requests,
            "status_code_counts": dict(self.status_code_counts),
            "transport_errors": self.transport_errors,
            "max_in_flight": self.max_in_flight,
        }


class RequestThrottle:
    """Process-wide cap on in-flight outbound requests.

    Every release wakes all waiters to re-check capacity, so a waiter whose
    task was cancelled mid-wakeup cannot strand the others.
    """

    def __init__(self, max_concurrent: int = DEFAULT_MAX_CONCURRENT) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._outstanding = 0
        self._condition: asyncio.Condition | None = None

    @property
    def outstanding(self) -> int:
        return self._outstanding

    def _get_condition(self) -> asyncio.Condition:
        if self._condition is None:
            self._condition = asyncio.Condition()
        return self._condition

    async def acquire(self) -> None:
        condition = self._get_condition()
        async with condition:
            await condition.wait_for(lambda: self._outstanding < self.max_concurrent)
            self._outstanding += 1

    async def release(self) -> None:
        condition = self._get_condition()
        async with condition:
            self._outstanding = max(self._outstanding - 1, 0)
            condition.notify_all()

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            await asyncio.shield(self.release())


class ThrottledHttpClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        throttle: RequestThrottle,
        user_agent: str,
        metrics: HttpMetrics | None = None,
    ) -> None:
        self._client = client
        self._throttle = throttle
        self._user_agent = user_agent
        self.metrics = metrics or HttpMetrics()

    async def get_json(
        self,
        url: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        request_headers = {"User-Agent": self._user_agent}
        if headers:
            request_headers.update(headers)

        async with self._throttle.slot():
            self.metrics.max_in_flight = max(self.metrics.max_in_flight, self._throttle.outstanding)
            try:
                resp = await self._client.get(url, params=params, headers=request_headers)
            except httpx.HTTPError as exc:
                self.metrics.transport_errors += 1
                raise TransportError(f"request to {url} failed: {exc}", url=url) from exc

        self.metrics.total_requests += 1
        self.metrics.status_code_counts[resp.status_code] += 1
        if not resp.is_success:
            raise TransportError(
                f"request to {url} returned HTTP {resp.status_code}",
                url=url,
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise MalformedPayloadError(f"response from {url} is not valid JSON") from exc
