"""Fan-out of one validated run request to every configured endpoint.

Pattern: All-or-Nothing Fan-out
--------------------------------
One independent HTTP call is issued per endpoint, all concurrently, and the
outcomes are joined into a single ``DispatchResult``.  The dispatch only
counts as a success when *every* endpoint accepted the run; one failure fails
the whole operation and no session is activated.  There are no retries and no
channel back to an endpoint once a call has been issued.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


@dataclasses.dataclass(frozen=True)
class Endpoint:
    """An execution endpoint and the credential it expects."""

    name: str
    url: str
    credential: str

    def __repr__(self) -> str:
        return f"Endpoint(name={self.name!r}, url={self.url!r})"


@dataclasses.dataclass(frozen=True)
class EndpointFailure:
    endpoint: str
    error: str


@dataclasses.dataclass(frozen=True)
class DispatchResult:
    """Joined outcome of a fan-out.

    ``ok`` is true only when at least one endpoint was called and none failed.
    """

    succeeded: tuple[str, ...]
    failed: tuple[EndpointFailure, ...]

    @property
    def ok(self) -> bool:
        return bool(self.succeeded) and not self.failed


class Dispatcher:
    """Sends a run request to each endpoint over ``httpx``."""

    def __init__(
        self,
        endpoints: list[Endpoint],
        client: httpx.AsyncClient | None = None,
        timeout: float | None = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._endpoints = list(endpoints)
        self._client = client
        self._timeout = timeout

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    async def dispatch(self, host: str, port: int, duration: int, method: str) -> DispatchResult:
        if not self._endpoints:
            logger.error("Dispatch requested but no endpoints are configured")
            return DispatchResult(succeeded=(), failed=())

        payload = {"host": host, "port": port, "duration": duration, "method": method}
        if self._client is not None:
            outcomes = await self._fan_out(self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                outcomes = await self._fan_out(client, payload)

        succeeded: list[str] = []
        failed: list[EndpointFailure] = []
        for endpoint, outcome in zip(self._endpoints, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning("Endpoint %s failed: %s", endpoint.name, outcome)
                failed.append(EndpointFailure(endpoint=endpoint.name, error=_describe(outcome)))
            else:
                succeeded.append(endpoint.name)

        result = DispatchResult(succeeded=tuple(succeeded), failed=tuple(failed))
        logger.info(
            "Dispatch %s:%s %ss %s -> %d ok, %d failed",
            host, port, duration, method, len(result.succeeded), len(result.failed),
        )
        return result

    # -- private helpers -----------------------------------------------------

    async def _fan_out(self, client: httpx.AsyncClient, payload: dict) -> list:
        return await asyncio.gather(
            *(self._call(client, endpoint, payload) for endpoint in self._endpoints),
            return_exceptions=True,
        )

    @staticmethod
    async def _call(client: httpx.AsyncClient, endpoint: Endpoint, payload: dict) -> None:
        response = await client.post(
            endpoint.url,
            json=payload,
            headers={"Authorization": f"Bearer {endpoint.credential}"},
        )
        response.raise_for_status()


def _describe(exc: BaseException) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return str(exc) or type(exc).__name__
