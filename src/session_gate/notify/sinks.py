"""Notification sinks for session broadcasts.

A sink receives one text message per event.  Delivery is best-effort: the
engine logs a failing sink and carries on.
"""

from __future__ import annotations

import logging

import httpx

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Raised when a sink cannot deliver a message."""


class NotificationSink:
    """Base sink.  Subclasses implement ``send``."""

    async def send(self, text: str) -> None:
        raise NotImplementedError


class LogSink(NotificationSink):
    """Writes notifications to the application log."""

    async def send(self, text: str) -> None:
        logger.info("notification: %s", text.replace("\n", " | "))


class WebhookSink(NotificationSink):
    """POSTs ``{"channel": ..., "text": ...}`` to a webhook URL."""

    def __init__(
        self,
        url: str,
        channel: str = "",
        client: httpx.AsyncClient | None = None,
        timeout: float = 5.0,
    ) -> None:
        self._url = url
        self._channel = channel
        self._client = client
        self._timeout = timeout

    async def send(self, text: str) -> None:
        payload = {"channel": self._channel, "text": text}
        try:
            if self._client is not None:
                response = await self._client.post(self._url, json=payload)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"Webhook delivery to {self._url} failed: {exc}") from exc


class FanOutSink(NotificationSink):
    """Delivers to several sinks; one failing sink does not stop the others."""

    def __init__(self, sinks: list[NotificationSink]) -> None:
        self._sinks = list(sinks)

    async def send(self, text: str) -> None:
        errors: list[str] = []
        for sink in self._sinks:
            try:
                await sink.send(text)
            except NotificationError as exc:
                errors.append(str(exc))
        if errors:
            raise NotificationError("; ".join(errors))
