"""Firebase Realtime Database channel over the REST and streaming API."""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

import httpx

from libs.core.application.contracts import ChannelError, Unsubscribe, ValueCallback
from libs.core.domain.paths import set_at, split_path

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SEC = 10.0
RECONNECT_DELAY_SEC = 2.0


@dataclass
class StreamEvent:
    """One Server-Sent Event from the streaming endpoint."""

    event: str
    data: str


@dataclass
class _Subscription:
    path: str
    on_value: ValueCallback
    cache: Any = None
    task: asyncio.Task[None] | None = field(default=None, repr=False)


async def iter_stream_events(lines: AsyncIterator[str]) -> AsyncIterator[StreamEvent]:
    event = ""
    data: list[str] = []
    async for line in lines:
        if line == "":
            if event or data:
                yield StreamEvent(event=event or "message", data="\n".join(data))
            event, data = "", []
            continue
        if line.startswith(":"):
            continue
        name, _, value = line.partition(":")
        value = value[1:] if value.startswith(" ") else value
        if name == "event":
            event = value
        elif name == "data":
            data.append(value)
    if event or data:
        yield StreamEvent(event=event or "message", data="\n".join(data))


def apply_stream_event(cache: Any, event: str, payload: Any) -> Any:
    """Apply a `put` or `patch` payload ({path, data}) to the cached subtree."""
    if not isinstance(payload, dict):
        return cache
    segments = split_path(str(payload.get("path", "/")))
    data = payload.get("data")
    if event == "put":
        return set_at(copy.deepcopy(cache), segments, data)
    if event == "patch" and isinstance(data, dict):
        result = copy.deepcopy(cache)
        for key, value in data.items():
            result = set_at(result, segments + split_path(key), value)
        return result
    return cache


class FirebaseRealtimeChannel:
    """Telemetry channel backed by a Firebase Realtime Database."""

    def __init__(
        self,
        database_url: str,
        auth_token: str | None = None,
        client: httpx.AsyncClient | None = None,
        reconnect_delay_sec: float = RECONNECT_DELAY_SEC,
    ) -> None:
        self._base_url = database_url.rstrip("/")
        self._auth_token = auth_token
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SEC)
        self._owns_client = client is None
        self._reconnect_delay_sec = reconnect_delay_sec
        self._subscriptions: list[_Subscription] = []
        self._connected = False

    def subscribe(self, path: str, on_value: ValueCallback) -> Unsubscribe:
        subscription = _Subscription(path=path, on_value=on_value)
        self._subscriptions.append(subscription)
        if self._connected:
            self._start(subscription)

        def unsubscribe() -> None:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
            if subscription.task is not None:
                subscription.task.cancel()

        return unsubscribe

    async def connect(self) -> None:
        self._connected = True
        for subscription in self._subscriptions:
            if subscription.task is None:
                self._start(subscription)

    async def close(self) -> None:
        self._connected = False
        tasks = [item.task for item in self._subscriptions if item.task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for subscription in self._subscriptions:
            subscription.task = None
        if self._owns_client:
            await self._client.aclose()

    async def read(self, path: str) -> Any:
        return await self._request("GET", path)

    async def write(self, path: str, value: Any) -> None:
        await self._request("PUT", path, value)

    async def update(self, values: dict[str, Any]) -> None:
        payload = {"/".join(split_path(path)): value for path, value in values.items()}
        await self._request("PATCH", "", payload)

    async def push(self, path: str, value: Any) -> str:
        response = await self._request("POST", path, value)
        if not isinstance(response, dict) or "name" not in response:
            raise ChannelError(f"Unexpected push response for /{path}: {response!r}")
        return str(response["name"])

    async def remove(self, path: str) -> None:
        await self._request("DELETE", path)

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{'/'.join(split_path(path))}.json"

    def _params(self) -> dict[str, str]:
        return {"auth": self._auth_token} if self._auth_token else {}

    async def _request(self, method: str, path: str, payload: Any = None) -> Any:
        kwargs: dict[str, Any] = {"params": self._params()}
        if method in {"PUT", "PATCH", "POST"}:
            kwargs["content"] = json.dumps(payload)
            kwargs["headers"] = {"Content-Type": "application/json"}
        try:
            response = await self._client.request(method, self._url(path), **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as error:
            raise ChannelError(f"{method} /{path} failed: {error}") from error
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as error:
            raise ChannelError(f"{method} /{path} returned invalid JSON") from error

    def _start(self, subscription: _Subscription) -> None:
        subscription.task = asyncio.get_running_loop().create_task(
            self._listen(subscription)
        )

    async def _listen(self, subscription: _Subscription) -> None:
        while self._connected:
            try:
                await self._stream(subscription)
            except (httpx.HTTPError, ChannelError) as error:
                logger.warning("Stream /%s dropped: %s", subscription.path, error)
            if not self._connected:
                return
            await asyncio.sleep(self._reconnect_delay_sec)

    async def _stream(self, subscription: _Subscription) -> None:
        async with self._client.stream(
            "GET",
            self._url(subscription.path),
            params=self._params(),
            headers={"Accept": "text/event-stream"},
            timeout=httpx.Timeout(REQUEST_TIMEOUT_SEC, read=None),
        ) as response:
            response.raise_for_status()
            async for event in iter_stream_events(response.aiter_lines()):
                self._handle_event(subscription, event)

    def _handle_event(self, subscription: _Subscription, event: StreamEvent) -> None:
        if event.event == "keep-alive":
            return
        if event.event in {"cancel", "auth_revoked"}:
            logger.warning("Stream /%s ended by server: %s", subscription.path, event.event)
            raise ChannelError(f"stream {event.event}")
        if event.event not in {"put", "patch"}:
            return
        try:
            payload = json.loads(event.data)
        except ValueError:
            logger.warning("Malformed %s event on /%s", event.event, subscription.path)
            return
        subscription.cache = apply_stream_event(subscription.cache, event.event, payload)
        try:
            subscription.on_value(copy.deepcopy(subscription.cache))
        except Exception:
            logger.exception("Subscriber for /%s failed", subscription.path)
