"""In-memory realtime store used for simulation and tests."""

import copy
import logging
import time
from typing import Any
from uuid import uuid4

from libs.core.application.contracts import Unsubscribe, ValueCallback
from libs.core.domain.paths import get_at, is_related, set_at, split_path

logger = logging.getLogger(__name__)


def generate_push_id() -> str:
    """Time-ordered key: hex milliseconds plus a random suffix."""
    return f"{int(time.time() * 1000):012x}{uuid4().hex[:8]}"


class InMemoryRealtimeStore:
    """Dict-backed store with synchronous change delivery."""

    def __init__(self) -> None:
        self._root: dict[str, Any] = {}
        self._subscribers: dict[int, tuple[list[str], ValueCallback]] = {}
        self._next_subscriber_id = 0

    def subscribe(self, path: str, on_value: ValueCallback) -> Unsubscribe:
        segments = split_path(path)
        subscriber_id = self._next_subscriber_id
        self._next_subscriber_id += 1
        self._subscribers[subscriber_id] = (segments, on_value)
        on_value(copy.deepcopy(get_at(self._root, segments)))

        def unsubscribe() -> None:
            self._subscribers.pop(subscriber_id, None)

        return unsubscribe

    async def read(self, path: str) -> Any:
        return copy.deepcopy(get_at(self._root, split_path(path)))

    async def write(self, path: str, value: Any) -> None:
        segments = split_path(path)
        self._set(segments, value)
        self._notify([segments])

    async def update(self, values: dict[str, Any]) -> None:
        written = []
        for path, value in values.items():
            segments = split_path(path)
            self._set(segments, value)
            written.append(segments)
        self._notify(written)

    async def push(self, path: str, value: Any) -> str:
        key = generate_push_id()
        await self.write(f"{path.rstrip('/')}/{key}", value)
        return key

    async def remove(self, path: str) -> None:
        await self.write(path, None)

    def reset(self) -> None:
        self._root = {}
        self._subscribers.clear()

    def _set(self, segments: list[str], value: Any) -> None:
        self._root = set_at(self._root, segments, copy.deepcopy(value)) or {}

    def _notify(self, written: list[list[str]]) -> None:
        for segments, on_value in list(self._subscribers.values()):
            if not any(is_related(segments, item) for item in written):
                continue
            try:
                on_value(copy.deepcopy(get_at(self._root, segments)))
            except Exception:
                logger.exception("Subscriber for /%s failed", "/".join(segments))
