from typing import Any, Callable, Protocol

import numpy as np
from PIL import Image

ValueCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class ChannelError(RuntimeError):
    """Raised when a realtime store read or write fails."""


class CaptureError(RuntimeError):
    """Raised when the live camera source cannot deliver a frame."""


class TelemetryChannel(Protocol):
    """Key-path pub/sub and read/write store shared with the vehicle."""

    def subscribe(self, path: str, on_value: ValueCallback) -> Unsubscribe: ...

    async def read(self, path: str) -> Any: ...

    async def write(self, path: str, value: Any) -> None: ...

    async def update(self, values: dict[str, Any]) -> None: ...

    async def push(self, path: str, value: Any) -> str: ...

    async def remove(self, path: str) -> None: ...


class FrameFetcher(Protocol):
    """Fetches one encoded frame from the live camera source."""

    async def fetch(self, url: str) -> bytes: ...


class PreviewSource(Protocol):
    """Frame already rendered from the live stream."""

    @property
    def complete(self) -> bool: ...

    @property
    def natural_size(self) -> tuple[int, int]: ...

    def snapshot(self) -> Image.Image | None: ...


class ClassifierModel(Protocol):
    """Loaded image classification model."""

    def predict(self, batch: np.ndarray) -> np.ndarray: ...


ModelLoader = Callable[[], ClassifierModel]
