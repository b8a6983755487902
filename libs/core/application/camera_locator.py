from __future__ import annotations

import logging
from typing import Any, Callable

from libs.core.application.contracts import TelemetryChannel, Unsubscribe

logger = logging.getLogger(__name__)

CAMERA_IP_PATH = "esp32camip"
CAMERA_STREAM_PORT = 81
CAMERA_MISSING_MESSAGE = "Camera IP not found in the realtime database"

UrlListener = Callable[[str | None], None]


def build_stream_url(ip: str, port: int = CAMERA_STREAM_PORT) -> str:
    return f"http://{ip}:{port}/stream"


class CameraLocator:
    """Tracks the vehicle camera stream URL from the IP discovery path."""

    def __init__(self, path: str = CAMERA_IP_PATH) -> None:
        self._path = path
        self._stream_url: str | None = None
        self._error: str | None = None
        self._listeners: list[UrlListener] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def stream_url(self) -> str | None:
        return self._stream_url

    @property
    def error(self) -> str | None:
        return self._error

    def on_change(self, listener: UrlListener) -> None:
        self._listeners.append(listener)

    def bind(self, channel: TelemetryChannel) -> None:
        self._unsubscribe = channel.subscribe(self._path, self.observe)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def observe(self, value: Any) -> None:
        ip = str(value).strip() if isinstance(value, (str, int)) and value else ""
        if not ip:
            if self._error is None:
                logger.warning("%s (path: %s)", CAMERA_MISSING_MESSAGE, self._path)
            self._error = CAMERA_MISSING_MESSAGE
            url = None
        else:
            self._error = None
            url = build_stream_url(ip)

        if url == self._stream_url:
            return
        self._stream_url = url
        logger.info("Camera stream URL: %s", url)
        for listener in list(self._listeners):
            listener(url)
