"""Direct frame fetch from the vehicle camera."""

from __future__ import annotations

import logging

import httpx

from libs.core.application.contracts import CaptureError
from services.tank_console.infrastructure.stream_runner import first_jpeg

logger = logging.getLogger(__name__)

FETCH_TIMEOUT_SEC = 5.0
MAX_FRAME_BYTES = 2_000_000


class HttpFrameFetcher:
    """Fetches one JPEG from a still-image or MJPEG endpoint."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout_sec: float = FETCH_TIMEOUT_SEC,
        max_bytes: int = MAX_FRAME_BYTES,
    ) -> None:
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._timeout_sec = timeout_sec
        self._max_bytes = max_bytes

    async def fetch(self, url: str) -> bytes:
        buffer = bytearray()
        try:
            async with self._client.stream(
                "GET",
                url,
                headers={"Cache-Control": "no-cache"},
                timeout=self._timeout_sec,
            ) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    frame = first_jpeg(bytes(buffer))
                    if frame is not None:
                        return frame
                    if len(buffer) > self._max_bytes:
                        raise CaptureError(f"no JPEG frame within {self._max_bytes} bytes")
        except httpx.HTTPError as error:
            raise CaptureError(f"camera fetch failed: {error}") from error

        if not buffer:
            raise CaptureError("camera returned an empty body")
        logger.debug("Camera body without JPEG markers (%d bytes)", len(buffer))
        return bytes(buffer)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
