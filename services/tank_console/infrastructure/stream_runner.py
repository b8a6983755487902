"""Background camera stream runner that keeps the latest rendered frame."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass

import httpx
from PIL import Image

from libs.core.application.frame_capture import decode_frame

logger = logging.getLogger(__name__)

JPEG_SOI = b"\xff\xd8"
JPEG_EOI = b"\xff\xd9"
MAX_BUFFER_BYTES = 4_000_000
RECONNECT_DELAY_SEC = 2.0
CONNECT_TIMEOUT_SEC = 5.0


@dataclass
class StreamState:
    """Current state of the background stream reader."""

    stream_url: str | None
    running: bool
    frames_received: int
    last_frame_at: float | None
    error: str | None


def split_jpeg_frames(buffer: bytearray) -> list[bytes]:
    """Pop every complete JPEG out of an MJPEG byte buffer."""
    frames: list[bytes] = []
    while True:
        start = buffer.find(JPEG_SOI)
        if start < 0:
            # Keep a trailing 0xff in case the marker is split across chunks.
            del buffer[: max(len(buffer) - 1, 0)]
            return frames
        end = buffer.find(JPEG_EOI, start + 2)
        if end < 0:
            del buffer[:start]
            return frames
        frames.append(bytes(buffer[start : end + 2]))
        del buffer[: end + 2]


def first_jpeg(buffer: bytes) -> bytes | None:
    # Stops at the first EOI; frames carrying an EXIF thumbnail would be cut
    # short. The vehicle camera sends bare JPEGs.
    start = buffer.find(JPEG_SOI)
    if start < 0:
        return None
    end = buffer.find(JPEG_EOI, start + 2)
    if end < 0:
        return None
    return buffer[start : end + 2]


class StreamPreview:
    """Latest frame of the live MJPEG stream, read in the background."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        reconnect_delay_sec: float = RECONNECT_DELAY_SEC,
    ) -> None:
        self._client = client
        self._reconnect_delay_sec = reconnect_delay_sec
        self._frame: Image.Image | None = None
        self._task: asyncio.Task[None] | None = None
        self._state = StreamState(
            stream_url=None,
            running=False,
            frames_received=0,
            last_frame_at=None,
            error=None,
        )

    @property
    def complete(self) -> bool:
        return self._frame is not None

    @property
    def natural_size(self) -> tuple[int, int]:
        if self._frame is None:
            return 0, 0
        return self._frame.size

    def snapshot(self) -> Image.Image | None:
        if self._frame is None:
            return None
        return self._frame.copy()

    @property
    def state(self) -> StreamState:
        return StreamState(**vars(self._state))

    def show(self, image: Image.Image) -> None:
        self._frame = image
        self._state.frames_received += 1
        self._state.last_frame_at = time.time()

    def follow(self, stream_url: str | None) -> None:
        """Switch to a new stream URL; starts reading when a loop is running."""
        if stream_url == self._state.stream_url and (self._task or not stream_url):
            return
        self._cancel()
        self._frame = None
        self._state = StreamState(
            stream_url=stream_url,
            running=False,
            frames_received=0,
            last_frame_at=None,
            error=None,
        )
        if not stream_url:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.info("Stream %s queued until start()", stream_url)
            return
        self._task = loop.create_task(self._run(stream_url))

    async def start(self) -> None:
        if self._task is None and self._state.stream_url:
            self._task = asyncio.get_running_loop().create_task(
                self._run(self._state.stream_url)
            )

    async def stop(self) -> None:
        task = self._task
        self._cancel()
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    def _cancel(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
        self._state.running = False

    async def _run(self, stream_url: str) -> None:
        client = self._client or httpx.AsyncClient()
        try:
            while True:
                self._state.running = True
                try:
                    await self._read_stream(client, stream_url)
                except (httpx.HTTPError, OSError, ValueError) as error:
                    logger.warning("Camera stream %s failed: %s", stream_url, error)
                    self._state.error = str(error)
                self._state.running = False
                await asyncio.sleep(self._reconnect_delay_sec)
        finally:
            self._state.running = False
            if self._client is None:
                await client.aclose()

    async def _read_stream(self, client: httpx.AsyncClient, stream_url: str) -> None:
        buffer = bytearray()
        async with client.stream(
            "GET",
            stream_url,
            timeout=httpx.Timeout(CONNECT_TIMEOUT_SEC, read=None),
        ) as response:
            response.raise_for_status()
            logger.info("Camera stream %s connected", stream_url)
            async for chunk in response.aiter_bytes():
                buffer.extend(chunk)
                for frame in split_jpeg_frames(buffer):
                    try:
                        image = await asyncio.to_thread(decode_frame, frame)
                    except (OSError, ValueError) as error:
                        logger.debug("Skipping undecodable stream frame: %s", error)
                        continue
                    self.show(image)
                    self._state.error = None
                if len(buffer) > MAX_BUFFER_BYTES:
                    raise ValueError("stream buffer overflow without a frame boundary")
