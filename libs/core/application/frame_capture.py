"""Frame capture ladder and the shared raster surface.

Capture attempts, in order, stopping at the first success:

1. direct fetch of the live source (cache-busted) and decode
2. the frame already rendered by the stream preview, polled a few times
3. the embedded placeholder, which never fails

Every step draws onto the same raster surface at the model input size and
re-encodes as JPEG. Output that does not carry a JPEG header is replaced by
the placeholder.
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from PIL import Image, ImageDraw

from libs.core.application.classifier import MODEL_INPUT_SIZE, ImageClassifier
from libs.core.application.contracts import CaptureError, FrameFetcher, PreviewSource
from libs.core.domain.entities import UNKNOWN_LABEL, CaptureResult
from libs.core.domain.images import decode_image_data, encode_image_bytes, looks_like_jpeg

logger = logging.getLogger(__name__)

CAPTURE_RETRY_ATTEMPTS = 5
CAPTURE_RETRY_INTERVAL_SEC = 0.5
MODEL_READY_TIMEOUT_SEC = 10.0
JPEG_QUALITY = 90

SOURCE_DIRECT = "direct"
SOURCE_PREVIEW = "preview"
SOURCE_STORED = "stored"
SOURCE_PLACEHOLDER = "placeholder"

Sleep = Callable[[float], Awaitable[None]]


class RasterSurface:
    """Offscreen canvas reused by every capture."""

    def __init__(self, size: tuple[int, int] = MODEL_INPUT_SIZE) -> None:
        self._size = size
        self._canvas = Image.new("RGB", size)

    @property
    def size(self) -> tuple[int, int]:
        return self._size

    def clear(self) -> None:
        self._canvas.paste((0, 0, 0), (0, 0, *self._size))

    def draw(self, image: Image.Image) -> Image.Image:
        """Clear, draw `image` scaled to the surface, return a private copy."""
        self.clear()
        self._canvas.paste(image.convert("RGB").resize(self._size))
        return self._canvas.copy()

    def encode_jpeg(self, quality: int = JPEG_QUALITY) -> str:
        buffer = io.BytesIO()
        self._canvas.save(buffer, format="JPEG", quality=quality)
        return encode_image_bytes(buffer.getvalue())


raster_surface = RasterSurface()


def _build_placeholder(size: tuple[int, int] = MODEL_INPUT_SIZE) -> str:
    image = Image.new("RGB", size, (30, 41, 59))
    draw = ImageDraw.Draw(image)
    width, height = size
    draw.line((width // 2, 0, width // 2, height), fill=(148, 163, 184), width=2)
    draw.line((0, height // 2, width, height // 2), fill=(148, 163, 184), width=2)
    draw.ellipse(
        (width // 4, height // 4, 3 * width // 4, 3 * height // 4),
        outline=(148, 163, 184),
        width=2,
    )
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=80)
    return encode_image_bytes(buffer.getvalue())


PLACEHOLDER_IMAGE_DATA = _build_placeholder()


def placeholder_capture() -> CaptureResult:
    return CaptureResult(
        image_data=PLACEHOLDER_IMAGE_DATA,
        predicted_label=UNKNOWN_LABEL,
        confidence=None,
        source=SOURCE_PLACEHOLDER,
    )


def cache_busted(url: str, now_ms: int) -> str:
    parts = urlsplit(url)
    query = [(key, value) for key, value in parse_qsl(parts.query) if key != "_t"]
    query.append(("_t", str(now_ms)))
    return urlunsplit(parts._replace(query=urlencode(query)))


def decode_frame(raw: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(raw))
    image.load()
    return image.convert("RGB")


@dataclass
class CapturedFrame:
    """Frame drawn on the raster surface, encoded and ready to persist."""

    image: Image.Image | None
    image_data: str
    source: str


class _CaptureAttempt:
    """Latch: a capture settles on exactly one frame."""

    def __init__(self) -> None:
        self._frame: CapturedFrame | None = None

    @property
    def settled(self) -> bool:
        return self._frame is not None

    @property
    def frame(self) -> CapturedFrame | None:
        return self._frame

    def settle(self, frame: CapturedFrame) -> CapturedFrame:
        if self._frame is None:
            self._frame = frame
        return self._frame


class CapturePipeline:
    """Produces a frame for every request, degrading down the ladder."""

    def __init__(
        self,
        fetcher: FrameFetcher | None,
        preview: PreviewSource | None,
        classifier: ImageClassifier,
        surface: RasterSurface = raster_surface,
        retry_attempts: int = CAPTURE_RETRY_ATTEMPTS,
        retry_interval_sec: float = CAPTURE_RETRY_INTERVAL_SEC,
        model_ready_timeout_sec: float = MODEL_READY_TIMEOUT_SEC,
        sleep: Sleep = asyncio.sleep,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._fetcher = fetcher
        self._preview = preview
        self._classifier = classifier
        self._surface = surface
        self._retry_attempts = retry_attempts
        self._retry_interval_sec = retry_interval_sec
        self._model_ready_timeout_sec = model_ready_timeout_sec
        self._sleep = sleep
        self._clock_ms = clock_ms

    @property
    def classifier(self) -> ImageClassifier:
        return self._classifier

    async def capture_for_fire(self, stream_url: str | None) -> CaptureResult:
        """Latency-first capture; classification is skipped."""
        frame = await self.capture_frame(stream_url)
        return CaptureResult(
            image_data=frame.image_data,
            predicted_label=UNKNOWN_LABEL,
            confidence=None,
            source=frame.source,
        )

    async def analyze(self, stream_url: str | None) -> CaptureResult:
        """Capture and classify, waiting for the model if it is loading."""
        frame = await self.capture_frame(stream_url)
        return await self._classify_frame(frame)

    async def analyze_image_data(self, image_data: str) -> CaptureResult:
        """Classify a stored base64 photo."""
        attempt = _CaptureAttempt()
        try:
            image = decode_frame(decode_image_data(image_data))
            self._settle_drawn(attempt, image, SOURCE_STORED)
        except (OSError, ValueError) as error:
            logger.warning("Stored photo could not be decoded: %s", error)
        frame = attempt.frame or attempt.settle(self._placeholder_frame())
        return await self._classify_frame(frame)

    async def capture_frame(self, stream_url: str | None) -> CapturedFrame:
        attempt = _CaptureAttempt()
        try:
            if not attempt.settled:
                await self._try_direct(attempt, stream_url)
            if not attempt.settled:
                await self._try_preview(attempt)
        except Exception:
            logger.exception("Capture ladder failed unexpectedly")
        if not attempt.settled:
            logger.warning("Using placeholder frame")
            attempt.settle(self._placeholder_frame())
        return attempt.frame or self._placeholder_frame()

    async def _try_direct(self, attempt: _CaptureAttempt, stream_url: str | None) -> None:
        if self._fetcher is None or not stream_url:
            logger.info("Direct capture unavailable (no camera source)")
            return
        url = cache_busted(stream_url, self._clock_ms())
        try:
            raw = await self._fetcher.fetch(url)
            image = await asyncio.to_thread(decode_frame, raw)
        except (OSError, ValueError, CaptureError) as error:
            logger.warning("Direct capture failed: %s", error)
            return
        if attempt.settled:
            return
        self._settle_drawn(attempt, image, SOURCE_DIRECT)

    async def _try_preview(self, attempt: _CaptureAttempt) -> None:
        if self._preview is None:
            return
        for index in range(self._retry_attempts):
            if attempt.settled:
                return
            width, height = self._preview.natural_size
            if self._preview.complete and width > 0 and height > 0:
                image = self._preview.snapshot()
                if image is not None:
                    self._settle_drawn(attempt, image, SOURCE_PREVIEW)
                    return
            logger.debug(
                "Preview frame not ready (attempt %d/%d)",
                index + 1,
                self._retry_attempts,
            )
            if index + 1 < self._retry_attempts:
                await self._sleep(self._retry_interval_sec)
        logger.warning("Preview capture gave up after %d attempts", self._retry_attempts)

    def _settle_drawn(
        self,
        attempt: _CaptureAttempt,
        image: Image.Image,
        source: str,
    ) -> None:
        drawn = self._surface.draw(image)
        image_data = self._surface.encode_jpeg()
        if not looks_like_jpeg(image_data):
            logger.warning("Encoded %s frame failed the JPEG check", source)
            attempt.settle(self._placeholder_frame())
            return
        attempt.settle(CapturedFrame(image=drawn, image_data=image_data, source=source))

    @staticmethod
    def _placeholder_frame() -> CapturedFrame:
        return CapturedFrame(
            image=None,
            image_data=PLACEHOLDER_IMAGE_DATA,
            source=SOURCE_PLACEHOLDER,
        )

    async def _classify_frame(self, frame: CapturedFrame) -> CaptureResult:
        unknown = CaptureResult(
            image_data=frame.image_data,
            predicted_label=UNKNOWN_LABEL,
            confidence=None,
            source=frame.source,
        )
        if frame.image is None:
            return unknown
        if not await self._classifier.wait_ready(self._model_ready_timeout_sec):
            return unknown
        try:
            label, confidence = await asyncio.to_thread(self._classifier.classify, frame.image)
        except Exception:
            logger.exception("Classification failed")
            return unknown
        logger.info("Frame classified as %s", label)
        return CaptureResult(
            image_data=frame.image_data,
            predicted_label=label,
            confidence=confidence,
            source=frame.source,
        )
