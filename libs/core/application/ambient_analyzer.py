from __future__ import annotations

import asyncio
import logging
from typing import Callable

from libs.core.application.frame_capture import CapturePipeline
from libs.core.domain.entities import CaptureResult, FireGateState

logger = logging.getLogger(__name__)


class AmbientAnalyzer:
    """Distance-triggered surveillance: classify a frame once per crossing."""

    def __init__(
        self,
        pipeline: CapturePipeline,
        stream_url: Callable[[], str | None],
    ) -> None:
        self._pipeline = pipeline
        self._stream_url = stream_url
        self._latest: CaptureResult | None = None
        self._task: asyncio.Task[CaptureResult] | None = None

    @property
    def latest(self) -> CaptureResult | None:
        return self._latest

    @property
    def busy(self) -> bool:
        return self._task is not None and not self._task.done()

    def on_enter_range(self, gate_state: FireGateState) -> None:
        logger.info("Range crossing at %s, scheduling analysis", gate_state.distance)
        self.schedule()

    def schedule(self) -> bool:
        if self.busy:
            logger.info("Analysis already running, crossing skipped")
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("No running event loop, analysis not scheduled")
            return False
        self._task = loop.create_task(self.analyze())
        return True

    async def analyze(self) -> CaptureResult:
        result = await self._pipeline.analyze(self._stream_url())
        self._latest = result
        return result

    async def analyze_image_data(self, image_data: str) -> CaptureResult:
        result = await self._pipeline.analyze_image_data(image_data)
        self._latest = result
        return result

    async def drain(self) -> None:
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
