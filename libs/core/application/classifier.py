"""Image classifier with a load-once model and a single readiness event."""

from __future__ import annotations

import asyncio
import logging

import numpy as np
from PIL import Image

from libs.core.application.contracts import ClassifierModel, ModelLoader
from libs.core.domain.entities import UNKNOWN_LABEL, ModelState

logger = logging.getLogger(__name__)

MODEL_INPUT_SIZE = (224, 224)
CLASS_NAMES = ("IDF", "ENEMY")


def prepare_batch(image: Image.Image, size: tuple[int, int] = MODEL_INPUT_SIZE) -> np.ndarray:
    """Resize, scale to [0, 1] and add the batch axis: (1, H, W, 3)."""
    resized = image.convert("RGB").resize(size, Image.Resampling.NEAREST)
    array = np.asarray(resized, dtype=np.float32) / 255.0
    return np.expand_dims(array, axis=0)


def select_label(
    confidence: np.ndarray,
    class_names: tuple[str, ...] = CLASS_NAMES,
) -> str:
    if confidence.size == 0:
        return UNKNOWN_LABEL
    index = int(np.argmax(confidence))
    if index >= len(class_names):
        return UNKNOWN_LABEL
    return class_names[index]


class ImageClassifier:
    """Owns the model lifecycle: uninitialized -> loading -> ready/failed."""

    def __init__(
        self,
        loader: ModelLoader | None,
        class_names: tuple[str, ...] = CLASS_NAMES,
        input_size: tuple[int, int] = MODEL_INPUT_SIZE,
    ) -> None:
        self._loader = loader
        self._class_names = class_names
        self._input_size = input_size
        self._model: ClassifierModel | None = None
        self._state = ModelState.UNINITIALIZED
        self._ready = asyncio.Event()
        self._load_task: asyncio.Task[bool] | None = None

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def class_names(self) -> tuple[str, ...]:
        return self._class_names

    @property
    def configured(self) -> bool:
        return self._loader is not None

    def start_loading(self) -> None:
        """Schedule the load on the running loop; later calls are no-ops."""
        if self._loader is None or self._load_task is not None:
            return
        self._load_task = asyncio.get_running_loop().create_task(self.load())

    async def load(self) -> bool:
        if self._loader is None:
            return False
        if self._state is ModelState.LOADING:
            await self._ready.wait()
            return self._state is ModelState.READY
        if self._state is not ModelState.UNINITIALIZED:
            return self._state is ModelState.READY

        self._state = ModelState.LOADING
        logger.info("Loading classification model")
        try:
            self._model = await asyncio.to_thread(self._loader)
        except Exception:
            logger.exception("Failed to load classification model")
            self._state = ModelState.FAILED
        else:
            self._state = ModelState.READY
            logger.info("Classification model ready (%d classes)", len(self._class_names))
        finally:
            self._ready.set()
        return self._state is ModelState.READY

    async def wait_ready(self, timeout: float) -> bool:
        if self._state is ModelState.READY:
            return True
        if self._loader is None or self._state is ModelState.FAILED:
            return False
        if self._load_task is None and self._state is ModelState.UNINITIALIZED:
            self.start_loading()
        try:
            await asyncio.wait_for(self._ready.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.info("Model not ready after %.1fs", timeout)
            return False
        return self._state is ModelState.READY

    def classify(self, image: Image.Image) -> tuple[str, tuple[float, ...]]:
        if self._model is None:
            raise RuntimeError("Classification model is not ready")
        batch = prepare_batch(image, self._input_size)
        output = np.asarray(self._model.predict(batch), dtype=np.float32).reshape(-1)
        confidence = tuple(float(value) for value in output)
        return select_label(output, self._class_names), confidence

    async def close(self) -> None:
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            try:
                await self._load_task
            except asyncio.CancelledError:
                pass
