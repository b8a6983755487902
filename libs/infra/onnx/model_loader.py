"""ONNX Runtime backed classifier model."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import numpy as np
import onnxruntime as ort

from libs.core.application.contracts import ModelLoader

logger = logging.getLogger(__name__)


class OnnxClassifierModel:
    """Runs an exported image classifier; accepts NHWC float batches."""

    def __init__(self, session: ort.InferenceSession) -> None:
        self._session = session
        model_input = session.get_inputs()[0]
        self._input_name = model_input.name
        shape = list(model_input.shape)
        self._channels_first = len(shape) == 4 and shape[1] == 3

    @property
    def channels_first(self) -> bool:
        return self._channels_first

    def predict(self, batch: np.ndarray) -> np.ndarray:
        feed = np.transpose(batch, (0, 3, 1, 2)) if self._channels_first else batch
        outputs = self._session.run(None, {self._input_name: feed.astype(np.float32)})
        return np.asarray(outputs[0])


def load_class_names(metadata_path: Path) -> tuple[str, ...]:
    """Read class labels from an exported `metadata.json` (`labels` key)."""
    payload = json.loads(metadata_path.read_text(encoding="utf-8"))
    labels = payload.get("labels") if isinstance(payload, dict) else None
    if not isinstance(labels, list) or not labels:
        raise ValueError(f"no labels in model metadata: {metadata_path}")
    return tuple(str(label) for label in labels)


def onnx_model_loader(model_path: Path) -> ModelLoader:
    def load() -> OnnxClassifierModel:
        if not model_path.exists():
            raise FileNotFoundError(f"model file not found: {model_path}")
        logger.info("Opening ONNX model %s", model_path)
        session = ort.InferenceSession(
            str(model_path),
            providers=["CPUExecutionProvider"],
        )
        return OnnxClassifierModel(session)

    return load
