"""Runtime settings read from `TANK_*` environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, Field

from libs.core.application.camera_locator import CAMERA_IP_PATH
from libs.core.application.classifier import CLASS_NAMES
from libs.core.application.distance_gate import FIRE_DISTANCE_THRESHOLD
from libs.core.application.fire_sequencer import FIRE_COOLDOWN_SEC
from libs.core.application.frame_capture import (
    CAPTURE_RETRY_ATTEMPTS,
    CAPTURE_RETRY_INTERVAL_SEC,
    MODEL_READY_TIMEOUT_SEC,
)
from libs.core.application.movement_emitter import MOVEMENT_MIN_INTERVAL_SEC

ENV_PREFIX = "TANK_"


class Settings(BaseModel):
    """Console service configuration."""

    database_url: str | None = None
    database_auth_token: str | None = None
    camera_ip_path: str = CAMERA_IP_PATH
    fire_distance_threshold: float = Field(default=FIRE_DISTANCE_THRESHOLD, gt=0.0)
    fire_cooldown_sec: float = Field(default=FIRE_COOLDOWN_SEC, ge=0.0)
    movement_min_interval_sec: float = Field(default=MOVEMENT_MIN_INTERVAL_SEC, ge=0.0)
    capture_retry_attempts: int = Field(default=CAPTURE_RETRY_ATTEMPTS, ge=1)
    capture_retry_interval_sec: float = Field(default=CAPTURE_RETRY_INTERVAL_SEC, ge=0.0)
    model_path: Path | None = None
    model_metadata_path: Path | None = None
    model_ready_timeout_sec: float = Field(default=MODEL_READY_TIMEOUT_SEC, ge=0.0)
    class_names: tuple[str, ...] = CLASS_NAMES
    ambient_analysis: bool = True
    operator_token: str | None = None
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        source = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = source.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw == "":
                continue
            if name == "class_names":
                values[name] = tuple(item.strip() for item in raw.split(",") if item.strip())
            else:
                values[name] = raw
        return cls.model_validate(values)
