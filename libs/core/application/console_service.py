from __future__ import annotations

import logging

from libs.core.application.ambient_analyzer import AmbientAnalyzer
from libs.core.application.camera_locator import CameraLocator
from libs.core.application.classifier import ImageClassifier
from libs.core.application.contracts import TelemetryChannel
from libs.core.application.distance_gate import SENSOR_DISTANCE_PATH, DistanceGate
from libs.core.application.fire_sequencer import FireSequencer
from libs.core.application.incident_service import IncidentService
from libs.core.application.mode_toggle import ModeToggle
from libs.core.application.movement_emitter import MovementEmitter
from libs.core.domain.entities import (
    Advisory,
    ConsoleSnapshot,
    FireGateState,
    ModelState,
)

logger = logging.getLogger(__name__)

MODEL_LOADING_MESSAGE = "Loading AI model, please wait"
MODEL_FAILED_MESSAGE = "Failed to load AI model"


class TankConsole:
    """Application service behind the operator console."""

    def __init__(
        self,
        channel: TelemetryChannel,
        gate: DistanceGate,
        emitter: MovementEmitter,
        mode: ModeToggle,
        camera: CameraLocator,
        classifier: ImageClassifier,
        fire: FireSequencer,
        incidents: IncidentService,
        analyzer: AmbientAnalyzer | None = None,
    ) -> None:
        self.channel = channel
        self.gate = gate
        self.emitter = emitter
        self.mode = mode
        self.camera = camera
        self.classifier = classifier
        self.fire = fire
        self.incidents = incidents
        self.analyzer = analyzer
        self._bound = False

    def bind(self) -> None:
        if self._bound:
            return
        self.gate.bind(self.channel)
        self.mode.bind()
        self.camera.bind(self.channel)
        if self.analyzer is not None:
            self.gate.on_enter_range(self.analyzer.on_enter_range)
        self._bound = True

    def unbind(self) -> None:
        self.gate.unbind()
        self.mode.unbind()
        self.camera.unbind()
        self._bound = False

    async def start(self) -> None:
        self.bind()
        self.classifier.start_loading()

    async def close(self) -> None:
        self.unbind()
        if self.analyzer is not None:
            await self.analyzer.drain()
        await self.classifier.close()

    async def report_distance(self, distance: float | None) -> FireGateState:
        await self.channel.write(SENSOR_DISTANCE_PATH, distance)
        return self.gate.state

    def snapshot(self) -> ConsoleSnapshot:
        return ConsoleSnapshot(
            gate=self.gate.state,
            fire_state=self.fire.state,
            autonomous=self.mode.autonomous,
            camera_stream_url=self.camera.stream_url,
            model_state=self.classifier.state,
            last_fired_at=self.fire.last_fired_at,
            last_analysis=self.analyzer.latest if self.analyzer is not None else None,
            advisories=self.advisories(),
        )

    def advisories(self) -> list[Advisory]:
        items: list[Advisory] = []
        if self.camera.error is not None:
            items.append(Advisory(level="destructive", message=self.camera.error))
        state = self.classifier.state
        if state is ModelState.LOADING:
            items.append(Advisory(level="info", message=MODEL_LOADING_MESSAGE))
        elif state is ModelState.FAILED:
            items.append(Advisory(level="destructive", message=MODEL_FAILED_MESSAGE))
        return items
