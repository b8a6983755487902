from __future__ import annotations

import logging
import time
from typing import Callable

from libs.core.application.contracts import ChannelError, TelemetryChannel
from libs.core.application.distance_gate import DistanceGate
from libs.core.application.frame_capture import CapturePipeline, placeholder_capture
from libs.core.application.incident_service import IncidentService
from libs.core.domain.entities import CaptureResult, FireOutcome, FireState

logger = logging.getLogger(__name__)

FIRE_COMMAND_PATH = "commands/fire"
FIRE_COOLDOWN_SEC = 5.0


class FireSequencer:
    """idle -> firing -> cooling_down -> idle, one capture cycle per episode."""

    def __init__(
        self,
        channel: TelemetryChannel,
        gate: DistanceGate,
        pipeline: CapturePipeline,
        incidents: IncidentService,
        stream_url: Callable[[], str | None],
        cooldown_sec: float = FIRE_COOLDOWN_SEC,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ) -> None:
        self._channel = channel
        self._gate = gate
        self._pipeline = pipeline
        self._incidents = incidents
        self._stream_url = stream_url
        self._cooldown_sec = cooldown_sec
        self._clock = clock
        self._wall_clock = wall_clock
        self._state = FireState.IDLE
        self._cooldown_until: float | None = None
        self._last_fired_at: float | None = None

    @property
    def state(self) -> FireState:
        self._expire_cooldown()
        return self._state

    @property
    def last_fired_at(self) -> float | None:
        return self._last_fired_at

    @property
    def can_request(self) -> bool:
        return self.state is FireState.IDLE and self._gate.can_fire

    async def request_fire(self) -> FireOutcome:
        # Check-and-set happens before the first await.
        self._expire_cooldown()
        if self._state is not FireState.IDLE:
            return FireOutcome(accepted=False, state=self._state, reason="busy")
        if not self._gate.can_fire:
            return FireOutcome(accepted=False, state=self._state, reason="out_of_range")

        self._state = FireState.FIRING
        distance = self._gate.state.distance
        logger.info("Fire requested at distance %s", distance)

        capture: CaptureResult = placeholder_capture()
        incident_id: str | None = None
        try:
            try:
                await self._channel.write(FIRE_COMMAND_PATH, True)
            except ChannelError as error:
                logger.error("Fire command write failed: %s", error)

            capture = await self._pipeline.capture_for_fire(self._stream_url())
            incident_id = await self._incidents.record_capture(capture, distance)
        except Exception:
            logger.exception("Fire cycle failed after firing")
        finally:
            self._state = FireState.COOLING_DOWN
            self._cooldown_until = self._clock() + self._cooldown_sec
            self._last_fired_at = self._wall_clock()

        logger.info(
            "Fire cycle complete: incident=%s source=%s", incident_id, capture.source
        )
        return FireOutcome(
            accepted=True,
            state=self._state,
            incident_id=incident_id,
            capture=capture,
        )

    def _expire_cooldown(self) -> None:
        if (
            self._state is FireState.COOLING_DOWN
            and self._cooldown_until is not None
            and self._clock() >= self._cooldown_until
        ):
            self._state = FireState.IDLE
            self._cooldown_until = None
