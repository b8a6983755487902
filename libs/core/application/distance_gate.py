from __future__ import annotations

import logging
from typing import Any, Callable

from libs.core.application.contracts import TelemetryChannel, Unsubscribe
from libs.core.domain.entities import FireGateState, SensorReading

logger = logging.getLogger(__name__)

FIRE_DISTANCE_THRESHOLD = 20.0
SENSOR_DISTANCE_PATH = "sensor/distance"

CrossingListener = Callable[[FireGateState], None]


def can_fire(distance: float | None, threshold: float = FIRE_DISTANCE_THRESHOLD) -> bool:
    return distance is not None and distance < threshold


def parse_distance(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        return float(value)
    except ValueError:
        return None


class DistanceGate:
    """Derives the fire-enable flag from the streaming distance sensor."""

    def __init__(self, threshold: float = FIRE_DISTANCE_THRESHOLD) -> None:
        self._threshold = threshold
        self._state = FireGateState(distance=None, can_fire=False)
        self._reading = SensorReading(distance=None)
        self._listeners: list[CrossingListener] = []
        self._unsubscribe: Unsubscribe | None = None

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def state(self) -> FireGateState:
        return FireGateState(distance=self._state.distance, can_fire=self._state.can_fire)

    @property
    def can_fire(self) -> bool:
        return self._state.can_fire

    @property
    def last_reading(self) -> SensorReading:
        return self._reading

    def on_enter_range(self, listener: CrossingListener) -> None:
        self._listeners.append(listener)

    def bind(self, channel: TelemetryChannel) -> None:
        self._unsubscribe = channel.subscribe(SENSOR_DISTANCE_PATH, self.observe)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def observe(self, value: Any) -> FireGateState:
        self._reading = SensorReading(distance=parse_distance(value))
        distance = self._reading.distance
        previous = self._state.can_fire
        current = can_fire(distance, self._threshold)
        self._state = FireGateState(distance=distance, can_fire=current)

        if current and not previous:
            logger.info("Target in range at distance %.2f", distance)
            for listener in list(self._listeners):
                try:
                    listener(self.state)
                except Exception:
                    logger.exception("Range listener failed")
        elif previous and not current:
            logger.info("Target left range (distance=%s)", distance)
        return self.state
