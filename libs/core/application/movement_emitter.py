from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from libs.core.application.contracts import ChannelError, TelemetryChannel
from libs.core.domain.entities import MovementCommand

logger = logging.getLogger(__name__)

MOVEMENT_SPEED_PATH = "commands/movement/speed"
MOVEMENT_ANGLE_PATH = "commands/movement/angle"
MOVEMENT_MIN_INTERVAL_SEC = 0.05


@dataclass
class JoystickSample:
    """One joystick move event normalized to speed and heading."""

    speed: float
    angle: float

    @classmethod
    def from_force(cls, force: float, angle: float) -> "JoystickSample":
        return cls(speed=_clamp_speed(force / 2), angle=angle)

    @classmethod
    def from_vector(cls, x: float, y: float) -> "JoystickSample":
        angle = math.atan2(y, x)
        if angle < 0:
            angle += 2 * math.pi
        return cls(speed=_clamp_speed(math.hypot(x, y)), angle=angle)


@dataclass
class _InputSession:
    session_id: int
    active: bool = True


class MovementEmitter:
    """Turns joystick samples into movement command writes."""

    def __init__(
        self,
        channel: TelemetryChannel,
        min_interval_sec: float = MOVEMENT_MIN_INTERVAL_SEC,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._channel = channel
        self._min_interval_sec = min_interval_sec
        self._clock = clock
        self._session: _InputSession | None = None
        self._session_counter = 0
        self._last_write_ts: float | None = None
        self._last_command: MovementCommand | None = None

    @property
    def active(self) -> bool:
        return self._session is not None and self._session.active

    @property
    def session_id(self) -> int | None:
        return self._session.session_id if self.active else None

    @property
    def last_command(self) -> MovementCommand | None:
        return self._last_command

    def _accepts(self, session_id: int | None) -> bool:
        if not self.active:
            return False
        return session_id is None or session_id == self.session_id

    def attach(self) -> int:
        if self._session is not None and self._session.active:
            return self._session.session_id
        self._session_counter += 1
        self._session = _InputSession(session_id=self._session_counter)
        self._last_write_ts = None
        logger.info("Joystick input attached (session %d)", self._session_counter)
        return self._session_counter

    def detach(self) -> None:
        if self._session is None:
            return
        self._session.active = False
        logger.info("Joystick input detached (session %d)", self._session.session_id)
        self._session = None

    async def move(self, sample: JoystickSample, session_id: int | None = None) -> bool:
        """Write a movement command unless inert, stale or throttled."""
        if not self._accepts(session_id):
            return False

        now = self._clock()
        if (
            self._last_write_ts is not None
            and now - self._last_write_ts < self._min_interval_sec
        ):
            return False

        self._last_write_ts = now
        return await self._send(MovementCommand(speed=sample.speed, angle=sample.angle))

    async def end(self, session_id: int | None = None) -> bool:
        """Release: always one terminal zero command while attached."""
        if not self._accepts(session_id):
            return False
        self._last_write_ts = self._clock()
        return await self._send(MovementCommand(speed=0.0, angle=0.0))

    async def _send(self, command: MovementCommand) -> bool:
        try:
            await self._channel.update(
                {
                    MOVEMENT_SPEED_PATH: command.speed,
                    MOVEMENT_ANGLE_PATH: command.angle,
                }
            )
        except ChannelError as error:
            logger.warning("Movement write failed: %s", error)
            return False
        self._last_command = command
        return True


def _clamp_speed(value: float) -> float:
    return max(0.0, min(float(value), 1.0))
