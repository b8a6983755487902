from __future__ import annotations

import logging
from typing import Any

from libs.core.application.contracts import ChannelError, TelemetryChannel, Unsubscribe
from libs.core.application.movement_emitter import MovementEmitter
from libs.core.domain.entities import ModeState

logger = logging.getLogger(__name__)

AUTONOMOUS_PATH = "commands/autonomous"


class ModeToggle:
    """Autonomous/manual flag kept in sync with the command channel."""

    def __init__(self, channel: TelemetryChannel, emitter: MovementEmitter) -> None:
        self._channel = channel
        self._emitter = emitter
        self._state = ModeState(autonomous=False)
        self._unsubscribe: Unsubscribe | None = None
        self._emitter.attach()

    @property
    def autonomous(self) -> bool:
        return self._state.autonomous

    def bind(self) -> None:
        self._unsubscribe = self._channel.subscribe(AUTONOMOUS_PATH, self._on_remote)

    def unbind(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def set_autonomous(self, autonomous: bool) -> ModeState:
        """Apply locally, then write; a failed write restores the previous mode."""
        previous = self._state.autonomous
        self.apply(autonomous)
        try:
            await self._channel.write(AUTONOMOUS_PATH, autonomous)
        except ChannelError:
            logger.warning(
                "Mode write failed, staying %s",
                "autonomous" if previous else "manual",
            )
            self.apply(previous)
            raise
        return ModeState(autonomous=self._state.autonomous)

    async def toggle(self) -> ModeState:
        return await self.set_autonomous(not self._state.autonomous)

    def apply(self, autonomous: bool) -> None:
        if autonomous == self._state.autonomous and (
            autonomous or self._emitter.active
        ):
            return
        self._state = ModeState(autonomous=autonomous)
        if autonomous:
            self._emitter.detach()
        else:
            self._emitter.attach()
        logger.info("Mode switched to %s", "autonomous" if autonomous else "manual")

    def _on_remote(self, value: Any) -> None:
        self.apply(bool(value))
