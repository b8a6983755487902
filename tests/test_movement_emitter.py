"""Joystick movement and mode toggle tests."""

import asyncio
import math

import pytest

from libs.core.application.contracts import ChannelError
from libs.core.application.mode_toggle import AUTONOMOUS_PATH, ModeToggle
from libs.core.application.movement_emitter import (
    MOVEMENT_ANGLE_PATH,
    MOVEMENT_SPEED_PATH,
    JoystickSample,
    MovementEmitter,
)
from fakes import FakeClock, RecordingStore


def _movement_updates(store: RecordingStore) -> list[tuple[float, float]]:
    return [
        (value[MOVEMENT_SPEED_PATH], value[MOVEMENT_ANGLE_PATH])
        for kind, _, value in store.calls
        if kind == "update"
    ]


def test_force_is_halved_and_clamped() -> None:
    assert JoystickSample.from_force(1.6, 1.2).speed == 0.8
    assert JoystickSample.from_force(3.0, 0.0).speed == 1.0


def test_vector_heading_is_normalized() -> None:
    up = JoystickSample.from_vector(0.0, 1.0)
    down = JoystickSample.from_vector(0.0, -0.5)

    assert math.isclose(up.angle, math.pi / 2)
    assert math.isclose(down.angle, 3 * math.pi / 2)
    assert math.isclose(down.speed, 0.5)
    assert JoystickSample.from_vector(3.0, 4.0).speed == 1.0


def test_move_then_release_writes_command_and_zero() -> None:
    store = RecordingStore()
    emitter = MovementEmitter(store, clock=FakeClock())
    emitter.attach()

    async def scenario() -> None:
        assert await emitter.move(JoystickSample(speed=0.8, angle=1.2)) is True
        assert await emitter.end() is True

    asyncio.run(scenario())

    assert _movement_updates(store) == [(0.8, 1.2), (0.0, 0.0)]
    assert asyncio.run(store.read("commands/movement")) == {"speed": 0.0, "angle": 0.0}


def test_moves_inside_interval_are_dropped_but_release_is_not() -> None:
    store = RecordingStore()
    clock = FakeClock()
    emitter = MovementEmitter(store, min_interval_sec=0.05, clock=clock)
    emitter.attach()

    async def scenario() -> list[bool]:
        results = [await emitter.move(JoystickSample(speed=0.2, angle=0.0))]
        clock.advance(0.01)
        results.append(await emitter.move(JoystickSample(speed=0.4, angle=0.0)))
        clock.advance(0.05)
        results.append(await emitter.move(JoystickSample(speed=0.6, angle=0.0)))
        results.append(await emitter.end())
        return results

    assert asyncio.run(scenario()) == [True, False, True, True]
    assert _movement_updates(store) == [(0.2, 0.0), (0.6, 0.0), (0.0, 0.0)]


def test_detached_emitter_is_inert() -> None:
    store = RecordingStore()
    emitter = MovementEmitter(store, clock=FakeClock())
    emitter.attach()
    emitter.detach()

    async def scenario() -> list[bool]:
        return [
            await emitter.move(JoystickSample(speed=0.5, angle=1.0)),
            await emitter.end(),
        ]

    assert asyncio.run(scenario()) == [False, False]
    assert store.calls == []


def test_stale_session_events_are_ignored() -> None:
    store = RecordingStore()
    emitter = MovementEmitter(store, clock=FakeClock())
    first = emitter.attach()
    emitter.detach()
    second = emitter.attach()

    async def scenario() -> list[bool]:
        return [
            await emitter.move(JoystickSample(speed=0.5, angle=1.0), session_id=first),
            await emitter.end(session_id=second),
        ]

    assert second != first
    assert asyncio.run(scenario()) == [False, True]
    assert _movement_updates(store) == [(0.0, 0.0)]


def test_write_failure_is_reported_not_raised() -> None:
    store = RecordingStore(failing_paths={MOVEMENT_SPEED_PATH})
    emitter = MovementEmitter(store, clock=FakeClock())
    emitter.attach()

    assert asyncio.run(emitter.move(JoystickSample(speed=0.3, angle=0.1))) is False
    assert emitter.last_command is None


def test_autonomous_mode_silences_joystick() -> None:
    store = RecordingStore()
    emitter = MovementEmitter(store, min_interval_sec=0.0, clock=FakeClock())
    mode = ModeToggle(store, emitter)
    mode.bind()

    async def scenario() -> list[bool]:
        results = [await emitter.move(JoystickSample(speed=0.5, angle=0.5))]
        await mode.set_autonomous(True)
        results.append(await emitter.move(JoystickSample(speed=0.9, angle=0.5)))
        results.append(await emitter.end())
        return results

    assert asyncio.run(scenario()) == [True, False, False]
    assert _movement_updates(store) == [(0.5, 0.5)]
    assert asyncio.run(store.read(AUTONOMOUS_PATH)) is True
    assert emitter.active is False


def test_remote_mode_change_reattaches_joystick() -> None:
    store = RecordingStore()
    emitter = MovementEmitter(store, min_interval_sec=0.0, clock=FakeClock())
    mode = ModeToggle(store, emitter)
    mode.bind()

    asyncio.run(store.write(AUTONOMOUS_PATH, True))
    assert mode.autonomous is True
    assert emitter.session_id is None

    asyncio.run(store.write(AUTONOMOUS_PATH, False))
    assert mode.autonomous is False
    assert emitter.session_id is not None
    assert asyncio.run(emitter.move(JoystickSample(speed=0.1, angle=0.2))) is True


def test_toggle_flips_mode() -> None:
    store = RecordingStore()
    mode = ModeToggle(store, MovementEmitter(store, clock=FakeClock()))

    first = asyncio.run(mode.toggle())
    second = asyncio.run(mode.toggle())

    assert (first.autonomous, second.autonomous) == (True, False)


def test_failed_mode_write_restores_manual_control() -> None:
    store = RecordingStore(failing_paths={AUTONOMOUS_PATH})
    emitter = MovementEmitter(store, min_interval_sec=0.0, clock=FakeClock())
    mode = ModeToggle(store, emitter)
    mode.bind()

    with pytest.raises(ChannelError):
        asyncio.run(mode.set_autonomous(True))

    assert mode.autonomous is False
    assert emitter.active is True
    assert asyncio.run(store.read(AUTONOMOUS_PATH)) is None
    assert asyncio.run(emitter.move(JoystickSample(speed=0.2, angle=0.0))) is True
