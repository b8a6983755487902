"""Fire sequencer tests."""

import asyncio

from libs.core.application.classifier import ImageClassifier
from libs.core.application.distance_gate import DistanceGate
from libs.core.application.fire_sequencer import FIRE_COMMAND_PATH, FireSequencer
from libs.core.application.frame_capture import (
    PLACEHOLDER_IMAGE_DATA,
    CapturePipeline,
    RasterSurface,
)
from libs.core.application.incident_service import HISTORY_PATH, IncidentService
from libs.core.domain.entities import UNKNOWN_LABEL, FireState
from fakes import FakeClock, FakeFetcher, FakePreview, RecordingStore, jpeg_bytes

STREAM_URL = "http://10.0.0.7:81/stream"


async def _no_sleep(_: float) -> None:
    return None


def _build(
    store: RecordingStore,
    fetcher: FakeFetcher,
    clock: FakeClock,
    distance: float | None = 12,
) -> FireSequencer:
    gate = DistanceGate()
    gate.observe(distance)
    pipeline = CapturePipeline(
        fetcher=fetcher,
        preview=FakePreview(),
        classifier=ImageClassifier(loader=None),
        surface=RasterSurface(),
        sleep=_no_sleep,
    )
    return FireSequencer(
        channel=store,
        gate=gate,
        pipeline=pipeline,
        incidents=IncidentService(store, clock_ms=lambda: 1_700_000_000_000),
        stream_url=lambda: STREAM_URL,
        cooldown_sec=5.0,
        clock=clock,
        wall_clock=lambda: 1_700_000_000.0,
    )


def test_out_of_range_request_does_nothing() -> None:
    store = RecordingStore()
    fetcher = FakeFetcher(payload=jpeg_bytes())
    sequencer = _build(store, fetcher, FakeClock(), distance=45)

    outcome = asyncio.run(sequencer.request_fire())

    assert outcome.accepted is False
    assert outcome.reason == "out_of_range"
    assert sequencer.state is FireState.IDLE
    assert store.calls == []
    assert fetcher.urls == []


def test_fire_cycle_captures_and_records() -> None:
    store = RecordingStore()
    fetcher = FakeFetcher(payload=jpeg_bytes())
    sequencer = _build(store, fetcher, FakeClock())

    outcome = asyncio.run(sequencer.request_fire())

    assert outcome.accepted is True
    assert outcome.state is FireState.COOLING_DOWN
    assert outcome.capture is not None
    assert outcome.capture.source == "direct"
    assert outcome.capture.predicted_label == UNKNOWN_LABEL
    assert outcome.incident_id is not None
    assert store.calls[0] == ("write", FIRE_COMMAND_PATH, True)
    assert store.paths("push") == [HISTORY_PATH]
    assert fetcher.urls[0].startswith(STREAM_URL + "?_t=")
    assert sequencer.last_fired_at == 1_700_000_000.0


def test_unreachable_camera_still_records_placeholder() -> None:
    store = RecordingStore()
    sequencer = _build(store, FakeFetcher(), FakeClock())

    outcome = asyncio.run(sequencer.request_fire())

    history = asyncio.run(store.read(HISTORY_PATH))
    assert outcome.accepted is True
    assert outcome.capture is not None
    assert outcome.capture.source == "placeholder"
    assert len(history) == 1
    (entry,) = history.values()
    assert entry["imageUrl"] == PLACEHOLDER_IMAGE_DATA
    assert entry["prediction"] == UNKNOWN_LABEL
    assert entry["distance"] == 12.0


def test_concurrent_requests_fire_once() -> None:
    store = RecordingStore()
    sequencer = _build(store, FakeFetcher(payload=jpeg_bytes()), FakeClock())

    async def scenario():
        return await asyncio.gather(sequencer.request_fire(), sequencer.request_fire())

    first, second = asyncio.run(scenario())

    assert sorted([first.accepted, second.accepted]) == [False, True]
    rejected = first if not first.accepted else second
    assert rejected.reason == "busy"
    assert store.paths("write").count(FIRE_COMMAND_PATH) == 1
    assert store.paths("push") == [HISTORY_PATH]


def test_cooldown_blocks_until_expiry() -> None:
    store = RecordingStore()
    clock = FakeClock()
    sequencer = _build(store, FakeFetcher(payload=jpeg_bytes()), clock)

    asyncio.run(sequencer.request_fire())
    clock.advance(4.9)
    blocked = asyncio.run(sequencer.request_fire())
    clock.advance(0.2)

    assert blocked.accepted is False
    assert blocked.reason == "busy"
    assert sequencer.state is FireState.IDLE
    assert sequencer.can_request is True
    assert asyncio.run(sequencer.request_fire()).accepted is True
    assert store.paths("write").count(FIRE_COMMAND_PATH) == 2


def test_persistence_failure_still_enters_cooldown() -> None:
    store = RecordingStore(failing_paths={HISTORY_PATH})
    sequencer = _build(store, FakeFetcher(payload=jpeg_bytes()), FakeClock())

    outcome = asyncio.run(sequencer.request_fire())

    assert outcome.accepted is True
    assert outcome.incident_id is None
    assert sequencer.state is FireState.COOLING_DOWN
    assert asyncio.run(store.read("photos/latest/photo")) is not None


def test_fire_write_failure_does_not_skip_capture() -> None:
    store = RecordingStore(failing_paths={FIRE_COMMAND_PATH})
    sequencer = _build(store, FakeFetcher(payload=jpeg_bytes()), FakeClock())

    outcome = asyncio.run(sequencer.request_fire())

    assert outcome.accepted is True
    assert outcome.incident_id is not None
    assert sequencer.state is FireState.COOLING_DOWN
