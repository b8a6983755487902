"""In-memory realtime store tests."""

import asyncio
from typing import Any

from libs.core.domain.paths import get_at, is_related, set_at, split_path
from services.tank_console.infrastructure.memory_store import (
    InMemoryRealtimeStore,
    generate_push_id,
)


def test_subscribe_delivers_current_value_immediately() -> None:
    store = InMemoryRealtimeStore()
    asyncio.run(store.write("esp32camip", "10.0.0.7"))
    seen: list[Any] = []

    store.subscribe("esp32camip", seen.append)

    assert seen == ["10.0.0.7"]


def test_ancestor_and_descendant_writes_notify() -> None:
    store = InMemoryRealtimeStore()
    movement: list[Any] = []
    commands: list[Any] = []
    store.subscribe("commands/movement", movement.append)
    store.subscribe("commands", commands.append)

    asyncio.run(store.write("commands/movement/speed", 0.4))
    asyncio.run(store.write("commands", {"fire": True}))

    assert movement == [None, {"speed": 0.4}, None]
    assert commands[-1] == {"fire": True}


def test_unrelated_writes_do_not_notify() -> None:
    store = InMemoryRealtimeStore()
    seen: list[Any] = []
    store.subscribe("sensor/distance", seen.append)

    asyncio.run(store.write("commands/fire", True))

    assert seen == [None]


def test_update_notifies_each_subscriber_once() -> None:
    store = InMemoryRealtimeStore()
    seen: list[Any] = []
    store.subscribe("commands/movement", seen.append)

    asyncio.run(
        store.update({"commands/movement/speed": 0.5, "commands/movement/angle": 1.0})
    )

    assert seen == [None, {"speed": 0.5, "angle": 1.0}]


def test_unsubscribe_stops_delivery() -> None:
    store = InMemoryRealtimeStore()
    seen: list[Any] = []
    unsubscribe = store.subscribe("sensor/distance", seen.append)

    unsubscribe()
    asyncio.run(store.write("sensor/distance", 3))

    assert seen == [None]


def test_push_and_remove() -> None:
    store = InMemoryRealtimeStore()

    first = asyncio.run(store.push("history", {"description": "a"}))
    second = asyncio.run(store.push("history", {"description": "b"}))
    asyncio.run(store.remove(f"history/{first}"))

    assert first != second
    assert asyncio.run(store.read("history")) == {second: {"description": "b"}}

    asyncio.run(store.remove(f"history/{second}"))
    assert asyncio.run(store.read("history")) is None


def test_reads_are_copies() -> None:
    store = InMemoryRealtimeStore()
    asyncio.run(store.write("photos/latest/meta", {"distance": 4}))

    value = asyncio.run(store.read("photos/latest/meta"))
    value["distance"] = 99

    assert asyncio.run(store.read("photos/latest/meta")) == {"distance": 4}


def test_failing_subscriber_does_not_block_others() -> None:
    store = InMemoryRealtimeStore()
    seen: list[Any] = []

    def broken(value: Any) -> None:
        if value is not None:
            raise RuntimeError("listener down")

    store.subscribe("sensor/distance", broken)
    store.subscribe("sensor/distance", seen.append)
    asyncio.run(store.write("sensor/distance", 7))

    assert seen == [None, 7]


def test_push_ids_are_time_prefixed() -> None:
    key = generate_push_id()

    assert len(key) == 20
    int(key, 16)


def test_path_helpers() -> None:
    tree = set_at({}, split_path("/a/b/c"), 1)

    assert get_at(tree, ["a", "b", "c"]) == 1
    assert get_at([{"x": 2}], ["0", "x"]) == 2
    assert is_related(["a"], ["a", "b"]) is True
    assert is_related(["a", "c"], ["a", "b"]) is False
    assert set_at(tree, ["a", "b", "c"], None) is None
