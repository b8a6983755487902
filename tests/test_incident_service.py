"""Incident history and latest-photo tests."""

import asyncio

import pytest

from libs.core.application.incident_service import (
    HISTORY_PATH,
    LATEST_META_PATH,
    LATEST_PHOTO_PATH,
    REPORT_STATUS,
    IncidentService,
)
from libs.core.domain.entities import CaptureResult, IncidentRecord, ReportForm
from libs.core.domain.images import decode_image_data, encode_image_bytes, to_data_uri
from libs.core.domain.timestamps import split_display_timestamp
from fakes import RecordingStore, jpeg_bytes


class StepClock:
    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.value = start

    def __call__(self) -> int:
        self.value += 1000
        return self.value


def _capture(color: tuple[int, int, int] = (200, 30, 30), label: str = "Unknown") -> CaptureResult:
    return CaptureResult(
        image_data=encode_image_bytes(jpeg_bytes(color)),
        predicted_label=label,
        confidence=None,
        source="direct",
    )


def _form(description: str = "Contact north", location: str = "Hill 12") -> ReportForm:
    return ReportForm(
        description=description,
        detailed_description="Two vehicles moving east",
        location=location,
    )


def test_capture_writes_history_and_latest_photo() -> None:
    store = RecordingStore()
    service = IncidentService(store, clock_ms=StepClock())
    capture = _capture()

    incident_id = asyncio.run(service.record_capture(capture, distance=12.0))

    stored = asyncio.run(store.read(f"{HISTORY_PATH}/{incident_id}"))
    assert stored["imageUrl"] == capture.image_data
    assert stored["status"] == "captured"
    assert stored["kind"] == "capture"
    assert asyncio.run(store.read(LATEST_PHOTO_PATH)) == capture.image_data
    assert asyncio.run(store.read(LATEST_META_PATH)) == {
        "timestamp": stored["timestamp"],
        "prediction": "Unknown",
        "distance": 12.0,
    }


def test_latest_photo_prefix_is_stripped_and_restored() -> None:
    store = RecordingStore()
    service = IncidentService(store, clock_ms=StepClock())
    raw = jpeg_bytes()
    capture = CaptureResult(
        image_data=to_data_uri(encode_image_bytes(raw)),
        predicted_label="IDF",
        confidence=(0.9, 0.1),
        source="preview",
    )

    asyncio.run(service.record_capture(capture, distance=3.0))
    latest = asyncio.run(service.open_report())

    assert not asyncio.run(store.read(LATEST_PHOTO_PATH)).startswith("data:")
    assert latest is not None
    assert decode_image_data(to_data_uri(latest.photo_data)) == raw
    assert latest.predicted_label == "IDF"


def test_latest_write_survives_history_failure() -> None:
    store = RecordingStore(failing_paths={HISTORY_PATH})
    service = IncidentService(store, clock_ms=StepClock())

    incident_id = asyncio.run(service.record_capture(_capture(), distance=None))

    assert incident_id is None
    assert asyncio.run(store.read(LATEST_PHOTO_PATH)) is not None


def test_report_uses_latest_photo_by_default() -> None:
    store = RecordingStore()
    service = IncidentService(store, clock_ms=StepClock())
    capture = _capture()
    asyncio.run(service.record_capture(capture, distance=8.0))

    record = asyncio.run(service.submit_report(_form()))

    assert record.incident_id
    assert record.image_data == capture.image_data
    assert record.status == REPORT_STATUS
    assert record.kind == "report"
    assert record.distance == 8.0


def test_report_stays_on_source_capture_after_newer_fire() -> None:
    store = RecordingStore()
    service = IncidentService(store, clock_ms=StepClock())
    first = _capture((255, 0, 0))
    second = _capture((0, 0, 255))

    first_id = asyncio.run(service.record_capture(first, distance=10.0))
    asyncio.run(service.record_capture(second, distance=4.0))
    record = asyncio.run(service.submit_report(_form(), source_incident_id=first_id))

    assert record.image_data == first.image_data
    assert record.distance == 10.0


def test_report_with_unknown_source_is_rejected() -> None:
    service = IncidentService(RecordingStore(), clock_ms=StepClock())

    with pytest.raises(ValueError, match="Incident not found"):
        asyncio.run(service.submit_report(_form(), source_incident_id="missing"))


def test_report_without_any_photo_has_empty_image() -> None:
    service = IncidentService(RecordingStore(), clock_ms=StepClock())

    record = asyncio.run(service.submit_report(_form()))

    assert record.image_data == ""
    assert record.predicted_label == "Unknown"


def test_history_is_newest_first_with_legacy_entries_last() -> None:
    store = RecordingStore()
    service = IncidentService(store, clock_ms=StepClock())
    asyncio.run(
        store.write(
            f"{HISTORY_PATH}/legacy",
            {
                "timestamp": "12 March 2023 בשעה 14:05",
                "description": "Old report",
                "imageUrl": "",
            },
        )
    )
    asyncio.run(service.submit_report(_form("First")))
    asyncio.run(service.submit_report(_form("Second")))

    records = asyncio.run(service.list_history())

    assert [record.description for record in records] == ["Second", "First", "Old report"]
    assert records[-1].incident_id == "legacy"
    assert split_display_timestamp(records[-1].timestamp) == ("12 March 2023", "14:05")


def test_history_search_matches_text_fields() -> None:
    service = IncidentService(RecordingStore(), clock_ms=StepClock())
    asyncio.run(service.submit_report(_form("Bridge", location="Sector A")))
    asyncio.run(service.submit_report(_form("Checkpoint", location="Sector B")))

    found = asyncio.run(service.list_history(search="sector b"))

    assert [record.description for record in found] == ["Checkpoint"]


def test_delete_incident() -> None:
    service = IncidentService(RecordingStore(), clock_ms=StepClock())
    record = asyncio.run(service.submit_report(_form()))

    asyncio.run(service.delete_incident(record.incident_id))

    assert asyncio.run(service.list_history()) == []
    with pytest.raises(ValueError):
        asyncio.run(service.delete_incident(record.incident_id))


def test_record_accepts_legacy_image_key() -> None:
    record = IncidentRecord.from_store(
        "abc", {"timestamp": 5, "imageData": "/9j/AAA", "prediction": "ENEMY"}
    )

    assert record.incident_id == "abc"
    assert record.image_data == "/9j/AAA"
    assert record.predicted_label == "ENEMY"


def test_display_timestamp_variants() -> None:
    assert split_display_timestamp(None) == ("Date unavailable", "")
    assert split_display_timestamp("2024-05-01T09:30:00") == ("01 May 2024", "09:30")
    date_part, time_part = split_display_timestamp(1_700_000_000_000)
    assert date_part and time_part
