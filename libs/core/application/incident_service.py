from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Any, Callable

from libs.core.application.contracts import ChannelError, TelemetryChannel
from libs.core.domain.entities import (
    UNKNOWN_LABEL,
    CaptureResult,
    IncidentRecord,
    LatestPhotoPointer,
    ReportForm,
)
from libs.core.domain.images import from_data_uri
from libs.core.domain.timestamps import sort_key

logger = logging.getLogger(__name__)

HISTORY_PATH = "history"
LATEST_PHOTO_PATH = "photos/latest/photo"
LATEST_META_PATH = "photos/latest/meta"

CAPTURE_STATUS = "captured"
REPORT_STATUS = "Operation completed successfully"
CAPTURE_DESCRIPTION = "Fire capture"


def _now_ms() -> int:
    return int(time.time() * 1000)


class IncidentService:
    """Incident history log and the latest-photo slot."""

    def __init__(
        self,
        channel: TelemetryChannel,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._channel = channel
        self._clock_ms = clock_ms

    async def record_capture(
        self,
        capture: CaptureResult,
        distance: float | None,
    ) -> str | None:
        """Persist one fire capture: history entry plus latest-photo slot.

        Both writes are best effort; failures are logged and the other write
        still runs.
        """
        timestamp = self._clock_ms()
        image_data = from_data_uri(capture.image_data)
        record = IncidentRecord(
            incident_id="",
            timestamp=timestamp,
            description=CAPTURE_DESCRIPTION,
            detailed_description="",
            location="",
            image_data=image_data,
            predicted_label=capture.predicted_label,
            distance=distance,
            status=CAPTURE_STATUS,
            kind="capture",
        )

        incident_id: str | None = None
        try:
            incident_id = await self._append(record)
        except ChannelError as error:
            logger.error("Failed to append capture to history: %s", error)

        try:
            await self.publish_latest(
                LatestPhotoPointer(
                    photo_data=image_data,
                    timestamp=timestamp,
                    predicted_label=capture.predicted_label,
                    distance=distance,
                )
            )
        except ChannelError as error:
            logger.error("Failed to publish latest photo: %s", error)

        return incident_id

    async def publish_latest(self, pointer: LatestPhotoPointer) -> None:
        await self._channel.write(LATEST_PHOTO_PATH, from_data_uri(pointer.photo_data))
        await self._channel.write(
            LATEST_META_PATH,
            {
                "timestamp": pointer.timestamp,
                "prediction": pointer.predicted_label,
                "distance": pointer.distance,
            },
        )

    async def read_latest(self) -> LatestPhotoPointer | None:
        photo = await self._channel.read(LATEST_PHOTO_PATH)
        if not photo:
            return None
        meta = await self._channel.read(LATEST_META_PATH)
        if not isinstance(meta, dict):
            meta = {}
        return LatestPhotoPointer(
            photo_data=from_data_uri(str(photo)),
            timestamp=meta.get("timestamp"),
            predicted_label=meta.get("prediction") or UNKNOWN_LABEL,
            distance=meta.get("distance"),
        )

    async def open_report(self) -> LatestPhotoPointer | None:
        return await self.read_latest()

    async def submit_report(
        self,
        form: ReportForm,
        source_incident_id: str | None = None,
    ) -> IncidentRecord:
        """Append a detailed report.

        With `source_incident_id` the image comes from that capture record,
        so a newer fire cannot swap the picture under the operator. Without
        it the latest-photo slot is used.
        """
        image_data = ""
        predicted_label = UNKNOWN_LABEL
        distance: float | None = None

        if source_incident_id is not None:
            source = await self.get_incident(source_incident_id)
            if source is None:
                raise ValueError("Incident not found")
            image_data = source.image_data
            predicted_label = source.predicted_label
            distance = source.distance
        else:
            latest = await self.read_latest()
            if latest is not None:
                image_data = latest.photo_data
                predicted_label = latest.predicted_label
                distance = latest.distance

        record = IncidentRecord(
            incident_id="",
            timestamp=self._clock_ms(),
            description=form.description,
            detailed_description=form.detailed_description,
            location=form.location,
            image_data=image_data,
            predicted_label=predicted_label,
            distance=distance,
            status=REPORT_STATUS,
            kind="report",
        )
        incident_id = await self._append(record)
        logger.info("Report %s submitted", incident_id)
        return replace(record, incident_id=incident_id)

    async def list_history(self, search: str | None = None) -> list[IncidentRecord]:
        raw = await self._channel.read(HISTORY_PATH)
        records = [
            IncidentRecord.from_store(key, payload)
            for key, payload in _iter_entries(raw)
        ]
        if search:
            needle = search.lower()
            records = [
                record
                for record in records
                if needle in record.description.lower()
                or needle in record.detailed_description.lower()
                or needle in record.location.lower()
            ]
        return sorted(records, key=lambda item: sort_key(item.timestamp), reverse=True)

    async def get_incident(self, incident_id: str) -> IncidentRecord | None:
        payload = await self._channel.read(f"{HISTORY_PATH}/{incident_id}")
        if not isinstance(payload, dict):
            return None
        return IncidentRecord.from_store(incident_id, payload)

    async def delete_incident(self, incident_id: str) -> None:
        if await self.get_incident(incident_id) is None:
            raise ValueError("Incident not found")
        await self._channel.remove(f"{HISTORY_PATH}/{incident_id}")
        logger.info("Incident %s deleted", incident_id)

    async def _append(self, record: IncidentRecord) -> str:
        return await self._channel.push(HISTORY_PATH, record.to_store())


def _iter_entries(raw: Any) -> list[tuple[str, dict[str, Any]]]:
    if isinstance(raw, dict):
        return [
            (str(key), value) for key, value in raw.items() if isinstance(value, dict)
        ]
    if isinstance(raw, list):
        return [
            (str(index), value)
            for index, value in enumerate(raw)
            if isinstance(value, dict)
        ]
    return []
