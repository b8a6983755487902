from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Header, HTTPException, Response
from pydantic import BaseModel, Field

from libs.core.application.contracts import ChannelError
from libs.core.application.movement_emitter import JoystickSample
from libs.core.domain.entities import (
    CaptureResult,
    ConsoleSnapshot,
    FireOutcome,
    IncidentRecord,
    LatestPhotoPointer,
    ReportForm,
)
from libs.core.domain.images import to_data_uri
from libs.core.domain.timestamps import split_display_timestamp
from services.tank_console.dependencies import get_console, get_settings

router = APIRouter()


class JoystickMoveRequest(BaseModel):
    force: float | None = Field(default=None, ge=0.0)
    angle: float | None = None
    x: float | None = None
    y: float | None = None
    session_id: int | None = None


class JoystickEndRequest(BaseModel):
    session_id: int | None = None


class ModeRequest(BaseModel):
    autonomous: bool


class DistanceRequest(BaseModel):
    distance: float | None = None


class ReportRequest(BaseModel):
    description: str = Field(min_length=1)
    detailed_description: str = Field(min_length=1)
    location: str = Field(min_length=1)
    source_incident_id: str | None = None


class AnalysisRequest(BaseModel):
    latest_photo: bool = False


def require_operator(authorization: str | None = Header(default=None)) -> None:
    token = get_settings().operator_token
    if token is None:
        return
    if authorization != f"Bearer {token}":
        raise HTTPException(status_code=401, detail="Operator not authenticated")


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/favicon.ico")
def favicon() -> Response:
    return Response(status_code=204)


@router.get("/ready")
def ready() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/version")
def version() -> dict[str, str]:
    return {"version": "0.1.0"}


@router.get("/v1/console/state")
def get_console_state() -> dict[str, object]:
    console = get_console()
    return _snapshot_to_dict(console.snapshot(), session_id=console.emitter.session_id)


@router.post("/v1/fire", dependencies=[Depends(require_operator)])
async def fire() -> dict[str, object]:
    outcome = await get_console().fire.request_fire()
    if not outcome.accepted:
        detail = (
            "Target out of range" if outcome.reason == "out_of_range" else "Fire in progress"
        )
        raise HTTPException(status_code=409, detail=detail)
    return _fire_outcome_to_dict(outcome)


@router.post("/v1/joystick/move", dependencies=[Depends(require_operator)])
async def joystick_move(payload: JoystickMoveRequest) -> dict[str, object]:
    if payload.force is not None and payload.angle is not None:
        sample = JoystickSample.from_force(payload.force, payload.angle)
    elif payload.x is not None and payload.y is not None:
        sample = JoystickSample.from_vector(payload.x, payload.y)
    else:
        raise HTTPException(
            status_code=422, detail="Provide force and angle, or x and y"
        )
    written = await get_console().emitter.move(sample, session_id=payload.session_id)
    return {"written": written, "speed": sample.speed, "angle": sample.angle}


@router.post("/v1/joystick/end", dependencies=[Depends(require_operator)])
async def joystick_end(payload: JoystickEndRequest) -> dict[str, object]:
    written = await get_console().emitter.end(session_id=payload.session_id)
    return {"written": written}


@router.put("/v1/mode", dependencies=[Depends(require_operator)])
async def set_mode(payload: ModeRequest) -> dict[str, object]:
    console = get_console()
    try:
        state = await console.mode.set_autonomous(payload.autonomous)
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    return {
        "autonomous": state.autonomous,
        "joystick_session_id": console.emitter.session_id,
    }


@router.post("/v1/sensor/distance")
async def report_distance(payload: DistanceRequest) -> dict[str, object]:
    try:
        gate = await get_console().report_distance(payload.distance)
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    return {"distance": gate.distance, "can_fire": gate.can_fire}


@router.get("/v1/photos/latest")
async def get_latest_photo() -> dict[str, object]:
    try:
        latest = await get_console().incidents.open_report()
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    if latest is None:
        raise HTTPException(status_code=404, detail="No photo captured yet")
    return _latest_to_dict(latest)


@router.post("/v1/reports", dependencies=[Depends(require_operator)])
async def submit_report(payload: ReportRequest) -> dict[str, object]:
    form = ReportForm(
        description=payload.description,
        detailed_description=payload.detailed_description,
        location=payload.location,
    )
    try:
        record = await get_console().incidents.submit_report(
            form, source_incident_id=payload.source_incident_id
        )
    except ValueError as error:
        raise HTTPException(status_code=404, detail=str(error)) from error
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    return _incident_to_dict(record)


@router.get("/v1/history")
async def get_history(search: str | None = None) -> list[dict[str, object]]:
    try:
        records = await get_console().incidents.list_history(search=search)
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    return [_incident_to_dict(record) for record in records]


@router.delete("/v1/history/{incident_id}", dependencies=[Depends(require_operator)])
async def delete_history_entry(incident_id: str) -> dict[str, object]:
    try:
        await get_console().incidents.delete_incident(incident_id)
    except ValueError as error:
        raise HTTPException(status_code=404, detail=str(error)) from error
    except ChannelError as error:
        raise HTTPException(status_code=502, detail=str(error)) from error
    return {"incident_id": incident_id, "deleted": True}


@router.post("/v1/analysis")
async def run_analysis(payload: AnalysisRequest | None = None) -> dict[str, object]:
    console = get_console()
    analyzer = console.analyzer
    if analyzer is None:
        raise HTTPException(status_code=404, detail="Ambient analysis disabled")
    if payload is not None and payload.latest_photo:
        try:
            latest = await console.incidents.read_latest()
        except ChannelError as error:
            raise HTTPException(status_code=502, detail=str(error)) from error
        if latest is None:
            raise HTTPException(status_code=404, detail="No photo captured yet")
        result = await analyzer.analyze_image_data(latest.photo_data)
    else:
        result = await analyzer.analyze()
    return _capture_to_dict(result)


def _snapshot_to_dict(
    snapshot: ConsoleSnapshot, session_id: int | None
) -> dict[str, object]:
    return {
        "distance": snapshot.gate.distance,
        "can_fire": snapshot.gate.can_fire,
        "fire_state": snapshot.fire_state.value,
        "fire_enabled": snapshot.gate.can_fire and snapshot.fire_state.value == "idle",
        "autonomous": snapshot.autonomous,
        "joystick_session_id": session_id,
        "camera_stream_url": snapshot.camera_stream_url,
        "model_state": snapshot.model_state.value,
        "last_fired_at": _epoch_to_iso(snapshot.last_fired_at),
        "last_analysis": (
            _capture_to_dict(snapshot.last_analysis)
            if snapshot.last_analysis is not None
            else None
        ),
        "advisories": [
            {"level": item.level, "message": item.message}
            for item in snapshot.advisories
        ],
    }


def _fire_outcome_to_dict(outcome: FireOutcome) -> dict[str, object]:
    return {
        "accepted": outcome.accepted,
        "fire_state": outcome.state.value,
        "incident_id": outcome.incident_id,
        "capture": (
            _capture_to_dict(outcome.capture) if outcome.capture is not None else None
        ),
    }


def _capture_to_dict(capture: CaptureResult) -> dict[str, object]:
    return {
        "image_data_uri": to_data_uri(capture.image_data),
        "predicted_label": capture.predicted_label,
        "confidence": list(capture.confidence) if capture.confidence is not None else None,
        "source": capture.source,
    }


def _latest_to_dict(latest: LatestPhotoPointer) -> dict[str, object]:
    return {
        "photo_data_uri": to_data_uri(latest.photo_data),
        "timestamp": latest.timestamp,
        "predicted_label": latest.predicted_label,
        "distance": latest.distance,
    }


def _incident_to_dict(record: IncidentRecord) -> dict[str, object]:
    display_date, display_time = split_display_timestamp(record.timestamp)
    return {
        "incident_id": record.incident_id,
        "timestamp": record.timestamp,
        "display_date": display_date,
        "display_time": display_time,
        "description": record.description,
        "detailed_description": record.detailed_description,
        "location": record.location,
        "image_data_uri": to_data_uri(record.image_data) if record.image_data else None,
        "predicted_label": record.predicted_label,
        "distance": record.distance,
        "status": record.status,
        "kind": record.kind,
    }


def _epoch_to_iso(value: float | None) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
