from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

UNKNOWN_LABEL = "Unknown"


class FireState(str, Enum):
    """Fire sequencer states."""

    IDLE = "idle"
    FIRING = "firing"
    COOLING_DOWN = "cooling_down"


class ModelState(str, Enum):
    """Classifier model lifecycle."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


@dataclass
class SensorReading:
    """Last distance value published by the vehicle."""

    distance: float | None


@dataclass
class FireGateState:
    """Fire gate derived from the latest distance reading."""

    distance: float | None
    can_fire: bool


@dataclass
class MovementCommand:
    """Speed and heading written for the vehicle drive."""

    speed: float
    angle: float


@dataclass
class ModeState:
    """Autonomous/manual mode flag."""

    autonomous: bool


@dataclass(frozen=True)
class CaptureResult:
    """Frame captured by one capture cycle."""

    image_data: str
    predicted_label: str
    confidence: Optional[tuple[float, ...]] = None
    source: str = "placeholder"


@dataclass
class LatestPhotoPointer:
    """Most recent capture, kept in a single slot."""

    photo_data: str
    timestamp: int | None
    predicted_label: str
    distance: float | None


@dataclass
class IncidentRecord:
    """Entry of the append-only incident history."""

    incident_id: str
    timestamp: int | str
    description: str
    detailed_description: str
    location: str
    image_data: str
    predicted_label: str
    distance: float | None
    status: str
    kind: str = "report"

    def to_store(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "timestamp": self.timestamp,
            "description": self.description,
            "detailedDescription": self.detailed_description,
            "location": self.location,
            "imageUrl": self.image_data,
            "prediction": self.predicted_label,
            "distance": self.distance,
            "status": self.status,
            "kind": self.kind,
            "alt": "Tank Image",
        }
        if self.incident_id:
            payload["id"] = self.incident_id
        return payload

    @classmethod
    def from_store(cls, key: str, payload: dict[str, Any]) -> "IncidentRecord":
        return cls(
            incident_id=payload.get("id") or key,
            timestamp=payload.get("timestamp") or 0,
            description=payload.get("description") or "",
            detailed_description=payload.get("detailedDescription") or "",
            location=payload.get("location") or "",
            image_data=payload.get("imageUrl") or payload.get("imageData") or "",
            predicted_label=payload.get("prediction") or UNKNOWN_LABEL,
            distance=payload.get("distance"),
            status=payload.get("status") or "",
            kind=payload.get("kind") or "report",
        )


@dataclass
class ReportForm:
    """Free-text fields the operator fills in for a detailed report."""

    description: str
    detailed_description: str
    location: str


@dataclass
class FireOutcome:
    """Result of a fire request."""

    accepted: bool
    state: FireState
    incident_id: str | None = None
    capture: CaptureResult | None = None
    reason: str | None = None


@dataclass
class Advisory:
    """Operator-facing banner."""

    level: str
    message: str


@dataclass
class ConsoleSnapshot:
    """Aggregated console state shown to the operator."""

    gate: FireGateState
    fire_state: FireState
    autonomous: bool
    camera_stream_url: str | None
    model_state: ModelState
    last_fired_at: float | None
    last_analysis: CaptureResult | None
    advisories: list[Advisory] = field(default_factory=list)
