"""
Data models for assessment sessions.

Wire models (pydantic) mirror the server's JSON, using camelCase aliases;
session state is a plain dataclass owned by one orchestrator.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from assessment_client.assessment.progress import ProgressBuffer


class WireModel(BaseModel):
    """Base for server payloads: accepts aliases or field names, ignores unknown keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Application metadata
# =============================================================================

METADATA_FIELDS = ("name", "type", "technology", "path", "url")


class AppMetadata(WireModel):
    """
    Application under assessment.

    All fields are required and non-blank. The server echoes metadata back
    with underscore-prefixed keys (``_name``, ``_type``...), so both spellings
    are accepted; serialization always uses the plain keys.
    """
    name: str = Field(validation_alias=AliasChoices("name", "_name"))
    type: str = Field(validation_alias=AliasChoices("type", "_type"))
    technology: str = Field(validation_alias=AliasChoices("technology", "_technology"))
    path: str = Field(validation_alias=AliasChoices("path", "_path"))
    url: str = Field(validation_alias=AliasChoices("url", "_url"))

    model_config = ConfigDict(frozen=True, extra="ignore")

    @field_validator("*")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("must not be blank")
        return v.strip()

    @classmethod
    def missing_fields(cls, data: Optional[Mapping[str, Any]]) -> List[str]:
        """Names of required fields that are absent or blank in ``data``."""
        if not data:
            return list(METADATA_FIELDS)
        missing = []
        for name in METADATA_FIELDS:
            value = data.get(name, data.get(f"_{name}"))
            if not isinstance(value, str) or not value.strip():
                missing.append(name)
        return missing


# =============================================================================
# Results
# =============================================================================

class MetricHistoryPoint(WireModel):
    """One recorded value of a metric."""
    timestamp: str
    value: Any = None


class MetricResult(WireModel):
    """Metric attached to a goal, with its value history."""
    name: str
    acronym: str = ""
    description: str = ""
    value: Any = None
    unit: str = ""
    history: List[MetricHistoryPoint] = Field(default_factory=list)


class MetricAssessmentDetail(WireModel):
    """Contribution of one metric to a goal assessment."""
    metric: str
    value: float = 0.0
    weight: float = 0.0
    timestamp: str = ""


class GoalAssessment(WireModel):
    """Goal score computed at one point in time."""
    timestamp: str
    global_score: float = Field(default=0.0, alias="globalScore")
    details: List[MetricAssessmentDetail] = Field(default_factory=list)


class GoalResult(WireModel):
    """Latest known state of one assessed goal."""
    name: str = Field(min_length=1)
    description: str = ""
    weight: float = 0.0
    metrics: List[MetricResult] = Field(default_factory=list)
    assessments: List[GoalAssessment] = Field(default_factory=list)

    def latest_score(self) -> Optional[float]:
        """Global score of the most recent assessment, if any."""
        return self.assessments[-1].global_score if self.assessments else None


# =============================================================================
# Start call
# =============================================================================

class AssessmentRequest(WireModel):
    """Body of the start request."""
    metadata: AppMetadata
    selected_goals: List[str] = Field(alias="selectedGoals")

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class StartResponse(WireModel):
    """Start response naming the session and its two stream endpoints."""
    assessment_id: str = Field(alias="assessmentId")
    progress_endpoint: Optional[str] = Field(default=None, alias="progressEndpoint")
    assessment_endpoint: Optional[str] = Field(default=None, alias="assessmentEndpoint")


# =============================================================================
# Stream payloads
# =============================================================================

class ProgressEvent(WireModel):
    """Progress channel message."""
    type: str = "progress"
    message: Optional[str] = None


class AssessmentsPayload(WireModel):
    """
    Results channel message.

    Goal entries stay raw here; the reconciler validates them so that a bad
    entry drops the whole snapshot instead of failing the channel.
    """
    metadata: Optional[Dict[str, Any]] = None
    selected_goals: List[Any] = Field(alias="selectedGoals")


# =============================================================================
# Session state
# =============================================================================

class SessionPhase(str, Enum):
    """Lifecycle phase of an assessment session."""
    IDLE = "idle"
    STARTING = "starting"
    RUNNING = "running"
    STOPPED = "stopped"
    COMPLETED = "completed"
    FAILED = "failed"

    def is_active(self) -> bool:
        """A start request is in flight or streams are being consumed towards completion."""
        return self in (SessionPhase.STARTING, SessionPhase.RUNNING)

    def has_streams(self) -> bool:
        """Streams may be open in this phase."""
        return self in (SessionPhase.RUNNING, SessionPhase.COMPLETED)


@dataclass
class SessionState:
    """
    View state of the single session an orchestrator owns.

    Mutated only by the orchestrator. Compares by value, so a deep copy taken
    before an operation can be compared with the state after it.
    """
    progress: ProgressBuffer = field(default_factory=ProgressBuffer)
    phase: SessionPhase = SessionPhase.IDLE
    session_id: Optional[str] = None
    metadata: Optional[AppMetadata] = None
    selected_goal_names: List[str] = field(default_factory=list)
    results: Dict[str, GoalResult] = field(default_factory=dict)
    last_error: Optional[str] = None
    application_url: Optional[str] = None

    def reset(self, phase: SessionPhase = SessionPhase.IDLE) -> None:
        """Return every field to its idle default, keeping the buffer capacity."""
        self.phase = phase
        self.session_id = None
        self.metadata = None
        self.selected_goal_names = []
        self.progress.clear()
        self.results = {}
        self.last_error = None
        self.application_url = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "phase": self.phase.value,
            "session_id": self.session_id,
            "metadata": self.metadata.model_dump() if self.metadata else None,
            "selected_goal_names": list(self.selected_goal_names),
            "progress": list(self.progress.snapshot()),
            "results": {
                name: result.model_dump(by_alias=True) for name, result in self.results.items()
            },
            "last_error": self.last_error,
            "application_url": self.application_url,
        }


__all__ = [
    "METADATA_FIELDS",
    "AppMetadata",
    "MetricHistoryPoint",
    "MetricResult",
    "MetricAssessmentDetail",
    "GoalAssessment",
    "GoalResult",
    "AssessmentRequest",
    "StartResponse",
    "ProgressEvent",
    "AssessmentsPayload",
    "SessionPhase",
    "SessionState",
]
