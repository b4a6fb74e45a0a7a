"""
Pydantic models for upstream payloads and proxy responses.
"""
import enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, model_validator


class SessionStatus(str, enum.Enum):
    """Session status as reported by the upstream API."""
    UPLOADING = "uploading"
    PROCESSING = "processing"
    IN_PROGRESS = "in progress"
    COMPLETED = "completed"
    DONE = "done"
    NO_FACES_FOUND = "no faces found"
    FAILED = "failed"


IN_FLIGHT_STATUSES = frozenset({
    SessionStatus.UPLOADING,
    SessionStatus.PROCESSING,
    SessionStatus.IN_PROGRESS,
})
# "done" is an alternate spelling of "completed" upstream
SUCCESS_STATUSES = frozenset({SessionStatus.COMPLETED, SessionStatus.DONE})
TERMINAL_STATUSES = SUCCESS_STATUSES | {SessionStatus.NO_FACES_FOUND, SessionStatus.FAILED}

MODEL_COUNT = 10
MODEL_SCORE_FIELDS = tuple(f"is_real_model_{i}" for i in range(1, MODEL_COUNT + 1))


def parse_status(value) -> Optional[SessionStatus]:
    """Map a raw status string to SessionStatus, None when unknown."""
    if isinstance(value, SessionStatus):
        return value
    if not isinstance(value, str):
        return None
    try:
        return SessionStatus(value.strip().lower())
    except ValueError:
        return None


class _ClosedRecord(BaseModel):
    """Record with named fields; unrecognised keys are moved into `extra`."""

    extra: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _split_unknown_fields(cls, data):
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields) - {"extra"}
        named = {k: v for k, v in data.items() if k in known}
        unknown = {k: v for k, v in data.items() if k not in known and k != "extra"}
        raw_extra = data.get("extra")
        if isinstance(raw_extra, dict):
            unknown = {**raw_extra, **unknown}
        elif raw_extra is not None:
            unknown["extra"] = raw_extra
        named["extra"] = unknown
        return named


class MetricInfo(BaseModel):
    """One entry of a face's generic metrics map."""
    name: str
    probability: float


class FaceInfo(_ClosedRecord):
    """One detected face inside a session."""
    is_real_model_1: Optional[float] = None
    is_real_model_2: Optional[float] = None
    is_real_model_3: Optional[float] = None
    is_real_model_4: Optional[float] = None
    is_real_model_5: Optional[float] = None
    is_real_model_6: Optional[float] = None
    is_real_model_7: Optional[float] = None
    is_real_model_8: Optional[float] = None
    is_real_model_9: Optional[float] = None
    is_real_model_10: Optional[float] = None
    ansamble: Optional[float] = None
    realProbability: Optional[float] = None
    fakeProbability: Optional[float] = None
    isReal: Optional[bool] = None
    face_id: Optional[Union[str, int]] = None
    confidence: Optional[float] = None
    verdict: Optional[str] = None
    metrics: Optional[Dict[str, MetricInfo]] = None
    models: Optional[Dict[str, Dict[str, Any]]] = None
    face_path: Optional[str] = None

    def model_scores(self) -> List[Optional[float]]:
        return [getattr(self, name) for name in MODEL_SCORE_FIELDS]

    def has_model_scores(self) -> bool:
        # An explicit null still marks a ten-model face
        return any(name in self.model_fields_set for name in MODEL_SCORE_FIELDS)


class SessionInfo(_ClosedRecord):
    """Full session information returned by GET {base}/{uuid}."""
    uuid: Optional[str] = None
    status: Optional[str] = None
    sha256: Optional[str] = None
    image_path: Optional[str] = None
    total_faces: Optional[int] = None
    faces: List[FaceInfo] = Field(default_factory=list)
    created_at: Optional[str] = None
    processed_at: Optional[str] = None
    error: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _null_faces(cls, data):
        if isinstance(data, dict) and data.get("faces") is None:
            data = {**data, "faces": []}
        return data

    @property
    def session_status(self) -> Optional[SessionStatus]:
        return parse_status(self.status)


class EnsembleProbability(BaseModel):
    real: float
    fake: float


class ModelProbability(BaseModel):
    model: str
    realProbability: float
    fakeProbability: float


class AnalysisResult(BaseModel):
    """Display-ready result for one face. faceIndex is 1-based."""
    faceIndex: int
    facePath: str
    ensembleProbability: EnsembleProbability
    modelProbabilities: List[ModelProbability]
    verdict: str


class UploadResponse(BaseModel):
    uuid: str


class UrlUploadRequest(BaseModel):
    url: Optional[str] = None


class StatusResponse(BaseModel):
    status: str


class PdfReportResponse(BaseModel):
    success: bool
    message: str
    filename: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[str] = None


class ApiLogEntry(BaseModel):
    """One recorded API call."""
    timestamp: str
    type: str
    endpoint: str
    details: Dict[str, Any] = Field(default_factory=dict)


class ApiLogListResponse(BaseModel):
    data: List[ApiLogEntry]
    total: int
    capacity: int
