from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

NoteItem = Annotated[str, Field(min_length=1, max_length=5000)]
NoteText = Annotated[str, Field(min_length=1, max_length=10000)]


class AnalysisRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    structured_data: dict[str, Any]
    notes: NoteText | list[NoteItem]
    cache_key: str | None = None
    webhook_url: HttpUrl | None = None

    @field_validator("notes")
    @classmethod
    def notes_as_list(cls, value):
        if isinstance(value, str):
            return [value]
        return value


class AnalysisMetadata(BaseModel):
    confidence_score: float = Field(ge=0.0, le=1.0)
    model_version: str
    processing_time_ms: int = 0
    timestamp: str
    request_id: str | None = None
    provider: str | None = None
    cached: bool | None = None
    cache_key: str | None = None
    fallback: bool | None = None


class AnalysisResponse(BaseModel):
    summary: str
    key_insights: list[str]
    next_actions: list[str]
    metadata: AnalysisMetadata


class AnalyzeEnvelope(BaseModel):
    success: bool = True
    data: AnalysisResponse


class JobData(BaseModel):
    job_id: str
    structured_data: dict[str, Any]
    notes: list[str]
    webhook_url: str | None = None


JobState = Literal["waiting", "active", "completed", "failed", "not_found"]


class JobStatus(BaseModel):
    job_id: str
    status: JobState
    result: AnalysisResponse | None = None
    error: str | None = None
    created_at: str | None = None
    processed_on: str | None = None
    completed_at: str | None = None
    attempts_made: int = 0


class JobStatusEnvelope(BaseModel):
    success: bool = True
    data: JobStatus


class JobAccepted(BaseModel):
    job_id: str
    status_url: str
    estimated_completion_time: str = "30 seconds"


class JobAcceptedEnvelope(BaseModel):
    success: bool = True
    message: str = "Analysis job accepted"
    data: JobAccepted


class ValidationErrorDetail(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: list[ValidationErrorDetail] | None = None
