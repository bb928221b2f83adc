from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_BRIEF = "Auto app"

class Attachment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: Optional[str] = None
    url: Optional[str] = None  # data: URIs supported

class TaskRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    secret: Optional[str] = None
    task: str
    round: int
    nonce: str
    brief: str = DEFAULT_BRIEF
    checks: Tuple[Any, ...] = ()  # opaque, passed through untouched
    evaluation_url: str
    attachments: Tuple[Attachment, ...] = ()

    @field_validator("brief", mode="before")
    @classmethod
    def _default_brief(cls, v):
        return v or DEFAULT_BRIEF

    @field_validator("checks", "attachments", mode="before")
    @classmethod
    def _none_is_empty(cls, v):
        return () if v is None else v

class AttachmentInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    mime_type: str
    size: int

class GeneratedFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    content: str

class ArtifactSet(BaseModel):
    model_config = ConfigDict(frozen=True)

    files: Tuple[GeneratedFile, ...]
    readme: str = ""

class PublishResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    repo_url: str
    commit_sha: str

class CallbackPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    task: str
    round: int
    nonce: str
    repo_url: str
    commit_sha: str
    deploy_url: Optional[str] = None

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")

class JobOutcome(BaseModel):
    job_id: str
    task: str
    round: int
    nonce: str
    status: str  # notified | publish_failed | notify_failed | failed
    repo_url: Optional[str] = None
    error: Optional[str] = None
    finished_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class AcceptedResponse(BaseModel):
    status: str = "accepted"
    job_id: str

class StatusResponse(BaseModel):
    running_jobs: int
    recent_jobs: List[JobOutcome]
