"""
Request/response models for the HTTP boundary.

Field names follow the browser client's camelCase wire format.
"""

from typing import Optional

from pydantic import BaseModel

from services.generation import GenerationRequest, JobStatus, StartOutcome


class RenderRequest(BaseModel):
    """Body of POST /api/render."""
    prompt: Optional[str] = ""
    tone: Optional[str] = None
    format: Optional[str] = None
    providerHint: Optional[str] = None

    def to_generation_request(self) -> GenerationRequest:
        return GenerationRequest.from_payload(self.model_dump())


class StatusResponse(BaseModel):
    """Canonical job snapshot."""
    status: str
    progress: int
    url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_status(cls, status: JobStatus) -> "StatusResponse":
        return cls(**status.to_dict())


class RenderResponse(BaseModel):
    """
    Either a handle to poll (jobId, provider, createdAt) or a terminal
    result (status, progress, url/error), never both.
    """
    jobId: Optional[str] = None
    provider: Optional[str] = None
    createdAt: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[int] = None
    url: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def from_outcome(cls, outcome: StartOutcome) -> "RenderResponse":
        if outcome.is_synchronous:
            return cls(provider="sync", **outcome.status.to_dict())
        return cls(**outcome.handle.to_dict())


class CopyRequest(BaseModel):
    """Body of POST /api/generate-copy."""
    prompt: Optional[str] = ""


class EnvCheckResponse(BaseModel):
    """Credential presence only; values are never exposed."""
    openaiKeyPresent: bool
    edenKeyPresent: bool
    replicateKeyPresent: bool
    simulatorForced: bool
    provider: str


class ErrorResponse(BaseModel):
    error: str
    code: Optional[str] = None
