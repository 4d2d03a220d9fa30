"""
Render job data model.

GenerationRequest is the immutable user brief, JobHandle the opaque
reference to a provider-side job, and JobStatus the canonical four-state
snapshot every provider response is normalized into.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Optional

from core.errors import ValidationError


class ProviderId(str, Enum):
    """Where a job lives. SYNC marks a result that needed no polling."""
    SIMULATOR = "simulator"
    EDEN = "eden"
    REPLICATE = "replicate"
    SYNC = "sync"


class AspectFormat(str, Enum):
    """Output format presets offered by the wizard."""
    REEL = "Reel (9:16)"
    STORY = "Story (9:16)"
    SQUARE = "Square (1:1)"
    WIDE = "Wide (16:9)"
    CAROUSEL = "Carousel (Photos)"

    @property
    def aspect_ratio(self) -> str:
        return _ASPECT_RATIOS[self]

    @classmethod
    def parse(cls, value: str) -> "AspectFormat":
        """Accept a preset label ("Wide (16:9)") or a bare ratio ("16:9")."""
        text = value.strip()
        for member in cls:
            if text.lower() == member.value.lower() or text.lower() == member.name.lower():
                return member
        for member in cls:
            if member.aspect_ratio == text:
                return member
        raise ValidationError(f"Unknown format: {value!r}", error_code="INVALID_FORMAT")


_ASPECT_RATIOS = {
    AspectFormat.REEL: "9:16",
    AspectFormat.STORY: "9:16",
    AspectFormat.SQUARE: "1:1",
    AspectFormat.WIDE: "16:9",
    AspectFormat.CAROUSEL: "1:1",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class GenerationRequest:
    """A single user-initiated render request. Never mutated."""
    prompt: str
    tone: Optional[str] = None
    format: Optional[AspectFormat] = None
    provider_hint: Optional[str] = None

    def validate(self) -> None:
        """Reject the request before any network call is made."""
        if not isinstance(self.prompt, str) or not self.prompt.strip():
            raise ValidationError("Missing prompt", error_code="EMPTY_PROMPT")

    @property
    def aspect_ratio(self) -> str:
        return (self.format or AspectFormat.REEL).aspect_ratio

    def compose_prompt(self) -> str:
        """Prompt text sent to providers: the brief plus a tone hint."""
        text = self.prompt.strip()
        if self.tone:
            text = f"{text}\nTone: {self.tone.strip()}"
        return text

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "GenerationRequest":
        """Build from an API body (``prompt``, ``tone``, ``format``, ``providerHint``)."""
        raw_format = data.get("format")
        return cls(
            prompt=data.get("prompt") or "",
            tone=data.get("tone") or None,
            format=AspectFormat.parse(raw_format) if raw_format else None,
            provider_hint=data.get("providerHint") or data.get("provider_hint") or None,
        )


@dataclass(frozen=True)
class JobHandle:
    """Opaque identifier plus provenance for a provider-side job."""
    id: str
    provider: ProviderId
    created_at: datetime = field(default_factory=utcnow)

    @property
    def needs_polling(self) -> bool:
        return self.provider != ProviderId.SYNC

    def to_dict(self) -> dict[str, Any]:
        return {
            "jobId": self.id,
            "provider": self.provider.value,
            "createdAt": self.created_at.isoformat(),
        }


class JobState(str, Enum):
    """Canonical states, shared vocabulary for every provider."""
    QUEUED = "queued"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class JobStatus:
    """Base of the canonical status union. Use the concrete subclasses."""
    state: ClassVar[JobState]

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.SUCCEEDED, JobState.FAILED)

    @property
    def progress(self) -> int:
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.state.value, "progress": self.progress}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "JobStatus":
        """
        Rebuild a snapshot from its ``to_dict()`` form (e.g. an API response).

        Raises:
            ValueError: unknown ``status`` value
        """
        state = JobState(data.get("status"))
        if state == JobState.QUEUED:
            return Queued()
        if state == JobState.PROCESSING:
            return Processing(percent=data.get("progress") or 0)
        if state == JobState.SUCCEEDED:
            return Succeeded(asset_url=data.get("url") or "")
        return Failed(reason=data.get("error") or "unknown error")


@dataclass(frozen=True)
class Queued(JobStatus):
    state: ClassVar[JobState] = JobState.QUEUED


@dataclass(frozen=True)
class Processing(JobStatus):
    state: ClassVar[JobState] = JobState.PROCESSING
    percent: int = 50

    def __post_init__(self):
        # progress is always observed in [0, 100]
        object.__setattr__(self, "percent", max(0, min(100, int(self.percent))))

    @property
    def progress(self) -> int:
        return self.percent


@dataclass(frozen=True)
class Succeeded(JobStatus):
    state: ClassVar[JobState] = JobState.SUCCEEDED
    asset_url: str = ""

    @property
    def progress(self) -> int:
        return 100

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "url": self.asset_url}


@dataclass(frozen=True)
class Failed(JobStatus):
    state: ClassVar[JobState] = JobState.FAILED
    reason: str = "unknown error"

    def to_dict(self) -> dict[str, Any]:
        return {**super().to_dict(), "error": self.reason}


@dataclass(frozen=True)
class StartOutcome:
    """Result of starting a job: a handle to poll, or a terminal status. Never both."""
    handle: Optional[JobHandle] = None
    status: Optional[JobStatus] = None

    def __post_init__(self):
        if (self.handle is None) == (self.status is None):
            raise ValueError("StartOutcome needs exactly one of handle or status")
        if self.status is not None and not self.status.is_terminal:
            raise ValueError("A synchronous StartOutcome must carry a terminal status")

    @property
    def is_synchronous(self) -> bool:
        return self.status is not None
