"""
Result Normalizer

Maps each provider's raw status payload into the canonical JobStatus.

Providers are not contractually bound to a fixed status enum or to a single
field for the produced asset, so matching is deliberately tolerant:
- status strings are matched case-insensitively by substring
- asset URLs are searched in a fixed precedence order per provider
- progress is clamped into [0, 100]

``normalize`` never raises; malformed input becomes ``Failed``.
"""

import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from .models import (
    Failed,
    JobStatus,
    Processing,
    ProviderId,
    Queued,
    Succeeded,
)

logger = logging.getLogger(__name__)

# Checked in this order; failure first so "failed_after_success" style strings stay failures.
FAILURE_MARKERS = ("fail", "error", "cancel", "abort")
SUCCESS_MARKERS = ("succ", "complet", "finish")
QUEUED_MARKERS = ("queue", "pending", "waiting")

STATUS_FIELDS = ("status", "state")
PROGRESS_FIELDS = ("progress", "percent", "progress_percent")
REASON_FIELDS = ("error", "failMsg", "message", "detail", "reason")
DEFAULT_PROCESSING_PROGRESS = 50

VIDEO_URL = re.compile(r"\.(mp4|webm|mov|m4v)(?:[?#]|$)", re.IGNORECASE)
IMAGE_URL = re.compile(r"\.(png|jpe?g|webp|gif)(?:[?#]|$)", re.IGNORECASE)


@dataclass(frozen=True)
class UrlPrecedence:
    """
    Where a provider may put the produced asset, in lookup order.

    1. ``direct``: top-level fields holding a URL string
    2. ``buckets`` holding an object: the ``nested`` fields inside it
    3. ``buckets`` holding an array: first element that looks like media
       (video before image), else the last element
    """
    direct: tuple[str, ...] = ("url", "asset_url", "video_url", "output_url")
    buckets: tuple[str, ...] = ("output", "result", "data")
    nested: tuple[str, ...] = ("url", "video", "video_url")


URL_PRECEDENCE: dict[ProviderId, UrlPrecedence] = {
    ProviderId.SIMULATOR: UrlPrecedence(direct=("url",), buckets=(), nested=()),
    ProviderId.EDEN: UrlPrecedence(
        direct=("video_resource_url", "url", "video_url", "output_url"),
        buckets=("result", "results", "data", "output"),
        nested=("video_resource_url", "url", "video_url", "video"),
    ),
    ProviderId.REPLICATE: UrlPrecedence(
        direct=("output", "url"),
        buckets=("output",),
        nested=("video", "url", "file", "image"),
    ),
}

JOB_ID_FIELDS = ("job_id", "jobId", "public_id", "id", "task_id", "taskId")
JOB_ID_BUCKETS = ("data", "result")


def _looks_like_url(value: Any) -> bool:
    return isinstance(value, str) and value.strip().lower().startswith(("http://", "https://"))


def classify_status(raw_status: str) -> type:
    """Return the canonical status class for a provider status string."""
    text = raw_status.strip().lower()
    if any(marker in text for marker in FAILURE_MARKERS):
        return Failed
    if any(marker in text for marker in SUCCESS_MARKERS):
        return Succeeded
    if any(marker in text for marker in QUEUED_MARKERS):
        return Queued
    return Processing


def clamp_progress(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip().rstrip("%"))
        except ValueError:
            return default
    if not isinstance(value, (int, float)) or math.isnan(value):
        return default
    return int(max(0, min(100, round(value))))


def _first_field(payload: dict, fields: Iterable[str]) -> Any:
    for name in fields:
        if payload.get(name) is not None:
            return payload[name]
    return None


def _element_url(element: Any, nested: tuple[str, ...]) -> Optional[str]:
    if _looks_like_url(element):
        return element.strip()
    if isinstance(element, dict):
        for name in nested:
            if _looks_like_url(element.get(name)):
                return element[name].strip()
    return None


def pick_media_url(candidates: list[str]) -> Optional[str]:
    """Prefer the first video URL, then the first image URL, then the last candidate."""
    if not candidates:
        return None
    for pattern in (VIDEO_URL, IMAGE_URL):
        for url in candidates:
            if pattern.search(url):
                return url
    return candidates[-1]


def extract_asset_url(payload: Any, precedence: UrlPrecedence) -> Optional[str]:
    """Find the produced asset URL in a provider payload, or None."""
    if not isinstance(payload, dict):
        return None

    for name in precedence.direct:
        if _looks_like_url(payload.get(name)):
            return payload[name].strip()

    for name in precedence.buckets:
        bucket = payload.get(name)
        if isinstance(bucket, dict):
            url = _element_url(bucket, precedence.nested)
            if url:
                return url

    candidates: list[str] = []
    for name in precedence.buckets:
        bucket = payload.get(name)
        if isinstance(bucket, list):
            for element in bucket:
                url = _element_url(element, precedence.nested)
                if url:
                    candidates.append(url)
    return pick_media_url(candidates)


def extract_job_id(
    payload: Any,
    fields: tuple[str, ...] = JOB_ID_FIELDS,
    buckets: tuple[str, ...] = JOB_ID_BUCKETS,
) -> Optional[str]:
    """Find a job id at the top level or one level down in a known bucket."""
    if not isinstance(payload, dict):
        return None
    scopes = [payload] + [payload[b] for b in buckets if isinstance(payload.get(b), dict)]
    for scope in scopes:
        for name in fields:
            value = scope.get(name)
            if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value).strip():
                return str(value).strip()
    return None


def _failure_reason(payload: dict, raw_status: str) -> str:
    value = _first_field(payload, REASON_FIELDS)
    if isinstance(value, dict):
        value = _first_field(value, ("message", "detail", "error"))
    if isinstance(value, str) and value.strip():
        return value.strip()
    return f"provider reported {raw_status.strip().lower() or 'failure'}"


def _normalize(provider: ProviderId, raw: Any) -> JobStatus:
    if not isinstance(raw, dict):
        return Failed(reason=f"malformed {provider.value} response: expected a JSON object")

    raw_status = _first_field(raw, STATUS_FIELDS)
    if raw_status is None:
        return Failed(reason=f"malformed {provider.value} response: missing status field")
    if not isinstance(raw_status, str):
        return Failed(reason=f"malformed {provider.value} response: status is not a string")
    if not raw_status.strip():
        return Failed(reason=f"malformed {provider.value} response: empty status")

    kind = classify_status(raw_status)

    if kind is Failed:
        return Failed(reason=_failure_reason(raw, raw_status))

    if kind is Succeeded:
        precedence = URL_PRECEDENCE.get(provider, UrlPrecedence())
        url = extract_asset_url(raw, precedence)
        if not url:
            logger.warning(f"{provider.value} reported success without an asset url: {raw}")
            return Failed(reason="no asset url in success response")
        return Succeeded(asset_url=url)

    if kind is Queued:
        return Queued()

    progress = clamp_progress(_first_field(raw, PROGRESS_FIELDS), DEFAULT_PROCESSING_PROGRESS)
    return Processing(percent=progress)


def normalize(provider: ProviderId, raw: Any) -> JobStatus:
    """
    Normalize a raw provider response into a canonical JobStatus.

    Args:
        provider: Which provider produced ``raw``
        raw: The decoded JSON body (anything; malformed input is tolerated)

    Returns:
        A fresh, immutable JobStatus snapshot. Never raises.
    """
    try:
        return _normalize(ProviderId(provider), raw)
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Normalization failed for {provider}: {type(e).__name__}: {e}")
        return Failed(reason=f"malformed provider response: {type(e).__name__}")


def reconcile(previous: Optional[JobStatus], current: JobStatus) -> JobStatus:
    """
    Enforce ordering between two consecutive snapshots of the same job.

    - A terminal snapshot is absorbing; a different follow-up is a provider
      bug and becomes ``Failed("inconsistent provider state")``.
    - Progress never goes backwards; Queued after Processing keeps Processing.
    """
    if previous is None:
        return current

    if previous.is_terminal:
        if current == previous:
            return previous
        logger.warning(f"Provider flipped terminal state {previous} -> {current}")
        return Failed(reason="inconsistent provider state")

    if current.is_terminal:
        return current

    if isinstance(previous, Processing):
        if isinstance(current, Queued):
            return previous
        if isinstance(current, Processing) and current.percent < previous.percent:
            return previous

    return current
