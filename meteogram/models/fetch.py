"""Fetch target, cache-validator and outcome models."""

from dataclasses import dataclass
from enum import StrEnum

from meteogram.models.errors import MeteogramError


class TargetKind(StrEnum):
    RAW_VECTOR = "raw-vector"
    STRUCTURED_FORECAST = "structured-forecast"


class FetchState(StrEnum):
    IDLE = "IDLE"
    FETCHING = "FETCHING"
    RETRYING = "RETRYING"
    SUCCESS = "SUCCESS"
    NOT_MODIFIED = "NOT_MODIFIED"
    FAILED = "FAILED"


TERMINAL_STATES = frozenset(
    {FetchState.SUCCESS, FetchState.NOT_MODIFIED, FetchState.FAILED}
)


@dataclass(frozen=True)
class FetchTarget:
    request_url: str
    kind: TargetKind


@dataclass(frozen=True)
class CacheValidators:
    last_modified: str | None = None
    etag: str | None = None
    last_request_url: str | None = None

    @property
    def present(self) -> bool:
        return bool(self.last_modified or self.etag)


@dataclass(frozen=True)
class FetchOutcome:
    state: FetchState
    target: FetchTarget
    attempts: int
    payload: str | None = None
    content_type: str = ""
    error: MeteogramError | None = None
