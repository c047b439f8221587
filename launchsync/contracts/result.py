"""Outcome of a sync, handed from the coordinator to observing layers."""

from datetime import datetime, timezone
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

T = TypeVar("T")

UNABLE_TO_LOAD = "unable_to_load"
UNABLE_TO_LOAD_MESSAGE = "Unable to load launches. Please check your connection."

Detail = str | int | float | bool | None


class ServiceError(BaseModel):
    """Failure surfaced to the user-facing layer."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Message suitable for display")
    details: dict[str, Detail] = Field(default_factory=dict)

    @classmethod
    def unable_to_load(cls, **details: Detail) -> "ServiceError":
        return cls(code=UNABLE_TO_LOAD, message=UNABLE_TO_LOAD_MESSAGE, details=details)


class ServiceResult(BaseModel, Generic[T]):
    """``data`` on success, ``error`` on failure.

    ``stale`` marks data served from an expired provider cache because the
    provider could not be reached.
    """

    data: T | None = None
    error: ServiceError | None = None
    stale: bool = False
    duration_ms: float | None = Field(default=None, ge=0)
    completed_at: datetime = Field(default_factory=lambda: datetime.now(tz=timezone.utc))

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def ok(
        cls, data: T, *, duration_ms: float | None = None, stale: bool = False
    ) -> "ServiceResult[T]":
        return cls(data=data, duration_ms=duration_ms, stale=stale)

    @classmethod
    def failed(cls, error: ServiceError) -> "ServiceResult[T]":
        return cls(error=error)

    @classmethod
    def unable_to_load(cls, **details: Detail) -> "ServiceResult[T]":
        return cls.failed(ServiceError.unable_to_load(**details))
