"""Base class and conventions for LaunchSync contracts.

Conventions (contracts and the snapshot file):
- **Datetimes**: always UTC, ISO 8601 in serialized form
- **Coordinates**: WGS84 decimal degrees
- **Identifiers**: opaque strings assigned by the launch provider
- **Absent values**: omitted from snapshots, never written as ``null``
"""

from typing import Any

from pydantic import BaseModel, ConfigDict


class SnapshotModel(BaseModel):
    """Immutable model that round-trips through the snapshot file.

    Instances are frozen; updates go through ``model_copy(update=...)``.
    Enums are stored as their string values.
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        use_enum_values=True,
    )

    def to_snapshot(self) -> dict[str, Any]:
        """JSON-safe dict for the snapshot document."""
        return self.model_dump(mode="json", exclude_none=True)

    @classmethod
    def from_snapshot(cls, data: dict[str, Any]) -> "SnapshotModel":
        return cls.model_validate(data)
