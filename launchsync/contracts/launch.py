"""Launch records: the unit of data moved through the pipeline.

Persisted as a homogeneous list in the snapshot file.
"""

from datetime import datetime

from pydantic import Field

from launchsync.contracts.common import SnapshotModel
from launchsync.contracts.enums import EnrichmentSource

UNKNOWN_NAME = "Unnamed Launch"
UNKNOWN_PROVIDER = "Unknown Provider"
UNKNOWN_LOCATION = "Unknown Location"
UNKNOWN_ROCKET = "Unknown Rocket"
UNKNOWN_MISSION = "Unknown Mission"
UNKNOWN_ORBIT = "Unknown Orbit"
UNKNOWN = "Unknown"
NOT_AVAILABLE = "N/A"


class OrbitInfo(SnapshotModel):
    """Target orbit of a mission."""

    id: int = 0
    name: str = UNKNOWN_ORBIT
    abbrev: str = NOT_AVAILABLE


class AgencyInfo(SnapshotModel):
    """Agency involved in a mission."""

    id: int
    url: str = ""
    name: str
    type: str = UNKNOWN


class MissionInfo(SnapshotModel):
    """Mission payload details as reported by the provider."""

    id: int = -1
    name: str = UNKNOWN_MISSION
    type: str = UNKNOWN
    description: str | None = None
    image_url: str | None = None
    orbit: OrbitInfo | None = None
    agencies: list[AgencyInfo] = Field(default_factory=list)


class LaunchRecord(SnapshotModel):
    """A single upcoming launch.

    Records are frozen: changes produce a new instance via
    ``model_copy(update=...)``, so ``id`` and ``net`` never change after
    creation. Only the enrichment fields and the user-local flags are ever
    updated.
    """

    id: str = Field(..., min_length=1)
    name: str = UNKNOWN_NAME
    net: datetime = Field(..., description="No Earlier Than, UTC")
    provider: str = UNKNOWN_PROVIDER
    location: str = UNKNOWN_LOCATION
    pad_latitude: float | None = Field(default=None, ge=-90, le=90)
    pad_longitude: float | None = Field(default=None, ge=-180, le=180)
    rocket_name: str = UNKNOWN_ROCKET
    mission_name: str = UNKNOWN_MISSION
    status: str | None = None
    probability: int | None = Field(default=None, ge=0, le=100)

    # Enrichment
    mission_overview: str | None = None
    insights: list[str] | None = None
    enrichment_source: EnrichmentSource | None = None

    image_url: str | None = None

    # User-local flags, owned by the flag store
    is_favorite: bool = False
    notifications_enabled: bool = False

    url: str | None = None
    slug: str | None = None
    launch_designator: str | None = None
    window_start: datetime | None = None
    window_end: datetime | None = None
    webcast_live: bool | None = None
    mission: MissionInfo | None = None

    @property
    def has_overview(self) -> bool:
        return bool(self.mission_overview)

    @property
    def has_insights(self) -> bool:
        return bool(self.insights)

    @property
    def is_unenriched(self) -> bool:
        """True when both overview and insights are missing."""
        return not self.has_overview and not self.has_insights
