"""Narrative enrichment attached to a launch record."""

from pydantic import Field

from launchsync.contracts.common import SnapshotModel
from launchsync.contracts.enums import EnrichmentSource
from launchsync.contracts.launch import LaunchRecord

MAX_OVERVIEW_CHARS = 300
MAX_INSIGHTS = 3


class EnrichmentResult(SnapshotModel):
    """Overview plus 1-3 insights, tagged with their origin."""

    mission_overview: str = Field(..., min_length=1)
    insights: list[str] = Field(..., min_length=1, max_length=MAX_INSIGHTS)
    source: EnrichmentSource

    @property
    def is_fallback(self) -> bool:
        return self.source == EnrichmentSource.FALLBACK

    def apply_to(self, record: LaunchRecord) -> LaunchRecord:
        """Return a copy of ``record`` carrying this enrichment."""
        return record.model_copy(update={
            "mission_overview": self.mission_overview,
            "insights": list(self.insights),
            "enrichment_source": EnrichmentSource(self.source),
        })
