"""Deterministic enrichment built only from a record's own fields.

Used whenever the enrichment service is unavailable. The output is a
fixed template, so calling it twice on the same record gives identical
results and the template can be recognised later.
"""

from __future__ import annotations

from launchsync.contracts.enrichment import EnrichmentResult
from launchsync.contracts.enums import EnrichmentSource
from launchsync.contracts.launch import LaunchRecord

OVERVIEW_TEMPLATE = "A {rocket} rocket launching from {location} carrying the {mission} mission by {provider}."
ROCKET_INSIGHT_TEMPLATE = (
    "This mission uses the {rocket}, known for its reliability and performance in the space industry."
)
SITE_INSIGHT_TEMPLATE = (
    "Launching from {location}, this site has supported numerous successful missions in the past."
)

STARLINK_INSIGHT = (
    "Part of SpaceX's Starlink constellation, providing global broadband internet "
    "coverage via a network of satellites."
)
CREW_INSIGHT = (
    "This is a crewed mission transporting astronauts, highlighting the importance "
    "of human spaceflight capabilities."
)
NASA_INSIGHT = (
    "NASA continues to advance space exploration through various scientific and "
    "technological missions."
)
SATELLITE_INSIGHT = (
    "Satellite deployments like this one are critical for communications, Earth "
    "observation, and scientific research."
)


def build_fallback_enrichment(record: LaunchRecord) -> EnrichmentResult:
    """Generate the fallback overview and 2-3 insights for ``record``."""
    overview = OVERVIEW_TEMPLATE.format(
        rocket=record.rocket_name,
        location=record.location,
        mission=record.mission_name,
        provider=record.provider,
    )
    insights = [
        ROCKET_INSIGHT_TEMPLATE.format(rocket=record.rocket_name),
        SITE_INSIGHT_TEMPLATE.format(location=record.location),
    ]
    extra = _themed_insight(record)
    if extra:
        insights.append(extra)

    return EnrichmentResult(
        mission_overview=overview,
        insights=insights,
        source=EnrichmentSource.FALLBACK,
    )


def _themed_insight(record: LaunchRecord) -> str | None:
    mission = record.mission_name
    if "Starlink" in mission:
        return STARLINK_INSIGHT
    if "Crew" in mission:
        return CREW_INSIGHT
    if "NASA" in record.provider:
        return NASA_INSIGHT
    if "Satellite" in mission or "SAT" in mission:
        return SATELLITE_INSIGHT
    return None


def matches_fallback_template(record: LaunchRecord) -> bool:
    """True if the record's text has the fallback shape for its own fields."""
    overview_marker = f"A {record.rocket_name} rocket launching from {record.location}"
    if record.mission_overview and overview_marker in record.mission_overview:
        return True

    insight_marker = f"This mission uses the {record.rocket_name}"
    return any(insight_marker in insight for insight in record.insights or [])


def is_fallback_enrichment(record: LaunchRecord) -> bool:
    """Whether the record's enrichment came from the fallback generator.

    The provenance tag decides when present; snapshots written without it
    are classified by the template.
    """
    if record.enrichment_source == EnrichmentSource.FALLBACK:
        return True
    return matches_fallback_template(record)


def needs_enrichment(record: LaunchRecord) -> bool:
    """Missing overview or insights, or carrying only fallback text."""
    if not record.has_overview or not record.has_insights:
        return True
    return is_fallback_enrichment(record)
