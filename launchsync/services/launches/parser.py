"""Launch Library wire format -> ``LaunchRecord`` conversion.

Every nested object in the provider payload is optional. A missing or
malformed field degrades to a placeholder; only a record without an id or
a parseable ``net`` is dropped, and it never takes its siblings with it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from launchsync.contracts.launch import (
    NOT_AVAILABLE,
    UNKNOWN,
    UNKNOWN_LOCATION,
    UNKNOWN_MISSION,
    UNKNOWN_NAME,
    UNKNOWN_ORBIT,
    UNKNOWN_PROVIDER,
    UNKNOWN_ROCKET,
    AgencyInfo,
    LaunchRecord,
    MissionInfo,
    OrbitInfo,
)

logger = logging.getLogger(__name__)


def parse_envelope(data: Any) -> list[LaunchRecord]:
    """Parse a ``{count, next, previous, results[]}`` envelope.

    Returns the converted records in provider order. Non-dict entries and
    records that fail conversion are skipped.
    """
    if not isinstance(data, dict):
        logger.warning("Provider payload is not an object (%s)", type(data).__name__)
        return []

    results = data.get("results") or []
    if not isinstance(results, list):
        logger.warning("Provider 'results' is not a list")
        return []

    records: list[LaunchRecord] = []
    for raw in results:
        if not isinstance(raw, dict):
            continue
        record = parse_launch(raw)
        if record is not None:
            records.append(record)

    dropped = len(results) - len(records)
    if dropped:
        logger.info("Converted %d launches, dropped %d", len(records), dropped)
    return records


def parse_launch(raw: dict[str, Any]) -> LaunchRecord | None:
    """Convert a single wire launch. Returns *None* if it must be dropped."""
    launch_id = _str(raw.get("id"))
    net = parse_datetime(raw.get("net"))
    name = _str(raw.get("name"))
    if not launch_id or net is None:
        logger.warning(
            "Dropping launch %s: missing id or unparseable net %r",
            name or "<unnamed>", raw.get("net"),
        )
        return None

    provider = _obj(raw.get("launch_service_provider"))
    pad = _obj(raw.get("pad"))
    image = raw.get("image")
    mission = _parse_mission(_obj(raw.get("mission")))

    # 2.3.0 nests the image; older versions used a bare URL string
    if isinstance(image, dict):
        image_url = _str(image.get("image_url"))
    else:
        image_url = _str(image)

    try:
        return LaunchRecord(
            id=launch_id,
            name=name or UNKNOWN_NAME,
            net=net,
            provider=_str(provider.get("name")) or UNKNOWN_PROVIDER,
            location=_str(pad.get("name")) or UNKNOWN_LOCATION,
            pad_latitude=_latitude(pad.get("latitude")),
            pad_longitude=_longitude(pad.get("longitude")),
            rocket_name=_rocket_name(_obj(raw.get("rocket"))),
            mission_name=(mission.name if mission else None) or name or UNKNOWN_MISSION,
            status=_str(_obj(raw.get("status")).get("name")),
            probability=_probability(raw.get("probability")),
            image_url=image_url,
            url=_str(raw.get("url")),
            slug=_str(raw.get("slug")),
            launch_designator=_str(raw.get("launch_designator")),
            window_start=parse_datetime(raw.get("window_start")),
            window_end=parse_datetime(raw.get("window_end")),
            webcast_live=raw.get("webcast_live") if isinstance(raw.get("webcast_live"), bool) else None,
            mission=mission,
        )
    except ValidationError as e:
        logger.warning("Dropping launch %s: %s", launch_id, e)
        return None


def parse_datetime(value: Any) -> datetime | None:
    """Parse ISO 8601 with or without fractional seconds; naive means UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _parse_mission(raw: dict[str, Any]) -> MissionInfo | None:
    if not raw:
        return None

    orbit_raw = _obj(raw.get("orbit"))
    orbit = None
    if orbit_raw:
        orbit = OrbitInfo(
            id=_int(orbit_raw.get("id")) or 0,
            name=_str(orbit_raw.get("name")) or UNKNOWN_ORBIT,
            abbrev=_str(orbit_raw.get("abbrev")) or NOT_AVAILABLE,
        )

    agencies: list[AgencyInfo] = []
    for agency in raw.get("agencies") or []:
        if not isinstance(agency, dict):
            continue
        agency_id = _int(agency.get("id"))
        agency_name = _str(agency.get("name"))
        # id and name are required on the wire; skip the agency, not the mission
        if agency_id is None or not agency_name:
            continue
        agencies.append(AgencyInfo(
            id=agency_id,
            url=_str(agency.get("url")) or "",
            name=agency_name,
            type=_str(_obj(agency.get("type")).get("name")) or UNKNOWN,
        ))

    image = raw.get("image")
    image_url = _str(image.get("image_url")) if isinstance(image, dict) else _str(image)

    mission_id = _int(raw.get("id"))
    return MissionInfo(
        id=mission_id if mission_id is not None else -1,
        name=_str(raw.get("name")) or UNKNOWN_MISSION,
        type=_str(raw.get("type")) or UNKNOWN,
        description=_str(raw.get("description")),
        image_url=image_url,
        orbit=orbit,
        agencies=agencies,
    )


def _rocket_name(rocket: dict[str, Any]) -> str:
    config = _obj(rocket.get("configuration"))
    return _str(config.get("full_name")) or _str(config.get("name")) or UNKNOWN_ROCKET


def _obj(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _str(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def _to_float(value: Any) -> float | None:
    """Coordinates arrive as numbers or numeric strings."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _latitude(value: Any) -> float | None:
    lat = _to_float(value)
    return lat if lat is not None and -90 <= lat <= 90 else None


def _longitude(value: Any) -> float | None:
    lon = _to_float(value)
    return lon if lon is not None and -180 <= lon <= 180 else None


def _probability(value: Any) -> int | None:
    prob = _int(value)
    return prob if prob is not None and 0 <= prob <= 100 else None
