"""LaunchSync data contracts: Pydantic v2 models for the launch pipeline.

Data authority
--------------

**Launch provider** (source of truth for schedule data):
- ``LaunchRecord`` core fields: id, name, ``net``, provider, pad, rocket,
  status, probability, launch window, nested ``MissionInfo``

**Enrichment service / fallback generator** (added once, never cleared):
- ``EnrichmentResult``: ``mission_overview`` and ``insights`` copied onto
  the record together with ``enrichment_source``

**Flag store** (user-local, authoritative outside this package):
- ``LaunchRecord.is_favorite`` / ``LaunchRecord.notifications_enabled``

Persisted
---------
- Snapshot: the full list of ``LaunchRecord`` written by ``SnapshotStore``

Calculated (never persisted)
----------------------------
- ``ServiceResult``: outcome of a sync for the observing layer
"""
