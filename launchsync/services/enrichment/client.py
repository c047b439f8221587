"""Chat-completion client that asks a generative service for launch narratives.

The service replies with free text that should contain a JSON object
``{"missionOverview": ..., "insights": [...]}``; surrounding prose is
tolerated.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from launchsync.config import DEFAULT_ENRICHMENT_MODEL, DEFAULT_ENRICHMENT_URL
from launchsync.contracts.enrichment import MAX_INSIGHTS, MAX_OVERVIEW_CHARS, EnrichmentResult
from launchsync.contracts.enums import EnrichmentSource
from launchsync.contracts.launch import LaunchRecord
from launchsync.services.errors import (
    EnrichmentDecodeError,
    EnrichmentResponseError,
    MissingCredentialError,
)

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 180.0

PROMPT_TEMPLATE = """Generate a concise AI-enriched summary for this rocket launch.

Launch Details:
- Mission Name: {mission}
- Launch Provider: {provider}
- Rocket: {rocket}
- Scheduled Date & Time: {net}
- Launch Location: {location}

Output Requirements:
- A brief mission overview (max {max_chars} characters).
- 2-3 key insights about the mission, technology, or historical significance.

Return JSON format only:
{{
  "missionOverview": "Concise mission summary here.",
  "insights": [
    "First insight about the mission.",
    "Second technical or historical insight.",
    "Optional third insight (if relevant)."
  ]
}}

Important:
- Response must be pure JSON (no extra text, code fences, or explanations).
- Keep insights factual, engaging, and relevant.
- Prioritize mission objectives, unique details, or interesting facts.
"""


def build_prompt(record: LaunchRecord) -> str:
    """Format the user prompt for one launch."""
    return PROMPT_TEMPLATE.format(
        mission=record.mission_name,
        provider=record.provider,
        rocket=record.rocket_name,
        net=record.net.strftime("%d %b %Y %H:%M UTC"),
        location=record.location,
        max_chars=MAX_OVERVIEW_CHARS,
    )


def extract_json_object(content: str) -> str | None:
    """Substring from the first ``{`` to the last ``}``, or *None*."""
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end == -1 or end < start:
        return None
    return content[start:end + 1].strip()


def parse_enrichment_content(content: str) -> EnrichmentResult:
    """Decode the service's message text into an ``EnrichmentResult``.

    Raises:
        EnrichmentDecodeError: no JSON object, invalid JSON, or a payload
            without a usable overview and insights.
    """
    block = extract_json_object(content)
    if block is None:
        raise EnrichmentDecodeError("No JSON object found in enrichment response")

    try:
        payload = json.loads(block)
    except json.JSONDecodeError as e:
        raise EnrichmentDecodeError(f"Invalid JSON in enrichment response: {e}")
    if not isinstance(payload, dict):
        raise EnrichmentDecodeError("Enrichment payload is not an object")

    overview = payload.get("missionOverview")
    if not isinstance(overview, str) or not overview.strip():
        raise EnrichmentDecodeError("Enrichment payload has no missionOverview")
    overview = overview.strip()
    if len(overview) > MAX_OVERVIEW_CHARS:
        overview = overview[:MAX_OVERVIEW_CHARS].rstrip()

    raw_insights = payload.get("insights")
    if not isinstance(raw_insights, list):
        raise EnrichmentDecodeError("Enrichment payload has no insights list")
    insights = [i.strip() for i in raw_insights if isinstance(i, str) and i.strip()]
    if not insights:
        raise EnrichmentDecodeError("Enrichment payload has no usable insights")

    return EnrichmentResult(
        mission_overview=overview,
        insights=insights[:MAX_INSIGHTS],
        source=EnrichmentSource.SERVICE,
    )


class EnrichmentClient:
    """Async HTTP client for the chat-completion endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        *,
        api_key: str | None = None,
        url: str = DEFAULT_ENRICHMENT_URL,
        model: str = DEFAULT_ENRICHMENT_MODEL,
    ):
        self._client = http_client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        self.api_key = api_key
        self._url = url
        self._model = model

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def request_enrichment(self, record: LaunchRecord) -> EnrichmentResult:
        """Single request for ``record``; no retries.

        Raises:
            MissingCredentialError: no API key configured.
            EnrichmentResponseError: non-2xx status.
            EnrichmentDecodeError: unusable response body.
            httpx.HTTPError: transport failure.
        """
        if not self.api_key:
            raise MissingCredentialError("No enrichment API key configured")

        body = {
            "model": self._model,
            "messages": [{"role": "user", "content": build_prompt(record)}],
        }
        logger.debug(
            "Requesting enrichment for %s with model %s (key %s...)",
            record.id, self._model, self.api_key[:5],
        )
        resp = await self._client.post(
            self._url,
            json=body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        if not 200 <= resp.status_code < 300:
            raise EnrichmentResponseError(resp.status_code)

        content = _message_content(resp)
        logger.debug("Enrichment content for %s: %s", record.id, content[:100])
        return parse_enrichment_content(content)


def _message_content(resp: httpx.Response) -> str:
    """``choices[0].message.content`` or an ``EnrichmentDecodeError``."""
    try:
        data: Any = resp.json()
    except ValueError as e:
        raise EnrichmentDecodeError(f"Enrichment response is not JSON: {e}")

    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        raise EnrichmentDecodeError("Enrichment response has no message content")
    if not isinstance(content, str) or not content.strip():
        raise EnrichmentDecodeError("Enrichment response content is empty")
    return content
