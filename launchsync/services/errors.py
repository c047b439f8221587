"""Service-layer exceptions."""

from __future__ import annotations

from launchsync.contracts.enums import ResponseClass


class LaunchSyncError(Exception):
    """Base exception for all LaunchSync service errors."""


# ============ Gateway ============

class GatewayError(LaunchSyncError):
    """Base exception for launch provider failures."""


class RetryableResponseError(GatewayError):
    """Provider answered with a non-2xx status.

    Every non-2xx status is retried; ``response_class`` records why.
    """

    def __init__(self, status_code: int):
        self.status_code = status_code
        self.response_class = ResponseClass.classify(status_code)
        super().__init__(f"Provider returned HTTP {status_code} ({self.response_class.value})")


class FetchExhaustedError(GatewayError):
    """All attempts failed and no cached response satisfies the request."""

    def __init__(self, attempts: int, last_error: Exception | None):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Launch fetch failed after {attempts} attempts: {last_error}")


# ============ Enrichment ============

class EnrichmentError(LaunchSyncError):
    """Base exception for enrichment failures. Never leaves the orchestrator."""


class MissingCredentialError(EnrichmentError):
    """No credential configured for the enrichment service."""


class EnrichmentResponseError(EnrichmentError):
    """Enrichment service answered with a non-2xx status."""

    def __init__(self, status_code: int):
        self.status_code = status_code
        super().__init__(f"Enrichment service returned HTTP {status_code}")


class EnrichmentDecodeError(EnrichmentError):
    """Response content did not contain a usable enrichment object."""
