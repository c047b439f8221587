"""Enumerations shared across all LaunchSync contracts."""

from enum import Enum


class EnrichmentSource(str, Enum):
    """Where a record's overview and insights came from."""
    SERVICE = "service"
    FALLBACK = "fallback"


class ResponseClass(str, Enum):
    """Classification of a provider HTTP status code."""
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    SERVER_ERROR = "server_error"
    CLIENT_ERROR = "client_error"

    @classmethod
    def classify(cls, status_code: int) -> "ResponseClass":
        if 200 <= status_code < 300:
            return cls.SUCCESS
        if status_code == 429:
            return cls.RATE_LIMITED
        if 500 <= status_code < 600:
            return cls.SERVER_ERROR
        return cls.CLIENT_ERROR
