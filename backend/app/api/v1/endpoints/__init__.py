"""API v1 endpoints."""

from . import (
    auth,
    cases,
    documents,
    eligibility,
    notifications,
)

__all__ = [
    "auth",
    "cases",
    "documents",
    "eligibility",
    "notifications",
]
