"""
Error taxonomy shared by the scope engine, the routers and the cascade.

The scope and hierarchy modules are plain Python and raise these; the FastAPI
app maps them onto HTTP responses (see ``orgscope.main``).
"""

from __future__ import annotations


class OrgScopeError(Exception):
    """Base class for every error raised by orgscope."""


class Unauthenticated(OrgScopeError):
    """No resolvable principal on the request."""


class AccessDenied(OrgScopeError):
    """
    Principal is known but its scope forbids the entity or action.

    The message is for logs only; responses never say *why* access was denied.
    """


class NotFound(OrgScopeError):
    """Row does not exist within the caller's visible set."""

    def __init__(self, what: str = "Resource") -> None:
        super().__init__(f"{what} not found")
        self.what = what


class ValidationFailure(OrgScopeError):
    """Malformed or inconsistent write input, independent of scope."""


class Conflict(OrgScopeError):
    """Write collides with existing state (duplicate name, dependent rows)."""


class CascadeInternalError(OrgScopeError):
    """A notification fan-out step failed. Logged, never surfaced to callers."""
