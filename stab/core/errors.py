"""
stab.core.errors — Exception types raised across stab.

Everything derives from ``StabError`` so callers at the outer surface
can catch one type.  Each carries a short ``kind`` slug that ends up in
``InferenceResult.error``.
"""

from __future__ import annotations

from typing import Optional


class StabError(Exception):
    """Base class for stab failures."""

    kind = "unexpected"


class MissingCredentialError(StabError):
    """No categorization credential was supplied or configured."""

    kind = "no-credential"

    def __init__(self, message: str = "No API key configured") -> None:
        super().__init__(message)


class CategorizationError(StabError):
    """The categorization service failed (network, auth, non-2xx, bad body)."""

    kind = "service-error"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause = cause


class HostError(StabError):
    """The host refused or failed a resource operation."""

    kind = "host-error"
