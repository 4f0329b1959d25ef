"""Domain errors raised by the favorites repository and service.

Each error also derives from the closest builtin (``LookupError``,
``PermissionError``, ``ValueError``) so generic callers can still catch them
without importing this module.
"""

from __future__ import annotations


class FavoritesError(Exception):
    """Base class for favorites domain failures."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(FavoritesError, LookupError):
    """Referenced hole, group or membership is absent or not the caller's."""


class ForbiddenError(FavoritesError, PermissionError):
    """Operation on a protected resource, e.g. deleting the default group."""


class ConflictError(FavoritesError, ValueError):
    """The hole is already favorited by the user in some group."""


__all__ = ["ConflictError", "FavoritesError", "ForbiddenError", "NotFoundError"]
