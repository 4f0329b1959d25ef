"""Request identifiers shared by middleware, error payloads and log records.

The gateway in front of the service may already have assigned an
``X-Request-ID``; it is reused when it looks sane so a single id follows the
request across hops.  Otherwise a fresh UUID is minted.
"""

from __future__ import annotations

import logging
import re
import uuid
from contextvars import ContextVar, Token

__all__ = [
    "REQUEST_ID_CONTEXT",
    "RequestIdLogFilter",
    "clear_request_id",
    "get_request_id",
    "resolve_request_id",
    "set_request_id",
]

REQUEST_ID_CONTEXT: ContextVar[str] = ContextVar("request_id", default="")

_UPSTREAM_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{8,128}$")


def resolve_request_id(upstream: str | None) -> str:
    """Return ``upstream`` when it is a plausible id, else a new UUID4."""

    if upstream and _UPSTREAM_REQUEST_ID.match(upstream):
        return upstream
    return str(uuid.uuid4())


def set_request_id(request_id: str) -> Token[str]:
    """Store ``request_id``; the returned token lets tests restore the prior value."""

    return REQUEST_ID_CONTEXT.set(request_id)


def get_request_id() -> str:
    return REQUEST_ID_CONTEXT.get()


def clear_request_id(token: Token[str] | None = None) -> None:
    if token is not None:
        REQUEST_ID_CONTEXT.reset(token)
    else:
        REQUEST_ID_CONTEXT.set("")


class RequestIdLogFilter(logging.Filter):
    """Attach the active request id to every record as ``record.request_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id() or "-"
        return True
