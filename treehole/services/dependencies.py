"""FastAPI dependency wiring for the favorites services.

Keeping the factories here leaves the service modules free of web-layer
concerns so tests and scripts can build them directly.
"""

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status

from treehole.cache import CacheClient, get_cache_client
from treehole.db.connection import Database, get_database
from treehole.services.favorites import FavoritesCache, FavoritesConfig, FavoritesQueries
from treehole.services.favorites_service import FavoritesService
from treehole.settings import AppSettings, get_settings


def get_current_user_id(
    x_user_id: str | None = Header(default=None, alias="X-User-ID"),
) -> int:
    """Return the caller id resolved upstream by the identity gateway.

    The gateway authenticates the request and forwards the user id in the
    ``X-User-ID`` header; this service only parses it.
    """

    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing or invalid X-User-ID header",
    )
    if x_user_id is None:
        raise unauthorized
    value = x_user_id.strip()
    # str.isdigit() alone admits "²", which int() rejects.
    if not value.isascii() or not value.isdigit():
        raise unauthorized
    user_id = int(value)
    if user_id < 1:
        raise unauthorized
    return user_id


def get_favorites_config(settings: AppSettings = Depends(get_settings)) -> FavoritesConfig:
    return FavoritesConfig.from_settings(settings)


def get_favorites_service(
    database: Database = Depends(get_database),
    cache_client: CacheClient = Depends(get_cache_client),
    config: FavoritesConfig = Depends(get_favorites_config),
) -> FavoritesService:
    """Provide a fully-wired :class:`FavoritesService` instance."""

    return FavoritesService(
        database=database,
        cache=FavoritesCache(cache_client),
        config=config,
    )


def get_favorites_queries(
    database: Database = Depends(get_database),
    cache_client: CacheClient = Depends(get_cache_client),
    config: FavoritesConfig = Depends(get_favorites_config),
) -> FavoritesQueries:
    """Wire database + cache dependencies for the listing facade."""

    return FavoritesQueries(
        database=database,
        cache=FavoritesCache(cache_client),
        config=config,
    )


__all__ = [
    "get_current_user_id",
    "get_favorites_config",
    "get_favorites_queries",
    "get_favorites_service",
]
