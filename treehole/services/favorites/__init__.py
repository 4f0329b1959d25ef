"""Favorites domain components split by responsibility.

``persistence`` owns the SQL and the membership invariants, ``queries`` is the
read-only listing facade, ``cache`` wraps the listing cache and ``errors``
holds the domain error taxonomy.
"""

from .cache import FavoritesCache
from .errors import ConflictError, FavoritesError, ForbiddenError, NotFoundError
from .persistence import FavoritesConfig, FavoritesPersistence
from .queries import FavoritesQueries

__all__ = [
    "ConflictError",
    "FavoritesCache",
    "FavoritesConfig",
    "FavoritesError",
    "FavoritesPersistence",
    "FavoritesQueries",
    "ForbiddenError",
    "NotFoundError",
]
