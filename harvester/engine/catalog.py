"""
harvester.engine.catalog — Role Catalog TTL Cache
==================================================

The role catalog changes rarely and only through out-of-band administration
(``harvester-cli seed-roles``), yet every role synchronization needs it.
:class:`RoleCatalogCache` keeps a detached copy in memory and re-reads the
``role_catalog`` table once the copy is older than the configured TTL.

There is no invalidation on write: a catalog edit becomes visible to a
running process only after the TTL expires.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import Session

from harvester.database.models import RoleCatalogEntry

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_TTL = 300.0  # 5 minutes


@dataclass(frozen=True, slots=True)
class CatalogRole:
    """Detached, immutable copy of one ``role_catalog`` row."""

    role_id: int
    name: str
    display_name: str
    kind: str
    classification: str
    color: str | None = None

    @classmethod
    def from_row(cls, row: RoleCatalogEntry) -> CatalogRole:
        return cls(
            role_id=row.role_id,
            name=row.name,
            display_name=row.display_name,
            kind=row.kind,
            classification=row.classification,
            color=row.color,
        )


def managed_role_ids(catalog: Iterable[CatalogRole]) -> frozenset[int]:
    """The only role IDs the synchronizer may add or remove."""
    return frozenset(role.role_id for role in catalog)


def load_catalog(session: Session) -> tuple[CatalogRole, ...]:
    """Read the full catalog, ordered by kind then classification."""
    rows = session.scalars(
        select(RoleCatalogEntry).order_by(
            RoleCatalogEntry.kind, RoleCatalogEntry.classification
        )
    ).all()
    return tuple(CatalogRole.from_row(r) for r in rows)


class RoleCatalogCache:
    """Thread-safe, TTL-bounded in-memory copy of the role catalog.

    Usage:
        catalog = RoleCatalogCache(engine, ttl=300)
        roles = catalog.get()          # hits the DB at most once per TTL
    """

    def __init__(
        self,
        engine: Engine,
        ttl: float = DEFAULT_CATALOG_TTL,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._roles: tuple[CatalogRole, ...] | None = None
        self._loaded_at: float | None = None

    @property
    def ttl(self) -> float:
        return self._ttl

    def is_fresh(self) -> bool:
        with self._lock:
            return self._is_fresh_locked()

    def _is_fresh_locked(self) -> bool:
        if self._roles is None or self._loaded_at is None:
            return False
        return self._clock() - self._loaded_at < self._ttl

    def get(self) -> tuple[CatalogRole, ...]:
        """Return the cached catalog, reloading on miss or expiry.

        Synchronous — call via ``run_db`` from async code.
        """
        with self._lock:
            if self._is_fresh_locked():
                return self._roles  # type: ignore[return-value]

        with Session(self._engine) as session:
            roles = load_catalog(session)

        with self._lock:
            self._roles = roles
            self._loaded_at = self._clock()
        logger.debug("Role catalog reloaded: %d managed roles", len(roles))
        return roles
