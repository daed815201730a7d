"""
harvester.database.seed — Role Catalog Seeder
==============================================

Upserts the managed roles declared under ``roles:`` in ``config.yaml`` into
the ``role_catalog`` table.  Keyed by Discord role ID, so re-running after
editing a name, colour, or classification updates the row in place.

Catalog edits become visible to running synchronizers only after the
in-memory catalog cache expires (see :mod:`harvester.engine.catalog`).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from harvester.config import RoleSeed
from harvester.database.models import RoleCatalogEntry

logger = logging.getLogger(__name__)


def seed_role_catalog(engine: Engine, roles: Iterable[RoleSeed]) -> dict[str, int]:
    """Insert or update one catalog row per :class:`RoleSeed`.

    Returns ``{"inserted": N, "updated": M}``.
    """
    session = Session(engine)
    inserted = 0
    updated = 0
    try:
        for seed in roles:
            row = session.get(RoleCatalogEntry, seed.role_id)
            if row is None:
                session.add(RoleCatalogEntry(
                    role_id=seed.role_id,
                    name=seed.name,
                    display_name=seed.display_name,
                    kind=seed.kind,
                    classification=seed.classification,
                    color=seed.color,
                    emoji_url=seed.emoji_url,
                ))
                inserted += 1
                continue

            changed = (
                row.name != seed.name
                or row.display_name != seed.display_name
                or row.kind != seed.kind
                or row.classification != seed.classification
                or row.color != seed.color
                or row.emoji_url != seed.emoji_url
            )
            if changed:
                row.name = seed.name
                row.display_name = seed.display_name
                row.kind = seed.kind
                row.classification = seed.classification
                row.color = seed.color
                row.emoji_url = seed.emoji_url
                updated += 1
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()

    if inserted or updated:
        logger.info("Role catalog seeded: %d inserted, %d updated.", inserted, updated)
    return {"inserted": inserted, "updated": updated}
