"""
harvester.api.routes.admin — Admin endpoints (JWT-protected)
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from harvester.api.deps import (
    get_config,
    get_current_admin,
    get_engine,
    get_sync_context,
)
from harvester.config import HarvesterConfig, MissingConfigurationError
from harvester.database.engine import get_session, run_db
from harvester.engine.catalog import load_catalog
from harvester.services.holdings_service import get_holdings
from harvester.services.role_sync_service import SyncContext
from harvester.services.sync_service import rebuild_identity, run_bulk_sync

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/holdings/{identity_id}")
def identity_holdings(
    identity_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
    cfg: HarvesterConfig = Depends(get_config),
):
    return get_holdings(engine, identity_id, prefix=cfg.compressed_prefix).as_dict()


@router.get("/roles")
def list_roles(
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """The managed role catalog as currently stored."""
    with get_session(engine) as session:
        catalog = load_catalog(session)
    return [
        {
            "role_id": str(r.role_id),
            "name": r.name,
            "display_name": r.display_name,
            "kind": r.kind,
            "classification": r.classification,
            "color": r.color,
        }
        for r in catalog
    ]


@router.post("/roles/{identity_id}/rebuild")
async def rebuild_roles(
    identity_id: int,
    admin: dict = Depends(get_current_admin),
    ctx: SyncContext = Depends(get_sync_context),
):
    """Recompute one identity and sync its roles once."""
    try:
        result = await rebuild_identity(ctx, identity_id)
    except MissingConfigurationError as exc:
        raise HTTPException(503, str(exc))
    return result.as_dict()


@router.post("/sync")
async def bulk_sync(
    admin: dict = Depends(get_current_admin),
    ctx: SyncContext = Depends(get_sync_context),
    cfg: HarvesterConfig = Depends(get_config),
):
    """Run a full ingest → recompute → role sync pass now."""
    try:
        report = await run_bulk_sync(ctx, cfg.collections)
    except MissingConfigurationError as exc:
        raise HTTPException(503, str(exc))
    return report.as_dict()


@router.get("/catalog/status")
async def catalog_status(
    admin: dict = Depends(get_current_admin),
    ctx: SyncContext = Depends(get_sync_context),
):
    roles = await run_db(ctx.catalog.get)
    return {"roles": len(roles), "ttl_seconds": ctx.catalog.ttl}
