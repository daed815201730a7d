"""
harvester.api.routes.user — Member endpoints (JWT-protected)
=============================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from harvester.api.deps import get_config, get_current_user, get_engine
from harvester.config import HarvesterConfig
from harvester.services.holdings_service import get_holdings
from harvester.services.link_service import InvalidWalletError, link_wallet

router = APIRouter(prefix="/user", tags=["user"])


class WalletLink(BaseModel):
    wallet_address: str = Field(min_length=32, max_length=44)
    display_name: str | None = Field(default=None, max_length=100)


@router.get("/holdings")
def my_holdings(
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: HarvesterConfig = Depends(get_config),
):
    """Holdings, yield and owned assets of the calling identity."""
    view = get_holdings(engine, user["identity_id"], prefix=cfg.compressed_prefix)
    return view.as_dict()


@router.post("/wallets", status_code=201)
def add_wallet(
    body: WalletLink,
    user: dict = Depends(get_current_user),
    engine=Depends(get_engine),
    cfg: HarvesterConfig = Depends(get_config),
):
    display_name = body.display_name or user.get("username")
    try:
        result = link_wallet(
            engine, user["identity_id"], body.wallet_address, display_name,
            prefix=cfg.compressed_prefix,
        )
    except InvalidWalletError as exc:
        raise HTTPException(422, str(exc))
    return {
        "identity_id": str(result.identity_id),
        "wallet_address": result.wallet_address,
        "created": result.created,
        "assets_attached": result.assets_attached,
        **result.holdings.as_dict(),
    }
