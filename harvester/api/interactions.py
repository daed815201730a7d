"""
harvester.api.interactions — Signed Discord Interactions Endpoint
==================================================================

``POST /api/discord/interactions`` lets Discord deliver slash commands over
HTTP (no gateway connection needed).  Every request, PING included, must
carry a valid Ed25519 signature over ``timestamp + raw body`` made with the
application's key (``DISCORD_PUBLIC_KEY``, hex).  A missing key, missing
headers or a bad signature is answered with 401.

Supported interactions:

* PING → PONG
* ``/holdings`` → ephemeral text summary of the caller's holdings
"""

from __future__ import annotations

import json
import logging
import os

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from fastapi import APIRouter, Depends, HTTPException, Request

from harvester.api.deps import get_config, get_engine
from harvester.config import HarvesterConfig
from harvester.database.engine import run_db
from harvester.services.embeds import holdings_summary_text
from harvester.services.holdings_service import get_holdings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/discord", tags=["discord"])

# Discord interaction / response types
PING = 1
APPLICATION_COMMAND = 2
PONG = 1
CHANNEL_MESSAGE_WITH_SOURCE = 4
EPHEMERAL = 1 << 6


def verify_signature(public_key_hex: str, signature_hex: str, timestamp: str, body: bytes) -> bool:
    """Ed25519 check of ``timestamp + body``.  Malformed input is a failure."""
    try:
        key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
        key.verify(bytes.fromhex(signature_hex), timestamp.encode() + body)
    except (InvalidSignature, ValueError):
        return False
    return True


def _ephemeral(content: str) -> dict:
    return {
        "type": CHANNEL_MESSAGE_WITH_SOURCE,
        "data": {"content": content, "flags": EPHEMERAL},
    }


def _caller_id(interaction: dict) -> int | None:
    user = (interaction.get("member") or {}).get("user") or interaction.get("user") or {}
    try:
        return int(user["id"])
    except (KeyError, TypeError, ValueError):
        return None


@router.post("/interactions")
async def discord_interactions(
    request: Request,
    engine=Depends(get_engine),
    cfg: HarvesterConfig = Depends(get_config),
):
    body = await request.body()
    public_key = os.getenv("DISCORD_PUBLIC_KEY", "").strip()
    signature = request.headers.get("X-Signature-Ed25519")
    timestamp = request.headers.get("X-Signature-Timestamp")

    if not public_key:
        logger.error("DISCORD_PUBLIC_KEY is not set; rejecting interaction")
        raise HTTPException(401, "Unauthorized")
    if not signature or not timestamp:
        raise HTTPException(401, "Missing signature headers")
    if not verify_signature(public_key, signature, timestamp, body):
        logger.warning("Interaction signature verification failed")
        raise HTTPException(401, "Invalid request signature")

    try:
        interaction = json.loads(body or b"{}")
    except ValueError:
        raise HTTPException(400, "Invalid JSON")
    if not isinstance(interaction, dict):
        raise HTTPException(400, "Interaction must be a JSON object")

    kind = interaction.get("type")
    if kind == PING:
        return {"type": PONG}
    if kind != APPLICATION_COMMAND:
        raise HTTPException(400, "Unknown interaction type")

    name = (interaction.get("data") or {}).get("name")
    if name != "holdings":
        return _ephemeral(f"Unknown command: {name}")

    identity_id = _caller_id(interaction)
    if identity_id is None:
        return _ephemeral("Could not determine who sent this command.")
    view = await run_db(get_holdings, engine, identity_id, prefix=cfg.compressed_prefix)
    return _ephemeral(holdings_summary_text(view))
