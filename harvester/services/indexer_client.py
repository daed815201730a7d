"""
harvester.services.indexer_client — DAS Indexer Client
=======================================================

Thin synchronous client for a Digital Asset Standard (DAS) JSON-RPC indexer
such as Helius.  Collections are read with ``getAssetsByGroup`` with
``groupKey="collection"``, paged with ``page``/``limit`` until the indexer
returns an empty page.  Single assets are read with ``getAsset`` to repair
rows a group query missed.

Every request carries a bounded timeout.  Any failure — HTTP status, RPC
``error`` object, malformed body, transport error or timeout — surfaces as
:class:`IndexerError`; the ingest pipeline treats that as "this collection
failed this pass" and moves on.  There is no retry loop here: the next
scheduled pass is the retry.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from harvester.config import CollectionConfig, require_env
from harvester.constants import tier_from_label

logger = logging.getLogger(__name__)

DEFAULT_INDEXER_URL = "https://mainnet.helius-rpc.com/"
MAX_PAGE_SIZE = 1000

_TRUTHY_TRAIT_VALUES = frozenset({"yes", "true", "1", "y"})


class IndexerError(RuntimeError):
    """An indexer request failed (transport, HTTP status, or RPC error)."""


# ---------------------------------------------------------------------------
# Parsed asset
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class IndexedAsset:
    """One asset as reported by the indexer, normalised for the Asset Store."""

    id: str
    name: str
    owner: str | None
    image_url: str | None
    classification: str | None
    is_special: bool = False


def _attributes(item: dict) -> list[dict]:
    attrs = ((item.get("content") or {}).get("metadata") or {}).get("attributes")
    return attrs if isinstance(attrs, list) else []


def _trait_value(item: dict, trait: str) -> Any:
    wanted = trait.strip().lower()
    for attr in _attributes(item):
        if not isinstance(attr, dict):
            continue
        if str(attr.get("trait_type", "")).strip().lower() == wanted:
            return attr.get("value")
    return None


def collection_of(item: dict) -> str | None:
    """The ``collection`` group value of a ``getAsset`` result, if any."""
    for group in item.get("grouping") or []:
        if isinstance(group, dict) and group.get("group_key") == "collection":
            return group.get("group_value")
    return None


def parse_indexed_asset(item: dict, collection: CollectionConfig) -> IndexedAsset | None:
    """Normalise a raw ``getAssetsByGroup`` or ``getAsset`` item.

    Returns ``None`` when the item has no asset ID (it is skipped).
    """
    asset_id = item.get("id")
    if not asset_id:
        return None

    content = item.get("content") or {}
    metadata = content.get("metadata") or {}
    compression = item.get("compression") or {}
    leaf_id = compression.get("leaf_id")
    name = metadata.get("name") or f"NFT #{leaf_id if leaf_id is not None else 'Unknown'}"

    files = content.get("files") or []
    image = (content.get("links") or {}).get("image")
    if not image and files and isinstance(files[0], dict):
        image = files[0].get("cdn_uri")

    owner = (item.get("ownership") or {}).get("owner") or None

    if collection.classification:
        classification: str | None = collection.classification
    elif collection.tier_trait:
        tier = tier_from_label(_trait_value(item, collection.tier_trait))
        classification = tier.value if tier else None
    else:
        classification = None

    is_special = False
    if collection.special_trait:
        raw = _trait_value(item, collection.special_trait)
        is_special = raw is True or str(raw).strip().lower() in _TRUTHY_TRAIT_VALUES

    return IndexedAsset(
        id=str(asset_id),
        name=str(name)[:200],
        owner=owner,
        image_url=image or None,
        classification=classification,
        is_special=is_special,
    )


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------
class IndexerClient:
    """Paginating ``getAssetsByGroup`` client.

    Usage::

        with IndexerClient.from_env(timeout=10) as indexer:
            items = indexer.fetch_collection(address, page_size=1000, page_delay=0.5)
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_INDEXER_URL,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url,
            params={"api-key": api_key},
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )
        self._sleep = sleep

    @classmethod
    def from_env(cls, *, timeout: float = 10.0) -> IndexerClient:
        """Build from ``HELIUS_API_KEY`` (required) and ``INDEXER_URL`` (optional)."""
        api_key = require_env("HELIUS_API_KEY")
        base_url = os.getenv("INDEXER_URL", "").strip() or DEFAULT_INDEXER_URL
        return cls(api_key, base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> IndexerClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _call(self, method: str, params: dict, where: str) -> Any:
        """POST one JSON-RPC request and return its ``result``."""
        body = {"jsonrpc": "2.0", "id": f"harvester-{method}", "method": method, "params": params}
        try:
            resp = self._client.post("", json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.TimeoutException as exc:
            raise IndexerError(f"Indexer timed out on {where}") from exc
        except httpx.HTTPStatusError as exc:
            raise IndexerError(
                f"Indexer returned HTTP {exc.response.status_code} on {where}"
            ) from exc
        except httpx.HTTPError as exc:
            raise IndexerError(f"Indexer request failed on {where}: {exc}") from exc
        except ValueError as exc:
            raise IndexerError(f"Indexer returned a non-JSON body on {where}") from exc

        if not isinstance(payload, dict):
            raise IndexerError(f"Indexer returned an unexpected body on {where}")
        if payload.get("error"):
            err = payload["error"]
            message = err.get("message") if isinstance(err, dict) else str(err)
            raise IndexerError(f"Indexer RPC error on {where}: {message}")
        return payload.get("result")

    def fetch_page(self, collection_address: str, page: int, limit: int) -> list[dict]:
        """Fetch one page of a collection.  Raises :class:`IndexerError`."""
        result = self._call(
            "getAssetsByGroup",
            {
                "groupKey": "collection",
                "groupValue": collection_address,
                "page": page,
                "limit": limit,
            },
            f"page {page}",
        )
        if not isinstance(result, dict | None):
            raise IndexerError(f"Indexer returned malformed items on page {page}")
        items = (result or {}).get("items") or []
        if not isinstance(items, list):
            raise IndexerError(f"Indexer returned malformed items on page {page}")
        return items

    def fetch_asset(self, asset_id: str) -> dict | None:
        """Fetch a single asset with ``getAsset``.

        Returns ``None`` when the indexer has no such asset.
        """
        result = self._call("getAsset", {"id": asset_id}, f"asset {asset_id}")
        if result is None:
            return None
        if not isinstance(result, dict):
            raise IndexerError(f"Indexer returned a malformed asset for {asset_id}")
        return result

    def fetch_collection(
        self,
        collection_address: str,
        *,
        page_size: int = MAX_PAGE_SIZE,
        page_delay: float = 0.5,
    ) -> list[dict]:
        """Fetch every page of a collection until an empty page.

        Sleeps *page_delay* seconds between pages to stay under the
        upstream rate limit.  The first failing page aborts the whole fetch.
        """
        limit = max(1, min(page_size, MAX_PAGE_SIZE))
        items: list[dict] = []
        page = 1
        while True:
            batch = self.fetch_page(collection_address, page, limit)
            if not batch:
                break
            items.extend(batch)
            logger.debug(
                "Indexer page %d for %s: %d items", page, collection_address, len(batch),
            )
            page += 1
            self._sleep(page_delay)
        return items

