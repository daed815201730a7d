"""
tests/test_indexer_client.py — DAS indexer pagination & parsing
================================================================
Indexer HTTP is stubbed with ``httpx.MockTransport``.
"""

from __future__ import annotations

import json

import httpx
import pytest
from conftest import WALLET_A, das_item

from harvester.config import CollectionConfig
from harvester.services.indexer_client import (
    IndexerClient,
    IndexerError,
    collection_of,
    parse_indexed_asset,
)

MAIN = CollectionConfig(
    name="Main", address="MainCollection", tier_trait="Leaf Colour", special_trait="OG420",
)
SEEDLINGS = CollectionConfig(
    name="Gold Seedlings", address="GoldSeedlings", classification="seedling_gold",
)


def _client(pages: list, calls: list | None = None, sleeps: list | None = None) -> IndexerClient:
    """Serve *pages* in order; each entry is an items list or a full response."""
    served = iter(pages)

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append((body["params"]["page"], body["params"]["limit"], request.url.params))
        page = next(served)
        if isinstance(page, httpx.Response):
            return page
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": {"items": page}})

    return IndexerClient(
        "test-key",
        base_url="https://indexer.test/",
        transport=httpx.MockTransport(handler),
        sleep=(sleeps.append if sleeps is not None else (lambda _s: None)),
    )


class TestFetchCollection:
    def test_empty_first_page_stops_immediately(self):
        calls: list = []
        client = _client([[]], calls)
        assert client.fetch_collection("MainCollection") == []
        assert len(calls) == 1

    def test_paginates_until_empty_page(self):
        calls: list = []
        sleeps: list = []
        client = _client(
            [[das_item("a", WALLET_A)], [das_item("b", WALLET_A)], []], calls, sleeps,
        )
        items = client.fetch_collection("MainCollection", page_size=1, page_delay=0.25)
        assert [i["id"] for i in items] == ["a", "b"]
        assert [c[0] for c in calls] == [1, 2, 3]
        assert all(c[1] == 1 for c in calls)
        assert sleeps == [0.25, 0.25]

    def test_api_key_sent_as_query_param(self):
        calls: list = []
        _client([[]], calls).fetch_collection("X")
        assert calls[0][2]["api-key"] == "test-key"

    def test_page_size_capped(self):
        calls: list = []
        _client([[]], calls).fetch_collection("X", page_size=5000)
        assert calls[0][1] == 1000

    def test_rpc_error_raises(self):
        error = httpx.Response(200, json={"jsonrpc": "2.0", "error": {"code": -32000, "message": "boom"}})
        with pytest.raises(IndexerError, match="boom"):
            _client([error]).fetch_collection("X")

    def test_http_status_raises(self):
        with pytest.raises(IndexerError, match="HTTP 503"):
            _client([httpx.Response(503)]).fetch_collection("X")

    def test_non_json_body_raises(self):
        with pytest.raises(IndexerError):
            _client([httpx.Response(200, content=b"<html>")]).fetch_collection("X")

    def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = IndexerClient("k", transport=httpx.MockTransport(handler))
        with pytest.raises(IndexerError, match="timed out"):
            client.fetch_page("X", 1, 10)

    def test_failure_on_later_page_aborts(self):
        with pytest.raises(IndexerError):
            _client([[das_item("a", WALLET_A)], httpx.Response(500)]).fetch_collection("X")


def _asset_client(responses: dict, calls: list | None = None) -> IndexerClient:
    """Answer getAsset by id from *responses* (result or httpx.Response)."""

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if calls is not None:
            calls.append(body)
        answer = responses.get(body["params"]["id"])
        if isinstance(answer, httpx.Response):
            return answer
        return httpx.Response(200, json={"jsonrpc": "2.0", "result": answer})

    return IndexerClient("test-key", base_url="https://indexer.test/", transport=httpx.MockTransport(handler))


class TestFetchAsset:
    def test_sends_get_asset(self):
        calls: list = []
        item = das_item("a1", WALLET_A)
        assert _asset_client({"a1": item}, calls).fetch_asset("a1") == item
        assert calls[0]["method"] == "getAsset"
        assert calls[0]["params"] == {"id": "a1"}

    def test_unknown_asset_is_none(self):
        assert _asset_client({}).fetch_asset("missing") is None

    def test_rpc_error_raises(self):
        error = httpx.Response(200, json={"jsonrpc": "2.0", "error": {"message": "Asset Not Found"}})
        with pytest.raises(IndexerError, match="asset a1: Asset Not Found"):
            _asset_client({"a1": error}).fetch_asset("a1")

    def test_malformed_result_raises(self):
        with pytest.raises(IndexerError, match="malformed asset"):
            _asset_client({"a1": ["not", "an", "asset"]}).fetch_asset("a1")

    def test_collection_of_reads_grouping(self):
        assert collection_of(das_item("a1", WALLET_A)) is None
        item = das_item("a1", WALLET_A, collection="GoldSeedlings")
        item["grouping"].insert(0, {"group_key": "creator", "group_value": "Someone"})
        assert collection_of(item) == "GoldSeedlings"


class TestParseIndexedAsset:
    def test_missing_id_skipped(self):
        assert parse_indexed_asset(das_item(None, WALLET_A), SEEDLINGS) is None

    def test_fixed_classification(self):
        asset = parse_indexed_asset(das_item("s1", WALLET_A), SEEDLINGS)
        assert asset.classification == "seedling_gold"
        assert asset.owner == WALLET_A

    def test_tier_and_special_from_traits(self):
        item = das_item("m1", WALLET_A, attributes=[
            {"trait_type": "Leaf Colour", "value": "Dark Green"},
            {"trait_type": "OG420", "value": "Yes"},
        ])
        asset = parse_indexed_asset(item, MAIN)
        assert asset.classification == "dark_green"
        assert asset.is_special is True

    def test_unknown_tier_trait(self):
        item = das_item("m2", WALLET_A, attributes=[{"trait_type": "Leaf Colour", "value": "Bronze"}])
        asset = parse_indexed_asset(item, MAIN)
        assert asset.classification is None
        assert asset.is_special is False

    def test_name_falls_back_to_leaf_id(self):
        asset = parse_indexed_asset(das_item("c1", WALLET_A, name=None, leaf_id=17), SEEDLINGS)
        assert asset.name == "NFT #17"

    def test_image_falls_back_to_cdn_uri(self):
        item = das_item("c2", WALLET_A, image=None)
        item["content"]["files"] = [{"cdn_uri": "https://cdn/c2.png"}]
        assert parse_indexed_asset(item, SEEDLINGS).image_url == "https://cdn/c2.png"
