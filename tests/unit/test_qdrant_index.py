"""Tests for core/qdrant_index.py."""

import asyncio
import uuid
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from qdrant_client import models

from config.settings import Settings
from core.qdrant_index import QdrantIndex, point_id, record_text


def aliases(**mapping):
    return SimpleNamespace(
        aliases=[
            SimpleNamespace(alias_name=alias, collection_name=collection)
            for alias, collection in mapping.items()
        ]
    )


@pytest.fixture
def qdrant():
    """Mock async Qdrant client with an existing alias."""
    client = AsyncMock()
    client.get_aliases = AsyncMock(return_value=aliases(site_search="site_search_old"))
    return client


@pytest.fixture
def genai_client():
    """Mock GenAI client returning one small vector per text."""

    async def embed_content(model, contents, config):
        return SimpleNamespace(embeddings=[SimpleNamespace(values=[0.1, 0.2, 0.3]) for _ in contents])

    client = MagicMock()
    client.aio.models.embed_content = AsyncMock(side_effect=embed_content)
    return client


@pytest.fixture
def index(qdrant, genai_client):
    return QdrantIndex("site_search", settings=Settings(), client=qdrant, genai_client=genai_client)


class TestHelpers:
    """Tests for point_id and record_text."""

    def test_point_id_stable(self):
        """Test the same record id always maps to the same UUID."""
        assert point_id("post-1") == point_id("post-1")
        assert point_id("post-1") != point_id("post-2")
        uuid.UUID(point_id("post-1"))

    def test_record_text_skips_identity_fields(self):
        record = {
            "objectID": "a",
            "type": "post",
            "rev": "1",
            "documentId": "a",
            "_createdAt": "2024-01-01",
            "title": "Title",
            "tags": ["one", 2, "two"],
            "views": 12,
        }
        assert record_text(record) == "Title\n\none\n\ntwo"

    def test_record_text_fields(self):
        assert record_text({"title": "T", "body": "B"}, fields=["body"]) == "B"


class TestQdrantIndex:
    """Tests for QdrantIndex operations."""

    def test_save_objects_upserts_points(self, index, qdrant, genai_client):
        """Test records become points with stable ids and record payloads."""
        records = [{"objectID": "a", "title": "Alpha"}, {"objectID": "b", "title": "Beta"}]

        saved = asyncio.run(index.save_objects(records))

        assert saved == ["a", "b"]
        qdrant.create_collection.assert_not_awaited()
        texts = genai_client.aio.models.embed_content.call_args.kwargs["contents"]
        assert texts == ["Alpha", "Beta"]

        upsert = qdrant.upsert.call_args.kwargs
        assert upsert["collection_name"] == "site_search"
        assert [p.id for p in upsert["points"]] == [point_id("a"), point_id("b")]
        assert upsert["points"][0].payload == records[0]

    def test_save_creates_collection_and_alias(self, index, qdrant):
        """Test a missing alias is created on first write."""
        qdrant.get_aliases = AsyncMock(return_value=aliases())

        asyncio.run(index.save_objects([{"objectID": "a", "title": "Alpha"}]))

        qdrant.create_collection.assert_awaited_once()
        assert qdrant.create_payload_index.call_args.kwargs["field_name"] == "documentId"
        operation = qdrant.update_collection_aliases.call_args.kwargs["change_aliases_operations"][0]
        assert operation.create_alias.alias_name == "site_search"

    def test_save_nothing(self, index, qdrant):
        assert asyncio.run(index.save_objects([])) == []
        qdrant.upsert.assert_not_awaited()

    def test_delete_objects(self, index, qdrant):
        asyncio.run(index.delete_objects(["a", "b"]))

        selector = qdrant.delete.call_args.kwargs["points_selector"]
        assert isinstance(selector, models.PointIdsList)
        assert selector.points == [point_id("a"), point_id("b")]

    def test_delete_by_tag(self, index, qdrant):
        """Test tag purges filter on the document id payload field."""
        asyncio.run(index.delete_by_tag(["doc-1", "doc-2"]))

        qdrant.delete.assert_awaited_once()
        selector = qdrant.delete.call_args.kwargs["points_selector"]
        assert isinstance(selector, models.FilterSelector)
        condition = selector.filter.must[0]
        assert condition.key == "documentId"
        assert condition.match.any == ["doc-1", "doc-2"]

    def test_delete_by_no_tags(self, index, qdrant):
        asyncio.run(index.delete_by_tag([]))
        qdrant.delete.assert_not_awaited()

    def test_list_object_ids_pages_through_scroll(self, index, qdrant):
        """Test every scroll page is read until no offset is returned."""
        qdrant.scroll = AsyncMock(
            side_effect=[
                ([SimpleNamespace(payload={"objectID": "a"}), SimpleNamespace(payload={})], "next"),
                ([SimpleNamespace(payload={"objectID": "b"})], None),
            ]
        )

        object_ids = asyncio.run(index.list_object_ids())

        assert object_ids == ["a", "b"]
        assert qdrant.scroll.await_count == 2
        second = qdrant.scroll.call_args_list[1].kwargs
        assert second["offset"] == "next"
        assert second["with_payload"] == ["objectID"]

    def test_list_object_ids_without_collection(self, index, qdrant):
        qdrant.get_aliases = AsyncMock(return_value=aliases())

        assert asyncio.run(index.list_object_ids()) == []
        qdrant.scroll.assert_not_awaited()

    def test_replace_all_swaps_alias(self, index, qdrant):
        """Test replacement fills a new collection then moves the alias."""
        new_collection = asyncio.run(index.replace_all_objects([{"objectID": "a", "title": "A"}]))

        assert new_collection.startswith("site_search_")
        assert qdrant.upsert.call_args.kwargs["collection_name"] == new_collection

        operations = qdrant.update_collection_aliases.call_args.kwargs["change_aliases_operations"]
        assert isinstance(operations[0], models.DeleteAliasOperation)
        assert operations[1].create_alias.collection_name == new_collection
        qdrant.delete_collection.assert_awaited_once_with(collection_name="site_search_old")

    def test_replace_all_failure_keeps_alias(self, index, qdrant):
        """Test a failed fill drops the new collection and leaves the alias."""
        qdrant.upsert = AsyncMock(side_effect=RuntimeError("upsert failed"))

        with pytest.raises(RuntimeError):
            asyncio.run(index.replace_all_objects([{"objectID": "a", "title": "A"}]))

        qdrant.update_collection_aliases.assert_not_awaited()
        deleted = qdrant.delete_collection.call_args.kwargs["collection_name"]
        assert deleted != "site_search_old"

    def test_get_stats(self, index, qdrant):
        qdrant.get_collection = AsyncMock(
            return_value=SimpleNamespace(points_count=42, status=SimpleNamespace(value="green"))
        )

        stats = asyncio.run(index.get_stats())

        assert stats == {"collection": "site_search_old", "points_count": 42, "status": "green"}

    def test_not_configured(self):
        """Test missing Qdrant settings raise on first use."""
        index = QdrantIndex("site_search", settings=Settings(qdrant_url="", qdrant_api_key=""))

        with pytest.raises(ValueError, match="QDRANT_URL"):
            asyncio.run(index.delete_objects(["a"]))
