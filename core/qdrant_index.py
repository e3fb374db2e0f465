"""Qdrant-backed search index.

Implements the index operations the sync needs:
- Record upsert (embedding generated per record)
- Delete by record id
- Delete by document tags (expanded records)
- Listing of record ids (orphan pruning on reindex)
- Full replacement via a collection alias swap

Records are addressed through an alias named after the index. A full
replacement builds a fresh collection, then moves the alias in one call so
searches never see a half-filled index.
"""

import logging
import time
import uuid
from typing import Any, Optional

from google import genai
from google.genai import types
from qdrant_client import AsyncQdrantClient, models

from config.settings import Settings, get_settings
from core.records import RECORD_ID_FIELD, TAG_FIELD

logger = logging.getLogger(__name__)

BATCH_SIZE = 100
SCROLL_LIMIT = 1000
EMBED_TEXT_LIMIT = 2000
# Identity fields carry no searchable text
_NON_TEXT_FIELDS = {RECORD_ID_FIELD, TAG_FIELD, "type", "rev"}


def point_id(object_id: str) -> str:
    """Stable Qdrant point id for a record id."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, object_id))


def record_text(record: dict, fields: Optional[list[str]] = None) -> str:
    """Build the text embedded for a record.

    Args:
        record: Index record.
        fields: Fields to use, in order. Defaults to every string or
            list-of-string field except identity fields.

    Returns:
        Text truncated to the embedding limit.
    """
    keys = fields if fields is not None else [
        k for k in record if k not in _NON_TEXT_FIELDS and not k.startswith("_")
    ]
    parts = []
    for key in keys:
        value = record.get(key)
        if isinstance(value, str) and value.strip():
            parts.append(value.strip())
        elif isinstance(value, list):
            parts.extend(v.strip() for v in value if isinstance(v, str) and v.strip())
    return "\n\n".join(parts)[:EMBED_TEXT_LIMIT]


class QdrantIndex:
    """Search index stored in a Qdrant collection alias."""

    def __init__(
        self,
        name: Optional[str] = None,
        settings: Optional[Settings] = None,
        client: Optional[AsyncQdrantClient] = None,
        genai_client: Optional[genai.Client] = None,
        text_fields: Optional[list[str]] = None,
    ) -> None:
        """Initialize index with lazy client creation.

        Args:
            name: Alias name (defaults to settings.qdrant_collection).
            settings: Settings to use (defaults to cached settings).
            client: Pre-built Qdrant client.
            genai_client: Pre-built GenAI client for embeddings.
            text_fields: Record fields to embed (see `record_text`).
        """
        self._settings = settings or get_settings()
        self.name = name or self._settings.qdrant_collection
        self._client = client
        self._genai = genai_client
        self._text_fields = text_fields

    def __repr__(self) -> str:
        return f"QdrantIndex({self.name!r})"

    def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client.

        Raises:
            ValueError: If Qdrant is not configured.
        """
        if self._client is None:
            if not self._settings.is_qdrant_configured():
                raise ValueError(
                    "Qdrant not configured. Check QDRANT_URL and QDRANT_API_KEY."
                )
            self._client = AsyncQdrantClient(
                url=self._settings.qdrant_url,
                api_key=self._settings.qdrant_api_key,
                timeout=self._settings.api_timeout,
            )
        return self._client

    def _get_genai(self) -> genai.Client:
        """Get or create GenAI client for embeddings.

        Raises:
            ValueError: If Gemini API is not configured.
        """
        if self._genai is None:
            if not self._settings.is_gemini_configured():
                raise ValueError("Gemini API not configured. Check GEMINI_API_KEY.")
            self._genai = genai.Client(api_key=self._settings.gemini_api_key)
        return self._genai

    def _new_collection_name(self) -> str:
        return f"{self.name}_{uuid.uuid4().hex[:8]}"

    async def _current_collection(self) -> Optional[str]:
        """Collection the alias points at, or None if there is no alias."""
        client = self._get_client()
        aliases = await client.get_aliases()
        for alias in aliases.aliases:
            if alias.alias_name == self.name:
                return alias.collection_name
        return None

    async def _create_collection(self, collection_name: str) -> None:
        client = self._get_client()
        logger.info("Creating collection: %s", collection_name)
        await client.create_collection(
            collection_name=collection_name,
            vectors_config=models.VectorParams(
                size=self._settings.embedding_dimensions,
                distance=models.Distance.COSINE,
            ),
        )
        await client.create_payload_index(
            collection_name=collection_name,
            field_name=TAG_FIELD,
            field_schema=models.PayloadSchemaType.KEYWORD,
        )

    async def ensure_collection_exists(self) -> str:
        """Create the backing collection and alias if missing.

        Returns:
            Name of the backing collection.
        """
        current = await self._current_collection()
        if current is not None:
            return current

        collection_name = self._new_collection_name()
        await self._create_collection(collection_name)
        await self._get_client().update_collection_aliases(
            change_aliases_operations=[
                models.CreateAliasOperation(
                    create_alias=models.CreateAlias(
                        collection_name=collection_name, alias_name=self.name
                    )
                )
            ]
        )
        return collection_name

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Get document embeddings for a batch of texts."""
        genai_client = self._get_genai()
        result = await genai_client.aio.models.embed_content(
            model=self._settings.embedding_model,
            contents=texts,
            config=types.EmbedContentConfig(
                task_type="RETRIEVAL_DOCUMENT",
                output_dimensionality=self._settings.embedding_dimensions,
            ),
        )
        return [e.values for e in result.embeddings]

    async def _upsert(self, collection_name: str, records: list[dict]) -> None:
        client = self._get_client()
        for start in range(0, len(records), BATCH_SIZE):
            batch = records[start:start + BATCH_SIZE]
            embed_start = time.time()
            vectors = await self.embed(
                [record_text(r, self._text_fields) or str(r[RECORD_ID_FIELD]) for r in batch]
            )
            embed_ms = int((time.time() - embed_start) * 1000)

            points = [
                models.PointStruct(
                    id=point_id(str(record[RECORD_ID_FIELD])),
                    vector=vector,
                    payload=record,
                )
                for record, vector in zip(batch, vectors)
            ]
            await client.upsert(collection_name=collection_name, points=points)
            logger.debug(
                "Upserted %d points into %s (embedding=%dms)",
                len(points),
                collection_name,
                embed_ms,
            )

    async def save_objects(self, records: list[dict]) -> list[str]:
        """Add or update records.

        Args:
            records: Records with an objectID each.

        Returns:
            Saved record ids.
        """
        if not records:
            return []
        await self.ensure_collection_exists()
        await self._upsert(self.name, records)
        return [str(r[RECORD_ID_FIELD]) for r in records]

    async def delete_objects(self, object_ids: list[str]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        if not object_ids:
            return
        await self.ensure_collection_exists()
        await self._get_client().delete(
            collection_name=self.name,
            points_selector=models.PointIdsList(points=[point_id(i) for i in object_ids]),
        )
        logger.info("Deleted %d records from %s", len(object_ids), self.name)

    async def delete_by_tag(self, tags: list[str]) -> None:
        """Delete every record tagged with any of the given document ids."""
        if not tags:
            return
        await self.ensure_collection_exists()
        await self._get_client().delete(
            collection_name=self.name,
            points_selector=models.FilterSelector(
                filter=models.Filter(
                    must=[models.FieldCondition(key=TAG_FIELD, match=models.MatchAny(any=tags))]
                )
            ),
        )
        logger.debug("Purged records tagged %s from %s", ", ".join(tags), self.name)

    async def list_object_ids(self) -> list[str]:
        """List the record ids currently in the index.

        Returns:
            Record ids, or an empty list if the index does not exist yet.
        """
        if await self._current_collection() is None:
            return []

        client = self._get_client()
        object_ids: list[str] = []
        offset = None
        while True:
            points, offset = await client.scroll(
                collection_name=self.name,
                limit=SCROLL_LIMIT,
                offset=offset,
                with_payload=[RECORD_ID_FIELD],
                with_vectors=False,
            )
            object_ids.extend(
                str(p.payload[RECORD_ID_FIELD])
                for p in points
                if p.payload and RECORD_ID_FIELD in p.payload
            )
            if offset is None:
                break
        return object_ids

    async def replace_all_objects(self, records: list[dict]) -> str:
        """Replace the whole index with the given records.

        Returns:
            Name of the new backing collection.
        """
        client = self._get_client()
        previous = await self._current_collection()
        collection_name = self._new_collection_name()

        await self._create_collection(collection_name)
        try:
            if records:
                await self._upsert(collection_name, records)
        except Exception:
            await client.delete_collection(collection_name=collection_name)
            raise

        operations: list[Any] = []
        if previous is not None:
            operations.append(
                models.DeleteAliasOperation(delete_alias=models.DeleteAlias(alias_name=self.name))
            )
        operations.append(
            models.CreateAliasOperation(
                create_alias=models.CreateAlias(
                    collection_name=collection_name, alias_name=self.name
                )
            )
        )
        await client.update_collection_aliases(change_aliases_operations=operations)

        if previous is not None:
            await client.delete_collection(collection_name=previous)

        logger.info(
            "Replaced %s with %d records (collection %s)", self.name, len(records), collection_name
        )
        return collection_name

    async def get_stats(self) -> dict:
        """Get index statistics.

        Returns:
            Dict with collection, points_count and status.
        """
        collection_name = await self._current_collection()
        if collection_name is None:
            return {"collection": None, "points_count": 0, "status": "not_found"}

        info = await self._get_client().get_collection(collection_name)
        return {
            "collection": collection_name,
            "points_count": info.points_count,
            "status": info.status.value if hasattr(info.status, "value") else str(info.status),
        }

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._client is not None:
            await self._client.close()
            self._client = None
