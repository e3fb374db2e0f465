"""Default wiring from settings.

Routes every configured document type to one Qdrant index, indexes documents
as they come from Sanity (Portable Text flattened to plain text) and hides
documents that set the configured hidden field.
"""

import logging
from typing import Any, Mapping, Optional

from config.settings import Settings, get_settings
from core.indexer import Indexer
from core.qdrant_index import QdrantIndex
from core.routing import TypeRoute
from core.sanity_client import SanityClient
from core.visibility import field_visibility
from utils.portable_text import flatten_blocks, is_portable_text

logger = logging.getLogger(__name__)

# Sanity system fields kept on records; other underscore fields are dropped
KEPT_SYSTEM_FIELDS = {"_id", "_type", "_rev", "_createdAt", "_updatedAt"}


def passthrough_serializer(document: Mapping[str, Any]) -> dict:
    """Index a document's own fields.

    Drops internal Sanity fields and flattens Portable Text arrays so the
    record stays small and searchable.
    """
    record: dict = {}
    for key, value in document.items():
        if key.startswith("_") and key not in KEPT_SYSTEM_FIELDS:
            continue
        record[key] = flatten_blocks(value) if is_portable_text(value) else value
    return record


def build_indexer(settings: Optional[Settings] = None) -> Indexer:
    """Build the default indexer.

    Raises:
        ValueError: If SYNC_TYPES is empty.
    """
    settings = settings or get_settings()
    types = settings.get_sync_types()
    if not types:
        raise ValueError("No document types configured. Check SYNC_TYPES.")

    index = QdrantIndex(settings.qdrant_collection, settings=settings)
    routes = {doc_type: TypeRoute(index=index) for doc_type in types}
    logger.info("Routing types %s to %s", ", ".join(types), index.name)

    return Indexer(
        routes,
        passthrough_serializer,
        visible=field_visibility(settings.hidden_field),
        expansion_enabled=settings.expansion_enabled,
        settings=settings,
    )


def build_sanity_client(settings: Optional[Settings] = None) -> SanityClient:
    """Build the Sanity client for the configured project."""
    return SanityClient(settings or get_settings())
