"""Record builder: turns one Sanity document into search index records.

A serializer decides which fields a record carries. The builder merges the
identity fields every record needs underneath the serializer output, and in
expansion mode stamps each record with the id of the document it came from so
all of a document's records can later be purged with a single tag delete.
"""

import inspect
import logging
from collections.abc import Mapping
from typing import Any, Awaitable, Callable, Union

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Record = dict[str, Any]
SerializerResult = Union[Mapping[str, Any], list, tuple, None]
SerializeFunction = Callable[[Document], Union[SerializerResult, Awaitable[SerializerResult]]]

RECORD_ID_FIELD = "objectID"
TAG_FIELD = "documentId"


class RecordBuildError(ValueError):
    """Raised when a serializer returns something that cannot become a record."""

    pass


def standard_values(document: Mapping[str, Any]) -> Record:
    """Properties every record carries unless the serializer overrides them.

    Args:
        document: Source document with `_id`, `_type` and `_rev`.

    Returns:
        Dict with objectID, type and rev.
    """
    return {
        RECORD_ID_FIELD: document.get("_id"),
        "type": document.get("_type"),
        "rev": document.get("_rev"),
    }


async def build_records(
    document: Mapping[str, Any],
    serialize: SerializeFunction,
    expansion_enabled: bool = False,
) -> list[Record]:
    """Build the index records for a single document.

    Args:
        document: Source document.
        serialize: Sync or async function mapping the document to a record,
            a list of records, or None to skip the document.
        expansion_enabled: Tag every record of a list result with the
            originating document id.

    Returns:
        Records in serializer order.

    Raises:
        RecordBuildError: If the serializer result has an unusable shape.
    """
    result = serialize(dict(document))
    if inspect.isawaitable(result):
        result = await result

    if result is None:
        logger.debug("Serializer skipped document %s", document.get("_id"))
        return []

    defaults = standard_values(document)

    if isinstance(result, Mapping):
        return [{**defaults, **result}]

    if isinstance(result, (list, tuple)):
        records: list[Record] = []
        for position, item in enumerate(result):
            if not isinstance(item, Mapping):
                raise RecordBuildError(
                    f"Serializer returned {type(item).__name__} at position {position} "
                    f"for document {document.get('_id')}, expected a mapping"
                )
            if not item.get(RECORD_ID_FIELD):
                raise RecordBuildError(
                    f"Expanded record {position} for document {document.get('_id')} "
                    f"has no {RECORD_ID_FIELD}"
                )
            record = {"type": defaults["type"], "rev": defaults["rev"], **item}
            if expansion_enabled:
                record[TAG_FIELD] = document.get("_id")
            records.append(record)

        if records and not expansion_enabled:
            logger.warning(
                "Document %s expanded to %d records without expansion mode; "
                "stale records will not be purged",
                document.get("_id"),
                len(records),
            )
        return records

    raise RecordBuildError(
        f"Serializer returned {type(result).__name__} for document "
        f"{document.get('_id')}, expected a mapping or a list of mappings"
    )
