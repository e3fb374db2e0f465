"""Change set parsing and resolution.

A Sanity webhook tells us which document ids were created, updated or
deleted. Resolving a change set against the freshly fetched documents decides
which documents are written to the index and which ids (and, in expansion
mode, which document tags) are purged from it.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from core.visibility import VisibilityFunction, always_visible

logger = logging.getLogger(__name__)

CHANGE_KINDS = ("created", "updated", "deleted")


class WebhookPayloadError(ValueError):
    """Raised when a webhook body does not describe a change set."""

    pass


def unique(ids: Iterable[str]) -> list[str]:
    """De-duplicate ids while keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for doc_id in ids:
        if doc_id not in seen:
            seen.add(doc_id)
            result.append(doc_id)
    return result


@dataclass(frozen=True)
class ChangeSet:
    """Document ids partitioned by the kind of change.

    Attributes:
        created: Ids of newly created documents.
        updated: Ids of updated documents.
        deleted: Ids of deleted documents.
    """

    created: tuple[str, ...] = ()
    updated: tuple[str, ...] = ()
    deleted: tuple[str, ...] = ()

    @classmethod
    def from_webhook(cls, body: Any) -> "ChangeSet":
        """Build a change set from a webhook body.

        Missing id lists default to empty.

        Args:
            body: Decoded webhook body, `{"ids": {"created": [...], ...}}`.

        Returns:
            ChangeSet for the body.

        Raises:
            WebhookPayloadError: If the body has no `ids` mapping or a list
                is not a list of strings.
        """
        if not isinstance(body, Mapping):
            raise WebhookPayloadError("Webhook body must be a JSON object")

        ids = body.get("ids")
        if not isinstance(ids, Mapping):
            raise WebhookPayloadError("Webhook body is missing the 'ids' object")

        lists: dict[str, tuple[str, ...]] = {}
        for kind in CHANGE_KINDS:
            values = ids.get(kind)
            if values is None:
                lists[kind] = ()
                continue
            if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
                raise WebhookPayloadError(f"'ids.{kind}' must be a list of strings")
            lists[kind] = tuple(values)

        return cls(**lists)

    @property
    def touched(self) -> list[str]:
        """Created then updated ids, de-duplicated in order."""
        return unique([*self.created, *self.updated])

    def is_empty(self) -> bool:
        """Check if the change set has no ids at all."""
        return not (self.created or self.updated or self.deleted)


@dataclass
class Resolution:
    """What a change set means for the search index.

    Attributes:
        visible_documents: Documents to (re)build records for.
        delete_ids: Record ids to delete, deleted ids first.
        purge_tags: Document ids whose tagged records are purged before
            saving (expansion mode only).
        hidden_ids: Touched ids that are not visible.
    """

    visible_documents: list[dict] = field(default_factory=list)
    delete_ids: list[str] = field(default_factory=list)
    purge_tags: list[str] = field(default_factory=list)
    hidden_ids: list[str] = field(default_factory=list)


def resolve_change_set(
    change_set: ChangeSet,
    documents: Iterable[Mapping[str, Any]],
    is_visible: VisibilityFunction = always_visible,
    expansion_enabled: bool = False,
) -> Resolution:
    """Resolve a change set against the fetched documents.

    A touched document that is not visible is deleted even if it was never
    indexed: a previous visible revision may be. Deleted ids are purged
    unconditionally and win over a create or update of the same id.

    Args:
        change_set: Ids from the webhook.
        documents: Fetched documents for the created and updated ids.
        is_visible: Visibility predicate.
        expansion_enabled: Also purge tagged records of every deleted,
            hidden or updated document.

    Returns:
        Resolution with documents to save and ids/tags to purge.
    """
    deleted = set(change_set.deleted)
    touched = change_set.touched

    visible_documents = [
        dict(doc)
        for doc in documents
        if doc.get("_id") not in deleted and is_visible(doc)
    ]
    visible_ids = {doc["_id"] for doc in visible_documents}
    hidden_ids = [doc_id for doc_id in touched if doc_id not in visible_ids and doc_id not in deleted]

    delete_ids = unique([*change_set.deleted, *hidden_ids])

    purge_tags: list[str] = []
    if expansion_enabled:
        still_visible_updates = [doc_id for doc_id in change_set.updated if doc_id in visible_ids]
        purge_tags = unique([*delete_ids, *still_visible_updates])

    logger.debug(
        "Resolved change set: %d visible, %d hidden, %d to delete, %d tags to purge",
        len(visible_documents),
        len(hidden_ids),
        len(delete_ids),
        len(purge_tags),
    )

    return Resolution(
        visible_documents=visible_documents,
        delete_ids=delete_ids,
        purge_tags=purge_tags,
        hidden_ids=hidden_ids,
    )
