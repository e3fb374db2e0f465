"""Sync orchestrator keeping search indices in step with Sanity.

Flow for one webhook delivery:
- Wait for the settle delay (Sanity reads may lag the mutation that fired it)
- Fetch created/updated documents of the configured types in one query
- Resolve visibility, deletes and expansion purges
- Build records and group them per destination index
- Per index: purge tags, delete ids, then save (or replace everything)

The same path serves a full reindex, which treats every published document
of the configured types as created.
"""

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

from config.settings import Settings, get_settings
from core.change_set import ChangeSet, Resolution, resolve_change_set, unique
from core.records import RECORD_ID_FIELD, SerializeFunction, build_records
from core.routing import IndexRouter
from core.visibility import VisibilityFunction, resolve_visibility

logger = logging.getLogger(__name__)

FETCH_QUERY = """*[(_id in $created + $updated) && _type in $types] {
  _id,
  _type,
  _rev,
  %s
}"""

LIST_QUERY = '*[_type in $types && !(_id in path("drafts.**"))]._id'

RESERVED_PARAMS = {"created", "updated", "types"}


class DocumentStore(Protocol):
    """Document store operations the sync needs."""

    async def fetch(self, query: str, params: Optional[dict] = None) -> Any: ...


class SyncError(Exception):
    """Raised when a sync fails; `phase` names the failing step."""

    def __init__(self, phase: str, message: str) -> None:
        super().__init__(f"Sync failed during {phase}: {message}")
        self.phase = phase


@dataclass
class SyncOptions:
    """Per-call sync options.

    Attributes:
        replace_all: Replace each index's contents instead of upsert/delete.
            Meant for full reindexing only.
        settle_delay_ms: Pause before fetching. None uses the configured delay.
        type_filter: Restrict the sync to these configured types.
        params: Extra query parameters passed through to the fetch.
    """

    replace_all: bool = False
    settle_delay_ms: Optional[int] = None
    type_filter: Optional[list[str]] = None
    params: dict = field(default_factory=dict)


@dataclass
class IndexOutcome:
    """What one sync did to one destination index."""

    index: Any
    saved: list[dict] = field(default_factory=list)
    deleted_ids: list[str] = field(default_factory=list)
    purged_tags: list[str] = field(default_factory=list)
    replaced: bool = False


@dataclass
class SyncOutcome:
    """Result of a sync call.

    Attributes:
        indices: Outcome per destination index that was touched.
        duration_ms: Total duration in milliseconds.
    """

    indices: list[IndexOutcome] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def saved_count(self) -> int:
        return sum(len(o.saved) for o in self.indices)

    @property
    def deleted_count(self) -> int:
        return sum(len(o.deleted_ids) for o in self.indices)

    def for_index(self, index: Any) -> Optional[IndexOutcome]:
        """Get the outcome for a given index handle."""
        for outcome in self.indices:
            if outcome.index is index:
                return outcome
        return None


class Indexer:
    """Syncs Sanity documents into one or more search indices.

    Holds only configuration; every call is request scoped.
    """

    def __init__(
        self,
        routes: Mapping[str, Any],
        serialize: SerializeFunction,
        visible: Optional[VisibilityFunction] = None,
        expansion_enabled: bool = False,
        settings: Optional[Settings] = None,
    ) -> None:
        """Initialize the indexer.

        Args:
            routes: Document type to TypeRoute (or bare index handle).
            serialize: Maps a document to a record or a list of records.
            visible: Optional predicate deciding if a document is indexed.
            expansion_enabled: Tag expanded records with their document id
                and purge them by tag on update/delete.
            settings: Settings to use (defaults to cached settings).
        """
        self._settings = settings or get_settings()
        self.router = IndexRouter(routes)
        self._serialize = serialize
        self._is_visible = resolve_visibility(visible)
        self.expansion_enabled = expansion_enabled

    async def transform(self, documents: list[dict]) -> list[tuple[str, dict]]:
        """Build records for documents, paired with their document type.

        Fails fast: the first serializer error aborts the batch.
        """
        pairs: list[tuple[str, dict]] = []
        for document in documents:
            for record in await build_records(document, self._serialize, self.expansion_enabled):
                pairs.append((document["_type"], record))
        return pairs

    async def webhook_sync(
        self,
        client: DocumentStore,
        body: Any,
        options: Optional[SyncOptions] = None,
    ) -> SyncOutcome:
        """Sync the documents named in a webhook body.

        Raises:
            WebhookPayloadError: If the body is malformed (before any I/O).
            SyncError: If fetching, serializing or writing fails.
        """
        change_set = ChangeSet.from_webhook(body)
        return await self.sync(client, change_set, options)

    async def sync(
        self,
        client: DocumentStore,
        change_set: ChangeSet,
        options: Optional[SyncOptions] = None,
    ) -> SyncOutcome:
        """Apply a change set to the configured indices.

        Args:
            client: Document store to fetch documents from.
            change_set: Created/updated/deleted ids.
            options: Per-call options.

        Returns:
            SyncOutcome describing the writes and deletes issued.

        Raises:
            ValueError: If the type filter names an unconfigured type.
            SyncError: If any phase fails. Indices already written stay written.
        """
        options = options or SyncOptions()
        start_time = time.time()

        router = self.router.restrict(options.type_filter)

        delay_ms = options.settle_delay_ms
        if delay_ms is None:
            delay_ms = self._settings.settle_delay_ms
        if delay_ms > 0:
            logger.debug("Waiting %dms for the document store to settle", delay_ms)
            await asyncio.sleep(delay_ms / 1000)

        documents = await self._fetch_documents(client, change_set, router, options.params)
        resolution = self._resolve(change_set, documents)

        try:
            pairs = await self.transform(resolution.visible_documents)
        except Exception as e:
            logger.error(f"Serializer failed: {e}")
            raise SyncError("serialize", str(e)) from e

        grouped = router.route(pairs)

        if options.replace_all:
            tasks = [
                self._replace_index(index, grouped.get(id(index), (index, []))[1], router)
                for index in router.destinations()
            ]
        else:
            tasks = [
                self._apply_to_index(index, grouped.get(id(index), (index, []))[1], resolution)
                for index in router.destinations()
            ]

        outcomes = await asyncio.gather(*tasks)
        outcome = SyncOutcome(
            indices=[o for o in outcomes if o is not None],
            duration_ms=int((time.time() - start_time) * 1000),
        )

        logger.info(
            "Sync complete: %d saved, %d deleted across %d indices in %dms",
            outcome.saved_count,
            outcome.deleted_count,
            len(outcome.indices),
            outcome.duration_ms,
        )
        return outcome

    async def reindex(
        self,
        client: DocumentStore,
        options: Optional[SyncOptions] = None,
    ) -> SyncOutcome:
        """Reindex every published document of the configured types.

        With `replace_all` each destination index's contents are swapped for
        the fresh records. Otherwise records are upserted and every record
        that existed before the reindex but was not saved again is deleted.
        The settle delay defaults to zero.

        Raises:
            ValueError: If the type filter names an unconfigured type.
            SyncError: If listing, syncing or pruning fails.
        """
        options = options or SyncOptions()
        if options.settle_delay_ms is None:
            options = SyncOptions(
                replace_all=options.replace_all,
                settle_delay_ms=0,
                type_filter=options.type_filter,
                params=options.params,
            )

        router = self.router.restrict(options.type_filter)

        prunable = []
        for index in router.destinations():
            excluded = set(self.router.shared_types(index)) - set(router.types())
            if excluded and options.replace_all:
                logger.warning(
                    "Replacing an index shared with unselected types %s; "
                    "their records will be removed",
                    ", ".join(sorted(excluded)),
                )
            elif excluded:
                logger.warning(
                    "Not pruning an index shared with unselected types %s",
                    ", ".join(sorted(excluded)),
                )
            else:
                prunable.append(index)

        try:
            ids = await client.fetch(LIST_QUERY, {"types": router.types()})
        except Exception as e:
            logger.error(f"Failed to list documents for reindex: {e}")
            raise SyncError("fetch", str(e)) from e

        ids = [doc_id for doc_id in (ids or []) if isinstance(doc_id, str)]
        logger.info("Reindexing %d documents of types %s", len(ids), ", ".join(router.types()))

        existing: list[list[str]] = []
        if not options.replace_all:
            # Listed before saving: records written after this point are never pruned
            existing = await asyncio.gather(
                *(self._call(index.list_object_ids, phase="prune") for index in prunable)
            )

        outcome = await self.sync(client, ChangeSet(created=tuple(ids)), options)

        if not options.replace_all:
            await asyncio.gather(
                *(
                    self._prune_index(index, old_ids, outcome)
                    for index, old_ids in zip(prunable, existing)
                )
            )
        return outcome

    async def _prune_index(self, index: Any, old_ids: list[str], outcome: SyncOutcome) -> None:
        """Delete records that a reindex did not save again."""
        index_outcome = outcome.for_index(index)
        keep: set[str] = set()
        if index_outcome is not None:
            keep.update(str(r.get(RECORD_ID_FIELD)) for r in index_outcome.saved)
            keep.update(index_outcome.deleted_ids)

        orphans = [object_id for object_id in unique(old_ids) if object_id not in keep]
        if not orphans:
            return

        await self._call(index.delete_objects, orphans, phase="prune")
        logger.info("Pruned %d orphaned records", len(orphans))

        if index_outcome is None:
            index_outcome = IndexOutcome(index=index)
            outcome.indices.append(index_outcome)
        index_outcome.deleted_ids = index_outcome.deleted_ids + orphans

    async def _fetch_documents(
        self,
        client: DocumentStore,
        change_set: ChangeSet,
        router: IndexRouter,
        extra_params: dict,
    ) -> list[dict]:
        """Fetch created and updated documents of the routed types."""
        if not (change_set.created or change_set.updated):
            return []

        params = {k: v for k, v in extra_params.items() if k not in RESERVED_PARAMS}
        params.update(
            {
                "created": list(change_set.created),
                "updated": list(change_set.updated),
                "types": router.types(),
            }
        )
        query = FETCH_QUERY % router.projection_query()

        try:
            documents = await client.fetch(query, params)
        except Exception as e:
            logger.error(f"Failed to fetch documents: {e}")
            raise SyncError("fetch", str(e)) from e

        documents = [d for d in (documents or []) if isinstance(d, Mapping) and d.get("_id")]
        logger.debug("Fetched %d documents", len(documents))
        return documents

    def _resolve(self, change_set: ChangeSet, documents: list[dict]) -> Resolution:
        try:
            return resolve_change_set(
                change_set,
                documents,
                self._is_visible,
                self.expansion_enabled,
            )
        except Exception as e:
            logger.error(f"Visibility check failed: {e}")
            raise SyncError("filter", str(e)) from e

    async def _apply_to_index(
        self,
        index: Any,
        records: list[dict],
        resolution: Resolution,
    ) -> Optional[IndexOutcome]:
        """Purge, delete, then save for one index."""
        outcome = IndexOutcome(index=index)

        # Purges must finish before the save or they would remove fresh records
        if resolution.purge_tags:
            await self._call(index.delete_by_tag, list(resolution.purge_tags), phase="purge")
            outcome.purged_tags = list(resolution.purge_tags)

        if resolution.delete_ids:
            await self._call(index.delete_objects, list(resolution.delete_ids), phase="delete")
            outcome.deleted_ids = list(resolution.delete_ids)

        if records:
            await self._call(index.save_objects, records, phase="save")
            outcome.saved = records
            logger.info(
                "Saved %d records: %s",
                len(records),
                ", ".join(str(r.get(RECORD_ID_FIELD)) for r in records[:10]),
            )

        if not (outcome.purged_tags or outcome.deleted_ids or outcome.saved):
            return None
        return outcome

    async def _replace_index(
        self,
        index: Any,
        records: list[dict],
        router: IndexRouter,
    ) -> IndexOutcome:
        """Swap one index's contents for the given records."""
        await self._call(index.replace_all_objects, records, phase="replace")
        logger.info(
            "Replaced index for types %s with %d records",
            ", ".join(router.shared_types(index)),
            len(records),
        )
        return IndexOutcome(index=index, saved=records, replaced=True)

    @staticmethod
    async def _call(method: Any, *args: Any, phase: str) -> Any:
        try:
            return await method(*args)
        except Exception as e:
            logger.error(f"Index {phase} failed: {e}")
            raise SyncError(phase, str(e)) from e


def main() -> None:
    """CLI entrypoint for manual sync operations."""
    import argparse
    import json
    import sys
    from pathlib import Path

    from core.bootstrap import build_indexer, build_sanity_client
    from core.change_set import WebhookPayloadError
    from utils.logging_utils import configure_logging

    settings = get_settings()
    configure_logging(settings.log_level)

    parser = argparse.ArgumentParser(
        description="Sync Sanity documents to the search index",
        prog="syncIndex",
    )
    parser.add_argument(
        "command",
        choices=["reindex", "sync", "stats"],
        help="Command to execute",
    )
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        help="Restrict to a document type (repeatable)",
    )
    parser.add_argument(
        "--replace-all",
        action="store_true",
        help="Replace each index's contents (reindex only)",
    )
    parser.add_argument("--payload", help="Webhook body JSON file for sync command")
    parser.add_argument("--no-delay", action="store_true", help="Skip the settle delay")
    args = parser.parse_args()

    if args.command == "sync" and not args.payload:
        print("Error: --payload required for sync")
        sys.exit(1)

    indexer = build_indexer(settings)
    client = build_sanity_client(settings)

    async def run() -> Any:
        try:
            if args.command == "stats":
                return [(index, await index.get_stats()) for index in indexer.router.destinations()]
            if args.command == "reindex":
                return await indexer.reindex(
                    client,
                    SyncOptions(replace_all=args.replace_all, type_filter=args.types),
                )
            body = json.loads(Path(args.payload).read_text(encoding="utf-8"))
            return await indexer.webhook_sync(
                client,
                body,
                SyncOptions(
                    settle_delay_ms=0 if args.no_delay else None,
                    type_filter=args.types,
                ),
            )
        finally:
            await client.close()
            for index in indexer.router.destinations():
                await index.close()

    try:
        result = asyncio.run(run())
    except (SyncError, WebhookPayloadError, json.JSONDecodeError, OSError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    if args.command == "stats":
        for index, stats in result:
            print(f"\nIndex: {index.name}")
            print(f"  Collection: {stats.get('collection') or 'none'}")
            print(f"  Points: {stats.get('points_count', 0)}")
            print(f"  Status: {stats.get('status', 'unknown')}")
        return

    print(f"\n{args.command}:")
    print(f"  Saved: {result.saved_count}")
    print(f"  Deleted: {result.deleted_count}")
    print(f"  Indices: {len(result.indices)}")
    print(f"  Duration: {result.duration_ms}ms")


if __name__ == "__main__":
    main()
