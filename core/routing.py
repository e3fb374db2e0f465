"""Routing of document types to search indices.

Several document types may share one index. Records are grouped by the
resolved index handle, not by type name, so a shared index receives a single
consolidated call per operation.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_PROJECTION = "{...}"


class SearchIndex(Protocol):
    """Destination index operations the sync needs."""

    async def save_objects(self, records: list[dict]) -> Any: ...

    async def delete_objects(self, object_ids: list[str]) -> Any: ...

    async def delete_by_tag(self, tags: list[str]) -> Any: ...

    async def replace_all_objects(self, records: list[dict]) -> Any: ...

    async def list_object_ids(self) -> list[str]: ...


@dataclass(frozen=True)
class TypeRoute:
    """Destination of one document type.

    Attributes:
        index: Search index receiving the type's records.
        projection: GROQ projection used when fetching the type. None fetches
            every field.
    """

    index: Any
    projection: Optional[str] = None


def _index_key(index: Any) -> int:
    return id(index)


class IndexRouter:
    """Maps document types to their destination indices."""

    def __init__(self, routes: Mapping[str, Any]) -> None:
        """Initialize the router.

        Args:
            routes: Document type to TypeRoute. A bare index handle is
                accepted as shorthand for `TypeRoute(index)`.

        Raises:
            ValueError: If no routes are given.
        """
        if not routes:
            raise ValueError("At least one document type must be routed to an index")

        self._routes: dict[str, TypeRoute] = {
            doc_type: route if isinstance(route, TypeRoute) else TypeRoute(index=route)
            for doc_type, route in routes.items()
        }

    def types(self) -> list[str]:
        """Configured document types in declaration order."""
        return list(self._routes)

    def get(self, doc_type: str) -> Optional[TypeRoute]:
        """Get the route for a type, or None if it is not configured."""
        return self._routes.get(doc_type)

    def restrict(self, types: Optional[Iterable[str]]) -> "IndexRouter":
        """Get a router limited to the given types.

        Args:
            types: Types to keep. None keeps all of them.

        Returns:
            A new router.

        Raises:
            ValueError: If a type is not configured.
        """
        if types is None:
            return self

        wanted = list(types)
        unknown = [t for t in wanted if t not in self._routes]
        if unknown:
            raise ValueError(f"Unknown document types: {', '.join(unknown)}")

        return IndexRouter({t: self._routes[t] for t in self._routes if t in wanted})

    def destinations(self) -> list[Any]:
        """Unique destination indices in first-declared order."""
        seen: dict[int, Any] = {}
        for route in self._routes.values():
            seen.setdefault(_index_key(route.index), route.index)
        return list(seen.values())

    def shared_types(self, index: Any) -> list[str]:
        """All configured types routed to the given index."""
        key = _index_key(index)
        return [t for t, route in self._routes.items() if _index_key(route.index) == key]

    def route(self, pairs: Iterable[tuple[str, dict]]) -> dict[int, tuple[Any, list[dict]]]:
        """Group records by destination index.

        Args:
            pairs: (originating document type, record) pairs. The document
                type is used, not the record's own `type` field, which a
                serializer may override.

        Returns:
            Index key to (index, records). Records of unrouted types are
            dropped.
        """
        grouped: dict[int, tuple[Any, list[dict]]] = {}
        for doc_type, record in pairs:
            route = self._routes.get(doc_type)
            if route is None:
                logger.warning("No index configured for type %s, skipping record", doc_type)
                continue
            key = _index_key(route.index)
            if key not in grouped:
                grouped[key] = (route.index, [])
            grouped[key][1].append(record)
        return grouped

    def projection_query(self) -> str:
        """Build the GROQ conditional projection for the configured types.

        Returns:
            Comma separated `_type == "<type>" => <projection>` clauses.
        """
        clauses = []
        for doc_type, route in self._routes.items():
            projection = route.projection or DEFAULT_PROJECTION
            clauses.append(f'_type == "{doc_type}" => {projection.strip()}')
        return ",\n  ".join(clauses)
