"""Visibility predicates deciding whether a document belongs in the index."""

from typing import Any, Callable, Mapping, Optional

VisibilityFunction = Callable[[Mapping[str, Any]], bool]


def always_visible(document: Mapping[str, Any]) -> bool:
    """Default predicate: every document is indexed."""
    return True


def resolve_visibility(visible: Optional[VisibilityFunction]) -> VisibilityFunction:
    """Return the given predicate, or `always_visible` when none is supplied."""
    return visible if visible is not None else always_visible


def field_visibility(hidden_field: str) -> VisibilityFunction:
    """Build a predicate hiding documents whose `hidden_field` is truthy.

    Documents without the field are visible.

    Args:
        hidden_field: Field name, e.g. "isHidden".

    Returns:
        Visibility predicate.
    """

    def is_visible(document: Mapping[str, Any]) -> bool:
        return not document.get(hidden_field)

    return is_visible
