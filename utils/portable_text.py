"""Portable Text helpers for serializers.

Sanity stores rich text as a list of blocks. Search records only need the
plain text, optionally with English stop words removed to keep records small.
"""

from typing import Any, Iterable, Mapping

# Common English stop words
ENGLISH_STOP_WORDS = frozenset(
    """
    a about above after again against all am an and any are as at be because
    been before being below between both but by can could did do does doing
    down during each few for from further had has have having he her here hers
    herself him himself his how i if in into is it its itself just me more
    most my myself no nor not now of off on once only or other our ours
    ourselves out over own same she should so some such than that the their
    theirs them themselves then there these they this those through to too
    under until up very was we were what when where which while who whom why
    will with would you your yours yourself yourselves
    """.split()
)


def remove_stop_words(words: Iterable[str]) -> list[str]:
    """Drop English stop words (case-insensitive)."""
    return [w for w in words if w and w.lower() not in ENGLISH_STOP_WORDS]


def flatten_blocks(blocks: Iterable[Mapping[str, Any]], strip_stop_words: bool = False) -> str:
    """Extract the plain text of Portable Text blocks.

    Only `block` entries are read; images and custom objects are skipped.

    Args:
        blocks: Portable Text value.
        strip_stop_words: Strip English stop words from each span.

    Returns:
        Span texts joined with single spaces.
    """
    texts: list[str] = []
    for block in blocks or []:
        if block.get("_type") != "block":
            continue
        for child in block.get("children") or []:
            text = child.get("text")
            if not isinstance(text, str) or not text:
                continue
            if strip_stop_words:
                text = " ".join(remove_stop_words(text.split(" ")))
            texts.append(text)
    return " ".join(texts)


def is_portable_text(value: Any) -> bool:
    """Check if a value looks like a Portable Text array."""
    return (
        isinstance(value, list)
        and bool(value)
        and all(isinstance(v, Mapping) and "_type" in v for v in value)
        and any(v.get("_type") == "block" for v in value)
    )
