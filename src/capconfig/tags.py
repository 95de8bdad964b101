"""Deduplicating tag sets built from semicolon-delimited lists."""
from __future__ import annotations

from collections.abc import Iterable, Iterator

# Only ASCII whitespace is trimmed; NBSP and other Unicode spaces are kept.
_ASCII_WHITESPACE = " \t\n\r\f\v"


class TagSet:
    """Set of trimmed, non-empty tags where re-adding a tag is a no-op."""

    __slots__ = ("_tags",)

    def __init__(self, tags: Iterable[str] = ()) -> None:
        """Start with *tags*, normalised as by :meth:`add`."""
        self._tags: set[str] = set()
        for tag in tags:
            self.add(tag)

    def add(self, tag: str) -> bool:
        """Insert *tag* after trimming; return ``True`` only if it was new."""
        normalized = tag.strip(_ASCII_WHITESPACE)
        if not normalized or normalized in self._tags:
            return False
        self._tags.add(normalized)
        return True

    def freeze(self) -> frozenset[str]:
        """Return an immutable snapshot of the current members."""
        return frozenset(self._tags)

    def clear(self) -> None:
        """Drop every member."""
        self._tags.clear()

    def __contains__(self, tag: object) -> bool:
        """Return whether *tag* is a member (exact match)."""
        return tag in self._tags

    def __iter__(self) -> Iterator[str]:
        """Iterate members in sorted order."""
        return iter(sorted(self._tags))

    def __len__(self) -> int:
        """Return the number of members."""
        return len(self._tags)

    def __repr__(self) -> str:
        """Return a short debugging representation."""
        return f"TagSet({sorted(self._tags)!r})"


def load_tag_set(raw_list: Iterable[str] | None, tags: TagSet | None = None) -> TagSet:
    """Add each entry of *raw_list* to *tags* (a new set when omitted).

    Entries are trimmed on both sides and empty results are skipped, so
    ``"a; b ;;c"`` split on ``;`` yields ``{"a", "b", "c"}``. Loading the
    same list again leaves the set unchanged.
    """
    target = TagSet() if tags is None else tags
    if raw_list is None:
        return target
    for entry in raw_list:
        target.add(entry)
    return target


__all__ = ["TagSet", "load_tag_set"]
