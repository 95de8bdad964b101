"""Tiered value resolution across node, node-class and default sections.

For every key the most specific section that defines it wins outright::

    [<node name>]  ->  [<nodeClass value>]  ->  [default]  ->  fallback

Values are never merged across sections, not even for lists. The
node-class tier only takes part once :attr:`TieredResolver.node_class` is
set, which :class:`~capconfig.config.ConfigState` does right after
resolving ``nodeClass`` itself. Integer results are clamped into their
bounds whatever tier, or fallback, supplied them.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from .keyfile import LIST_SEPARATOR, KeyFile

DEFAULT_SECTION = "default"
OVERRIDES_SECTION = "overrides"


@dataclass(frozen=True, slots=True)
class Tier:
    """One step of the lookup chain: a section within a key-file source."""

    source: KeyFile
    section: str

    def defines(self, key: str) -> bool:
        """Return ``True`` when this tier explicitly sets *key*."""
        return self.source.has_key(self.section, key)


class TieredResolver:
    """Resolve typed values through an ordered chain of :class:`Tier` objects."""

    def __init__(
        self,
        keyfile: KeyFile,
        node_name: str,
        *,
        node_class: str | None = None,
        default_section: str = DEFAULT_SECTION,
        overrides: Mapping[str, str] | None = None,
    ) -> None:
        """Prepare a resolver for *node_name* over *keyfile*.

        *overrides* holds raw ``key -> literal`` pairs that rank above the
        node section. They are decoded exactly like file values.
        """
        self.keyfile = keyfile
        self.node_name = node_name
        self.node_class = node_class
        self.default_section = default_section
        self._overrides: KeyFile | None = None
        if overrides:
            self._overrides = KeyFile.from_mapping(
                {OVERRIDES_SECTION: dict(overrides)},
                source="<overrides>",
            )

    @property
    def tiers(self) -> list[Tier]:
        """Return the lookup chain in priority order."""
        chain: list[Tier] = []
        if self._overrides is not None:
            chain.append(Tier(self._overrides, OVERRIDES_SECTION))
        chain.append(Tier(self.keyfile, self.node_name))
        if self.node_class:
            chain.append(Tier(self.keyfile, self.node_class))
        chain.append(Tier(self.keyfile, self.default_section))
        return chain

    def find(self, key: str) -> Tier | None:
        """Return the highest-priority tier defining *key*, if any."""
        for tier in self.tiers:
            if tier.defines(key):
                return tier
        return None

    def resolve_string(self, key: str, fallback: str | None = None) -> str | None:
        """Resolve *key* as a string; ``None`` when unset and no fallback."""
        tier = self.find(key)
        if tier is None:
            return fallback
        return tier.source.get_string(tier.section, key)

    def resolve_string_list(
        self,
        key: str,
        fallback: str | None = None,
        separator: str = LIST_SEPARATOR,
    ) -> list[str] | None:
        """Resolve *key* as a list; a string *fallback* is split on *separator*."""
        tier = self.find(key)
        if tier is not None:
            return tier.source.get_string_list(tier.section, key, separator)
        if fallback is None:
            return None
        return fallback.split(separator)

    def resolve_int(self, key: str, fallback: int, minimum: int, maximum: int) -> int:
        """Resolve *key* as an integer clamped into ``[minimum, maximum]``."""
        tier = self.find(key)
        value = fallback if tier is None else tier.source.get_integer(tier.section, key)
        return clamp(value, minimum, maximum)

    def resolve_bool(self, key: str, fallback: bool) -> bool:
        """Resolve *key* as a boolean."""
        tier = self.find(key)
        if tier is None:
            return fallback
        return tier.source.get_boolean(tier.section, key)


def clamp(value: int, minimum: int, maximum: int) -> int:
    """Return *value* limited to the inclusive range ``[minimum, maximum]``."""
    if value < minimum:
        return minimum
    if value > maximum:
        return maximum
    return value


__all__ = [
    "DEFAULT_SECTION",
    "OVERRIDES_SECTION",
    "Tier",
    "TieredResolver",
    "clamp",
]
