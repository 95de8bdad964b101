"""Section/key-value source for the capture daemon's ``config.ini``.

The format is the familiar GLib key-file dialect::

    [default]
    elasticsearch=es01:9200
    dontSaveTags=noise;scanner\\;internal;

    [capture-07]
    interface=eth1

Group and key names are case-sensitive, ``#`` starts a comment line,
repeated groups are merged and a repeated key keeps its last value.
Leading whitespace on a line is ignored, so there are no continuation
lines. No interpolation is performed.

Raw values are decoded lazily by the typed getters. Integers are decimal
or ``0x`` hexadecimal. Booleans are one of the words in
``BOOLEAN_LITERALS`` and are coerced with PyYAML's ``safe_load``. Anything
else raises :class:`KeyFileValueError`.
"""
from __future__ import annotations

import configparser
import logging
import os
import re
from collections.abc import Mapping
from pathlib import Path

import yaml

LOGGER = logging.getLogger(__name__)

LIST_SEPARATOR = ";"

# configparser treats its default section specially; pick a name no file can declare.
_RESERVED_DEFAULT_SECTION = "\x00keyfile-defaults"
_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")
_HEX_RE = re.compile(r"[+-]?0[xX][0-9a-fA-F]+")
BOOLEAN_LITERALS = frozenset({"true", "false", "yes", "no", "on", "off", "1", "0"})
_ESCAPES = {
    "s": " ",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
}


class KeyFileError(RuntimeError):
    """Raised when a key file cannot be read or parsed."""


class KeyFileValueError(KeyFileError):
    """Raised when a value cannot be decoded as the requested type."""

    def __init__(self, source: str, section: str, key: str, raw: str, expected: str) -> None:
        """Record where the offending literal came from."""
        self.source = source
        self.section = section
        self.key = key
        self.raw = raw
        self.expected = expected
        super().__init__(
            f"Key '{key}' in [{section}] of {source}: cannot parse {raw!r} as {expected}."
        )


class KeyFile:
    """Parsed key file exposing typed lookups per section."""

    def __init__(self, parser: configparser.RawConfigParser, source: str) -> None:
        """Wrap an already populated parser; use the ``load``/``from_*`` constructors."""
        self._parser = parser
        self.source = source

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | os.PathLike[str]) -> KeyFile:
        """Read and parse the key file at *path*."""
        file_path = Path(path)
        try:
            text = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise KeyFileError(f"Couldn't load config file ({file_path}): {exc}") from exc
        keyfile = cls.from_string(text, source=str(file_path))
        LOGGER.debug("Loaded %s with sections: %s", file_path, ", ".join(keyfile.sections()))
        return keyfile

    @classmethod
    def from_string(cls, text: str, *, source: str = "<string>") -> KeyFile:
        """Parse key-file *text*; *source* is only used in error messages."""
        parser = _new_parser()
        text = "\n".join(line.lstrip() for line in text.splitlines())
        try:
            parser.read_string(text, source=source)
        except configparser.Error as exc:
            raise KeyFileError(f"Couldn't load config file ({source}): {exc}") from exc
        return cls(parser, source)

    @classmethod
    def from_mapping(
        cls,
        sections: Mapping[str, Mapping[str, object]],
        *,
        source: str = "<mapping>",
    ) -> KeyFile:
        """Build a key file from ``{section: {key: raw_value}}``."""
        parser = _new_parser()
        parser.read_dict(
            {section: {key: str(value) for key, value in values.items()}
             for section, values in sections.items()},
            source=source,
        )
        return cls(parser, source)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def sections(self) -> list[str]:
        """Return the section names in file order."""
        return self._parser.sections()

    def has_key(self, section: str, key: str) -> bool:
        """Return ``True`` when *section* exists and explicitly sets *key*."""
        if not section or not self._parser.has_section(section):
            return False
        return self._parser.has_option(section, key)

    def get_string(self, section: str, key: str) -> str:
        """Return the value with escape sequences decoded."""
        return _unescape(self._raw(section, key))

    def get_string_list(
        self,
        section: str,
        key: str,
        separator: str = LIST_SEPARATOR,
    ) -> list[str]:
        """Split the value on *separator*; ``\\<separator>`` keeps it literal."""
        return [_unescape(item) for item in _split_list(self._raw(section, key), separator)]

    def get_integer(self, section: str, key: str) -> int:
        """Return the value as an integer."""
        raw = self._raw(section, key)
        text = raw.strip()
        if _DECIMAL_RE.fullmatch(text):
            return int(text, 10)
        if _HEX_RE.fullmatch(text):
            return int(text, 16)
        raise KeyFileValueError(self.source, section, key, raw, "an integer")

    def get_boolean(self, section: str, key: str) -> bool:
        """Return the value as a boolean."""
        raw = self._raw(section, key)
        text = raw.strip().lower()
        if text not in BOOLEAN_LITERALS:
            raise KeyFileValueError(self.source, section, key, raw, "a boolean")
        return bool(_coerce_value(text))

    def _raw(self, section: str, key: str) -> str:
        if not self.has_key(section, key):
            raise KeyError(f"{key!r} is not set in [{section}] of {self.source}")
        value = self._parser.get(section, key, raw=True)
        return value if value is not None else ""

    def __repr__(self) -> str:
        """Return a short debugging representation."""
        return f"KeyFile(source={self.source!r}, sections={self.sections()!r})"


def _new_parser() -> configparser.RawConfigParser:
    parser = configparser.RawConfigParser(
        delimiters=("=",),
        comment_prefixes=("#",),
        inline_comment_prefixes=None,
        strict=False,
        empty_lines_in_values=False,
        default_section=_RESERVED_DEFAULT_SECTION,
        interpolation=None,
    )
    parser.optionxform = str  # type: ignore[assignment,method-assign]
    return parser


def _coerce_value(raw: str) -> object:
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # not a scalar YAML understands
        return raw
    return parsed


def _split_list(raw: str, separator: str) -> list[str]:
    items: list[str] = []
    current: list[str] = []
    index = 0
    while index < len(raw):
        char = raw[index]
        if char == "\\" and raw.startswith(separator, index + 1):
            current.append(separator)
            index += 1 + len(separator)
            continue
        if char == "\\" and index + 1 < len(raw):
            current.append(raw[index : index + 2])
            index += 2
            continue
        if raw.startswith(separator, index):
            items.append("".join(current))
            current = []
            index += len(separator)
            continue
        current.append(char)
        index += 1
    # A trailing separator terminates the list rather than adding an empty item.
    if current:
        items.append("".join(current))
    return items


def _unescape(raw: str) -> str:
    if "\\" not in raw:
        return raw
    result: list[str] = []
    index = 0
    while index < len(raw):
        char = raw[index]
        if char == "\\" and index + 1 < len(raw):
            following = raw[index + 1]
            result.append(_ESCAPES.get(following, char + following))
            index += 2
            continue
        result.append(char)
        index += 1
    return "".join(result)


__all__ = [
    "BOOLEAN_LITERALS",
    "LIST_SEPARATOR",
    "KeyFile",
    "KeyFileError",
    "KeyFileValueError",
]
