"""Configuration state for the capture daemon.

Settings are read from an INI-style key file following a fixed precedence
for every key:

1. The section named after this node (``--node``, defaulting to the short
   host name).
2. The section named by the resolved ``nodeClass`` value, when there is one.
3. The ``[default]`` section.
4. The built-in default from :mod:`capconfig.catalog`.

:class:`ConfigState` performs that resolution exactly once at start-up and
freezes the outcome into a :class:`CaptureConfig`, which is what capture,
indexing and writer components receive. It is immutable and can be shared
between threads without locking.

The config file path follows the usual override order: an explicit path,
then ``CAPCONFIG_CONFIG_FILE``, then ``/etc/capconfig/config.ini``.
"""
from __future__ import annotations

import logging
import os
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import TracebackType
from typing import cast

from .catalog import (
    BOOLEAN_FIELDS,
    CATALOG,
    DONT_SAVE_TAGS_KEY,
    INTEGER_FIELDS,
    NODE_CLASS_KEY,
    STRING_FIELDS,
)
from .keyfile import KeyFile, KeyFileError
from .resolver import TieredResolver
from .tags import TagSet, load_tag_set

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "CAPCONFIG_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"
NODE_ENV_VAR = f"{ENV_PREFIX}NODE"
DEFAULT_CONFIG_FILE = "/etc/capconfig/config.ini"


class ConfigError(RuntimeError):
    """Base class for configuration failures; all of them are fatal."""


class ConfigFileError(ConfigError):
    """Raised when the key file is missing, malformed or holds an unusable value."""


class MissingPacketSourceError(ConfigError):
    """Raised when neither an interface nor a capture file was configured."""


class ConfigStateError(ConfigError):
    """Raised when :class:`ConfigState` methods are called out of order."""


class ConfigPhase(Enum):
    """Lifecycle phases of :class:`ConfigState`."""

    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    VALIDATED = "validated"
    FREED = "freed"


@dataclass(frozen=True)
class CaptureConfig:
    """Resolved, bounds-checked settings for one capture node."""

    config_file: Path
    node_name: str
    pcap_file: str | None
    debug: bool

    node_class: str | None
    elasticsearch: str | None
    interface: str | None
    pcap_dir: str | None
    bpf: str | None
    yara: str | None
    geoip_file: str | None
    geoip_asn_file: str | None
    drop_user: str | None
    drop_group: str | None

    max_file_size_g: int
    icmp_timeout: int
    udp_timeout: int
    tcp_timeout: int
    tcp_save_timeout: int
    max_streams: int
    max_packets: int
    min_free_space_g: int
    db_bulk_size: int
    max_es_conns: int
    max_es_requests: int
    log_every_x_packets: int
    packets_per_poll: int
    pcap_buffer_size: int
    pcap_write_size: int

    log_unknown_protocols: bool
    log_es_requests: bool
    log_file_creation: bool

    dont_save_tags: frozenset[str]

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serialisable representation of the config."""
        data: dict[str, object] = {
            "config_file": str(self.config_file),
            "node_name": self.node_name,
            "pcap_file": self.pcap_file,
            "debug": self.debug,
        }
        for spec in CATALOG:
            data[spec.attribute] = getattr(self, spec.attribute)
        data["dont_save_tags"] = sorted(self.dont_save_tags)
        return data


class ConfigState:
    """Load, validate and own the configuration of this process.

    Typical use::

        with ConfigState(path, node_name, pcap_file=pcap) as state:
            config = state.init()
            run_capture(config)

    ``init`` moves the state through ``UNINITIALIZED -> LOADED ->
    VALIDATED``; leaving the ``with`` block (or calling :meth:`teardown`)
    releases every resolved value and ends in ``FREED``.
    """

    def __init__(
        self,
        config_file: str | os.PathLike[str],
        node_name: str,
        *,
        pcap_file: str | None = None,
        debug: bool = False,
        overrides: Mapping[str, str] | None = None,
    ) -> None:
        """Capture the runtime identity; nothing is read until :meth:`init`."""
        self.config_file = Path(config_file)
        self.node_name = node_name
        self.pcap_file = pcap_file
        self.debug = debug
        self.overrides = dict(overrides or {})
        self.phase = ConfigPhase.UNINITIALIZED
        self.tags: TagSet | None = None
        self._values: dict[str, object] = {}
        self._config: CaptureConfig | None = None

    def __enter__(self) -> ConfigState:
        """Return the state itself; teardown happens on exit."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Release every resolved value, even when init failed."""
        self.teardown()

    @property
    def config(self) -> CaptureConfig:
        """Return the frozen configuration once validation has passed."""
        if self.phase is not ConfigPhase.VALIDATED or self._config is None:
            raise ConfigStateError(
                f"Configuration is not available in phase '{self.phase.value}'."
            )
        return self._config

    def init(self) -> CaptureConfig:
        """Load and validate the configuration, dumping it when debugging."""
        self.tags = TagSet()
        self.load()
        if self.debug:
            self.dump()
        return self.validate()

    def load(self) -> None:
        """Resolve every catalog field from the key file."""
        if self.phase is not ConfigPhase.UNINITIALIZED:
            raise ConfigStateError(
                f"Cannot load configuration in phase '{self.phase.value}'."
            )
        if self.tags is None:
            self.tags = TagSet()

        try:
            keyfile = KeyFile.load(self.config_file)
            resolver = TieredResolver(keyfile, self.node_name, overrides=self.overrides)
            # Resolved ahead of nodeClass, so only the node and default tiers apply.
            load_tag_set(resolver.resolve_string_list(DONT_SAVE_TAGS_KEY), self.tags)
            self._values = self._resolve_fields(resolver)
        except KeyFileError as exc:
            self.tags.clear()
            raise ConfigFileError(str(exc)) from exc

        self.phase = ConfigPhase.LOADED
        LOGGER.debug(
            "Resolved configuration for node %s (class %s) from %s.",
            self.node_name,
            self._values["node_class"],
            self.config_file,
        )

    def _resolve_fields(self, resolver: TieredResolver) -> dict[str, object]:
        node_class = resolver.resolve_string(NODE_CLASS_KEY)
        resolver.node_class = node_class
        values: dict[str, object] = {"node_class": node_class}

        for spec in STRING_FIELDS:
            values[spec.attribute] = resolver.resolve_string(
                spec.key, cast("str | None", spec.default)
            )
        for spec in INTEGER_FIELDS:
            values[spec.attribute] = resolver.resolve_int(
                spec.key,
                cast(int, spec.default),
                cast(int, spec.minimum),
                cast(int, spec.maximum),
            )
        for spec in BOOLEAN_FIELDS:
            fallback = self.debug if spec.default is None else bool(spec.default)
            values[spec.attribute] = resolver.resolve_bool(spec.key, fallback)
        return values

    def validate(self) -> CaptureConfig:
        """Check a packet source is configured and freeze the result."""
        if self.phase is not ConfigPhase.LOADED:
            raise ConfigStateError(
                f"Cannot validate configuration in phase '{self.phase.value}'."
            )
        if self._values.get("interface") is None and self.pcap_file is None:
            raise MissingPacketSourceError("Need to set interface or pcapfile")

        tags = self.tags if self.tags is not None else TagSet()
        self._config = CaptureConfig(
            config_file=self.config_file,
            node_name=self.node_name,
            pcap_file=self.pcap_file,
            debug=self.debug,
            dont_save_tags=tags.freeze(),
            **self._values,  # type: ignore[arg-type]
        )
        self.phase = ConfigPhase.VALIDATED
        return self._config

    def dump(self) -> None:
        """Log one ``key: value`` line per resolved field and per tag."""
        for spec in CATALOG:
            LOGGER.info("%s: %s", spec.key, _format_value(self._values.get(spec.attribute)))
        for tag in self.tags or ():
            LOGGER.info("%s: %s", DONT_SAVE_TAGS_KEY, tag)

    def teardown(self) -> None:
        """Release every resolved value, list and the tag set."""
        if self.phase is ConfigPhase.FREED:
            return
        self._values.clear()
        if self.tags is not None:
            self.tags.clear()
        self.tags = None
        self._config = None
        self.phase = ConfigPhase.FREED


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    node_name: str | None = None,
    pcap_file: str | None = None,
    debug: bool = False,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, str] | None = None,
) -> CaptureConfig:
    """Resolve and validate the configuration in one call."""
    resolved_env = dict(os.environ if env is None else env)
    state = ConfigState(
        determine_config_path(config_file, resolved_env),
        determine_node_name(node_name, resolved_env),
        pcap_file=pcap_file,
        debug=debug,
        overrides=overrides,
    )
    return state.init()


def determine_config_path(
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    """Pick the config file: explicit path, environment, then the default."""
    if cli_override:
        return Path(cli_override)
    if env.get(CONFIG_ENV_VAR):
        return Path(env[CONFIG_ENV_VAR])
    return Path(DEFAULT_CONFIG_FILE)


def determine_node_name(cli_override: str | None, env: Mapping[str, str]) -> str:
    """Pick the node name: explicit value, environment, then the short host name."""
    if cli_override:
        return cli_override
    if env.get(NODE_ENV_VAR):
        return env[NODE_ENV_VAR]
    return socket.gethostname().split(".", 1)[0]


def _format_value(value: object) -> str:
    if value is None:
        return "(null)"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


__all__ = [
    "CONFIG_ENV_VAR",
    "CaptureConfig",
    "ConfigError",
    "ConfigFileError",
    "ConfigPhase",
    "ConfigState",
    "ConfigStateError",
    "DEFAULT_CONFIG_FILE",
    "MissingPacketSourceError",
    "NODE_ENV_VAR",
    "determine_config_path",
    "determine_node_name",
    "load_config",
]
