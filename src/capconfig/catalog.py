"""The fixed catalog of capture-daemon settings.

Key names, defaults and bounds must stay in step with existing
``config.ini`` files deployed on capture nodes.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

FieldKind = Literal["str", "int", "bool"]

NODE_CLASS_KEY = "nodeClass"
DONT_SAVE_TAGS_KEY = "dontSaveTags"
UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """A single catalog entry.

    Boolean fields with ``default=None`` fall back to the global debug flag.
    """

    key: str
    attribute: str
    kind: FieldKind
    default: str | int | bool | None = None
    minimum: int | None = None
    maximum: int | None = None


STRING_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("elasticsearch", "elasticsearch", "str", "localhost:9200"),
    FieldSpec("interface", "interface", "str"),
    FieldSpec("pcapDir", "pcap_dir", "str"),
    FieldSpec("bpf", "bpf", "str"),
    FieldSpec("yara", "yara", "str"),
    FieldSpec("geoipFile", "geoip_file", "str"),
    FieldSpec("geoipASNFile", "geoip_asn_file", "str"),
    FieldSpec("dropUser", "drop_user", "str"),
    FieldSpec("dropGroup", "drop_group", "str"),
)

INTEGER_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("maxFileSizeG", "max_file_size_g", "int", 4, 1, 63),
    FieldSpec("icmpTimeout", "icmp_timeout", "int", 10, 1, 0xFFFF),
    FieldSpec("udpTimeout", "udp_timeout", "int", 60, 1, 0xFFFF),
    FieldSpec("tcpTimeout", "tcp_timeout", "int", 60 * 8, 10, 0xFFFF),
    FieldSpec("tcpSaveTimeout", "tcp_save_timeout", "int", 60 * 8, 10, 60 * 120),
    FieldSpec("maxStreams", "max_streams", "int", 1500000, 1, 16777215),
    FieldSpec("maxPackets", "max_packets", "int", 10000, 1, 1000000),
    FieldSpec("freeSpaceG", "min_free_space_g", "int", 100, 1, 100000),
    FieldSpec("dbBulkSize", "db_bulk_size", "int", 200000, 1, 1000000),
    FieldSpec("maxESConns", "max_es_conns", "int", 100, 10, 1000),
    FieldSpec("maxESRequests", "max_es_requests", "int", 500, 10, 5000),
    FieldSpec("logEveryXPackets", "log_every_x_packets", "int", 50000, 1000, 1000000),
    FieldSpec("packetsPerPoll", "packets_per_poll", "int", 50000, 1000, 1000000),
    FieldSpec("pcapBufferSize", "pcap_buffer_size", "int", 300000000, 100000, UINT32_MAX),
    FieldSpec("pcapWriteSize", "pcap_write_size", "int", 0x40000, 0x40000, 0x200000),
)

BOOLEAN_FIELDS: tuple[FieldSpec, ...] = (
    FieldSpec("logUnknownProtocols", "log_unknown_protocols", "bool"),
    FieldSpec("logESRequests", "log_es_requests", "bool"),
    FieldSpec("logFileCreation", "log_file_creation", "bool"),
)

NODE_CLASS_FIELD = FieldSpec(NODE_CLASS_KEY, "node_class", "str")

# Dump order: node class first, then the catalog as declared.
CATALOG: tuple[FieldSpec, ...] = (
    NODE_CLASS_FIELD,
    *STRING_FIELDS,
    *INTEGER_FIELDS,
    *BOOLEAN_FIELDS,
)


def field_by_key(key: str) -> FieldSpec:
    """Return the catalog entry for the config key *key*."""
    for spec in CATALOG:
        if spec.key == key:
            return spec
    raise KeyError(key)


__all__ = [
    "BOOLEAN_FIELDS",
    "CATALOG",
    "DONT_SAVE_TAGS_KEY",
    "FieldKind",
    "FieldSpec",
    "INTEGER_FIELDS",
    "NODE_CLASS_FIELD",
    "NODE_CLASS_KEY",
    "STRING_FIELDS",
    "UINT32_MAX",
    "field_by_key",
]
