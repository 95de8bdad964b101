"""Configuration state tests."""
from __future__ import annotations

import dataclasses
from collections.abc import Callable
from pathlib import Path

import pytest

from capconfig.catalog import BOOLEAN_FIELDS, INTEGER_FIELDS, UINT32_MAX
from capconfig.config import (
    CaptureConfig,
    ConfigFileError,
    ConfigPhase,
    ConfigState,
    ConfigStateError,
    MissingPacketSourceError,
    determine_config_path,
    determine_node_name,
    load_config,
)

WriteConfig = Callable[[str], Path]


def test_defaults_apply_when_only_interface_set(write_config: WriteConfig) -> None:
    """Catalog defaults are used for every key the file leaves out."""
    path = write_config(
        """
        [default]
        interface=eth0
        """
    )

    config = ConfigState(path, "cap01").init()

    assert isinstance(config, CaptureConfig)
    assert config.interface == "eth0"
    assert config.node_class is None
    assert config.elasticsearch == "localhost:9200"
    assert config.pcap_dir is None
    assert config.bpf is None
    assert config.drop_user is None
    assert config.max_file_size_g == 4
    assert config.icmp_timeout == 10
    assert config.udp_timeout == 60
    assert config.tcp_timeout == 480
    assert config.tcp_save_timeout == 480
    assert config.max_streams == 1500000
    assert config.max_packets == 10000
    assert config.min_free_space_g == 100
    assert config.db_bulk_size == 200000
    assert config.max_es_conns == 100
    assert config.max_es_requests == 500
    assert config.log_every_x_packets == 50000
    assert config.packets_per_poll == 50000
    assert config.pcap_buffer_size == 300000000
    assert config.pcap_write_size == 0x40000
    assert config.log_unknown_protocols is False
    assert config.log_es_requests is False
    assert config.log_file_creation is False
    assert config.dont_save_tags == frozenset()


def test_boolean_defaults_follow_debug_flag(write_config: WriteConfig) -> None:
    """Unset booleans default to the global debug flag."""
    path = write_config(
        """
        [default]
        interface=eth0
        logFileCreation=false
        """
    )

    config = ConfigState(path, "cap01", debug=True).init()

    assert config.debug is True
    assert config.log_unknown_protocols is True
    assert config.log_es_requests is True
    assert config.log_file_creation is False


def test_node_class_resolution_and_precedence(write_config: WriteConfig) -> None:
    """Node beats class beats default, with nodeClass itself tiered."""
    path = write_config(
        """
        [default]
        nodeClass=sensors
        interface=eth0
        bpf=ip
        maxStreams=100
        elasticsearch=es-default:9200

        [sensors]
        bpf=tcp
        maxStreams=200
        logESRequests=true

        [cap01]
        interface=eth1
        elasticsearch=es-node:9200
        """
    )

    config = ConfigState(path, "cap01").init()

    assert config.node_class == "sensors"
    assert config.interface == "eth1"
    assert config.elasticsearch == "es-node:9200"
    assert config.bpf == "tcp"
    assert config.max_streams == 200
    assert config.log_es_requests is True


def test_node_class_from_node_section(write_config: WriteConfig) -> None:
    """A node can pick its own class."""
    path = write_config(
        """
        [cap02]
        nodeClass=edge

        [edge]
        interface=bond0

        [default]
        interface=eth0
        """
    )

    assert ConfigState(path, "cap02").init().interface == "bond0"
    assert ConfigState(path, "cap03").init().interface == "eth0"


def test_dont_save_tags_are_trimmed_and_deduplicated(write_config: WriteConfig) -> None:
    """The tag list is trimmed, de-duplicated and frozen."""
    path = write_config(
        """
        [default]
        interface=eth0
        dontSaveTags=a; b ;;c;a
        """
    )

    config = ConfigState(path, "cap01").init()

    assert config.dont_save_tags == frozenset({"a", "b", "c"})


def test_dont_save_tags_resolved_before_node_class(write_config: WriteConfig) -> None:
    """dontSaveTags is read before nodeClass, so class sections do not supply it."""
    path = write_config(
        """
        [default]
        nodeClass=sensors
        interface=eth0
        dontSaveTags=from-default

        [sensors]
        dontSaveTags=from-class
        """
    )

    config = ConfigState(path, "cap01").init()

    assert config.dont_save_tags == frozenset({"from-default"})


def test_out_of_range_integers_are_clamped(write_config: WriteConfig) -> None:
    """Literals outside the catalog bounds are silently clamped."""
    path = write_config(
        """
        [default]
        interface=eth0
        maxFileSizeG=500
        tcpTimeout=1
        tcpSaveTimeout=99999
        pcapBufferSize=5000000000
        pcapWriteSize=0x400000
        """
    )

    config = ConfigState(path, "cap01").init()

    assert config.max_file_size_g == 63
    assert config.tcp_timeout == 10
    assert config.tcp_save_timeout == 7200
    assert config.pcap_buffer_size == UINT32_MAX
    assert config.pcap_write_size == 0x200000


@pytest.mark.parametrize("literal", ["-1", "0", "99999999999"])
def test_every_bounded_integer_stays_in_range(
    write_config: WriteConfig,
    literal: str,
) -> None:
    """Whatever the literal, each catalog integer ends within its bounds."""
    lines = "\n".join(f"{spec.key}={literal}" for spec in INTEGER_FIELDS)
    path = write_config(f"[default]\ninterface=eth0\n{lines}\n")

    config = ConfigState(path, "cap01").init()

    for spec in INTEGER_FIELDS:
        value = getattr(config, spec.attribute)
        assert spec.minimum is not None and spec.maximum is not None
        assert spec.minimum <= value <= spec.maximum, spec.key


def test_catalog_defaults_are_within_bounds() -> None:
    """Every catalog default already satisfies its own bounds."""
    for spec in INTEGER_FIELDS:
        assert isinstance(spec.default, int)
        assert spec.minimum is not None and spec.maximum is not None
        assert spec.minimum <= spec.default <= spec.maximum, spec.key
    assert all(spec.default is None for spec in BOOLEAN_FIELDS)


def test_missing_packet_source_raises(write_config: WriteConfig) -> None:
    """Without an interface or pcap file the configuration is rejected."""
    path = write_config(
        """
        [default]
        bpf=tcp
        """
    )

    with pytest.raises(MissingPacketSourceError, match="Need to set interface or pcapfile"):
        ConfigState(path, "cap01").init()


def test_pcap_file_satisfies_packet_source(write_config: WriteConfig) -> None:
    """An external capture file stands in for a live interface."""
    path = write_config("[default]\n")

    config = ConfigState(path, "cap01", pcap_file="/tmp/trace.pcap").init()

    assert config.interface is None
    assert config.pcap_file == "/tmp/trace.pcap"


def test_missing_file_raises(tmp_path: Path) -> None:
    """An unreadable config file is fatal."""
    with pytest.raises(ConfigFileError, match="Couldn't load config file"):
        ConfigState(tmp_path / "missing.ini", "cap01").init()


def test_malformed_file_raises(write_config: WriteConfig) -> None:
    """A file that cannot be parsed is fatal."""
    path = write_config("interface=eth0\n")

    with pytest.raises(ConfigFileError):
        ConfigState(path, "cap01").init()


def test_type_mismatch_raises(write_config: WriteConfig) -> None:
    """An uncoercible literal is reported with its key."""
    path = write_config(
        """
        [default]
        interface=eth0
        maxStreams=lots
        """
    )

    with pytest.raises(ConfigFileError, match="maxStreams"):
        ConfigState(path, "cap01").init()


def test_failed_load_leaves_no_tags_behind(write_config: WriteConfig) -> None:
    """Tags read before a decoding error are discarded with the failed load."""
    path = write_config(
        """
        [default]
        interface=eth0
        dontSaveTags=scanner;noise
        tcpTimeout=1:30
        """
    )
    state = ConfigState(path, "cap01")

    with pytest.raises(ConfigFileError, match="tcpTimeout"):
        state.load()

    assert state.phase is ConfigPhase.UNINITIALIZED
    assert state.tags is not None
    assert len(state.tags) == 0


def test_overrides_rank_above_node(write_config: WriteConfig) -> None:
    """Programmatic overrides beat the node section."""
    path = write_config(
        """
        [cap01]
        interface=eth1
        """
    )

    config = ConfigState(
        path,
        "cap01",
        overrides={"interface": "lo", "maxFileSizeG": "100"},
    ).init()

    assert config.interface == "lo"
    assert config.max_file_size_g == 63


def test_lifecycle_phases(write_config: WriteConfig) -> None:
    """Load, validate and teardown move through the expected phases."""
    path = write_config("[default]\ninterface=eth0\ndontSaveTags=x\n")
    state = ConfigState(path, "cap01")
    assert state.phase is ConfigPhase.UNINITIALIZED

    with pytest.raises(ConfigStateError):
        state.validate()

    state.load()
    assert state.phase is ConfigPhase.LOADED
    with pytest.raises(ConfigStateError):
        _ = state.config

    config = state.validate()
    assert state.phase is ConfigPhase.VALIDATED
    assert state.config is config

    with pytest.raises(ConfigStateError):
        state.load()

    state.teardown()
    assert state.phase is ConfigPhase.FREED
    assert state.tags is None
    with pytest.raises(ConfigStateError):
        _ = state.config

    state.teardown()
    assert state.phase is ConfigPhase.FREED
    assert config.dont_save_tags == frozenset({"x"})


def test_context_manager_tears_down(write_config: WriteConfig) -> None:
    """Leaving the ``with`` block frees the state, even after errors."""
    path = write_config("[default]\ninterface=eth0\n")

    with ConfigState(path, "cap01") as state:
        state.init()
        assert state.phase is ConfigPhase.VALIDATED
    assert state.phase is ConfigPhase.FREED

    failing = write_config("[default]\n")
    with pytest.raises(MissingPacketSourceError):
        with ConfigState(failing, "cap01") as broken:
            broken.init()
    assert broken.phase is ConfigPhase.FREED


def test_capture_config_is_immutable(write_config: WriteConfig) -> None:
    """The resolved configuration cannot be mutated."""
    path = write_config("[default]\ninterface=eth0\n")
    config = ConfigState(path, "cap01").init()

    with pytest.raises(dataclasses.FrozenInstanceError):
        config.interface = "eth9"  # type: ignore[misc]


def test_to_dict_is_serialisable(write_config: WriteConfig) -> None:
    """``to_dict`` exposes identity, catalog values and sorted tags."""
    path = write_config("[default]\ninterface=eth0\ndontSaveTags=z;a\n")
    config = ConfigState(path, "cap01", pcap_file=None).init()

    data = config.to_dict()

    assert data["config_file"] == str(path)
    assert data["node_name"] == "cap01"
    assert data["interface"] == "eth0"
    assert data["max_streams"] == 1500000
    assert data["dont_save_tags"] == ["a", "z"]


def test_load_config_uses_environment(write_config: WriteConfig) -> None:
    """Environment variables select the file and the node."""
    path = write_config(
        """
        [edge7]
        interface=eth7

        [default]
        interface=eth0
        """
    )
    env = {"CAPCONFIG_CONFIG_FILE": str(path), "CAPCONFIG_NODE": "edge7"}

    config = load_config(env=env)

    assert config.config_file == path
    assert config.node_name == "edge7"
    assert config.interface == "eth7"


def test_determine_config_path_precedence(tmp_path: Path) -> None:
    """Explicit path beats the environment, which beats the default."""
    explicit = tmp_path / "explicit.ini"
    env = {"CAPCONFIG_CONFIG_FILE": str(tmp_path / "env.ini")}

    assert determine_config_path(explicit, env) == explicit
    assert determine_config_path(None, env) == tmp_path / "env.ini"
    assert determine_config_path(None, {}) == Path("/etc/capconfig/config.ini")


def test_determine_node_name_defaults_to_short_hostname(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """The short host name is used when no node is given."""
    monkeypatch.setattr("socket.gethostname", lambda: "sensor7.example.com")

    assert determine_node_name(None, {}) == "sensor7"
    assert determine_node_name(None, {"CAPCONFIG_NODE": "env-node"}) == "env-node"
    assert determine_node_name("cli-node", {"CAPCONFIG_NODE": "env-node"}) == "cli-node"
