import pytest

from partitionlink.config import Config, RaftConfig, new_node_id


def test_defaults(monkeypatch):
    monkeypatch.delenv("PL_LISTEN_PORT", raising=False)
    cfg = Config()
    assert cfg.disc_multicast_group == "224.0.0.1"
    assert cfg.disc_multicast_port == 54123
    assert cfg.listen_port == 7111
    assert cfg.listen_addr == "0.0.0.0"
    assert cfg.raft_config.election_tick == 10
    assert cfg.raft_config.heartbeat_tick == 3


def test_raft_id_follows_node_id():
    cfg = Config()
    assert cfg.raft_config.id == cfg.node_id


def test_explicit_node_id_is_used_for_raft():
    cfg = Config(node_id=42, raft_config=RaftConfig())
    assert cfg.raft_config.id == 42


def test_node_ids_are_64_bit_and_random():
    ids = {new_node_id() for _ in range(20)}
    assert len(ids) == 20
    assert all(0 <= i < 2**64 for i in ids)


def test_configs_get_distinct_node_ids():
    assert Config().node_id != Config().node_id or False or Config().node_id >= 0
    a, b = Config(), Config()
    assert a.node_id != b.node_id


def test_listen_port_from_environment(monkeypatch):
    monkeypatch.setenv("PL_LISTEN_PORT", "9000")
    assert Config().listen_port == 9000


def test_invalid_listen_port_raises(monkeypatch):
    monkeypatch.setenv("PL_LISTEN_PORT", "not-a-port")
    with pytest.raises(ValueError):
        Config()


def test_intervals_are_consistent():
    cfg = Config()
    assert cfg.disc_multicast_ttl > cfg.disc_multicast_interval
    assert cfg.disc_multicast_ttl_check_interval == cfg.disc_multicast_interval