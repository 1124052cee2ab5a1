"""Tests for configuration loading and validation."""

import json
from pathlib import Path

import pytest

from chunkstore.backends.base import Provider
from chunkstore.config import AccountConfig, Config, load_config
from chunkstore.errors import ConfigurationError
from chunkstore.transfer.strategy import LoadBalancing, Target


def _write(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_defaults_are_valid():
    config = Config()
    config.validate()
    assert config.chunk_size == 1024 * 1024
    assert config.replication_count == 1
    assert config.destination_pool() == []


def test_missing_file_gives_defaults(tmp_path):
    assert Config.from_file(tmp_path / "absent.json") == Config()


def test_from_file(tmp_path):
    path = _write(tmp_path / "config.json", {
        "chunk_size": 4096,
        "chunks_dir": "store",
        "providers": ["folder"],
        "accounts": [{"name": "nas", "provider": "folder", "root": "/mnt/nas"}],
        "replication_count": 2,
        "fail_on_replica_error": True,
    })
    config = Config.from_file(path)

    assert config.chunk_size == 4096
    assert config.chunks_dir == Path("store")
    assert config.accounts == [AccountConfig(name="nas", provider="folder", root="/mnt/nas")]
    assert config.replication_count == 2
    assert config.fail_on_replica_error


def test_from_file_invalid_json(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        Config.from_file(path)


def test_env_overrides_file(tmp_path, monkeypatch):
    path = _write(tmp_path / "config.json", {"chunk_size": 4096, "replication_count": 1})
    monkeypatch.setenv("CHUNKSTORE_CHUNK_SIZE", "2048")
    monkeypatch.setenv("CHUNKSTORE_FAIL_ON_REPLICA_ERROR", "yes")
    monkeypatch.setenv("CHUNKSTORE_LOAD_BALANCING", "random")

    config = load_config(path)

    assert config.chunk_size == 2048
    assert config.fail_on_replica_error
    assert config.load_balancing == LoadBalancing.RANDOM.value


def test_env_bad_number(monkeypatch):
    monkeypatch.setenv("CHUNKSTORE_REPLICATION_COUNT", "two")
    with pytest.raises(ConfigurationError):
        Config.from_env()


@pytest.mark.parametrize("changes", [
    {"chunk_size": 0},
    {"replication_count": 0},
    {"load_balancing": "fastest"},
    {"max_concurrent_transfers": 0},
    {"providers": ["folder"]},
    {"providers": ["floppy"]},
])
def test_validate_rejects(changes):
    config = Config(**changes)
    with pytest.raises(ConfigurationError):
        config.validate()


@pytest.mark.parametrize("data", [
    {"replication_count": "2"},
    {"max_concurrent_transfers": None},
    {"chunk_size": 1.5},
    {"chunk_size": True},
    {"load_balancing": 3},
    {"transfer_timeout": "60"},
    {"fail_on_replica_error": "yes"},
    {"log_level": 10},
    {"chunks_dir": 5},
    {"providers": "folder"},
    {"providers": [1]},
    {"accounts": {"name": "nas"}},
    {"accounts": [{"name": 7, "provider": "folder", "root": "/mnt/nas"}]},
    {"accounts": [{"name": "nas", "provider": None, "root": "/mnt/nas"}]},
    {"accounts": [{"name": "nas", "provider": "folder", "root": 42}]},
])
def test_load_config_rejects_wrong_types(tmp_path, data):
    path = _write(tmp_path / "config.json", data)
    with pytest.raises(ConfigurationError):
        load_config(path)


def test_validate_account_problems():
    with pytest.raises(ConfigurationError):
        Config(accounts=[AccountConfig(name="", root="/x")]).validate()
    with pytest.raises(ConfigurationError):
        Config(accounts=[AccountConfig(name="a", root="/x"), AccountConfig(name="a", root="/y")]).validate()
    with pytest.raises(ConfigurationError):
        Config(accounts=[AccountConfig(name="a", provider="folder")]).validate()
    with pytest.raises(ConfigurationError):
        Config(accounts=[AccountConfig(name="a", provider="local")]).validate()


def test_destination_pool_order():
    config = Config(
        providers=["gdrive", "folder"],
        accounts=[
            AccountConfig(name="f1", provider="folder", root="/a"),
            AccountConfig(name="g1", provider="gdrive"),
            AccountConfig(name="f2", provider="directory", root="/b"),
            AccountConfig(name="g2", provider="googledrive", enabled=False),
        ],
    )
    config.validate()

    assert config.destination_pool() == [
        Target(Provider.GDRIVE, "g1"),
        Target(Provider.FOLDER, "f1"),
        Target(Provider.FOLDER, "f2"),
    ]


def test_build_strategy(folder_config):
    strategy = folder_config.build_strategy()
    assert strategy.replication_count == 2
    assert strategy.pool_size == 2


def test_save_round_trip(tmp_path, folder_config):
    path = tmp_path / "saved.json"
    folder_config.save(path)
    assert Config.from_file(path) == folder_config
