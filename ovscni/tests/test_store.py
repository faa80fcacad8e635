"""Tests for the saved-attachment and remote config stores."""

import json
import os
from unittest.mock import patch

import pytest

from ovscni.errors import CniOvsError, ConfigNotFound
from ovscni.schemas import IPConfig, IPResult, OvsSavedData, RemoteConfigRecord, UserSpaceConf


@pytest.mark.asyncio
async def test_saved_data_round_trip(saved_store, identity):
    data = OvsSavedData(
        vhost_port_name="abc123def456-eth0",
        interface_mac="02:aa:bb:cc:dd:ee",
        vhost_port_mac="02:00:00:00:00:01",
        bridge_name="br0",
        if_type="vhostuser",
    )

    await saved_store.save_config(identity, data)
    loaded = await saved_store.load_config(identity)

    assert loaded == data


@pytest.mark.asyncio
async def test_saved_data_file_layout(saved_store, identity, tmp_path):
    """Test that records are plain JSON files keyed by container and interface."""
    await saved_store.save_config(identity, OvsSavedData(vhost_port_name="abc123def456-eth0"))

    path = tmp_path / "data" / f"local-{identity.key}.json"
    assert json.loads(path.read_text())["vhostPortName"] == "abc123def456-eth0"
    assert not list((tmp_path / "data").glob("*.tmp"))


@pytest.mark.asyncio
async def test_save_syncs_file_and_directory(saved_store, identity, tmp_path):
    """Test that both the record and the rename are flushed to disk."""
    with patch("ovscni.store.base.os.fsync", wraps=os.fsync) as fsync:
        await saved_store.save_config(identity, OvsSavedData(vhost_port_name="abc123def456-eth0"))

    assert fsync.call_count == 2


@pytest.mark.asyncio
async def test_load_missing_raises_config_not_found(saved_store, identity):
    with pytest.raises(ConfigNotFound) as exc_info:
        await saved_store.load_config(identity)

    assert exc_info.value.key == identity.key


@pytest.mark.asyncio
async def test_delete_then_load_fails(saved_store, identity):
    await saved_store.save_config(identity, OvsSavedData(vhost_port_name="p"))

    assert await saved_store.delete_config(identity) is True
    assert await saved_store.delete_config(identity) is False
    with pytest.raises(ConfigNotFound):
        await saved_store.load_config(identity)


@pytest.mark.asyncio
async def test_corrupted_record_is_reported(saved_store, identity, tmp_path):
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    (data_dir / f"local-{identity.key}.json").write_text("{not json")

    with pytest.raises(CniOvsError, match="Corrupted record"):
        await saved_store.load_config(identity)


@pytest.mark.asyncio
async def test_remote_config_overwrite(remote_store, identity):
    """Test that writing the same identity twice keeps the latest record."""
    first = RemoteConfigRecord(container_id=identity.container_id, if_name=identity.if_name, name="net-a")
    second = RemoteConfigRecord(
        container_id=identity.container_id,
        if_name=identity.if_name,
        name="net-b",
        config=UserSpaceConf.model_validate({"iftype": "vhostuser", "vhost": {"mode": "server"}}),
        ip_result=IPResult(ips=[IPConfig(address="10.56.217.5/24", gateway="10.56.217.1")]),
    )

    await remote_store.save_remote_config(identity, first)
    await remote_store.save_remote_config(identity, second)

    loaded = await remote_store.load_remote_config(identity)
    assert loaded == second
    assert loaded.ip_result.ips[0].address == "10.56.217.5/24"


@pytest.mark.asyncio
async def test_remote_cleanup_missing_is_noop(remote_store, identity):
    assert await remote_store.cleanup_remote_config(identity) is False


@pytest.mark.asyncio
async def test_stores_do_not_collide(saved_store, remote_store, identity):
    await saved_store.save_config(identity, OvsSavedData(vhost_port_name="p"))
    await remote_store.save_remote_config(
        identity,
        RemoteConfigRecord(container_id=identity.container_id, if_name=identity.if_name),
    )

    await remote_store.cleanup_remote_config(identity)

    assert (await saved_store.load_config(identity)).vhost_port_name == "p"
