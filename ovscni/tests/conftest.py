"""Shared pytest fixtures for plugin tests."""
from __future__ import annotations

from dataclasses import dataclass, field
from unittest.mock import patch

import pytest

from ovscni import locks
from ovscni.config import settings
from ovscni.orchestrator import CniOvs
from ovscni.schemas import AttachmentIdentity, NetConf
from ovscni.store import RemoteConfigStore, SavedAttachmentStore


@dataclass
class FakeInterface:
    type: str = ""
    options: dict[str, str] = field(default_factory=dict)
    mac: str = ""


class FakeOvs:
    """In-memory stand-in for ovs-vsctl.

    Understands the subset of commands the plugin issues, including the
    --may-exist / --if-exists flags and "--" separated command chains.
    """

    def __init__(self):
        self.bridges: dict[str, list[str]] = {}
        self.datapath: dict[str, str] = {}
        self.interfaces: dict[str, FakeInterface] = {}
        self.other_config: dict[str, str] = {}
        self.calls: list[list[str]] = []
        # verb -> (returncode, stderr) to simulate failures
        self.failures: dict[str, tuple[int, str]] = {}
        self._mac_counter = 0

    @property
    def mutations(self) -> list[list[str]]:
        read_only = {"br-exists", "list-ifaces", "get", "--version"}
        return [c for c in self.calls if not read_only.intersection(c)]

    def port_bridge(self, port: str) -> str | None:
        for name, ports in self.bridges.items():
            if port in ports:
                return name
        return None

    async def run(self, cmd: list[str]) -> tuple[int, str, str]:
        self.calls.append(cmd[1:])
        args = cmd[1:]
        may_exist = "--may-exist" in args
        if_exists = "--if-exists" in args
        args = [a for a in args if a not in ("--may-exist", "--if-exists")]

        commands: list[list[str]] = [[]]
        for arg in args:
            if arg == "--":
                commands.append([])
            else:
                commands[-1].append(arg)

        output = []
        for command in commands:
            if command and command[0] in self.failures:
                code, stderr = self.failures[command[0]]
                return code, "", stderr
            code, stdout, stderr = self._execute(command, may_exist, if_exists)
            if code != 0:
                return code, "", stderr
            if stdout:
                output.append(stdout)
        return 0, "\n".join(output), ""

    def _execute(self, command: list[str], may_exist: bool, if_exists: bool) -> tuple[int, str, str]:
        verb, rest = command[0], command[1:]

        if verb == "br-exists":
            return (0, "", "") if rest[0] in self.bridges else (2, "", "")

        if verb == "add-br":
            name = rest[0]
            if name in self.bridges:
                if may_exist:
                    return 0, "", ""
                return 1, "", f"ovs-vsctl: cannot create a bridge named {name} because a bridge named {name} already exists"
            self.bridges[name] = []
            return 0, "", ""

        if verb == "del-br":
            name = rest[0]
            if name not in self.bridges:
                if if_exists:
                    return 0, "", ""
                return 1, "", f"ovs-vsctl: no bridge named {name}"
            for port in self.bridges.pop(name):
                self.interfaces.pop(port, None)
            self.datapath.pop(name, None)
            return 0, "", ""

        if verb == "list-ifaces":
            name = rest[0]
            if name not in self.bridges:
                return 1, "", f"ovs-vsctl: no bridge named {name}"
            return 0, "\n".join(self.bridges[name]), ""

        if verb == "add-port":
            bridge, port = rest
            if bridge not in self.bridges:
                return 1, "", f"ovs-vsctl: no bridge named {bridge}"
            if self.port_bridge(port):
                if may_exist:
                    return 0, "", ""
                return 1, "", f"ovs-vsctl: cannot create a port named {port} because a port named {port} already exists"
            self.bridges[bridge].append(port)
            self._mac_counter += 1
            self.interfaces[port] = FakeInterface(mac=f"02:00:00:00:00:{self._mac_counter:02x}")
            return 0, "", ""

        if verb == "del-port":
            port = rest[-1]
            if len(rest) == 2 and rest[0] not in self.bridges:
                return 1, "", f"ovs-vsctl: no bridge named {rest[0]}"
            bridge = self.port_bridge(port)
            if bridge is None or (len(rest) == 2 and bridge != rest[0]):
                if if_exists:
                    return 0, "", ""
                return 1, "", f"ovs-vsctl: no port named {port}"
            self.bridges[bridge].remove(port)
            self.interfaces.pop(port, None)
            return 0, "", ""

        if verb == "set":
            table, record, *values = rest
            if table == "bridge":
                for value in values:
                    key, _, val = value.partition("=")
                    if key == "datapath_type":
                        self.datapath[record] = val
                return 0, "", ""
            if table == "Interface":
                iface = self.interfaces[record]
                for value in values:
                    key, _, val = value.partition("=")
                    if key == "type":
                        iface.type = val
                    elif key.startswith("options:"):
                        iface.options[key.split(":", 1)[1]] = val
                return 0, "", ""

        if verb == "get":
            table, record, column = rest
            if table == "Interface" and column == "mac_in_use":
                if record not in self.interfaces:
                    return 1, "", f"ovs-vsctl: no row \"{record}\" in table Interface"
                return 0, f'"{self.interfaces[record].mac}"', ""
            if table == "Open_vSwitch" and column.startswith("other_config:"):
                key = column.split(":", 1)[1]
                if key in self.other_config:
                    return 0, f'"{self.other_config[key]}"', ""
                if if_exists:
                    return 0, "", ""
                return 1, "", f"ovs-vsctl: no key \"{key}\" in Open_vSwitch record \".\" column other_config"

        return 1, "", f"ovs-vsctl: unknown command '{verb}'"


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Point every plugin directory at a per-test temporary directory."""
    monkeypatch.setattr(settings, "socket_dir", str(tmp_path / "sockets"))
    monkeypatch.setattr(settings, "data_dir", str(tmp_path / "data"))
    monkeypatch.setattr(settings, "lock_dir", str(tmp_path / "locks"))
    monkeypatch.setattr(settings, "ovs_socket_dir", str(tmp_path / "ovs-run"))
    monkeypatch.setattr(settings, "default_bridge", "br0")
    monkeypatch.setattr(locks, "_lock_manager", None)
    return tmp_path


@pytest.fixture
def fake_ovs():
    """Replace the ovs-vsctl runner with an in-memory vswitch."""
    fake = FakeOvs()
    with patch("ovscni.network.cmd.run_cmd", new=fake.run):
        yield fake


@pytest.fixture
def socket_dir(tmp_path):
    return tmp_path / "sockets"


@pytest.fixture
def saved_store(tmp_path):
    return SavedAttachmentStore(tmp_path / "data")


@pytest.fixture
def remote_store(tmp_path):
    return RemoteConfigStore(tmp_path / "data")


@pytest.fixture
def cni(saved_store, remote_store, socket_dir):
    return CniOvs(saved_store=saved_store, remote_store=remote_store, socket_dir=socket_dir)


@pytest.fixture
def identity():
    return AttachmentIdentity(
        container_id="abc123def456789abcdef0123456789abcdef0123456789abcdef0123456789",
        if_name="eth0",
        netns="/var/run/netns/cni-1234",
    )


def _make_conf(**host) -> NetConf:
    """Build a NetConf with the given host-side settings."""
    host_conf = {"engine": "ovs-dpdk", "iftype": "vhostuser", "netType": "bridge"}
    host_conf.update(host)
    return NetConf.model_validate({
        "cniVersion": "0.3.1",
        "name": "userspace-ovs-net",
        "type": "userspace",
        "host": host_conf,
        "container": {"engine": "ovs-dpdk", "iftype": "vhostuser", "netType": "interface"},
    })


@pytest.fixture
def make_conf():
    """Factory for NetConfs with the given host-side settings."""
    return _make_conf


@pytest.fixture
def conf():
    return _make_conf(bridge={"bridgeName": "br-test"}, vhost={"mode": "client"})
