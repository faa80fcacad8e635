"""vhost-user port provisioning on OVS-DPDK.

Each attachment gets one vhost-user port named after its socket
reference (<container-id[:12]>-<ifname>). The socket itself lives in the
shared socket directory that is mapped into the pod:

    client mode:  OVS is the vhost client and connects to
                  <socket_dir>/<socket_ref>, created by the pod's
                  application (type=dpdkvhostuserclient).
    server mode:  OVS creates the socket in its own vhost socket
                  directory (type=dpdkvhostuser); a symlink named
                  <socket_ref> in <socket_dir> points at it.

Cleanup is scoped to the attachment: only <socket_ref> itself and
<socket_ref>.<suffix> files are touched, other pods share the directory.
"""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

from ovscni.config import settings
from ovscni.errors import FilesystemError, InvalidConfiguration
from ovscni.network.bridge import bridge_exists
from ovscni.network.cmd import ovs_vsctl_checked

logger = logging.getLogger(__name__)


VHOST_CLIENT_TYPE = "dpdkvhostuserclient"
VHOST_SERVER_TYPE = "dpdkvhostuser"


def ensure_socket_dir(socket_dir: str | Path) -> Path:
    """Create the socket directory (owner-only) if it does not exist."""
    path = Path(socket_dir)
    try:
        path.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError("create socket directory", str(path), e) from e
    return path


def _strip_ovs_value(value: str) -> str:
    """Strip the quoting ovs-vsctl puts around string column values."""
    value = value.strip()
    if value in ("[]", '""'):
        return ""
    return value.strip('"')


async def get_vswitch_socket_dir() -> Path:
    """Directory where OVS-DPDK creates server-mode vhost-user sockets.

    other_config:vhost-sock-dir is relative to the OVS run directory when
    set; the configured default is used when it is not.
    """
    value = _strip_ovs_value(await ovs_vsctl_checked(
        "--if-exists", "get", "Open_vSwitch", ".", "other_config:vhost-sock-dir",
    ))
    base = Path(settings.ovs_socket_dir)
    if not value:
        return base
    path = Path(value)
    return path if path.is_absolute() else base / path


async def create_port(
    socket_dir: str | Path,
    socket_ref: str,
    client_mode: bool,
    bridge_name: str,
) -> str:
    """Add a vhost-user port whose socket is reachable at socket_dir/socket_ref.

    Args:
        socket_dir: Shared socket directory (created if missing)
        socket_ref: Attachment socket reference, also used as port name
        client_mode: True for dpdkvhostuserclient, False for dpdkvhostuser
        bridge_name: Bridge to attach the port to

    Returns:
        The port name assigned on the vswitch

    Raises:
        InvalidConfiguration: If no bridge name is given
        VswitchOperationFailed: If ovs-vsctl add-port fails
        FilesystemError: If the socket directory or symlink cannot be created
    """
    if not bridge_name:
        raise InvalidConfiguration(f"vhost-user port {socket_ref} requires a bridge")

    sock_dir = ensure_socket_dir(socket_dir)
    port_name = socket_ref

    args = [
        "--may-exist", "add-port", bridge_name, port_name,
        "--", "set", "Interface", port_name,
        f"type={VHOST_CLIENT_TYPE if client_mode else VHOST_SERVER_TYPE}",
    ]
    if client_mode:
        args.append(f"options:vhost-server-path={sock_dir / socket_ref}")

    logger.info(
        f"Adding vhost-user port {port_name} to {bridge_name} "
        f"({'client' if client_mode else 'server'} mode)"
    )
    await ovs_vsctl_checked(*args)

    if not client_mode:
        ovs_sock_dir = await get_vswitch_socket_dir()
        _link_server_socket(ovs_sock_dir / port_name, sock_dir / socket_ref)

    return port_name


def _link_server_socket(target: Path, link: Path) -> None:
    try:
        if link.is_symlink() or link.exists():
            link.unlink()
        os.symlink(target, link)
    except OSError as e:
        raise FilesystemError("link vhost-user socket", str(link), e) from e
    logger.debug(f"Linked {link} -> {target}")


async def get_port_mac(port_name: str) -> str:
    """Query the MAC address OVS uses for a port.

    Returns:
        MAC address, or "" if OVS has not assigned one
    """
    return _strip_ovs_value(await ovs_vsctl_checked("get", "Interface", port_name, "mac_in_use"))


async def delete_port(port_name: str, bridge_name: str = "") -> None:
    """Remove a port; a port that is already gone is not an error."""
    if bridge_name and await bridge_exists(bridge_name):
        await ovs_vsctl_checked("--if-exists", "del-port", bridge_name, port_name)
    else:
        await ovs_vsctl_checked("--if-exists", "del-port", port_name)
    logger.info(f"Deleted vhost-user port {port_name}")


def is_attachment_file(name: str, socket_ref: str) -> bool:
    """True for the socket itself or a file named <socket_ref>.<suffix>.

    A plain prefix match would also hit net10 when cleaning up net1.
    """
    return name == socket_ref or name.startswith(f"{socket_ref}.")


def remove_socket_files(socket_dir: str | Path, socket_ref: str) -> int:
    """Remove every file of one attachment from the shared socket directory.

    Files belonging to other attachments are never touched, and files that
    vanish concurrently are skipped. The directory itself is removed once
    nothing is left in it.

    Returns:
        Number of files removed
    """
    path = Path(socket_dir)
    try:
        entries = list(path.iterdir())
    except FileNotFoundError:
        return 0
    except OSError as e:
        raise FilesystemError("list socket directory", str(path), e) from e

    removed = 0
    for entry in entries:
        if not is_attachment_file(entry.name, socket_ref):
            continue
        try:
            entry.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            raise FilesystemError("remove socket file", str(entry), e) from e
        removed += 1

    try:
        path.rmdir()
        logger.debug(f"Removed empty socket directory {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        # Other attachments still use the directory
        if e.errno not in (errno.ENOTEMPTY, errno.EEXIST):
            raise FilesystemError("remove socket directory", str(path), e) from e

    return removed
