"""Attachment lifecycle for OVS-DPDK vhost-user networks.

The CNI entry point calls these four operations once per pod network
attachment:

    ADD  → add_on_host       Ensure bridge, create vhost-user port, save record
         → add_on_container  Record the container-side config for the pod agent
    DEL  → del_from_host     Load record, delete port and sockets, release bridge
         → del_from_container Drop the container-side config

The host side keeps no in-process state. Everything DEL must undo comes
from the record saved at the end of a successful ADD; if ADD fails half
way, whatever it created stays until an operator cleans it up.
"""

from __future__ import annotations

import logging
import secrets
from pathlib import Path

from ovscni.config import settings
from ovscni.errors import CniOvsError, UnsupportedInterfaceType, VswitchOperationFailed
from ovscni.network import bridge, vhost
from ovscni.schemas import (
    AttachmentIdentity,
    IfType,
    IPResult,
    NetConf,
    OvsSavedData,
    RemoteConfigRecord,
    normalize_host_conf,
)
from ovscni.store import RemoteConfigStore, SavedAttachmentStore

logger = logging.getLogger(__name__)


def generate_random_mac() -> str:
    """Random locally administered unicast MAC address."""
    buf = bytearray(secrets.token_bytes(6))
    # Set the local bit and make sure not MC address
    buf[0] = (buf[0] | 0x02) & 0xFE
    return ":".join(f"{b:02x}" for b in buf)


def log_context(identity: AttachmentIdentity, **fields: str) -> dict[str, str]:
    """Attachment fields for the ``extra`` of a log call."""
    context = {
        "container_id": identity.container_id,
        "if_name": identity.if_name,
        "socket_ref": identity.socket_ref,
    }
    context.update(fields)
    return context


class CniOvs:
    """Host and container side attachment operations for OVS-DPDK.

    Usage:
        cni = CniOvs()
        await cni.add_on_host(conf, identity, ip_result)
        await cni.add_on_container(conf, identity, ip_result)
        ...
        await cni.del_from_host(conf, identity)
        await cni.del_from_container(conf, identity)
    """

    def __init__(
        self,
        saved_store: SavedAttachmentStore | None = None,
        remote_store: RemoteConfigStore | None = None,
        socket_dir: str | Path | None = None,
    ):
        self.saved_store = saved_store or SavedAttachmentStore()
        self.remote_store = remote_store or RemoteConfigStore()
        self.socket_dir = Path(socket_dir or settings.socket_dir)

    async def add_on_host(
        self,
        conf: NetConf,
        identity: AttachmentIdentity,
        ip_result: IPResult | None = None,
    ) -> OvsSavedData:
        """Provision the bridge and vhost-user port for an attachment.

        Args:
            conf: Network configuration
            identity: Container ID and interface name
            ip_result: IP assignment; not applied on the host side

        Returns:
            The saved record

        Raises:
            UnsupportedInterfaceType: If host iftype is not vhostuser
            VswitchOperationFailed: If a bridge or port operation fails
            FilesystemError: If the socket directory or record cannot be written
        """
        logger.debug(f"OVS AddOnHost: {identity.key}")

        # Checked first so an unsupported request leaves nothing behind
        if conf.host.if_type != IfType.VHOSTUSER.value:
            raise UnsupportedInterfaceType(conf.host.if_type)

        host = normalize_host_conf(conf.host, settings.default_bridge)
        bridge_name = host.bridge.bridge_name
        data = OvsSavedData(if_type=host.if_type, bridge_name=bridge_name)

        await bridge.ensure_bridge(bridge_name)

        data.vhost_port_name = await vhost.create_port(
            self.socket_dir,
            identity.socket_ref,
            host.client_mode,
            bridge_name,
        )
        try:
            data.vhost_port_mac = await vhost.get_port_mac(data.vhost_port_name) or None
        except VswitchOperationFailed as e:
            # The port works without it; DEL does not need it
            logger.warning(
                f"Could not read MAC of port {data.vhost_port_name}: {e}",
                extra=log_context(identity, bridge=bridge_name, port=data.vhost_port_name),
            )
        data.interface_mac = generate_random_mac()

        await self.saved_store.save_config(identity, data)

        logger.info(
            f"Attached {identity.socket_ref} to bridge {bridge_name} "
            f"(port {data.vhost_port_name}, mac {data.interface_mac})",
            extra=log_context(identity, bridge=bridge_name, port=data.vhost_port_name),
        )
        return data

    async def add_on_container(
        self,
        conf: NetConf,
        identity: AttachmentIdentity,
        ip_result: IPResult | None = None,
    ) -> RemoteConfigRecord:
        """Record the container-side config for the in-pod agent."""
        logger.debug(f"OVS AddOnContainer: {identity.key}")

        record = RemoteConfigRecord(
            container_id=identity.container_id,
            if_name=identity.if_name,
            name=conf.name,
            config=conf.container,
            ip_result=ip_result or IPResult(),
            socket_ref=identity.socket_ref,
            socket_dir=str(self.socket_dir),
        )
        await self.remote_store.save_remote_config(identity, record)
        return record

    async def del_from_host(self, conf: NetConf, identity: AttachmentIdentity) -> OvsSavedData:
        """Undo add_on_host using the record it saved.

        Safe to retry: the record is only erased once every step succeeded,
        and every step tolerates its target being gone already.

        Raises:
            ConfigNotFound: If no record was saved for this attachment
            UnsupportedInterfaceType: If the record names an unknown iftype
            VswitchOperationFailed: If a port or bridge operation fails
            FilesystemError: If socket files cannot be removed
        """
        logger.debug(f"OVS DelFromHost: {identity.key}")

        data = await self.saved_store.load_config(identity)

        host = normalize_host_conf(conf.host, settings.default_bridge)
        bridge_name = data.bridge_name or host.bridge.bridge_name
        if_type = data.if_type or host.if_type

        if if_type != IfType.VHOSTUSER.value:
            raise UnsupportedInterfaceType(if_type)

        await vhost.delete_port(data.vhost_port_name, bridge_name)
        removed = vhost.remove_socket_files(self.socket_dir, identity.socket_ref)
        logger.debug(f"Removed {removed} socket files for {identity.socket_ref}")

        await bridge.release_bridge_if_empty(bridge_name)

        await self.saved_store.delete_config(identity)

        logger.info(
            f"Detached {identity.socket_ref} from bridge {bridge_name}",
            extra=log_context(identity, bridge=bridge_name, port=data.vhost_port_name),
        )
        return data

    async def del_from_container(self, conf: NetConf, identity: AttachmentIdentity) -> None:
        """Drop the container-side config. Never fails."""
        logger.debug(f"OVS DelFromContainer: {identity.key}")

        try:
            await self.remote_store.cleanup_remote_config(identity)
        except CniOvsError as e:
            # Pod teardown must not block on the container-side record
            logger.warning(
                f"Failed to clean up remote config for {identity.key}: {e}",
                extra=log_context(identity),
            )
