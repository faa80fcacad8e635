"""Bridge lifecycle on the local vswitch.

Bridges are shared by every attachment naming them and carry no
reference counter: whether a bridge is still needed is decided by asking
the vswitch if any interface is attached. Creation and deletion use the
ovs-vsctl --may-exist / --if-exists flags so two plugin processes racing
on the same bridge both succeed.
"""

from __future__ import annotations

import logging

from ovscni.config import settings
from ovscni.errors import VswitchOperationFailed
from ovscni.network.cmd import ovs_vsctl, ovs_vsctl_checked

logger = logging.getLogger(__name__)

# ovs-vsctl br-exists exit status when the bridge is missing
BR_NOT_FOUND = 2


async def bridge_exists(name: str) -> bool:
    """Check whether a bridge exists on the vswitch.

    Raises:
        VswitchOperationFailed: On any exit status other than found/not found
    """
    code, _, stderr = await ovs_vsctl("br-exists", name)
    if code == 0:
        return True
    if code == BR_NOT_FOUND:
        return False
    raise VswitchOperationFailed([settings.ovs_vsctl, "br-exists", name], code, stderr)


async def create_bridge(name: str) -> None:
    """Create a userspace (netdev datapath) bridge."""
    await ovs_vsctl_checked(
        "--may-exist", "add-br", name,
        "--", "set", "bridge", name, f"datapath_type={settings.bridge_datapath_type}",
    )


async def delete_bridge(name: str) -> None:
    await ovs_vsctl_checked("--if-exists", "del-br", name)


async def bridge_interfaces(name: str) -> list[str]:
    """List interfaces attached to a bridge, excluding its internal port."""
    stdout = await ovs_vsctl_checked("list-ifaces", name)
    return [line.strip() for line in stdout.splitlines() if line.strip()]


async def ensure_bridge(name: str) -> None:
    """Create the bridge only if it does not exist yet.

    Safe to call multiple times - idempotent.
    """
    if await bridge_exists(name):
        logger.debug(f"OVS bridge {name} already exists")
        return

    logger.info(f"Creating OVS bridge: {name}")
    await create_bridge(name)


async def release_bridge_if_empty(name: str) -> bool:
    """Delete the bridge if no interface is attached to it anymore.

    A bridge that is already gone counts as released.

    Returns:
        True if the bridge was deleted (or already absent)
    """
    if not await bridge_exists(name):
        logger.debug(f"OVS bridge {name} already removed")
        return True

    try:
        interfaces = await bridge_interfaces(name)
    except VswitchOperationFailed:
        # Another DEL may have removed the bridge since the existence check
        if not await bridge_exists(name):
            return True
        raise

    if interfaces:
        logger.debug(f"OVS bridge {name} still has {len(interfaces)} interfaces, keeping it")
        return False

    logger.info(f"Deleting empty OVS bridge: {name}")
    await delete_bridge(name)
    return True
