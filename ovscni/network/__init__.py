"""Vswitch control for vhost-user attachments.

This module provides the host-side pieces the orchestrator sequences:
- Bridge lifecycle (ensure on ADD, release when empty on DEL)
- vhost-user port provisioning and socket-file cleanup
"""

from ovscni.network.bridge import (
    ensure_bridge,
    release_bridge_if_empty,
)
from ovscni.network.vhost import (
    create_port,
    delete_port,
    get_port_mac,
    remove_socket_files,
)

__all__ = [
    # Bridge lifecycle
    "ensure_bridge",
    "release_bridge_if_empty",
    # vhost-user ports
    "create_port",
    "delete_port",
    "get_port_mac",
    "remove_socket_files",
]
