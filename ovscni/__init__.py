"""OVS-DPDK vhost-user attachment manager for the userspace CNI plugin."""

from ovscni.version import __version__

__all__ = ["__version__"]
