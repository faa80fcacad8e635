"""Plugin configuration."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Plugin settings loaded from environment variables."""

    # Shared directory mapped into pods; vhost-user sockets live here
    socket_dir: str = "/var/lib/cni/usrspcni/"

    # Saved attachment data and remote container configs
    data_dir: str = "/var/lib/cni/usrspcni/data"

    # Per-attachment lock files (tmpfs, cleared on reboot)
    lock_dir: str = "/run/usrspcni/locks"
    lock_acquire_timeout: float = 30.0

    # OVS settings
    ovs_vsctl: str = "ovs-vsctl"
    default_bridge: str = "br0"
    bridge_datapath_type: str = "netdev"
    # Where OVS-DPDK creates server-mode sockets if other_config:vhost-sock-dir is unset
    ovs_socket_dir: str = "/usr/local/var/run/openvswitch"

    # Logging configuration
    # stdout carries the CNI result, so logs go to stderr unless log_file is set
    log_format: str = "text"  # "json" or "text"
    log_level: str = "INFO"
    log_file: str = ""

    class Config:
        env_prefix = "OVSCNI_"


settings = Settings()
