"""CNI network configuration and attachment state schemas.

These Pydantic models describe the network config the CNI runtime hands
the plugin on stdin, the identity of one attachment, and the records the
plugin persists between ADD and DEL.
"""

from enum import Enum

from pydantic import BaseModel, Field


DEFAULT_BRIDGE = "br0"


class NetType(str, Enum):
    """How the host-side port is wired into the vswitch."""
    BRIDGE = "bridge"
    INTERFACE = "interface"


class IfType(str, Enum):
    """Dataplane interface technologies this plugin provisions."""
    VHOSTUSER = "vhostuser"


class VhostMode(str, Enum):
    """Which side of the vhost-user socket the vswitch plays."""
    CLIENT = "client"
    SERVER = "server"


class Engine(str, Enum):
    """Userspace vswitch engines this plugin drives."""
    OVS_DPDK = "ovs-dpdk"


# --- Network configuration ---

class VhostConf(BaseModel):
    mode: str = ""


class BridgeConf(BaseModel):
    bridge_name: str = Field(default="", alias="bridgeName")
    bridge_id: int = Field(default=0, alias="bridgeId")
    vlan_id: int = Field(default=0, alias="vlanId")

    class Config:
        populate_by_name = True


class UserSpaceConf(BaseModel):
    """Host or container side of a userspace network.

    iftype and netType are kept as plain strings: unknown values must
    reach the orchestrator so it can reject or coerce them itself.
    """
    engine: str = ""
    if_type: str = Field(default="", alias="iftype")
    net_type: str = Field(default="", alias="netType")
    vhost: VhostConf = Field(default_factory=VhostConf)
    bridge: BridgeConf = Field(default_factory=BridgeConf)

    class Config:
        populate_by_name = True

    @property
    def client_mode(self) -> bool:
        """True when the vswitch connects to a socket owned by the container."""
        return self.vhost.mode == VhostMode.CLIENT.value


class IPConfig(BaseModel):
    address: str  # CIDR, e.g. "10.1.1.5/24"
    gateway: str | None = None
    interface: int | None = None
    version: str | None = None  # Only present in pre-0.3.0 results


class Route(BaseModel):
    dst: str
    gw: str | None = None


class DNS(BaseModel):
    nameservers: list[str] = Field(default_factory=list)
    domain: str | None = None
    search: list[str] = Field(default_factory=list)
    options: list[str] = Field(default_factory=list)


class IPResult(BaseModel):
    """IP assignment computed elsewhere (IPAM or a previous plugin)."""
    cni_version: str = Field(default="", alias="cniVersion")
    ips: list[IPConfig] = Field(default_factory=list)
    routes: list[Route] = Field(default_factory=list)
    dns: DNS = Field(default_factory=DNS)

    class Config:
        populate_by_name = True


class NetConf(BaseModel):
    """Network configuration passed on stdin by the CNI runtime."""
    cni_version: str = Field(default="0.3.1", alias="cniVersion")
    name: str = ""
    type: str = ""
    log_file: str = Field(default="", alias="logFile")
    log_level: str = Field(default="", alias="logLevel")
    host: UserSpaceConf = Field(default_factory=UserSpaceConf)
    container: UserSpaceConf = Field(default_factory=UserSpaceConf)
    prev_result: IPResult | None = Field(default=None, alias="prevResult")

    class Config:
        populate_by_name = True


def normalize_host_conf(host: UserSpaceConf, default_bridge: str = DEFAULT_BRIDGE) -> UserSpaceConf:
    """Resolve the bridge a host-side port attaches to.

    ovs-vsctl add-port always needs a bridge, so any netType other than
    "bridge" is coerced onto the default bridge instead of failing. A
    "bridge" network without a name also lands on the default bridge.
    Returns a new object; the caller's config is left untouched so ADD
    and DEL resolve the same bridge from their own copies.
    """
    if host.net_type != NetType.BRIDGE.value:
        return host.model_copy(update={
            "net_type": NetType.BRIDGE.value,
            "bridge": host.bridge.model_copy(update={"bridge_name": default_bridge}),
        })
    if not host.bridge.bridge_name:
        return host.model_copy(update={
            "bridge": host.bridge.model_copy(update={"bridge_name": default_bridge}),
        })
    return host


# --- Attachment identity and persisted records ---

class AttachmentIdentity(BaseModel):
    """Correlates the ADD and DEL calls of one pod interface."""
    container_id: str = Field(min_length=1)
    if_name: str = Field(min_length=1)
    netns: str = ""

    @property
    def socket_ref(self) -> str:
        """Socket file prefix shared by every file of this attachment."""
        return f"{self.container_id[:12]}-{self.if_name}"

    @property
    def key(self) -> str:
        """Unique key for persisted records."""
        return f"{self.container_id}-{self.if_name}"


class OvsSavedData(BaseModel):
    """What AddOnHost created, so DelFromHost can undo exactly that."""
    vhost_port_name: str = Field(default="", alias="vhostPortName")
    interface_mac: str = Field(default="", alias="interfaceMac")
    vhost_port_mac: str | None = Field(default=None, alias="vhostPortMac")
    bridge_name: str = Field(default="", alias="bridgeName")
    if_type: str = Field(default="", alias="ifType")

    class Config:
        populate_by_name = True


class RemoteConfigRecord(BaseModel):
    """Container-side config picked up by the in-pod agent."""
    container_id: str = Field(alias="containerId")
    if_name: str = Field(alias="ifName")
    name: str = ""
    config: UserSpaceConf = Field(default_factory=UserSpaceConf)
    ip_result: IPResult = Field(default_factory=IPResult, alias="ipResult")
    socket_ref: str = Field(default="", alias="socketRef")
    socket_dir: str = Field(default="", alias="socketDir")

    class Config:
        populate_by_name = True
