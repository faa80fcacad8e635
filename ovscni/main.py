"""CNI entry point.

The container runtime executes the plugin once per call, passing the
command and attachment identity in CNI_* environment variables and the
network config as JSON on stdin. The result (or a CNI error object) is
written to stdout.

Usage:
    CNI_COMMAND=ADD CNI_CONTAINERID=... CNI_IFNAME=eth1 CNI_NETNS=... \\
        ovscni < netconf.json
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
from typing import Any, Mapping, TextIO

from pydantic import ValidationError

from ovscni.errors import (
    CNI_ERR_DECODE,
    CNI_ERR_INVALID_ENV,
    CniOvsError,
    InternalError,
    InvalidConfiguration,
)
from ovscni.logging_config import setup_logging
from ovscni.orchestrator import CniOvs
from ovscni.schemas import (
    AttachmentIdentity,
    Engine,
    IPResult,
    NetConf,
    OvsSavedData,
)

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = ["0.1.0", "0.2.0", "0.3.0", "0.3.1", "0.4.0"]


def parse_netconf(raw: str) -> NetConf:
    """Decode the network config read from stdin."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InvalidConfiguration("Failed to decode network config", CNI_ERR_DECODE, str(e)) from e
    try:
        return NetConf.model_validate(data)
    except ValidationError as e:
        raise InvalidConfiguration("Invalid network config", details=str(e)) from e


def parse_identity(env: Mapping[str, str]) -> AttachmentIdentity:
    """Build the attachment identity from CNI_* environment variables."""
    container_id = env.get("CNI_CONTAINERID", "")
    if_name = env.get("CNI_IFNAME", "")
    if not container_id or not if_name:
        raise InvalidConfiguration(
            "CNI_CONTAINERID and CNI_IFNAME must be set",
            CNI_ERR_INVALID_ENV,
        )
    return AttachmentIdentity(
        container_id=container_id,
        if_name=if_name,
        netns=env.get("CNI_NETNS", ""),
    )


def build_result(
    conf: NetConf,
    identity: AttachmentIdentity,
    data: OvsSavedData,
    ip_result: IPResult,
) -> dict[str, Any]:
    """CNI result listing the host port and the container interface."""
    interfaces = [
        {"name": data.vhost_port_name, "mac": data.vhost_port_mac or ""},
        {"name": identity.if_name, "mac": data.interface_mac, "sandbox": identity.netns},
    ]

    ips = []
    for ip in ip_result.ips:
        entry = ip.model_dump(exclude_none=True)
        # IPs belong to the container interface unless a previous plugin said otherwise
        entry.setdefault("interface", 1)
        ips.append(entry)

    return {
        "cniVersion": conf.cni_version,
        "interfaces": interfaces,
        "ips": ips,
        "routes": [route.model_dump(exclude_none=True) for route in ip_result.routes],
        "dns": ip_result.dns.model_dump(exclude_none=True),
    }


def _check_engine(conf: NetConf) -> None:
    if conf.host.engine != Engine.OVS_DPDK.value:
        raise InvalidConfiguration(f"Unsupported host engine: {conf.host.engine!r}")


async def cmd_add(cni: CniOvs, conf: NetConf, identity: AttachmentIdentity) -> dict[str, Any]:
    _check_engine(conf)
    ip_result = conf.prev_result or IPResult()

    data = await cni.add_on_host(conf, identity, ip_result)
    await cni.add_on_container(conf, identity, ip_result)

    return build_result(conf, identity, data, ip_result)


async def cmd_del(cni: CniOvs, conf: NetConf, identity: AttachmentIdentity) -> None:
    """Remove both sides of the attachment.

    The container-side record is cleaned up even when host cleanup fails,
    the host error is still reported so the runtime retries DEL.
    """
    _check_engine(conf)
    try:
        await cni.del_from_host(conf, identity)
    finally:
        await cni.del_from_container(conf, identity)


def version_result() -> dict[str, Any]:
    return {"cniVersion": SUPPORTED_VERSIONS[-1], "supportedVersions": SUPPORTED_VERSIONS}


def error_result(error: CniOvsError, cni_version: str) -> dict[str, Any]:
    """CNI error object, in the version the runtime asked for when known."""
    return {
        "cniVersion": cni_version,
        "code": error.code,
        "msg": error.message,
        "details": error.details,
    }


async def run(
    command: str,
    env: Mapping[str, str],
    conf: NetConf,
    cni: CniOvs | None = None,
) -> dict[str, Any] | None:
    """Dispatch one ADD or DEL command.

    Returns:
        The JSON object to print, or None when nothing is printed
    """
    identity = parse_identity(env)
    cni = cni or CniOvs()

    logger.info(f"{command} {conf.name} for {identity.key}")

    if command == "ADD":
        return await cmd_add(cni, conf, identity)
    if command == "DEL":
        await cmd_del(cni, conf, identity)
        return None

    raise InvalidConfiguration(f"Unsupported CNI_COMMAND: {command!r}", CNI_ERR_INVALID_ENV)


def main(
    env: Mapping[str, str] | None = None,
    stdin: TextIO | None = None,
    stdout: TextIO | None = None,
) -> int:
    """Run the plugin and return the process exit status."""
    env = os.environ if env is None else env
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout

    command = env.get("CNI_COMMAND", "")
    if command == "VERSION":
        json.dump(version_result(), stdout)
        return 0

    # Errors before the config is decoded are reported in the newest version
    cni_version = SUPPORTED_VERSIONS[-1]
    try:
        conf = parse_netconf(stdin.read())
        cni_version = conf.cni_version or cni_version
        setup_logging(
            container_id=env.get("CNI_CONTAINERID", ""),
            log_file=conf.log_file or None,
            log_level=conf.log_level or None,
        )
        result = asyncio.run(run(command, env, conf))
    except CniOvsError as e:
        logger.error(f"{command} failed: {e.message} {e.details}".rstrip())
        json.dump(error_result(e, cni_version), stdout)
        return 1
    except Exception as e:
        logger.exception(f"{command} failed with an unexpected error")
        json.dump(error_result(InternalError(e), cni_version), stdout)
        return 1

    if result is not None:
        json.dump(result, stdout)
    return 0
