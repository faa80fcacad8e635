"""Async command helpers for driving the local vswitch."""

from __future__ import annotations

import asyncio
import logging

from ovscni.config import settings
from ovscni.errors import VswitchOperationFailed

logger = logging.getLogger(__name__)


async def run_cmd(cmd: list[str]) -> tuple[int, str, str]:
    """Run a shell command asynchronously.

    Args:
        cmd: Command and arguments as list

    Returns:
        Tuple of (return_code, stdout, stderr)
    """
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return (
        process.returncode or 0,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


async def ovs_vsctl(*args: str) -> tuple[int, str, str]:
    """Run ovs-vsctl command.

    Args:
        args: Arguments to ovs-vsctl

    Returns:
        Tuple of (return_code, stdout, stderr)

    Raises:
        VswitchOperationFailed: If ovs-vsctl cannot be executed at all
    """
    cmd = [settings.ovs_vsctl, *args]
    logger.debug(f"Running: {' '.join(cmd)}")
    try:
        return await run_cmd(cmd)
    except OSError as e:
        raise VswitchOperationFailed(cmd, 127, str(e)) from e


async def ovs_vsctl_checked(*args: str) -> str:
    """Run ovs-vsctl and return stripped stdout, raising on failure."""
    code, stdout, stderr = await ovs_vsctl(*args)
    if code != 0:
        raise VswitchOperationFailed([settings.ovs_vsctl, *args], code, stderr)
    return stdout.strip()
