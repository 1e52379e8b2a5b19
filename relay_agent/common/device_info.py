"""
Device Identity

Resolves the identifier the agent reports to the command endpoint.
"""

import platform
import socket
import uuid

# uuid.getnode() sets the multicast bit when it falls back to a random value
_RANDOM_NODE_BIT = 1 << 40


def get_hostname() -> str | None:
    """Host network name, or None if unavailable"""
    try:
        name = socket.gethostname().strip()
    except OSError:
        return None
    return name or None


def get_mac_address() -> str | None:
    """
    First hardware address of the host, lowercase hex without separators.

    Returns None when no real address is available (all zeros or a
    randomly generated node id).
    """
    node = uuid.getnode()
    if node == 0 or node & _RANDOM_NODE_BIT:
        return None
    return f"{node:012x}"


def resolve_device_id(configured: str | None = None, source: str = "hostname") -> str | None:
    """
    Resolve the device identity.

    Args:
        configured: Explicit identity from configuration; wins when non-empty
        source: Fallback source, "hostname" or "mac"

    Returns:
        The identity, or None if nothing could be resolved
    """
    if configured and configured.strip():
        return configured.strip()

    if source == "mac":
        return get_mac_address()
    return get_hostname()


def get_device_info() -> dict:
    """Summary of the host, used in the startup banner and health endpoint"""
    return {
        "hostname": get_hostname(),
        "mac_address": get_mac_address(),
        "platform": platform.system().lower(),
        "arch": platform.machine(),
        "release": platform.release(),
    }
