"""Best-effort local network address lookup via psutil."""

import logging
import socket

import psutil

logger = logging.getLogger(__name__)

UNKNOWN_ADDRESS = "Unknown"
PREFERRED_INTERFACES = ("en0", "wlan0", "eth0")


def resolve_local_address(interface: str = "") -> str:
    """Return an IPv4 address other devices can reach, or "Unknown".

    Tries the named interface first, then the usual Wi-Fi/Ethernet names,
    then any non-loopback interface. Never raises.
    """
    try:
        addrs = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        logger.debug("Could not list network interfaces: %s", e)
        return UNKNOWN_ADDRESS

    ipv4: dict[str, str] = {}
    for name, entries in addrs.items():
        for entry in entries:
            if entry.family == socket.AF_INET and entry.address:
                ipv4.setdefault(name, entry.address)
                break

    candidates = [interface] if interface else []
    candidates.extend(PREFERRED_INTERFACES)
    for name in candidates:
        if name in ipv4:
            return ipv4[name]

    for name, address in ipv4.items():
        if not address.startswith("127."):
            return address
    return UNKNOWN_ADDRESS
