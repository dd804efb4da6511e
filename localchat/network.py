"""Network helpers for the chat server.

This module covers the two places the server cares about addresses:

    - Normalizing a peer address before it becomes part of an identity
      (IPv4-mapped IPv6 addresses such as ``::ffff:10.0.0.5`` are reported
      as plain IPv4).
    - Discovering a LAN address for the startup banner so other machines on
      the same network know where to connect.

Usage:
    from localchat.network import get_local_ip, normalize_address

    normalize_address("::ffff:10.0.0.5")  # "10.0.0.5"
    get_local_ip()                        # "192.168.1.20" or "localhost"
"""
import logging
import socket
from typing import Optional

import psutil

logger = logging.getLogger(__name__)

IPV4_MAPPED_PREFIX = "::ffff:"

UNKNOWN_ADDRESS = "unknown"


def normalize_address(address: Optional[str]) -> str:
    """Strip the IPv4-mapped IPv6 prefix from a peer address.

    Args:
        address: Raw peer host as reported by the transport. May be None when
            the ASGI server does not expose the client address.

    Returns:
        The normalized address, or "unknown" when no address is available.
    """
    if not address:
        return UNKNOWN_ADDRESS
    if address.lower().startswith(IPV4_MAPPED_PREFIX):
        return address[len(IPV4_MAPPED_PREFIX):]
    return address


def get_local_ip() -> str:
    """Return the first external IPv4 address of this machine.

    Interfaces are walked in the order the OS reports them; loopback and
    link-local addresses are skipped.

    Returns:
        An IPv4 address string, or "localhost" if no usable interface exists.
    """
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, RuntimeError) as e:
        logger.warning(f"[Network] Could not enumerate interfaces: {e}")
        return "localhost"

    for name, addresses in interfaces.items():
        for addr in addresses:
            if addr.family != socket.AF_INET:
                continue
            if addr.address.startswith("127.") or addr.address.startswith("169.254."):
                continue
            logger.debug(f"[Network] Using {addr.address} from interface {name}")
            return addr.address

    return "localhost"
