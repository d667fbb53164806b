"""Wake-on-LAN for TVs that drop their remote service in standby."""

import logging
import re
import socket
from typing import List, Optional

_LOGGER = logging.getLogger(__name__)

MAC_RE = re.compile(r"^([0-9A-Fa-f]{2}[:-]?){5}[0-9A-Fa-f]{2}$")
WOL_PORTS = (9, 7)


def normalize_mac(mac_address: str) -> str:
    """Return a MAC address as AA:BB:CC:DD:EE:FF.

    Raises:
        ValueError: Not a 48-bit MAC address
    """
    if not mac_address or not MAC_RE.match(mac_address.strip()):
        raise ValueError(f"Invalid MAC address: {mac_address}")
    digits = mac_address.strip().upper().replace(":", "").replace("-", "")
    return ":".join(digits[i:i + 2] for i in range(0, 12, 2))


def create_magic_packet(mac_address: str) -> bytes:
    """Build a magic packet: 6 x 0xFF followed by the MAC repeated 16 times."""
    mac_bytes = bytes.fromhex(normalize_mac(mac_address).replace(":", ""))
    return b"\xff" * 6 + mac_bytes * 16


def send_wol(mac_address: str, broadcast: str = "255.255.255.255", port: int = 9) -> bool:
    """Send one magic packet.

    Returns:
        True if the packet left the socket
    """
    packet = create_magic_packet(mac_address)
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            sock.sendto(packet, (broadcast, port))
    except OSError as e:
        _LOGGER.warning("WoL send to %s:%d failed: %s", broadcast, port, e)
        return False
    return True


def broadcast_addresses(host: Optional[str] = None) -> List[str]:
    """Limited broadcast plus the /24 broadcast of ``host`` when it is an IPv4 address."""
    addresses = ["255.255.255.255"]
    if host:
        parts = host.split(".")
        if len(parts) == 4 and all(p.isdigit() for p in parts):
            addresses.append(".".join(parts[:3] + ["255"]))
    return addresses


def wake_tv(mac_address: str, host: Optional[str] = None) -> bool:
    """Wake a TV, sending to every broadcast address on ports 9 and 7.

    Raises:
        ValueError: Invalid MAC address

    Returns:
        True if at least one packet was sent
    """
    mac = normalize_mac(mac_address)
    sent = False
    for address in broadcast_addresses(host):
        for port in WOL_PORTS:
            if send_wol(mac, address, port):
                sent = True
    _LOGGER.info("Sent WoL to %s (%s)", mac, "ok" if sent else "failed")
    return sent
