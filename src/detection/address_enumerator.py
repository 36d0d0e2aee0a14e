"""
Scan range expansion and priority address selection
"""

import ipaddress
import logging
from typing import List, Optional, Sequence

from .exceptions import ScanRangeError

logger = logging.getLogger(__name__)

SUPPORTED_PREFIXES = (24, 16)

# {base} expands to the first three octets of the scan range
DEFAULT_PRIORITY_TABLE = [
    "192.168.88.1",  # factory default
    "{base}.1",
    "{base}.254",
    "192.168.1.1",
    "192.168.0.1",
    "10.0.0.1",
    "172.16.0.1",
    "{base}.2",
    "{base}.10",
]


def parse_scan_range(cidr: str) -> ipaddress.IPv4Network:
    """Parse and validate a /24 or /16 CIDR, host bits ignored"""
    if not isinstance(cidr, str) or '/' not in cidr:
        raise ScanRangeError(f"Invalid scan range {cidr!r}: expected a.b.c.d/mask")

    try:
        network = ipaddress.IPv4Network(cidr.strip(), strict=False)
    except ValueError as e:
        raise ScanRangeError(f"Invalid scan range {cidr!r}: {e}") from e

    if network.prefixlen not in SUPPORTED_PREFIXES:
        raise ScanRangeError(
            f"Unsupported scan range {cidr!r}: only /24 and /16 networks can be scanned"
        )
    return network


def generate_ip_range(cidr: str) -> List[str]:
    """
    Expand a CIDR into scan candidates, host number ascending.
    Octets 0 and 255 are skipped, so a /16 yields 254 * 254 addresses.
    """
    network = parse_scan_range(cidr)
    a, b, c, _ = network.network_address.packed

    if network.prefixlen == 24:
        return [f"{a}.{b}.{c}.{host}" for host in range(1, 255)]

    logger.warning(f"Scan range {cidr} is a /16: {254 * 254} addresses will be probed")
    return [
        f"{a}.{b}.{third}.{host}"
        for third in range(1, 255)
        for host in range(1, 255)
    ]


def expand_priority_entry(template: str, base: str) -> str:
    """Fill {base} into one priority table entry; the result must be a dotted-quad"""
    try:
        address = template.format(base=base)
        ipaddress.IPv4Address(address)
    except (AttributeError, KeyError, IndexError, ValueError) as e:
        raise ScanRangeError(f"Invalid priority address entry {template!r}: {e!r}") from e
    return address


def get_priority_ips(scan_range: str, table: Optional[Sequence[str]] = None) -> List[str]:
    """Assumed gateways for the range plus well-known defaults, deduplicated in order"""
    network = parse_scan_range(scan_range)
    base = '.'.join(str(octet) for octet in network.network_address.packed[:3])

    priority_ips = []
    seen = set()
    for template in (table if table is not None else DEFAULT_PRIORITY_TABLE):
        ip = expand_priority_entry(template, base)
        if ip in seen:
            continue
        seen.add(ip)
        priority_ips.append(ip)
    return priority_ips


def address_in_range(address: str, scan_range: str) -> bool:
    try:
        return ipaddress.IPv4Address(address) in parse_scan_range(scan_range)
    except (ScanRangeError, ValueError):
        return False
