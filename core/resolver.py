"""
One-shot address resolution. A scan resolves its target once and hands the
resulting address to every probe, so no probe performs its own lookup.
"""

import ipaddress
import logging
import socket
from typing import Union

log = logging.getLogger(__name__)

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


class ResolutionError(ValueError):
    def __init__(self, host: str, reason: str = "could not resolve"):
        self.host = host
        super().__init__(f"{reason}: {host!r}")


def resolve(host: str) -> IPAddress:
    host = (host or "").strip()
    if not host:
        raise ResolutionError(host, "empty target")

    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass

    try:
        infos = socket.getaddrinfo(host, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise ResolutionError(host, f"DNS resolution failed ({exc})") from exc

    addrs = []
    for info in infos:
        try:
            addrs.append(ipaddress.ip_address(info[4][0]))
        except ValueError:
            # scoped IPv6 like fe80::1%eth0
            continue
    if not addrs:
        raise ResolutionError(host, "no addresses returned")

    for addr in addrs:
        if addr.version == 4:
            return addr
    return addrs[0]
