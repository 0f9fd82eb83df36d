"""
Scope enforcement: when an allowlist is enforced, the target name and its
resolved address must fall within allowlisted CIDRs/domains before any
probe leaves the host.
"""

import ipaddress
from typing import Iterable, Optional

from .config import Settings, settings


def _cidr_match(ip: str, cidrs: Iterable[str]) -> bool:
    try:
        ip_obj = ipaddress.ip_address(ip)
    except ValueError:
        return False
    for cidr in cidrs:
        try:
            if ip_obj in ipaddress.ip_network(cidr, strict=False):
                return True
        except ValueError:
            continue
    return False


def _domain_match(host: str, domains: Iterable[str]) -> bool:
    host = host.lower().rstrip(".")
    for d in domains:
        d = d.lower().rstrip(".")
        if host == d or host.endswith("." + d):
            return True
    return False


def is_authorized_target(target: str, ip: str, cfg: Optional[Settings] = None) -> bool:
    """
    Validate a target against the allowlist using the address the scan
    already resolved. Always true when enforcement is off.
    """
    cfg = cfg or settings
    if not cfg.enforce_allowlist:
        return True

    cidrs = cfg.allowlist_cidrs
    domains = cfg.allowlist_domains
    if not cidrs and not domains:
        return False  # enforcement without an allowlist blocks everything

    if _domain_match(target, domains):
        if cidrs:
            return _cidr_match(ip, cidrs)
        return True
    return _cidr_match(ip, cidrs)
