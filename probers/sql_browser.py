"""
SQL Server Browser query (UDP 1434). The browser reports the configured
TCP port of each instance, which may differ from the runtime port if the
configuration changed without a service restart.
"""

import logging
import socket
from typing import List

from core.models import SqlInstance

log = logging.getLogger(__name__)

BROWSER_PORT = 1434
INSTANCE_LIST_REQUEST = b"\x02"
RESPONSE_HEADER_LEN = 3


def parse_browser_response(text: str) -> List[SqlInstance]:
    """
    ServerName;SQL01;InstanceName;INST1;IsClustered;No;Version;15.0.2000.5;tcp;1433;np;\\\\SQL01\\pipe\\sql\\query;;
    Instances are separated by ';;'.
    """
    instances: List[SqlInstance] = []
    for record in text.split(";;"):
        if not record:
            continue
        parts = record.split(";")
        fields = {}
        for i in range(0, len(parts) - 1, 2):
            fields[parts[i].lower()] = parts[i + 1]

        tcp_port = None
        if fields.get("tcp", "").isdigit():
            tcp_port = int(fields["tcp"])

        instance = SqlInstance(
            server_name=fields.get("servername") or None,
            instance_name=fields.get("instancename") or None,
            is_clustered=fields.get("isclustered", "").lower() == "yes",
            version=fields.get("version") or None,
            tcp_port=tcp_port,
            named_pipe=fields.get("np") or None,
        )
        if instance.server_name or instance.instance_name:
            instances.append(instance)
    return instances


def query_browser(host: str, timeout: float = 3.0, port: int = BROWSER_PORT) -> List[SqlInstance]:
    """Ask the browser for its instance list; empty when unavailable."""
    try:
        with socket.socket(socket.AF_INET6 if ":" in host else socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.settimeout(timeout)
            sock.connect((host, port))
            sock.send(INSTANCE_LIST_REQUEST)
            data = sock.recv(65535)
    except OSError as exc:
        log.debug("SQL Browser on %s unavailable: %s", host, exc)
        return []

    if len(data) <= RESPONSE_HEADER_LEN:
        return []
    return parse_browser_response(data[RESPONSE_HEADER_LEN:].decode("ascii", errors="ignore"))
