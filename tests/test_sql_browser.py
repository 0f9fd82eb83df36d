import socket
import threading

from core.models import SqlInstance
from probers.sql_browser import parse_browser_response, query_browser

RESPONSE = (
    "ServerName;SQL01;InstanceName;MSSQLSERVER;IsClustered;No;Version;15.0.2000.5;tcp;1433;np;\\\\SQL01\\pipe\\sql\\query;;"
    "ServerName;SQL01;InstanceName;REPORTING;IsClustered;Yes;Version;16.0.1000.6;np;\\\\SQL01\\pipe\\MSSQL$REPORTING\\sql\\query;;"
)


def test_parse_instances():
    instances = parse_browser_response(RESPONSE)
    assert len(instances) == 2
    default, named = instances
    assert default.instance_name == "MSSQLSERVER"
    assert default.tcp_port == 1433
    assert default.version == "15.0.2000.5"
    assert default.is_clustered is False
    assert named.instance_name == "REPORTING"
    assert named.tcp_port is None
    assert named.is_clustered is True
    assert named.named_pipe.endswith("\\sql\\query")


def test_parse_ignores_garbage():
    assert parse_browser_response("") == []
    assert parse_browser_response(";;;;") == []
    assert parse_browser_response("tcp;notaport;;") == []


def test_connection_target():
    assert SqlInstance(instance_name="X", tcp_port=14711).connection_target("sql01") == "sql01:14711"
    assert SqlInstance(instance_name="REPORTING").connection_target("sql01") == "sql01\\REPORTING"
    assert SqlInstance(instance_name="MSSQLSERVER").connection_target("sql01") == "sql01"


def test_query_against_udp_responder():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2)
    port = sock.getsockname()[1]
    requests = []

    def respond():
        data, addr = sock.recvfrom(16)
        requests.append(data)
        body = RESPONSE.encode("ascii")
        sock.sendto(b"\x05" + len(body).to_bytes(2, "little") + body, addr)

    t = threading.Thread(target=respond)
    t.start()
    try:
        instances = query_browser("127.0.0.1", timeout=2, port=port)
    finally:
        t.join()
        sock.close()
    assert requests == [b"\x02"]
    assert [i.instance_name for i in instances] == ["MSSQLSERVER", "REPORTING"]


def test_query_unavailable_returns_empty():
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
        s.bind(("127.0.0.1", 0))
        port = s.getsockname()[1]
    assert query_browser("127.0.0.1", timeout=0.2, port=port) == []
