import json
import socket

import pytest

from cli import main as cli_main
from core import resolver
from core.config import Settings
from core.models import ScanResult
from core.state import StateManager
from pipeline.orchestrator import Orchestrator


def _no_hits_orchestrator(calls):
    async def probe(ip, port, timeouts, stop):
        calls.append(port)
        return None

    return lambda: Orchestrator(settings=Settings(), probe=probe, state=StateManager())


def test_dns_failure_exits_with_could_not_scan(monkeypatch, capsys):
    def fake(*args, **kwargs):
        raise socket.gaierror(socket.EAI_NONAME, "Name or service not known")

    calls = []
    monkeypatch.setattr(resolver.socket, "getaddrinfo", fake)
    monkeypatch.setattr(cli_main, "Orchestrator", _no_hits_orchestrator(calls))

    with pytest.raises(SystemExit) as exc_info:
        cli_main.main(["scan", "sql.nowhere.invalid", "--known-only"])
    assert exc_info.value.code == 2
    err = capsys.readouterr().err
    assert "could not scan" in err
    assert "sql.nowhere.invalid" in err
    assert calls == []


def test_empty_scan_is_not_an_error(monkeypatch, capsys):
    calls = []
    monkeypatch.setattr(cli_main, "Orchestrator", _no_hits_orchestrator(calls))

    cli_main.main(["scan", "127.0.0.1", "--known-only", "--parallelism", "2"])
    out = json.loads(capsys.readouterr().out)
    assert out["results"] == []
    assert out["ip"] == "127.0.0.1"
    assert sorted(calls) == [1433, 14711, 14712]


def test_known_only_passes_parallelism(monkeypatch):
    seen = {}

    class Recorder(Orchestrator):
        async def scan(self, target, **kwargs):
            seen.update(kwargs)
            return await super().scan(target, **kwargs)

    async def probe(ip, port, timeouts, stop):
        return ScanResult(port=port, is_tds=True, response_info="TDS 0x12") if port == 1433 else None

    monkeypatch.setattr(cli_main, "Orchestrator", lambda: Recorder(settings=Settings(), probe=probe, state=StateManager()))
    cli_main.main(["scan", "127.0.0.1", "--known-only", "--parallelism", "7"])
    assert seen["max_parallelism"] == 7
    assert seen["stop_on_first"] is False
