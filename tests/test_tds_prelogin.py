import asyncio
import socket
import struct

import pytest

from policy.adaptive_timeout import AdaptiveTimeout
from probers import tds_prelogin
from probers.tds_prelogin import PRELOGIN_PACKET, classify_response, probe_port

PRELOGIN_REPLY = bytes([0x12, 0x01, 0x00, 0x25, 0x00, 0x00, 0x01, 0x00]) + b"\x00" * 29


def test_packet_layout():
    assert len(PRELOGIN_PACKET) == 47
    ptype, status, length, spid, packet_id, window = struct.unpack(">BBHHBB", PRELOGIN_PACKET[:8])
    assert (ptype, status, spid, packet_id, window) == (0x12, 0x01, 0, 1, 0)
    assert length == len(PRELOGIN_PACKET)

    options = []
    pos = 8
    while PRELOGIN_PACKET[pos] != 0xFF:
        options.append(struct.unpack(">BHH", PRELOGIN_PACKET[pos : pos + 5]))
        pos += 5
    assert options == [(0x00, 21, 6), (0x01, 27, 1), (0x02, 28, 1), (0x03, 29, 4), (0x04, 33, 1)]
    assert pos == 33

    assert PRELOGIN_PACKET[34:40] == b"\x00" * 6
    assert PRELOGIN_PACKET[40] == 0x02
    assert PRELOGIN_PACKET[41] == 0x00
    assert PRELOGIN_PACKET[42:46] == b"\x00" * 4
    assert PRELOGIN_PACKET[46] == 0x00


@pytest.mark.parametrize("first", [0x12, 0x04])
def test_classify_tds(first):
    result = classify_response(1433, bytes([first, 0x01, 0x00, 0x08]))
    assert result is not None
    assert result.port == 1433
    assert result.is_tds is True
    assert result.response_info == f"TDS 0x{first:02X}"


@pytest.mark.parametrize("data", [b"", b"\x00", b"HTTP/1.1", b"\x05\x00", b"SSH-2.0-"])
def test_classify_not_tds(data):
    assert classify_response(1433, data) is None


def _free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


async def _probe_against(handler, timeout_ms=1000):
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    timeouts = AdaptiveTimeout(timeout_ms)
    try:
        result = await probe_port("127.0.0.1", port, timeouts)
    finally:
        server.close()
        await server.wait_closed()
    return port, result, timeouts


async def _tds_handler(reader, writer):
    request = await reader.readexactly(len(PRELOGIN_PACKET))
    assert request == PRELOGIN_PACKET
    writer.write(PRELOGIN_REPLY)
    await writer.drain()
    writer.close()


async def _http_handler(reader, writer):
    await reader.read(64)
    writer.write(b"HTTP/1.1 400 Bad Request\r\nContent-Length: 0\r\n\r\n")
    await writer.drain()
    writer.close()


async def _silent_handler(reader, writer):
    await asyncio.sleep(0.5)
    writer.close()


def test_probe_confirms_tds_listener():
    port, result, timeouts = asyncio.run(_probe_against(_tds_handler))
    assert result is not None
    assert result.port == port
    assert result.is_tds
    assert len(timeouts.samples) == 1


def test_probe_rejects_non_tds_service():
    _, result, _ = asyncio.run(_probe_against(_http_handler))
    assert result is None


def test_probe_silent_service_times_out():
    _, result, _ = asyncio.run(_probe_against(_silent_handler, timeout_ms=100))
    assert result is None


def test_probe_refused_port_feeds_timing():
    timeouts = AdaptiveTimeout(1000)
    result = asyncio.run(probe_port("127.0.0.1", _free_port(), timeouts))
    assert result is None
    assert len(timeouts.samples) == 1


def test_probe_swallows_unexpected_errors(monkeypatch):
    async def boom(*args, **kwargs):
        raise RuntimeError("socket exploded")

    monkeypatch.setattr(tds_prelogin.asyncio, "open_connection", boom)
    result = asyncio.run(probe_port("127.0.0.1", 1433, AdaptiveTimeout(100)))
    assert result is None


def test_probe_stops_before_writing():
    received = []

    async def handler(reader, writer):
        received.append(await reader.read(64))
        writer.close()

    async def run():
        server = await asyncio.start_server(handler, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        stop = asyncio.Event()
        stop.set()
        try:
            result = await probe_port("127.0.0.1", port, AdaptiveTimeout(500), stop)
            await asyncio.sleep(0.1)
        finally:
            server.close()
            await server.wait_closed()
        return result

    assert asyncio.run(run()) is None
    assert received in ([], [b""])
