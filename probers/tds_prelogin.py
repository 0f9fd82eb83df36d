"""
TDS listener validation: TCP connect, send a fixed PRELOGIN packet and
classify the first response byte. An open socket alone is not enough; the
peer has to answer in TDS.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from core.models import ScanResult
from policy.adaptive_timeout import AdaptiveTimeout

log = logging.getLogger(__name__)

TDS_PRELOGIN = 0x12
TDS_TABULAR_RESULT = 0x04
TDS_RESPONSE_TYPES = frozenset({TDS_PRELOGIN, TDS_TABULAR_RESULT})

RESPONSE_READ_SIZE = 8

PRELOGIN_PACKET = bytes(
    [
        # header: type, status (EOM), length 47, spid, packet id, window
        0x12, 0x01, 0x00, 0x2F, 0x00, 0x00, 0x01, 0x00,
        # option headers: token, offset, length
        0x00, 0x00, 0x15, 0x00, 0x06,  # VERSION
        0x01, 0x00, 0x1B, 0x00, 0x01,  # ENCRYPTION
        0x02, 0x00, 0x1C, 0x00, 0x01,  # INSTOPT
        0x03, 0x00, 0x1D, 0x00, 0x04,  # THREADID
        0x04, 0x00, 0x21, 0x00, 0x01,  # MARS
        0xFF,
        # payloads
        0x00, 0x00, 0x00, 0x00, 0x00, 0x00,  # version 0.0.0.0 build 0
        0x02,  # encryption not supported
        0x00,  # empty instance name
        0x00, 0x00, 0x00, 0x00,  # thread id
        0x00,  # MARS off
    ]
)


def classify_response(port: int, data: bytes) -> Optional[ScanResult]:
    if not data:
        return None
    first = data[0]
    if first in TDS_RESPONSE_TYPES:
        return ScanResult(port=port, is_tds=True, response_info=f"TDS 0x{first:02X}")
    log.debug("port %d answered with non-TDS byte 0x%02X", port, first)
    return None


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


def _stopped(stop: Optional[asyncio.Event]) -> bool:
    return stop is not None and stop.is_set()


async def _close(writer: asyncio.StreamWriter) -> None:
    try:
        writer.close()
        await asyncio.wait_for(writer.wait_closed(), timeout=0.5)
    except Exception:  # noqa: BLE001
        pass


async def probe_port(
    ip: str,
    port: int,
    timeouts: AdaptiveTimeout,
    stop: Optional[asyncio.Event] = None,
) -> Optional[ScanResult]:
    """
    Probe one port. Returns a ScanResult for a confirmed TDS listener and
    None for everything else (closed, filtered, non-TDS, errors, stopped).
    """
    writer = None
    try:
        timeout_s = timeouts.current_timeout() / 1000
        start = time.perf_counter()
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(str(ip), port), timeout=timeout_s)
        except ConnectionRefusedError:
            timeouts.observe(_elapsed_ms(start))
            log.debug("%s:%d refused", ip, port)
            return None
        except asyncio.TimeoutError:
            log.debug("%s:%d connect timed out after %.0fms", ip, port, timeout_s * 1000)
            return None
        timeouts.observe(_elapsed_ms(start))

        if _stopped(stop):
            return None

        writer.write(PRELOGIN_PACKET)
        await asyncio.wait_for(writer.drain(), timeout=timeouts.current_timeout() / 1000)

        try:
            data = await asyncio.wait_for(reader.read(RESPONSE_READ_SIZE), timeout=timeouts.current_timeout() / 1000)
        except asyncio.TimeoutError:
            log.debug("%s:%d open but silent", ip, port)
            return None
        return classify_response(port, data)
    except Exception as exc:  # noqa: BLE001
        log.debug("%s:%d probe failed: %r", ip, port, exc)
        return None
    finally:
        if writer is not None:
            await _close(writer)
