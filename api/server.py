"""
FastAPI surface exposing discovery actions.
Reads ES credentials from .env (via core.config) and forwards to orchestrator.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from pipeline.orchestrator import Orchestrator

log = logging.getLogger(__name__)

app = FastAPI(title="SQL Server Discovery API", version="1.0")
orch = Orchestrator()


class ScanPayload(BaseModel):
    target: str
    timeout_ms: Optional[int] = Field(None, ge=1)
    max_parallelism: Optional[int] = Field(None, ge=1)
    stop_on_first: Optional[bool] = None
    include_middle: Optional[bool] = None


class TargetPayload(BaseModel):
    target: str


@app.post("/api/scan")
async def api_scan(payload: ScanPayload):
    try:
        report = await orch.scan(
            payload.target,
            timeout_ms=payload.timeout_ms,
            max_parallelism=payload.max_parallelism,
            stop_on_first=payload.stop_on_first,
            include_middle=payload.include_middle,
        )
        return report.model_dump()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        log.exception("scan failed")
        raise HTTPException(status_code=500, detail="scan failed") from exc


@app.post("/api/browse")
def api_browse(payload: TargetPayload):
    try:
        return {"instances": [i.model_dump() for i in orch.browse(payload.target)]}
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:  # noqa: BLE001
        log.exception("browse failed")
        raise HTTPException(status_code=500, detail="browse failed") from exc


@app.get("/api/report")
def api_report(host: str = Query(...)):
    try:
        return {"ports": orch.report(host)}
    except Exception as exc:  # noqa: BLE001
        log.exception("report failed")
        raise HTTPException(status_code=500, detail="report failed") from exc


@app.get("/api/health")
def api_health():
    try:
        return orch.verify()
    except Exception as exc:  # noqa: BLE001
        log.exception("health check failed")
        raise HTTPException(status_code=500, detail="health check failed") from exc
