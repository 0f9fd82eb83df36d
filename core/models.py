"""
Shared data models for scan results, phase reports and SQL Browser instances.
Scan -> Phase -> ScanResult.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ScanResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    port: int = Field(ge=1, le=65535)
    is_tds: bool
    response_info: str = ""


class PhaseReport(BaseModel):
    name: str
    ports_scanned: int
    elapsed_ms: int
    results: List[ScanResult] = Field(default_factory=list)


class ScanReport(BaseModel):
    host: str
    ip: str
    results: List[ScanResult] = Field(default_factory=list)
    phases: List[PhaseReport] = Field(default_factory=list)
    skipped_phases: List[str] = Field(default_factory=list)
    elapsed_ms: int = 0
    timeout_ms_final: Optional[int] = None

    @property
    def found(self) -> bool:
        return bool(self.results)


class SqlInstance(BaseModel):
    server_name: Optional[str] = None
    instance_name: Optional[str] = None
    is_clustered: bool = False
    version: Optional[str] = None
    tcp_port: Optional[int] = None
    named_pipe: Optional[str] = None

    def connection_target(self, host: str) -> str:
        """host:port when a TCP port is known, else host\\instance for named instances."""
        if self.tcp_port is not None:
            return f"{host}:{self.tcp_port}"
        if self.instance_name and self.instance_name.upper() != "MSSQLSERVER":
            return f"{host}\\{self.instance_name}"
        return host
