"""
Single-node orchestrator: resolves the target once, runs the discovery
phases in sequence (known -> ephemeral -> middle) and records results in
local state and, when configured, Elasticsearch.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from core.authz_scope import is_authorized_target
from core.config import Settings, settings as default_settings
from core.models import PhaseReport, ScanReport, ScanResult, SqlInstance
from core.resolver import resolve
from core.state import StateManager
from elk.adapter import ElasticsearchAdapter
from pipeline.phases import ProbeFn, run_phase
from policy.adaptive_timeout import AdaptiveTimeout
from policy.port_space import PHASE_KNOWN, Phase, plan_phases
from probers.sql_browser import query_browser
from probers.tds_prelogin import probe_port

log = logging.getLogger(__name__)

INDEX_SCANS = "mssql-scans"
INDEX_PORTS = "mssql-ports"
INDEX_INSTANCES = "mssql-instances"


def _ms_since(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class Orchestrator:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        probe: ProbeFn = probe_port,
        state: Optional[StateManager] = None,
    ) -> None:
        self.settings = settings or default_settings
        self.probe = probe
        self.state = state or StateManager(self.settings.json_cache_path)
        self.elk = ElasticsearchAdapter(self.settings) if self.settings.elasticsearch_url else None
        self.degraded = False

    def _ensure_authorized(self, target: str, ip: str) -> None:
        if not is_authorized_target(target, ip, self.settings):
            raise ValueError(f"target {target} ({ip}) not in allowlist or allowlist missing")

    def _emit(self, index: str, docs: List[Dict[str, Any]]) -> None:
        if not docs:
            return

        if index == INDEX_SCANS:
            self.state.record_scans(docs)
        elif index == INDEX_PORTS:
            self.state.record_ports(docs)
        elif index == INDEX_INSTANCES:
            self.state.record_instances(docs)

        if not self.elk:
            return

        try:
            self.elk.bulk_index(index, docs)
            self.degraded = False
        except Exception as e:
            log.exception("ELK bulk_index failed | index=%s | err=%s", index, e)
            self.degraded = True

    def _timeouts(self, initial_ms: int) -> AdaptiveTimeout:
        s = self.settings
        return AdaptiveTimeout(
            initial_ms,
            floor_ms=s.adaptive_floor_ms,
            history=s.adaptive_history,
            min_samples=s.adaptive_min_samples,
            multiplier=s.adaptive_multiplier,
            buffer=s.adaptive_buffer,
        )

    async def scan(
        self,
        target: str,
        timeout_ms: Optional[int] = None,
        max_parallelism: Optional[int] = None,
        stop_on_first: Optional[bool] = None,
        include_middle: Optional[bool] = None,
        phases: Optional[Sequence[Phase]] = None,
    ) -> ScanReport:
        s = self.settings
        timeout_ms = timeout_ms if timeout_ms is not None else s.scan_timeout_ms
        max_parallelism = max_parallelism if max_parallelism is not None else s.max_parallelism
        stop_on_first = s.stop_on_first if stop_on_first is None else stop_on_first
        include_middle = s.scan_middle if include_middle is None else include_middle
        if max_parallelism < 1:
            raise ValueError("max_parallelism must be >= 1")

        started = time.perf_counter()

        # Fatal before any phase runs.
        ip = str(await asyncio.to_thread(resolve, target))
        log.info("Resolved %s to %s", target, ip)
        self._ensure_authorized(target, ip)

        if phases is None:
            phases = plan_phases(s.known_ports, include_middle=include_middle, middle_start=s.middle_start)

        timeouts = self._timeouts(timeout_ms)
        stop = asyncio.Event() if stop_on_first else None

        report = ScanReport(host=target, ip=ip)
        all_results: List[ScanResult] = []

        for idx, phase in enumerate(phases, start=1):
            if stop_on_first and s.stop_scope == "phase":
                stop = asyncio.Event()

            log.info("Phase %d (%s): %d ports", idx, phase.name, len(phase.ports))
            phase_start = time.perf_counter()
            results = await run_phase(ip, phase.ports, timeouts, max_parallelism, stop=stop, probe=self.probe)
            elapsed_ms = _ms_since(phase_start)

            rate = len(phase.ports) * 1000 // max(1, elapsed_ms)
            log.info("Phase %s completed in %dms (%d ports/sec, timeout now %dms)", phase.name, elapsed_ms, rate, timeouts.current_timeout())

            report.phases.append(
                PhaseReport(name=phase.name, ports_scanned=len(phase.ports), elapsed_ms=elapsed_ms, results=results)
            )
            all_results.extend(results)

            if stop_on_first and results:
                report.skipped_phases = [p.name for p in phases[idx:]]
                break

        report.results = sorted(all_results, key=lambda r: r.port)
        report.elapsed_ms = _ms_since(started)
        report.timeout_ms_final = timeouts.current_timeout()

        await asyncio.to_thread(self._record_scan, report)
        return report

    def _record_scan(self, report: ScanReport) -> None:
        self._log_summary(report)
        self._emit(INDEX_SCANS, [self._scan_to_doc(report)])
        self._emit(INDEX_PORTS, [self._result_to_doc(report, r) for r in report.results])

    async def scan_known(
        self, target: str, timeout_ms: Optional[int] = None, max_parallelism: Optional[int] = None
    ) -> ScanReport:
        known = [p for p in plan_phases(self.settings.known_ports) if p.name == PHASE_KNOWN]
        return await self.scan(
            target, timeout_ms=timeout_ms, max_parallelism=max_parallelism, stop_on_first=False, phases=known
        )

    def browse(self, target: str) -> List[SqlInstance]:
        ip = str(resolve(target))
        self._ensure_authorized(target, ip)
        instances = query_browser(ip, timeout=self.settings.browser_timeout_s)
        if not instances:
            log.info("SQL Browser service not available or no instances found on %s", target)
        for inst in instances:
            log.info(
                "%s: %s, version %s -> %s",
                inst.instance_name,
                f"TCP {inst.tcp_port}" if inst.tcp_port else "no TCP",
                inst.version,
                inst.connection_target(target),
            )
        self._emit(INDEX_INSTANCES, [dict(inst.model_dump(), host=target, ip=ip) for inst in instances])
        return instances

    def report(self, host: str) -> List[Dict[str, Any]]:
        if self.elk and host:
            docs = self.elk.search_by_host(INDEX_PORTS, host, size=100)
            if docs:
                return docs
        return self.state.list_ports(host)

    def verify(self) -> Dict[str, bool]:
        allowlist_ok = not self.settings.enforce_allowlist or bool(
            self.settings.allowlist_cidrs or self.settings.allowlist_domains
        )
        elk_ok = self.elk.ping() if self.elk else False
        return {"allowlist": allowlist_ok, "elk": elk_ok, "degraded": self.degraded}

    @staticmethod
    def _log_summary(report: ScanReport) -> None:
        log.info("Total scan time: %.1fs", report.elapsed_ms / 1000)
        if not report.found:
            log.warning("No SQL Server ports found on %s", report.host)
            return
        log.info("Found %d SQL Server port(s):", len(report.results))
        for r in report.results:
            log.info("  %s:%d (%s)", report.host, r.port, r.response_info)

    @staticmethod
    def _scan_to_doc(report: ScanReport) -> Dict[str, Any]:
        return {
            "timestamp": time.time(),
            "host": report.host,
            "ip": report.ip,
            "ports": [r.port for r in report.results],
            "phases": {p.name: p.elapsed_ms for p in report.phases},
            "skipped_phases": report.skipped_phases,
            "elapsed_ms": report.elapsed_ms,
            "timeout_ms_final": report.timeout_ms_final,
        }

    @staticmethod
    def _result_to_doc(report: ScanReport, result: ScanResult) -> Dict[str, Any]:
        return {
            "timestamp": time.time(),
            "host": report.host,
            "ip": report.ip,
            "port": result.port,
            "is_tds": result.is_tds,
            "response_info": result.response_info,
        }
