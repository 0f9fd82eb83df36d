"""
In-memory state manager with optional JSON cache.
Keeps the latest scan results available for CLI report and local debugging.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from core.config import settings

log = logging.getLogger(__name__)


class StateManager:
    def __init__(self, cache_path: Optional[str] = None):
        self.scans: List[Dict] = []
        self.ports: List[Dict] = []
        self.instances: List[Dict] = []
        path = cache_path or settings.json_cache_path
        self.cache_path = Path(path) if path else None
        self._load_cache()

    def _load_cache(self):
        if self.cache_path and self.cache_path.exists():
            try:
                data = json.loads(self.cache_path.read_text())
                self.scans = data.get("scans", [])
                self.ports = data.get("ports", [])
                self.instances = data.get("instances", [])
            except Exception:  # noqa: BLE001
                log.warning("failed to load cache from %s", self.cache_path)

    def _persist(self):
        if not self.cache_path:
            return
        snapshot = {
            "scans": self.scans,
            "ports": self.ports,
            "instances": self.instances,
        }
        try:
            self.cache_path.write_text(json.dumps(snapshot, indent=2, default=str))
        except Exception:  # noqa: BLE001
            log.warning("failed to persist cache to %s", self.cache_path)

    def record_scans(self, docs: List[Dict]):
        if not docs:
            return
        self.scans.extend(docs)
        self._persist()

    def record_ports(self, docs: List[Dict]):
        if not docs:
            return
        self.ports.extend(docs)
        self._persist()

    def record_instances(self, docs: List[Dict]):
        if not docs:
            return
        self.instances.extend(docs)
        self._persist()

    def list_ports(self, host: Optional[str] = None) -> List[Dict]:
        if host:
            return [p for p in self.ports if p.get("host") == host or p.get("ip") == host]
        return list(self.ports)
