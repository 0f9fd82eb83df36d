"""
Pydantic-based configuration for the discovery scanner.

All knobs are exposed via environment variables (or a local .env file) so
the same codebase can be driven from the CLI, the API or tests by changing
env flags.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from policy.port_space import KNOWN_PORTS


class Settings(BaseSettings):
    model_config = SettingsConfigDict(case_sensitive=False, env_file=".env")

    # Probing
    scan_timeout_ms: int = Field(500, ge=1, description="initial per-probe timeout")
    max_parallelism: int = Field(500, description="max in-flight probes per phase")
    stop_on_first: bool = Field(True, description="stop after the first phase with a hit")
    stop_scope: str = Field("scan", description="scan or phase")
    scan_middle: bool = Field(False, description="run the 1433-49151 phase")
    middle_start: int = Field(1433, ge=1, le=65535)

    # Port profiles
    known_ports: List[int] = Field(default_factory=lambda: list(KNOWN_PORTS))

    # Adaptive timeout
    adaptive_floor_ms: int = Field(50, ge=1)
    adaptive_history: int = Field(10, ge=1)
    adaptive_min_samples: int = Field(3, ge=1)
    adaptive_multiplier: float = Field(3.0, gt=0)
    adaptive_buffer: float = Field(0.2, ge=0)

    # SQL Browser (UDP 1434)
    browser_timeout_s: float = Field(3.0, gt=0)

    # Networking scope
    enforce_allowlist: bool = False
    allowlist_cidrs: List[str] = Field(default_factory=list)
    allowlist_domains: List[str] = Field(default_factory=list)

    # Elasticsearch
    elasticsearch_url: Optional[str] = None
    elasticsearch_user: Optional[str] = None
    elasticsearch_pass: Optional[str] = None
    elasticsearch_api_key: Optional[str] = None
    elasticsearch_verify_certs: bool = True
    elasticsearch_ca_cert: Optional[str] = None
    bulk_batch_size: int = 500

    # Local state/cache
    json_cache_path: Optional[str] = None

    log_level: str = "INFO"

    @field_validator("stop_scope")
    @classmethod
    def validate_stop_scope(cls, v: str) -> str:
        if v not in {"scan", "phase"}:
            raise ValueError("stop_scope must be scan or phase")
        return v

    @field_validator("max_parallelism")
    @classmethod
    def validate_parallelism(cls, v: int) -> int:
        if v < 1:
            raise ValueError("max_parallelism must be >= 1")
        return v

    @field_validator("known_ports")
    @classmethod
    def validate_known_ports(cls, v: List[int]) -> List[int]:
        for port in v:
            if not 1 <= port <= 65535:
                raise ValueError(f"invalid port in known_ports: {port}")
        return v


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
