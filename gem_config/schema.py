"""
Configuration schema (``gem_config.schema``).

Frozen dataclasses only; parsing lives in ``gem_config.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass

LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass(frozen=True)
class KernelSettings:
    """Runtime settings of the gem kernel."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    busy_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    allocation_max_attempts: int = 3
    sku_counter_name: str = "sku"
    checksum: str = ""

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url must not be empty")
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level!r}")
        if self.allocation_max_attempts < 1:
            raise ValueError("allocation_max_attempts must be >= 1")
        if self.busy_timeout_seconds < 0:
            raise ValueError("busy_timeout_seconds must be >= 0")
        if self.pool_size < 1 or self.max_overflow < 0:
            raise ValueError("pool_size must be >= 1 and max_overflow >= 0")
        if not self.sku_counter_name:
            raise ValueError("sku_counter_name must not be empty")
