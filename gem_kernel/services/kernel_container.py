"""
gem_kernel.services.kernel_container -- dependency wiring for the workflows.

Responsibility:
    Creates the activity logger, the permission gate and the two document
    workflows exactly once and wires them to one session factory.
    ``start_kernel`` also brings up the engine, the schema, the
    immutability listeners and logging from a settings object.

Architecture position:
    Kernel > Services -- top of the service layer.  Settings are duck-typed
    (anything shaped like ``gem_config.KernelSettings``), so the kernel
    itself does not import the configuration package.

Usage:
    from gem_config import get_active_config
    from gem_kernel.services.kernel_container import start_kernel

    kernel = start_kernel(get_active_config())
    result = kernel.inventory.create_item(ctx, data)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

from sqlalchemy.orm import Session

from gem_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from gem_kernel.db.immutability import register_immutability_listeners
from gem_kernel.domain.clock import Clock, SystemClock
from gem_kernel.logging_config import configure_logging, get_logger
from gem_kernel.selectors.activity_selector import ActivitySelector
from gem_kernel.services.accounting_service import AccountingService
from gem_kernel.services.activity_logger import ActivityLogger
from gem_kernel.services.inventory_service import InventoryService
from gem_kernel.services.permission_gate import PermissionGate
from gem_kernel.services.sequence_service import SequenceService

if TYPE_CHECKING:
    from gem_config.schema import KernelSettings

logger = get_logger("services.kernel_container")


class KernelContainer:
    """
    Single construction point for the kernel's stateful services.

    Each workflow opens its own sessions from ``session_factory``; the
    activity logger commits its entries through the same factory so a
    denial record survives a rolled-back business transaction.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        *,
        clock: Clock | None = None,
        max_attempts: int = 3,
        sku_counter_name: str = SequenceService.SKU,
    ) -> None:
        self.session_factory = session_factory
        self.clock = clock or SystemClock()

        self.activity_logger = ActivityLogger(
            session_factory=session_factory, clock=self.clock
        )
        self.gate = PermissionGate(self.activity_logger)

        self.inventory = InventoryService(
            session_factory,
            self.gate,
            self.activity_logger,
            max_attempts=max_attempts,
            sku_counter_name=sku_counter_name,
        )
        self.accounting = AccountingService(
            session_factory,
            self.gate,
            self.activity_logger,
            clock=self.clock,
            max_attempts=max_attempts,
        )

    def activity(self, session: Session) -> ActivitySelector:
        return ActivitySelector(session)


def start_kernel(
    settings: KernelSettings,
    *,
    clock: Clock | None = None,
    create_schema: bool = True,
) -> KernelContainer:
    """Initialize engine, schema, listeners and logging, then wire services."""
    configure_logging(level=settings.log_level)
    init_engine_from_url(
        settings.database_url,
        echo=settings.echo,
        pool_size=settings.pool_size,
        max_overflow=settings.max_overflow,
        busy_timeout=settings.busy_timeout_seconds,
    )
    if create_schema:
        create_tables()
    register_immutability_listeners()

    logger.info(
        "kernel_started",
        extra={
            "max_attempts": settings.allocation_max_attempts,
            "sku_counter_name": settings.sku_counter_name,
        },
    )
    return KernelContainer(
        get_session_factory(),
        clock=clock,
        max_attempts=settings.allocation_max_attempts,
        sku_counter_name=settings.sku_counter_name,
    )
