"""
Ledger system wiring for the API
"""

from typing import Optional

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..clock import Clock, SystemClock
from ..config import LedgerConfig, get_config
from ..plans import PlanManager
from ..payments import PaymentRepository, PaymentLifecycleController
from ..logging_config import get_logger, log_action


logger = get_logger("installment_ledger.api")


class LedgerSystem:
    """Installment ledger with all components initialized"""

    def __init__(
        self,
        storage: Optional[StorageInterface] = None,
        clock: Optional[Clock] = None,
        config: Optional[LedgerConfig] = None
    ):
        self.config = config or get_config()
        self.storage = storage or create_storage(self.config.database_url)
        self.clock = clock or SystemClock()

        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.plan_manager = PlanManager(self.storage, self.audit_trail, self.clock, self.config)
        self.payments = PaymentLifecycleController(
            PaymentRepository(self.storage), self.audit_trail, self.clock, self.config
        )

        log_action(logger, "info", "Ledger system initialized",
                   extra={"storage": type(self.storage).__name__,
                          "audit_enabled": self.config.enable_audit_logging})

    def close(self) -> None:
        self.storage.close()


_ledger_system: Optional[LedgerSystem] = None


def get_ledger_system() -> LedgerSystem:
    """FastAPI dependency; the system is built on first use"""
    global _ledger_system
    if _ledger_system is None:
        _ledger_system = LedgerSystem()
    return _ledger_system
