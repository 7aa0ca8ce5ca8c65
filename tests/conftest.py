"""
Shared fixtures: in-memory ledger components driven by a deterministic clock
"""

import pytest
from decimal import Decimal
from datetime import date, datetime, timezone

from installment_ledger.currency import Money, Currency
from installment_ledger.storage import InMemoryStorage
from installment_ledger.audit import AuditTrail
from installment_ledger.clock import DeterministicClock
from installment_ledger.config import LedgerConfig
from installment_ledger.plans import PlanManager
from installment_ledger.payments import PaymentRepository, PaymentLifecycleController


def egp(amount: str) -> Money:
    return Money(Decimal(amount), Currency.EGP)


@pytest.fixture
def ledger_config():
    return LedgerConfig(database_url="memory://")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def clock():
    return DeterministicClock(datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def plan_manager(storage, audit_trail, clock, ledger_config):
    return PlanManager(storage, audit_trail, clock, ledger_config)


@pytest.fixture
def controller(storage, audit_trail, clock, ledger_config):
    return PaymentLifecycleController(
        PaymentRepository(storage), audit_trail, clock, ledger_config
    )


@pytest.fixture
def plan(plan_manager):
    """Three months of EGP 1,000.00 starting 2025-01-01"""
    return plan_manager.create_plan(
        sale_id="SALE001",
        customer_id="CUST001",
        number_of_months=3,
        monthly_installment=egp("1000.00"),
        collection_start_date=date(2025, 1, 1),
        collection_end_date=date(2025, 4, 1)
    )


@pytest.fixture
def first_entry(controller, plan):
    return controller.create_initial_payment(
        plan_id=plan.id,
        customer_id=plan.customer_id,
        amount_due=plan.monthly_installment,
        due_date=plan.collection_start_date
    )
