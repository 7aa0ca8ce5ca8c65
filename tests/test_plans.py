"""
Test suite for installment plans

Plan validation, one-plan-per-sale, reconciliation against the financed
amount, listing and deletion rules.
"""

import pytest
import threading
from decimal import Decimal
from datetime import date, datetime, timezone

from installment_ledger.currency import Money, Currency
from installment_ledger.config import LedgerConfig
from installment_ledger.audit import AuditEventType
from installment_ledger.plans import PlanManager, InstallmentPlan
from installment_ledger.exceptions import NotFoundError, ValidationError


def egp(amount: str) -> Money:
    return Money(Decimal(amount), Currency.EGP)


def plan_args(**overrides):
    args = dict(
        sale_id="SALE900",
        customer_id="CUST900",
        number_of_months=6,
        monthly_installment=egp("250.00"),
        collection_start_date=date(2025, 2, 1),
        collection_end_date=date(2025, 8, 1)
    )
    args.update(overrides)
    return args


class TestCreatePlan:

    def test_create_plan(self, plan_manager, audit_trail):
        plan = plan_manager.create_plan(**plan_args())

        assert plan.number_of_months == 6
        assert plan.currency == Currency.EGP
        assert plan.total_scheduled == egp("1500.00")
        assert plan_manager.get_plan(plan.id) == plan

        events = audit_trail.get_events_for_entity("plan", plan.id)
        assert [e.event_type for e in events] == [AuditEventType.PLAN_CREATED]

    @pytest.mark.parametrize("months", [0, 61, -1])
    def test_months_out_of_range(self, plan_manager, months):
        with pytest.raises(ValidationError, match="between 1 and 60"):
            plan_manager.create_plan(**plan_args(number_of_months=months))

    def test_negative_installment(self, plan_manager):
        with pytest.raises(ValidationError):
            plan_manager.create_plan(**plan_args(monthly_installment=egp("-1.00")))

    def test_end_before_start(self, plan_manager):
        with pytest.raises(ValidationError, match="after start date"):
            plan_manager.create_plan(**plan_args(collection_end_date=date(2025, 2, 1)))

    def test_one_plan_per_sale(self, plan_manager):
        plan_manager.create_plan(**plan_args())

        with pytest.raises(ValidationError, match="already exists"):
            plan_manager.create_plan(**plan_args(customer_id="CUST901"))

    def test_concurrent_creation_for_same_sale(self, plan_manager):
        outcomes = []

        def create():
            try:
                plan_manager.create_plan(**plan_args())
                outcomes.append("created")
            except ValidationError:
                outcomes.append("rejected")

        threads = [threading.Thread(target=create) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["created", "rejected", "rejected", "rejected"]
        assert len(plan_manager.list_plans()) == 1

    def test_get_plan_for_sale(self, plan_manager):
        plan = plan_manager.create_plan(**plan_args())

        assert plan_manager.get_plan_for_sale("SALE900").id == plan.id
        assert plan_manager.get_plan_for_sale("UNKNOWN") is None


class TestReconciliation:
    """Financed amount versus months times monthly installment"""

    def test_matching_financed_amount(self, plan_manager, audit_trail):
        plan_manager.create_plan(**plan_args(financed_amount=egp("1500.00")))

        assert audit_trail.get_events_by_type(AuditEventType.PLAN_RECONCILIATION_MISMATCH) == []

    def test_mismatch_is_recorded(self, plan_manager, audit_trail):
        plan = plan_manager.create_plan(**plan_args(financed_amount=egp("1800.00")))

        events = audit_trail.get_events_by_type(AuditEventType.PLAN_RECONCILIATION_MISMATCH)
        assert len(events) == 1
        assert events[0].entity_id == plan.id
        assert events[0].metadata['difference'] == "-300.00"

    def test_mismatch_rejected_when_enforced(self, storage, audit_trail, clock):
        manager = PlanManager(storage, audit_trail, clock,
                              LedgerConfig(database_url="memory://",
                                           enforce_plan_reconciliation=True))

        with pytest.raises(ValidationError, match="is financed"):
            manager.create_plan(**plan_args(financed_amount=egp("1800.00")))

        assert manager.list_plans() == []
        assert audit_trail.count_events() == 0

    def test_financed_currency_mismatch(self, plan_manager):
        with pytest.raises(ValidationError, match="currency"):
            plan_manager.create_plan(
                **plan_args(financed_amount=Money(Decimal("1500.00"), Currency.USD))
            )


class TestListAndDelete:

    def test_list_newest_first(self, plan_manager, clock):
        older = plan_manager.create_plan(**plan_args(sale_id="SALE1"))
        clock.advance(days=1)
        newer = plan_manager.create_plan(**plan_args(sale_id="SALE2", customer_id="CUST2"))

        assert [p.id for p in plan_manager.list_plans()] == [newer.id, older.id]
        assert [p.id for p in plan_manager.list_plans(customer_id="CUST2")] == [newer.id]

    def test_delete_untouched_plan(self, plan_manager, controller, plan, first_entry,
                                   audit_trail):
        plan_manager.delete_plan(plan.id)

        assert plan_manager.get_plan(plan.id) is None
        assert controller.list_entries(plan_id=plan.id) == []
        assert len(audit_trail.get_events_by_type(AuditEventType.PLAN_DELETED)) == 1

    def test_delete_plan_with_payments_rejected(self, plan_manager, controller, plan,
                                                first_entry):
        controller.apply_payment(first_entry.id, Money(Decimal("100.00"), Currency.EGP))

        with pytest.raises(ValidationError, match="recorded payments"):
            plan_manager.delete_plan(plan.id)

        assert plan_manager.get_plan(plan.id) is not None
        assert len(controller.entries_for_plan(plan.id)) == 2

    def test_delete_unknown_plan(self, plan_manager):
        with pytest.raises(NotFoundError):
            plan_manager.delete_plan("missing")


class TestPlanSerialization:

    def test_round_trip(self):
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        plan = InstallmentPlan(
            id="PLAN001", created_at=now, updated_at=now, sale_id="SALE001",
            customer_id="CUST001", number_of_months=12,
            monthly_installment=egp("99.99"),
            collection_start_date=date(2025, 1, 1),
            collection_end_date=date(2026, 1, 1)
        )

        data = plan.to_dict()
        assert data['monthly_installment_amount'] == "99.99"
        assert data['monthly_installment_currency'] == "EGP"
        assert InstallmentPlan.from_dict(data) == plan
