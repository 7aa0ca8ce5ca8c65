"""
Test suite for audit module

Hash-chained audit trail, tamper detection and the ledger events recorded
by plan and payment operations.
"""

import pytest
from decimal import Decimal
from datetime import datetime, timezone

from installment_ledger.storage import InMemoryStorage
from installment_ledger.currency import Money, Currency
from installment_ledger.ledger_math import PaymentStatus
from installment_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def test_metadata_serialization(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.PAYMENT_APPLIED,
            entity_type="payment",
            entity_id="PAY001",
            previous_hash="",
            current_hash="",
            metadata={
                "amount": Decimal('600.00'),
                "status": PaymentStatus.PARTIAL,
                "paid_at": now
            }
        )

        assert event.metadata["amount"] == "600.00"
        assert event.metadata["status"] == "Partial"
        assert event.metadata["paid_at"] == now.isoformat()

    def test_hash_covers_metadata(self):
        now = datetime.now(timezone.utc)
        event = AuditEvent(
            id="AUDIT001", created_at=now, updated_at=now,
            event_type=AuditEventType.PLAN_CREATED, entity_type="plan",
            entity_id="PLAN001", previous_hash="", current_hash="",
            metadata={"number_of_months": 3}
        )
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["number_of_months"] = 4
        assert not event.verify_hash()


class TestAuditTrail:
    """Chain construction and integrity checks"""

    @pytest.fixture
    def trail(self):
        return AuditTrail(InMemoryStorage())

    def test_events_are_chained(self, trail):
        first = trail.log_event(AuditEventType.PLAN_CREATED, "plan", "PLAN001")
        second = trail.log_event(AuditEventType.PAYMENT_CREATED, "payment", "PAY001",
                                 {"plan_id": "PLAN001"})

        assert first.sequence == 1
        assert first.previous_hash == ""
        assert second.sequence == 2
        assert second.previous_hash == first.current_hash
        assert trail.verify_integrity() == {
            'valid': True, 'total_events': 2, 'hash_errors': [], 'chain_breaks': []
        }

    def test_tampering_detected(self, trail):
        trail.log_event(AuditEventType.PLAN_CREATED, "plan", "PLAN001")
        event = trail.log_event(AuditEventType.PAYMENT_APPLIED, "payment", "PAY001",
                                {"amount_paid": "EGP 600.00"})

        data = trail.storage.load(trail.table_name, event.id)
        data['metadata']['amount_paid'] = "EGP 6,000.00"
        trail.storage.save(trail.table_name, event.id, data)

        result = trail.verify_integrity()
        assert not result['valid']
        assert result['hash_errors'][0]['event_id'] == event.id

    def test_removed_event_breaks_chain(self, trail):
        first = trail.log_event(AuditEventType.PLAN_CREATED, "plan", "PLAN001")
        trail.log_event(AuditEventType.PAYMENT_CREATED, "payment", "PAY001")
        trail.storage.delete(trail.table_name, first.id)

        result = trail.verify_integrity()
        assert not result['valid']
        assert len(result['chain_breaks']) == 1

    def test_disabled_trail(self):
        trail = AuditTrail(InMemoryStorage(), enabled=False)

        assert trail.log_event(AuditEventType.PLAN_CREATED, "plan", "PLAN001") is None
        assert trail.count_events() == 0

    def test_queries(self, trail):
        trail.log_event(AuditEventType.PLAN_CREATED, "plan", "PLAN001")
        trail.log_event(AuditEventType.PAYMENT_CREATED, "payment", "PAY001")
        trail.log_event(AuditEventType.PAYMENT_APPLIED, "payment", "PAY001")

        events = trail.get_events_for_entity("payment", "PAY001")
        assert [e.event_type for e in events] == [
            AuditEventType.PAYMENT_CREATED, AuditEventType.PAYMENT_APPLIED
        ]
        assert len(trail.get_events_by_type(AuditEventType.PLAN_CREATED)) == 1
        assert trail.count_events() == 3


class TestLedgerAuditEvents:
    """Events written by the lifecycle controller"""

    def test_payment_history(self, controller, plan, first_entry, audit_trail):
        controller.apply_payment(first_entry.id, Money(Decimal('600.00'), Currency.EGP))

        events = audit_trail.get_events_for_entity("payment", first_entry.id)
        assert [e.event_type for e in events] == [
            AuditEventType.PAYMENT_CREATED, AuditEventType.PAYMENT_APPLIED
        ]
        applied = events[1]
        assert applied.metadata['status'] == "Partial"
        assert applied.metadata['carryover_amount'] == "EGP 400.00"

        scheduled = audit_trail.get_events_by_type(AuditEventType.NEXT_PAYMENT_SCHEDULED)
        assert len(scheduled) == 1
        assert scheduled[0].metadata['predecessor_id'] == first_entry.id
        assert audit_trail.verify_integrity()['valid']
