"""
Audit Trail Module

Hash-chained append-only log of ledger state changes. Each event stores the
SHA-256 hash of its predecessor, so any edit or removal of a past event
breaks the chain and shows up in ``verify_integrity()``.
"""

import hashlib
import json
import uuid
from datetime import datetime, timezone
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Any

from .storage import StorageInterface, StorageRecord


class AuditEventType(Enum):
    """Types of audit events"""
    # Plan events
    PLAN_CREATED = "plan_created"
    PLAN_DELETED = "plan_deleted"
    PLAN_RECONCILIATION_MISMATCH = "plan_reconciliation_mismatch"

    # Payment entry events
    PAYMENT_CREATED = "payment_created"
    PAYMENT_APPLIED = "payment_applied"
    PAYMENT_REAPPLIED = "payment_reapplied"
    NEXT_PAYMENT_SCHEDULED = "next_payment_scheduled"
    NEXT_PAYMENT_REGENERATED = "next_payment_regenerated"
    PAYMENT_NOTES_UPDATED = "payment_notes_updated"
    PAYMENT_DELETED = "payment_deleted"


def _json_ready(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_ready(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_ready(v) for v in value]
    return value


@dataclass
class AuditEvent(StorageRecord):
    """Immutable audit event chained to its predecessor by hash"""
    event_type: AuditEventType
    entity_type: str        # plan or payment
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    sequence: int = 0       # position in the chain, 1-based

    def __post_init__(self):
        self.metadata = _json_ready(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except ``current_hash``"""
        hash_data = {
            'id': self.id,
            'sequence': self.sequence,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'metadata': self.metadata
        }
        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['event_type'] = self.event_type.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            event_type=AuditEventType(data['event_type']),
            entity_type=data['entity_type'],
            entity_id=data['entity_id'],
            previous_hash=data['previous_hash'],
            current_hash=data['current_hash'],
            metadata=data.get('metadata') or {},
            sequence=data.get('sequence', 0)
        )


class AuditTrail:
    """
    Hash-chained audit trail.

    Events written inside a storage ``atomic()`` block roll back with the rest
    of the unit of work, so the chain head is re-read from storage before each
    append instead of being cached.
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events",
                 enabled: bool = True):
        self.storage = storage
        self.table_name = table_name
        self.enabled = enabled

    def _sorted_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.sequence)
        return events

    def _chain_head(self) -> Optional[AuditEvent]:
        events = self._sorted_events()
        return events[-1] if events else None

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[AuditEvent]:
        """
        Append an event to the chain.

        Returns:
            The stored AuditEvent, or None when audit logging is disabled
        """
        if not self.enabled:
            return None

        with self.storage.lock:
            head = self._chain_head()
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=head.current_hash if head else "",
                current_hash="",
                metadata=metadata or {},
                sequence=(head.sequence + 1) if head else 1
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """Events for one plan or payment in chain order"""
        data = self.storage.find(self.table_name, {'entity_type': entity_type,
                                                   'entity_id': entity_id})
        events = [AuditEvent.from_dict(item) for item in data]
        events.sort(key=lambda e: e.sequence)
        return events

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self._sorted_events() if e.event_type == event_type]

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Check every event hash and the continuity of the chain.

        Returns:
            Dictionary with ``valid``, ``total_events``, ``hash_errors`` and
            ``chain_breaks``
        """
        result = {
            'valid': True,
            'total_events': 0,
            'hash_errors': [],
            'chain_breaks': []
        }

        events = self._sorted_events()
        result['total_events'] = len(events)

        previous_hash = ""
        for position, event in enumerate(events):
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_hash': event.calculate_hash(),
                    'actual_hash': event.current_hash
                })
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash

        return result
