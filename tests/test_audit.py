"""
Test suite for audit module

Tests the hash-chained audit trail, tamper detection and integrity
verification for ledger events.
"""

import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from coop_ledger.storage import InMemoryStorage
from coop_ledger.audit import AuditTrail, AuditEvent, AuditEventType


class TestAuditEvent:
    """Test AuditEvent functionality"""

    def _event(self, metadata):
        now = datetime.now(timezone.utc)
        return AuditEvent(
            id="AUDIT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.JOURNAL_ENTRY_POSTED,
            entity_type="journal_entry",
            entity_id="JE001",
            previous_hash="",
            current_hash="",
            user_id="bendahara",
            metadata=metadata
        )

    def test_metadata_is_serialized(self):
        """Test Decimal, date and list values become JSON-safe"""
        event = self._event({
            "total_debit": Decimal('2500000.00'),
            "entry_date": date(2024, 1, 15),
            "accounts": ("1-1100", "1-1300"),
        })
        assert event.metadata == {
            "total_debit": "2500000.00",
            "entry_date": "2024-01-15",
            "accounts": ["1-1100", "1-1300"],
        }

    def test_hash_detects_changes(self):
        """Test the event hash covers every field"""
        event = self._event({"journal_number": "JU-202401-0001"})
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()

        event.metadata["journal_number"] = "JU-202401-0002"
        assert not event.verify_hash()

    def test_round_trip_through_dict(self):
        """Test event serialization keeps the hash valid"""
        event = self._event({"journal_number": "JU-202401-0001"})
        event.current_hash = event.calculate_hash()

        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.event_type == AuditEventType.JOURNAL_ENTRY_POSTED
        assert restored.verify_hash()


class TestAuditTrail:
    """Test AuditTrail chaining and verification"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)

    def test_events_are_chained(self):
        """Test each event links to the previous hash"""
        first = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "1-1100", {"name": "Kas"}, user_id="admin"
        )
        second = self.audit_trail.log_event(
            AuditEventType.ACCOUNT_CREATED, "account", "1-1200", {"name": "Bank"}, user_id="admin"
        )

        assert first.previous_hash == ""
        assert second.previous_hash == first.current_hash
        assert self.audit_trail.count_events() == 2

        result = self.audit_trail.verify_integrity()
        assert result['valid']
        assert result['total_events'] == 2
        assert result['hash_errors'] == []
        assert result['chain_breaks'] == []

    def test_tampering_is_detected(self):
        """Test integrity check catches an edited event"""
        event = self.audit_trail.log_event(
            AuditEventType.JOURNAL_ENTRY_POSTED, "journal_entry", "JE001", {"total_debit": "500000.00"}
        )
        self.audit_trail.log_event(
            AuditEventType.JOURNAL_ENTRY_POSTED, "journal_entry", "JE002", {"total_debit": "750000.00"}
        )

        record = self.storage.load("audit_events", event.id)
        record["metadata"]["total_debit"] = "5000000.00"
        self.storage.save("audit_events", event.id, record)

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert [e['event_id'] for e in result['hash_errors']] == [event.id]

    def test_deleted_event_breaks_chain(self):
        """Test integrity check catches a removed event"""
        events = [
            self.audit_trail.log_event(AuditEventType.PERIOD_CREATED, "accounting_period", f"2024-0{m}")
            for m in (1, 2, 3)
        ]
        self.storage.delete("audit_events", events[1].id)

        result = self.audit_trail.verify_integrity()
        assert not result['valid']
        assert result['chain_breaks'][0]['event_id'] == events[2].id

    def test_chain_continues_after_reload(self):
        """Test a new AuditTrail on the same storage extends the existing chain"""
        last = self.audit_trail.log_event(AuditEventType.PERIOD_CREATED, "accounting_period", "2024-01")

        reopened = AuditTrail(self.storage)
        event = reopened.log_event(AuditEventType.PERIOD_ACTIVATED, "accounting_period", "2024-01")

        assert event.previous_hash == last.current_hash
        assert reopened.verify_integrity()['valid']

    def test_queries(self):
        """Test event lookup by entity, type and user"""
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "1-1100")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_DEACTIVATED, "account", "1-1100")
        self.audit_trail.log_event(AuditEventType.ACCOUNT_CREATED, "account", "1-1200")

        history = self.audit_trail.get_events_for_entity("account", "1-1100")
        assert [e.event_type for e in history] == [
            AuditEventType.ACCOUNT_CREATED, AuditEventType.ACCOUNT_DEACTIVATED
        ]
        assert len(self.audit_trail.get_events_by_type(AuditEventType.ACCOUNT_CREATED)) == 2

    def test_chain_survives_rolled_back_event(self):
        """Test an event dropped by a storage rollback does not break the chain"""
        self.audit_trail.log_event(AuditEventType.PERIOD_CREATED, "accounting_period", "2024-01")

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.audit_trail.log_event(AuditEventType.PERIOD_CREATED, "accounting_period", "2024-02")
                raise RuntimeError("close failed")

        self.audit_trail.log_event(AuditEventType.PERIOD_ACTIVATED, "accounting_period", "2024-01")

        assert self.audit_trail.count_events() == 2
        assert self.audit_trail.verify_integrity()['valid']
