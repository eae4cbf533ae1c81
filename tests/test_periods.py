"""
Test suite for accounting periods

Tests period creation, the single active period, closed-period enforcement
on posting and period closing with closing entries.
"""

import pytest
from decimal import Decimal
from datetime import date

from coop_ledger.currency import Money
from coop_ledger.storage import InMemoryStorage
from coop_ledger.audit import AuditTrail, AuditEventType
from coop_ledger.chart_of_accounts import ChartOfAccounts
from coop_ledger.config import CoopLedgerConfig
from coop_ledger.ledger import JournalEntry, JournalLine, JournalStore, JournalType
from coop_ledger.periods import PeriodManager, PeriodStatus, PeriodCloseRequest
from coop_ledger.reporting import LedgerReporter
from coop_ledger.errors import ValidationError, ClosedPeriodError


def idr(value) -> Money:
    return Money(Decimal(str(value)))


def entry(debit_code, credit_code, amount, entry_date, journal_type=JournalType.GENERAL):
    return JournalEntry.draft(
        entry_date=entry_date,
        journal_type=journal_type,
        description="Transaksi",
        lines=[
            JournalLine.debit_line(debit_code, idr(amount), 1),
            JournalLine.credit_line(credit_code, idr(amount), 2),
        ],
        created_by="bendahara",
    )


def full_request(period_id, **overrides):
    values = dict(
        period_id=period_id,
        closed_by="manager",
        closing_notes="Tutup buku Januari",
        all_transactions_journaled=True,
        no_pending_journals=True,
        reports_reviewed=True,
    )
    values.update(overrides)
    return PeriodCloseRequest(**values)


class TestPeriodManager:
    """Test period lifecycle and the active-period pointer"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.periods = PeriodManager(self.storage, self.audit_trail, CoopLedgerConfig())

    def test_create_period(self):
        """Test monthly period creation"""
        period = self.periods.create_period(2024, 1, user_id="manager")

        assert period.id == "2024-01"
        assert period.status == PeriodStatus.OPEN
        assert not period.is_active
        assert period.start_date == date(2024, 1, 1)
        assert period.end_date == date(2024, 1, 31)
        assert self.periods.create_period(2024, 2).end_date == date(2024, 2, 29)

    def test_create_period_validation(self):
        """Test period creation validation"""
        with pytest.raises(ValidationError, match="between 1 and 12"):
            self.periods.create_period(2024, 13)

        self.periods.create_period(2024, 1)
        with pytest.raises(ValidationError, match="already exists"):
            self.periods.create_period(2024, 1)

    def test_single_active_period(self):
        """Test only one period is active at a time"""
        assert self.periods.get_active_period() is None

        self.periods.open_new_period(2024, 1)
        assert self.periods.get_active_period().id == "2024-01"

        self.periods.open_new_period(2024, 2)
        assert self.periods.get_active_period().id == "2024-02"

        periods = self.periods.list_periods()
        assert [p.id for p in periods] == ["2024-02", "2024-01"]
        assert [p.is_active for p in periods] == [True, False]

    def test_activate_existing_period(self):
        """Test switching the active period"""
        self.periods.open_new_period(2024, 2)
        self.periods.create_period(2024, 1)

        activated = self.periods.activate_period("2024-01", user_id="manager")
        assert activated.is_active
        assert self.periods.get_period("2024-02").is_active is False

        events = self.audit_trail.get_events_for_entity("accounting_period", "2024-01")
        assert events[-1].event_type == AuditEventType.PERIOD_ACTIVATED
        assert events[-1].metadata["previous_period_id"] == "2024-02"

    def test_activate_unknown_period(self):
        """Test activating an unknown period"""
        with pytest.raises(ValidationError, match="not found"):
            self.periods.activate_period("2030-01")

    def test_lost_compare_and_swap_is_reported(self, monkeypatch):
        """Test a concurrent switch of the active period is not overwritten"""
        self.periods.open_new_period(2024, 1)
        self.periods.create_period(2024, 2)

        monkeypatch.setattr(self.storage, "compare_and_swap", lambda *args: False)
        with pytest.raises(ValidationError, match="changed concurrently"):
            self.periods.activate_period("2024-02")

    def test_period_lookup_by_date(self):
        """Test finding the period for a date"""
        self.periods.create_period(2024, 3)

        assert self.periods.get_period_for_date(date(2024, 3, 17)).id == "2024-03"
        assert self.periods.get_period_for_date(date(2024, 4, 1)) is None
        assert self.periods.is_open_for(date(2024, 3, 31))
        assert not self.periods.is_open_for(date(2024, 4, 1))

    def test_validate_period_closure(self):
        """Test closure readiness checks"""
        self.periods.create_period(2024, 1)

        assert self.periods.validate_period_closure("2024-01").can_close

        check = self.periods.validate_period_closure("2024-01", unjournaled_transactions=3, pending_journals=1)
        assert not check.can_close
        assert len(check.issues) == 2
        assert "3 transactions" in check.issues[0]

        missing = self.periods.validate_period_closure("2030-01")
        assert not missing.can_close
        assert "not found" in missing.issues[0]


class TestPeriodClosing:
    """Test posting rules and closing against accounting periods"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.audit_trail = AuditTrail(self.storage)
        self.config = CoopLedgerConfig()
        self.chart = ChartOfAccounts(self.storage, self.audit_trail)
        self.chart.seed_standard_accounts()
        self.periods = PeriodManager(self.storage, self.audit_trail, self.config)
        self.store = JournalStore(self.storage, self.chart, self.audit_trail, self.periods, self.config)
        self.periods.open_new_period(2024, 1)

    def _post_january_activity(self):
        self.store.post(entry("1-1100", "3-1200", 10000000, date(2024, 1, 2)))
        self.store.post(entry("1-1100", "4-1100", 1000000, date(2024, 1, 10)))
        self.store.post(entry("5-1100", "1-1100", 300000, date(2024, 1, 20)))

    def test_date_without_period_rejected(self):
        """Test posting to a month with no period"""
        with pytest.raises(ClosedPeriodError, match="No accounting period defined for 02/2024") as exc_info:
            self.store.post(entry("1-1100", "3-1200", 100, date(2024, 2, 1)))
        assert exc_info.value.year == 2024
        assert exc_info.value.month == 2

    def test_date_without_period_allowed_when_not_required(self):
        """Test posting without a period when not required"""
        store = JournalStore(self.storage, self.chart, period_manager=self.periods,
                             config=CoopLedgerConfig(require_open_period=False))
        assert store.post(entry("1-1100", "3-1200", 100, date(2024, 2, 1))).is_posted

    def test_close_requires_confirmations(self):
        """Test closing needs every confirmation"""
        request = full_request("2024-01", reports_reviewed=False, no_pending_journals=False)
        with pytest.raises(ValidationError, match="no_pending_journals, reports_reviewed"):
            self.periods.close_period(request, self.store)

    def test_close_rejects_outstanding_transactions(self):
        """Test closing with outstanding transactions"""
        with pytest.raises(ValidationError, match="2 transactions have not been journaled"):
            self.periods.close_period(full_request("2024-01", unjournaled_transactions=2), self.store)

    def test_close_unknown_period(self):
        """Test closing an unknown period"""
        with pytest.raises(ValidationError, match="not found"):
            self.periods.close_period(full_request("2023-12"), self.store)

    def test_generate_closing_entries(self):
        """Test closing entries move net income to equity"""
        self._post_january_activity()

        closing = self.periods.generate_closing_entries("2024-01", self.store)

        assert closing.journal_type == JournalType.CLOSING
        assert closing.entry_date == date(2024, 1, 31)
        assert closing.is_auto_generated
        assert [(l.account_code, l.debit.amount, l.credit.amount) for l in closing.lines] == [
            ("4-1100", Decimal('1000000.00'), Decimal('0.00')),
            ("5-1100", Decimal('0.00'), Decimal('300000.00')),
            ("3-1500", Decimal('0.00'), Decimal('700000.00')),
        ]
        assert closing.balance().is_balanced

    def test_generate_closing_entries_with_loss(self):
        """Test closing entries for a net loss"""
        self.store.post(entry("5-1100", "1-1100", 400000, date(2024, 1, 20)))

        closing = self.periods.generate_closing_entries("2024-01", self.store)
        assert closing.lines[-1].account_code == "3-1500"
        assert closing.lines[-1].debit == idr(400000)

    def test_nothing_to_close(self):
        """Test no closing entry without nominal balances"""
        self.store.post(entry("1-1100", "3-1200", 100, date(2024, 1, 2)))
        assert self.periods.generate_closing_entries("2024-01", self.store) is None

    def test_close_period(self):
        """Test closing posts the entry and moves the active period"""
        self._post_january_activity()

        closed = self.periods.close_period(full_request("2024-01"), self.store)

        assert closed.status == PeriodStatus.CLOSED
        assert closed.closed_by == "manager"
        assert closed.closing_notes == "Tutup buku Januari"
        assert not closed.is_active

        closing = self.store.get_entry(closed.closing_entry_id)
        assert closing.journal_number == "JT-202401-0001"

        # Active pointer moved to the next month, which was created for it
        active = self.periods.get_active_period()
        assert active.id == "2024-02"
        assert active.status == PeriodStatus.OPEN

        # Nominal accounts are zeroed into current-year earnings
        tb = LedgerReporter(self.store, config=self.config).trial_balance(date(2024, 1, 31))
        assert tb.get_account("4-1100").balance.is_zero()
        assert tb.get_account("5-1100").balance.is_zero()
        assert tb.get_account("3-1500").credit_balance == idr(700000)
        assert tb.is_balanced

        events = self.audit_trail.get_events_by_type(AuditEventType.PERIOD_CLOSED)
        assert events[0].entity_id == "2024-01"
        assert events[0].metadata["closing_journal_number"] == "JT-202401-0001"
        assert self.audit_trail.verify_integrity()['valid']

    def test_closed_period_enforcement(self):
        """Test posts into a closed period are refused"""
        self._post_january_activity()
        self.periods.close_period(full_request("2024-01"), self.store)

        with pytest.raises(ClosedPeriodError, match="01/2024 is closed"):
            self.store.post(entry("1-1100", "3-1200", 100, date(2024, 1, 25)))

        # The override only applies to adjustment entries
        with pytest.raises(ClosedPeriodError, match="only adjustment entries"):
            self.store.post(entry("1-1100", "3-1200", 100, date(2024, 1, 25)), allow_closed_period=True)

        adjustment = entry("1-2200", "1-2100", 50000, date(2024, 1, 31), JournalType.ADJUSTMENT)
        posted = self.store.post(adjustment, allow_closed_period=True)
        assert posted.journal_number == "JP-202401-0001"

        # The following month is open
        assert self.store.post(entry("1-1100", "3-1300", 100, date(2024, 2, 5))).is_posted

    def test_close_twice_rejected(self):
        """Test a period closes only once"""
        self.periods.close_period(full_request("2024-01"), self.store)
        with pytest.raises(ValidationError, match="already closed"):
            self.periods.close_period(full_request("2024-01"), self.store)

    def test_closed_period_cannot_be_activated(self):
        """Test a closed period cannot become active"""
        self.periods.close_period(full_request("2024-01"), self.store)
        with pytest.raises(ValidationError, match="closed and cannot be activated"):
            self.periods.activate_period("2024-01")

    def test_close_inactive_period_keeps_pointer(self):
        """Test closing an inactive period leaves the active one"""
        self.periods.create_period(2023, 12)
        self.periods.close_period(full_request("2023-12"), self.store)

        assert self.periods.get_active_period().id == "2024-01"
        assert self.periods.get_period("2023-12").closing_entry_id is None
