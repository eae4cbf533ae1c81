"""
Accounting Periods Module

Monthly accounting periods, the single active-period pointer and period
closing. The active period lives in a one-row state record that is only
ever switched with compare-and-swap, so there is never a moment with zero
or two active periods.
"""

import calendar
from datetime import date, datetime, timezone
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, TYPE_CHECKING
from enum import Enum

from .currency import Money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .chart_of_accounts import AccountType
from .config import CoopLedgerConfig, get_config
from .errors import ValidationError
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .ledger import JournalEntry, JournalStore


class PeriodStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"


def period_id_for(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


@dataclass
class AccountingPeriod(StorageRecord):
    """
    One calendar month of bookkeeping

    `is_active` is not stored on the record; PeriodManager fills it in from
    the active-period state record when loading.
    """
    year: int
    month: int
    status: PeriodStatus
    opened_date: date
    closed_date: Optional[date] = None
    closed_by: Optional[str] = None
    closing_notes: Optional[str] = None
    closing_entry_id: Optional[str] = None
    is_active: bool = False

    @property
    def name(self) -> str:
        return f"{self.month:02d}/{self.year}"

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    @property
    def start_date(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end_date(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def contains(self, d: date) -> bool:
        return d.year == self.year and d.month == self.month

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.pop('is_active')
        result['status'] = self.status.value
        result['opened_date'] = self.opened_date.isoformat()
        result['closed_date'] = self.closed_date.isoformat() if self.closed_date else None
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], is_active: bool = False) -> 'AccountingPeriod':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['status'] = PeriodStatus(data['status'])
        data['opened_date'] = date.fromisoformat(data['opened_date'])
        data['closed_date'] = date.fromisoformat(data['closed_date']) if data.get('closed_date') else None
        return cls(is_active=is_active, **data)


@dataclass
class PeriodCloseRequest:
    """Closing request with the bookkeeper's confirmations"""
    period_id: str
    closed_by: str
    closing_notes: str = ""
    all_transactions_journaled: bool = False
    no_pending_journals: bool = False
    reports_reviewed: bool = False
    # Counts reported by the loan and savings services
    unjournaled_transactions: int = 0
    pending_journals: int = 0


@dataclass
class PeriodClosureCheck:
    can_close: bool
    issues: List[str] = field(default_factory=list)


def _next_month(year: int, month: int) -> Tuple[int, int]:
    if month == 12:
        return year + 1, 1
    return year, month + 1


class PeriodManager:
    """
    Creates, activates and closes accounting periods
    """

    STATE_TABLE = "period_state"
    ACTIVE_KEY = "active"

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: Optional[AuditTrail] = None,
        config: Optional[CoopLedgerConfig] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.config = config or get_config()
        self.table_name = "accounting_periods"
        self.logger = get_logger("coop_ledger.periods")

    def create_period(self, year: int, month: int, user_id: Optional[str] = None) -> AccountingPeriod:
        """
        Create an open, inactive period

        Raises:
            ValidationError: Month out of range or period already exists
        """
        if not 1 <= month <= 12:
            raise ValidationError(f"Month must be between 1 and 12, got {month}", field="month")
        if year < 1900:
            raise ValidationError(f"Invalid year {year}", field="year")

        period_id = period_id_for(year, month)
        if self.storage.exists(self.table_name, period_id):
            raise ValidationError(f"Accounting period {month:02d}/{year} already exists", field="month")

        now = datetime.now(timezone.utc)
        period = AccountingPeriod(
            id=period_id,
            created_at=now,
            updated_at=now,
            year=year,
            month=month,
            status=PeriodStatus.OPEN,
            opened_date=date.today(),
        )
        self.storage.insert(self.table_name, period_id, period.to_dict())

        log_action(self.logger, "info", f"Accounting period created: {period.name}",
                   user_id=user_id, action="create_period", resource=f"accounting_period:{period_id}")
        self._audit(AuditEventType.PERIOD_CREATED, period_id, {"year": year, "month": month}, user_id)
        return period

    def open_new_period(self, year: int, month: int, user_id: Optional[str] = None) -> AccountingPeriod:
        """Create the period if missing and make it the active one"""
        period = self.get_period(period_id_for(year, month))
        if period is None:
            period = self.create_period(year, month, user_id)
        return self.activate_period(period.id, user_id)

    def activate_period(self, period_id: str, user_id: Optional[str] = None) -> AccountingPeriod:
        """
        Point the active-period state record at `period_id`

        Raises:
            ValidationError: Unknown or closed period, or a concurrent switch won
        """
        period = self._require_period(period_id)
        if period.is_closed:
            raise ValidationError(f"Accounting period {period.name} is closed and cannot be activated",
                                  field="period_id")

        current = self.storage.load(self.STATE_TABLE, self.ACTIVE_KEY)
        previous_id = current['period_id'] if current else None
        if previous_id == period_id:
            period.is_active = True
            return period

        self._swap_active(current, period_id)

        log_action(self.logger, "info", f"Accounting period activated: {period.name}",
                   user_id=user_id, action="activate_period", resource=f"accounting_period:{period_id}",
                   extra={"previous_period_id": previous_id})
        self._audit(AuditEventType.PERIOD_ACTIVATED, period_id, {"previous_period_id": previous_id}, user_id)

        period.is_active = True
        return period

    def get_active_period(self) -> Optional[AccountingPeriod]:
        period_id = self._active_period_id()
        if period_id is None:
            return None
        return self.get_period(period_id)

    def get_period(self, period_id: str) -> Optional[AccountingPeriod]:
        data = self.storage.load(self.table_name, period_id)
        if data:
            return AccountingPeriod.from_dict(data, is_active=(period_id == self._active_period_id()))
        return None

    def get_period_for_date(self, d: date) -> Optional[AccountingPeriod]:
        return self.get_period(period_id_for(d.year, d.month))

    def list_periods(self) -> List[AccountingPeriod]:
        """All periods, newest first"""
        active_id = self._active_period_id()
        periods = [
            AccountingPeriod.from_dict(d, is_active=(d['id'] == active_id))
            for d in self.storage.load_all(self.table_name)
        ]
        periods.sort(key=lambda p: (p.year, p.month), reverse=True)
        return periods

    def is_open_for(self, d: date) -> bool:
        period = self.get_period_for_date(d)
        return period is not None and not period.is_closed

    def validate_period_closure(
        self,
        period_id: str,
        unjournaled_transactions: int = 0,
        pending_journals: int = 0
    ) -> PeriodClosureCheck:
        """Collect everything that blocks closing `period_id`"""
        issues = []
        period = self.get_period(period_id)
        if period is None:
            issues.append(f"Accounting period {period_id} not found")
        elif period.is_closed:
            issues.append(f"Accounting period {period.name} is already closed")

        if unjournaled_transactions > 0:
            issues.append(f"{unjournaled_transactions} transactions have not been journaled yet")
        if pending_journals > 0:
            issues.append(f"{pending_journals} pending journal entries must be posted or discarded")

        return PeriodClosureCheck(can_close=not issues, issues=issues)

    def generate_closing_entries(
        self,
        period_id: str,
        journal_store: 'JournalStore',
        created_by: str = "system"
    ) -> Optional['JournalEntry']:
        """
        Build the closing draft for a period

        Every revenue and expense account with a nonzero balance for the
        month is zeroed against the current-year earnings account. Returns
        None when there is nothing to close.
        """
        from .ledger import JournalEntry, JournalLine, JournalType

        period = self._require_period(period_id)
        currency = self.config.ledger_currency

        # Net credit balance per nominal account for the month
        balances: Dict[str, Money] = {}
        for entry in journal_store.list_entries(start_date=period.start_date, end_date=period.end_date):
            if entry.journal_type == JournalType.CLOSING:
                continue
            for line in entry.lines:
                account = journal_store.chart.require_account(line.account_code)
                if account.account_type not in (AccountType.REVENUE, AccountType.EXPENSE):
                    continue
                current = balances.get(line.account_code, Money.zero(currency))
                balances[line.account_code] = current + line.credit - line.debit

        lines = []
        net_income = Money.zero(currency)
        for code in sorted(balances):
            balance = balances[code]
            if balance.is_zero():
                continue
            net_income = net_income + balance
            line_number = len(lines) + 1
            if balance.is_positive():
                lines.append(JournalLine.debit_line(code, balance, line_number, "Penutupan saldo akun"))
            else:
                lines.append(JournalLine.credit_line(code, -balance, line_number, "Penutupan saldo akun"))

        if not lines:
            return None

        earnings_code = self.config.account_current_year_earnings
        if net_income.is_positive():
            lines.append(JournalLine.credit_line(earnings_code, net_income, len(lines) + 1, "Laba tahun berjalan"))
        elif net_income.is_negative():
            lines.append(JournalLine.debit_line(earnings_code, -net_income, len(lines) + 1, "Rugi tahun berjalan"))

        return JournalEntry.draft(
            entry_date=period.end_date,
            journal_type=JournalType.CLOSING,
            description=f"Jurnal Penutup Periode {period.name}",
            lines=lines,
            created_by=created_by,
            reference_type="accounting_period",
            reference_id=period.id,
            is_auto_generated=True,
        )

    def close_period(self, request: PeriodCloseRequest, journal_store: 'JournalStore') -> AccountingPeriod:
        """
        Close a period: post its closing entry, mark it closed and, if it was
        the active period, move the active pointer to the following month.

        Raises:
            ValidationError: Unknown or closed period, missing confirmations,
                or outstanding transactions
        """
        period = self._require_period(request.period_id)
        if period.is_closed:
            raise ValidationError(f"Accounting period {period.name} is already closed", field="period_id")

        missing = [
            name for name in ("all_transactions_journaled", "no_pending_journals", "reports_reviewed")
            if not getattr(request, name)
        ]
        if missing:
            raise ValidationError(
                f"Cannot close {period.name}: confirm {', '.join(missing)} first", field=missing[0]
            )

        check = self.validate_period_closure(
            period.id, request.unjournaled_transactions, request.pending_journals
        )
        if not check.can_close:
            raise ValidationError(f"Cannot close {period.name}: " + "; ".join(check.issues),
                                  field="period_id")

        with self.storage.atomic():
            closing = self.generate_closing_entries(period.id, journal_store, request.closed_by)
            if closing is not None:
                closing = journal_store.post(closing, user_id=request.closed_by)

            now = datetime.now(timezone.utc)
            period.status = PeriodStatus.CLOSED
            period.closed_date = now.date()
            period.closed_by = request.closed_by
            period.closing_notes = request.closing_notes
            period.closing_entry_id = closing.id if closing else None
            period.updated_at = now
            self.storage.save(self.table_name, period.id, period.to_dict())

            next_period = None
            if period.is_active:
                year, month = _next_month(period.year, period.month)
                next_period = self.get_period(period_id_for(year, month))
                if next_period is None:
                    next_period = self.create_period(year, month, request.closed_by)
                current = self.storage.load(self.STATE_TABLE, self.ACTIVE_KEY)
                self._swap_active(current, next_period.id)
                period.is_active = False

        log_action(
            self.logger, "info", f"Accounting period closed: {period.name}",
            user_id=request.closed_by, action="close_period", resource=f"accounting_period:{period.id}",
            correlation_id=closing.journal_number if closing else None,
            extra={"next_active_period": next_period.id if next_period else None}
        )
        self._audit(AuditEventType.PERIOD_CLOSED, period.id, {
            "closing_journal_number": closing.journal_number if closing else None,
            "closing_notes": request.closing_notes,
            "next_active_period": next_period.id if next_period else None,
        }, request.closed_by)
        return period

    def _active_period_id(self) -> Optional[str]:
        state = self.storage.load(self.STATE_TABLE, self.ACTIVE_KEY)
        return state['period_id'] if state else None

    def _swap_active(self, current: Optional[Dict[str, Any]], period_id: str) -> None:
        new = {
            'id': self.ACTIVE_KEY,
            'period_id': period_id,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }
        if not self.storage.compare_and_swap(self.STATE_TABLE, self.ACTIVE_KEY, current, new):
            raise ValidationError(
                "The active accounting period was changed concurrently; reload and retry",
                field="period_id"
            )

    def _require_period(self, period_id: str) -> AccountingPeriod:
        period = self.get_period(period_id)
        if period is None:
            raise ValidationError(f"Accounting period {period_id} not found", field="period_id")
        return period

    def _audit(self, event_type: AuditEventType, period_id: str,
               metadata: Dict[str, Any], user_id: Optional[str]) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="accounting_period",
                entity_id=period_id,
                metadata=metadata,
                user_id=user_id
            )
