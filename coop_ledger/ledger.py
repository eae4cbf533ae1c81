"""
Double-Entry Journal Module

Journal entries are built as drafts, validated and then posted through the
JournalStore. Posting checks the balance, the accounts and the accounting
period, assigns a sequential journal number and inserts header and lines as
one record. Posted entries are immutable; corrections are reversing entries.
"""

from decimal import Decimal
from datetime import date, datetime, timezone
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Set, Tuple, TYPE_CHECKING
from enum import Enum
import uuid

from .currency import Money, Currency, sum_money
from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .chart_of_accounts import ChartOfAccounts
from .config import CoopLedgerConfig, get_config
from .errors import (
    ValidationError, UnbalancedEntryError, ClosedPeriodError
)
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .periods import PeriodManager


class JournalType(Enum):
    """Journal books; the value maps to the journal number prefix"""
    GENERAL = "general"          # Jurnal Umum
    SPECIAL = "special"          # Jurnal Khusus
    ADJUSTMENT = "adjustment"    # Jurnal Penyesuaian
    CLOSING = "closing"          # Jurnal Penutup
    REVERSING = "reversing"      # Jurnal Balik

    @property
    def prefix(self) -> str:
        return JOURNAL_NUMBER_PREFIXES[self]


JOURNAL_NUMBER_PREFIXES = {
    JournalType.GENERAL: "JU",
    JournalType.SPECIAL: "JK",
    JournalType.ADJUSTMENT: "JP",
    JournalType.CLOSING: "JT",
    JournalType.REVERSING: "JB",
}


class JournalEntryState(Enum):
    DRAFT = "draft"      # Built but not persisted
    POSTED = "posted"    # Persisted, immutable


@dataclass
class JournalLine:
    """
    Individual line of a journal entry
    Each line affects one account with either a debit or a credit
    """
    account_code: str
    debit: Money
    credit: Money
    line_number: int
    description: str = ""

    def __post_init__(self):
        if self.debit.currency != self.credit.currency:
            raise ValidationError(
                f"Line {self.line_number}: debit and credit must use the same currency",
                field="lines"
            )
        if self.debit.is_negative() or self.credit.is_negative():
            raise ValidationError(
                f"Line {self.line_number} ({self.account_code}): amounts cannot be negative",
                field="lines"
            )

        debit_zero = self.debit.is_zero()
        credit_zero = self.credit.is_zero()
        if debit_zero and credit_zero:
            raise ValidationError(
                f"Line {self.line_number} ({self.account_code}) must have either a debit or a credit amount",
                field="lines"
            )
        if not debit_zero and not credit_zero:
            raise ValidationError(
                f"Line {self.line_number} ({self.account_code}) cannot have both debit and credit amounts",
                field="lines"
            )

    @classmethod
    def debit_line(cls, account_code: str, amount: Money, line_number: int,
                   description: str = "") -> 'JournalLine':
        return cls(account_code, amount, Money.zero(amount.currency), line_number, description)

    @classmethod
    def credit_line(cls, account_code: str, amount: Money, line_number: int,
                    description: str = "") -> 'JournalLine':
        return cls(account_code, Money.zero(amount.currency), amount, line_number, description)

    @property
    def currency(self) -> Currency:
        return self.debit.currency

    @property
    def is_debit(self) -> bool:
        return not self.debit.is_zero()

    @property
    def amount(self) -> Money:
        """The non-zero side"""
        return self.debit if self.is_debit else self.credit

    def swapped(self, description: str) -> 'JournalLine':
        """Same line with debit and credit exchanged"""
        return JournalLine(self.account_code, self.credit, self.debit, self.line_number, description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'account_code': self.account_code,
            'debit': str(self.debit.amount),
            'credit': str(self.credit.amount),
            'currency': self.currency.code,
            'line_number': self.line_number,
            'description': self.description,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JournalLine':
        currency = Currency[data['currency']]
        return cls(
            account_code=data['account_code'],
            debit=Money(Decimal(data['debit']), currency),
            credit=Money(Decimal(data['credit']), currency),
            line_number=data['line_number'],
            description=data.get('description', ""),
        )


@dataclass(frozen=True)
class JournalBalance:
    """Result of summing the debit and credit columns"""
    is_balanced: bool
    total_debit: Money
    total_credit: Money
    difference: Money


def validate_journal_balance(lines: List[JournalLine]) -> JournalBalance:
    """
    Sum debit and credit columns

    `is_balanced` requires an exact match; the posting tolerance is applied
    by JournalStore, not here.
    """
    currency = lines[0].currency if lines else Currency.IDR
    total_debit = sum_money((line.debit for line in lines), currency)
    total_credit = sum_money((line.credit for line in lines), currency)
    difference = abs(total_debit - total_credit)
    return JournalBalance(
        is_balanced=difference.is_zero(),
        total_debit=total_debit,
        total_credit=total_credit,
        difference=difference,
    )


def format_journal_number(journal_type: JournalType, entry_date: date, sequence: int) -> str:
    """PREFIX-YYYYMM-NNNN, e.g. JU-202401-0007"""
    return f"{journal_type.prefix}-{entry_date:%Y%m}-{sequence:04d}"


@dataclass
class JournalEntry(StorageRecord):
    """
    Journal entry header with its ordered lines
    Drafts may be unbalanced; JournalStore.post refuses them
    """
    entry_date: date
    journal_type: JournalType
    description: str
    lines: List[JournalLine]
    created_by: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    is_auto_generated: bool = False
    state: JournalEntryState = JournalEntryState.DRAFT
    journal_number: Optional[str] = None
    sequence: Optional[int] = None  # numeric part of journal_number
    posted_at: Optional[datetime] = None
    reverses: Optional[str] = None  # ID of the entry this one reverses

    @classmethod
    def draft(
        cls,
        entry_date: date,
        journal_type: JournalType,
        description: str,
        lines: List[JournalLine],
        created_by: str,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None,
        is_auto_generated: bool = False,
        reverses: Optional[str] = None
    ) -> 'JournalEntry':
        now = datetime.now(timezone.utc)
        return cls(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            entry_date=entry_date,
            journal_type=journal_type,
            description=description,
            lines=list(lines),
            created_by=created_by,
            reference_type=reference_type,
            reference_id=reference_id,
            is_auto_generated=is_auto_generated,
            reverses=reverses,
        )

    @property
    def is_posted(self) -> bool:
        return self.state == JournalEntryState.POSTED

    @property
    def total_debit(self) -> Money:
        return self.balance().total_debit

    @property
    def total_credit(self) -> Money:
        return self.balance().total_credit

    def balance(self) -> JournalBalance:
        return validate_journal_balance(self.lines)

    @property
    def sort_key(self) -> Tuple[date, str, int]:
        """Chronological order: entry date, then journal prefix, then numeric sequence"""
        sequence = self.sequence
        if sequence is None and self.journal_number:
            sequence = int(self.journal_number.rsplit('-', 1)[1])
        return (self.entry_date, self.journal_type.prefix, sequence or 0)

    def get_affected_accounts(self) -> Set[str]:
        return {line.account_code for line in self.lines}

    def get_currencies(self) -> Set[Currency]:
        return {line.currency for line in self.lines}

    def validate_balance(self, tolerance: Decimal = Decimal('0.01')) -> JournalBalance:
        """
        Check the double-entry rule

        Raises:
            ValidationError: Fewer than two lines or mixed currencies
            UnbalancedEntryError: |debits - credits| is not below `tolerance`
        """
        if len(self.lines) < 2:
            raise ValidationError("Journal entry must have at least two lines", field="lines")
        if len(self.get_currencies()) > 1:
            raise ValidationError("Journal entry lines must use a single currency", field="lines")

        result = self.balance()
        if result.difference.amount >= tolerance:
            raise UnbalancedEntryError(
                f"Journal entry not balanced: debits={result.total_debit.to_string()}, "
                f"credits={result.total_credit.to_string()}",
                total_debit=result.total_debit,
                total_credit=result.total_credit,
            )
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'updated_at': self.updated_at.isoformat(),
            'entry_date': self.entry_date.isoformat(),
            'journal_type': self.journal_type.value,
            'description': self.description,
            'lines': [line.to_dict() for line in self.lines],
            'created_by': self.created_by,
            'reference_type': self.reference_type,
            'reference_id': self.reference_id,
            'is_auto_generated': self.is_auto_generated,
            'state': self.state.value,
            'journal_number': self.journal_number,
            'sequence': self.sequence,
            'posted_at': self.posted_at.isoformat() if self.posted_at else None,
            'reverses': self.reverses,
            # Denormalized for storage-level lookups
            'account_codes': sorted(self.get_affected_accounts()),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'JournalEntry':
        return cls(
            id=data['id'],
            created_at=datetime.fromisoformat(data['created_at']),
            updated_at=datetime.fromisoformat(data['updated_at']),
            entry_date=date.fromisoformat(data['entry_date']),
            journal_type=JournalType(data['journal_type']),
            description=data['description'],
            lines=[JournalLine.from_dict(line) for line in data['lines']],
            created_by=data['created_by'],
            reference_type=data.get('reference_type'),
            reference_id=data.get('reference_id'),
            is_auto_generated=data.get('is_auto_generated', False),
            state=JournalEntryState(data['state']),
            journal_number=data.get('journal_number'),
            sequence=data.get('sequence'),
            posted_at=datetime.fromisoformat(data['posted_at']) if data.get('posted_at') else None,
            reverses=data.get('reverses'),
        )


@dataclass(frozen=True)
class PostedLine:
    """A posted journal line together with its entry header fields"""
    entry_id: str
    entry_date: date
    journal_number: str
    entry_description: str
    line: JournalLine


class JournalStore:
    """
    Persists journal entries and enforces the posting invariants
    """

    def __init__(
        self,
        storage: StorageInterface,
        chart: ChartOfAccounts,
        audit_trail: Optional[AuditTrail] = None,
        period_manager: Optional['PeriodManager'] = None,
        config: Optional[CoopLedgerConfig] = None
    ):
        self.storage = storage
        self.chart = chart
        self.audit_trail = audit_trail
        self.period_manager = period_manager
        self.config = config or get_config()
        self.table_name = "journal_entries"
        self.logger = get_logger("coop_ledger.journal")

    def post(
        self,
        entry: JournalEntry,
        allow_closed_period: bool = False,
        user_id: Optional[str] = None
    ) -> JournalEntry:
        """
        Validate and persist a draft journal entry

        Args:
            entry: Draft entry
            allow_closed_period: Permit an adjustment entry dated in a closed period
            user_id: User posting the entry (defaults to entry.created_by)

        Returns:
            The posted entry (a new object; the draft is left untouched)

        Raises:
            ValidationError: Structural or account problems
            UnbalancedEntryError: Debits and credits differ
            ClosedPeriodError: Entry date is not in an open period
            PersistenceError: Storage refused the insert
        """
        if entry.state != JournalEntryState.DRAFT:
            raise ValidationError(
                f"Journal entry {entry.journal_number or entry.id} is already posted", field="state"
            )

        entry.validate_balance(self.config.tolerance)
        self._validate_accounts(entry)
        self._validate_period(entry, allow_closed_period)

        try:
            with self.storage.atomic():
                sequence = self.storage.next_sequence(
                    f"journal:{entry.journal_type.prefix}-{entry.entry_date:%Y%m}"
                )
                now = datetime.now(timezone.utc)
                posted = replace(
                    entry,
                    lines=list(entry.lines),
                    state=JournalEntryState.POSTED,
                    journal_number=format_journal_number(entry.journal_type, entry.entry_date, sequence),
                    sequence=sequence,
                    posted_at=now,
                    updated_at=now,
                )
                self.storage.insert(self.table_name, posted.id, posted.to_dict())
        except Exception as e:
            log_action(
                self.logger, "error", f"Failed to persist journal entry: {e}",
                user_id=user_id or entry.created_by, action="post_journal",
                resource=f"journal_entry:{entry.id}",
                correlation_id=entry.reference_id or entry.id,
                extra={"reference_type": entry.reference_type, "entry_date": entry.entry_date.isoformat()}
            )
            raise

        totals = posted.balance()
        log_action(
            self.logger, "info", f"Journal entry posted: {posted.journal_number}",
            user_id=user_id or posted.created_by, action="post_journal",
            resource=f"journal_entry:{posted.id}", correlation_id=posted.journal_number,
            extra={
                "journal_type": posted.journal_type.value,
                "entry_date": posted.entry_date.isoformat(),
                "total": totals.total_debit.to_string(),
                "reference_type": posted.reference_type,
                "reference_id": posted.reference_id,
                "is_auto_generated": posted.is_auto_generated,
            }
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.JOURNAL_ENTRY_POSTED,
                entity_type="journal_entry",
                entity_id=posted.id,
                metadata={
                    "journal_number": posted.journal_number,
                    "entry_date": posted.entry_date,
                    "total_debit": totals.total_debit.amount,
                    "total_credit": totals.total_credit.amount,
                    "accounts": sorted(posted.get_affected_accounts()),
                    "reference_type": posted.reference_type,
                    "reference_id": posted.reference_id,
                },
                user_id=user_id or posted.created_by
            )

        return posted

    def reverse(
        self,
        entry_id: str,
        reason: str,
        entry_date: Optional[date] = None,
        created_by: str = "system"
    ) -> JournalEntry:
        """
        Reverse a posted entry by posting a counter-entry

        The reversing entry swaps debit and credit on every line and points
        back to the original; the original itself is never modified.

        Raises:
            ValidationError: Entry not found or already reversed
            ClosedPeriodError: Reversal date not in an open period
        """
        original = self.get_entry(entry_id)
        if original is None:
            raise ValidationError(f"Journal entry {entry_id} not found", field="entry_id")

        with self.storage.atomic():
            existing = self.find_reversal(entry_id)
            if existing is not None:
                raise ValidationError(
                    f"Journal entry {original.journal_number} was already reversed by "
                    f"{existing.journal_number}", field="entry_id"
                )

            reversing = JournalEntry.draft(
                entry_date=entry_date or date.today(),
                journal_type=JournalType.REVERSING,
                description=f"Jurnal Balik {original.journal_number} - {reason}",
                lines=[
                    line.swapped(f"Balik: {line.description}") for line in original.lines
                ],
                created_by=created_by,
                reference_type="journal_entry",
                reference_id=original.id,
                reverses=original.id,
            )
            posted = self.post(reversing, user_id=created_by)

        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.JOURNAL_ENTRY_REVERSED,
                entity_type="journal_entry",
                entity_id=original.id,
                metadata={
                    "journal_number": original.journal_number,
                    "reversing_journal_number": posted.journal_number,
                    "reason": reason,
                },
                user_id=created_by
            )
        return posted

    def get_entry(self, entry_id: str) -> Optional[JournalEntry]:
        data = self.storage.load(self.table_name, entry_id)
        if data:
            return JournalEntry.from_dict(data)
        return None

    def get_by_journal_number(self, journal_number: str) -> Optional[JournalEntry]:
        found = self.storage.find(self.table_name, {'journal_number': journal_number})
        if found:
            return JournalEntry.from_dict(found[0])
        return None

    def find_reversal(self, entry_id: str) -> Optional[JournalEntry]:
        """The reversing entry pointing at `entry_id`, if any"""
        found = self.storage.find(self.table_name, {'reverses': entry_id})
        if found:
            return JournalEntry.from_dict(found[0])
        return None

    def list_entries(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        journal_type: Optional[JournalType] = None,
        reference_type: Optional[str] = None,
        reference_id: Optional[str] = None
    ) -> List[JournalEntry]:
        """Posted entries filtered by date range (inclusive) and header fields"""
        filters: Dict[str, Any] = {}
        if journal_type is not None:
            filters['journal_type'] = journal_type.value
        if reference_type is not None:
            filters['reference_type'] = reference_type
        if reference_id is not None:
            filters['reference_id'] = reference_id

        entries = [JournalEntry.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        if start_date is not None:
            entries = [e for e in entries if e.entry_date >= start_date]
        if end_date is not None:
            entries = [e for e in entries if e.entry_date <= end_date]
        entries.sort(key=lambda e: e.sort_key)
        return entries

    def query_lines(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        account_codes: Optional[List[str]] = None,
        include_closing: bool = True
    ) -> List[PostedLine]:
        """
        Posted lines in chronological order

        Ordered like list_entries, then by line number within an entry.
        With include_closing=False, period closing entries are skipped so
        revenue and expense accounts keep their pre-closing movements.
        """
        codes = set(account_codes) if account_codes is not None else None
        result = []
        for entry in self.list_entries(start_date=start_date, end_date=end_date):
            if not include_closing and entry.journal_type == JournalType.CLOSING:
                continue
            for line in sorted(entry.lines, key=lambda l: l.line_number):
                if codes is not None and line.account_code not in codes:
                    continue
                result.append(PostedLine(
                    entry_id=entry.id,
                    entry_date=entry.entry_date,
                    journal_number=entry.journal_number,
                    entry_description=entry.description,
                    line=line,
                ))
        return result

    def is_account_referenced(self, account_code: str) -> bool:
        return any(
            account_code in data.get('account_codes', [])
            for data in self.storage.load_all(self.table_name)
        )

    def _validate_accounts(self, entry: JournalEntry) -> None:
        for line in entry.lines:
            account = self.chart.get_account(line.account_code)
            if account is None:
                raise ValidationError(
                    f"Line {line.line_number}: account {line.account_code} not found", field="account_code"
                )
            if not account.is_active:
                raise ValidationError(
                    f"Line {line.line_number}: account {line.account_code} ({account.name}) is inactive",
                    field="account_code"
                )

    def _validate_period(self, entry: JournalEntry, allow_closed_period: bool) -> None:
        if self.period_manager is None:
            return

        d = entry.entry_date
        period = self.period_manager.get_period_for_date(d)
        if period is None:
            if self.config.require_open_period:
                raise ClosedPeriodError(
                    f"No accounting period defined for {d.month:02d}/{d.year}",
                    year=d.year, month=d.month
                )
            return

        if period.is_closed:
            if allow_closed_period and entry.journal_type == JournalType.ADJUSTMENT:
                log_action(
                    self.logger, "warning",
                    f"Posting adjustment into closed period {period.name}",
                    user_id=entry.created_by, action="post_journal",
                    resource=f"journal_entry:{entry.id}", correlation_id=entry.reference_id
                )
                return
            hint = "" if not allow_closed_period else "; only adjustment entries may override a closed period"
            raise ClosedPeriodError(
                f"Accounting period {period.name} is closed{hint}",
                year=period.year, month=period.month
            )
