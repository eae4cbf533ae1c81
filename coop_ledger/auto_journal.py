"""
Auto-Journal Module

Turns cooperative business transactions (loan disbursement, loan payment,
savings deposit) into draft journal entries. Which accounts are debited and
credited is data in JOURNAL_TEMPLATES; adding a transaction type means adding
a template, not a branch. JournalIntegration wires the generator to the
journal store for the loan and savings services.
"""

from datetime import date
from dataclasses import dataclass, fields
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from enum import Enum

from .currency import Money, to_money
from .ledger import (
    JournalEntry, JournalLine, JournalStore, JournalType, validate_journal_balance
)
from .audit import AuditTrail, AuditEventType
from .config import CoopLedgerConfig, get_config
from .errors import (
    LedgerError, ValidationError, InvalidArgument, UnsupportedTransactionType,
    PersistenceError, JournalGenerationDefect
)
from .logging_config import get_logger, log_action


class TransactionType(Enum):
    LOAN_DISBURSEMENT = "loan_disbursement"
    LOAN_PAYMENT = "loan_payment"
    SAVINGS_DEPOSIT = "savings_deposit"


class SavingsType(Enum):
    POKOK = "pokok"          # One-time membership deposit
    WAJIB = "wajib"          # Mandatory monthly deposit
    SUKARELA = "sukarela"    # Voluntary deposit

    @property
    def label(self) -> str:
        return self.value.capitalize()


class LineSide(Enum):
    DEBIT = "debit"
    CREDIT = "credit"


@dataclass(frozen=True)
class LineRule:
    """
    One line of a journal template

    `account_key` names a configured standard account; "{savings_type}" in
    the key or description is filled from the payload. Optional lines are
    skipped when their amount is zero.
    """
    side: LineSide
    account_key: str
    amount_field: str
    description: str
    optional: bool = False


@dataclass(frozen=True)
class JournalTemplate:
    transaction_type: TransactionType
    reference_type: str
    description: str
    lines: Tuple[LineRule, ...]
    # Payload fields that split `amount`; all absent means the first takes it all
    split_fields: Tuple[str, ...] = ()

    @property
    def uses_savings_type(self) -> bool:
        return any("{savings_type}" in rule.account_key for rule in self.lines)


JOURNAL_TEMPLATES: Dict[TransactionType, JournalTemplate] = {
    TransactionType.LOAN_DISBURSEMENT: JournalTemplate(
        transaction_type=TransactionType.LOAN_DISBURSEMENT,
        reference_type="loan",
        description="Pencairan Pinjaman - {description}",
        lines=(
            LineRule(LineSide.DEBIT, "receivable", "amount", "Pencairan pinjaman"),
            LineRule(LineSide.CREDIT, "cash", "amount", "Pencairan pinjaman"),
        ),
    ),
    TransactionType.LOAN_PAYMENT: JournalTemplate(
        transaction_type=TransactionType.LOAN_PAYMENT,
        reference_type="loan",
        description="Pembayaran Angsuran - {description}",
        lines=(
            LineRule(LineSide.DEBIT, "cash", "amount", "Pembayaran angsuran"),
            LineRule(LineSide.CREDIT, "receivable", "principal_amount",
                     "Pembayaran pokok pinjaman", optional=True),
            LineRule(LineSide.CREDIT, "interest_revenue", "interest_amount",
                     "Pendapatan bunga pinjaman", optional=True),
        ),
        split_fields=("principal_amount", "interest_amount"),
    ),
    TransactionType.SAVINGS_DEPOSIT: JournalTemplate(
        transaction_type=TransactionType.SAVINGS_DEPOSIT,
        reference_type="saving",
        description="Setoran Simpanan {savings_label} - {description}",
        lines=(
            LineRule(LineSide.DEBIT, "cash", "amount", "Penerimaan simpanan {savings_type}"),
            LineRule(LineSide.CREDIT, "simpanan_{savings_type}", "amount", "Simpanan {savings_type} anggota"),
        ),
    ),
}


@dataclass
class TransactionPayload:
    """Business transaction data supplied by the loan and savings services"""
    amount: Any
    reference_id: Optional[str] = None
    member_id: Optional[str] = None
    description: str = ""
    principal_amount: Any = None
    interest_amount: Any = None
    savings_type: Union[SavingsType, str, None] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> 'TransactionPayload':
        known = {f.name for f in fields(cls)}
        if 'amount' not in data:
            raise ValidationError("Transaction amount is required", field="amount")
        return cls(**{k: v for k, v in data.items() if k in known})


class AutoJournalGenerator:
    """
    Builds balanced draft journal entries from business transactions.
    Pure construction; nothing is persisted here.
    """

    def __init__(
        self,
        config: Optional[CoopLedgerConfig] = None,
        templates: Optional[Mapping[TransactionType, JournalTemplate]] = None
    ):
        self.config = config or get_config()
        self.templates = dict(templates or JOURNAL_TEMPLATES)
        self.currency = self.config.ledger_currency
        self.accounts = self.config.standard_accounts()

    def generate(
        self,
        transaction_type: Union[TransactionType, str],
        payload: Union[TransactionPayload, Mapping[str, Any]],
        entry_date: Optional[date] = None,
        created_by: str = "system"
    ) -> JournalEntry:
        """
        Build the draft journal entry for a business transaction

        Args:
            transaction_type: One of TransactionType (or its value)
            payload: TransactionPayload or a mapping with the same keys
            entry_date: Defaults to today
            created_by: User or service recording the transaction

        Returns:
            Draft JournalEntry with is_auto_generated set

        Raises:
            UnsupportedTransactionType: No template for the type
            ValidationError: Missing or invalid amount, reference or split
            InvalidArgument: Unknown savings type
            JournalGenerationDefect: The template produced unbalanced lines
        """
        template = self._template_for(transaction_type)
        if not isinstance(payload, TransactionPayload):
            payload = TransactionPayload.from_mapping(payload)

        amount = self._amount(payload.amount, "amount")
        if not amount.is_positive():
            raise ValidationError("Transaction amount must be positive", field="amount")
        if not payload.reference_id:
            raise ValidationError("reference_id is required", field="reference_id")

        amounts = {"amount": amount}
        amounts.update(self._split(template, payload, amount))

        placeholders = {"description": payload.description or payload.member_id or payload.reference_id}
        if template.uses_savings_type:
            savings_type = self._savings_type(payload.savings_type)
            placeholders["savings_type"] = savings_type.value
            placeholders["savings_label"] = savings_type.label

        lines = []
        for rule in template.lines:
            line_amount = amounts.get(rule.amount_field, Money.zero(self.currency))
            if rule.optional and line_amount.is_zero():
                continue
            account_code = self._resolve_account(rule.account_key.format(**placeholders))
            description = rule.description.format(**placeholders)
            line_number = len(lines) + 1
            if rule.side == LineSide.DEBIT:
                lines.append(JournalLine.debit_line(account_code, line_amount, line_number, description))
            else:
                lines.append(JournalLine.credit_line(account_code, line_amount, line_number, description))

        balance = validate_journal_balance(lines)
        if not balance.is_balanced:
            raise JournalGenerationDefect(
                f"Template for {template.transaction_type.value} produced unbalanced lines: "
                f"debit={balance.total_debit.amount} credit={balance.total_credit.amount}"
            )

        return JournalEntry.draft(
            entry_date=entry_date or date.today(),
            journal_type=JournalType.GENERAL,
            description=template.description.format(**placeholders),
            lines=lines,
            created_by=created_by,
            reference_type=template.reference_type,
            reference_id=payload.reference_id,
            is_auto_generated=True,
        )

    def _template_for(self, transaction_type: Union[TransactionType, str]) -> JournalTemplate:
        if not isinstance(transaction_type, TransactionType):
            try:
                transaction_type = TransactionType(transaction_type)
            except ValueError:
                raise UnsupportedTransactionType(f"Unsupported transaction type: {transaction_type}")
        template = self.templates.get(transaction_type)
        if template is None:
            raise UnsupportedTransactionType(f"No journal template for {transaction_type.value}")
        return template

    def _amount(self, value: Any, field_name: str) -> Money:
        try:
            return to_money(value, self.currency)
        except ValueError:
            raise ValidationError(f"{field_name} is not a valid amount: {value!r}", field=field_name)

    def _split(self, template: JournalTemplate, payload: TransactionPayload,
               amount: Money) -> Dict[str, Money]:
        if not template.split_fields:
            return {}

        given = {name: getattr(payload, name) for name in template.split_fields}
        if all(value is None for value in given.values()):
            split = {name: Money.zero(self.currency) for name in template.split_fields}
            split[template.split_fields[0]] = amount
            return split

        split = {}
        for name, value in given.items():
            part = self._amount(value, name) if value is not None else Money.zero(self.currency)
            if part.is_negative():
                raise ValidationError(f"{name} cannot be negative", field=name)
            split[name] = part

        total = Money.zero(self.currency)
        for part in split.values():
            total = total + part
        if total != amount:
            raise ValidationError(
                f"{' + '.join(template.split_fields)} must equal amount "
                f"({total.amount} != {amount.amount})", field=template.split_fields[0]
            )
        return split

    def _savings_type(self, value: Union[SavingsType, str, None]) -> SavingsType:
        if isinstance(value, SavingsType):
            return value
        try:
            return SavingsType(str(value).lower())
        except ValueError:
            raise InvalidArgument(
                f"Invalid savings_type {value!r}; expected one of "
                f"{', '.join(t.value for t in SavingsType)}", field="savings_type"
            )

    def _resolve_account(self, account_key: str) -> str:
        code = self.accounts.get(account_key)
        if code is None:
            raise ValidationError(f"No standard account configured for '{account_key}'", field="account_code")
        return code


@dataclass
class JournalIntegrationResult:
    success: bool
    journal_number: Optional[str] = None
    entry: Optional[JournalEntry] = None
    error: Optional[str] = None


class JournalIntegration:
    """
    Posts auto-generated journals on behalf of the business services

    With the "warn" policy a journal failure is logged and reported in the
    result while the business transaction stands. With "raise" the error
    propagates; callers wanting atomicity wrap their own write and this call
    in storage.atomic().
    """

    def __init__(
        self,
        generator: AutoJournalGenerator,
        journal_store: JournalStore,
        audit_trail: Optional[AuditTrail] = None,
        failure_policy: Optional[str] = None
    ):
        self.generator = generator
        self.journal_store = journal_store
        self.audit_trail = audit_trail
        self.failure_policy = failure_policy or generator.config.journal_failure_policy
        self.logger = get_logger("coop_ledger.auto_journal")

    def record(
        self,
        transaction_type: Union[TransactionType, str],
        payload: Union[TransactionPayload, Mapping[str, Any]],
        entry_date: Optional[date] = None,
        created_by: str = "system"
    ) -> JournalIntegrationResult:
        """Generate and post the journal for one business transaction"""
        try:
            draft = self.generator.generate(transaction_type, payload, entry_date, created_by)
            posted = self.journal_store.post(draft, user_id=created_by)
        except PersistenceError:
            raise
        except LedgerError as e:
            if self.failure_policy == "raise":
                raise
            self._report_failure(transaction_type, payload, created_by, e)
            return JournalIntegrationResult(success=False, error=str(e))

        return JournalIntegrationResult(success=True, journal_number=posted.journal_number, entry=posted)

    def on_loan_disbursement(
        self,
        loan_id: str,
        member_name: str,
        amount: Any,
        disbursement_date: Optional[date] = None,
        member_id: Optional[str] = None,
        created_by: str = "system"
    ) -> JournalIntegrationResult:
        return self.record(TransactionType.LOAN_DISBURSEMENT, TransactionPayload(
            amount=amount,
            reference_id=loan_id,
            member_id=member_id,
            description=f"Anggota: {member_name}",
        ), disbursement_date, created_by)

    def on_loan_payment(
        self,
        loan_id: str,
        member_name: str,
        amount: Any,
        principal_amount: Any = None,
        interest_amount: Any = None,
        payment_date: Optional[date] = None,
        member_id: Optional[str] = None,
        created_by: str = "system"
    ) -> JournalIntegrationResult:
        return self.record(TransactionType.LOAN_PAYMENT, TransactionPayload(
            amount=amount,
            reference_id=loan_id,
            member_id=member_id,
            description=f"Anggota: {member_name}",
            principal_amount=principal_amount,
            interest_amount=interest_amount,
        ), payment_date, created_by)

    def on_savings_deposit(
        self,
        saving_id: str,
        member_name: str,
        amount: Any,
        savings_type: Union[SavingsType, str],
        deposit_date: Optional[date] = None,
        member_id: Optional[str] = None,
        created_by: str = "system"
    ) -> JournalIntegrationResult:
        return self.record(TransactionType.SAVINGS_DEPOSIT, TransactionPayload(
            amount=amount,
            reference_id=saving_id,
            member_id=member_id,
            description=f"Anggota: {member_name}",
            savings_type=savings_type,
        ), deposit_date, created_by)

    def _report_failure(self, transaction_type, payload, created_by: str, error: LedgerError) -> None:
        type_value = transaction_type.value if isinstance(transaction_type, TransactionType) else str(transaction_type)
        reference_id = (
            payload.reference_id if isinstance(payload, TransactionPayload) else payload.get('reference_id')
        )
        log_action(
            self.logger, "warning", f"Auto journal failed for {type_value}: {error}",
            user_id=created_by, action="auto_journal", resource=f"transaction:{reference_id}",
            correlation_id=reference_id,
            extra={"transaction_type": type_value, "error_type": type(error).__name__}
        )
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=AuditEventType.AUTO_JOURNAL_FAILED,
                entity_type="transaction",
                entity_id=str(reference_id),
                metadata={"transaction_type": type_value, "error": str(error)},
                user_id=created_by
            )
