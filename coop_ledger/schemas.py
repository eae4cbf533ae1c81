"""
Pydantic schemas for report consumers and journal requests
"""

from decimal import Decimal
from datetime import date
from typing import List, Optional
from pydantic import BaseModel, Field

from .currency import Money, Currency
from .ledger import JournalEntry, JournalLine
from .auto_journal import TransactionPayload
from .reporting import TrialBalanceData, TrialBalanceAccount, GeneralLedgerAccount, GeneralLedgerTransaction
from .statements import (
    StatementItem, IncomeStatementData, IncomeStatementSummary, IncomeStatementTotals,
    BalanceSheetReport, BalanceSheetTotals
)


class MoneyModel(BaseModel):
    amount: str = Field(..., description="Decimal amount as string")
    currency: str = Field("IDR", description="Currency code")

    def to_money(self) -> Money:
        return Money(Decimal(self.amount), Currency[self.currency])

    @classmethod
    def from_money(cls, money: Money) -> 'MoneyModel':
        return cls(amount=str(money.amount), currency=money.currency.code)


# Journal schemas
class RecordTransactionRequest(BaseModel):
    """Business transaction to journal through JournalIntegration.record"""
    transaction_type: str = Field(..., description="loan_disbursement, loan_payment or savings_deposit")
    amount: str  # Decimal as string
    reference_id: str
    member_id: Optional[str] = None
    description: str = ""
    principal_amount: Optional[str] = None
    interest_amount: Optional[str] = None
    savings_type: Optional[str] = Field(None, description="pokok, wajib or sukarela")
    entry_date: Optional[date] = None
    created_by: str = "system"

    def to_payload(self) -> TransactionPayload:
        return TransactionPayload(
            amount=self.amount,
            reference_id=self.reference_id,
            member_id=self.member_id,
            description=self.description,
            principal_amount=self.principal_amount,
            interest_amount=self.interest_amount,
            savings_type=self.savings_type,
        )


class JournalLineModel(BaseModel):
    line_number: int
    account_code: str
    debit: str
    credit: str
    description: str = ""

    @classmethod
    def from_line(cls, line: JournalLine) -> 'JournalLineModel':
        return cls(
            line_number=line.line_number,
            account_code=line.account_code,
            debit=str(line.debit.amount),
            credit=str(line.credit.amount),
            description=line.description,
        )


class JournalEntryResponse(BaseModel):
    id: str
    journal_number: Optional[str] = None
    entry_date: date
    journal_type: str
    description: str
    reference_type: Optional[str] = None
    reference_id: Optional[str] = None
    is_auto_generated: bool
    created_by: str
    state: str
    reverses: Optional[str] = None
    currency: str
    total_debit: str
    total_credit: str
    lines: List[JournalLineModel]

    @classmethod
    def from_entry(cls, entry: JournalEntry) -> 'JournalEntryResponse':
        balance = entry.balance()
        return cls(
            id=entry.id,
            journal_number=entry.journal_number,
            entry_date=entry.entry_date,
            journal_type=entry.journal_type.value,
            description=entry.description,
            reference_type=entry.reference_type,
            reference_id=entry.reference_id,
            is_auto_generated=entry.is_auto_generated,
            created_by=entry.created_by,
            state=entry.state.value,
            reverses=entry.reverses,
            currency=balance.total_debit.currency.code,
            total_debit=str(balance.total_debit.amount),
            total_credit=str(balance.total_credit.amount),
            lines=[JournalLineModel.from_line(line) for line in entry.lines],
        )


# Ledger report schemas
class TrialBalanceAccountModel(BaseModel):
    account_code: str
    account_name: str
    account_type: str
    reporting_category: str
    opening_balance: str
    debit: str
    credit: str
    debit_balance: str
    credit_balance: str

    @classmethod
    def from_account(cls, account: TrialBalanceAccount) -> 'TrialBalanceAccountModel':
        return cls(
            account_code=account.account_code,
            account_name=account.account_name,
            account_type=account.account_type.value,
            reporting_category=account.reporting_category.value,
            opening_balance=str(account.opening_balance.amount),
            debit=str(account.debit.amount),
            credit=str(account.credit.amount),
            debit_balance=str(account.debit_balance.amount),
            credit_balance=str(account.credit_balance.amount),
        )


class TrialBalanceResponse(BaseModel):
    start_date: Optional[date] = None
    end_date: date
    currency: str
    accounts: List[TrialBalanceAccountModel]
    total_debit: str
    total_credit: str
    is_balanced: bool

    @classmethod
    def from_data(cls, data: TrialBalanceData) -> 'TrialBalanceResponse':
        return cls(
            start_date=data.start_date,
            end_date=data.end_date,
            currency=data.currency.code,
            accounts=[TrialBalanceAccountModel.from_account(a) for a in data.accounts],
            total_debit=str(data.total_debit.amount),
            total_credit=str(data.total_credit.amount),
            is_balanced=data.is_balanced,
        )


class GeneralLedgerTransactionModel(BaseModel):
    entry_date: date
    journal_number: str
    description: str
    debit: str
    credit: str
    balance: str

    @classmethod
    def from_transaction(cls, txn: GeneralLedgerTransaction) -> 'GeneralLedgerTransactionModel':
        return cls(
            entry_date=txn.entry_date,
            journal_number=txn.journal_number,
            description=txn.description,
            debit=str(txn.debit.amount),
            credit=str(txn.credit.amount),
            balance=str(txn.balance.amount),
        )


class GeneralLedgerAccountModel(BaseModel):
    account_code: str
    account_name: str
    account_type: str
    normal_balance: str
    opening_balance: str
    transactions: List[GeneralLedgerTransactionModel]
    total_debit: str
    total_credit: str
    balance: str

    @classmethod
    def from_account(cls, account: GeneralLedgerAccount) -> 'GeneralLedgerAccountModel':
        return cls(
            account_code=account.account_code,
            account_name=account.account_name,
            account_type=account.account_type.value,
            normal_balance=account.normal_balance.value,
            opening_balance=str(account.opening_balance.amount),
            transactions=[GeneralLedgerTransactionModel.from_transaction(t) for t in account.transactions],
            total_debit=str(account.total_debit.amount),
            total_credit=str(account.total_credit.amount),
            balance=str(account.balance.amount),
        )


# Statement schemas
class StatementItemModel(BaseModel):
    code: str
    name: str
    current: str
    previous: str

    @classmethod
    def from_item(cls, item: StatementItem) -> 'StatementItemModel':
        return cls(code=item.code, name=item.name,
                   current=str(item.current.amount), previous=str(item.previous.amount))


def _items(items: List[StatementItem]) -> List[StatementItemModel]:
    return [StatementItemModel.from_item(item) for item in items]


class IncomeStatementTotalsModel(BaseModel):
    total_revenue: str
    total_operating_expenses: str
    operating_income: str
    total_non_operating_income: str
    total_non_operating_expenses: str
    non_operating_income: str
    net_income: str

    @classmethod
    def from_totals(cls, totals: IncomeStatementTotals) -> 'IncomeStatementTotalsModel':
        return cls(**{
            name: str(getattr(totals, name).amount) for name in cls.model_fields
        })


class IncomeStatementResponse(BaseModel):
    revenue: List[StatementItemModel]
    operating_expenses: List[StatementItemModel]
    non_operating_income: List[StatementItemModel]
    non_operating_expenses: List[StatementItemModel]
    current: IncomeStatementTotalsModel
    previous: IncomeStatementTotalsModel
    gross_margin: str = Field(..., description="Percent of revenue")
    net_margin: str = Field(..., description="Percent of revenue")
    operating_expense_ratio: str = Field(..., description="Percent of revenue")

    @classmethod
    def from_data(cls, data: IncomeStatementData, summary: IncomeStatementSummary) -> 'IncomeStatementResponse':
        return cls(
            revenue=_items(data.revenue),
            operating_expenses=_items(data.operating_expenses),
            non_operating_income=_items(data.non_operating_income),
            non_operating_expenses=_items(data.non_operating_expenses),
            current=IncomeStatementTotalsModel.from_totals(summary.current),
            previous=IncomeStatementTotalsModel.from_totals(summary.previous),
            gross_margin=str(summary.ratios.gross_margin),
            net_margin=str(summary.ratios.net_margin),
            operating_expense_ratio=str(summary.ratios.operating_expense_ratio),
        )


class BalanceSheetTotalsModel(BaseModel):
    total_current_assets: str
    total_non_current_assets: str
    total_assets: str
    total_current_liabilities: str
    total_non_current_liabilities: str
    total_liabilities: str
    total_equity: str
    total_liabilities_and_equity: str

    @classmethod
    def from_totals(cls, totals: BalanceSheetTotals) -> 'BalanceSheetTotalsModel':
        return cls(**{
            name: str(getattr(totals, name).amount) for name in cls.model_fields
        })


class BalanceSheetResponse(BaseModel):
    current_assets: List[StatementItemModel]
    non_current_assets: List[StatementItemModel]
    current_liabilities: List[StatementItemModel]
    non_current_liabilities: List[StatementItemModel]
    equity: List[StatementItemModel]
    current: BalanceSheetTotalsModel
    previous: BalanceSheetTotalsModel
    net_income_current: str
    net_income_previous: str
    is_balanced: bool
    previous_is_balanced: bool

    @classmethod
    def from_report(cls, report: BalanceSheetReport) -> 'BalanceSheetResponse':
        return cls(
            current_assets=_items(report.data.current_assets),
            non_current_assets=_items(report.data.non_current_assets),
            current_liabilities=_items(report.data.current_liabilities),
            non_current_liabilities=_items(report.data.non_current_liabilities),
            equity=_items(report.data.equity),
            current=BalanceSheetTotalsModel.from_totals(report.current),
            previous=BalanceSheetTotalsModel.from_totals(report.previous),
            net_income_current=str(report.net_income_current.amount),
            net_income_previous=str(report.net_income_previous.amount),
            is_balanced=report.is_balanced,
            previous_is_balanced=report.previous_is_balanced,
        )
