"""
Financial Statements Module

Income statement and balance sheet views derived from ledger aggregates.
Accounts are classified by the reporting category stored on each account.
Revenue and liability/equity amounts are credit minus debit; asset and
expense amounts are debit minus credit.
"""

from decimal import Decimal
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Union

from .currency import Money, Currency
from .chart_of_accounts import AccountType, ReportingCategory
from .reporting import GeneralLedgerAccount, TrialBalanceAccount, TrialBalanceData
from .logging_config import get_logger

logger = get_logger("coop_ledger.statements")

CURRENT_YEAR_EARNINGS_CODE = "3-9999"
CURRENT_YEAR_EARNINGS_NAME = "SHU Tahun Berjalan"
BALANCE_TOLERANCE = Decimal('0.01')

LedgerRow = Union[GeneralLedgerAccount, TrialBalanceAccount]
TrialBalanceInput = Union[TrialBalanceData, Sequence[TrialBalanceAccount], None]


@dataclass
class StatementItem:
    code: str
    name: str
    current: Money
    previous: Money


@dataclass
class IncomeStatementData:
    revenue: List[StatementItem] = field(default_factory=list)
    operating_expenses: List[StatementItem] = field(default_factory=list)
    non_operating_income: List[StatementItem] = field(default_factory=list)
    non_operating_expenses: List[StatementItem] = field(default_factory=list)


@dataclass
class IncomeStatementTotals:
    total_revenue: Money
    total_operating_expenses: Money
    operating_income: Money
    total_non_operating_income: Money
    total_non_operating_expenses: Money
    non_operating_income: Money  # Net of non-operating expenses
    net_income: Money


@dataclass
class IncomeStatementRatios:
    """Percentages of current-period revenue; all zero when revenue is not positive"""
    gross_margin: Decimal
    net_margin: Decimal
    operating_expense_ratio: Decimal


@dataclass
class IncomeStatementSummary:
    current: IncomeStatementTotals
    previous: IncomeStatementTotals
    ratios: IncomeStatementRatios


@dataclass
class Variance:
    amount: Money
    percentage: Decimal


@dataclass
class BalanceSheetData:
    current_assets: List[StatementItem] = field(default_factory=list)
    non_current_assets: List[StatementItem] = field(default_factory=list)
    current_liabilities: List[StatementItem] = field(default_factory=list)
    non_current_liabilities: List[StatementItem] = field(default_factory=list)
    equity: List[StatementItem] = field(default_factory=list)


@dataclass
class BalanceSheetTotals:
    total_current_assets: Money
    total_non_current_assets: Money
    total_assets: Money
    total_current_liabilities: Money
    total_non_current_liabilities: Money
    total_liabilities: Money
    total_equity: Money
    total_liabilities_and_equity: Money


@dataclass
class BalanceSheetReport:
    """
    Balance sheet with net income folded into equity

    `is_balanced` is reported, never forced: a False value means the ledger
    itself does not balance and must be shown to the reader.
    """
    data: BalanceSheetData
    current: BalanceSheetTotals
    previous: BalanceSheetTotals
    net_income_current: Money
    net_income_previous: Money
    is_balanced: bool
    previous_is_balanced: bool


_INCOME_SECTIONS = {
    ReportingCategory.OPERATING_REVENUE: "revenue",
    ReportingCategory.NON_OPERATING_INCOME: "non_operating_income",
    ReportingCategory.OPERATING_EXPENSE: "operating_expenses",
    ReportingCategory.NON_OPERATING_EXPENSE: "non_operating_expenses",
}

_BALANCE_SHEET_SECTIONS = {
    ReportingCategory.CURRENT_ASSET: "current_assets",
    ReportingCategory.NON_CURRENT_ASSET: "non_current_assets",
    ReportingCategory.CURRENT_LIABILITY: "current_liabilities",
    ReportingCategory.NON_CURRENT_LIABILITY: "non_current_liabilities",
    ReportingCategory.EQUITY: "equity",
}


def _movements(row: LedgerRow):
    if isinstance(row, GeneralLedgerAccount):
        return row.total_debit, row.total_credit
    return row.debit, row.credit


def _income_amount(row: LedgerRow) -> Money:
    debit, credit = _movements(row)
    if row.account_type == AccountType.REVENUE:
        return credit - debit
    return debit - credit


def _balance_sheet_amount(row: TrialBalanceAccount) -> Money:
    if row.account_type == AccountType.ASSET:
        return row.debit_balance - row.credit_balance
    return row.credit_balance - row.debit_balance


def _currency_of(*groups) -> Currency:
    for rows in groups:
        for row in rows:
            return row.debit_balance.currency if isinstance(row, TrialBalanceAccount) else row.balance.currency
    return Currency.IDR


def _pair_items(current: Sequence, previous: Sequence, sections: Dict[ReportingCategory, str],
                amount_of, target) -> None:
    """Fill `target` sections with current/previous pairs, zero-filling the missing side"""
    currency = _currency_of(current, previous)
    zero = Money.zero(currency)
    previous_by_code = {row.account_code: row for row in previous}
    current_codes = set()

    for row in current:
        section = sections.get(row.reporting_category)
        if section is None:
            continue
        current_codes.add(row.account_code)
        prev = previous_by_code.get(row.account_code)
        getattr(target, section).append(StatementItem(
            code=row.account_code,
            name=row.account_name,
            current=amount_of(row),
            previous=amount_of(prev) if prev is not None else zero,
        ))

    for row in previous:
        section = sections.get(row.reporting_category)
        if section is None or row.account_code in current_codes:
            continue
        getattr(target, section).append(StatementItem(
            code=row.account_code,
            name=row.account_name,
            current=zero,
            previous=amount_of(row),
        ))

    for section in set(sections.values()):
        getattr(target, section).sort(key=lambda item: item.code)


def _rows(tb: TrialBalanceInput) -> List[TrialBalanceAccount]:
    if tb is None:
        return []
    if isinstance(tb, TrialBalanceData):
        return tb.accounts
    return list(tb)


def transform_to_income_statement(
    current: Sequence[LedgerRow],
    previous: Sequence[LedgerRow] = ()
) -> IncomeStatementData:
    """
    Income statement sections from period movements

    Accepts general ledger accounts or trial balance rows for each period.
    Balance sheet accounts are ignored.
    """
    data = IncomeStatementData()
    _pair_items(current, previous, _INCOME_SECTIONS, _income_amount, data)
    return data


def _sum(items: List[StatementItem], attr: str, currency: Currency) -> Money:
    total = Money.zero(currency)
    for item in items:
        total = total + getattr(item, attr)
    return total


def _income_totals(data: IncomeStatementData, attr: str, currency: Currency) -> IncomeStatementTotals:
    total_revenue = _sum(data.revenue, attr, currency)
    total_opex = _sum(data.operating_expenses, attr, currency)
    total_non_op_income = _sum(data.non_operating_income, attr, currency)
    total_non_op_expenses = _sum(data.non_operating_expenses, attr, currency)
    operating_income = total_revenue - total_opex
    non_operating_income = total_non_op_income - total_non_op_expenses
    return IncomeStatementTotals(
        total_revenue=total_revenue,
        total_operating_expenses=total_opex,
        operating_income=operating_income,
        total_non_operating_income=total_non_op_income,
        total_non_operating_expenses=total_non_op_expenses,
        non_operating_income=non_operating_income,
        net_income=operating_income + non_operating_income,
    )


def _percent(part: Money, whole: Money) -> Decimal:
    if not whole.is_positive():
        return Decimal('0.00')
    return (part.amount / whole.amount * 100).quantize(Decimal('0.01'))


def calculate_income_statement_totals(
    data: IncomeStatementData,
    currency: Currency = Currency.IDR
) -> IncomeStatementSummary:
    """Totals for both periods plus current-period margin ratios"""
    items = data.revenue + data.operating_expenses + data.non_operating_income + data.non_operating_expenses
    if items:
        currency = items[0].current.currency

    current = _income_totals(data, "current", currency)
    previous = _income_totals(data, "previous", currency)
    ratios = IncomeStatementRatios(
        gross_margin=_percent(current.operating_income, current.total_revenue),
        net_margin=_percent(current.net_income, current.total_revenue),
        operating_expense_ratio=_percent(current.total_operating_expenses, current.total_revenue),
    )
    return IncomeStatementSummary(current=current, previous=previous, ratios=ratios)


def calculate_variance(current: Money, previous: Money) -> Variance:
    """Change from previous to current; percentage is 0 when previous is zero"""
    amount = current - previous
    if previous.is_zero():
        percentage = Decimal('0.00')
    else:
        percentage = (amount.amount / previous.amount * 100).quantize(Decimal('0.01'))
    return Variance(amount=amount, percentage=percentage)


def transform_to_balance_sheet(
    current_tb: TrialBalanceInput,
    previous_tb: TrialBalanceInput = None
) -> BalanceSheetData:
    """Balance sheet sections from trial balance closing balances"""
    data = BalanceSheetData()
    _pair_items(_rows(current_tb), _rows(previous_tb), _BALANCE_SHEET_SECTIONS, _balance_sheet_amount, data)
    return data


def calculate_net_income(tb_accounts: TrialBalanceInput, currency: Currency = Currency.IDR) -> Money:
    """Revenue minus expenses from trial balance closing balances"""
    rows = _rows(tb_accounts)
    if rows:
        currency = rows[0].debit_balance.currency
    net = Money.zero(currency)
    for row in rows:
        if row.account_type == AccountType.REVENUE:
            net = net + row.credit_balance - row.debit_balance
        elif row.account_type == AccountType.EXPENSE:
            net = net - (row.debit_balance - row.credit_balance)
    return net


def _balance_sheet_totals(data: BalanceSheetData, attr: str, currency: Currency) -> BalanceSheetTotals:
    current_assets = _sum(data.current_assets, attr, currency)
    non_current_assets = _sum(data.non_current_assets, attr, currency)
    current_liabilities = _sum(data.current_liabilities, attr, currency)
    non_current_liabilities = _sum(data.non_current_liabilities, attr, currency)
    total_liabilities = current_liabilities + non_current_liabilities
    total_equity = _sum(data.equity, attr, currency)
    return BalanceSheetTotals(
        total_current_assets=current_assets,
        total_non_current_assets=non_current_assets,
        total_assets=current_assets + non_current_assets,
        total_current_liabilities=current_liabilities,
        total_non_current_liabilities=non_current_liabilities,
        total_liabilities=total_liabilities,
        total_equity=total_equity,
        total_liabilities_and_equity=total_liabilities + total_equity,
    )


def build_balance_sheet(
    current_tb: TrialBalanceInput,
    previous_tb: TrialBalanceInput = None,
    tolerance: Decimal = BALANCE_TOLERANCE
) -> BalanceSheetReport:
    """
    Full balance sheet: sections, net income folded into equity as
    "SHU Tahun Berjalan" (3-9999) and the accounting identity check
    """
    current_rows = _rows(current_tb)
    previous_rows = _rows(previous_tb)
    currency = _currency_of(current_rows, previous_rows)

    data = transform_to_balance_sheet(current_rows, previous_rows)
    net_current = calculate_net_income(current_rows, currency)
    net_previous = calculate_net_income(previous_rows, currency)
    if not net_current.is_zero() or not net_previous.is_zero():
        data.equity.append(StatementItem(
            code=CURRENT_YEAR_EARNINGS_CODE,
            name=CURRENT_YEAR_EARNINGS_NAME,
            current=net_current,
            previous=net_previous,
        ))
        data.equity.sort(key=lambda item: item.code)

    current = _balance_sheet_totals(data, "current", currency)
    previous = _balance_sheet_totals(data, "previous", currency)
    is_balanced = abs(current.total_assets - current.total_liabilities_and_equity).amount < tolerance
    previous_is_balanced = abs(previous.total_assets - previous.total_liabilities_and_equity).amount < tolerance

    if not is_balanced:
        logger.warning(
            "Balance sheet does not balance: assets=%s liabilities+equity=%s",
            current.total_assets.amount, current.total_liabilities_and_equity.amount
        )
    if not previous_is_balanced:
        logger.warning(
            "Comparative balance sheet does not balance: assets=%s liabilities+equity=%s",
            previous.total_assets.amount, previous.total_liabilities_and_equity.amount
        )

    return BalanceSheetReport(
        data=data,
        current=current,
        previous=previous,
        net_income_current=net_current,
        net_income_previous=net_previous,
        is_balanced=is_balanced,
        previous_is_balanced=previous_is_balanced,
    )
