"""
Ledger Reporting Module

Trial balance and general ledger aggregation over posted journal lines,
single-period and comparative, with CSV/JSON export for report consumers.
"""

from datetime import date
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union
from enum import Enum
import csv
import io
import json

from .currency import Money, Currency
from .chart_of_accounts import Account, AccountType, ChartOfAccounts, NormalBalance, ReportingCategory
from .ledger import JournalStore
from .config import CoopLedgerConfig, get_config
from .errors import ValidationError
from .logging_config import get_logger


class ReportFormat(Enum):
    """Output formats for exported reports"""
    DICT = "dict"
    CSV = "csv"
    JSON = "json"


@dataclass
class TrialBalanceAccount:
    """
    One trial balance row

    `opening_balance` is signed in the account's normal direction; `debit`
    and `credit` are the movements inside the period; the closing balance
    sits in `debit_balance` or `credit_balance` (the other is zero).
    """
    account_code: str
    account_name: str
    account_type: AccountType
    normal_balance: NormalBalance
    reporting_category: ReportingCategory
    opening_balance: Money
    debit: Money
    credit: Money
    debit_balance: Money
    credit_balance: Money

    @property
    def balance(self) -> Money:
        """Closing balance signed in the account's normal direction"""
        if self.normal_balance == NormalBalance.DEBIT:
            return self.debit_balance - self.credit_balance
        return self.credit_balance - self.debit_balance


@dataclass
class TrialBalanceData:
    end_date: date
    start_date: Optional[date]
    currency: Currency
    accounts: List[TrialBalanceAccount] = field(default_factory=list)
    total_debit: Optional[Money] = None
    total_credit: Optional[Money] = None
    total_period_debit: Optional[Money] = None
    total_period_credit: Optional[Money] = None
    is_balanced: bool = True

    def __post_init__(self):
        for name in ('total_debit', 'total_credit', 'total_period_debit', 'total_period_credit'):
            if getattr(self, name) is None:
                setattr(self, name, Money.zero(self.currency))

    def get_account(self, code: str) -> Optional[TrialBalanceAccount]:
        for account in self.accounts:
            if account.account_code == code:
                return account
        return None


@dataclass
class GeneralLedgerTransaction:
    entry_date: date
    journal_number: str
    description: str
    debit: Money
    credit: Money
    balance: Money  # Running balance after this line, normal direction


@dataclass
class GeneralLedgerAccount:
    account_code: str
    account_name: str
    account_type: AccountType
    normal_balance: NormalBalance
    reporting_category: ReportingCategory
    opening_balance: Money
    transactions: List[GeneralLedgerTransaction]
    total_debit: Money
    total_credit: Money
    balance: Money


def _signed(account: Account, debit: Money, credit: Money) -> Money:
    """Net movement in the account's normal direction"""
    if account.is_debit_normal:
        return debit - credit
    return credit - debit


class LedgerReporter:
    """
    Aggregates posted journal lines into trial balances and general ledgers
    """

    def __init__(
        self,
        journal_store: JournalStore,
        chart: Optional[ChartOfAccounts] = None,
        config: Optional[CoopLedgerConfig] = None
    ):
        self.journal_store = journal_store
        self.chart = chart or journal_store.chart
        self.config = config or get_config()
        self.currency = self.config.ledger_currency
        self.logger = get_logger("coop_ledger.reporting")

    def trial_balance(
        self,
        end_date: date,
        start_date: Optional[date] = None,
        include_closing: bool = True
    ) -> TrialBalanceData:
        """
        Trial balance as of `end_date`

        With `start_date`, lines dated before it form each account's opening
        balance and only lines in [start_date, end_date] count as movements.
        Accounts with neither movement nor opening balance are omitted.

        The default is the post-closing view used for the balance sheet.
        Pass include_closing=False for income statement input: closing
        entries are then left out, so a closed month still shows its
        revenue and expense movements.
        """
        self._check_range(start_date, end_date)
        zero = Money.zero(self.currency)

        # code -> [opening net debit, period debit, period credit]
        sums: Dict[str, List[Money]] = {}
        for posted in self.journal_store.query_lines(
            end_date=end_date, include_closing=include_closing
        ):
            line = posted.line
            row = sums.setdefault(line.account_code, [zero, zero, zero])
            if start_date is not None and posted.entry_date < start_date:
                row[0] = row[0] + line.debit - line.credit
            else:
                row[1] = row[1] + line.debit
                row[2] = row[2] + line.credit

        result = TrialBalanceData(end_date=end_date, start_date=start_date, currency=self.currency)
        for code in sorted(sums):
            opening_net, debit, credit = sums[code]
            if opening_net.is_zero() and debit.is_zero() and credit.is_zero():
                continue
            account = self.chart.require_account(code)
            closing_net = opening_net + debit - credit
            row = TrialBalanceAccount(
                account_code=code,
                account_name=account.name,
                account_type=account.account_type,
                normal_balance=account.normal_balance,
                reporting_category=account.reporting_category,
                opening_balance=opening_net if account.is_debit_normal else -opening_net,
                debit=debit,
                credit=credit,
                debit_balance=closing_net if closing_net.is_positive() else zero,
                credit_balance=-closing_net if closing_net.is_negative() else zero,
            )
            result.accounts.append(row)
            result.total_debit = result.total_debit + row.debit_balance
            result.total_credit = result.total_credit + row.credit_balance
            result.total_period_debit = result.total_period_debit + debit
            result.total_period_credit = result.total_period_credit + credit

        difference = abs(result.total_debit - result.total_credit)
        result.is_balanced = difference.amount < self.config.tolerance
        if not result.is_balanced:
            self.logger.warning(
                "Trial balance as of %s does not balance: debit=%s credit=%s",
                end_date, result.total_debit.amount, result.total_credit.amount
            )
        return result

    def general_ledger(
        self,
        start_date: date,
        end_date: date,
        account_codes: Optional[List[str]] = None,
        include_closing: bool = True
    ) -> List[GeneralLedgerAccount]:
        """
        Per-account transaction listing with running balances

        Walks lines by date, journal number and line number; each account's
        running balance starts from its brought-forward balance. Accounts
        without lines in the range are omitted.
        include_closing=False leaves out period closing entries, as for
        trial_balance.
        """
        self._check_range(start_date, end_date)
        zero = Money.zero(self.currency)
        accounts: Dict[str, Account] = {}

        brought_forward: Dict[str, Money] = {}
        in_range: Dict[str, List] = {}
        for posted in self.journal_store.query_lines(
            end_date=end_date, account_codes=account_codes, include_closing=include_closing
        ):
            code = posted.line.account_code
            if code not in accounts:
                accounts[code] = self.chart.require_account(code)
            if posted.entry_date < start_date:
                brought_forward[code] = brought_forward.get(code, zero) + _signed(
                    accounts[code], posted.line.debit, posted.line.credit
                )
            else:
                in_range.setdefault(code, []).append(posted)

        ledger = []
        for code in sorted(in_range):
            account = accounts[code]
            opening = brought_forward.get(code, zero)
            running = opening
            total_debit = zero
            total_credit = zero
            transactions = []
            for posted in in_range[code]:
                line = posted.line
                running = running + _signed(account, line.debit, line.credit)
                total_debit = total_debit + line.debit
                total_credit = total_credit + line.credit
                transactions.append(GeneralLedgerTransaction(
                    entry_date=posted.entry_date,
                    journal_number=posted.journal_number,
                    description=line.description or posted.entry_description,
                    debit=line.debit,
                    credit=line.credit,
                    balance=running,
                ))
            ledger.append(GeneralLedgerAccount(
                account_code=code,
                account_name=account.name,
                account_type=account.account_type,
                normal_balance=account.normal_balance,
                reporting_category=account.reporting_category,
                opening_balance=opening,
                transactions=transactions,
                total_debit=total_debit,
                total_credit=total_credit,
                balance=running,
            ))
        return ledger

    def comparative_trial_balance(
        self,
        current_end: date,
        previous_end: date,
        current_start: Optional[date] = None,
        previous_start: Optional[date] = None,
        include_closing: bool = True
    ) -> Tuple[TrialBalanceData, TrialBalanceData]:
        """(current, previous) trial balances for variance reporting"""
        return (
            self.trial_balance(current_end, current_start, include_closing),
            self.trial_balance(previous_end, previous_start, include_closing),
        )

    def comparative_general_ledger(
        self,
        current_start: date,
        current_end: date,
        previous_start: date,
        previous_end: date,
        account_codes: Optional[List[str]] = None,
        include_closing: bool = True
    ) -> Tuple[List[GeneralLedgerAccount], List[GeneralLedgerAccount]]:
        """(current, previous) general ledgers for variance reporting"""
        return (
            self.general_ledger(current_start, current_end, account_codes, include_closing),
            self.general_ledger(previous_start, previous_end, account_codes, include_closing),
        )

    def export_trial_balance(
        self,
        data: TrialBalanceData,
        format: ReportFormat
    ) -> Union[Dict, str]:
        """Export a trial balance as a dict, CSV text or JSON text"""
        rows = [
            {
                'account_code': a.account_code,
                'account_name': a.account_name,
                'account_type': a.account_type.value,
                'opening_balance': str(a.opening_balance.amount),
                'debit': str(a.debit.amount),
                'credit': str(a.credit.amount),
                'debit_balance': str(a.debit_balance.amount),
                'credit_balance': str(a.credit_balance.amount),
            }
            for a in data.accounts
        ]
        report = {
            'start_date': data.start_date.isoformat() if data.start_date else None,
            'end_date': data.end_date.isoformat(),
            'currency': data.currency.code,
            'accounts': rows,
            'total_debit': str(data.total_debit.amount),
            'total_credit': str(data.total_credit.amount),
            'is_balanced': data.is_balanced,
        }

        if format == ReportFormat.DICT:
            return report
        if format == ReportFormat.JSON:
            return json.dumps(report, indent=2)
        if format == ReportFormat.CSV:
            output = io.StringIO()
            writer = csv.DictWriter(output, fieldnames=[
                'account_code', 'account_name', 'account_type', 'opening_balance',
                'debit', 'credit', 'debit_balance', 'credit_balance'
            ])
            writer.writeheader()
            writer.writerows(rows)
            writer.writerow({
                'account_code': 'TOTAL',
                'debit': str(data.total_period_debit.amount),
                'credit': str(data.total_period_credit.amount),
                'debit_balance': str(data.total_debit.amount),
                'credit_balance': str(data.total_credit.amount),
            })
            return output.getvalue()
        raise ValidationError(f"Unsupported report format: {format}", field="format")

    def _check_range(self, start_date: Optional[date], end_date: date) -> None:
        if start_date is not None and start_date > end_date:
            raise ValidationError(
                f"start_date {start_date} is after end_date {end_date}", field="start_date"
            )
