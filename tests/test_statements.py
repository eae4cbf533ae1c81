"""
Test suite for financial statements

Tests the income statement and balance sheet transformers, totals, ratios,
variance and the accounting identity over a real ledger.
"""

import logging
import pytest
from decimal import Decimal
from datetime import date

from coop_ledger.currency import Money, Currency
from coop_ledger.storage import InMemoryStorage
from coop_ledger.chart_of_accounts import (
    ChartOfAccounts, AccountType, derive_reporting_category
)
from coop_ledger.config import CoopLedgerConfig
from coop_ledger.ledger import JournalEntry, JournalLine, JournalStore, JournalType
from coop_ledger.periods import PeriodManager, PeriodCloseRequest
from coop_ledger.reporting import LedgerReporter, TrialBalanceAccount, TrialBalanceData
from coop_ledger.statements import (
    transform_to_income_statement, calculate_income_statement_totals, calculate_variance,
    transform_to_balance_sheet, calculate_net_income, build_balance_sheet,
    CURRENT_YEAR_EARNINGS_CODE
)


def idr(value) -> Money:
    return Money(Decimal(str(value)))


def tb_row(code, name, account_type, debit_balance=0, credit_balance=0, debit=None, credit=None):
    """Trial balance row; movements default to the closing balances"""
    return TrialBalanceAccount(
        account_code=code,
        account_name=name,
        account_type=account_type,
        normal_balance=account_type.normal_balance,
        reporting_category=derive_reporting_category(code, account_type),
        opening_balance=Money.zero(),
        debit=idr(debit_balance if debit is None else debit),
        credit=idr(credit_balance if credit is None else credit),
        debit_balance=idr(debit_balance),
        credit_balance=idr(credit_balance),
    )


def codes(items):
    return [item.code for item in items]


class TestIncomeStatement:
    """Test income statement sections, totals and ratios"""

    def setup_method(self):
        self.current = [
            tb_row("1-1100", "Kas", AccountType.ASSET, debit_balance=750000),
            tb_row("4-1100", "Pendapatan Bunga Pinjaman", AccountType.REVENUE, credit_balance=1000000),
            tb_row("4-2100", "Pendapatan Lain-lain", AccountType.REVENUE, credit_balance=80000),
            tb_row("5-1100", "Beban Operasional", AccountType.EXPENSE, debit_balance=300000),
            tb_row("5-2100", "Beban Lain-lain", AccountType.EXPENSE, debit_balance=30000),
        ]
        self.previous = [
            tb_row("4-1100", "Pendapatan Bunga Pinjaman", AccountType.REVENUE, credit_balance=800000),
            tb_row("5-1200", "Beban Administrasi", AccountType.EXPENSE, debit_balance=200000),
        ]

    def test_sections(self):
        """Test income statement sections by category"""
        data = transform_to_income_statement(self.current, self.previous)

        assert codes(data.revenue) == ["4-1100"]
        assert codes(data.non_operating_income) == ["4-2100"]
        assert codes(data.operating_expenses) == ["5-1100", "5-1200"]
        assert codes(data.non_operating_expenses) == ["5-2100"]

        revenue = data.revenue[0]
        assert revenue.name == "Pendapatan Bunga Pinjaman"
        assert revenue.current == idr(1000000)
        assert revenue.previous == idr(800000)

    def test_missing_side_is_zero_filled(self):
        """Test accounts missing in one period show zero"""
        data = transform_to_income_statement(self.current, self.previous)

        only_current, only_previous = data.operating_expenses
        assert only_current.current == idr(300000)
        assert only_current.previous.is_zero()
        assert only_previous.current.is_zero()
        assert only_previous.previous == idr(200000)

    def test_amounts_use_period_movements(self):
        """Test revenue is credit minus debit of the period"""
        row = tb_row("4-1100", "Pendapatan Bunga Pinjaman", AccountType.REVENUE,
                     credit_balance=900000, debit=100000, credit=1000000)
        data = transform_to_income_statement([row])
        assert data.revenue[0].current == idr(900000)

    def test_totals_and_ratios(self):
        """Test income statement totals and ratios"""
        summary = calculate_income_statement_totals(
            transform_to_income_statement(self.current, self.previous)
        )

        current = summary.current
        assert current.total_revenue == idr(1000000)
        assert current.total_operating_expenses == idr(300000)
        assert current.operating_income == idr(700000)
        assert current.total_non_operating_income == idr(80000)
        assert current.total_non_operating_expenses == idr(30000)
        assert current.non_operating_income == idr(50000)
        assert current.net_income == idr(750000)

        assert summary.previous.total_revenue == idr(800000)
        assert summary.previous.net_income == idr(600000)

        assert summary.ratios.gross_margin == Decimal('70.00')
        assert summary.ratios.net_margin == Decimal('75.00')
        assert summary.ratios.operating_expense_ratio == Decimal('30.00')

    def test_ratios_without_revenue(self):
        """Test ratios are zero without revenue"""
        data = transform_to_income_statement([
            tb_row("5-1100", "Beban Operasional", AccountType.EXPENSE, debit_balance=300000),
        ])
        summary = calculate_income_statement_totals(data)

        assert summary.current.net_income == idr(-300000)
        assert summary.ratios.gross_margin == Decimal('0.00')
        assert summary.ratios.net_margin == Decimal('0.00')
        assert summary.ratios.operating_expense_ratio == Decimal('0.00')

    def test_empty_statement(self):
        """Test an income statement with no accounts"""
        summary = calculate_income_statement_totals(transform_to_income_statement([]))
        assert summary.current.net_income.is_zero()

    @pytest.mark.parametrize("current,previous,amount,percentage", [
        (1000000, 800000, 200000, Decimal('25.00')),
        (600000, 800000, -200000, Decimal('-25.00')),
        (500000, 0, 500000, Decimal('0.00')),
    ])
    def test_variance(self, current, previous, amount, percentage):
        """Test variance amount and percentage"""
        variance = calculate_variance(idr(current), idr(previous))
        assert variance.amount == idr(amount)
        assert variance.percentage == percentage


class TestBalanceSheet:
    """Test balance sheet sections, net income and the identity check"""

    def setup_method(self):
        self.current = TrialBalanceData(
            end_date=date(2024, 3, 31),
            start_date=None,
            currency=Currency.IDR,
            accounts=[
                tb_row("1-1100", "Kas", AccountType.ASSET, debit_balance=6200000),
                tb_row("1-2100", "Peralatan Kantor", AccountType.ASSET, debit_balance=2000000),
                tb_row("2-1100", "Utang Usaha", AccountType.LIABILITY, credit_balance=500000),
                tb_row("2-2100", "Utang Jangka Panjang", AccountType.LIABILITY, credit_balance=1000000),
                tb_row("3-1200", "Simpanan Pokok", AccountType.EQUITY, credit_balance=5000000),
                tb_row("3-1300", "Simpanan Wajib", AccountType.EQUITY, credit_balance=1000000),
                tb_row("4-1100", "Pendapatan Bunga Pinjaman", AccountType.REVENUE, credit_balance=1200000),
                tb_row("5-1100", "Beban Operasional", AccountType.EXPENSE, debit_balance=500000),
            ],
        )
        self.previous = [
            tb_row("1-1100", "Kas", AccountType.ASSET, debit_balance=5000000),
            tb_row("3-1200", "Simpanan Pokok", AccountType.EQUITY, credit_balance=5000000),
        ]

    def test_sections(self):
        """Test balance sheet sections by category"""
        data = transform_to_balance_sheet(self.current, self.previous)

        assert codes(data.current_assets) == ["1-1100"]
        assert codes(data.non_current_assets) == ["1-2100"]
        assert codes(data.current_liabilities) == ["2-1100"]
        assert codes(data.non_current_liabilities) == ["2-2100"]
        assert codes(data.equity) == ["3-1200", "3-1300"]

        cash = data.current_assets[0]
        assert cash.current == idr(6200000)
        assert cash.previous == idr(5000000)
        assert data.equity[1].previous.is_zero()

    def test_without_previous(self):
        """Test a balance sheet without a previous period"""
        data = transform_to_balance_sheet(self.current.accounts)
        assert all(item.previous.is_zero() for item in data.current_assets + data.equity)

    def test_net_income(self):
        """Test net income from closing balances"""
        assert calculate_net_income(self.current) == idr(700000)
        assert calculate_net_income(self.previous).is_zero()
        assert calculate_net_income(None).is_zero()

    def test_build_balance_sheet(self):
        """Test balance sheet totals and the earnings line"""
        report = build_balance_sheet(self.current, self.previous)

        assert codes(report.data.equity) == ["3-1200", "3-1300", CURRENT_YEAR_EARNINGS_CODE]
        earnings = report.data.equity[-1]
        assert earnings.name == "SHU Tahun Berjalan"
        assert earnings.current == idr(700000)
        assert earnings.previous.is_zero()
        assert report.net_income_current == idr(700000)

        current = report.current
        assert current.total_current_assets == idr(6200000)
        assert current.total_non_current_assets == idr(2000000)
        assert current.total_assets == idr(8200000)
        assert current.total_current_liabilities == idr(500000)
        assert current.total_non_current_liabilities == idr(1000000)
        assert current.total_liabilities == idr(1500000)
        assert current.total_equity == idr(6700000)
        assert current.total_liabilities_and_equity == idr(8200000)
        assert report.is_balanced

        assert report.previous.total_assets == idr(5000000)
        assert report.previous.total_liabilities_and_equity == idr(5000000)
        assert report.previous_is_balanced

    def test_no_earnings_line_without_income(self):
        """Test no earnings line when net income is zero"""
        report = build_balance_sheet(self.previous)
        assert codes(report.data.equity) == ["3-1200"]
        assert report.is_balanced

    def test_unbalanced_is_reported_not_forced(self, caplog):
        """Test an unbalanced sheet is flagged and logged"""
        rows = [
            tb_row("1-1100", "Kas", AccountType.ASSET, debit_balance=100),
            tb_row("3-1200", "Simpanan Pokok", AccountType.EQUITY, credit_balance=90),
        ]
        with caplog.at_level(logging.WARNING, logger="coop_ledger.statements"):
            report = build_balance_sheet(rows)

        assert not report.is_balanced
        assert report.current.total_assets == idr(100)
        assert report.current.total_liabilities_and_equity == idr(90)
        assert "does not balance" in caplog.text

    def test_empty_balance_sheet(self):
        """Test a balance sheet with no accounts"""
        report = build_balance_sheet(None)
        assert report.current.total_assets.is_zero()
        assert report.is_balanced
        assert report.data.equity == []


class TestStatementsFromLedger:
    """Test statements built from real posted journals"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.config = CoopLedgerConfig()
        self.chart = ChartOfAccounts(self.storage)
        self.chart.seed_standard_accounts()
        self.store = JournalStore(self.storage, self.chart, config=self.config)
        self.reporter = LedgerReporter(self.store, config=self.config)

        self._post(date(2024, 1, 3), ("1-1100", "3-1200", 10000000))
        self._post(date(2024, 1, 10), ("1-1300", "1-1100", 6000000))
        self._post(date(2024, 1, 31), ("1-1100", "4-1100", 150000))
        self._post(date(2024, 2, 5), ("1-2100", "2-2100", 3000000))
        self._post(date(2024, 2, 20), ("5-1100", "1-1100", 400000))
        self._post(date(2024, 2, 28), ("1-1100", "4-2100", 25000))
        self._post(date(2024, 3, 15), ("1-1100", "3-1300", 500000))
        self._post(date(2024, 3, 31), ("5-2100", "2-1100", 75000))

    def _post(self, entry_date, movement):
        debit_code, credit_code, amount = movement
        self.store.post(JournalEntry.draft(
            entry_date=entry_date,
            journal_type=JournalType.GENERAL,
            description="Transaksi",
            lines=[
                JournalLine.debit_line(debit_code, idr(amount), 1),
                JournalLine.credit_line(credit_code, idr(amount), 2),
            ],
            created_by="bendahara",
        ))

    @pytest.mark.parametrize("end_date", [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)])
    def test_balance_sheet_balances_every_month(self, end_date):
        """Test the balance identity at each month end"""
        report = build_balance_sheet(self.reporter.trial_balance(end_date))
        assert report.is_balanced
        assert report.current.total_assets == report.current.total_liabilities_and_equity

    def test_comparative_balance_sheet(self):
        """Test comparative balance sheet from posted journals"""
        current, previous = self.reporter.comparative_trial_balance(date(2024, 3, 31), date(2024, 2, 29))
        report = build_balance_sheet(current, previous)

        assert report.is_balanced and report.previous_is_balanced
        assert report.net_income_current == idr(150000 + 25000 - 400000 - 75000)
        assert report.net_income_previous == idr(150000 + 25000 - 400000)
        assert report.current.total_assets == idr(13275000)

    def test_monthly_income_statement_from_general_ledger(self):
        """Test monthly income statement from general ledger movements"""
        february = self.reporter.general_ledger(date(2024, 2, 1), date(2024, 2, 29))
        january = self.reporter.general_ledger(date(2024, 1, 1), date(2024, 1, 31))

        data = transform_to_income_statement(february, january)
        summary = calculate_income_statement_totals(data)

        assert codes(data.revenue) == ["4-1100"]
        assert data.revenue[0].current.is_zero()
        assert data.revenue[0].previous == idr(150000)
        assert summary.current.total_non_operating_income == idr(25000)
        assert summary.current.net_income == idr(-375000)
        assert summary.previous.net_income == idr(150000)


class TestStatementsAfterClosing:
    """Test income statements for a month whose closing entry is posted"""

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.config = CoopLedgerConfig()
        self.chart = ChartOfAccounts(self.storage)
        self.chart.seed_standard_accounts()
        self.periods = PeriodManager(self.storage, config=self.config)
        self.store = JournalStore(self.storage, self.chart, period_manager=self.periods, config=self.config)
        self.reporter = LedgerReporter(self.store, config=self.config)
        self.periods.open_new_period(2024, 1)

        self._post(date(2024, 1, 3), ("1-1100", "3-1200", 10000000))
        self._post(date(2024, 1, 15), ("1-1100", "4-1100", 1000000))
        self._post(date(2024, 1, 20), ("5-1100", "1-1100", 300000))
        self.periods.close_period(PeriodCloseRequest(
            period_id="2024-01", closed_by="manager", all_transactions_journaled=True,
            no_pending_journals=True, reports_reviewed=True
        ), self.store)

        self._post(date(2024, 2, 10), ("1-1100", "4-1100", 400000))
        self._post(date(2024, 2, 20), ("5-1100", "1-1100", 100000))

    def _post(self, entry_date, movement):
        debit_code, credit_code, amount = movement
        self.store.post(JournalEntry.draft(
            entry_date=entry_date,
            journal_type=JournalType.GENERAL,
            description="Transaksi",
            lines=[
                JournalLine.debit_line(debit_code, idr(amount), 1),
                JournalLine.credit_line(credit_code, idr(amount), 2),
            ],
            created_by="bendahara",
        ))

    def test_closed_month_from_general_ledger(self):
        """Test a closed month keeps its revenue and expenses without closing entries"""
        january = self.reporter.general_ledger(date(2024, 1, 1), date(2024, 1, 31), include_closing=False)
        summary = calculate_income_statement_totals(transform_to_income_statement(january))

        assert summary.current.total_revenue == idr(1000000)
        assert summary.current.total_operating_expenses == idr(300000)
        assert summary.current.net_income == idr(700000)
        assert "3-1500" not in [account.account_code for account in january]

    def test_closed_month_from_trial_balance(self):
        """Test the pre-closing trial balance feeds the income statement"""
        tb = self.reporter.trial_balance(date(2024, 1, 31), date(2024, 1, 1), include_closing=False)
        summary = calculate_income_statement_totals(transform_to_income_statement(tb.accounts))

        assert tb.is_balanced
        assert summary.current.net_income == idr(700000)

        # The post-closing view nets the nominal accounts to zero
        closed = self.reporter.trial_balance(date(2024, 1, 31), date(2024, 1, 1))
        closed_summary = calculate_income_statement_totals(transform_to_income_statement(closed.accounts))
        assert closed_summary.current.net_income.is_zero()
        assert closed.get_account("3-1500").credit_balance == idr(700000)

    def test_comparative_against_closed_month(self):
        """Test February against a closed January"""
        february, january = self.reporter.comparative_general_ledger(
            date(2024, 2, 1), date(2024, 2, 29), date(2024, 1, 1), date(2024, 1, 31),
            include_closing=False
        )
        data = transform_to_income_statement(february, january)
        summary = calculate_income_statement_totals(data)

        assert codes(data.revenue) == ["4-1100"]
        assert data.revenue[0].current == idr(400000)
        assert data.revenue[0].previous == idr(1000000)
        assert summary.current.net_income == idr(300000)
        assert summary.previous.net_income == idr(700000)

        current_tb, previous_tb = self.reporter.comparative_trial_balance(
            date(2024, 2, 29), date(2024, 1, 31), date(2024, 2, 1), date(2024, 1, 1),
            include_closing=False
        )
        tb_summary = calculate_income_statement_totals(
            transform_to_income_statement(current_tb.accounts, previous_tb.accounts)
        )
        assert tb_summary.previous.net_income == idr(700000)

    def test_balance_sheet_balances_either_way(self):
        """Test the balance identity with and without closing entries"""
        post_closing = build_balance_sheet(self.reporter.trial_balance(date(2024, 1, 31)))
        pre_closing = build_balance_sheet(self.reporter.trial_balance(date(2024, 1, 31), include_closing=False))

        assert post_closing.is_balanced
        assert post_closing.net_income_current.is_zero()
        assert pre_closing.is_balanced
        assert pre_closing.net_income_current == idr(700000)
        assert post_closing.current.total_assets == pre_closing.current.total_assets == idr(10700000)
