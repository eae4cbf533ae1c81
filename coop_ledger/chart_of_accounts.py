"""
Chart of Accounts Module

Maintains the account tree the journal posts against. Each account carries
its type, the normal balance implied by that type, and a reporting category
derived once at creation so statements never re-parse account codes.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TYPE_CHECKING
from enum import Enum
import re

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .errors import ValidationError, InvalidArgument
from .logging_config import get_logger, log_action

if TYPE_CHECKING:
    from .ledger import JournalStore


class AccountType(Enum):
    """Standard accounting account types"""
    ASSET = "asset"           # Debit normal balance
    LIABILITY = "liability"   # Credit normal balance
    EQUITY = "equity"         # Credit normal balance
    REVENUE = "revenue"       # Credit normal balance
    EXPENSE = "expense"       # Debit normal balance

    @property
    def normal_balance(self) -> 'NormalBalance':
        if self in (AccountType.ASSET, AccountType.EXPENSE):
            return NormalBalance.DEBIT
        return NormalBalance.CREDIT

    @property
    def code_class(self) -> str:
        """Leading digit of account codes of this type"""
        return _TYPE_CODE_CLASS[self]


class NormalBalance(Enum):
    DEBIT = "debit"
    CREDIT = "credit"


class ReportingCategory(Enum):
    """Financial statement section an account reports under"""
    CURRENT_ASSET = "current_asset"
    NON_CURRENT_ASSET = "non_current_asset"
    CURRENT_LIABILITY = "current_liability"
    NON_CURRENT_LIABILITY = "non_current_liability"
    EQUITY = "equity"
    OPERATING_REVENUE = "operating_revenue"
    NON_OPERATING_INCOME = "non_operating_income"
    OPERATING_EXPENSE = "operating_expense"
    NON_OPERATING_EXPENSE = "non_operating_expense"

    @property
    def account_type(self) -> AccountType:
        return _CATEGORY_TYPES[self]

    @property
    def is_income_statement(self) -> bool:
        return self.account_type in (AccountType.REVENUE, AccountType.EXPENSE)


_TYPE_CODE_CLASS = {
    AccountType.ASSET: "1",
    AccountType.LIABILITY: "2",
    AccountType.EQUITY: "3",
    AccountType.REVENUE: "4",
    AccountType.EXPENSE: "5",
}

_CATEGORY_TYPES = {
    ReportingCategory.CURRENT_ASSET: AccountType.ASSET,
    ReportingCategory.NON_CURRENT_ASSET: AccountType.ASSET,
    ReportingCategory.CURRENT_LIABILITY: AccountType.LIABILITY,
    ReportingCategory.NON_CURRENT_LIABILITY: AccountType.LIABILITY,
    ReportingCategory.EQUITY: AccountType.EQUITY,
    ReportingCategory.OPERATING_REVENUE: AccountType.REVENUE,
    ReportingCategory.NON_OPERATING_INCOME: AccountType.REVENUE,
    ReportingCategory.OPERATING_EXPENSE: AccountType.EXPENSE,
    ReportingCategory.NON_OPERATING_EXPENSE: AccountType.EXPENSE,
}

# Codes look like "1-1100" or "1-11-001": class digit, then groups of digits
ACCOUNT_CODE_PATTERN = re.compile(r"^[1-5]-\d+(-\d+)*$")


def derive_reporting_category(code: str, account_type: AccountType) -> ReportingCategory:
    """
    Classify an account by the cooperative's code conventions:
    1-2xxx non-current assets, 2-2xxx non-current liabilities,
    4-1xxx operating revenue, 5-1xxx operating expenses.
    """
    group = code[2:3]
    if account_type == AccountType.ASSET:
        return ReportingCategory.NON_CURRENT_ASSET if group == "2" else ReportingCategory.CURRENT_ASSET
    if account_type == AccountType.LIABILITY:
        return ReportingCategory.NON_CURRENT_LIABILITY if group == "2" else ReportingCategory.CURRENT_LIABILITY
    if account_type == AccountType.EQUITY:
        return ReportingCategory.EQUITY
    if account_type == AccountType.REVENUE:
        return ReportingCategory.OPERATING_REVENUE if group == "1" else ReportingCategory.NON_OPERATING_INCOME
    return ReportingCategory.OPERATING_EXPENSE if group == "1" else ReportingCategory.NON_OPERATING_EXPENSE


@dataclass
class Account(StorageRecord):
    """Chart of accounts node; the code doubles as the record id"""
    code: str
    name: str
    account_type: AccountType
    normal_balance: NormalBalance
    reporting_category: ReportingCategory
    parent_code: Optional[str] = None
    is_active: bool = True
    description: Optional[str] = None

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result['account_type'] = self.account_type.value
        result['normal_balance'] = self.normal_balance.value
        result['reporting_category'] = self.reporting_category.value
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Account':
        data = dict(data)
        data['created_at'] = datetime.fromisoformat(data['created_at'])
        data['updated_at'] = datetime.fromisoformat(data['updated_at'])
        data['account_type'] = AccountType(data['account_type'])
        data['normal_balance'] = NormalBalance(data['normal_balance'])
        data['reporting_category'] = ReportingCategory(data['reporting_category'])
        return cls(**data)


@dataclass
class AccountNode:
    """Account with its children, as returned by ChartOfAccounts.get_tree"""
    account: Account
    level: int
    children: List['AccountNode']


# Standard cooperative chart of accounts (code, name, type)
STANDARD_CHART = [
    ("1-1100", "Kas", AccountType.ASSET),
    ("1-1200", "Bank", AccountType.ASSET),
    ("1-1300", "Piutang Anggota", AccountType.ASSET),
    ("1-2100", "Peralatan Kantor", AccountType.ASSET),
    ("1-2200", "Akumulasi Penyusutan Peralatan", AccountType.ASSET),
    ("2-1100", "Utang Usaha", AccountType.LIABILITY),
    ("2-1200", "Utang Pajak", AccountType.LIABILITY),
    ("2-2100", "Utang Jangka Panjang", AccountType.LIABILITY),
    ("3-1100", "Modal Donasi", AccountType.EQUITY),
    ("3-1200", "Simpanan Pokok", AccountType.EQUITY),
    ("3-1300", "Simpanan Wajib", AccountType.EQUITY),
    ("3-1400", "Simpanan Sukarela", AccountType.EQUITY),
    ("3-1500", "Laba Tahun Berjalan", AccountType.EQUITY),
    ("3-2100", "Laba Ditahan", AccountType.EQUITY),
    ("4-1100", "Pendapatan Bunga Pinjaman", AccountType.REVENUE),
    ("4-1200", "Pendapatan Administrasi", AccountType.REVENUE),
    ("4-2100", "Pendapatan Lain-lain", AccountType.REVENUE),
    ("5-1100", "Beban Operasional", AccountType.EXPENSE),
    ("5-1200", "Beban Administrasi", AccountType.EXPENSE),
    ("5-1300", "Beban Penyusutan", AccountType.EXPENSE),
    ("5-2100", "Beban Lain-lain", AccountType.EXPENSE),
]


class ChartOfAccounts:
    """
    Manages account creation, deactivation and the account hierarchy
    """

    def __init__(self, storage: StorageInterface, audit_trail: Optional[AuditTrail] = None):
        self.storage = storage
        self.audit_trail = audit_trail
        self.table_name = "chart_of_accounts"
        self.logger = get_logger("coop_ledger.chart_of_accounts")

    def create_account(
        self,
        code: str,
        name: str,
        account_type: AccountType,
        normal_balance: Optional[NormalBalance] = None,
        parent_code: Optional[str] = None,
        reporting_category: Optional[ReportingCategory] = None,
        description: Optional[str] = None,
        created_by: Optional[str] = None
    ) -> Account:
        """
        Create a new account

        Args:
            code: Account code, e.g. "1-1100"; its first digit must match the type
            name: Display name
            account_type: Account type
            normal_balance: Must agree with the type if given
            parent_code: Code of an existing account of the same type
            reporting_category: Override for the derived statement section
            description: Free text
            created_by: Administrator creating the account

        Returns:
            Created Account

        Raises:
            ValidationError: If any of the invariants above is violated
        """
        if not isinstance(account_type, AccountType):
            raise InvalidArgument(f"Invalid account type: {account_type}", field="account_type")
        if not code or not ACCOUNT_CODE_PATTERN.match(code):
            raise ValidationError(f"Invalid account code '{code}'", field="code")
        if code[0] != account_type.code_class:
            raise ValidationError(
                f"Account code {code} does not belong to {account_type.value} accounts "
                f"(expected {account_type.code_class}-xxxx)", field="code"
            )
        if not name or not name.strip():
            raise ValidationError("Account name is required", field="name")

        expected_balance = account_type.normal_balance
        if normal_balance is not None and normal_balance != expected_balance:
            raise ValidationError(
                f"{account_type.value} accounts have a {expected_balance.value} normal balance, "
                f"got {normal_balance.value}", field="normal_balance"
            )

        if reporting_category is None:
            reporting_category = derive_reporting_category(code, account_type)
        elif reporting_category.account_type != account_type:
            raise ValidationError(
                f"Reporting category {reporting_category.value} is not valid for "
                f"{account_type.value} accounts", field="reporting_category"
            )

        if parent_code is not None:
            parent = self.get_account(parent_code)
            if parent is None:
                raise ValidationError(f"Parent account {parent_code} not found", field="parent_code")
            if parent.account_type != account_type:
                raise ValidationError(
                    f"Parent account {parent_code} is {parent.account_type.value}, "
                    f"child must have the same type", field="parent_code"
                )

        if self.storage.exists(self.table_name, code):
            raise ValidationError(f"Account {code} already exists", field="code")

        now = datetime.now(timezone.utc)
        account = Account(
            id=code,
            created_at=now,
            updated_at=now,
            code=code,
            name=name.strip(),
            account_type=account_type,
            normal_balance=expected_balance,
            reporting_category=reporting_category,
            parent_code=parent_code,
            description=description
        )
        self.storage.insert(self.table_name, code, account.to_dict())

        log_action(
            self.logger, "info", f"Account created: {code} {account.name}",
            user_id=created_by, action="create_account", resource=f"account:{code}",
            extra={"account_type": account_type.value, "reporting_category": reporting_category.value}
        )
        self._audit(AuditEventType.ACCOUNT_CREATED, code, {
            "name": account.name,
            "account_type": account_type.value,
            "parent_code": parent_code
        }, created_by)

        return account

    def get_account(self, code: str) -> Optional[Account]:
        data = self.storage.load(self.table_name, code)
        if data:
            return Account.from_dict(data)
        return None

    def require_account(self, code: str) -> Account:
        """Get an account or raise ValidationError naming the code"""
        account = self.get_account(code)
        if account is None:
            raise ValidationError(f"Account {code} not found in chart of accounts", field="account_code")
        return account

    def list_accounts(
        self,
        account_type: Optional[AccountType] = None,
        active_only: bool = False
    ) -> List[Account]:
        """List accounts sorted by code"""
        accounts = [Account.from_dict(d) for d in self.storage.load_all(self.table_name)]
        if account_type is not None:
            accounts = [a for a in accounts if a.account_type == account_type]
        if active_only:
            accounts = [a for a in accounts if a.is_active]
        accounts.sort(key=lambda a: a.code)
        return accounts

    def get_children(self, code: str) -> List[Account]:
        return [a for a in self.list_accounts() if a.parent_code == code]

    def get_tree(self) -> List[AccountNode]:
        """Account hierarchy as nested nodes, roots first, each level sorted by code"""
        accounts = self.list_accounts()
        by_parent: Dict[Optional[str], List[Account]] = {}
        for account in accounts:
            by_parent.setdefault(account.parent_code, []).append(account)

        def build(parent_code: Optional[str], level: int) -> List[AccountNode]:
            return [
                AccountNode(account=a, level=level, children=build(a.code, level + 1))
                for a in by_parent.get(parent_code, [])
            ]

        return build(None, 0)

    def deactivate_account(self, code: str, user_id: Optional[str] = None) -> Account:
        """Deactivate an account; it keeps its history but accepts no new postings"""
        return self._set_active(code, False, user_id)

    def reactivate_account(self, code: str, user_id: Optional[str] = None) -> Account:
        return self._set_active(code, True, user_id)

    def delete_account(
        self,
        code: str,
        journal_store: 'JournalStore',
        user_id: Optional[str] = None
    ) -> None:
        """
        Hard-delete an account that no journal line references

        Raises:
            ValidationError: If the account is missing, has children or is referenced
        """
        self.require_account(code)
        if self.get_children(code):
            raise ValidationError(f"Account {code} has child accounts", field="code")
        if journal_store.is_account_referenced(code):
            raise ValidationError(
                f"Account {code} is referenced by journal entries; deactivate it instead",
                field="code"
            )
        self.storage.delete(self.table_name, code)
        log_action(self.logger, "info", f"Account deleted: {code}",
                   user_id=user_id, action="delete_account", resource=f"account:{code}")
        self._audit(AuditEventType.ACCOUNT_DELETED, code, {}, user_id)

    def seed_standard_accounts(self) -> List[Account]:
        """Create the standard cooperative chart, skipping codes that already exist"""
        created = []
        for code, name, account_type in STANDARD_CHART:
            if not self.storage.exists(self.table_name, code):
                created.append(self.create_account(code, name, account_type, created_by="system"))
        return created

    def _set_active(self, code: str, active: bool, user_id: Optional[str]) -> Account:
        account = self.require_account(code)
        if account.is_active == active:
            return account
        account.is_active = active
        account.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.table_name, code, account.to_dict())

        event = AuditEventType.ACCOUNT_REACTIVATED if active else AuditEventType.ACCOUNT_DEACTIVATED
        log_action(self.logger, "info", f"Account {event.value.split('_')[1]}: {code}",
                   user_id=user_id, action=event.value, resource=f"account:{code}")
        self._audit(event, code, {}, user_id)
        return account

    def _audit(self, event_type: AuditEventType, code: str,
               metadata: Dict[str, Any], user_id: Optional[str]) -> None:
        if self.audit_trail:
            self.audit_trail.log_event(
                event_type=event_type,
                entity_type="account",
                entity_id=code,
                metadata=metadata,
                user_id=user_id
            )
