"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from decimal import Decimal
from typing import Dict, Literal, Optional

from pydantic_settings import BaseSettings

from .currency import Currency


class CoopLedgerConfig(BaseSettings):
    """Cooperative ledger configuration"""

    # Storage configuration
    database_url: str = "memory://"  # or sqlite:///path/to/ledger.db

    # Bookkeeping rules
    currency: str = "IDR"
    balance_tolerance: str = "0.01"  # Max |debit - credit| accepted when posting
    require_open_period: bool = True
    journal_failure_policy: Literal["warn", "raise"] = "warn"

    # Standard accounts used by auto-generated journals
    account_cash: str = "1-1100"
    account_bank: str = "1-1200"
    account_receivable: str = "1-1300"
    account_simpanan_pokok: str = "3-1200"
    account_simpanan_wajib: str = "3-1300"
    account_simpanan_sukarela: str = "3-1400"
    account_current_year_earnings: str = "3-1500"
    account_interest_revenue: str = "4-1100"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "COOP_LEDGER_"
        env_file = ".env"
        case_sensitive = False

    @property
    def ledger_currency(self) -> Currency:
        return Currency[self.currency.upper()]

    @property
    def tolerance(self) -> Decimal:
        return Decimal(self.balance_tolerance)

    def standard_accounts(self) -> Dict[str, str]:
        """Account keys referenced by journal templates, mapped to COA codes"""
        return {
            "cash": self.account_cash,
            "bank": self.account_bank,
            "receivable": self.account_receivable,
            "simpanan_pokok": self.account_simpanan_pokok,
            "simpanan_wajib": self.account_simpanan_wajib,
            "simpanan_sukarela": self.account_simpanan_sukarela,
            "current_year_earnings": self.account_current_year_earnings,
            "interest_revenue": self.account_interest_revenue,
        }


# Global configuration instance
config = CoopLedgerConfig()


def get_config() -> CoopLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> CoopLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = CoopLedgerConfig()
    return config
