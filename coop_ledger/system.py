"""
Ledger system context: every component wired from one configuration
"""

from typing import Optional

from .config import CoopLedgerConfig, get_config
from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .chart_of_accounts import ChartOfAccounts
from .periods import PeriodManager
from .ledger import JournalStore
from .auto_journal import AutoJournalGenerator, JournalIntegration
from .reporting import LedgerReporter


class LedgerSystem:
    """Cooperative ledger with all components initialized"""

    def __init__(
        self,
        config: Optional[CoopLedgerConfig] = None,
        storage: Optional[StorageInterface] = None
    ):
        self.config = config or get_config()

        # Initialize storage
        self.storage = storage or create_storage(self.config.database_url)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage) if self.config.enable_audit_logging else None
        self.chart = ChartOfAccounts(self.storage, self.audit_trail)
        self.periods = PeriodManager(self.storage, self.audit_trail, self.config)
        self.journal_store = JournalStore(
            self.storage, self.chart, self.audit_trail, self.periods, self.config
        )
        self.generator = AutoJournalGenerator(self.config)
        self.integration = JournalIntegration(self.generator, self.journal_store, self.audit_trail)
        self.reporter = LedgerReporter(self.journal_store, self.chart, self.config)

    def close(self) -> None:
        self.storage.close()
