"""
Ledger error types

Recoverable errors derive from ValueError so callers that only know the
"invalid input" contract keep working. A generator that builds unbalanced
lines is a programming defect and fails as an assertion instead.
"""

from typing import Optional


class LedgerError(ValueError):
    """Base class for recoverable ledger errors"""


class ValidationError(LedgerError):
    """Input rejected before any write; `field` names the offending input"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class InvalidArgument(ValidationError):
    """An enumerated argument has an unrecognized value"""


class UnbalancedEntryError(ValidationError):
    """Total debits differ from total credits"""

    def __init__(self, message: str, total_debit=None, total_credit=None):
        super().__init__(message, field="lines")
        self.total_debit = total_debit
        self.total_credit = total_credit


class ClosedPeriodError(LedgerError):
    """Entry date falls in a closed (or undefined) accounting period"""

    def __init__(self, message: str, year: Optional[int] = None, month: Optional[int] = None):
        super().__init__(message)
        self.year = year
        self.month = month


class UnsupportedTransactionType(LedgerError):
    """No journal template exists for the requested business transaction"""


class PersistenceError(LedgerError):
    """Storage rejected a write (e.g. duplicate key on an insert-only table)"""


class JournalGenerationDefect(AssertionError):
    """A journal template produced unbalanced lines"""
