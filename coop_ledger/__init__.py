"""
Cooperative Ledger Core

Double-entry bookkeeping for a savings-and-loan cooperative: chart of
accounts, auto-generated journal entries, trial balance and financial
statements. Monetary values use Decimal throughout.
"""

__version__ = "1.0.0"
