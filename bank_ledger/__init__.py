"""
Bank Ledger

Internal banking API core: customer accounts, an atomic funds-transfer
engine with store-level concurrency control, and per-account transfer
history. All monetary values use Decimal.
"""

__version__ = "1.0.0"
