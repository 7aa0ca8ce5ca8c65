"""
Installment Ledger

Monthly installment obligations for equipment sold on installment terms:
lazy schedule growth, partial payments with carryover into the next month,
and locking of settled history. All monetary values use Decimal.
"""

__version__ = "1.0.0"
