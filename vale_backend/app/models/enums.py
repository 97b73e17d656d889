"""
Enumerations for users, sales, ledger entries, transfers and withdrawals.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        CLIENT: Buys from merchants and accumulates cashback
        MERCHANT: Records sales and pays the platform fee
        ADMIN: Configures rates and resolves withdrawals/transfers
    """
    CLIENT = "client"
    MERCHANT = "merchant"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    """User account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    BLOCKED = "blocked"


class LedgerEntryKind(str, enum.Enum):
    """Kind of balance-affecting event recorded by a ledger entry."""
    SALE_CASHBACK = "sale_cashback"  # credit: client cashback on a completed sale
    REFERRAL_COMMISSION = "referral_commission"  # credit: referrer's share of a sale
    PLATFORM_FEE = "platform_fee"  # debit: merchant fee on a completed sale
    TRANSFER_IN = "transfer_in"  # credit
    TRANSFER_OUT = "transfer_out"  # debit
    WITHDRAWAL = "withdrawal"  # debit
    REVERSAL = "reversal"  # offsets exactly one earlier entry


CREDIT_KINDS = frozenset({
    LedgerEntryKind.SALE_CASHBACK,
    LedgerEntryKind.REFERRAL_COMMISSION,
    LedgerEntryKind.TRANSFER_IN,
})

DEBIT_KINDS = frozenset({
    LedgerEntryKind.PLATFORM_FEE,
    LedgerEntryKind.TRANSFER_OUT,
    LedgerEntryKind.WITHDRAWAL,
})

# Debits that must never drive the balance below zero
FUNDED_DEBIT_KINDS = frozenset({
    LedgerEntryKind.TRANSFER_OUT,
    LedgerEntryKind.WITHDRAWAL,
})


class LedgerEntryStatus(str, enum.Enum):
    """
    Ledger entry status.

    Rows are stored as POSTED and never updated. REVERSED is reported for
    entries that a later reversal entry offsets.
    """
    POSTED = "posted"
    REVERSED = "reversed"
