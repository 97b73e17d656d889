"""
Status and method enumerations for sales, transfers and withdrawals.
"""

import enum


class TransactionStatus(str, enum.Enum):
    """Sale status: PENDING -> COMPLETED -> CANCELLED | REFUNDED, PENDING -> CANCELLED."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    """How the client paid the merchant."""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"


class TransferStatus(str, enum.Enum):
    """Transfer status: PENDING -> COMPLETED | CANCELLED."""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class WithdrawalStatus(str, enum.Enum):
    """Withdrawal status: PENDING -> COMPLETED | REJECTED."""
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WithdrawalMethod(str, enum.Enum):
    """Payout rail for a withdrawal."""
    BANK = "bank"
    ZELLE = "zelle"
