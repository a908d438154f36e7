"""
Shared Expense Settlement Ledger

This package provides:
- Minimal settlement transfers for a single activity
- Uncompensated per-user debt and credit listings
- Compensated balance between two users across every shared activity
- A user's global compensated position against every counterparty
- The write path for activities, participants, expenses, equal splits and payments
"""

from .balances import BalanceService, settle_balances
from .compensation import CompensationService
from .errors import (
    LedgerServiceError,
    NotFoundError,
    UserNotFoundError,
    ActivityNotFoundError,
    ExpenseNotFoundError,
    InvalidExpenseError,
    InvalidParticipantError,
    ParticipantNotFoundError,
    NotADebtorError,
    PaymentExceedsDebtError,
)
from .models import (
    ActivityBalanceResult,
    DetailedBalanceResult,
    PairwiseBalanceResult,
    GlobalBalanceResult,
)
from .service import LedgerService, split_amount
from .storage import InMemoryStorage, LedgerSnapshot

__all__ = [
    "BalanceService",
    "CompensationService",
    "LedgerService",
    "InMemoryStorage",
    "LedgerSnapshot",
    "settle_balances",
    "split_amount",
    "ActivityBalanceResult",
    "DetailedBalanceResult",
    "PairwiseBalanceResult",
    "GlobalBalanceResult",
    "LedgerServiceError",
    "NotFoundError",
    "UserNotFoundError",
    "ActivityNotFoundError",
    "ExpenseNotFoundError",
    "InvalidExpenseError",
    "InvalidParticipantError",
    "ParticipantNotFoundError",
    "NotADebtorError",
    "PaymentExceedsDebtError",
]
