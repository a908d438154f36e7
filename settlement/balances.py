import logging
from typing import Optional
from uuid import UUID

from .models import (
    ActivityBalanceResult,
    CreditDetail,
    DebitDetail,
    DetailedBalanceResult,
    Transfer,
    UserInfo,
)
from .storage import InMemoryStorage

logger = logging.getLogger(__name__)


def settle_balances(balances: dict[UUID, int]) -> list[tuple[UUID, UUID, int]]:
    """
    Turn net balances into a minimal list of (debtor, creditor, amount) transfers.

    Positive balance means the user is owed money, negative means they owe.
    Both sides are matched largest-first; ties are broken by user id so the
    result is reproducible. At most debtors + creditors - 1 transfers are
    produced, since every step retires at least one side.
    """
    debtors = [(user_id, -amount) for user_id, amount in balances.items() if amount < 0]
    creditors = [(user_id, amount) for user_id, amount in balances.items() if amount > 0]
    debtors.sort(key=lambda x: (-x[1], str(x[0])))
    creditors.sort(key=lambda x: (-x[1], str(x[0])))

    transfers = []
    i = j = 0
    while i < len(debtors) and j < len(creditors):
        debtor_id, debt = debtors[i]
        creditor_id, credit = creditors[j]
        amount = min(debt, credit)
        transfers.append((debtor_id, creditor_id, amount))
        debt -= amount
        credit -= amount
        if debt == 0:
            i += 1
        else:
            debtors[i] = (debtor_id, debt)
        if credit == 0:
            j += 1
        else:
            creditors[j] = (creditor_id, credit)

    return transfers


class BalanceService:
    """Per-activity settlement and the uncompensated per-user listing.

    Neither view subtracts recorded payments: they work on the raw debt
    allocation. See LedgerService.get_expense_detail for the payment-aware view.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def calculate_activity_balance(self, activity_id: UUID) -> ActivityBalanceResult:
        with self.storage.snapshot() as ledger:
            activity = ledger.fetch_activity(activity_id)
            balances = {user_id: 0 for user_id in ledger.fetch_participant_ids(activity_id)}

            for expense in ledger.fetch_expenses(activity_id):
                if expense.payer_id is None:
                    continue
                balances[expense.payer_id] = balances.get(expense.payer_id, 0) + expense.amount
                for share in ledger.fetch_debt_shares(expense.id):
                    balances[share.user_id] = balances.get(share.user_id, 0) - share.amount_owed

            transfers = [
                Transfer(
                    from_user=UserInfo.of(ledger.fetch_user(debtor_id)),
                    to_user=UserInfo.of(ledger.fetch_user(creditor_id)),
                    amount_minor_units=amount,
                )
                for debtor_id, creditor_id, amount in settle_balances(balances)
            ]

        logger.debug("Activity %s settles with %d transfers", activity_id, len(transfers))
        return ActivityBalanceResult(
            activity_id=activity.id,
            activity_name=activity.name,
            transfers=transfers,
        )

    def calculate_detailed_balance(self, user_id: UUID) -> DetailedBalanceResult:
        with self.storage.snapshot() as ledger:
            ledger.fetch_user(user_id)

            credits = []
            for expense in ledger.fetch_expenses_paid_by(user_id):
                activity = ledger.fetch_activity(expense.activity_id)
                for share in ledger.fetch_debt_shares(expense.id):
                    credits.append(CreditDetail(
                        debtor=UserInfo.of(ledger.fetch_user(share.user_id)),
                        amount_minor_units=share.amount_owed,
                        activity_id=activity.id,
                        activity_name=activity.name,
                        expense_id=expense.id,
                        expense_name=expense.name,
                    ))

            debits = []
            for share in ledger.fetch_debt_shares_for_user(user_id):
                expense = ledger.fetch_expense(share.expense_id)
                if expense.payer_id is None:
                    continue
                activity = ledger.fetch_activity(expense.activity_id)
                debits.append(DebitDetail(
                    creditor=UserInfo.of(ledger.fetch_user(expense.payer_id)),
                    amount_minor_units=share.amount_owed,
                    activity_id=activity.id,
                    activity_name=activity.name,
                    expense_id=expense.id,
                    expense_name=expense.name,
                ))

        return DetailedBalanceResult(
            user_id=user_id,
            total_credit=sum(c.amount_minor_units for c in credits),
            total_debt=sum(d.amount_minor_units for d in debits),
            credits=credits,
            debits=debits,
        )
