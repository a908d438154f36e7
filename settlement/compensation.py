"""
Compensation: netting debts between two people across every activity they share.

Both the pairwise and the global view are built from the same index,
counterparty -> activity -> signed net, computed in one pass over the
expenses of a user's activities. The sign is always taken from the point of
view of the user the index was built for: positive means that user owes the
counterparty.
"""

import logging
from collections import defaultdict
from typing import Iterable, Optional
from uuid import UUID

from .models import (
    ActivityBreakdown,
    CompensatedBalance,
    GlobalBalanceResult,
    NetBalance,
    PairwiseActivityDetail,
    PairwiseBalanceResult,
    UserInfo,
)
from .storage import InMemoryStorage, LedgerSnapshot

logger = logging.getLogger(__name__)


def _ordered_activities(ledger: LedgerSnapshot, activity_ids: Iterable[UUID]) -> list[UUID]:
    return sorted(
        activity_ids,
        key=lambda a: (ledger.fetch_activity(a).activity_date, str(a)),
    )


def index_pair_nets(
    ledger: LedgerSnapshot,
    user_id: UUID,
    activity_ids: list[UUID],
    counterparty_id: Optional[UUID] = None,
) -> dict[UUID, dict[UUID, int]]:
    """
    Build counterparty -> activity -> net for user_id over the given activities.

    An expense paid by user_id lowers the net towards every other share
    holder by what they owe; an expense paid by someone else raises the net
    towards that payer by what user_id owes. Expenses without a payer are
    ignored, as are users who are not participants of the activity.
    Restricting to counterparty_id yields the pairwise view.
    """
    nets: dict[UUID, dict[UUID, int]] = defaultdict(lambda: defaultdict(int))

    for activity_id in activity_ids:
        members = set(ledger.fetch_participant_ids(activity_id))
        if user_id not in members:
            continue
        for expense in ledger.fetch_expenses(activity_id):
            payer_id = expense.payer_id
            if payer_id is None:
                continue
            shares = ledger.fetch_debt_shares(expense.id)
            if payer_id == user_id:
                for share in shares:
                    other = share.user_id
                    if other == user_id or other not in members:
                        continue
                    if counterparty_id is not None and other != counterparty_id:
                        continue
                    nets[other][activity_id] -= share.amount_owed
            else:
                if payer_id not in members:
                    continue
                if counterparty_id is not None and payer_id != counterparty_id:
                    continue
                for share in shares:
                    if share.user_id == user_id:
                        nets[payer_id][activity_id] += share.amount_owed

    return nets


class CompensationService:
    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def calculate_balance_between_users(self, user_id_1: UUID, user_id_2: UUID) -> PairwiseBalanceResult:
        with self.storage.snapshot() as ledger:
            user_1 = ledger.fetch_user(user_id_1)
            user_2 = ledger.fetch_user(user_id_2)

            shared = set(ledger.fetch_participations(user_id_1)) & set(ledger.fetch_participations(user_id_2))
            if not shared:
                return PairwiseBalanceResult(net_balance=None, details=[])

            activity_ids = _ordered_activities(ledger, shared)
            per_activity = index_pair_nets(ledger, user_id_1, activity_ids, user_id_2).get(user_id_2, {})

            info_1, info_2 = UserInfo.of(user_1), UserInfo.of(user_2)
            details = []
            net = 0
            for activity_id in activity_ids:
                amount = per_activity.get(activity_id, 0)
                if amount == 0:
                    continue
                net += amount
                details.append(PairwiseActivityDetail(
                    activity_id=activity_id,
                    activity_name=ledger.fetch_activity(activity_id).name,
                    from_user=info_1 if amount > 0 else info_2,
                    to_user=info_2 if amount > 0 else info_1,
                    amount_minor_units=abs(amount),
                ))

        net_balance = None
        if net != 0:
            net_balance = NetBalance(
                debtor=info_1 if net > 0 else info_2,
                creditor=info_2 if net > 0 else info_1,
                amount_minor_units=abs(net),
            )

        return PairwiseBalanceResult(net_balance=net_balance, details=details)

    def calculate_user_global_balance(self, user_id: UUID) -> GlobalBalanceResult:
        with self.storage.snapshot() as ledger:
            ledger.fetch_user(user_id)
            activity_ids = _ordered_activities(ledger, set(ledger.fetch_participations(user_id)))

            counterparties = set()
            for activity_id in activity_ids:
                counterparties.update(ledger.fetch_participant_ids(activity_id))
            counterparties.discard(user_id)

            nets = index_pair_nets(ledger, user_id, activity_ids)

            compensated_debts = []
            compensated_credits = []
            global_net = 0
            for other_id in counterparties:
                per_activity = nets.get(other_id, {})
                breakdown = [
                    ActivityBreakdown(
                        activity_id=activity_id,
                        activity_name=ledger.fetch_activity(activity_id).name,
                        amount_minor_units=per_activity[activity_id],
                    )
                    for activity_id in activity_ids
                    if per_activity.get(activity_id, 0) != 0
                ]
                net = sum(b.amount_minor_units for b in breakdown)
                if net == 0:
                    continue

                global_net += net
                entry = CompensatedBalance(
                    counterparty=UserInfo.of(ledger.fetch_user(other_id)),
                    net_amount_minor_units=abs(net),
                    activities_count=len(breakdown),
                    activities=breakdown,
                )
                if net > 0:
                    compensated_debts.append(entry)
                else:
                    compensated_credits.append(entry)

        def by_magnitude(entry: CompensatedBalance):
            return (-entry.net_amount_minor_units, entry.counterparty.name, str(entry.counterparty.user_id))

        compensated_debts.sort(key=by_magnitude)
        compensated_credits.sort(key=by_magnitude)

        logger.debug(
            "User %s global position %d across %d counterparties",
            user_id, global_net, len(compensated_debts) + len(compensated_credits),
        )
        return GlobalBalanceResult(
            user_id=user_id,
            net_balance_minor_units=global_net,
            compensated_debts=compensated_debts,
            compensated_credits=compensated_credits,
        )
