import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from .errors import (
    InvalidExpenseError,
    InvalidParticipantError,
    NotADebtorError,
    ParticipantNotFoundError,
    PaymentExceedsDebtError,
)
from .models import (
    Activity,
    ActivityExpensesResult,
    ActivityListItem,
    ActivityListResult,
    ActivityParticipantsResult,
    ActivityResponse,
    AddParticipantsRequest,
    CreateActivityRequest,
    CreateExpenseRequest,
    CreateUserRequest,
    DebtShare,
    Expense,
    ExpenseDetail,
    ExpenseListItem,
    ExpenseParticipantInfo,
    ParticipantInfo,
    Payment,
    RecordPaymentRequest,
    UpdateActivityRequest,
    UpdateExpenseRequest,
    User,
    UserInfo,
)
from .storage import InMemoryStorage, LedgerSnapshot

logger = logging.getLogger(__name__)


def split_amount(amount: int, count: int) -> list[int]:
    """
    Split amount into count integer parts that sum to amount exactly.

    Every part gets the floored per-head amount and the first
    ``amount % count`` parts get one extra unit, so 10000 over three
    people is [3334, 3333, 3333].
    """
    if count <= 0:
        raise InvalidExpenseError("An expense needs at least one participant")
    base, remainder = divmod(amount, count)
    return [base + 1] * remainder + [base] * (count - remainder)


class LedgerService:
    """Write path for activities, expenses and payments.

    Each mutating operation validates and writes while holding the storage
    transaction, so balance snapshots never observe half of a change.
    """

    def __init__(self, storage: Optional[InMemoryStorage] = None):
        self.storage = storage or InMemoryStorage()

    def create_user(self, request: CreateUserRequest) -> User:
        user = self.storage.add_user(User(id=uuid4(), name=request.name, email=request.email))
        logger.info("Created user %s", user.id)
        return user

    def create_activity(self, request: CreateActivityRequest) -> ActivityResponse:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                for user_id in request.participant_ids:
                    ledger.fetch_user(user_id)

            activity = self.storage.add_activity(Activity(
                id=uuid4(),
                name=request.name,
                activity_date=request.activity_date,
                created_at=datetime.now(timezone.utc),
            ))
            for user_id in request.participant_ids:
                self.storage.add_participant(activity.id, user_id)

        logger.info("Created activity %s with %d participants", activity.id, len(request.participant_ids))
        return self.get_activity(activity.id)

    def add_participants(self, activity_id: UUID, request: AddParticipantsRequest) -> ActivityResponse:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_activity(activity_id)
                for user_id in request.user_ids:
                    ledger.fetch_user(user_id)
            for user_id in request.user_ids:
                self.storage.add_participant(activity_id, user_id)

        return self.get_activity(activity_id)

    def remove_participant(
        self,
        activity_id: UUID,
        user_id: UUID,
        requested_by: Optional[UUID] = None,
    ) -> ActivityResponse:
        """
        Remove a user from an activity.

        A requester cannot remove themself. A participant who paid for or
        owes a share of any expense in the activity stays until those
        expenses are updated or deleted, so every debt share always belongs
        to a current participant.
        """
        if requested_by is not None and requested_by == user_id:
            raise InvalidParticipantError("Participants cannot remove themselves from an activity")

        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_activity(activity_id)
                if user_id not in ledger.fetch_participant_ids(activity_id):
                    raise ParticipantNotFoundError(f"User {user_id} is not a participant of activity {activity_id}")
                for expense in ledger.fetch_expenses(activity_id):
                    owes = any(s.user_id == user_id for s in ledger.fetch_debt_shares(expense.id))
                    if expense.payer_id == user_id or owes:
                        raise InvalidParticipantError(
                            f"User {user_id} is still part of expense {expense.id}"
                        )
            self.storage.remove_participant(activity_id, user_id)

        logger.info("Removed user %s from activity %s", user_id, activity_id)
        return self.get_activity(activity_id)

    def list_participants(self, activity_id: UUID) -> ActivityParticipantsResult:
        with self.storage.snapshot() as ledger:
            activity = ledger.fetch_activity(activity_id)
            participants = []
            for membership in ledger.fetch_memberships(activity_id):
                user = ledger.fetch_user(membership.user_id)
                participants.append(ParticipantInfo(
                    user_id=user.id,
                    name=user.name,
                    email=user.email,
                    joined_at=membership.joined_at,
                ))
        return ActivityParticipantsResult(
            activity_id=activity.id,
            activity_name=activity.name,
            participants=participants,
        )

    def get_activity(self, activity_id: UUID) -> ActivityResponse:
        with self.storage.snapshot() as ledger:
            activity = ledger.fetch_activity(activity_id)
            expenses = ledger.fetch_expenses(activity_id)
            return ActivityResponse(
                id=activity.id,
                name=activity.name,
                activity_date=activity.activity_date,
                participants=[UserInfo.of(u) for u in ledger.fetch_participants(activity_id)],
                expenses_count=len(expenses),
                total_amount_minor_units=sum(e.amount for e in expenses),
            )

    def update_activity(self, activity_id: UUID, request: UpdateActivityRequest) -> ActivityResponse:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                activity = ledger.fetch_activity(activity_id)

            changes = {}
            if request.name is not None:
                changes["name"] = request.name
            if request.activity_date is not None:
                changes["activity_date"] = request.activity_date
            self.storage.save_activity(activity.model_copy(update=changes))

        logger.info("Updated activity %s", activity_id)
        return self.get_activity(activity_id)

    def list_user_activities(self, user_id: UUID) -> ActivityListResult:
        """Activities the user takes part in, with their totals."""
        with self.storage.snapshot() as ledger:
            ledger.fetch_user(user_id)
            items = []
            for activity_id in ledger.fetch_participations(user_id):
                activity = ledger.fetch_activity(activity_id)
                expenses = ledger.fetch_expenses(activity_id)
                items.append(ActivityListItem(
                    id=activity.id,
                    name=activity.name,
                    activity_date=activity.activity_date,
                    total_amount_minor_units=sum(e.amount for e in expenses),
                    participants_count=len(ledger.fetch_participant_ids(activity_id)),
                    expenses_count=len(expenses),
                ))
        return ActivityListResult(user_id=user_id, activities=items)

    def list_expenses(self, activity_id: UUID) -> ActivityExpensesResult:
        with self.storage.snapshot() as ledger:
            activity = ledger.fetch_activity(activity_id)
            items = []
            for expense in ledger.fetch_expenses(activity_id):
                payer = None
                if expense.payer_id is not None:
                    payer = UserInfo.of(ledger.fetch_user(expense.payer_id))
                items.append(ExpenseListItem(
                    id=expense.id,
                    name=expense.name,
                    amount=expense.amount,
                    payer=payer,
                    participants_count=len(ledger.fetch_debt_shares(expense.id)),
                    created_at=expense.created_at,
                ))
        return ActivityExpensesResult(activity_id=activity.id, activity_name=activity.name, expenses=items)

    def delete_activity(self, activity_id: UUID) -> None:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_activity(activity_id)
            self.storage.delete_activity(activity_id)
        logger.info("Deleted activity %s", activity_id)

    def create_expense(self, activity_id: UUID, request: CreateExpenseRequest) -> ExpenseDetail:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_activity(activity_id)
                members = set(ledger.fetch_participant_ids(activity_id))
                self._check_members(ledger, members, request.payer_id, request.participant_ids)

            expense = Expense(
                id=uuid4(),
                name=request.title,
                amount=request.amount,
                activity_id=activity_id,
                payer_id=request.payer_id,
                created_at=datetime.now(timezone.utc),
            )
            self.storage.save_expense(expense, self._build_shares(expense, request.participant_ids))

        logger.info("Created expense %s in activity %s", expense.id, activity_id)
        return self.get_expense_detail(expense.id)

    def update_expense(self, expense_id: UUID, request: UpdateExpenseRequest) -> ExpenseDetail:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                expense = ledger.fetch_expense(expense_id)
                members = set(ledger.fetch_participant_ids(expense.activity_id))
                self._check_members(ledger, members, request.payer_id, request.participant_ids or [])
                current_shares = ledger.fetch_debt_shares(expense_id)
                payments = ledger.fetch_payments(expense_id)

            changes = {}
            if request.title is not None:
                changes["name"] = request.title
            if request.amount is not None:
                changes["amount"] = request.amount
            if "payer_id" in request.model_fields_set:
                changes["payer_id"] = request.payer_id
            updated = expense.model_copy(update=changes)

            shares = None
            if request.participant_ids is not None or request.amount is not None:
                participant_ids = request.participant_ids or [s.user_id for s in current_shares]
                shares = self._build_shares(updated, participant_ids)
                self._check_payments_covered(shares, payments)

            self.storage.save_expense(updated, shares)

        logger.info("Updated expense %s (shares recalculated: %s)", expense_id, shares is not None)
        return self.get_expense_detail(expense_id)

    def delete_expense(self, expense_id: UUID) -> None:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_expense(expense_id)
            self.storage.delete_expense(expense_id)
        logger.info("Deleted expense %s", expense_id)

    def record_payment(self, expense_id: UUID, request: RecordPaymentRequest) -> Payment:
        with self.storage.transaction():
            with self.storage.snapshot() as ledger:
                ledger.fetch_expense(expense_id)
                ledger.fetch_user(request.debtor_id)
                share = next(
                    (s for s in ledger.fetch_debt_shares(expense_id) if s.user_id == request.debtor_id),
                    None,
                )
                if share is None:
                    raise NotADebtorError(f"User {request.debtor_id} has no debt on expense {expense_id}")
                already_paid = sum(p.amount_paid for p in ledger.fetch_payments(expense_id, request.debtor_id))

            remaining = share.amount_owed - already_paid
            if request.amount_paid > remaining:
                logger.warning(
                    "Rejected payment of %d on expense %s: remaining debt is %d",
                    request.amount_paid, expense_id, remaining,
                )
                raise PaymentExceedsDebtError(
                    f"Payment of {request.amount_paid} exceeds remaining debt of {remaining}"
                )

            payment = self.storage.add_payment(Payment(
                id=uuid4(),
                expense_id=expense_id,
                debtor_id=request.debtor_id,
                amount_paid=request.amount_paid,
                paid_at=datetime.now(timezone.utc),
            ))

        logger.info("Recorded payment %s on expense %s", payment.id, expense_id)
        return payment

    def get_expense_detail(self, expense_id: UUID) -> ExpenseDetail:
        with self.storage.snapshot() as ledger:
            expense = ledger.fetch_expense(expense_id)
            activity = ledger.fetch_activity(expense.activity_id)
            payments = ledger.fetch_payments(expense_id)

            paid_by: dict[UUID, int] = {}
            for payment in payments:
                paid_by[payment.debtor_id] = paid_by.get(payment.debtor_id, 0) + payment.amount_paid

            participants = []
            for share in ledger.fetch_debt_shares(expense_id):
                paid = paid_by.get(share.user_id, 0)
                participants.append(ExpenseParticipantInfo(
                    user_id=share.user_id,
                    name=ledger.fetch_user(share.user_id).name,
                    amount_owed=share.amount_owed,
                    amount_paid=paid,
                    remaining_debt=max(0, share.amount_owed - paid),
                ))

            payer = None
            if expense.payer_id is not None:
                payer = UserInfo.of(ledger.fetch_user(expense.payer_id))

            return ExpenseDetail(
                id=expense.id,
                name=expense.name,
                amount=expense.amount,
                activity_id=activity.id,
                activity_name=activity.name,
                payer=payer,
                participants=participants,
                payments=payments,
                created_at=expense.created_at,
            )

    def _check_members(
        self,
        ledger: LedgerSnapshot,
        members: set[UUID],
        payer_id: Optional[UUID],
        participant_ids: list[UUID],
    ) -> None:
        if payer_id is not None:
            ledger.fetch_user(payer_id)
            if payer_id not in members:
                raise InvalidExpenseError(f"Payer {payer_id} is not a participant of the activity")
        for user_id in participant_ids:
            ledger.fetch_user(user_id)
            if user_id not in members:
                raise InvalidExpenseError(f"User {user_id} is not a participant of the activity")

    def _build_shares(self, expense: Expense, participant_ids: list[UUID]) -> list[DebtShare]:
        amounts = split_amount(expense.amount, len(participant_ids))
        return [
            DebtShare(expense_id=expense.id, user_id=user_id, amount_owed=amount)
            for user_id, amount in zip(participant_ids, amounts)
        ]

    def _check_payments_covered(self, shares: list[DebtShare], payments: list[Payment]) -> None:
        owed = {s.user_id: s.amount_owed for s in shares}
        paid: dict[UUID, int] = {}
        for payment in payments:
            paid[payment.debtor_id] = paid.get(payment.debtor_id, 0) + payment.amount_paid
        for debtor_id, amount_paid in paid.items():
            if amount_paid > owed.get(debtor_id, 0):
                raise InvalidExpenseError(
                    f"User {debtor_id} already paid {amount_paid}, more than the new share"
                )
