import logging
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta, timezone
from typing import Iterator, Optional
from uuid import UUID, uuid4

from .errors import ActivityNotFoundError, ExpenseNotFoundError, UserNotFoundError
from .models import Activity, DebtShare, Expense, Participation, Payment, User

logger = logging.getLogger(__name__)


class LedgerSnapshot:
    """Read-only view over one consistent copy of the ledger tables.

    Every read made by a balance computation goes through a single snapshot,
    so a write committed while the computation runs is either fully visible
    or not visible at all. Collections come back fully materialized and in
    insertion order.
    """

    def __init__(
        self,
        users: dict[UUID, User],
        activities: dict[UUID, Activity],
        participations: dict[tuple[UUID, UUID], Participation],
        expenses: dict[UUID, Expense],
        debt_shares: dict[UUID, list[DebtShare]],
        payments: list[Payment],
    ):
        self._users = users
        self._activities = activities
        self._participations = participations
        self._expenses = expenses
        self._debt_shares = debt_shares
        self._payments = payments

    def fetch_user(self, user_id: UUID) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    def fetch_activity(self, activity_id: UUID) -> Activity:
        activity = self._activities.get(activity_id)
        if activity is None:
            raise ActivityNotFoundError(f"Activity {activity_id} not found")
        return activity

    def fetch_participant_ids(self, activity_id: UUID) -> list[UUID]:
        return [p.user_id for p in self._participations.values() if p.activity_id == activity_id]

    def fetch_participants(self, activity_id: UUID) -> list[User]:
        return [self.fetch_user(user_id) for user_id in self.fetch_participant_ids(activity_id)]

    def fetch_participations(self, user_id: UUID) -> list[UUID]:
        return [p.activity_id for p in self._participations.values() if p.user_id == user_id]

    def fetch_memberships(self, activity_id: UUID) -> list[Participation]:
        return [p for p in self._participations.values() if p.activity_id == activity_id]

    def fetch_expenses(self, activity_id: UUID) -> list[Expense]:
        return [e for e in self._expenses.values() if e.activity_id == activity_id]

    def fetch_expense(self, expense_id: UUID) -> Expense:
        expense = self._expenses.get(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def fetch_expenses_paid_by(self, user_id: UUID) -> list[Expense]:
        return [e for e in self._expenses.values() if e.payer_id == user_id]

    def fetch_debt_shares(self, expense_id: UUID) -> list[DebtShare]:
        return list(self._debt_shares.get(expense_id, []))

    def fetch_debt_shares_for_user(self, user_id: UUID) -> list[DebtShare]:
        return [
            share
            for shares in self._debt_shares.values()
            for share in shares
            if share.user_id == user_id
        ]

    def fetch_payments(self, expense_id: UUID, debtor_id: Optional[UUID] = None) -> list[Payment]:
        return [
            p for p in self._payments
            if p.expense_id == expense_id and (debtor_id is None or p.debtor_id == debtor_id)
        ]


class InMemoryStorage:
    def __init__(self, seed: bool = False):
        self.users: dict[UUID, User] = {}
        self.activities: dict[UUID, Activity] = {}
        self.participations: dict[tuple[UUID, UUID], Participation] = {}
        self.expenses: dict[UUID, Expense] = {}
        self.debt_shares: dict[UUID, list[DebtShare]] = {}
        self.payments: list[Payment] = []
        self._lock = threading.RLock()
        if seed:
            self._seed_data()

    @contextmanager
    def transaction(self) -> Iterator["InMemoryStorage"]:
        """Hold the storage lock for a read-check-write sequence."""
        with self._lock:
            yield self

    @contextmanager
    def snapshot(self) -> Iterator[LedgerSnapshot]:
        # Records are frozen, so copying the containers is enough.
        with self._lock:
            view = LedgerSnapshot(
                users=dict(self.users),
                activities=dict(self.activities),
                participations=dict(self.participations),
                expenses=dict(self.expenses),
                debt_shares={k: list(v) for k, v in self.debt_shares.items()},
                payments=list(self.payments),
            )
        yield view

    # Writes. Callers performing validation first should wrap the sequence
    # in transaction().

    def add_user(self, user: User) -> User:
        with self._lock:
            self.users[user.id] = user
        return user

    def add_activity(self, activity: Activity) -> Activity:
        with self._lock:
            self.activities[activity.id] = activity
        return activity

    def add_participant(self, activity_id: UUID, user_id: UUID) -> Participation:
        with self._lock:
            key = (activity_id, user_id)
            existing = self.participations.get(key)
            if existing is not None:
                return existing
            participation = Participation(
                activity_id=activity_id, user_id=user_id, joined_at=datetime.now(timezone.utc)
            )
            self.participations[key] = participation
            return participation

    def remove_participant(self, activity_id: UUID, user_id: UUID) -> None:
        with self._lock:
            self.participations.pop((activity_id, user_id), None)

    def save_activity(self, activity: Activity) -> Activity:
        """Replace a stored activity. Participants and expenses are untouched."""
        with self._lock:
            self.activities[activity.id] = activity
        return activity

    def delete_activity(self, activity_id: UUID) -> None:
        with self._lock:
            for expense_id in [e.id for e in self.expenses.values() if e.activity_id == activity_id]:
                self.delete_expense(expense_id)
            for key in [k for k in self.participations if k[0] == activity_id]:
                del self.participations[key]
            self.activities.pop(activity_id, None)

    def save_expense(self, expense: Expense, shares: Optional[list[DebtShare]] = None) -> Expense:
        """Insert or replace an expense. Passing shares replaces all of them."""
        with self._lock:
            self.expenses[expense.id] = expense
            if shares is not None:
                self.debt_shares[expense.id] = list(shares)
        return expense

    def delete_expense(self, expense_id: UUID) -> None:
        with self._lock:
            self.expenses.pop(expense_id, None)
            self.debt_shares.pop(expense_id, None)
            self.payments = [p for p in self.payments if p.expense_id != expense_id]

    def add_payment(self, payment: Payment) -> Payment:
        with self._lock:
            self.payments.append(payment)
        return payment

    def _seed_data(self):
        alice = self.add_user(User(
            id=UUID("550e8400-e29b-41d4-a716-446655440000"),
            name="Alice Johnson", email="alice@example.com",
        ))
        bob = self.add_user(User(
            id=UUID("660e8400-e29b-41d4-a716-446655440001"),
            name="Bob Smith", email="bob@example.com",
        ))
        charlie = self.add_user(User(
            id=UUID("770e8400-e29b-41d4-a716-446655440002"),
            name="Charlie Brown", email="charlie@example.com",
        ))
        diana = self.add_user(User(
            id=UUID("880e8400-e29b-41d4-a716-446655440003"),
            name="Diana Prince", email="diana@example.com",
        ))

        today = date.today()
        seed = [
            (
                UUID("11111111-1111-1111-1111-111111111111"), "Weekend Trip to the Beach", 7,
                [alice, bob, charlie],
                [
                    ("Hotel Room", 20000, alice, [6667, 6667, 6666]),
                    ("Gas", 5000, bob, [1667, 1667, 1666]),
                    ("Restaurant", 12000, charlie, [4000, 4000, 4000]),
                ],
            ),
            (
                UUID("22222222-2222-2222-2222-222222222222"), "Dinner Party", 3,
                [alice, bob, diana],
                [
                    ("Groceries", 8000, alice, [2667, 2667, 2666]),
                    ("Wine", 3000, diana, [1000, 1000, 1000]),
                ],
            ),
            (
                UUID("33333333-3333-3333-3333-333333333333"), "Movie Night", 1,
                [charlie, diana],
                [
                    ("Movie Tickets", 2500, charlie, [1250, 1250]),
                    ("Snacks", 1500, diana, [750, 750]),
                ],
            ),
        ]

        expenses_by_name: dict[str, Expense] = {}
        now = datetime.now(timezone.utc)
        for activity_id, name, days_ago, members, activity_expenses in seed:
            self.add_activity(Activity(
                id=activity_id, name=name,
                activity_date=today - timedelta(days=days_ago), created_at=now,
            ))
            for member in members:
                self.add_participant(activity_id, member.id)
            for expense_name, amount, payer, owed in activity_expenses:
                expense = Expense(
                    id=uuid4(), name=expense_name, amount=amount,
                    activity_id=activity_id, payer_id=payer.id, created_at=now,
                )
                shares = [
                    DebtShare(expense_id=expense.id, user_id=member.id, amount_owed=amount_owed)
                    for member, amount_owed in zip(members, owed)
                ]
                self.save_expense(expense, shares)
                expenses_by_name[expense_name] = expense

        for expense_name, debtor, amount_paid in [
            ("Hotel Room", bob, 6667),
            ("Hotel Room", charlie, 6666),
            ("Gas", alice, 1667),
            ("Wine", alice, 1000),
        ]:
            self.add_payment(Payment(
                id=uuid4(), expense_id=expenses_by_name[expense_name].id,
                debtor_id=debtor.id, amount_paid=amount_paid, paid_at=now,
            ))

        logger.info("Seeded ledger with %d users and %d activities", len(self.users), len(self.activities))
