from datetime import date, datetime, timezone
from uuid import UUID, uuid4

import pytest

from settlement.models import CreateActivityRequest, CreateUserRequest, DebtShare, Expense
from settlement.service import LedgerService
from settlement.storage import InMemoryStorage


# Seeded demo users
ALICE_ID = UUID("550e8400-e29b-41d4-a716-446655440000")
BOB_ID = UUID("660e8400-e29b-41d4-a716-446655440001")
CHARLIE_ID = UUID("770e8400-e29b-41d4-a716-446655440002")
DIANA_ID = UUID("880e8400-e29b-41d4-a716-446655440003")
WEEKEND_TRIP_ID = UUID("11111111-1111-1111-1111-111111111111")


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def seeded_storage():
    return InMemoryStorage(seed=True)


@pytest.fixture
def ledger_service(storage):
    return LedgerService(storage)


@pytest.fixture
def people(ledger_service):
    return {
        name: ledger_service.create_user(CreateUserRequest(name=name, email=f"{name.lower()}@example.com"))
        for name in ("Alice", "Bob", "Charlie", "Diana")
    }


@pytest.fixture
def make_activity(ledger_service):
    def _make(name, members, activity_date=date(2025, 11, 8)):
        return ledger_service.create_activity(CreateActivityRequest(
            name=name,
            activity_date=activity_date,
            participant_ids=[m.id for m in members],
        ))
    return _make


@pytest.fixture
def add_expense(storage):
    """Insert an expense with explicit debt shares, bypassing the equal split."""
    def _add(activity, name, amount, payer, shares):
        expense = Expense(
            id=uuid4(),
            name=name,
            amount=amount,
            activity_id=activity.id,
            payer_id=payer.id if payer is not None else None,
            created_at=datetime.now(timezone.utc),
        )
        storage.save_expense(expense, [
            DebtShare(expense_id=expense.id, user_id=user.id, amount_owed=owed)
            for user, owed in shares
        ])
        return expense
    return _add
