"""
Unit Tests for the Balance Service

Tests cover:
1. Greedy settlement matching
2. Activity balance transfers
3. Expenses without a payer
4. Detailed (uncompensated) balance listing
"""

import pytest
from uuid import UUID, uuid4

from settlement.balances import BalanceService, settle_balances
from settlement.errors import ActivityNotFoundError, UserNotFoundError
from settlement.models import RecordPaymentRequest
from settlement.tests.conftest import ALICE_ID, BOB_ID, CHARLIE_ID, WEEKEND_TRIP_ID


U1 = UUID("00000000-0000-0000-0000-000000000001")
U2 = UUID("00000000-0000-0000-0000-000000000002")
U3 = UUID("00000000-0000-0000-0000-000000000003")


class TestSettleBalances:
    """Tests for the pure matching step."""

    def test_single_creditor(self):
        """Test the hotel split: two debtors pay the one creditor."""
        transfers = settle_balances({U1: 13333, U2: -6667, U3: -6666})

        assert transfers == [(U2, U1, 6667), (U3, U1, 6666)]

    def test_zero_sum_and_transfer_bound(self):
        """Test that transfers settle every balance within the count bound."""
        ids = [uuid4() for _ in range(6)]
        balances = dict(zip(ids, [-300, -200, -100, 250, 250, 100]))

        transfers = settle_balances(balances)

        debtors = [u for u, v in balances.items() if v < 0]
        creditors = [u for u, v in balances.items() if v > 0]
        assert len(transfers) <= len(debtors) + len(creditors) - 1

        total_positive = sum(v for v in balances.values() if v > 0)
        assert sum(amount for _, _, amount in transfers) == total_positive

        for user_id, balance in balances.items():
            sent = sum(a for d, _, a in transfers if d == user_id)
            received = sum(a for _, c, a in transfers if c == user_id)
            assert received - sent == balance

    def test_ties_broken_by_user_id(self):
        """Test that equal debts are matched in user id order."""
        transfers = settle_balances({U2: -500, U1: -500, U3: 1000})

        assert transfers == [(U1, U3, 500), (U2, U3, 500)]

    def test_zero_balances_produce_nothing(self):
        """Test that settled users are left out."""
        assert settle_balances({U1: 0, U2: 0}) == []
        assert settle_balances({}) == []


class TestActivityBalance:
    """Tests for the per-activity settlement."""

    def test_weekend_trip_hotel(self, storage, people, make_activity, add_expense):
        """Test that the hotel room settles into two transfers to the payer."""
        alice, bob, charlie = people["Alice"], people["Bob"], people["Charlie"]
        trip = make_activity("Weekend Trip", [alice, bob, charlie])
        add_expense(trip, "Hotel Room", 20000, alice, [(alice, 6667), (bob, 6667), (charlie, 6666)])

        result = BalanceService(storage).calculate_activity_balance(trip.id)

        assert result.activity_id == trip.id
        assert result.activity_name == "Weekend Trip"
        assert [(t.from_user.name, t.to_user.name, t.amount_minor_units) for t in result.transfers] == [
            ("Bob", "Alice", 6667),
            ("Charlie", "Alice", 6666),
        ]

    def test_expense_without_payer_is_excluded(self, storage, people, make_activity, add_expense):
        """Test that an unpaid expense contributes nothing."""
        alice, bob, charlie = people["Alice"], people["Bob"], people["Charlie"]
        trip = make_activity("Weekend Trip", [alice, bob, charlie])
        add_expense(trip, "Taxi", 9000, None, [(alice, 3000), (bob, 3000), (charlie, 3000)])

        result = BalanceService(storage).calculate_activity_balance(trip.id)

        assert result.transfers == []

    def test_recomputation_is_identical(self, storage, people, make_activity, add_expense):
        """Test that an unchanged ledger yields the same output twice."""
        alice, bob, charlie = people["Alice"], people["Bob"], people["Charlie"]
        trip = make_activity("Weekend Trip", [alice, bob, charlie])
        add_expense(trip, "Hotel Room", 20000, alice, [(alice, 6667), (bob, 6667), (charlie, 6666)])
        add_expense(trip, "Gas", 5000, bob, [(alice, 1667), (bob, 1667), (charlie, 1666)])

        service = BalanceService(storage)

        assert service.calculate_activity_balance(trip.id) == service.calculate_activity_balance(trip.id)

    def test_payments_are_ignored(self, storage, ledger_service, people, make_activity, add_expense):
        """Test that recorded payments do not change the raw allocation."""
        alice, bob = people["Alice"], people["Bob"]
        dinner = make_activity("Dinner", [alice, bob])
        expense = add_expense(dinner, "Pizza", 3000, alice, [(alice, 1500), (bob, 1500)])
        service = BalanceService(storage)
        before = service.calculate_activity_balance(dinner.id)

        ledger_service.record_payment(expense.id, RecordPaymentRequest(debtor_id=bob.id, amount_paid=1500))

        assert service.calculate_activity_balance(dinner.id) == before
        assert before.transfers[0].amount_minor_units == 1500

    def test_seeded_weekend_trip(self, seeded_storage):
        """Test the full seeded trip with three payers."""
        result = BalanceService(seeded_storage).calculate_activity_balance(WEEKEND_TRIP_ID)

        assert [(t.from_user.user_id, t.to_user.user_id, t.amount_minor_units) for t in result.transfers] == [
            (BOB_ID, ALICE_ID, 7334),
            (CHARLIE_ID, ALICE_ID, 332),
        ]

    def test_unknown_activity_fails(self, storage):
        """Test that a missing activity raises not found."""
        with pytest.raises(ActivityNotFoundError):
            BalanceService(storage).calculate_activity_balance(uuid4())


class TestDetailedBalance:
    """Tests for the uncompensated debt and credit listing."""

    def test_credits_and_debits_are_not_netted(self, storage, people, make_activity, add_expense):
        """Test that opposite debts with the same person are both listed."""
        alice, bob = people["Alice"], people["Bob"]
        trip = make_activity("Trip", [alice, bob])
        add_expense(trip, "Hotel", 4000, alice, [(alice, 2000), (bob, 2000)])
        add_expense(trip, "Gas", 1000, bob, [(alice, 500), (bob, 500)])

        result = BalanceService(storage).calculate_detailed_balance(alice.id)

        assert result.total_credit == 4000
        assert result.total_debt == 2500
        assert [(c.debtor.name, c.amount_minor_units) for c in result.credits] == [("Alice", 2000), ("Bob", 2000)]
        assert [(d.creditor.name, d.expense_name, d.amount_minor_units) for d in result.debits] == [
            ("Alice", "Hotel", 2000),
            ("Bob", "Gas", 500),
        ]
        assert all(c.activity_name == "Trip" for c in result.credits)

    def test_unpaid_expense_is_not_a_debit(self, storage, people, make_activity, add_expense):
        """Test that a share on an expense without payer is left out."""
        alice, bob = people["Alice"], people["Bob"]
        trip = make_activity("Trip", [alice, bob])
        add_expense(trip, "Taxi", 2000, None, [(alice, 1000), (bob, 1000)])

        result = BalanceService(storage).calculate_detailed_balance(bob.id)

        assert result.debits == []
        assert result.credits == []
        assert result.total_debt == 0

    def test_payments_not_subtracted(self, storage, ledger_service, people, make_activity, add_expense):
        """Test that the listing keeps the full owed amount after a payment."""
        alice, bob = people["Alice"], people["Bob"]
        trip = make_activity("Trip", [alice, bob])
        expense = add_expense(trip, "Hotel", 4000, alice, [(alice, 2000), (bob, 2000)])
        ledger_service.record_payment(expense.id, RecordPaymentRequest(debtor_id=bob.id, amount_paid=2000))

        result = BalanceService(storage).calculate_detailed_balance(bob.id)

        assert result.total_debt == 2000

    def test_seeded_alice(self, seeded_storage):
        """Test the seeded totals for Alice across two activities."""
        result = BalanceService(seeded_storage).calculate_detailed_balance(ALICE_ID)

        assert result.total_credit == 28000
        assert result.total_debt == 16001
        assert len(result.credits) == 6
        assert len(result.debits) == 5

    def test_unknown_user_fails(self, storage):
        """Test that a missing user raises not found."""
        with pytest.raises(UserNotFoundError):
            BalanceService(storage).calculate_detailed_balance(uuid4())


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
