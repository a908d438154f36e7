from datetime import date, datetime
from typing import Annotated, Optional
from uuid import UUID
from pydantic import AfterValidator, BaseModel, Field, ConfigDict


# Amounts are integers in minor currency units (cents). Stored values are
# capped at the signed 64-bit range so they fit a BIGINT column; sums are
# plain Python ints and never overflow.
MAX_AMOUNT_MINOR_UNITS = 2**63 - 1


def _ensure_unique(user_ids: list[UUID]) -> list[UUID]:
    if len(set(user_ids)) != len(user_ids):
        raise ValueError("participant ids must be unique")
    return user_ids


Amount = Annotated[int, Field(gt=0, le=MAX_AMOUNT_MINOR_UNITS)]
Title = Annotated[str, Field(min_length=3)]
ParticipantIds = Annotated[list[UUID], Field(min_length=1), AfterValidator(_ensure_unique)]


# Stored records. Frozen so a shallow copy of the tables is a consistent view.

class User(BaseModel):
    id: UUID
    name: str
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


class Activity(BaseModel):
    id: UUID
    name: str
    activity_date: date
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class Participation(BaseModel):
    activity_id: UUID
    user_id: UUID
    joined_at: datetime

    model_config = ConfigDict(frozen=True)


class Expense(BaseModel):
    id: UUID
    name: str
    amount: int = Field(..., gt=0, le=MAX_AMOUNT_MINOR_UNITS)
    activity_id: UUID
    payer_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(frozen=True)


class DebtShare(BaseModel):
    expense_id: UUID
    user_id: UUID
    amount_owed: int = Field(..., ge=0, le=MAX_AMOUNT_MINOR_UNITS)

    model_config = ConfigDict(frozen=True)


class Payment(BaseModel):
    id: UUID
    expense_id: UUID
    debtor_id: UUID
    amount_paid: int = Field(..., gt=0, le=MAX_AMOUNT_MINOR_UNITS)
    paid_at: datetime

    model_config = ConfigDict(frozen=True)


# Requests

class CreateUserRequest(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None


class CreateActivityRequest(BaseModel):
    name: str = Field(..., min_length=1)
    activity_date: date
    participant_ids: Annotated[list[UUID], AfterValidator(_ensure_unique)] = Field(default_factory=list)

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "name": "Weekend Trip to the Beach",
            "activity_date": "2025-11-08",
            "participant_ids": [
                "550e8400-e29b-41d4-a716-446655440000",
                "660e8400-e29b-41d4-a716-446655440001",
            ]
        }
    })


class UpdateActivityRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    activity_date: Optional[date] = None


class AddParticipantsRequest(BaseModel):
    user_ids: list[UUID] = Field(..., min_length=1)


class CreateExpenseRequest(BaseModel):
    title: Title
    amount: Amount = Field(..., description="Amount in minor currency units")
    payer_id: Optional[UUID] = None
    participant_ids: ParticipantIds

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "title": "Hotel Room",
            "amount": 20000,
            "payer_id": "550e8400-e29b-41d4-a716-446655440000",
            "participant_ids": [
                "550e8400-e29b-41d4-a716-446655440000",
                "660e8400-e29b-41d4-a716-446655440001",
            ]
        }
    })


class UpdateExpenseRequest(BaseModel):
    """Partial update. Omitted fields are left alone; an explicit null payer_id
    clears the payer."""
    title: Optional[Title] = None
    amount: Optional[Amount] = None
    payer_id: Optional[UUID] = None
    participant_ids: Optional[ParticipantIds] = None


class RecordPaymentRequest(BaseModel):
    debtor_id: UUID
    amount_paid: Amount


# Responses

class UserInfo(BaseModel):
    user_id: UUID
    name: str

    @classmethod
    def of(cls, user: User) -> "UserInfo":
        return cls(user_id=user.id, name=user.name)


class ActivityResponse(BaseModel):
    id: UUID
    name: str
    activity_date: date
    participants: list[UserInfo]
    expenses_count: int
    total_amount_minor_units: int


class ActivityListItem(BaseModel):
    id: UUID
    name: str
    activity_date: date
    total_amount_minor_units: int
    participants_count: int
    expenses_count: int


class ActivityListResult(BaseModel):
    user_id: UUID
    activities: list[ActivityListItem]


class ParticipantInfo(BaseModel):
    user_id: UUID
    name: str
    email: Optional[str] = None
    joined_at: datetime


class ActivityParticipantsResult(BaseModel):
    activity_id: UUID
    activity_name: str
    participants: list[ParticipantInfo]


class ExpenseListItem(BaseModel):
    id: UUID
    name: str
    amount: int
    payer: Optional[UserInfo] = None
    participants_count: int
    created_at: datetime


class ActivityExpensesResult(BaseModel):
    activity_id: UUID
    activity_name: str
    expenses: list[ExpenseListItem]


class ExpenseParticipantInfo(BaseModel):
    user_id: UUID
    name: str
    amount_owed: int
    amount_paid: int
    remaining_debt: int


class ExpenseDetail(BaseModel):
    """Per-expense view. Unlike the balance views, this one subtracts payments."""
    id: UUID
    name: str
    amount: int
    activity_id: UUID
    activity_name: str
    payer: Optional[UserInfo] = None
    participants: list[ExpenseParticipantInfo]
    payments: list[Payment]
    created_at: datetime


class Transfer(BaseModel):
    from_user: UserInfo = Field(..., alias="from")
    to_user: UserInfo = Field(..., alias="to")
    amount_minor_units: int

    model_config = ConfigDict(populate_by_name=True)


class ActivityBalanceResult(BaseModel):
    activity_id: UUID
    activity_name: str
    transfers: list[Transfer]


class CreditDetail(BaseModel):
    debtor: UserInfo
    amount_minor_units: int
    activity_id: UUID
    activity_name: str
    expense_id: UUID
    expense_name: str


class DebitDetail(BaseModel):
    creditor: UserInfo
    amount_minor_units: int
    activity_id: UUID
    activity_name: str
    expense_id: UUID
    expense_name: str


class DetailedBalanceResult(BaseModel):
    user_id: UUID
    total_credit: int
    total_debt: int
    credits: list[CreditDetail]
    debits: list[DebitDetail]


class NetBalance(BaseModel):
    debtor: UserInfo
    creditor: UserInfo
    amount_minor_units: int


class PairwiseActivityDetail(BaseModel):
    activity_id: UUID
    activity_name: str
    from_user: UserInfo = Field(..., alias="from")
    to_user: UserInfo = Field(..., alias="to")
    amount_minor_units: int

    model_config = ConfigDict(populate_by_name=True)


class PairwiseBalanceResult(BaseModel):
    net_balance: Optional[NetBalance] = None
    details: list[PairwiseActivityDetail]


class ActivityBreakdown(BaseModel):
    activity_id: UUID
    activity_name: str
    amount_minor_units: int = Field(..., description="Positive when the user owes the counterparty")


class CompensatedBalance(BaseModel):
    counterparty: UserInfo
    net_amount_minor_units: int
    activities_count: int
    activities: list[ActivityBreakdown]


class GlobalBalanceResult(BaseModel):
    user_id: UUID
    net_balance_minor_units: int = Field(..., description="Positive when the user is net in debt")
    compensated_debts: list[CompensatedBalance]
    compensated_credits: list[CompensatedBalance]
