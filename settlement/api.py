import logging
from typing import Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Response, status
from fastapi.middleware.cors import CORSMiddleware

from .balances import BalanceService
from .compensation import CompensationService
from .config import config
from .errors import LedgerServiceError, NotFoundError
from .models import (
    ActivityBalanceResult, ActivityExpensesResult, ActivityListResult,
    ActivityParticipantsResult, ActivityResponse, AddParticipantsRequest,
    CreateActivityRequest, CreateExpenseRequest, CreateUserRequest,
    DetailedBalanceResult, ExpenseDetail, GlobalBalanceResult,
    PairwiseBalanceResult, Payment, RecordPaymentRequest,
    UpdateActivityRequest, UpdateExpenseRequest, User,
)
from .service import LedgerService
from .storage import InMemoryStorage

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(storage: Optional[InMemoryStorage] = None) -> FastAPI:
    storage = storage if storage is not None else InMemoryStorage(seed=config.SEED_DATABASE)
    ledger_service = LedgerService(storage)
    balance_service = BalanceService(storage)
    compensation_service = CompensationService(storage)

    app = FastAPI(
        title="Expense Split API",
        description="Shared expenses, minimal settlements and cross-activity debt compensation",
        version="1.0.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "healthy", "service": "expense-split", "environment": config.APP_ENV}

    @app.post("/users", response_model=User, status_code=status.HTTP_201_CREATED, tags=["Users"])
    def create_user(request: CreateUserRequest) -> User:
        return ledger_service.create_user(request)

    @app.post("/activities", response_model=ActivityResponse, status_code=status.HTTP_201_CREATED, tags=["Activities"])
    def create_activity(request: CreateActivityRequest) -> ActivityResponse:
        try:
            return ledger_service.create_activity(request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.post("/activities/{activity_id}/participants", response_model=ActivityResponse, tags=["Activities"])
    def add_participants(activity_id: UUID, request: AddParticipantsRequest) -> ActivityResponse:
        try:
            return ledger_service.add_participants(activity_id, request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/activities/{activity_id}/participants", response_model=ActivityParticipantsResult, tags=["Activities"])
    def list_participants(activity_id: UUID) -> ActivityParticipantsResult:
        try:
            return ledger_service.list_participants(activity_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.delete(
        "/activities/{activity_id}/participants/{user_id}",
        response_model=ActivityResponse,
        tags=["Activities"],
    )
    def remove_participant(activity_id: UUID, user_id: UUID, requested_by: Optional[UUID] = None) -> ActivityResponse:
        try:
            return ledger_service.remove_participant(activity_id, user_id, requested_by)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except LedgerServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.get("/activities/{activity_id}", response_model=ActivityResponse, tags=["Activities"])
    def get_activity(activity_id: UUID) -> ActivityResponse:
        try:
            return ledger_service.get_activity(activity_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.patch("/activities/{activity_id}", response_model=ActivityResponse, tags=["Activities"])
    def update_activity(activity_id: UUID, request: UpdateActivityRequest) -> ActivityResponse:
        try:
            return ledger_service.update_activity(activity_id, request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/users/{user_id}/activities", response_model=ActivityListResult, tags=["Activities"])
    def list_user_activities(user_id: UUID) -> ActivityListResult:
        try:
            return ledger_service.list_user_activities(user_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.delete("/activities/{activity_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Activities"])
    def delete_activity(activity_id: UUID) -> Response:
        try:
            ledger_service.delete_activity(activity_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/activities/{activity_id}/balance", response_model=ActivityBalanceResult, tags=["Balances"])
    def get_activity_balance(activity_id: UUID) -> ActivityBalanceResult:
        try:
            return balance_service.calculate_activity_balance(activity_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.post(
        "/activities/{activity_id}/expenses",
        response_model=ExpenseDetail,
        status_code=status.HTTP_201_CREATED,
        tags=["Expenses"],
    )
    def create_expense(activity_id: UUID, request: CreateExpenseRequest) -> ExpenseDetail:
        try:
            return ledger_service.create_expense(activity_id, request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except LedgerServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.get("/activities/{activity_id}/expenses", response_model=ActivityExpensesResult, tags=["Expenses"])
    def list_expenses(activity_id: UUID) -> ActivityExpensesResult:
        try:
            return ledger_service.list_expenses(activity_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/expenses/{expense_id}", response_model=ExpenseDetail, tags=["Expenses"])
    def get_expense(expense_id: UUID) -> ExpenseDetail:
        try:
            return ledger_service.get_expense_detail(expense_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.patch("/expenses/{expense_id}", response_model=ExpenseDetail, tags=["Expenses"])
    def update_expense(expense_id: UUID, request: UpdateExpenseRequest) -> ExpenseDetail:
        try:
            return ledger_service.update_expense(expense_id, request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except LedgerServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.delete("/expenses/{expense_id}", status_code=status.HTTP_204_NO_CONTENT, tags=["Expenses"])
    def delete_expense(expense_id: UUID) -> Response:
        try:
            ledger_service.delete_expense(expense_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post(
        "/expenses/{expense_id}/payments",
        response_model=Payment,
        status_code=status.HTTP_201_CREATED,
        tags=["Expenses"],
    )
    def record_payment(expense_id: UUID, request: RecordPaymentRequest) -> Payment:
        try:
            return ledger_service.record_payment(expense_id, request)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
        except LedgerServiceError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @app.get("/users/{user_id}/balance/detailed", response_model=DetailedBalanceResult, tags=["Balances"])
    def get_detailed_balance(user_id: UUID) -> DetailedBalanceResult:
        try:
            return balance_service.calculate_detailed_balance(user_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/users/{user_id}/balance/global", response_model=GlobalBalanceResult, tags=["Balances"])
    def get_global_balance(user_id: UUID) -> GlobalBalanceResult:
        try:
            return compensation_service.calculate_user_global_balance(user_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    @app.get("/users/{user_id}/balance/{other_user_id}", response_model=PairwiseBalanceResult, tags=["Balances"])
    def get_balance_between_users(user_id: UUID, other_user_id: UUID) -> PairwiseBalanceResult:
        try:
            return compensation_service.calculate_balance_between_users(user_id, other_user_id)
        except NotFoundError as e:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logger.info("Starting expense split API in %s mode", config.APP_ENV)
    uvicorn.run(app, host=config.HOST, port=config.PORT)
