class LedgerServiceError(Exception):
    pass


class NotFoundError(LedgerServiceError):
    pass


class UserNotFoundError(NotFoundError):
    pass


class ActivityNotFoundError(NotFoundError):
    pass


class ExpenseNotFoundError(NotFoundError):
    pass


class InvalidExpenseError(LedgerServiceError):
    pass


class NotADebtorError(LedgerServiceError):
    pass


class PaymentExceedsDebtError(LedgerServiceError):
    pass


class ParticipantNotFoundError(NotFoundError):
    pass


class InvalidParticipantError(LedgerServiceError):
    pass
