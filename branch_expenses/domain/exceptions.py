"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidDateError(DomainException):
    """Timestamp or calendar date could not be interpreted"""

    pass


class InvalidExpenseAmountError(DomainException):
    """Expense principal is negative"""

    pass


class InvalidPaymentAmountError(DomainException):
    """Payment amount is zero or negative"""

    pass


class OverpaymentError(DomainException):
    """Payment would push total paid above the expense amount"""

    pass


class ExpenseNotFoundError(DomainException):
    """Referenced expense does not exist"""

    pass


class PaymentNotFoundError(DomainException):
    """Referenced payment does not exist"""

    pass


class DuplicateExpenseError(DomainException):
    """An expense already exists for this branch, type and period"""

    pass


class BranchNotFoundError(DomainException):
    """Referenced branch does not exist"""

    pass


class RecipientNotFoundError(DomainException):
    """Referenced branch recipient does not exist"""

    pass


class DuplicateRecipientError(DomainException):
    """Branch already has a recipient with this email"""

    pass


class InvalidEmailError(DomainException):
    """Recipient email address is malformed"""

    pass
