"""Errors raised by the schedule engine."""

from decimal import Decimal
from typing import Optional


class ScheduleError(ValueError):
    status_code = 400

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        if status_code:
            self.status_code = status_code
        self.message = message


class InvalidInput(ScheduleError):
    """Loan parameters that cannot produce a schedule; raised before iterating."""

    status_code = 400


class ComputationDivergence(ScheduleError):
    """The balance did not settle within the iteration cap.

    ``period`` is the last period index computed and ``balance`` the balance
    left outstanding at that point.
    """

    status_code = 422

    def __init__(self, message: str, period: int, balance: Decimal):
        super().__init__(message)
        self.period = period
        self.balance = balance
