import os

os.environ.setdefault("LOAN_HISTORY_DATABASE_URL", "sqlite://")

from datetime import date
from decimal import Decimal

import pytest

from loan_schedule.data_models import LoanParameters, RepaymentScheme


@pytest.fixture
def make_params():
    def factory(**overrides):
        values = dict(
            principal=Decimal("120000"),
            rate=Decimal("12"),
            duration=12,
            disbursement_date=date(2024, 1, 15),
            scheme=RepaymentScheme.ANNUITY,
            adjust_weekends=False,
        )
        values.update(overrides)
        return LoanParameters(**values)

    return factory


def principal_sum(result):
    return sum((e.principal for e in result.entries), Decimal("0"))
