"""Runtime settings for the calculator.

Numeric constants used by the schedule engine are collected in
``EngineSettings`` and handed to ``compute_schedule`` explicitly, so alternate
precision or iteration caps can be exercised without touching global state.
Defaults come from the environment.
"""

import os
from dataclasses import dataclass, field
from decimal import Context, Decimal, ROUND_HALF_UP


@dataclass(frozen=True)
class EngineSettings:
    precision: int = int(os.getenv("LOAN_DECIMAL_PRECISION", "12"))
    epsilon: Decimal = Decimal(os.getenv("LOAN_SETTLE_EPSILON", "0.009"))
    max_periods: int = int(os.getenv("LOAN_MAX_PERIODS", "720"))
    days_in_year: int = 365

    def context(self) -> Context:
        """Return a fresh decimal context for one computation."""
        return Context(prec=self.precision, rounding=ROUND_HALF_UP)


@dataclass
class AppSettings:
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    DATABASE_URL: str = os.getenv("LOAN_HISTORY_DATABASE_URL", "sqlite:///loan_history.sqlite3")
    SECRET_KEY: str = os.getenv("FLASK_SECRET_KEY", "dev-secret-key")
    MAX_HISTORY_PER_USER: int = int(os.getenv("LOAN_MAX_HISTORY_PER_USER", "50"))
    PREVIEW_ROWS: int = int(os.getenv("LOAN_PREVIEW_ROWS", "120"))
    engine: EngineSettings = field(default_factory=EngineSettings)


settings = AppSettings()
