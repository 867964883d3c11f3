import os
from decimal import Decimal
from dotenv import load_dotenv

from lending.core.policy import LendingPolicy

load_dotenv()

def _as_bool(v: str | None, default: bool = False) -> bool:
    if v is None:
        return default
    return v.strip().lower() in {"1", "true", "yes", "y", "on"}

class Settings:
    # App
    APP_NAME: str = os.getenv("APP_NAME", "library-lending")
    ENV: str = os.getenv("ENV", "dev")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    PORT: int = int(os.getenv("PORT", "8000"))

    # DB (empty -> in-memory store)
    DATABASE_URL: str | None = os.getenv("DATABASE_URL") or None

    # Lending policy
    FINE_PER_DAY: Decimal = Decimal(os.getenv("FINE_PER_DAY", "0.50"))
    DEFAULT_BORROW_LIMIT: int = int(os.getenv("DEFAULT_BORROW_LIMIT", "5"))
    DEFAULT_LOAN_DAYS: int = int(os.getenv("DEFAULT_LOAN_DAYS", "14"))

    # Demo data on startup
    SEED_DEMO_DATA: bool = _as_bool(os.getenv("SEED_DEMO_DATA"), False)

    def policy(self) -> LendingPolicy:
        return LendingPolicy(
            fine_per_day=self.FINE_PER_DAY,
            borrow_limit=self.DEFAULT_BORROW_LIMIT,
            default_loan_days=self.DEFAULT_LOAN_DAYS,
        )

settings = Settings()
