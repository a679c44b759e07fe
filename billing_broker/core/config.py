import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from ..domain.models.pricing import PlanPricing, PriceTable

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class Settings:
    """Centralised application configuration sourced from environment variables."""

    def __init__(self) -> None:
        load_dotenv()
        self.environment = os.getenv("APP_ENV", "development").strip().lower()
        self.stripe_secret_key = os.getenv("STRIPE_SECRET_KEY") or None
        self.stripe_webhook_secret = os.getenv("STRIPE_WEBHOOK_SECRET") or None
        self.stripe_price_monthly = os.getenv("STRIPE_PRICE_MONTHLY") or None
        self.stripe_price_annual = os.getenv("STRIPE_PRICE_ANNUAL") or None
        self.mock_subscriptions = self._get_bool(
            "MOCK_SUBSCRIPTIONS", default=not self.stripe_secret_key
        )
        self.frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000").rstrip("/")
        self.database_path = Path(os.getenv("DATABASE_PATH", "data/profiles.db")).resolve()
        self.smtp_host = os.getenv("SMTP_HOST", "")
        self.smtp_port = self._get_int("SMTP_PORT", default=587)
        self.smtp_username = os.getenv("SMTP_USERNAME", "")
        self.smtp_password = os.getenv("SMTP_PASSWORD", "")
        self.smtp_from_email = os.getenv("SMTP_FROM_EMAIL", "")
        self.price_table = PriceTable(
            {
                "monthly": PlanPricing(
                    original=self._get_decimal("PRICE_MONTHLY", "9.99"),
                    discounted=self._get_decimal("PRICE_MONTHLY_DISCOUNTED", "6.99"),
                    period_days=30,
                ),
                "annual": PlanPricing(
                    original=self._get_decimal("PRICE_ANNUAL", "99.99"),
                    discounted=self._get_decimal("PRICE_ANNUAL_DISCOUNTED", "69.99"),
                    period_days=365,
                ),
            }
        )
        origins = os.getenv("CORS_ALLOW_ORIGINS")
        if origins:
            self.cors_allow_origins = [item.strip() for item in origins.split(",") if item.strip()]
        else:
            self.cors_allow_origins = ["*"]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def stripe_price_ids(self) -> dict:
        return {"monthly": self.stripe_price_monthly, "annual": self.stripe_price_annual}

    @staticmethod
    def _get_int(key: str, default: Optional[int] = None) -> int:
        value = os.getenv(key)
        if value is None:
            if default is None:
                raise RuntimeError(f"Missing required environment variable: {key}")
            return default
        try:
            return int(value)
        except ValueError as exc:
            raise RuntimeError(f"Environment variable {key} must be an integer") from exc

    @staticmethod
    def _get_bool(key: str, default: bool) -> bool:
        value = os.getenv(key)
        if value is None or not value.strip():
            return default
        normalized = value.strip().lower()
        if normalized in _TRUTHY:
            return True
        if normalized in _FALSY:
            return False
        raise RuntimeError(f"Environment variable {key} must be a boolean")

    @staticmethod
    def _get_decimal(key: str, default: str) -> Decimal:
        value = os.getenv(key, default)
        try:
            amount = Decimal(value)
        except InvalidOperation as exc:
            raise RuntimeError(f"Environment variable {key} must be a decimal amount") from exc
        if amount < 0:
            raise RuntimeError(f"Environment variable {key} must not be negative")
        return amount
