import json
from decimal import Decimal
from typing import Any, Dict, List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_MILESTONES_JSON = json.dumps([
    {"points": 500, "reward_value": "5.00"},
    {"points": 1000, "reward_value": "10.00"},
    {"points": 1500, "reward_value": "7.50"},
    {"points": 2000, "reward_value": "10.00"},
    {"points": 2500, "reward_value": "12.50"},
    {"points": 3000, "reward_value": "15.00"},
    {"points": 4000, "reward_value": "20.00"},
    {"points": 5000, "reward_value": "25.00"},
])


class Settings(BaseSettings):
    # Database
    DATABASE_USER: str = "storefront"
    DATABASE_PASSWORD: str = ""
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "storefront"
    # Full URL, takes precedence over the parts above (sqlite for local runs and tests)
    SQLALCHEMY_DATABASE_URL: str | None = None

    # Tokens are issued by the auth service, we only verify them
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ADMIN_EMAILS_STR: str = Field(default="", alias="ADMIN_EMAILS")

    ORDER_WEBHOOK_SECRET: str = ""

    # Loyalty
    MILESTONE_SETTINGS_JSON: str = Field(default=DEFAULT_MILESTONES_JSON)
    REDEMPTION_UNIT_POINTS: int = 500
    REDEMPTION_UNIT_VALUE: Decimal = Decimal("5.00")
    REDEMPTION_VOUCHER_VALIDITY_DAYS: int = 90
    MILESTONE_VOUCHER_VALIDITY_DAYS: int = 365
    VOUCHER_CODE_MAX_ATTEMPTS: int = 3
    POINTS_PER_POUND: int = 100

    REDEEM_RATE_LIMIT: str = "10/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"

    CORS_ORIGINS_STR: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    LOG_LEVEL: str = "INFO"
    # INFO logs every SQL statement
    SQL_LOG_LEVEL: str = "WARNING"

    @property
    def ADMIN_EMAILS(self) -> List[str]:
        return [email.strip().lower() for email in self.ADMIN_EMAILS_STR.split(',') if email.strip()]

    @property
    def CORS_ORIGINS(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]

    @property
    def MILESTONE_SETTINGS(self) -> List[Dict[str, Any]]:
        return json.loads(self.MILESTONE_SETTINGS_JSON)

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URL:
            return self.SQLALCHEMY_DATABASE_URL
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    model_config = SettingsConfigDict(env_file=".env", populate_by_name=True)

settings = Settings()
