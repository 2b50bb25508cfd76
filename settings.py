"""Application settings loaded from environment variables (or a local .env file)."""
from functools import lru_cache
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    database_url: str = Field("mongodb://localhost:27017", description="MongoDB connection URL")
    database_name: str = Field("shop", description="Database holding order, product and cart")
    database_timeout_ms: int = Field(5000, description="Server selection timeout (ms)")

    # PayPal
    paypal_client_id: str = Field("", description="PayPal REST client id")
    paypal_client_secret: str = Field("", description="PayPal REST client secret")
    paypal_base_url: str = Field("https://api-m.sandbox.paypal.com", description="PayPal API base URL")
    paypal_timeout: float = Field(10.0, gt=0, description="Timeout for each PayPal call (seconds)")

    # Checkout
    currency: str = Field("USD", description="Currency every order is charged in")
    payment_return_url: str = Field("http://localhost:5173/shop/paypal-return")
    payment_cancel_url: str = Field("http://localhost:5173/shop/paypal-cancel")

    # API
    allowed_origins: str = Field("*", description="CORS allowed origins (comma-separated)")
    log_level: str = Field("INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        v = v.strip().upper()
        if len(v) != 3 or not v.isalpha():
            raise ValueError("Currency must be a three letter ISO 4217 code")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return v.strip().upper()

    @property
    def allowed_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
