"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings; every key is read from the
`PAYMENT__` namespace, e.g. `PAYMENT__BACKEND__BASE_URL`.
"""
from __future__ import annotations

from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentTimeouts(BaseModel):
    connect: float = 1.0
    read: float = 3.0
    write: float = 3.0
    total: float = 5.0


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class BackendSettings(BaseModel):
    base_url: str = "http://localhost:3000/api/v1"
    auth_token: Optional[str] = None
    verify_ssl: bool = True


class SessionTiming(BaseModel):
    poll_interval_seconds: float = 3.0
    payment_window_seconds: int = 900
    countdown_tick_seconds: float = 1.0
    success_display_delay_seconds: float = 1.5
    low_time_threshold_seconds: int = 300
    default_cancellation_reason: str = "Customer cancelled payment"


class QRSettings(BaseModel):
    error_correction: Literal["L", "M", "Q", "H"] = "M"
    box_size: int = 8
    border: int = 2
    fill_color: str = "#000000"
    back_color: str = "#FFFFFF"


class PaymentSettings(BaseSettings):
    backend: BackendSettings = Field(default_factory=BackendSettings)
    timeouts: PaymentTimeouts = Field(default_factory=PaymentTimeouts)
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    session: SessionTiming = Field(default_factory=SessionTiming)
    qr: QRSettings = Field(default_factory=QRSettings)

    def verify_budget_seconds(self) -> float:
        """Worst-case wall time of one retried verify call."""
        step = self.retry.base_backoff
        backoff = sum(min(step * 2 ** attempt, step * 8) for attempt in range(self.retry.max))
        return self.timeouts.total * (self.retry.max + 1) + backoff

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
