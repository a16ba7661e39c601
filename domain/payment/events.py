"""
Payment session events.

Both timer sources (polling, countdown) and the caller-facing operations are
expressed as events and fed to the reducer through a single serialization point.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from domain.payment.entity import PaymentIntent, PaymentStatus


@dataclass(frozen=True)
class SessionEvent:
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc), kw_only=True)


@dataclass(frozen=True)
class SessionOpened(SessionEvent):
    intent: PaymentIntent
    window_seconds: int


@dataclass(frozen=True)
class PollingStarted(SessionEvent):
    pass


@dataclass(frozen=True)
class StatusReceived(SessionEvent):
    status: PaymentStatus


@dataclass(frozen=True)
class VerifyRejected(SessionEvent):
    """A verify call was definitively rejected; polling continues."""
    message: str


@dataclass(frozen=True)
class CountdownTicked(SessionEvent):
    remaining_seconds: int


@dataclass(frozen=True)
class CountdownExpired(SessionEvent):
    pass


@dataclass(frozen=True)
class CancelRequested(SessionEvent):
    reason: str


@dataclass(frozen=True)
class QRUnavailable(SessionEvent):
    message: str


@dataclass(frozen=True)
class SessionClosed(SessionEvent):
    pass
