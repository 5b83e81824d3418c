"""
Payment port.

The engine only ever holds an opaque authorization handle.  Gateways
signal a decline with :class:`~carpool.domain.errors.PaymentDeclined` and
a failed capture with :class:`CaptureFailed`.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol


class CaptureFailed(Exception):
    """The processor refused or could not capture a held authorization."""


@dataclass(frozen=True)
class AuthorizationHandle:
    id: str
    amount: Decimal
    currency: str


class PaymentGateway(Protocol):
    async def authorize(
        self, amount: Decimal, currency: str, rider_id: int
    ) -> AuthorizationHandle: ...

    async def capture(self, handle_id: str) -> None: ...

    async def void(self, handle_id: str) -> None: ...
