"""
Payment gateway adapters.

* ``StubPaymentGateway`` -- in-memory processor for local runs and tests.
  It can be told to decline riders, fail captures or add latency.
* ``HttpPaymentGateway`` -- talks to a card processor's REST API
  (authorize / capture / void on a held authorization) with ``httpx``.
  Amounts go over the wire in minor units.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from decimal import Decimal
from typing import Optional

import httpx

from carpool.domain.errors import PaymentDeclined
from carpool.domain.payments import AuthorizationHandle, CaptureFailed

logger = logging.getLogger(__name__)


def _minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value())


class StubPaymentGateway:
    def __init__(
        self,
        *,
        decline_riders: Optional[set[int]] = None,
        fail_capture: bool = False,
        latency: float = 0.0,
    ):
        self.decline_riders = decline_riders or set()
        self.fail_capture = fail_capture
        self.latency = latency
        self.authorized: dict[str, AuthorizationHandle] = {}
        self.captured: set[str] = set()
        self.voided: set[str] = set()

    async def authorize(
        self, amount: Decimal, currency: str, rider_id: int
    ) -> AuthorizationHandle:
        if self.latency:
            await asyncio.sleep(self.latency)
        if rider_id in self.decline_riders:
            raise PaymentDeclined()
        handle = AuthorizationHandle(
            id=f"auth_{uuid.uuid4().hex[:12]}", amount=amount, currency=currency
        )
        self.authorized[handle.id] = handle
        return handle

    async def capture(self, handle_id: str) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)
        if self.fail_capture or handle_id not in self.authorized:
            raise CaptureFailed(handle_id)
        if handle_id in self.voided:
            raise CaptureFailed(f"{handle_id} was voided")
        self.captured.add(handle_id)

    async def void(self, handle_id: str) -> None:
        self.voided.add(handle_id)


class HttpPaymentGateway:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def authorize(
        self, amount: Decimal, currency: str, rider_id: int
    ) -> AuthorizationHandle:
        try:
            resp = await self.client.post(
                "/authorizations",
                headers={"Idempotency-Key": uuid.uuid4().hex},
                json={
                    "amount": _minor_units(amount),
                    "currency": currency,
                    "customer_reference": str(rider_id),
                    "capture_method": "manual",
                },
            )
        except httpx.HTTPError as exc:
            logger.warning("Authorization request failed: %s", type(exc).__name__)
            raise PaymentDeclined("The payment processor is unavailable") from exc
        if resp.status_code >= 400:
            raise PaymentDeclined()
        return AuthorizationHandle(id=resp.json()["id"], amount=amount, currency=currency)

    async def capture(self, handle_id: str) -> None:
        try:
            resp = await self.client.post(f"/authorizations/{handle_id}/capture")
        except httpx.HTTPError as exc:
            raise CaptureFailed(handle_id) from exc
        if resp.status_code >= 400:
            raise CaptureFailed(f"{handle_id}: HTTP {resp.status_code}")

    async def void(self, handle_id: str) -> None:
        resp = await self.client.post(f"/authorizations/{handle_id}/void")
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self.client.aclose()
