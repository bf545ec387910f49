# app/providers/http.py
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

import httpx

from app.providers.base import Destination, SettlementResult
from settings import settings

logger = logging.getLogger("payouts.providers.http")


class HttpSettlementProvider:
    """
    Generic JSON settlement gateway.

    POST {url}/transfers with an Idempotency-Key header equal to the payout id.
    A timeout or a dropped connection after sending is reported as UNKNOWN:
    the gateway may have executed the transfer.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url if base_url is not None else settings.SETTLEMENT_HTTP_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.SETTLEMENT_HTTP_API_KEY
        timeout = timeout_s if timeout_s is not None else settings.SETTLEMENT_HTTP_TIMEOUT_S
        self._client = client or httpx.Client(timeout=timeout, follow_redirects=True)

    def _headers(self, idempotency_key: Optional[str] = None) -> dict[str, str]:
        h = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        if idempotency_key:
            h["Idempotency-Key"] = idempotency_key
        return h

    @staticmethod
    def _json(r: httpx.Response) -> Optional[dict[str, Any]]:
        try:
            payload = r.json()
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None

    def transfer(self, payout_id: UUID, net_amount_cents: int, destination: Destination) -> SettlementResult:
        body = {
            "payout_id": str(payout_id),
            "amount_cents": int(net_amount_cents),
            "business_id": str(destination.business_id),
            "processor_id": str(destination.processor_id),
        }
        try:
            r = self._client.post(
                f"{self.base_url}/transfers",
                headers=self._headers(idempotency_key=str(payout_id)),
                json=body,
            )
        except httpx.ConnectError as exc:
            # Never reached the gateway
            return SettlementResult(status="FAILURE", error=f"connect error: {exc}")
        except (httpx.TimeoutException, httpx.TransportError) as exc:
            logger.warning("settlement transfer outcome unknown payout=%s err=%s", payout_id, exc)
            return SettlementResult(status="UNKNOWN", error=f"{type(exc).__name__}: {exc}")

        payload = self._json(r)
        response = {"http_status": r.status_code, "body": payload}

        if 200 <= r.status_code < 300:
            reference = (payload or {}).get("reference") or (payload or {}).get("id")
            if not reference:
                return SettlementResult(status="UNKNOWN", response=response, error="Missing reference in response")
            return SettlementResult(status="SUCCESS", reference=str(reference), response=response)

        if r.status_code in (502, 503, 504):
            # Gateway-level errors: the upstream transfer may still have run.
            return SettlementResult(status="UNKNOWN", response=response, error=f"HTTP {r.status_code}")

        return SettlementResult(
            status="FAILURE",
            response=response,
            error=(payload or {}).get("error") or f"HTTP {r.status_code}",
        )

    def verify_credentials(self) -> bool:
        if not self.base_url or not self.api_key:
            return False
        try:
            r = self._client.get(f"{self.base_url}/credentials", headers=self._headers())
        except httpx.HTTPError as exc:
            logger.warning("settlement credential check failed: %s", exc)
            return False
        return r.status_code == 200
