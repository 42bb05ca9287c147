from __future__ import annotations

from typing import Any
from uuid import UUID

import httpx

from screenings.core.errors import error_from_payload
from screenings.core.logging import get_logger

logger = get_logger(__name__)


class ScreeningsClient:
    """
    Thin async client for the Screenings API, acting as one user.

    Non-2xx responses are raised as the same ServiceError classes the server
    uses, so callers can branch on ``err.outcome``.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        user_id: UUID,
        base_path: str = "/api/v1",
    ) -> None:
        self.http = http
        self.user_id = user_id
        self.base_path = base_path.rstrip("/")

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> Any:
        resp = await self.http.request(
            method,
            f"{self.base_path}{path}",
            json=json,
            headers={"X-User-Id": str(self.user_id)},
        )
        if resp.is_success:
            return resp.json()

        try:
            payload = resp.json()
        except ValueError:
            payload = {"error": resp.text}

        err = error_from_payload(resp.status_code, payload if isinstance(payload, dict) else None)
        logger.debug("%s %s -> %s (%s)", method, path, resp.status_code, err.code)
        raise err

    # -----------------------------
    # RSVPs
    # -----------------------------
    async def toggle_rsvp(self, event_id: UUID, status: str) -> dict[str, Any]:
        return await self._request("POST", f"/events/{event_id}/rsvp", {"status": status})

    async def set_rsvp(self, event_id: UUID, status: str) -> dict[str, Any]:
        return await self._request("PUT", f"/events/{event_id}/rsvp", {"status": status})

    async def delete_rsvp(self, event_id: UUID) -> dict[str, Any]:
        return await self._request("DELETE", f"/events/{event_id}/rsvp")

    async def list_my_rsvps(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/me/rsvps")

    async def is_going(self, event_id: UUID) -> bool:
        rsvps = await self.list_my_rsvps()
        return any(
            r["eventId"] == str(event_id) and r["status"] == "going"
            for r in rsvps
        )

    # -----------------------------
    # Payments
    # -----------------------------
    async def create_intent(self, event_id: UUID, amount: int | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"eventId": str(event_id)}
        if amount is not None:
            body["amount"] = amount
        return await self._request("POST", "/payments/create-intent", body)

    async def sync_intent(self, payment_intent_id: str) -> dict[str, Any]:
        return await self._request(
            "POST",
            "/payments/sync-intent",
            {"paymentIntentId": payment_intent_id},
        )

    async def payment_history(self) -> list[dict[str, Any]]:
        return await self._request("GET", "/payments/history")
