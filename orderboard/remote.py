"""
Remote order service client.

Wraps the order API used by the board:

    GET   /orders/kanban          → list of orders for the board
    POST  /orders                 → create order
    PATCH /orders/{id}/status     → { status, comment }
    PUT   /orders/{id}            → update fields
    POST  /orders/{id}/comments   → { comment }

Calls are made with requests on the default executor so they never block
the event loop. No retries here: callers decide what a failure means.
"""
import asyncio
import logging
from enum import Enum
from functools import partial
from typing import Optional, List, Dict, Any

import requests

from .schema import OrderDraft, Status

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Exceptions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RemoteError(Exception):
    """Raised when the order service rejects a call or returns garbage."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(RemoteError):
    """401 from the service. The session layer owns re-login."""
    pass


class RemoteUnavailableError(RemoteError):
    """The service could not be reached (transport-level requests failure)."""
    pass


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RemoteOrderService
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


class RemoteOrderService:
    """Async facade over the order REST API."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token = token or None

    # ── Session ──────────────────────────────────

    def is_authenticated(self) -> bool:
        """Token present. No network call."""
        return bool(self._token)

    def login(self, token: str) -> None:
        self._token = token or None

    def logout(self) -> None:
        self._token = None

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    # ── Transport ────────────────────────────────

    def _request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        """Blocking HTTP call. Returns decoded JSON (None for empty bodies)."""
        url = f"{self.base_url}{endpoint}"
        try:
            response = self.session.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"{method} {url} unreachable: {e}")
            raise RemoteUnavailableError(
                "Could not connect to the order service. Check your connection."
            ) from e

        if response.status_code == 401:
            self.logout()
            raise SessionExpiredError("Session expired. Please log in again.", 401)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = None

        if not response.ok:
            message = "Request failed"
            if isinstance(data, dict) and data.get("message"):
                message = str(data["message"])
            raise RemoteError(message, response.status_code)
        return data

    async def _call(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(self._request, method, endpoint, payload)
        )

    # ── Order API ────────────────────────────────

    async def list_orders_for_board(self) -> List[Dict[str, Any]]:
        """Raw remote orders for the board. Raises RemoteError on non-list payloads."""
        data = await self._call("GET", "/orders/kanban")
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            data = data["data"]
        if not isinstance(data, list):
            raise RemoteError("Order list response is not an array")
        return data

    async def create_order(self, draft: OrderDraft) -> Dict[str, Any]:
        data = await self._call("POST", "/orders", draft.to_payload())
        if isinstance(data, dict) and isinstance(data.get("data"), dict):
            data = data["data"]
        if not isinstance(data, dict):
            raise RemoteError("Create order response is not an object")
        return data

    async def update_order_status(
        self, order_id: str, status: Status, comment: Optional[str] = None
    ) -> None:
        payload = {"status": status.value}
        if comment:
            payload["comment"] = comment
        await self._call("PATCH", f"/orders/{order_id}/status", payload)

    async def update_order(self, order_id: str, changes: Dict[str, Any]) -> None:
        await self._call("PUT", f"/orders/{order_id}", patch_payload(changes))

    async def add_comment(self, order_id: str, text: str) -> None:
        await self._call("POST", f"/orders/{order_id}/comments", {"comment": text})


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def patch_payload(changes: Dict[str, Any]) -> Dict[str, Any]:
    """Snake-case field patch → JSON body the service accepts."""
    payload = {}
    for key, value in changes.items():
        if hasattr(value, "to_dict"):
            value = value.to_dict()
        elif hasattr(value, "isoformat"):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, tuple):
            value = list(value)
        payload[_camel(key)] = value
    return payload
