"""Shared test fixtures: in-memory order service and order factories."""

import copy
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Ensure the project root is importable without installation
sys.path.insert(0, str(Path(__file__).parent.parent))

from orderboard.schema import Order, Status, OrderDraft  # noqa: E402
from orderboard.remote import RemoteError  # noqa: E402
from orderboard.notifications import Notifier  # noqa: E402
from orderboard.sync import SyncController  # noqa: E402

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def make_order(order_id: str, status: Status = Status.FAZER, title: str = "", **kwargs) -> Order:
    """Order with fixed timestamps."""
    kwargs.setdefault("created_at", T0)
    kwargs.setdefault("updated_at", T0)
    return Order(id=order_id, title=title or f"Order {order_id}", status=status, **kwargs)


def remote_order(order_id: str, status: str = "FAZER", title: str = "", **extra) -> dict:
    """Remote payload as the order service returns it."""
    data = {
        "id": order_id,
        "title": title or f"Order {order_id}",
        "status": status,
        "priority": "NORMAL",
        "customer": {"id": "c1", "name": "Gráfica Central"},
        "createdAt": "2024-03-01T09:00:00Z",
        "updatedAt": "2024-03-01T09:00:00Z",
        "history": [],
    }
    data.update(extra)
    return data


class FakeRemote:
    """
    In-memory stand-in for RemoteOrderService.

    `fail` maps an operation name (list, create, update_status, update_order,
    add_comment) to the exception it should raise. `calls` records every call.
    """

    def __init__(self, orders=None, authenticated=True):
        self.orders = [copy.deepcopy(o) for o in (orders or [])]
        self.authenticated = authenticated
        self.fail = {}
        self.calls = []
        self.on_update_status = None
        self._next_id = 1

    def is_authenticated(self) -> bool:
        return self.authenticated

    def _maybe_fail(self, name):
        if name in self.fail:
            raise self.fail[name]

    def _find(self, order_id):
        for order in self.orders:
            if order["id"] == order_id:
                return order
        raise RemoteError("Order not found", 404)

    async def list_orders_for_board(self):
        self.calls.append(("list",))
        self._maybe_fail("list")
        return copy.deepcopy(self.orders)

    async def create_order(self, draft: OrderDraft):
        self.calls.append(("create", draft.title))
        self._maybe_fail("create")
        created = remote_order(f"srv-{self._next_id}", draft.status.value, draft.title)
        self._next_id += 1
        self.orders.append(created)
        return copy.deepcopy(created)

    async def update_order_status(self, order_id, status, comment=None):
        self.calls.append(("update_status", order_id, status, comment))
        if self.on_update_status:
            self.on_update_status(order_id, status)
        self._maybe_fail("update_status")
        self._find(order_id)["status"] = status.value

    async def update_order(self, order_id, changes):
        self.calls.append(("update_order", order_id, dict(changes)))
        self._maybe_fail("update_order")
        order = self._find(order_id)
        if "title" in changes:
            order["title"] = changes["title"]

    async def add_comment(self, order_id, text):
        self.calls.append(("add_comment", order_id, text))
        self._maybe_fail("add_comment")
        self._find(order_id).setdefault("comments", []).append({"text": text})


@pytest.fixture
def remote():
    return FakeRemote([
        remote_order("A", "FAZER"),
        remote_order("B", "APROVACAO"),
        remote_order("C", "FAZER"),
    ])


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def controller(remote, notifier):
    return SyncController(remote, notifier)
