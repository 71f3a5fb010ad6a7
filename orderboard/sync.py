"""
Sync controller: owns the board state and keeps it in line with the order service.

Phases:
  IDLE → LOADING → READY, plus an error flag (BoardState.error) that any
  phase can raise.

Protocol:
  load           remote list → map → ReplaceOrders; on failure an empty board
  create_order   pessimistic: remote create first, then AddOrder
  update_status  optimistic: UpdateStatus now, remote after; on failure
                 reload from the service (the only rollback)
  update_order / add_comment follow the update_status protocol

No per-order locking. Two moves of the same order in flight resolve as:
last dispatch wins locally, last reload wins after a failure.
"""
import logging
from enum import Enum
from typing import Optional, List, Dict, Any, Callable, Sequence

from .schema import BoardState, Order, OrderDraft, Status
from .mapper import map_remote_order, map_remote_orders
from .notifications import Notifier
from .reducer import (
    Action, initial_state, reduce, check_partition, normalize_patch,
    ReplaceOrders, AddOrder, UpdateStatus, AddComment, UpdateOrder,
    ReorderColumn, SetLoading, SetError,
)
from .remote import RemoteOrderService, SessionExpiredError

logger = logging.getLogger(__name__)


class SyncPhase(Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


class SyncController:
    """Single writer for the board state. Callers read `state` and call intents."""

    def __init__(
        self,
        remote: RemoteOrderService,
        notifier: Optional[Notifier] = None,
        titles: Optional[Dict[Status, str]] = None,
    ):
        self.remote = remote
        self.notifier = notifier or Notifier()
        self.phase = SyncPhase.IDLE
        self._state = initial_state(titles)
        self._listeners: List[Callable[[BoardState], None]] = []

    # ──────────────────────────────────────────
    # State access
    # ──────────────────────────────────────────

    @property
    def state(self) -> BoardState:
        return self._state

    def subscribe(self, listener: Callable[[BoardState], None]) -> None:
        """Register a render callback, called with the new state after each change."""
        self._listeners.append(listener)

    def dispatch(self, action: Action) -> BoardState:
        previous = self._state
        self._state = reduce(previous, action)
        if self._state is previous:
            return self._state
        if logger.isEnabledFor(logging.DEBUG):
            for problem in check_partition(self._state):
                logger.debug(f"Partition check after {type(action).__name__}: {problem}")
        for listener in self._listeners:
            try:
                listener(self._state)
            except Exception as e:
                logger.warning(f"State listener failed: {e}")
        return self._state

    def get_order(self, order_id: str) -> Optional[Order]:
        return self._state.find(order_id)

    def orders_in(self, status: Status) -> List[Order]:
        column = self._state.column(Status.parse(status))
        return list(column.orders) if column else []

    def _report_failure(self, title: str, error: Exception) -> None:
        """Error toast, except for session expiry (the session layer reports that)."""
        self.dispatch(SetError(str(error)))
        if isinstance(error, SessionExpiredError):
            logger.info(f"{title}: session expired, notification left to session layer")
            return
        self.notifier.error(title, str(error))

    # ──────────────────────────────────────────
    # Load
    # ──────────────────────────────────────────

    async def load(self) -> bool:
        """Full load from the service. Returns True when the board was replaced."""
        if not self.remote.is_authenticated():
            logger.info("Not authenticated, skipping board load")
            return False

        self.phase = SyncPhase.LOADING
        self.dispatch(SetLoading(True))
        try:
            remote_orders = await self.remote.list_orders_for_board()
            orders = map_remote_orders(remote_orders)
            self.dispatch(ReplaceOrders(tuple(orders)))
            self.dispatch(SetError(None))
            logger.info(f"Loaded {len(orders)} orders from the order service")
            return True
        except Exception as e:
            logger.error(f"Board load failed: {e}")
            # empty board plus error flag; optimistic changes go with it
            self.dispatch(ReplaceOrders(()))
            self._report_failure("Could not load orders", e)
            return False
        finally:
            self.dispatch(SetLoading(False))
            self.phase = SyncPhase.READY

    async def reload(self) -> bool:
        """Discard local state in favour of the service's."""
        return await self.load()

    # ──────────────────────────────────────────
    # Create (pessimistic)
    # ──────────────────────────────────────────

    async def create_order(self, draft: OrderDraft) -> Order:
        """Create remotely, then insert locally. Re-raises on failure."""
        self.dispatch(SetLoading(True))
        try:
            created = await self.remote.create_order(draft)
            order = map_remote_order(created)
            self.dispatch(AddOrder(order))
            self.notifier.success("Order created", f"{order.title} was added to the board.")
            return order
        except Exception as e:
            logger.error(f"Create order '{draft.title}' failed: {e}")
            self._report_failure("Could not create order", e)
            raise
        finally:
            self.dispatch(SetLoading(False))

    # ──────────────────────────────────────────
    # Optimistic mutations
    # ──────────────────────────────────────────

    async def update_status(
        self,
        order_id: str,
        status: Status,
        comment: Optional[str] = None,
        position: Optional[int] = None,
    ) -> bool:
        """
        Move an order to a new status.

        The local move is applied before the remote call. If the remote call
        fails the whole board is reloaded from the service.

        Returns:
            True if the service confirmed the change.
        """
        status = Status.parse(status)
        if self.get_order(order_id) is None:
            logger.warning(f"update_status: unknown order {order_id}")
            return False

        self.dispatch(UpdateStatus(order_id, status, comment=comment, position=position))
        try:
            await self.remote.update_order_status(order_id, status, comment)
        except Exception as e:
            logger.error(f"Status update {order_id} → {status.value} failed: {e}")
            self._report_failure("Could not update status", e)
            await self.reload()
            return False

        title = self._state.column(status).title
        self.notifier.success("Status updated", f"Order moved to {title}.")
        return True

    async def update_order(self, order_id: str, changes: Dict[str, Any]) -> bool:
        """
        Patch order fields locally, then remotely. Reloads on remote failure.

        Raises ValueError for a patch value of the wrong type, before any
        local or remote change.
        """
        changes = normalize_patch(changes, strict=True)
        order = self.get_order(order_id)
        if order is None:
            logger.warning(f"update_order: unknown order {order_id}")
            return False

        self.dispatch(UpdateOrder(order_id, changes))
        try:
            await self.remote.update_order(order_id, changes)
        except Exception as e:
            logger.error(f"Update order {order_id} failed: {e}")
            self._report_failure("Could not update order", e)
            await self.reload()
            return False

        self.notifier.success("Order updated", (self.get_order(order_id) or order).title)
        return True

    async def add_comment(self, order_id: str, text: str) -> bool:
        """Append a comment locally, then remotely. Reloads on remote failure."""
        order = self.get_order(order_id)
        if order is None:
            logger.warning(f"add_comment: unknown order {order_id}")
            return False

        self.dispatch(AddComment(order_id, text))
        try:
            await self.remote.add_comment(order_id, text)
        except Exception as e:
            logger.error(f"Comment on {order_id} failed: {e}")
            self._report_failure("Could not add comment", e)
            await self.reload()
            return False

        self.notifier.success("Comment added", order.title)
        return True

    # ──────────────────────────────────────────
    # Local-only
    # ──────────────────────────────────────────

    def reorder_column(self, column_id: Status, order_ids: Sequence[str]) -> bool:
        """Apply an explicit in-column order. False if the ids don't match the column."""
        before = self._state
        after = self.dispatch(ReorderColumn(Status.parse(column_id), tuple(order_ids)))
        return after is not before
