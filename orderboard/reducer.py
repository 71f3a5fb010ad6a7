"""
Board reducer: (state, action) -> new state.

The only place board state changes. Every transition returns a new BoardState
and leaves the input untouched. Actions that reference an unknown order id
return the input state object unchanged.

Column rule (applied after every order mutation):
  - every order sits in exactly one column, the one whose id is its status
  - a column keeps its existing sequence for orders that stay in it,
    drops orders that left, and appends newcomers in canonical-list order
  - ReplaceOrders rebuilds every column from scratch
"""
import copy
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any, Sequence, Tuple, Callable

from .schema import (
    BoardState, KanbanColumn, Order, Status, Priority, Customer, DEFAULT_COLUMN_TITLES,
    PATCHABLE_FIELDS, SYSTEM_USER, utc_now,
)
from .mapper import map_customer, parse_datetime
from .history import (
    make_history_entry, make_comment, append_history, append_comment, touch,
)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Actions
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


@dataclass(frozen=True)
class ReplaceOrders:
    """Full sync: replace every order and rebuild every column."""
    orders: Tuple[Order, ...]


@dataclass(frozen=True)
class AddOrder:
    order: Order


@dataclass(frozen=True)
class UpdateStatus:
    order_id: str
    status: Status
    comment: Optional[str] = None
    position: Optional[int] = None   # index in the destination column; None = end
    user: str = SYSTEM_USER


@dataclass(frozen=True)
class AddComment:
    order_id: str
    text: str
    user: str = SYSTEM_USER


@dataclass(frozen=True)
class UpdateOrder:
    """Shallow-merge a patch of Order field names into one order."""
    order_id: str
    changes: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReorderColumn:
    """Explicit sequence for one column. Must list exactly its current ids."""
    column_id: Status
    order_ids: Tuple[str, ...]


@dataclass(frozen=True)
class SetLoading:
    is_loading: bool


@dataclass(frozen=True)
class SetError:
    message: Optional[str]


Action = Any  # one of the dataclasses above


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Columns
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def initial_state(titles: Optional[Dict[Status, str]] = None) -> BoardState:
    """Empty board with one column per status, in workflow order."""
    titles = titles or {}
    columns = tuple(
        KanbanColumn(id=status, title=titles.get(status) or DEFAULT_COLUMN_TITLES[status])
        for status in Status
    )
    return BoardState(columns=columns)


def rebuild_columns(
    columns: Sequence[KanbanColumn],
    orders: Sequence[Order],
    fresh: bool = False,
    placements: Optional[Dict[str, int]] = None,
) -> Tuple[KanbanColumn, ...]:
    """
    Recompute every column's order list from the canonical list.

    Args:
        columns: current columns (their sequences are kept unless fresh)
        orders: canonical order list
        fresh: ignore existing sequences, use canonical order
        placements: order_id -> index for orders entering a column at a position
    """
    placements = placements or {}
    by_id = {o.id: o for o in orders}
    rebuilt = []
    for column in columns:
        members = [o.id for o in orders if o.status == column.id]
        member_set = set(members)
        if fresh:
            sequence = members
        else:
            sequence = [oid for oid in column.order_ids if oid in member_set]
            kept = set(sequence)
            for oid in members:
                if oid in kept:
                    continue
                if oid in placements:
                    index = max(0, min(placements[oid], len(sequence)))
                    sequence.insert(index, oid)
                else:
                    sequence.append(oid)
        rebuilt.append(dataclasses.replace(
            column, orders=tuple(by_id[oid] for oid in sequence)
        ))
    return tuple(rebuilt)


def check_partition(state: BoardState) -> List[str]:
    """Return partition invariant violations (empty list when the board is consistent)."""
    problems = []
    seen: Dict[str, Status] = {}
    canonical = {o.id: o for o in state.orders}
    for column in state.columns:
        for order in column.orders:
            if order.id in seen:
                problems.append(f"{order.id} in both {seen[order.id].value} and {column.id.value}")
            seen[order.id] = column.id
            if order.id not in canonical:
                problems.append(f"{order.id} in {column.id.value} but not in order list")
            elif canonical[order.id] is not order:
                problems.append(f"{order.id} in {column.id.value} is stale")
            if order.status != column.id:
                problems.append(f"{order.id} has status {order.status.value} but sits in {column.id.value}")
    for order_id in canonical:
        if order_id not in seen:
            problems.append(f"{order_id} missing from every column")
    return problems


def _replace_order(state: BoardState, updated: Order) -> Tuple[Order, ...]:
    return tuple(updated if o.id == updated.id else o for o in state.orders)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Handlers
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def _replace_orders(state: BoardState, action: ReplaceOrders, now: datetime) -> BoardState:
    orders = []
    seen = set()
    for order in action.orders:
        if order.id in seen:
            continue  # first occurrence wins
        seen.add(order.id)
        orders.append(order)
    orders = tuple(orders)
    return dataclasses.replace(
        state,
        orders=orders,
        columns=rebuild_columns(state.columns, orders, fresh=True),
        last_sync_time=now,
    )


def _add_order(state: BoardState, action: AddOrder, now: datetime) -> BoardState:
    order = action.order
    if state.find(order.id) is not None:
        return state
    columns = tuple(
        dataclasses.replace(c, orders=c.orders + (order,)) if c.id == order.status else c
        for c in state.columns
    )
    return dataclasses.replace(
        state, orders=state.orders + (order,), columns=columns, last_sync_time=now,
    )


def _update_status(state: BoardState, action: UpdateStatus, now: datetime) -> BoardState:
    order = state.find(action.order_id)
    if order is None:
        return state
    previous = order.status
    entry = make_history_entry(action.status, action.comment or "", action.user, now)
    updated = append_history(order, entry)
    updated = dataclasses.replace(updated, status=action.status, updated_at=touch(order, now))
    orders = _replace_order(state, updated)

    columns = state.columns
    placements = {}
    if action.position is not None:
        placements[updated.id] = action.position
        if previous == action.status:
            # same column: drop it first so it re-enters at the requested slot
            columns = tuple(
                dataclasses.replace(c, orders=tuple(o for o in c.orders if o.id != updated.id))
                if c.id == previous else c
                for c in columns
            )
    return dataclasses.replace(
        state,
        orders=orders,
        columns=rebuild_columns(columns, orders, placements=placements),
        last_sync_time=now,
    )


def _add_comment(state: BoardState, action: AddComment, now: datetime) -> BoardState:
    order = state.find(action.order_id)
    if order is None:
        return state
    updated = append_comment(order, make_comment(action.text, action.user, now))
    updated = append_history(updated, make_history_entry(order.status, action.text, action.user, now))
    updated = dataclasses.replace(updated, updated_at=touch(order, now))
    orders = _replace_order(state, updated)
    return dataclasses.replace(
        state,
        orders=orders,
        columns=rebuild_columns(state.columns, orders),
        last_sync_time=now,
    )


_TEXT_FIELDS = ("title", "description", "payment_status", "payment_method", "source")
_OPTIONAL_TEXT_FIELDS = ("assigned_to", "external_order_id")
_RECORD_LIST_FIELDS = ("products", "artworks", "artwork_action_logs")


def _coerce_field(key: str, value: Any) -> Any:
    """Coerce one loose JSON value to its Order field type. Raises ValueError."""
    if key in _TEXT_FIELDS:
        if not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        return value
    if key in _OPTIONAL_TEXT_FIELDS:
        if value is not None and not isinstance(value, str):
            raise ValueError(f"{key} must be a string or null")
        return value or None
    if key in _RECORD_LIST_FIELDS:
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, dict) for v in value):
            raise ValueError(f"{key} must be a list of objects")
        return tuple(copy.deepcopy(v) for v in value)
    if key == "labels":
        if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
            raise ValueError("labels must be a list of strings")
        return tuple(value)
    if key == "status":
        return Status.parse(value)
    if key == "priority":
        if isinstance(value, Priority):
            return value
        if not isinstance(value, str):
            raise ValueError("priority must be a string")
        return Priority.from_str(value)
    if key == "customer":
        if isinstance(value, Customer):
            return value
        if not isinstance(value, dict):
            raise ValueError("customer must be an object")
        return map_customer(value)
    if key == "due_date":
        if value is None or value == "":
            return None
        parsed = parse_datetime(value)
        if parsed is None:
            raise ValueError("due_date must be an ISO-8601 date")
        return parsed
    raise ValueError(f"{key} cannot be patched")


def normalize_patch(patch: Dict[str, Any], strict: bool = False) -> Dict[str, Any]:
    """
    Keep patchable fields and coerce loose JSON values to record types.

    Unknown and engine-owned keys are always dropped. A value of the wrong
    type raises ValueError when strict, and is dropped otherwise.
    """
    changes = {}
    for key, value in patch.items():
        if key not in PATCHABLE_FIELDS:
            continue
        try:
            changes[key] = _coerce_field(key, value)
        except ValueError:
            if strict:
                raise
    return changes


def _update_order(state: BoardState, action: UpdateOrder, now: datetime) -> BoardState:
    order = state.find(action.order_id)
    if order is None:
        return state
    changes = normalize_patch(action.changes)
    if not changes:
        return state
    updated = dataclasses.replace(order, **changes)
    if "status" in changes:
        updated = append_history(updated, make_history_entry(changes["status"], now=now))
    updated = dataclasses.replace(updated, updated_at=touch(order, now))
    orders = _replace_order(state, updated)
    return dataclasses.replace(
        state,
        orders=orders,
        columns=rebuild_columns(state.columns, orders),
        last_sync_time=now,
    )


def _reorder_column(state: BoardState, action: ReorderColumn, now: datetime) -> BoardState:
    column = state.column(action.column_id)
    if column is None:
        return state
    order_ids = tuple(action.order_ids)
    if len(order_ids) != len(column.orders) or set(order_ids) != set(column.order_ids):
        return state
    by_id = {o.id: o for o in column.orders}
    columns = tuple(
        dataclasses.replace(c, orders=tuple(by_id[oid] for oid in order_ids))
        if c.id == action.column_id else c
        for c in state.columns
    )
    return dataclasses.replace(state, columns=columns, last_sync_time=now)


def _set_loading(state: BoardState, action: SetLoading, now: datetime) -> BoardState:
    return dataclasses.replace(state, is_loading=bool(action.is_loading))


def _set_error(state: BoardState, action: SetError, now: datetime) -> BoardState:
    return dataclasses.replace(state, error=action.message)


_HANDLERS: Dict[type, Callable[[BoardState, Any, datetime], BoardState]] = {
    ReplaceOrders: _replace_orders,
    AddOrder: _add_order,
    UpdateStatus: _update_status,
    AddComment: _add_comment,
    UpdateOrder: _update_order,
    ReorderColumn: _reorder_column,
    SetLoading: _set_loading,
    SetError: _set_error,
}


def reduce(state: BoardState, action: Action, now: Optional[datetime] = None) -> BoardState:
    """Apply one action. Unknown action types raise TypeError."""
    handler = _HANDLERS.get(type(action))
    if handler is None:
        raise TypeError(f"Unknown action: {type(action).__name__}")
    return handler(state, action, now or utc_now())
