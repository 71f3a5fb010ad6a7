"""
Remote order → local Order mapping.

The remote service returns loosely typed JSON. Every field is optional here;
missing or malformed values degrade to defaults instead of failing the load.
"""
import copy
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple

from .schema import (
    Order, Customer, HistoryEntry, Comment, Status, Priority,
    EPOCH, SYSTEM_USER, UNKNOWN_CUSTOMER_NAME,
)


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string, datetime or epoch-milliseconds number to UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _dict_list(value: Any) -> Tuple[Dict[str, Any], ...]:
    if not isinstance(value, list):
        return ()
    return tuple(copy.deepcopy(item) for item in value if isinstance(item, dict))


def map_customer(raw: Any) -> Customer:
    if not isinstance(raw, dict):
        return Customer()
    return Customer(
        id=_text(raw.get("id")),
        name=_text(raw.get("name")) or UNKNOWN_CUSTOMER_NAME,
        email=_text(raw.get("email")),
        phone=_text(raw.get("phone")),
        company=_text(raw.get("company")),
        address=_text(raw.get("address")),
        city=_text(raw.get("city")),
        state=_text(raw.get("state")),
        zip_code=_text(raw.get("zipCode")),
        neighborhood=_text(raw.get("neighborhood")),
        number=_text(raw.get("number")),
        complement=_text(raw.get("complement")),
    )


def _history_user(raw: Any) -> str:
    if isinstance(raw, dict):
        return _text(raw.get("name")) or SYSTEM_USER
    return _text(raw) or SYSTEM_USER


def _map_history(raw: Any, fallback_date: datetime) -> Tuple[HistoryEntry, ...]:
    if not isinstance(raw, list):
        return ()
    entries: List[HistoryEntry] = []
    last_date = None
    for index, item in enumerate(raw):
        if not isinstance(item, dict):
            continue
        status = Status.from_str(item.get("status"))
        date = parse_datetime(item.get("createdAt") or item.get("date")) or fallback_date
        # history must be non-decreasing by date
        if last_date is not None and date < last_date:
            date = last_date
        last_date = date
        comment = item.get("comment") or item.get("description") or f"Status changed to {status.value}"
        entries.append(HistoryEntry(
            id=_text(item.get("id")) or f"history-{index}",
            date=date,
            status=status,
            user=_history_user(item.get("user")),
            comment=_text(comment),
        ))
    return tuple(entries)


def _map_comments(raw: Any, fallback_date: datetime) -> Tuple[Comment, ...]:
    if not isinstance(raw, list):
        return ()
    comments: List[Comment] = []
    for index, item in enumerate(raw):
        if isinstance(item, str):
            item = {"text": item}
        if not isinstance(item, dict):
            continue
        comments.append(Comment(
            id=_text(item.get("id")) or f"comment-{index}",
            text=_text(item.get("text") or item.get("comment")),
            created_at=parse_datetime(item.get("createdAt")) or fallback_date,
            user=_history_user(item.get("user")),
        ))
    return tuple(comments)


def map_remote_order(remote: Any) -> Order:
    """Translate one remote order payload into the canonical Order record."""
    if not isinstance(remote, dict):
        remote = {}

    created_at = parse_datetime(remote.get("createdAt"))
    updated_at = parse_datetime(remote.get("updatedAt"))
    created_at = created_at or updated_at or EPOCH
    updated_at = max(updated_at or created_at, created_at)

    labels = remote.get("labels")
    labels = tuple(_text(label) for label in labels) if isinstance(labels, list) else ()

    return Order(
        id=_text(remote.get("id")),
        title=_text(remote.get("title")),
        description=_text(remote.get("description")),
        status=Status.from_str(remote.get("status")),
        priority=Priority.from_str(remote.get("priority") or "normal"),
        customer=map_customer(remote.get("customer")),
        products=_dict_list(remote.get("products")),
        labels=labels,
        artworks=_dict_list(remote.get("artworks")),
        artwork_action_logs=_dict_list(remote.get("artworkActionLogs")),
        created_at=created_at,
        updated_at=updated_at,
        due_date=parse_datetime(remote.get("dueDate")),
        history=_map_history(remote.get("history"), created_at),
        comments=_map_comments(remote.get("comments"), created_at),
        assigned_to=_text(remote.get("assignedTo")) or None,
        payment_status=_text(remote.get("paymentStatus")) or "PENDENTE",
        payment_method=_text(remote.get("paymentMethod")),
        source=_text(remote.get("source")) or "MANUAL",
        external_order_id=_text(remote.get("tinyOrderId") or remote.get("externalOrderId")) or None,
    )


def map_remote_orders(remote_orders: Any) -> List[Order]:
    """Map a remote list; non-list input maps to an empty list."""
    if not isinstance(remote_orders, list):
        return []
    return [map_remote_order(item) for item in remote_orders]
