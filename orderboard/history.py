"""
Audit trail helpers: build history entries and comments, append them to an order.

Existing entries are never touched. New entries are dated no earlier than the
last one so history stays non-decreasing by date.
"""
import dataclasses
import time
import uuid
from datetime import datetime
from typing import Optional

from .schema import Order, HistoryEntry, Comment, Status, SYSTEM_USER, utc_now


def make_entry_id(prefix: str) -> str:
    """Sortable unique id: ms timestamp + random hex."""
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def status_change_text(status: Status) -> str:
    return f"Status changed to {status.value}"


def make_history_entry(
    status: Status,
    comment: str = "",
    user: str = SYSTEM_USER,
    now: Optional[datetime] = None,
) -> HistoryEntry:
    return HistoryEntry(
        id=make_entry_id("history"),
        date=now or utc_now(),
        status=status,
        user=user or SYSTEM_USER,
        comment=comment or status_change_text(status),
    )


def make_comment(text: str, user: str = SYSTEM_USER, now: Optional[datetime] = None) -> Comment:
    return Comment(
        id=make_entry_id("comment"),
        text=text,
        created_at=now or utc_now(),
        user=user or SYSTEM_USER,
    )


def touch(order: Order, now: datetime) -> datetime:
    """New updated_at for a mutation, never before created_at."""
    return max(now, order.created_at, order.updated_at)


def append_history(order: Order, entry: HistoryEntry) -> Order:
    if order.history and entry.date < order.history[-1].date:
        entry = dataclasses.replace(entry, date=order.history[-1].date)
    return dataclasses.replace(order, history=order.history + (entry,))


def append_comment(order: Order, comment: Comment) -> Order:
    return dataclasses.replace(order, comments=order.comments + (comment,))
