"""
Order board schema.

Workflow columns (one per status, board order):
  Fazer → Ajuste → Aprovação → Aguardando Aprovação → Aprovado → Arte Aprovada
  → Produção → Expedição → Finalizado → Entregue → Faturado → Arquivado

Records are immutable. Every mutation builds a new record through
dataclasses.replace(); history and comments are append-only tuples.
"""
from enum import Enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
SYSTEM_USER = "Sistema"
UNKNOWN_CUSTOMER_NAME = "Cliente não informado"


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Status(Enum):
    """Order workflow states. Each one is a board column."""
    FAZER = "FAZER"
    AJUSTE = "AJUSTE"
    APROVACAO = "APROVACAO"
    AGUARDANDO_APROVACAO = "AGUARDANDO_APROVACAO"
    APROVADO = "APROVADO"
    ARTE_APROVADA = "ARTE_APROVADA"
    PRODUCAO = "PRODUCAO"
    EXPEDICAO = "EXPEDICAO"
    FINALIZADO = "FINALIZADO"
    ENTREGUE = "ENTREGUE"
    FATURADO = "FATURADO"
    ARQUIVADO = "ARQUIVADO"

    @classmethod
    def from_str(cls, value: Any) -> "Status":
        if isinstance(value, Status):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return cls.FAZER

    @classmethod
    def parse(cls, value: Any) -> "Status":
        """Strict variant of from_str: raises ValueError on unknown values."""
        if isinstance(value, Status):
            return value
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            raise ValueError(f"Invalid status: {value}")


DEFAULT_COLUMN_TITLES: Dict[Status, str] = {
    Status.FAZER: "Fazer",
    Status.AJUSTE: "Ajuste",
    Status.APROVACAO: "Aprovação",
    Status.AGUARDANDO_APROVACAO: "Aguardando Aprovação",
    Status.APROVADO: "Aprovado",
    Status.ARTE_APROVADA: "Arte Aprovada",
    Status.PRODUCAO: "Produção",
    Status.EXPEDICAO: "Expedição",
    Status.FINALIZADO: "Finalizado",
    Status.ENTREGUE: "Entregue",
    Status.FATURADO: "Faturado",
    Status.ARQUIVADO: "Arquivado",
}


class Priority(Enum):
    NORMAL = "normal"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Any) -> "Priority":
        if isinstance(value, Priority):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NORMAL


@dataclass(frozen=True)
class Customer:
    """Customer snapshot embedded in an order."""
    id: str = ""
    name: str = UNKNOWN_CUSTOMER_NAME
    email: str = ""
    phone: str = ""
    company: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    neighborhood: str = ""
    number: str = ""
    complement: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "neighborhood": self.neighborhood,
            "number": self.number,
            "complement": self.complement,
        }


@dataclass(frozen=True)
class HistoryEntry:
    """One audit record: a status change or a comment, never edited."""
    id: str
    date: datetime
    status: Status
    user: str = SYSTEM_USER
    comment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": _iso(self.date),
            "status": self.status.value,
            "user": self.user,
            "comment": self.comment,
        }


@dataclass(frozen=True)
class Comment:
    id: str
    text: str
    created_at: datetime
    user: str = SYSTEM_USER

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "createdAt": _iso(self.created_at),
            "user": self.user,
        }


@dataclass(frozen=True)
class Order:
    """Canonical local order record."""

    # Identity
    id: str
    title: str = ""
    description: str = ""

    # Workflow
    status: Status = Status.FAZER
    priority: Priority = Priority.NORMAL
    customer: Customer = field(default_factory=Customer)

    # Content (opaque line items / attachments)
    products: Tuple[Dict[str, Any], ...] = ()
    labels: Tuple[str, ...] = ()
    artworks: Tuple[Dict[str, Any], ...] = ()
    artwork_action_logs: Tuple[Dict[str, Any], ...] = ()

    # Timestamps
    created_at: datetime = EPOCH
    updated_at: datetime = EPOCH
    due_date: Optional[datetime] = None

    # Audit trail (append-only)
    history: Tuple[HistoryEntry, ...] = ()
    comments: Tuple[Comment, ...] = ()

    # Assignment & billing
    assigned_to: Optional[str] = None
    payment_status: str = "PENDENTE"
    payment_method: str = ""
    source: str = "MANUAL"
    external_order_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a JSON-ready dict."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value,
            "customer": self.customer.to_dict(),
            "products": list(self.products),
            "labels": list(self.labels),
            "artworks": list(self.artworks),
            "artworkActionLogs": list(self.artwork_action_logs),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
            "dueDate": _iso(self.due_date),
            "history": [h.to_dict() for h in self.history],
            "comments": [c.to_dict() for c in self.comments],
            "assignedTo": self.assigned_to,
            "paymentStatus": self.payment_status,
            "paymentMethod": self.payment_method,
            "source": self.source,
            "externalOrderId": self.external_order_id,
        }


# Fields an UpdateOrder patch may rewrite. id, created_at, history and comments are
# owned by the engine.
PATCHABLE_FIELDS = frozenset({
    "title", "description", "status", "priority", "customer", "products",
    "labels", "artworks", "artwork_action_logs", "due_date",
    "assigned_to", "payment_status", "payment_method", "source",
    "external_order_id",
})


@dataclass
class OrderDraft:
    """Input for the remote create call."""
    title: str
    description: str = ""
    status: Status = Status.FAZER
    priority: Priority = Priority.NORMAL
    customer_id: Optional[str] = None
    products: List[Dict[str, Any]] = field(default_factory=list)
    labels: List[str] = field(default_factory=list)
    due_date: Optional[datetime] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value.upper(),
            "customerId": self.customer_id,
            "products": list(self.products),
            "labels": list(self.labels),
            "dueDate": _iso(self.due_date),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderDraft":
        """Build a draft from loose JSON input. Raises ValueError on bad input."""
        title = str(data.get("title") or "").strip()
        if not title:
            raise ValueError("title is required")
        due_date = None
        if data.get("dueDate"):
            due_date = datetime.fromisoformat(str(data["dueDate"]))
        return cls(
            title=title,
            description=data.get("description") or "",
            status=Status.parse(data.get("status") or Status.FAZER),
            priority=Priority.from_str(data.get("priority") or "normal"),
            customer_id=data.get("customerId"),
            products=list(data.get("products") or []),
            labels=list(data.get("labels") or []),
            due_date=due_date,
        )


@dataclass(frozen=True)
class KanbanColumn:
    """Status-bound view over the canonical order list."""
    id: Status
    title: str
    orders: Tuple[Order, ...] = ()

    @property
    def order_ids(self) -> Tuple[str, ...]:
        return tuple(o.id for o in self.orders)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "title": self.title,
            "count": len(self.orders),
            "orders": [o.to_dict() for o in self.orders],
        }


@dataclass(frozen=True)
class BoardState:
    """Whole-board snapshot. Replaced atomically on every dispatch."""
    columns: Tuple[KanbanColumn, ...] = ()
    orders: Tuple[Order, ...] = ()
    is_loading: bool = False
    error: Optional[str] = None
    last_sync_time: Optional[datetime] = None

    def column(self, status: Status) -> Optional[KanbanColumn]:
        for column in self.columns:
            if column.id == status:
                return column
        return None

    def find(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def stats(self) -> Dict[str, Any]:
        by_status = {c.id.value: len(c.orders) for c in self.columns}
        return {
            "total": len(self.orders),
            "by_status": by_status,
            "high_priority": sum(1 for o in self.orders if o.priority == Priority.HIGH),
        }
