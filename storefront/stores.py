"""Store interfaces and their PostgreSQL implementations.

Services depend on the abstract stores only, so tests can swap in
in-memory versions. The PostgreSQL stores open one connection per unit of
work through ``get_conn()``.

Columns added by later migrations (``stripe_session_id``,
``confirmation_sent_at``, ``price_options``) may be missing in a given
deployment. Reads tolerate that by selecting ``*``; writes report it as
``UnknownColumnError`` so callers can decide whether the field is optional.
"""

import re
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterable
from uuid import UUID

import psycopg
import structlog
from psycopg import sql
from psycopg.types.json import Jsonb

from .db import get_conn
from .domain import CatalogItem, Event, LineItem, Order, PriceOption, Registration, Status
from .errors import CapacityError, PersistenceError, UnknownColumnError

logger = structlog.get_logger(__name__)

_UNDEFINED_COLUMN = re.compile(r'column "?(?:\w+\.)?(\w+)"? ')


class CatalogStore(ABC):
    """Read-only access to products and events."""

    @abstractmethod
    def get_products(self, product_ids: Iterable[UUID]) -> dict[UUID, CatalogItem]:
        """Bulk fetch products by id. Unknown ids are simply absent."""
        ...

    @abstractmethod
    def get_event(self, event_id: UUID) -> Event | None:
        ...


class ReconcilableStore(ABC):
    """Operations shared by orders and event registrations."""

    @abstractmethod
    def update(self, record_id: UUID, **fields) -> None:
        """Overwrite columns of one row.

        Raises:
            UnknownColumnError: if a column does not exist in the schema.
            PersistenceError: on any other failure.
        """
        ...

    @abstractmethod
    def confirm(self, record_id: UUID) -> bool:
        """Set status to confirmed. Safe to repeat; returns False if no row."""
        ...

    @abstractmethod
    def claim_confirmation(self, record_id: UUID, sent_at: datetime) -> bool:
        """Set ``confirmation_sent_at`` only if it is still null.

        Returns True for the single caller that wins the claim.
        """
        ...

    @abstractmethod
    def release_confirmation(self, record_id: UUID) -> None:
        """Clear ``confirmation_sent_at`` after a failed send."""
        ...


class OrderStore(ReconcilableStore):
    @abstractmethod
    def insert(self, order: Order) -> None:
        ...

    @abstractmethod
    def get(self, order_id: UUID) -> Order | None:
        ...


class RegistrationStore(ReconcilableStore):
    @abstractmethod
    def reserve(self, registration: Registration, capacity: int | None) -> None:
        """Insert a pending registration if the event has room for it.

        Raises:
            CapacityError: if pending plus confirmed tickets would exceed
                ``capacity``.
        """
        ...

    @abstractmethod
    def get(self, registration_id: UUID) -> Registration | None:
        ...


@contextmanager
def _translate_errors(action: str):
    try:
        yield
    except psycopg.errors.UndefinedColumn as e:
        match = _UNDEFINED_COLUMN.search(str(e))
        column = match.group(1) if match else "unknown"
        raise UnknownColumnError(column, str(e)) from e
    except psycopg.errors.UndefinedTable as e:
        logger.error("store_table_missing", action=action, error=str(e))
        raise PersistenceError("The database schema is out of date; apply pending migrations") from e
    except psycopg.Error as e:
        logger.error("store_error", action=action, error=str(e), error_type=type(e).__name__)
        raise PersistenceError(f"Could not {action}") from e


def _price_options(raw) -> tuple[PriceOption, ...]:
    if not raw:
        return ()
    return tuple(PriceOption(label=str(o.get("label") or ""), price=o.get("price")) for o in raw)


def _product_from_row(row: dict) -> CatalogItem:
    return CatalogItem(
        id=row["id"],
        name=row["name"],
        price_small=row.get("price_small"),
        price_medium=row.get("price_medium"),
        price_large=row.get("price_large"),
        options=_price_options(row.get("price_options")),
        is_active=row.get("is_active", True),
    )


def _event_from_row(row: dict) -> Event:
    return Event(
        id=row["id"],
        title=row["title"],
        price_per_entry=row.get("price_per_entry"),
        capacity=row.get("capacity"),
        is_active=row.get("is_active", True),
        starts_at=row.get("starts_at"),
        location=row.get("location"),
    )


def _order_from_row(row: dict) -> Order:
    items = row.get("product_orders") or []
    return Order(
        id=row["id"],
        customer_name=row["customer_name"],
        customer_email=row["customer_email"],
        customer_phone=row["customer_phone"],
        delivery_type=row["delivery_type"],
        pickup_delivery_time=row["pickup_delivery_time"],
        product_orders=[LineItem.from_json(i) for i in items if isinstance(i, dict)],
        price_paid=Decimal(str(row["price_paid"])),
        delivery_address=row.get("delivery_address"),
        notes=row.get("notes"),
        status=Status(row["status"]),
        stripe_session_id=row.get("stripe_session_id"),
        confirmation_sent_at=row.get("confirmation_sent_at"),
        created_at=row.get("created_at"),
    )


def _registration_from_row(row: dict) -> Registration:
    return Registration(
        id=row["id"],
        event_id=row["event_id"],
        customer_name=row["customer_name"],
        customer_email=row["customer_email"],
        customer_phone=row["customer_phone"],
        quantity=row["quantity"],
        price_paid=Decimal(str(row["price_paid"])),
        status=Status(row["status"]),
        stripe_session_id=row.get("stripe_session_id"),
        confirmation_sent_at=row.get("confirmation_sent_at"),
        created_at=row.get("created_at"),
    )


class PostgresCatalogStore(CatalogStore):
    def get_products(self, product_ids: Iterable[UUID]) -> dict[UUID, CatalogItem]:
        ids = list(product_ids)
        if not ids:
            return {}
        with _translate_errors("load products"), get_conn() as conn:
            rows = conn.execute("SELECT * FROM products WHERE id = ANY(%s)", (ids,)).fetchall()
        return {row["id"]: _product_from_row(row) for row in rows}

    def get_event(self, event_id: UUID) -> Event | None:
        with _translate_errors("load event"), get_conn() as conn:
            row = conn.execute("SELECT * FROM events WHERE id = %s", (event_id,)).fetchone()
        return _event_from_row(row) if row else None


class _PostgresReconcilable(ReconcilableStore):
    table: str

    def update(self, record_id: UUID, **fields) -> None:
        if not fields:
            return
        assignments = sql.SQL(", ").join(
            sql.SQL("{} = {}").format(sql.Identifier(name), sql.Placeholder(name))
            for name in fields
        )
        query = sql.SQL("UPDATE {} SET {} WHERE id = %(record_id)s").format(
            sql.Identifier(self.table), assignments
        )
        with _translate_errors(f"update {self.table}"), get_conn() as conn:
            conn.execute(query, {**fields, "record_id": record_id})

    def confirm(self, record_id: UUID) -> bool:
        query = sql.SQL("UPDATE {} SET status = %s WHERE id = %s").format(sql.Identifier(self.table))
        with _translate_errors(f"confirm {self.table}"), get_conn() as conn:
            cur = conn.execute(query, (Status.CONFIRMED.value, record_id))
            return cur.rowcount > 0

    def claim_confirmation(self, record_id: UUID, sent_at: datetime) -> bool:
        query = sql.SQL(
            "UPDATE {} SET confirmation_sent_at = %s "
            "WHERE id = %s AND confirmation_sent_at IS NULL RETURNING id"
        ).format(sql.Identifier(self.table))
        with _translate_errors(f"mark {self.table} confirmation"), get_conn() as conn:
            return conn.execute(query, (sent_at, record_id)).fetchone() is not None

    def release_confirmation(self, record_id: UUID) -> None:
        self.update(record_id, confirmation_sent_at=None)


class PostgresOrderStore(_PostgresReconcilable, OrderStore):
    table = "orders"

    def insert(self, order: Order) -> None:
        with _translate_errors("save the order"), get_conn() as conn:
            conn.execute(
                "INSERT INTO orders(id, customer_name, customer_email, customer_phone, price_paid, "
                "product_orders, delivery_type, pickup_delivery_time, delivery_address, notes, status) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    order.id,
                    order.customer_name,
                    order.customer_email,
                    order.customer_phone,
                    order.price_paid,
                    Jsonb([item.to_json() for item in order.product_orders]),
                    order.delivery_type,
                    order.pickup_delivery_time,
                    order.delivery_address,
                    order.notes,
                    order.status.value,
                ),
            )

    def get(self, order_id: UUID) -> Order | None:
        with _translate_errors("load the order"), get_conn() as conn:
            row = conn.execute("SELECT * FROM orders WHERE id = %s", (order_id,)).fetchone()
        return _order_from_row(row) if row else None


class PostgresRegistrationStore(_PostgresReconcilable, RegistrationStore):
    table = "event_registrations"

    def reserve(self, registration: Registration, capacity: int | None) -> None:
        with _translate_errors("save the registration"), get_conn() as conn:
            if capacity is not None:
                # Serializes concurrent checkouts for the same event until commit.
                conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (str(registration.event_id),))
                used = conn.execute(
                    "SELECT COALESCE(SUM(quantity), 0) AS used FROM event_registrations "
                    "WHERE event_id = %s AND status IN ('pending', 'confirmed')",
                    (registration.event_id,),
                ).fetchone()["used"]
                if used + registration.quantity > capacity:
                    raise CapacityError("Not enough spots left for this event")

            conn.execute(
                "INSERT INTO event_registrations(id, event_id, customer_name, customer_email, "
                "customer_phone, quantity, price_paid, status) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s)",
                (
                    registration.id,
                    registration.event_id,
                    registration.customer_name,
                    registration.customer_email,
                    registration.customer_phone,
                    registration.quantity,
                    registration.price_paid,
                    registration.status.value,
                ),
            )

    def get(self, registration_id: UUID) -> Registration | None:
        with _translate_errors("load the registration"), get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM event_registrations WHERE id = %s", (registration_id,)
            ).fetchone()
        return _registration_from_row(row) if row else None
