"""Domain records for catalog items, orders and event registrations.

Catalog records are read as-is from the catalog store and are not
validated here: the pricing resolver decides whether a price is usable.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class Status(str, Enum):
    """Order/registration lifecycle.

    ``PENDING`` absorbs cancellations and failed async payments;
    ``CONFIRMED`` is the only terminal state.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"


@dataclass(frozen=True)
class PriceOption:
    label: str
    price: Any


@dataclass(frozen=True)
class CatalogItem:
    """A product as the catalog store returns it.

    Prices may come from the legacy small/medium/large columns, from the
    flexible ``options`` list, or both.
    """

    id: UUID
    name: str
    price_small: Any = None
    price_medium: Any = None
    price_large: Any = None
    options: tuple[PriceOption, ...] = ()
    is_active: bool = True


@dataclass(frozen=True)
class Event:
    id: UUID
    title: str
    price_per_entry: Any
    capacity: int | None = None
    is_active: bool = True
    starts_at: datetime | None = None
    location: str | None = None

    def as_catalog_item(self) -> CatalogItem:
        return CatalogItem(
            id=self.id,
            name=self.title,
            options=(PriceOption(label="Event ticket", price=self.price_per_entry),),
            is_active=self.is_active,
        )


@dataclass(frozen=True)
class LineItem:
    product_id: UUID
    product_name: str
    size: str | None
    quantity: int
    unit_price: Decimal
    customizations: tuple[str, ...] = ()

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_json(self) -> dict:
        return {
            "product_id": str(self.product_id),
            "product_name": self.product_name,
            "size": self.size,
            "quantity": self.quantity,
            "customizations": list(self.customizations),
            "unit_price": float(self.unit_price),
        }

    @classmethod
    def from_json(cls, data: dict) -> "LineItem":
        return cls(
            product_id=UUID(str(data["product_id"])),
            product_name=data.get("product_name") or "Item",
            size=data.get("size"),
            quantity=int(data.get("quantity") or 1),
            unit_price=Decimal(str(data.get("unit_price") or 0)),
            customizations=tuple(data.get("customizations") or ()),
        )


@dataclass
class Order:
    id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str
    delivery_type: str
    pickup_delivery_time: str
    product_orders: list[LineItem]
    price_paid: Decimal
    delivery_address: str | None = None
    notes: str | None = None
    status: Status = Status.PENDING
    stripe_session_id: str | None = None
    confirmation_sent_at: datetime | None = None
    created_at: datetime | None = None

    @property
    def is_delivery(self) -> bool:
        return self.delivery_type == "delivery"


@dataclass
class Registration:
    id: UUID
    event_id: UUID
    customer_name: str
    customer_email: str
    customer_phone: str
    quantity: int
    price_paid: Decimal
    status: Status = Status.PENDING
    stripe_session_id: str | None = None
    confirmation_sent_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class CheckoutSession:
    """Handle returned by the payment provider."""

    id: str
    url: str | None


@dataclass(frozen=True)
class SessionLineItem:
    name: str
    unit_amount: int
    quantity: int


@dataclass
class SessionRequest:
    line_items: list[SessionLineItem]
    currency: str
    customer_email: str
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)
