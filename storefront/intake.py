"""Order intake: turn a validated checkout request into a priced, pending record.

Intake never talks to the payment provider. The record it returns is
already persisted, so a webhook that arrives early always finds it.
"""

import uuid
from decimal import Decimal

import structlog

from .domain import LineItem, Order, Registration, Status
from .errors import NotFoundError, PriceError
from .models import CheckoutRequest, EventCheckoutRequest
from .pricing import ByIndex, parse_selector, resolve_price
from .stores import CatalogStore, OrderStore, RegistrationStore

logger = structlog.get_logger(__name__)


def price_cart(catalog: CatalogStore, req: CheckoutRequest) -> list[LineItem]:
    """Resolve every cart line against the catalog, all or nothing."""
    product_ids = list(dict.fromkeys(item.item_id for item in req.cart))
    products = catalog.get_products(product_ids)

    lines = []
    for item in req.cart:
        product = products.get(item.item_id)
        if product is None or not product.is_active:
            raise PriceError(f"Product not found: {item.item_id}")

        resolved = resolve_price(product, parse_selector(item.size_selector))
        lines.append(
            LineItem(
                product_id=product.id,
                product_name=product.name,
                size=resolved.label,
                quantity=item.quantity,
                unit_price=resolved.unit_price,
                customizations=tuple(item.customizations),
            )
        )
    return lines


def create_order(catalog: CatalogStore, orders: OrderStore, req: CheckoutRequest) -> Order:
    lines = price_cart(catalog, req)
    total = sum((line.subtotal for line in lines), Decimal("0"))

    order = Order(
        id=uuid.uuid4(),
        customer_name=req.customer_name,
        customer_email=req.customer_email,
        customer_phone=req.customer_phone,
        delivery_type=req.delivery_type,
        pickup_delivery_time=req.pickup_delivery_time,
        delivery_address=req.delivery_address if req.delivery_type == "delivery" else None,
        notes=req.notes or None,
        product_orders=lines,
        price_paid=total,
        status=Status.PENDING,
    )
    orders.insert(order)

    logger.info(
        "order_created",
        order_id=str(order.id),
        lines=len(lines),
        total=str(total),
        delivery_type=order.delivery_type,
    )
    return order


def create_registration(catalog: CatalogStore, registrations: RegistrationStore, req: EventCheckoutRequest):
    """Price and reserve tickets for an event.

    Returns the persisted registration and the event it belongs to.

    Raises:
        NotFoundError: unknown or inactive event.
        PriceError: the event has no usable price.
        CapacityError: not enough spots left.
    """
    event = catalog.get_event(req.event_id)
    if event is None or not event.is_active:
        raise NotFoundError("Event not found")

    resolved = resolve_price(event.as_catalog_item(), ByIndex(0))

    registration = Registration(
        id=uuid.uuid4(),
        event_id=event.id,
        customer_name=req.customer_name,
        customer_email=req.customer_email,
        customer_phone=req.customer_phone,
        quantity=req.quantity,
        price_paid=resolved.unit_price * req.quantity,
        status=Status.PENDING,
    )
    registrations.reserve(registration, event.capacity)

    logger.info(
        "registration_created",
        registration_id=str(registration.id),
        event_id=str(event.id),
        quantity=registration.quantity,
        total=str(registration.price_paid),
    )
    return registration, event
