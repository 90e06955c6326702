"""Bridge from a persisted record to a hosted payment session.

The session metadata is the only way a webhook finds its way back to the
record, so it carries the record id and the currency.
"""

from urllib.parse import urlencode, urlsplit

import structlog

from . import settings
from .domain import CheckoutSession, Event, Order, Registration, SessionLineItem, SessionRequest
from .errors import ProviderError, UnknownColumnError
from .gateway import PaymentGateway
from .pricing import to_minor_units
from .stores import ReconcilableStore

logger = structlog.get_logger(__name__)

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")


def resolve_base_url(headers, request_url: str, configured: str | None = settings.SITE_URL) -> str:
    """Base URL for return links: configuration first, then request headers."""
    if configured:
        return configured.rstrip("/")

    origin = headers.get("origin")
    if origin:
        return origin.rstrip("/")

    parsed = urlsplit(request_url)
    host = headers.get("x-forwarded-host") or headers.get("host")
    if not host:
        return f"{parsed.scheme}://{parsed.netloc}".rstrip("/")

    proto = headers.get("x-forwarded-proto")
    if not proto:
        proto = "http" if host.split(":")[0] in _LOCAL_HOSTS else (parsed.scheme or "https")
    return f"{proto}://{host}".rstrip("/")


def _url(base_url: str, path: str, **params) -> str:
    return f"{base_url}{path}?{urlencode(params)}"


def record_session_id(store: ReconcilableStore, record_id, session_id: str) -> None:
    """Best effort: the column only exists once its migration has run."""
    try:
        store.update(record_id, stripe_session_id=session_id)
    except UnknownColumnError:
        logger.warning("session_id_not_recorded", record_id=str(record_id), reason="column missing")


def _open_session(gateway: PaymentGateway, request: SessionRequest) -> CheckoutSession:
    session = gateway.create_session(request)
    if not session.url:
        logger.error("stripe_session_without_url", session_id=session.id)
        raise ProviderError("Payment session was created without a redirect URL")
    return session


def start_payment(
    gateway: PaymentGateway,
    orders: ReconcilableStore,
    order: Order,
    base_url: str,
    currency: str = settings.STRIPE_CURRENCY,
) -> str:
    """Create the hosted session for a pending order; return the redirect URL."""
    line_items = [
        SessionLineItem(
            name=f"{line.product_name} ({line.size})" if line.size else line.product_name,
            unit_amount=to_minor_units(line.unit_price),
            quantity=line.quantity,
        )
        for line in order.product_orders
    ]
    request = SessionRequest(
        line_items=line_items,
        currency=currency,
        customer_email=order.customer_email,
        success_url=_url(base_url, "/order-success", orderId=str(order.id)),
        cancel_url=_url(base_url, "/checkout", canceled="1"),
        metadata={"orderId": str(order.id), "currency": currency},
    )

    session = _open_session(gateway, request)
    record_session_id(orders, order.id, session.id)

    logger.info("checkout_session_created", order_id=str(order.id), session_id=session.id)
    return session.url


def start_event_payment(
    gateway: PaymentGateway,
    registrations: ReconcilableStore,
    registration: Registration,
    event: Event,
    base_url: str,
    currency: str = settings.STRIPE_CURRENCY,
) -> str:
    unit_price = registration.price_paid / registration.quantity
    request = SessionRequest(
        line_items=[
            SessionLineItem(
                name=f"{event.title} — Event ticket",
                unit_amount=to_minor_units(unit_price),
                quantity=registration.quantity,
            )
        ],
        currency=currency,
        customer_email=registration.customer_email,
        success_url=_url(base_url, "/event-success", registrationId=str(registration.id)),
        cancel_url=_url(base_url, f"/events/{event.id}", canceled="1"),
        metadata={
            "type": "event",
            "eventRegistrationId": str(registration.id),
            "eventId": str(event.id),
            "currency": currency,
        },
    )

    session = _open_session(gateway, request)
    record_session_id(registrations, registration.id, session.id)

    logger.info(
        "event_checkout_session_created",
        registration_id=str(registration.id),
        session_id=session.id,
    )
    return session.url
