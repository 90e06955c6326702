from fastapi import Depends, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.concurrency import run_in_threadpool

from uuid import UUID

import structlog
import uvicorn

from . import settings
from .admin import is_admin_email
from .checkout import resolve_base_url, start_event_payment, start_payment
from .errors import ErrorKind, ForbiddenError, NotFoundError, StorefrontError, UnauthenticatedError
from .gateway import PaymentGateway, get_gateway
from .intake import create_order, create_registration
from .log import configure_logging
from .mailer import EmailSender, get_email_sender
from .models import (
    CheckoutRequest,
    CheckoutResponse,
    EventCheckoutRequest,
    EventCheckoutResponse,
    WebhookResponse,
)
from .notifications import NotificationDispatcher
from .reconciler import PaymentEventReconciler
from .stores import (
    CatalogStore,
    OrderStore,
    PostgresCatalogStore,
    PostgresOrderStore,
    PostgresRegistrationStore,
    RegistrationStore,
)

configure_logging()
logger = structlog.get_logger(__name__)

app = FastAPI(title="Storefront Checkout", version="0.1.0")


def get_catalog() -> CatalogStore:
    return PostgresCatalogStore()


def get_order_store() -> OrderStore:
    return PostgresOrderStore()


def get_registration_store() -> RegistrationStore:
    return PostgresRegistrationStore()


def get_reconciler(
    gateway: PaymentGateway = Depends(get_gateway),
    catalog: CatalogStore = Depends(get_catalog),
    orders: OrderStore = Depends(get_order_store),
    registrations: RegistrationStore = Depends(get_registration_store),
    sender: EmailSender = Depends(get_email_sender),
) -> PaymentEventReconciler:
    return PaymentEventReconciler(
        gateway=gateway,
        catalog=catalog,
        orders=orders,
        registrations=registrations,
        dispatcher=NotificationDispatcher(sender),
    )


@app.exception_handler(StorefrontError)
async def storefront_error_handler(request: Request, exc: StorefrontError):
    logger.info("request_failed", path=request.url.path, kind=exc.kind.value, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    fields = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part != "body"]
        fields.append(".".join(loc) if loc else err.get("msg", "request"))
    message = "Please check your details: " + ", ".join(dict.fromkeys(fields))
    return JSONResponse(
        status_code=400,
        content={"error": {"kind": ErrorKind.VALIDATION.value, "message": message}},
    )


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/checkout", response_model=CheckoutResponse)
def checkout(
    req: CheckoutRequest,
    request: Request,
    catalog: CatalogStore = Depends(get_catalog),
    orders: OrderStore = Depends(get_order_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    # Persist first: the webhook needs a pending order to reconcile against.
    order = create_order(catalog, orders, req)
    base_url = resolve_base_url(request.headers, str(request.url))
    url = start_payment(gateway, orders, order, base_url)
    return CheckoutResponse(url=url, order_id=str(order.id))


@app.post("/event-checkout", response_model=EventCheckoutResponse)
def event_checkout(
    req: EventCheckoutRequest,
    request: Request,
    catalog: CatalogStore = Depends(get_catalog),
    registrations: RegistrationStore = Depends(get_registration_store),
    gateway: PaymentGateway = Depends(get_gateway),
):
    registration, event = create_registration(catalog, registrations, req)
    base_url = resolve_base_url(request.headers, str(request.url))
    url = start_event_payment(gateway, registrations, registration, event, base_url)
    return EventCheckoutResponse(url=url, registration_id=str(registration.id))


@app.post("/payment-webhook", response_model=WebhookResponse)
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    reconciler: PaymentEventReconciler = Depends(get_reconciler),
):
    """
    Raw body is verified before it is parsed. Any non-2xx makes Stripe
    redeliver, which is safe because reconciliation is idempotent.
    """
    payload = await request.body()
    outcome = await run_in_threadpool(reconciler.handle_provider_event, payload, stripe_signature)
    logger.info("webhook_handled", outcome=outcome.value)
    return WebhookResponse(accepted=True)


@app.get("/orders/{order_id}")
def get_order(
    order_id: UUID,
    user_email: str | None = Header(None, alias="X-User-Email"),
    orders: OrderStore = Depends(get_order_store),
):
    if not user_email:
        raise UnauthenticatedError("Please sign in")
    if not is_admin_email(user_email):
        raise ForbiddenError("You do not have access to orders")

    order = orders.get(order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def run() -> None:
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
