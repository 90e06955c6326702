"""Payment event reconciliation.

Applies verified Stripe Checkout events to orders and event
registrations. Stripe may deliver an event more than once, and may deliver
``checkout.session.completed`` and ``async_payment_succeeded`` for the same
session in either order, so every step here is safe to repeat:

* confirmation is a plain overwrite of ``status``;
* the confirmation email is guarded by ``confirmation_sent_at``.

A failed async payment leaves the record ``pending`` for manual review.
"""

from enum import Enum
from uuid import UUID

import structlog

from .checkout import record_session_id
from .domain import Order, Registration, Status
from .errors import StorefrontError
from .gateway import PaymentGateway
from .notifications import NotificationDispatcher, NotificationOutcome
from .stores import CatalogStore, OrderStore, RegistrationStore

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
ASYNC_PAYMENT_SUCCEEDED = "checkout.session.async_payment_succeeded"
ASYNC_PAYMENT_FAILED = "checkout.session.async_payment_failed"
HANDLED_EVENTS = {CHECKOUT_COMPLETED, ASYNC_PAYMENT_SUCCEEDED, ASYNC_PAYMENT_FAILED}

PAID_STATUSES = {"paid", "no_payment_required"}


class ReconcileOutcome(str, Enum):
    IGNORED = "ignored"
    NO_CORRELATION = "no_correlation"
    UNKNOWN_RECORD = "unknown_record"
    PAYMENT_FAILED = "payment_failed"
    AWAITING_PAYMENT = "awaiting_payment"
    CONFIRMED = "confirmed"


class PaymentEventReconciler:
    def __init__(
        self,
        gateway: PaymentGateway,
        catalog: CatalogStore,
        orders: OrderStore,
        registrations: RegistrationStore,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self.gateway = gateway
        self.catalog = catalog
        self.orders = orders
        self.registrations = registrations
        self.dispatcher = dispatcher

    def handle_provider_event(self, payload: bytes, signature: str | None) -> ReconcileOutcome:
        """Verify a raw webhook body and apply it.

        Raises:
            AuthenticityError: before anything is read from the payload.
            PersistenceError: if the status transition could not be stored;
                the provider should retry.
        """
        event = self.gateway.verify_event(payload, signature)
        return self.apply(event)

    def apply(self, event: dict) -> ReconcileOutcome:
        event_type = event.get("type")
        log = logger.bind(stripe_event_id=event.get("id"), event_type=event_type)

        if event_type not in HANDLED_EVENTS:
            log.info("webhook_ignored")
            return ReconcileOutcome.IGNORED

        session = (event.get("data") or {}).get("object") or {}
        correlation = self._correlate(session.get("metadata") or {})
        if correlation is None:
            log.info("webhook_without_correlation", session_id=session.get("id"))
            return ReconcileOutcome.NO_CORRELATION

        kind, record_id = correlation
        log = log.bind(record_kind=kind, record_id=str(record_id))

        if event_type == ASYNC_PAYMENT_FAILED:
            log.warning("async_payment_failed", session_id=session.get("id"))
            return ReconcileOutcome.PAYMENT_FAILED

        store = self.orders if kind == "order" else self.registrations
        record = store.get(record_id)
        if record is None:
            log.warning("webhook_record_not_found")
            return ReconcileOutcome.UNKNOWN_RECORD

        payment_status = session.get("payment_status")
        if payment_status not in PAID_STATUSES:
            log.info("payment_not_yet_paid", payment_status=payment_status)
            return ReconcileOutcome.AWAITING_PAYMENT

        if not store.confirm(record_id):
            log.warning("webhook_record_not_found")
            return ReconcileOutcome.UNKNOWN_RECORD
        log.info("payment_confirmed", payment_status=payment_status, previous_status=record.status.value)
        record.status = Status.CONFIRMED

        session_id = session.get("id")
        if session_id and record.stripe_session_id != session_id:
            record_session_id(store, record_id, session_id)

        self._notify(record, log)
        return ReconcileOutcome.CONFIRMED

    def _correlate(self, metadata: dict) -> tuple[str, UUID] | None:
        # Metadata comes back from the provider: treat it as untrusted input.
        if metadata.get("type") == "event":
            kind, raw = "registration", metadata.get("eventRegistrationId")
        else:
            kind, raw = "order", metadata.get("orderId")
        if not raw:
            return None
        try:
            return kind, UUID(str(raw))
        except ValueError:
            logger.warning("webhook_correlation_invalid", value=str(raw)[:64])
            return None

    def _notify(self, record: Order | Registration, log) -> NotificationOutcome | None:
        # A failed email must not undo or hide the confirmation.
        try:
            if isinstance(record, Order):
                outcome = self.dispatcher.send_order_confirmation(self.orders, record)
            else:
                event = self.catalog.get_event(record.event_id)
                outcome = self.dispatcher.send_registration_confirmation(self.registrations, record, event)
        except StorefrontError as e:
            log.error("confirmation_dispatch_failed", error=e.message, kind=e.kind.value)
            return None
        log.info("confirmation_dispatched", outcome=outcome.value)
        return outcome
