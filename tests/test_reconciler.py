"""Unit tests for webhook reconciliation.

Run with: pytest tests/test_reconciler.py -v
"""

from uuid import uuid4

import pytest

from fakes import InMemoryOrderStore, checkout_event, sign
from storefront.domain import Status
from storefront.errors import AuthenticityError, PersistenceError
from storefront.intake import create_order, create_registration
from storefront.models import CheckoutRequest, EventCheckoutRequest
from storefront.notifications import NotificationDispatcher
from storefront.reconciler import (
    ASYNC_PAYMENT_FAILED,
    ASYNC_PAYMENT_SUCCEEDED,
    CHECKOUT_COMPLETED,
    PaymentEventReconciler,
    ReconcileOutcome,
)


@pytest.fixture
def order(catalog, orders, checkout_payload):
    return create_order(catalog, orders, CheckoutRequest.model_validate(checkout_payload))


def deliver(reconciler, payload: bytes):
    return reconciler.handle_provider_event(payload, sign(payload))


class TestAuthenticity:
    def test_missing_signature_is_rejected(self, reconciler, orders, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        with pytest.raises(AuthenticityError):
            reconciler.handle_provider_event(payload, None)

        assert orders.get(order.id).status == Status.PENDING

    def test_wrong_secret_is_rejected(self, reconciler, orders, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        with pytest.raises(AuthenticityError):
            reconciler.handle_provider_event(payload, sign(payload, secret="whsec_other"))

        assert orders.get(order.id).status == Status.PENDING

    def test_tampered_body_is_rejected(self, reconciler, orders, order):
        original = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}, payment_status="unpaid")
        tampered = original.replace(b'"unpaid"', b'"paid"')

        with pytest.raises(AuthenticityError):
            reconciler.handle_provider_event(tampered, sign(original))

        assert orders.get(order.id).status == Status.PENDING

    def test_stale_timestamp_is_rejected(self, reconciler, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        with pytest.raises(AuthenticityError):
            reconciler.handle_provider_event(payload, sign(payload, timestamp=1_000_000_000))


class TestOrderConfirmation:
    def test_paid_checkout_confirms_and_notifies(self, reconciler, orders, sender, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}, session_id="cs_test_paid")

        assert deliver(reconciler, payload) == ReconcileOutcome.CONFIRMED

        stored = orders.get(order.id)
        assert stored.status == Status.CONFIRMED
        assert stored.stripe_session_id == "cs_test_paid"
        assert stored.confirmation_sent_at is not None
        assert len(sender.sent) == 1

    def test_redelivery_is_harmless(self, reconciler, orders, sender, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        deliver(reconciler, payload)
        deliver(reconciler, payload)

        assert orders.get(order.id).status == Status.CONFIRMED
        assert len(sender.sent) == 1

    def test_no_payment_required_counts_as_paid(self, reconciler, orders, order):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}, payment_status="no_payment_required")

        assert deliver(reconciler, payload) == ReconcileOutcome.CONFIRMED

    def test_async_payment_sequence(self, reconciler, orders, sender, order):
        completed = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}, payment_status="unpaid")
        succeeded = checkout_event(ASYNC_PAYMENT_SUCCEEDED, {"orderId": str(order.id)}, payment_status="paid")

        assert deliver(reconciler, completed) == ReconcileOutcome.AWAITING_PAYMENT
        assert orders.get(order.id).status == Status.PENDING
        assert sender.sent == []

        assert deliver(reconciler, succeeded) == ReconcileOutcome.CONFIRMED
        assert orders.get(order.id).status == Status.CONFIRMED
        assert len(sender.sent) == 1

    def test_late_completed_event_does_not_resend(self, reconciler, orders, sender, order):
        succeeded = checkout_event(ASYNC_PAYMENT_SUCCEEDED, {"orderId": str(order.id)})
        completed = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        deliver(reconciler, succeeded)
        deliver(reconciler, completed)

        assert orders.get(order.id).status == Status.CONFIRMED
        assert len(sender.sent) == 1

    def test_failed_async_payment_leaves_order_pending(self, reconciler, orders, sender, order):
        payload = checkout_event(ASYNC_PAYMENT_FAILED, {"orderId": str(order.id)}, payment_status="unpaid")

        assert deliver(reconciler, payload) == ReconcileOutcome.PAYMENT_FAILED
        assert orders.get(order.id).status == Status.PENDING
        assert orders.updates == []
        assert sender.sent == []

    def test_failed_event_never_regresses_confirmed_order(self, reconciler, orders, order):
        deliver(reconciler, checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}))
        deliver(reconciler, checkout_event(ASYNC_PAYMENT_FAILED, {"orderId": str(order.id)}))

        assert orders.get(order.id).status == Status.CONFIRMED


class TestIgnoredEvents:
    def test_unrelated_event_type(self, reconciler, orders, order):
        payload = checkout_event("payment_intent.created", {"orderId": str(order.id)})

        assert deliver(reconciler, payload) == ReconcileOutcome.IGNORED
        assert orders.get(order.id).status == Status.PENDING

    def test_event_without_correlation(self, reconciler):
        payload = checkout_event(CHECKOUT_COMPLETED, {})

        assert deliver(reconciler, payload) == ReconcileOutcome.NO_CORRELATION

    def test_malformed_order_id(self, reconciler):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": "1; DROP TABLE orders"})

        assert deliver(reconciler, payload) == ReconcileOutcome.NO_CORRELATION

    def test_unknown_order(self, reconciler, sender):
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(uuid4())})

        assert deliver(reconciler, payload) == ReconcileOutcome.UNKNOWN_RECORD
        assert sender.sent == []


class TestFailureHandling:
    def test_status_write_failure_propagates(self, reconciler, orders, sender, order):
        orders.fail_confirm = True
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        with pytest.raises(PersistenceError):
            deliver(reconciler, payload)

        assert sender.sent == []

    def test_email_failure_keeps_order_confirmed(self, reconciler, orders, sender, order):
        sender.should_succeed = False
        payload = checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)})

        assert deliver(reconciler, payload) == ReconcileOutcome.CONFIRMED
        assert orders.get(order.id).status == Status.CONFIRMED

        sender.should_succeed = True
        deliver(reconciler, payload)
        assert len(sender.sent) == 1

    def test_missing_optional_columns_do_not_block_confirmation(
        self, gateway, catalog, registrations, sender, checkout_payload
    ):
        orders = InMemoryOrderStore(missing_columns={"stripe_session_id", "confirmation_sent_at"})
        reconciler = PaymentEventReconciler(
            gateway=gateway,
            catalog=catalog,
            orders=orders,
            registrations=registrations,
            dispatcher=NotificationDispatcher(sender, bcc=[]),
        )
        order = create_order(catalog, orders, CheckoutRequest.model_validate(checkout_payload))

        outcome = deliver(reconciler, checkout_event(CHECKOUT_COMPLETED, {"orderId": str(order.id)}))

        assert outcome == ReconcileOutcome.CONFIRMED
        assert orders.get(order.id).status == Status.CONFIRMED
        assert len(sender.sent) == 1
        assert sender.sent[0]["to"] == "ada@example.com"


class TestRegistrationConfirmation:
    def test_event_registration_is_confirmed(self, reconciler, catalog, registrations, sender, workshop):
        req = EventCheckoutRequest.model_validate(
            {
                "eventId": str(workshop.id),
                "quantity": 2,
                "customerName": "Ada",
                "customerEmail": "ada@example.com",
                "customerPhone": "555",
            }
        )
        registration, _ = create_registration(catalog, registrations, req)
        metadata = {"type": "event", "eventRegistrationId": str(registration.id), "eventId": str(workshop.id)}

        assert deliver(reconciler, checkout_event(CHECKOUT_COMPLETED, metadata)) == ReconcileOutcome.CONFIRMED
        deliver(reconciler, checkout_event(CHECKOUT_COMPLETED, metadata))

        assert registrations.get(registration.id).status == Status.CONFIRMED
        assert len(sender.sent) == 1
        assert "Cookie Decorating Workshop" in sender.sent[0]["message"].subject
