"""Hosted payment checkout provider.

``PaymentGateway`` is the port the checkout bridge and the reconciler talk
to; ``StripeGateway`` implements it with Stripe Checkout.
"""

import json
from abc import ABC, abstractmethod

import stripe
import structlog

from . import settings
from .domain import CheckoutSession, SessionRequest
from .errors import AuthenticityError, ConfigurationError, ProviderError, ValidationError

logger = structlog.get_logger(__name__)


class PaymentGateway(ABC):
    @abstractmethod
    def create_session(self, request: SessionRequest) -> CheckoutSession:
        """Create a hosted checkout session.

        Raises:
            ProviderError: if the provider call fails.
        """
        ...

    @abstractmethod
    def verify_event(self, payload: bytes, signature: str | None) -> dict:
        """Verify the signature of a raw webhook body and return the event.

        The body is parsed only after verification succeeds.

        Raises:
            AuthenticityError: missing or invalid signature.
        """
        ...


class StripeGateway(PaymentGateway):
    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance: int = settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
    ) -> None:
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.tolerance = tolerance

    def create_session(self, request: SessionRequest) -> CheckoutSession:
        if not self.api_key:
            raise ConfigurationError("Missing STRIPE_SECRET_KEY")

        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                line_items=[
                    {
                        "price_data": {
                            "currency": request.currency,
                            "product_data": {"name": item.name},
                            "unit_amount": item.unit_amount,
                        },
                        "quantity": item.quantity,
                    }
                    for item in request.line_items
                ],
                customer_email=request.customer_email,
                success_url=request.success_url,
                cancel_url=request.cancel_url,
                metadata=request.metadata,
            )
        except stripe.StripeError as e:
            logger.error("stripe_session_failed", error=str(e), error_type=type(e).__name__)
            raise ProviderError("Could not start the payment; please try again") from e

        return CheckoutSession(id=session.id, url=session.url)

    def verify_event(self, payload: bytes, signature: str | None) -> dict:
        if not signature:
            logger.warning("webhook_signature_missing")
            raise AuthenticityError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise ConfigurationError("Missing STRIPE_WEBHOOK_SECRET")

        try:
            text = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(text, signature, self.webhook_secret, self.tolerance)
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as e:
            logger.warning("webhook_signature_invalid", error=str(e))
            raise AuthenticityError("Webhook signature verification failed") from e

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValidationError("Webhook payload is not valid JSON") from e


def get_gateway() -> PaymentGateway:
    return StripeGateway(
        api_key=settings.STRIPE_SECRET_KEY,
        webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
    )
