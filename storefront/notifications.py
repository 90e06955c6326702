"""One-time confirmation emails.

The ``confirmation_sent_at`` column doubles as a lock: the dispatcher
claims it with a conditional write before sending, so concurrent webhook
deliveries for the same record send at most one message.

Deployments without the column still get their emails, but without the
guard a redelivered event can send a second copy.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Callable

import structlog

from . import settings
from .domain import Event, Order, Registration
from .emails import render_order_confirmation, render_registration_confirmation
from .errors import StorefrontError, UnknownColumnError
from .mailer import EmailSender, RenderedEmail
from .stores import ReconcilableStore

logger = structlog.get_logger(__name__)


class NotificationOutcome(str, Enum):
    SENT = "sent"
    ALREADY_SENT = "already_sent"
    FAILED = "failed"


class NotificationDispatcher:
    def __init__(
        self,
        sender: EmailSender,
        bcc: list[str] | None = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.sender = sender
        self.bcc = settings.ADMIN_NOTIFICATION_EMAILS if bcc is None else bcc
        self.clock = clock

    def send_order_confirmation(self, store: ReconcilableStore, order: Order) -> NotificationOutcome:
        return self._dispatch(
            store,
            order.id,
            order.customer_email,
            order.confirmation_sent_at,
            lambda: render_order_confirmation(order),
        )

    def send_registration_confirmation(
        self, store: ReconcilableStore, registration: Registration, event: Event | None
    ) -> NotificationOutcome:
        return self._dispatch(
            store,
            registration.id,
            registration.customer_email,
            registration.confirmation_sent_at,
            lambda: render_registration_confirmation(registration, event),
        )

    def _dispatch(
        self,
        store: ReconcilableStore,
        record_id,
        to: str,
        sent_at: datetime | None,
        render: Callable[[], RenderedEmail],
    ) -> NotificationOutcome:
        log = logger.bind(record_id=str(record_id))

        if sent_at is not None:
            log.info("confirmation_already_sent", sent_at=sent_at.isoformat())
            return NotificationOutcome.ALREADY_SENT

        guarded = True
        try:
            claimed = store.claim_confirmation(record_id, self.clock())
        except UnknownColumnError as e:
            # Unmigrated schema: send anyway, a redelivery may send again.
            log.warning("confirmation_unguarded", column=e.column)
            guarded = claimed = False
        if guarded and not claimed:
            log.info("confirmation_already_sent")
            return NotificationOutcome.ALREADY_SENT

        try:
            message_id = self.sender.send(to, render(), bcc=self.bcc or None)
        except StorefrontError as e:
            log.error("confirmation_send_failed", error=e.message, kind=e.kind.value)
            if guarded:
                # The webhook is still acknowledged, so only a later event
                # for the same record gets another attempt.
                store.release_confirmation(record_id)
            return NotificationOutcome.FAILED

        log.info("confirmation_sent", message_id=message_id, guarded=guarded)
        return NotificationOutcome.SENT
