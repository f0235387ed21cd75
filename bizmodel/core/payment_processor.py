# bizmodel/core/payment_processor.py
"""
Payment processor boundary.

The ledger only needs "create a pending intent, later learn whether it
succeeded or failed" (plus refunds), so services talk to the small
PaymentProcessor protocol below. StripePaymentProcessor is the production
implementation; tests plug in a fake through app.dependency_overrides.

Amounts are integer cents throughout.
"""

from dataclasses import dataclass, field
from functools import lru_cache
from typing import Literal, Protocol

import stripe

from bizmodel.core.config import get_settings
from bizmodel.core.errors import ServiceUnavailable
from bizmodel.core.logging import get_logger, mask

logger = get_logger(__name__)

IntentState = Literal["pending", "succeeded", "failed"]


class ProcessorError(Exception):
    """The processor call failed (network, declined API call, bad config)."""


class InvalidWebhook(ProcessorError):
    """Webhook payload could not be parsed or its signature did not verify."""


@dataclass
class IntentResult:
    processor_intent_id: str
    client_secret: str


@dataclass
class IntentStatus:
    processor_intent_id: str
    state: IntentState
    amount_cents: int
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class ProcessorEvent:
    """
    A webhook event reduced to what the ledger cares about.

    intent is None for event types we acknowledge but ignore.
    """

    event_type: str
    intent: IntentStatus | None = None


class PaymentProcessor(Protocol):
    def create_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        description: str,
    ) -> IntentResult: ...

    def confirm_intent(self, processor_intent_id: str) -> IntentStatus: ...

    def parse_webhook(self, payload: bytes, signature: str | None) -> ProcessorEvent: ...

    def refund(self, processor_intent_id: str, amount_cents: int, reason: str) -> str: ...


# Stripe PaymentIntent.status -> our three states
_STRIPE_STATES: dict[str, IntentState] = {
    "succeeded": "succeeded",
    "canceled": "failed",
}

_STRIPE_REFUND_REASONS = {"duplicate", "fraudulent", "requested_by_customer"}


def _plain(obj) -> dict:
    """StripeObject (or plain dict) -> dict."""
    if isinstance(obj, dict):
        return obj
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else dict(obj)


class StripePaymentProcessor:
    """PaymentProcessor backed by Stripe PaymentIntents."""

    def __init__(self, api_key: str, webhook_secret: str | None = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def create_intent(
        self,
        amount_cents: int,
        currency: str,
        metadata: dict[str, str],
        description: str,
    ) -> IntentResult:
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=currency,
                metadata=metadata,
                description=description,
                automatic_payment_methods={"enabled": True},
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe intent creation failed: %s", e)
            raise ProcessorError(str(e)) from e

        logger.info("Stripe intent %s created (%s %s)", mask(intent.id, 10), amount_cents, currency)
        return IntentResult(
            processor_intent_id=intent.id,
            client_secret=intent.client_secret,
        )

    def confirm_intent(self, processor_intent_id: str) -> IntentStatus:
        try:
            intent = stripe.PaymentIntent.retrieve(processor_intent_id, api_key=self.api_key)
        except stripe.StripeError as e:
            logger.error("Stripe intent lookup failed for %s: %s", mask(processor_intent_id, 10), e)
            raise ProcessorError(str(e)) from e
        return self._to_status(intent)

    def parse_webhook(self, payload: bytes, signature: str | None) -> ProcessorEvent:
        if not self.webhook_secret:
            raise InvalidWebhook("Webhook secret not configured")
        if not signature:
            raise InvalidWebhook("Missing signature header")

        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise InvalidWebhook("Invalid payload") from e
        except stripe.SignatureVerificationError as e:
            raise InvalidWebhook("Invalid signature") from e

        event_type = event["type"]
        if event_type == "payment_intent.succeeded":
            return ProcessorEvent(event_type, self._to_status(event["data"]["object"], "succeeded"))
        if event_type in ("payment_intent.payment_failed", "payment_intent.canceled"):
            return ProcessorEvent(event_type, self._to_status(event["data"]["object"], "failed"))
        return ProcessorEvent(event_type)

    def refund(self, processor_intent_id: str, amount_cents: int, reason: str) -> str:
        stripe_reason = reason if reason in _STRIPE_REFUND_REASONS else "requested_by_customer"
        try:
            refund = stripe.Refund.create(
                payment_intent=processor_intent_id,
                amount=amount_cents,
                reason=stripe_reason,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for %s: %s", mask(processor_intent_id, 10), e)
            raise ProcessorError(str(e)) from e
        return refund.id

    @staticmethod
    def _to_status(intent, state: IntentState | None = None) -> IntentStatus:
        intent = _plain(intent)
        metadata = _plain(intent.get("metadata") or {})
        return IntentStatus(
            processor_intent_id=intent["id"],
            state=state or _STRIPE_STATES.get(intent["status"], "pending"),
            amount_cents=int(intent.get("amount") or 0),
            currency=intent.get("currency") or "usd",
            metadata={k: str(v) for k, v in dict(metadata).items()},
        )


@lru_cache
def _stripe_processor(api_key: str, webhook_secret: str | None) -> StripePaymentProcessor:
    return StripePaymentProcessor(api_key, webhook_secret)


def get_payment_processor() -> PaymentProcessor:
    """
    FastAPI dependency returning the configured processor.

    Raises:
        ServiceUnavailable(503): if no processor is configured.
    """
    settings = get_settings()
    if not settings.STRIPE_SECRET_KEY:
        raise ServiceUnavailable("Payment processing not configured")
    return _stripe_processor(settings.STRIPE_SECRET_KEY, settings.STRIPE_WEBHOOK_SECRET)
