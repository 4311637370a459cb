import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol, TypeVar

import stripe

from app.core.config import settings
from app.services.errors import PaymentError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IntentState:
    status: str
    amount: int  # cents


class PaymentGateway(Protocol):
    def retrieve(self, intent_id: str) -> IntentState: ...

    def capture(self, intent_id: str, amount_cents: int | None = None) -> int: ...

    def cancel(self, intent_id: str) -> None: ...

    def refund(self, intent_id: str, amount_cents: int | None, metadata: dict[str, str]) -> int: ...


class StripePaymentGateway:
    """Payment intent operations against Stripe. Amounts are in cents."""

    def __init__(self, api_key: str | None = None, retries: int = 1) -> None:
        self._api_key = api_key or settings.stripe_secret_key
        self._retries = retries

    def _call(self, op: str, intent_id: str, fn: Callable[[], T]) -> T:
        attempt = 0
        while True:
            try:
                return fn()
            except stripe.APIConnectionError as e:
                if attempt >= self._retries:
                    logger.exception("Stripe %s failed for %s after %d attempt(s)", op, intent_id, attempt + 1)
                    raise PaymentError(f"Stripe {op} failed: {e.user_message or e}") from e
                attempt += 1
                logger.warning("Stripe %s for %s hit a connection error, retrying", op, intent_id)
            except stripe.StripeError as e:
                logger.exception("Stripe %s failed for %s: %s", op, intent_id, e)
                raise PaymentError(f"Stripe {op} failed: {e.user_message or e}") from e

    def retrieve(self, intent_id: str) -> IntentState:
        intent = self._call(
            "retrieve", intent_id, lambda: stripe.PaymentIntent.retrieve(intent_id, api_key=self._api_key)
        )
        return IntentState(status=intent.status, amount=intent.amount)

    def capture(self, intent_id: str, amount_cents: int | None = None) -> int:
        params = {"amount_to_capture": amount_cents} if amount_cents is not None else {}
        intent = self._call(
            "capture",
            intent_id,
            lambda: stripe.PaymentIntent.capture(intent_id, api_key=self._api_key, **params),
        )
        logger.info("Captured %s cents on %s", intent.amount_received, intent_id)
        return intent.amount_received

    def cancel(self, intent_id: str) -> None:
        self._call("cancel", intent_id, lambda: stripe.PaymentIntent.cancel(intent_id, api_key=self._api_key))
        logger.info("Cancelled payment intent %s", intent_id)

    def refund(self, intent_id: str, amount_cents: int | None, metadata: dict[str, str]) -> int:
        params: dict = {"payment_intent": intent_id, "metadata": metadata}
        if amount_cents is not None:
            params["amount"] = amount_cents
        refund = self._call("refund", intent_id, lambda: stripe.Refund.create(api_key=self._api_key, **params))
        logger.info("Refunded %s cents on %s", refund.amount, intent_id)
        return refund.amount


def get_payment_gateway() -> PaymentGateway | None:
    if not settings.payments_enabled:
        return None
    return StripePaymentGateway()
