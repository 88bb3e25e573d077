"""Stripe payment-intent provider."""

import logging
from typing import Optional

import stripe

from errors import InternalError

logger = logging.getLogger(__name__)


class StripePaymentProvider:
    """Creates Stripe payment intents and hands back their client secret."""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def create_payment_intent(self, amount: int, currency: str) -> str:
        """Create a card payment intent for `amount` minor currency units."""
        if not self.api_key:
            raise InternalError("Payment provider not configured")
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                payment_method_types=["card"],
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent failed: %s", e)
            raise InternalError("Failed to create payment intent") from e
        return intent.client_secret
