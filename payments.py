import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import stripe

from errors import GatewayFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GatewayIntent:
    id: str
    client_secret: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


class StripeGateway:
    name = "stripe"

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    def create_payment_intent(self, amount: int, currency: str, metadata: Dict[str, str]) -> GatewayIntent:
        """Creates a Stripe PaymentIntent for `amount` minor units."""
        if not self.api_key:
            raise GatewayFailure("Stripe not configured")
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount,
                currency=currency,
                metadata=metadata,
                api_key=self.api_key,
            )
        except stripe.StripeError as e:
            logger.error("Stripe payment intent creation failed: %s", e)
            raise GatewayFailure(f"Stripe error: {e}") from e
        return GatewayIntent(id=intent.id, client_secret=intent.client_secret, raw=json.loads(str(intent)))
