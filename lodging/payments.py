"""Payment processor seam used by the refund workflow."""
import logging

import stripe
from django.conf import settings
from django.utils.module_loading import import_string

from .conf import lodging_settings
from .exceptions import PaymentGatewayError

logger = logging.getLogger(__name__)


class PaymentProcessor:
    def refund(self, external_payment_ref, amount_cents, reason=""):
        """Refund ``amount_cents`` of a captured payment and return the gateway's refund id.

        Implementations raise PaymentGatewayError on any gateway failure.
        """
        raise NotImplementedError


class StripePaymentProcessor(PaymentProcessor):
    def __init__(self, api_key=None):
        self.api_key = api_key or getattr(settings, "STRIPE_API_KEY", "")

    def client(self):
        if not self.api_key:
            raise PaymentGatewayError("STRIPE_API_KEY is not configured")
        return stripe.StripeClient(self.api_key)

    def refund(self, external_payment_ref, amount_cents, reason=""):
        params = {
            "payment_intent": external_payment_ref,
            "amount": amount_cents,
            "reason": "requested_by_customer",
        }
        if reason:
            params["metadata"] = {"note": reason[:500]}
        try:
            refund = self.client().refunds.create(params=params)
        except stripe.StripeError as exc:
            logger.warning("Stripe refund for %s failed: %s", external_payment_ref, exc)
            raise PaymentGatewayError(str(exc), gateway_code=getattr(exc, "code", None)) from exc
        logger.info("Stripe refund %s issued for %s (%s cents)", refund.id, external_payment_ref, amount_cents)
        return refund.id


def get_payment_processor():
    return import_string(lodging_settings.PAYMENT_PROCESSOR)()
