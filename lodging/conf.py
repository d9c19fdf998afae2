from django.conf import settings

DEFAULTS = {
    "LODGING_CLEAR_LAKE_CAPACITY": 12,
    "LODGING_CHILD_FALLBACK_CENTS": 2500,
    "LODGING_HOLD_MINUTES": 30,
    "LODGING_DEFAULT_MAX_NIGHTS": {"tahoe": 4},
    "LODGING_DOOR_CODE_HISTORY": 3,
    "LODGING_PAYMENT_PROCESSOR": "lodging.payments.StripePaymentProcessor",
}


class LodgingSettings:
    """Reads ``LODGING_*`` values from Django settings, falling back to DEFAULTS."""

    def __getattr__(self, name):
        key = f"LODGING_{name}"
        if key not in DEFAULTS:
            raise AttributeError(name)
        return getattr(settings, key, DEFAULTS[key])


lodging_settings = LodgingSettings()
