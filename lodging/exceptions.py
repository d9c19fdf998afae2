"""Error taxonomy for the reservation core.

Every error carries a stable ``code`` so the API layer can map it to a
response without inspecting messages.
"""


class LodgingError(Exception):
    code = "lodging_error"
    default_message = "Reservation request failed"

    def __init__(self, message=None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidRequest(LodgingError):
    code = "invalid_request"
    default_message = "Invalid request"


class InvalidChoice(InvalidRequest):
    code = "invalid_choice"

    def __init__(self, field, value):
        super().__init__(f"{value!r} is not a valid {field}", field=field, value=value)


class InvalidRange(InvalidRequest):
    code = "invalid_range"
    default_message = "check_out must be after check_in"


class BookingValidationError(InvalidRequest):
    code = "booking_invalid"


class InvalidDoorCode(InvalidRequest):
    code = "invalid_door_code"
    default_message = "Door codes are 4 or 5 letters or digits"


class InvalidRefundAmount(InvalidRequest):
    code = "invalid_refund_amount"
    default_message = "Refund amount must be positive and no more than the refundable balance"


class Conflict(LodgingError):
    code = "conflict"
    default_message = "The selected dates are not available"


class NoPricingRuleFound(LodgingError):
    code = "no_pricing_rule"
    default_message = "No pricing rule matches this stay"


class NoActiveRefundPolicy(LodgingError):
    code = "no_active_refund_policy"
    default_message = "No active refund policy for this property and booking mode"


class AlreadyProcessed(LodgingError):
    code = "already_processed"
    default_message = "This refund has already been processed"


class PaymentGatewayError(LodgingError):
    """Raised by payment processor implementations."""

    code = "gateway_error"
    default_message = "Payment gateway request failed"

    def __init__(self, message=None, gateway_code=None):
        super().__init__(message, gateway_code=gateway_code)
        self.gateway_code = gateway_code


class ProcessorError(LodgingError):
    code = "processor_error"

    ALREADY_REFUNDED = "already_refunded"
    GATEWAY_ERROR = "gateway_error"
    NO_PAYMENT = "no_payment"

    def __init__(self, kind, message=None):
        super().__init__(message or kind.replace("_", " "), kind=kind)
        self.kind = kind
