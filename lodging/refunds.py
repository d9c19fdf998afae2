"""
Refund policy resolution and the admin review workflow for refunds.

Cancelling a paid booking never moves money by itself. It records a
PendingRefund carrying the amount the active policy allows; an admin then
approves it (optionally overriding the amount), which calls the payment
processor, or rejects it with notes.
"""
import logging
from collections import namedtuple
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional

from django.db import transaction

from .clock import resolve_clock
from .exceptions import (
    AlreadyProcessed,
    InvalidRefundAmount,
    InvalidRequest,
    NoActiveRefundPolicy,
    PaymentGatewayError,
    ProcessorError,
)
from .models import (
    Booking,
    BookingMode,
    Payment,
    PendingRefund,
    Property,
    RefundPolicy,
    parse_choice,
)
from .payments import get_payment_processor

logger = logging.getLogger(__name__)

RefundResolution = namedtuple("RefundResolution", ["policy", "rule", "percentage"])

CANCELLABLE_STATUSES = (Booking.Status.HOLD, Booking.Status.COMPLETE)


def select_refund_rule(rules, days_before_checkin):
    """
    Pick the rule with the largest threshold not exceeding ``days_before_checkin``.

    Ties on the threshold go to the lowest ``priority``. Returns None when no
    rule is satisfied.
    """
    satisfied = [r for r in rules if r.days_before_checkin <= days_before_checkin]
    if not satisfied:
        return None
    return min(satisfied, key=lambda r: (-r.days_before_checkin, r.priority))


def resolve_refund(property, booking_mode, days_before_checkin):
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    policy = (
        RefundPolicy.objects.filter(property=property, booking_mode=booking_mode, is_active=True)
        .prefetch_related("rules")
        .first()
    )
    if policy is None:
        raise NoActiveRefundPolicy(property=property, booking_mode=booking_mode)
    rule = select_refund_rule(policy.rules.all(), days_before_checkin)
    percentage = rule.refund_percentage if rule else Decimal("0")
    return RefundResolution(policy, rule, percentage)


def policy_refund_cents(amount_cents, percentage):
    cents = Decimal(amount_cents) * Decimal(percentage) / Decimal(100)
    return int(cents.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class CancellationOutcome:
    booking: Booking
    resolution: Optional[RefundResolution]
    pending_refund: Optional[PendingRefund]
    refund_cents: int
    warnings: List[str] = field(default_factory=list)


def cancel_booking(booking, reason=None, clock=None):
    clock = resolve_clock(clock)
    warnings = []

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if booking.status not in CANCELLABLE_STATUSES:
            raise InvalidRequest(
                f"Booking {booking.reference_id} cannot be canceled from {booking.status}",
                status=booking.status,
            )

        days = (booking.check_in - clock.today()).days
        try:
            resolution = resolve_refund(booking.property, booking.booking_mode, days)
        except NoActiveRefundPolicy:
            logger.warning(
                "No active refund policy for %s/%s; %s canceled with no refund",
                booking.property,
                booking.booking_mode,
                booking.reference_id,
            )
            warnings.append("No active refund policy; no refund will be issued")
            resolution = None

        booking.status = Booking.Status.CANCELED
        booking.save(update_fields=["status", "updated_at"])

        payment = Payment.objects.filter(booking=booking, status=Payment.Status.PAID).first()
        refund_cents = 0
        pending = None
        if payment is not None:
            if resolution is not None:
                refund_cents = policy_refund_cents(payment.amount_cents, resolution.percentage)
            rule = resolution.rule if resolution else None
            pending = PendingRefund.objects.create(
                booking=booking,
                payment=payment,
                policy_refund_cents=refund_cents,
                applied_rule_days_before_checkin=rule.days_before_checkin if rule else None,
                applied_rule_refund_percentage=rule.refund_percentage if rule else None,
                cancellation_reason=reason or "",
            )

    logger.info(
        "Canceled %s (%s days before check-in), policy refund %s cents",
        booking.reference_id,
        days,
        refund_cents,
    )
    return CancellationOutcome(booking, resolution, pending, refund_cents, warnings)


def _lock_pending(pending):
    pending = PendingRefund.objects.select_for_update().select_related(
        "booking", "payment"
    ).get(pk=pending.pk)
    if pending.status != PendingRefund.Status.PENDING:
        raise AlreadyProcessed(status=pending.status)
    return pending


def approve_pending_refund(
    pending, reviewed_by, amount_cents=None, notes="", processor=None, clock=None
):
    clock = resolve_clock(clock)
    processor = processor or get_payment_processor()

    with transaction.atomic():
        pending = _lock_pending(pending)
        payment = pending.payment

        if payment.status == Payment.Status.REFUNDED or (
            payment.status == Payment.Status.PAID and payment.refundable_cents() == 0
        ):
            raise ProcessorError(ProcessorError.ALREADY_REFUNDED)
        if payment.status != Payment.Status.PAID or not payment.external_payment_ref:
            raise ProcessorError(ProcessorError.NO_PAYMENT)

        amount = pending.policy_refund_cents if amount_cents is None else amount_cents
        if amount <= 0 or amount > payment.refundable_cents():
            raise InvalidRefundAmount(amount_cents=amount, refundable_cents=payment.refundable_cents())

        try:
            refund_ref = processor.refund(
                payment.external_payment_ref,
                amount,
                pending.cancellation_reason or notes,
            )
        except PaymentGatewayError as exc:
            logger.warning(
                "Refund of %s for %s failed at the gateway: %s",
                amount,
                pending.booking.reference_id,
                exc.message,
            )
            if exc.gateway_code == "charge_already_refunded":
                raise ProcessorError(ProcessorError.ALREADY_REFUNDED, exc.message) from exc
            raise ProcessorError(ProcessorError.GATEWAY_ERROR, exc.message) from exc

        pending.status = PendingRefund.Status.APPROVED
        if amount_cents is not None:
            pending.admin_refund_cents = amount_cents
        pending.admin_notes = notes or ""
        pending.reviewed_by = reviewed_by
        pending.reviewed_at = clock.now()
        pending.external_refund_ref = refund_ref or ""
        pending.save()

        payment.refunded_cents += amount
        payment.status = Payment.Status.REFUNDED
        payment.save(update_fields=["refunded_cents", "status"])

        booking = pending.booking
        booking.status = Booking.Status.REFUNDED
        booking.save(update_fields=["status", "updated_at"])

    logger.info(
        "Approved refund of %s cents for %s (ref %s)",
        amount,
        pending.booking.reference_id,
        refund_ref,
    )
    return pending


def reject_pending_refund(pending, reviewed_by, notes, clock=None):
    if not notes or not notes.strip():
        raise InvalidRequest("Notes are required when rejecting a refund")
    clock = resolve_clock(clock)

    with transaction.atomic():
        pending = _lock_pending(pending)
        pending.status = PendingRefund.Status.REJECTED
        pending.admin_notes = notes
        pending.reviewed_by = reviewed_by
        pending.reviewed_at = clock.now()
        pending.save()

    logger.info("Rejected refund for %s", pending.booking.reference_id)
    return pending


def list_pending_refunds():
    return PendingRefund.objects.filter(status=PendingRefund.Status.PENDING).select_related(
        "booking", "payment", "booking__user"
    )
