"""
Booking orchestration.

Ties together validation, pricing and the availability ledger for the
end-user and admin booking paths, plus payment confirmation and hold expiry.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List

from django.db import transaction

from .availability import check_room_set, ensure_available, lock_property, reserve, validate_range
from .clock import resolve_clock
from .conf import lodging_settings
from .exceptions import BookingValidationError, InvalidRequest
from .models import PROPERTY_MODES, Booking, BookingMode, Payment, Property, Room, parse_choice
from .notifications import send_booking_confirmation
from .pricing import Quote, resolve_price
from .seasons import check_season_limits

logger = logging.getLogger(__name__)


@dataclass
class BookingOutcome:
    booking: Booking
    quote: Quote
    warnings: List[str] = field(default_factory=list)


def _check_mode(property, booking_mode):
    if booking_mode not in PROPERTY_MODES[property]:
        raise BookingValidationError(
            f"{Property(property).label} does not take {booking_mode} bookings",
            property=property,
            booking_mode=booking_mode,
        )


def _check_rooms(property, booking_mode, room_ids, guests_count, children_count):
    if booking_mode != BookingMode.ROOM:
        if room_ids:
            raise BookingValidationError(f"Rooms cannot be selected for {booking_mode} bookings")
        if booking_mode == BookingMode.DAY and guests_count > lodging_settings.CLEAR_LAKE_CAPACITY:
            raise BookingValidationError(
                f"At most {lodging_settings.CLEAR_LAKE_CAPACITY} guests per day"
            )
        return

    if not room_ids:
        raise BookingValidationError("Select at least one room")
    rooms = list(Room.objects.filter(pk__in=room_ids))
    if len(rooms) != len(set(room_ids)):
        raise BookingValidationError("One or more rooms do not exist")
    for room in rooms:
        if room.property != property:
            raise BookingValidationError(f"{room.name} is not at {Property(property).label}")
        if not room.is_active:
            raise BookingValidationError(f"{room.name} is not available for booking")
    capacity = sum(room.capacity_max for room in rooms)
    if guests_count + children_count > capacity:
        raise BookingValidationError(
            f"Selected rooms sleep {capacity}, requested {guests_count + children_count}"
        )


def create_booking(
    user,
    property,
    booking_mode,
    check_in,
    check_out,
    guests_count,
    children_count=0,
    room_ids=(),
    clock=None,
):
    """
    End-user booking path.

    Validates the request, prices it and places a hold that expires after
    ``LODGING_HOLD_MINUTES`` unless payment is confirmed. Season limits are
    advisory and come back as warnings on the outcome.
    """
    clock = resolve_clock(clock)
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    validate_range(check_in, check_out)
    room_ids = list(room_ids)

    _check_mode(property, booking_mode)
    if check_in < clock.today():
        raise BookingValidationError("Check-in date cannot be in the past")
    if guests_count < 1:
        raise BookingValidationError("At least one guest is required")
    if children_count < 0:
        raise BookingValidationError("children_count cannot be negative")
    _check_rooms(property, booking_mode, room_ids, guests_count, children_count)

    warnings = check_season_limits(property, check_in, check_out, clock.today())
    quote = resolve_price(
        property,
        booking_mode,
        check_in,
        check_out,
        room_ids=room_ids,
        guests_count=guests_count,
        children_count=children_count,
    )

    with transaction.atomic():
        booking = reserve(
            property=property,
            booking_mode=booking_mode,
            check_in=check_in,
            check_out=check_out,
            user=user,
            room_ids=room_ids,
            guests_count=guests_count,
            children_count=children_count,
            status=Booking.Status.HOLD,
            total_cents=quote.total_cents,
            hold_expires_at=clock.now() + timedelta(minutes=lodging_settings.HOLD_MINUTES),
        )
        Payment.objects.create(booking=booking, amount_cents=quote.total_cents)

    return BookingOutcome(booking, quote, warnings)


def admin_create_booking(
    user,
    property,
    booking_mode,
    check_in,
    check_out,
    guests_count=1,
    children_count=0,
    room_ids=(),
    status=Booking.Status.COMPLETE,
    total_cents=None,
):
    """Admin path: skips guest-facing validation but never the conflict check."""
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    status = parse_choice(Booking.Status, status)
    validate_range(check_in, check_out)
    _check_mode(property, booking_mode)
    room_ids = list(room_ids)

    quote = None
    if total_cents is None:
        quote = resolve_price(
            property,
            booking_mode,
            check_in,
            check_out,
            room_ids=room_ids,
            guests_count=guests_count,
            children_count=children_count,
        )
        total_cents = quote.total_cents

    booking = reserve(
        property=property,
        booking_mode=booking_mode,
        check_in=check_in,
        check_out=check_out,
        user=user,
        room_ids=room_ids,
        guests_count=guests_count,
        children_count=children_count,
        status=status,
        total_cents=total_cents,
    )
    return BookingOutcome(booking, quote)


def admin_update_booking(
    booking,
    check_in=None,
    check_out=None,
    room_ids=None,
    guests_count=None,
    children_count=None,
    status=None,
    total_cents=None,
):
    with transaction.atomic():
        lock_property(booking.property)
        booking = Booking.objects.select_for_update().get(pk=booking.pk)

        check_in = check_in or booking.check_in
        check_out = check_out or booking.check_out
        validate_range(check_in, check_out)
        if room_ids is None:
            room_ids = list(booking.rooms.values_list("pk", flat=True))
        room_ids = list(room_ids)
        check_room_set(booking.property, booking.booking_mode, room_ids)
        guests_count = booking.guests_count if guests_count is None else guests_count
        children_count = booking.children_count if children_count is None else children_count
        status = booking.status if status is None else parse_choice(Booking.Status, status)

        if status in Booking.ACTIVE_STATUSES:
            ensure_available(
                booking.property,
                booking.booking_mode,
                check_in,
                check_out,
                room_ids,
                guests_count,
                exclude_booking_id=booking.pk,
            )

        if total_cents is None:
            total_cents = resolve_price(
                booking.property,
                booking.booking_mode,
                check_in,
                check_out,
                room_ids=room_ids,
                guests_count=guests_count,
                children_count=children_count,
            ).total_cents

        booking.check_in = check_in
        booking.check_out = check_out
        booking.guests_count = guests_count
        booking.children_count = children_count
        booking.status = status
        booking.total_cents = total_cents
        booking.save()
        booking.rooms.set(room_ids)

    logger.info("Updated %s: %s..%s, %s", booking.reference_id, check_in, check_out, status)
    return booking


def admin_delete_booking(booking):
    reference_id = booking.reference_id
    booking.delete()
    logger.info("Deleted booking %s", reference_id)


def confirm_booking(booking, external_payment_ref, clock=None):
    """Record a captured payment and promote the hold to a complete booking."""
    if not external_payment_ref:
        raise InvalidRequest("external_payment_ref is required")

    with transaction.atomic():
        booking = Booking.objects.select_for_update().get(pk=booking.pk)
        if booking.status != Booking.Status.HOLD:
            raise InvalidRequest(
                f"Only held bookings can be confirmed; {booking.reference_id} is {booking.status}"
            )
        payment, _ = Payment.objects.get_or_create(
            booking=booking, defaults={"amount_cents": booking.total_cents}
        )
        payment.amount_cents = booking.total_cents
        payment.status = Payment.Status.PAID
        payment.external_payment_ref = external_payment_ref
        payment.save()

        booking.status = Booking.Status.COMPLETE
        booking.hold_expires_at = None
        booking.save(update_fields=["status", "hold_expires_at", "updated_at"])

    logger.info("Confirmed %s with payment %s", booking.reference_id, external_payment_ref)
    send_booking_confirmation(booking)
    return booking


def expire_holds(clock=None):
    """Cancel holds whose ``hold_expires_at`` has passed. Returns how many were released."""
    now = resolve_clock(clock).now()
    expired = Booking.objects.filter(status=Booking.Status.HOLD, hold_expires_at__lt=now)
    with transaction.atomic():
        Payment.objects.filter(
            booking__in=expired, status=Payment.Status.PENDING
        ).update(status=Payment.Status.FAILED)
        count = expired.update(status=Booking.Status.CANCELED, updated_at=now)
    if count:
        logger.info("Released %s expired holds", count)
    return count
