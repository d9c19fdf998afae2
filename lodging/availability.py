"""
Availability ledger.

Answers whether a resource (room, whole property, or per-guest capacity) is
free for a half-open date range ``[check_in, check_out)`` and performs the
locked check-and-insert that creates reservations.

Conflict rules:

- a blackout blocks every booking mode on its property, check-out day included;
- a buyout conflicts with every active booking on the property;
- a room booking conflicts with active bookings sharing a room and with any
  active buyout;
- a day booking conflicts with any active buyout and must fit the remaining
  per-guest capacity on every night.
"""
import logging
from collections import namedtuple
from datetime import timedelta

from django.db import transaction

from .conf import lodging_settings
from .exceptions import Conflict, InvalidRange, InvalidRequest
from .models import Blackout, Booking, BookingMode, Property, PropertyLock, Room, parse_choice

logger = logging.getLogger(__name__)

IntersectingEntries = namedtuple(
    "IntersectingEntries", ["room_bookings", "buyout_bookings", "blackouts"]
)


def ranges_overlap(start_a, end_a, start_b, end_b):
    """Half-open overlap: ``[a1, b1)`` and ``[a2, b2)`` overlap iff a1 < b2 and a2 < b1."""
    return start_a < end_b and start_b < end_a


def validate_range(check_in, check_out):
    if check_in is None or check_out is None:
        raise InvalidRange("check_in and check_out are required")
    if check_in >= check_out:
        raise InvalidRange()


def each_night(check_in, check_out):
    day = check_in
    while day < check_out:
        yield day
        day += timedelta(days=1)


def active_bookings(property):
    return Booking.objects.filter(property=property, status__in=Booking.ACTIVE_STATUSES)


def overlapping_bookings(property, check_in, check_out, exclude_booking_id=None):
    qs = active_bookings(property).filter(check_in__lt=check_out, check_out__gt=check_in)
    if exclude_booking_id is not None:
        qs = qs.exclude(pk=exclude_booking_id)
    return qs


def overlapping_blackouts(property, start, end):
    # Blackout end dates are inclusive: [start_date, end_date + 1) against [start, end).
    return Blackout.objects.filter(property=property, start_date__lt=end, end_date__gte=start)


def blocking_blackouts(property, check_in, check_out):
    # Unlike overlapping_blackouts, the check-out day counts.
    return Blackout.objects.filter(property=property, start_date__lte=check_out, end_date__gte=check_in)


def check_room_set(property, booking_mode, room_ids):
    """Room bookings name at least one room at the property; other modes name none."""
    if booking_mode != BookingMode.ROOM:
        if room_ids:
            raise InvalidRequest(f"{booking_mode} bookings cannot hold rooms", room_ids=list(room_ids))
        return
    if not room_ids:
        raise InvalidRequest("Room bookings need at least one room")
    found = Room.objects.filter(pk__in=room_ids, property=property).count()
    if found != len(set(room_ids)):
        raise InvalidRequest(
            f"Every room must exist at {Property(property).label}", room_ids=list(room_ids)
        )


def committed_guests_by_date(property, start, end, exclude_booking_id=None):
    """Guests already committed to day bookings for each night in ``[start, end)``."""
    committed = {day: 0 for day in each_night(start, end)}
    day_bookings = overlapping_bookings(property, start, end, exclude_booking_id).filter(
        booking_mode=BookingMode.DAY
    )
    for booking in day_bookings:
        for day in each_night(max(booking.check_in, start), min(booking.check_out, end)):
            committed[day] += booking.guests_count
    return committed


def find_conflict(
    property,
    booking_mode,
    check_in,
    check_out,
    room_ids=(),
    guests_count=1,
    exclude_booking_id=None,
):
    """Return a short reason string when the request conflicts, else None."""
    if blocking_blackouts(property, check_in, check_out).exists():
        return "blackout"

    overlapping = overlapping_bookings(property, check_in, check_out, exclude_booking_id)

    if booking_mode == BookingMode.BUYOUT:
        if overlapping.exists():
            return "booked"
        return None

    if overlapping.filter(booking_mode=BookingMode.BUYOUT).exists():
        return "buyout"

    if booking_mode == BookingMode.ROOM:
        if overlapping.filter(rooms__in=list(room_ids)).exists():
            return "room"
        return None

    capacity = lodging_settings.CLEAR_LAKE_CAPACITY
    committed = committed_guests_by_date(property, check_in, check_out, exclude_booking_id)
    for day, guests in committed.items():
        if guests + guests_count > capacity:
            return "capacity"
    return None


def is_available(
    property,
    booking_mode,
    check_in,
    check_out,
    room_ids=(),
    guests_count=1,
    exclude_booking_id=None,
):
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    validate_range(check_in, check_out)
    reason = find_conflict(
        property, booking_mode, check_in, check_out, room_ids, guests_count, exclude_booking_id
    )
    return reason is None


def list_intersecting(property, window_start, window_end):
    """Active bookings and blackouts touching ``[window_start, window_end)``."""
    property = parse_choice(Property, property)
    bookings = (
        active_bookings(property)
        .filter(check_in__lt=window_end, check_out__gt=window_start)
        .select_related("user")
        .order_by("check_in", "pk")
    )
    room_bookings = list(
        bookings.exclude(booking_mode=BookingMode.BUYOUT).prefetch_related("rooms")
    )
    buyout_bookings = list(bookings.filter(booking_mode=BookingMode.BUYOUT))
    blackouts = list(
        overlapping_blackouts(property, window_start, window_end).order_by("start_date")
    )
    return IntersectingEntries(room_bookings, buyout_bookings, blackouts)


def lock_property(property):
    """Take the property's row lock. Must run inside ``transaction.atomic()``."""
    PropertyLock.objects.get_or_create(property=property)
    return PropertyLock.objects.select_for_update().get(property=property)


def ensure_available(
    property,
    booking_mode,
    check_in,
    check_out,
    room_ids=(),
    guests_count=1,
    exclude_booking_id=None,
):
    reason = find_conflict(
        property, booking_mode, check_in, check_out, room_ids, guests_count, exclude_booking_id
    )
    if reason is not None:
        logger.info(
            "Rejected %s reservation on %s for %s..%s: %s",
            booking_mode,
            property,
            check_in,
            check_out,
            reason,
        )
        raise Conflict(reason=reason)


def reserve(
    *,
    property,
    booking_mode,
    check_in,
    check_out,
    user,
    room_ids=(),
    guests_count=1,
    children_count=0,
    status=Booking.Status.HOLD,
    total_cents=0,
    hold_expires_at=None,
):
    """Atomically re-check availability and insert the booking."""
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    validate_range(check_in, check_out)
    room_ids = list(room_ids)
    check_room_set(property, booking_mode, room_ids)

    with transaction.atomic():
        lock_property(property)
        ensure_available(
            property, booking_mode, check_in, check_out, room_ids, guests_count
        )
        booking = Booking.objects.create(
            property=property,
            booking_mode=booking_mode,
            user=user,
            check_in=check_in,
            check_out=check_out,
            guests_count=guests_count,
            children_count=children_count,
            total_cents=total_cents,
            status=status,
            hold_expires_at=hold_expires_at,
        )
        if room_ids:
            booking.rooms.set(room_ids)

    logger.info(
        "Reserved %s (%s, %s) %s..%s",
        booking.reference_id,
        property,
        booking_mode,
        check_in,
        check_out,
    )
    return booking
