"""
Maps bookings and blackouts onto the admin calendar grid.

Each visible day takes two grid columns, so a booking can start on the
second half of its check-in day and end on the first half of its check-out
day. Grid lines are 1-indexed, as in CSS grid.
"""
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List

from .availability import each_night, list_intersecting, overlapping_blackouts, overlapping_bookings
from .conf import lodging_settings
from .exceptions import InvalidRequest
from .models import BookingMode, Property, Room, parse_choice


@dataclass(frozen=True)
class GridSpan:
    col_start: int
    col_end: int
    extends_before: bool
    extends_after: bool


def _clamp(index, total_days):
    return max(0, min(index, total_days - 1))


def booking_grid_span(window_start, total_days, check_in, check_out):
    total_cols = total_days * 2
    checkin_idx = (check_in - window_start).days
    checkout_idx = (check_out - window_start).days

    col_start = _clamp(checkin_idx, total_days) * 2 + 2
    col_end = min(_clamp(checkout_idx, total_days) * 2 + 2, total_cols + 1)
    return GridSpan(col_start, col_end, checkin_idx < 0, checkout_idx >= total_days)


def blackout_grid_span(window_start, total_days, start_date, end_date):
    # Blackouts cover whole days, both ends inclusive.
    total_cols = total_days * 2
    start_idx = (start_date - window_start).days
    end_idx = (end_date - window_start).days

    col_start = _clamp(start_idx, total_days) * 2 + 1
    col_end = min(_clamp(end_idx, total_days) * 2 + 3, total_cols + 1)
    return GridSpan(col_start, col_end, start_idx < 0, end_idx >= total_days)


@dataclass
class CalendarEntry:
    kind: str
    object_id: int
    label: str
    span: GridSpan


@dataclass
class CalendarGrid:
    property: str
    window_start: object
    total_days: int
    dates: list
    rooms: Dict[int, List[CalendarEntry]] = field(default_factory=dict)
    buyouts: List[CalendarEntry] = field(default_factory=list)
    day_bookings: List[CalendarEntry] = field(default_factory=list)
    blackouts: List[CalendarEntry] = field(default_factory=list)


def _booking_label(booking):
    user = booking.user
    name = f"{user.first_name} {user.last_name}".strip() or user.email or user.get_username()
    return f"{name} ({booking.reference_id})"


def build_calendar(property, window_start, total_days):
    property = parse_choice(Property, property)
    if total_days < 1:
        raise InvalidRequest("total_days must be at least 1")
    window_end = window_start + timedelta(days=total_days)
    entries = list_intersecting(property, window_start, window_end)

    grid = CalendarGrid(
        property=property,
        window_start=window_start,
        total_days=total_days,
        dates=list(each_night(window_start, window_end)),
    )
    for room in Room.objects.filter(property=property).order_by("name"):
        grid.rooms[room.pk] = []

    for booking in entries.room_bookings:
        entry = CalendarEntry(
            "booking",
            booking.pk,
            _booking_label(booking),
            booking_grid_span(window_start, total_days, booking.check_in, booking.check_out),
        )
        if booking.booking_mode == BookingMode.DAY:
            grid.day_bookings.append(entry)
            continue
        for room in booking.rooms.all():
            grid.rooms.setdefault(room.pk, []).append(entry)

    for booking in entries.buyout_bookings:
        grid.buyouts.append(
            CalendarEntry(
                "buyout",
                booking.pk,
                _booking_label(booking),
                booking_grid_span(window_start, total_days, booking.check_in, booking.check_out),
            )
        )

    for blackout in entries.blackouts:
        grid.blackouts.append(
            CalendarEntry(
                "blackout",
                blackout.pk,
                blackout.reason,
                blackout_grid_span(window_start, total_days, blackout.start_date, blackout.end_date),
            )
        )
    return grid


@dataclass(frozen=True)
class DailyAvailability:
    date: object
    day_bookings_count: int
    spots_available: int
    has_buyout: bool
    is_blacked_out: bool
    can_book_day: bool
    can_book_buyout: bool


def daily_guest_availability(property, start, end):
    """Per-night guest capacity for ``[start, end)``, keyed by date."""
    property = parse_choice(Property, property)
    if start >= end:
        return {}
    capacity = lodging_settings.CLEAR_LAKE_CAPACITY

    committed = {day: 0 for day in each_night(start, end)}
    buyout_days = set()
    for booking in overlapping_bookings(property, start, end):
        nights = each_night(max(booking.check_in, start), min(booking.check_out, end))
        if booking.booking_mode == BookingMode.BUYOUT:
            buyout_days.update(nights)
        elif booking.booking_mode == BookingMode.DAY:
            for day in nights:
                committed[day] += booking.guests_count

    blacked_out = set()
    for blackout in overlapping_blackouts(property, start, end):
        blacked_out.update(each_night(blackout.start_date, blackout.end_date + timedelta(days=1)))

    result = {}
    for day, guests in committed.items():
        spots = max(0, capacity - guests)
        is_blacked_out = day in blacked_out
        has_buyout = day in buyout_days
        result[day] = DailyAvailability(
            date=day,
            day_bookings_count=guests,
            spots_available=spots,
            has_buyout=has_buyout,
            is_blacked_out=is_blacked_out,
            can_book_day=not is_blacked_out and not has_buyout and spots > 0,
            can_book_buyout=not is_blacked_out and not has_buyout and guests == 0,
        )
    return result
