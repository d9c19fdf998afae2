from datetime import datetime
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from lodging.clock import FixedClock
from lodging.exceptions import PaymentGatewayError
from lodging.models import (
    Booking,
    BookingMode,
    Payment,
    PriceUnit,
    PricingRule,
    Property,
    RefundPolicy,
    RefundPolicyRule,
    Room,
)


def make_user(username='guest', staff=False, **extra):
    extra.setdefault('email', f'{username}@example.com')
    return get_user_model().objects.create_user(
        username=username, password='secret', is_staff=staff, **extra
    )


def make_room(name='Room 1', property=Property.TAHOE, **extra):
    extra.setdefault('capacity_max', 4)
    return Room.objects.create(property=property, name=name, **extra)


def make_booking(user, check_in, check_out, property=Property.TAHOE,
                 booking_mode=BookingMode.ROOM, rooms=(), status=Booking.Status.COMPLETE,
                 guests_count=2, total_cents=0):
    booking = Booking.objects.create(
        property=property,
        booking_mode=booking_mode,
        user=user,
        check_in=check_in,
        check_out=check_out,
        guests_count=guests_count,
        status=status,
        total_cents=total_cents,
    )
    if rooms:
        booking.rooms.set(rooms)
    return booking


def make_paid_payment(booking, amount_cents=40000, ref='pi_test_123'):
    return Payment.objects.create(
        booking=booking,
        amount_cents=amount_cents,
        status=Payment.Status.PAID,
        external_payment_ref=ref,
    )


def make_policy(property=Property.TAHOE, booking_mode=BookingMode.ROOM,
                tiers=((21, '100'), (14, '50'), (0, '0')), is_active=True):
    policy = RefundPolicy.objects.create(
        name=f'{property} {booking_mode}', property=property, booking_mode=booking_mode,
        is_active=is_active,
    )
    for days, percentage in tiers:
        RefundPolicyRule.objects.create(
            policy=policy, days_before_checkin=days, refund_percentage=Decimal(percentage)
        )
    return policy


def property_rule(amount_cents=4500, property=Property.TAHOE, booking_mode=BookingMode.ROOM,
                  price_unit=PriceUnit.PER_PERSON_PER_NIGHT, **extra):
    return PricingRule.objects.create(
        amount_cents=amount_cents,
        property=property,
        booking_mode=booking_mode,
        price_unit=price_unit,
        **extra,
    )


def clock_at(day, hour=12):
    return FixedClock(timezone.make_aware(datetime(day.year, day.month, day.day, hour)))


class FakeProcessor:
    """Records refund calls; fails with ``error`` when one is set."""

    def __init__(self, error=None, refund_id='re_test_1'):
        self.calls = []
        self.error = error
        self.refund_id = refund_id

    def refund(self, external_payment_ref, amount_cents, reason=''):
        self.calls.append((external_payment_ref, amount_cents, reason))
        if self.error is not None:
            raise self.error
        return self.refund_id


def gateway_error(code=None):
    return PaymentGatewayError('card_declined' if code is None else code, gateway_code=code)
