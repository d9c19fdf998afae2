import uuid

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator, RegexValidator
from django.db import models, transaction
from django.db.models import F, Q

from .exceptions import InvalidChoice


class Property(models.TextChoices):
    TAHOE = "tahoe", "Lake Tahoe"
    CLEAR_LAKE = "clear_lake", "Clear Lake"


class BookingMode(models.TextChoices):
    ROOM = "room"
    DAY = "day"
    BUYOUT = "buyout"


class PriceUnit(models.TextChoices):
    PER_PERSON_PER_NIGHT = "per_person_per_night"
    PER_GUEST_PER_DAY = "per_guest_per_day"
    BUYOUT_FIXED = "buyout_fixed"


# Tahoe is booked room by room, Clear Lake per guest per day; both can be bought out.
PROPERTY_MODES = {
    Property.TAHOE: (BookingMode.ROOM, BookingMode.BUYOUT),
    Property.CLEAR_LAKE: (BookingMode.DAY, BookingMode.BUYOUT),
}


def parse_choice(choices, value):
    """Convert a raw value into a member of ``choices`` or raise InvalidChoice."""
    if isinstance(value, choices):
        return value
    try:
        return choices(value)
    except ValueError:
        raise InvalidChoice(choices.__name__, value) from None


def generate_reference_id():
    return f"BKG-{uuid.uuid4().hex[:10].upper()}"


class RoomCategory(models.Model):
    name = models.CharField(max_length=255, unique=True)
    notes = models.TextField(blank=True)

    class Meta:
        verbose_name_plural = "room categories"

    def __str__(self):
        return self.name


class Season(models.Model):
    property = models.CharField(max_length=20, choices=Property.choices)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    # Only month and day are used; seasons recur every year.
    start_date = models.DateField()
    end_date = models.DateField()
    is_default = models.BooleanField(default=False)
    advance_booking_days = models.PositiveIntegerField(null=True, blank=True)
    max_nights = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["property", "start_date"]
        constraints = [
            models.UniqueConstraint(
                fields=["property"],
                condition=Q(is_default=True),
                name="season_one_default_per_property",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.property})"

    def spans_new_year(self):
        return (self.start_date.month, self.start_date.day) > (self.end_date.month, self.end_date.day)

    def contains(self, day):
        key = (day.month, day.day)
        start = (self.start_date.month, self.start_date.day)
        end = (self.end_date.month, self.end_date.day)
        if self.spans_new_year():
            return key >= start or key <= end
        return start <= key <= end

    def make_default(self):
        """Flag this season as the property default, demoting the previous one."""
        with transaction.atomic():
            Season.objects.filter(property=self.property, is_default=True).exclude(
                pk=self.pk
            ).update(is_default=False)
            self.is_default = True
            self.save()


class Room(models.Model):
    property = models.CharField(max_length=20, choices=Property.choices)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    category = models.ForeignKey(
        RoomCategory, null=True, blank=True, on_delete=models.SET_NULL, related_name="rooms"
    )
    default_season = models.ForeignKey(
        Season, null=True, blank=True, on_delete=models.SET_NULL, related_name="rooms"
    )
    capacity_max = models.PositiveIntegerField(
        validators=[MinValueValidator(1), MaxValueValidator(12)]
    )
    min_billable_occupancy = models.PositiveIntegerField(
        default=1, validators=[MinValueValidator(1)]
    )
    single_beds = models.PositiveIntegerField(default=0)
    queen_beds = models.PositiveIntegerField(default=0)
    king_beds = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)
    image_url = models.URLField(blank=True)

    class Meta:
        ordering = ["property", "name"]
        constraints = [
            models.CheckConstraint(
                condition=Q(capacity_max__gte=1, capacity_max__lte=12),
                name="room_capacity_max_range",
            ),
            models.CheckConstraint(
                condition=Q(min_billable_occupancy__gte=1),
                name="room_min_billable_range",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.property})"

    def billable_people(self, guests_count):
        return max(guests_count, self.min_billable_occupancy or 1)


class PricingRule(models.Model):
    amount_cents = models.PositiveIntegerField()
    children_amount_cents = models.PositiveIntegerField(null=True, blank=True)
    booking_mode = models.CharField(max_length=10, choices=BookingMode.choices)
    price_unit = models.CharField(max_length=30, choices=PriceUnit.choices)
    # Specificity: room > room_category > property. Season narrows any level.
    room = models.ForeignKey(
        Room, null=True, blank=True, on_delete=models.CASCADE, related_name="pricing_rules"
    )
    room_category = models.ForeignKey(
        RoomCategory, null=True, blank=True, on_delete=models.CASCADE, related_name="pricing_rules"
    )
    property = models.CharField(max_length=20, choices=Property.choices, null=True, blank=True)
    season = models.ForeignKey(
        Season, null=True, blank=True, on_delete=models.CASCADE, related_name="pricing_rules"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.CheckConstraint(
                condition=Q(room__isnull=False)
                | Q(room_category__isnull=False)
                | Q(property__isnull=False),
                name="pricing_rule_has_scope",
            ),
        ]

    def __str__(self):
        scope = self.room or self.room_category or self.property
        return f"{self.booking_mode}/{self.price_unit} {scope}: {self.amount_cents}"


class RefundPolicy(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    property = models.CharField(max_length=20, choices=Property.choices)
    booking_mode = models.CharField(max_length=10, choices=BookingMode.choices)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "refund policies"
        ordering = ["property", "booking_mode"]
        constraints = [
            models.UniqueConstraint(
                fields=["property", "booking_mode"],
                condition=Q(is_active=True),
                name="refund_policy_one_active_per_mode",
            ),
        ]

    def __str__(self):
        return self.name

    def activate(self):
        """Make this the active policy for its property and mode, deactivating the previous one."""
        with transaction.atomic():
            RefundPolicy.objects.filter(
                property=self.property, booking_mode=self.booking_mode, is_active=True
            ).exclude(pk=self.pk).update(is_active=False)
            self.is_active = True
            self.save()


class RefundPolicyRule(models.Model):
    policy = models.ForeignKey(RefundPolicy, on_delete=models.CASCADE, related_name="rules")
    days_before_checkin = models.PositiveIntegerField()
    refund_percentage = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        validators=[MinValueValidator(0), MaxValueValidator(100)],
    )
    # Lower value wins when two rules share a threshold.
    priority = models.IntegerField(default=0)
    description = models.TextField(blank=True)

    class Meta:
        ordering = ["-days_before_checkin", "priority"]
        constraints = [
            models.CheckConstraint(
                condition=Q(refund_percentage__gte=0, refund_percentage__lte=100),
                name="refund_rule_percentage_range",
            ),
        ]

    def __str__(self):
        return f"{self.days_before_checkin}+ days: {self.refund_percentage}%"


class Booking(models.Model):
    class Status(models.TextChoices):
        DRAFT = "draft"
        HOLD = "hold"
        COMPLETE = "complete"
        REFUNDED = "refunded"
        CANCELED = "canceled"

    # Statuses that occupy inventory.
    ACTIVE_STATUSES = (Status.HOLD, Status.COMPLETE)

    reference_id = models.CharField(
        max_length=20, unique=True, default=generate_reference_id, editable=False
    )
    property = models.CharField(max_length=20, choices=Property.choices)
    booking_mode = models.CharField(max_length=10, choices=BookingMode.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="lodging_bookings"
    )
    rooms = models.ManyToManyField(Room, blank=True, related_name="bookings")
    check_in = models.DateField()
    check_out = models.DateField()  # exclusive
    guests_count = models.PositiveIntegerField(default=1)
    children_count = models.PositiveIntegerField(default=0)
    total_cents = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.HOLD)
    hold_expires_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["property", "check_in", "check_out"]),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(check_out__gt=F("check_in")),
                name="booking_check_out_after_check_in",
            ),
        ]

    def __str__(self):
        return f"{self.reference_id} {self.property} {self.check_in}..{self.check_out}"

    def nights(self):
        return (self.check_out - self.check_in).days


class Blackout(models.Model):
    property = models.CharField(max_length=20, choices=Property.choices)
    reason = models.CharField(max_length=500)
    # Both ends inclusive; a blackout blocks whole days.
    start_date = models.DateField()
    end_date = models.DateField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["start_date"]
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gte=F("start_date")),
                name="blackout_end_not_before_start",
            ),
        ]

    def __str__(self):
        return f"{self.property} {self.start_date}..{self.end_date}: {self.reason}"


class Payment(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        PAID = "paid"
        FAILED = "failed"
        REFUNDED = "refunded"

    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="payment")
    amount_cents = models.PositiveIntegerField()
    refunded_cents = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    external_payment_ref = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def refundable_cents(self):
        return max(0, self.amount_cents - self.refunded_cents)


class PendingRefund(models.Model):
    class Status(models.TextChoices):
        PENDING = "pending"
        APPROVED = "approved"
        REJECTED = "rejected"

    # One per cancellation; a booking is canceled at most once.
    booking = models.OneToOneField(Booking, on_delete=models.CASCADE, related_name="pending_refund")
    payment = models.ForeignKey(Payment, on_delete=models.CASCADE, related_name="pending_refunds")
    policy_refund_cents = models.PositiveIntegerField()
    applied_rule_days_before_checkin = models.PositiveIntegerField(null=True, blank=True)
    applied_rule_refund_percentage = models.DecimalField(
        max_digits=5, decimal_places=2, null=True, blank=True
    )
    admin_refund_cents = models.PositiveIntegerField(null=True, blank=True)
    admin_notes = models.TextField(blank=True)
    cancellation_reason = models.TextField(blank=True)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.PENDING)
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="reviewed_refunds",
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)
    external_refund_ref = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]

    def __str__(self):
        return f"Refund {self.booking.reference_id} ({self.status})"


class DoorCode(models.Model):
    property = models.CharField(max_length=20, choices=Property.choices)
    code = models.CharField(
        max_length=5,
        validators=[RegexValidator(r"^[A-Za-z0-9]{4,5}$", "Door codes are 4 or 5 letters or digits")],
    )
    active_from = models.DateTimeField()
    active_to = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-active_from", "-id"]
        constraints = [
            models.UniqueConstraint(
                fields=["property"],
                condition=Q(active_to__isnull=True),
                name="door_code_one_active_per_property",
            ),
        ]

    def __str__(self):
        return f"{self.property}: {self.code}"


class PropertyLock(models.Model):
    """One row per property, locked around every check-and-insert on that property."""

    property = models.CharField(max_length=20, choices=Property.choices, unique=True)
