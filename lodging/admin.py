from django.contrib import admin, messages

from . import bookings, refunds
from .exceptions import LodgingError
from .models import (
    Blackout,
    Booking,
    DoorCode,
    PendingRefund,
    PricingRule,
    RefundPolicy,
    RefundPolicyRule,
    Room,
    RoomCategory,
    Season,
)


@admin.register(RoomCategory)
class RoomCategoryAdmin(admin.ModelAdmin):
    list_display = ("name",)


@admin.register(Room)
class RoomAdmin(admin.ModelAdmin):
    list_display = ("name", "property", "category", "capacity_max", "min_billable_occupancy", "is_active")
    list_filter = ("property", "is_active", "category")


@admin.register(Season)
class SeasonAdmin(admin.ModelAdmin):
    list_display = ("name", "property", "start_date", "end_date", "is_default", "advance_booking_days", "max_nights")
    list_filter = ("property",)
    actions = ["make_default"]

    @admin.action(description="Make the default season for its property")
    def make_default(self, request, queryset):
        for season in queryset:
            season.make_default()


@admin.register(PricingRule)
class PricingRuleAdmin(admin.ModelAdmin):
    list_display = ("__str__", "booking_mode", "price_unit", "room", "room_category", "property", "season")
    list_filter = ("booking_mode", "price_unit", "property")


class RefundPolicyRuleInline(admin.TabularInline):
    model = RefundPolicyRule
    extra = 1


@admin.register(RefundPolicy)
class RefundPolicyAdmin(admin.ModelAdmin):
    list_display = ("name", "property", "booking_mode", "is_active")
    list_filter = ("property", "booking_mode", "is_active")
    inlines = [RefundPolicyRuleInline]
    actions = ["activate"]

    @admin.action(description="Activate (deactivates the current policy)")
    def activate(self, request, queryset):
        for policy in queryset:
            policy.activate()


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = ("reference_id", "property", "booking_mode", "user", "check_in", "check_out", "status", "total_cents")
    list_filter = ("property", "booking_mode", "status")
    search_fields = ("reference_id", "user__email", "user__last_name")
    # Changes that touch inventory go through the admin_create and update endpoints,
    # which take the property lock and re-check conflicts.
    readonly_fields = (
        "reference_id",
        "property",
        "booking_mode",
        "rooms",
        "check_in",
        "check_out",
        "guests_count",
        "status",
        "hold_expires_at",
        "created_at",
        "updated_at",
    )
    actions = ["expire_stale_holds"]

    def has_add_permission(self, request):
        return False

    @admin.action(description="Release expired holds")
    def expire_stale_holds(self, request, queryset):
        count = bookings.expire_holds()
        self.message_user(request, f"Released {count} expired holds")

    def delete_model(self, request, obj):
        bookings.admin_delete_booking(obj)


@admin.register(Blackout)
class BlackoutAdmin(admin.ModelAdmin):
    list_display = ("property", "start_date", "end_date", "reason")
    list_filter = ("property",)


@admin.register(PendingRefund)
class PendingRefundAdmin(admin.ModelAdmin):
    list_display = ("booking", "policy_refund_cents", "admin_refund_cents", "status", "reviewed_by", "reviewed_at")
    list_filter = ("status",)
    actions = ["approve_at_policy_amount"]

    # Pending refunds come from cancellations and are settled only by approve or reject.
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    @admin.action(description="Approve at the policy amount")
    def approve_at_policy_amount(self, request, queryset):
        for pending in queryset:
            try:
                refunds.approve_pending_refund(pending, request.user)
            except LodgingError as exc:
                self.message_user(request, f"{pending}: {exc.message}", level=messages.ERROR)


@admin.register(DoorCode)
class DoorCodeAdmin(admin.ModelAdmin):
    list_display = ("property", "code", "active_from", "active_to")
    list_filter = ("property",)
