from django.urls import path
from rest_framework.routers import DefaultRouter

from lodging.views import (
    BlackoutViewSet,
    BookingViewSet,
    CalendarView,
    DailyAvailabilityView,
    DoorCodeViewSet,
    PendingRefundViewSet,
    RoomViewSet,
)

router = DefaultRouter()
router.register(r'rooms', RoomViewSet)
router.register(r'bookings', BookingViewSet)
router.register(r'blackouts', BlackoutViewSet)
router.register(r'pending-refunds', PendingRefundViewSet)
router.register(r'door-codes', DoorCodeViewSet, basename='door-code')

urlpatterns = [
    path('calendar/', CalendarView.as_view(), name='calendar'),
    path('daily-availability/', DailyAvailabilityView.as_view(), name='daily-availability'),
] + router.urls
