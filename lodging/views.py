from dataclasses import asdict
from datetime import datetime, timedelta

from django.contrib.auth import get_user_model
from django.db.models import Exists, OuterRef
from django.http import JsonResponse
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser
from rest_framework.response import Response
from rest_framework.views import APIView, exception_handler

from . import bookings, door_codes, refunds
from .availability import blocking_blackouts, overlapping_bookings
from .calendar import build_calendar, daily_guest_availability
from .exceptions import (
    AlreadyProcessed,
    Conflict,
    InvalidRequest,
    LodgingError,
    NoActiveRefundPolicy,
    NoPricingRuleFound,
    PaymentGatewayError,
    ProcessorError,
)
from .models import Blackout, Booking, BookingMode, PendingRefund, Property, Room
from .pricing import resolve_price
from .serializers import (
    AdminBookingRequestSerializer,
    ApproveRefundSerializer,
    BlackoutSerializer,
    BookingRequestSerializer,
    BookingSerializer,
    BookingUpdateSerializer,
    CancelSerializer,
    ConfirmPaymentSerializer,
    DoorCodeInput,
    DoorCodeSerializer,
    PendingRefundSerializer,
    RejectRefundSerializer,
    RoomSerializer,
)

# Longest window the calendar and daily availability endpoints will expand.
MAX_WINDOW_DAYS = 366

PROCESSOR_ERROR_STATUS = {
    ProcessorError.ALREADY_REFUNDED: status.HTTP_409_CONFLICT,
    ProcessorError.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
    ProcessorError.NO_PAYMENT: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def error_status(exc):
    if isinstance(exc, ProcessorError):
        return PROCESSOR_ERROR_STATUS.get(exc.kind, status.HTTP_502_BAD_GATEWAY)
    if isinstance(exc, InvalidRequest):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, (Conflict, AlreadyProcessed)):
        return status.HTTP_409_CONFLICT
    if isinstance(exc, (NoPricingRuleFound, NoActiveRefundPolicy)):
        return status.HTTP_422_UNPROCESSABLE_ENTITY
    if isinstance(exc, PaymentGatewayError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_400_BAD_REQUEST


def lodging_exception_handler(exc, context):
    """Render LodgingError subclasses as ``{'error', 'code', 'details'}``; defer the rest to DRF."""
    if isinstance(exc, LodgingError):
        return Response(
            {'error': exc.message, 'code': exc.code, 'details': exc.details},
            status=error_status(exc),
        )
    return exception_handler(exc, context)


def welcome(request):
    return JsonResponse({"message": "Welcome to the Lodging Reservation System"})


def health_check(request):
    return JsonResponse({"status": "ok"})


def parse_date(value):
    return datetime.strptime(value, '%Y-%m-%d').date()


def available_rooms_qs(property, check_in, check_out):
    """Active rooms at ``property`` with no active booking, buyout or blackout over the range."""
    rooms = Room.objects.filter(property=property, is_active=True)
    blocked = (
        blocking_blackouts(property, check_in, check_out).exists()
        or overlapping_bookings(property, check_in, check_out)
        .filter(booking_mode=BookingMode.BUYOUT)
        .exists()
    )
    if blocked:
        return rooms.none()
    overlap = Exists(
        Booking.objects.filter(
            rooms=OuterRef('pk'),
            status__in=Booking.ACTIVE_STATUSES,
            check_in__lt=check_out,
            check_out__gt=check_in,
        )
    )
    return rooms.annotate(has_overlap=overlap).filter(has_overlap=False)


class RoomViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Room.objects.select_related('category').all()
    serializer_class = RoomSerializer

    def list(self, request):
        """Search available rooms with filters"""
        property = request.query_params.get('property')
        check_in_str = request.query_params.get('check_in')
        check_out_str = request.query_params.get('check_out')

        rooms = self.get_queryset()
        if property:
            if property not in Property.values:
                return Response({'error': f'Unknown property {property}'},
                                status=status.HTTP_400_BAD_REQUEST)
            rooms = rooms.filter(property=property)

        if check_in_str and check_out_str:
            if not property:
                return Response({'error': 'property is required when searching by date'},
                                status=status.HTTP_400_BAD_REQUEST)
            try:
                check_in = parse_date(check_in_str)
                check_out = parse_date(check_out_str)
            except ValueError:
                return Response({'error': 'Invalid date format. Use YYYY-MM-DD'},
                                status=status.HTTP_400_BAD_REQUEST)
            if check_out <= check_in:
                return Response({'error': 'check_out must be after check_in'},
                                status=status.HTTP_400_BAD_REQUEST)
            rooms = available_rooms_qs(property, check_in, check_out)

        serializer = self.get_serializer(rooms, many=True)
        return Response(serializer.data)


class BookingViewSet(viewsets.ModelViewSet):
    queryset = Booking.objects.all()
    serializer_class = BookingSerializer

    def get_queryset(self):
        qs = Booking.objects.select_related('user', 'payment').prefetch_related('rooms')
        if self.request.user.is_staff:
            return qs
        return qs.filter(user=self.request.user)

    def get_permissions(self):
        if self.action in ('update', 'partial_update', 'destroy', 'admin_create'):
            return [IsAdminUser()]
        return super().get_permissions()

    def create(self, request, *args, **kwargs):
        data = BookingRequestSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        outcome = bookings.create_booking(request.user, **data.validated_data)
        payload = self.get_serializer(outcome.booking).data
        payload['quote'] = outcome.quote.as_dict()
        payload['warnings'] = outcome.warnings
        return Response(payload, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'])
    def quote(self, request):
        """Price a stay without reserving it"""
        data = BookingRequestSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        quote = resolve_price(**data.validated_data)
        return Response(quote.as_dict())

    @action(detail=False, methods=['post'])
    def admin_create(self, request):
        data = AdminBookingRequestSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        values = dict(data.validated_data)
        user_id = values.pop('user_id', None)
        user = request.user
        if user_id is not None:
            user = get_user_model().objects.filter(pk=user_id).first()
            if user is None:
                return Response({'error': 'User not found'}, status=status.HTTP_404_NOT_FOUND)
        outcome = bookings.admin_create_booking(user, **values)
        return Response(self.get_serializer(outcome.booking).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def my_bookings(self, request):
        """Get current user's bookings"""
        qs = self.get_queryset().filter(user=request.user).order_by('-created_at')
        serializer = self.get_serializer(qs, many=True)
        return Response(serializer.data)

    def update(self, request, pk=None, **kwargs):
        """Staff edit of dates, rooms, guests, status or total"""
        booking = self.get_object()
        data = BookingUpdateSerializer(data=request.data, partial=kwargs.get('partial', False))
        data.is_valid(raise_exception=True)
        booking = bookings.admin_update_booking(booking, **data.validated_data)
        return Response(self.get_serializer(booking).data)

    def partial_update(self, request, pk=None, **kwargs):
        return self.update(request, pk, partial=True)

    def destroy(self, request, pk=None, **kwargs):
        bookings.admin_delete_booking(self.get_object())
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        booking = self.get_object()
        data = CancelSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        outcome = refunds.cancel_booking(booking, reason=data.validated_data['reason'])
        payload = self.get_serializer(outcome.booking).data
        payload['refund_cents'] = outcome.refund_cents
        payload['pending_refund_id'] = outcome.pending_refund.pk if outcome.pending_refund else None
        payload['warnings'] = outcome.warnings
        return Response(payload)

    @action(detail=True, methods=['post'])
    def confirm_payment(self, request, pk=None):
        booking = self.get_object()
        data = ConfirmPaymentSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        booking = bookings.confirm_booking(booking, data.validated_data['external_payment_ref'])
        booking.refresh_from_db()
        return Response({
            'payment_status': booking.payment.status,
            'booking_id': booking.id,
            'status': booking.status,
            'amount': booking.payment.amount_cents / 100.0,
        })


class CalendarView(APIView):
    permission_classes = [IsAdminUser]

    def get(self, request):
        property = request.query_params.get('property')
        if property not in Property.values:
            return Response({'error': 'property must be one of ' + ', '.join(Property.values)},
                            status=status.HTTP_400_BAD_REQUEST)
        try:
            start = parse_date(request.query_params.get('start', ''))
            days = int(request.query_params.get('days', 14))
        except ValueError:
            return Response({'error': 'start must be YYYY-MM-DD and days an integer'},
                            status=status.HTTP_400_BAD_REQUEST)
        if days > MAX_WINDOW_DAYS:
            return Response({'error': f'days cannot exceed {MAX_WINDOW_DAYS}'},
                            status=status.HTTP_400_BAD_REQUEST)

        grid = build_calendar(property, start, days)
        return Response({
            'property': grid.property,
            'window_start': grid.window_start,
            'total_days': grid.total_days,
            'dates': grid.dates,
            'rooms': {
                str(room_id): [asdict(entry) for entry in entries]
                for room_id, entries in grid.rooms.items()
            },
            'buyouts': [asdict(entry) for entry in grid.buyouts],
            'day_bookings': [asdict(entry) for entry in grid.day_bookings],
            'blackouts': [asdict(entry) for entry in grid.blackouts],
        })


class DailyAvailabilityView(APIView):

    def get(self, request):
        property = request.query_params.get('property', Property.CLEAR_LAKE)
        if property not in Property.values:
            return Response({'error': f'Unknown property {property}'},
                            status=status.HTTP_400_BAD_REQUEST)
        try:
            start = parse_date(request.query_params.get('start', ''))
            end_str = request.query_params.get('end')
            end = parse_date(end_str) if end_str else start + timedelta(days=30)
        except ValueError:
            return Response({'error': 'Invalid date format. Use YYYY-MM-DD'},
                            status=status.HTTP_400_BAD_REQUEST)
        if (end - start).days > MAX_WINDOW_DAYS:
            return Response({'error': f'The window cannot exceed {MAX_WINDOW_DAYS} days'},
                            status=status.HTTP_400_BAD_REQUEST)

        days = daily_guest_availability(property, start, end)
        return Response([asdict(day) for day in days.values()])


class PendingRefundViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = PendingRefund.objects.all()
    serializer_class = PendingRefundSerializer
    permission_classes = [IsAdminUser]

    def get_queryset(self):
        if self.action == 'list' and self.request.query_params.get('status') != 'all':
            return refunds.list_pending_refunds()
        return PendingRefund.objects.select_related('booking', 'payment')

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        data = ApproveRefundSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        pending = refunds.approve_pending_refund(
            self.get_object(),
            request.user,
            amount_cents=data.validated_data.get('amount_cents'),
            notes=data.validated_data['notes'],
        )
        return Response(self.get_serializer(pending).data)

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        data = RejectRefundSerializer(data=request.data)
        data.is_valid(raise_exception=True)
        pending = refunds.reject_pending_refund(
            self.get_object(), request.user, data.validated_data['notes']
        )
        return Response(self.get_serializer(pending).data)


class DoorCodeViewSet(viewsets.ViewSet):
    permission_classes = [IsAdminUser]

    def list(self, request):
        """Recent door codes for a property, newest first"""
        property = request.query_params.get('property')
        if property not in Property.values:
            return Response({'error': 'property parameter is required'},
                            status=status.HTTP_400_BAD_REQUEST)
        codes = door_codes.recent_codes(property)
        return Response(DoorCodeSerializer(codes, many=True).data)

    def create(self, request):
        data = DoorCodeInput(data=request.data)
        data.is_valid(raise_exception=True)
        door_code, warnings = door_codes.set_new_code(
            data.validated_data['property'], data.validated_data['code']
        )
        payload = DoorCodeSerializer(door_code).data
        payload['warnings'] = warnings
        return Response(payload, status=status.HTTP_201_CREATED)


class BlackoutViewSet(viewsets.ModelViewSet):
    queryset = Blackout.objects.all()
    serializer_class = BlackoutSerializer
    permission_classes = [IsAdminUser]
