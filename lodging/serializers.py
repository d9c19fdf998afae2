from rest_framework import serializers

from .models import (
    Blackout,
    Booking,
    BookingMode,
    DoorCode,
    PendingRefund,
    Property,
    Room,
)


class RoomSerializer(serializers.ModelSerializer):

    class Meta:
        model = Room
        fields = '__all__'

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['category_name'] = instance.category.name if instance.category_id else None
        return data


class BookingSerializer(serializers.ModelSerializer):
    rooms = RoomSerializer(many=True, read_only=True)

    class Meta:
        model = Booking
        fields = '__all__'
        read_only_fields = [f.name for f in Booking._meta.fields]

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['total_dollar'] = instance.total_cents / 100.0
        data['nights'] = instance.nights()
        if hasattr(instance, 'payment'):
            data['payment_status'] = instance.payment.status
        return data


class BookingRequestSerializer(serializers.Serializer):
    """Input for creating or quoting a booking."""
    property = serializers.ChoiceField(choices=Property.choices)
    booking_mode = serializers.ChoiceField(choices=BookingMode.choices)
    check_in = serializers.DateField()
    check_out = serializers.DateField()
    guests_count = serializers.IntegerField(min_value=1, default=1)
    children_count = serializers.IntegerField(min_value=0, default=0)
    room_ids = serializers.ListField(child=serializers.IntegerField(), required=False, default=list)

    def validate(self, data):
        if data['check_out'] <= data['check_in']:
            raise serializers.ValidationError("check_out must be after check_in")
        return data


class AdminBookingRequestSerializer(BookingRequestSerializer):
    user_id = serializers.IntegerField(required=False)
    status = serializers.ChoiceField(choices=Booking.Status.choices, default=Booking.Status.COMPLETE)
    total_cents = serializers.IntegerField(min_value=0, required=False)


class BookingUpdateSerializer(serializers.Serializer):
    check_in = serializers.DateField(required=False)
    check_out = serializers.DateField(required=False)
    room_ids = serializers.ListField(child=serializers.IntegerField(), required=False)
    guests_count = serializers.IntegerField(min_value=1, required=False)
    children_count = serializers.IntegerField(min_value=0, required=False)
    status = serializers.ChoiceField(choices=Booking.Status.choices, required=False)
    total_cents = serializers.IntegerField(min_value=0, required=False)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(allow_blank=True, required=False, default='')


class ConfirmPaymentSerializer(serializers.Serializer):
    external_payment_ref = serializers.CharField()


class PendingRefundSerializer(serializers.ModelSerializer):
    booking_reference = serializers.CharField(source='booking.reference_id', read_only=True)

    class Meta:
        model = PendingRefund
        fields = '__all__'

    def to_representation(self, instance):
        data = super().to_representation(instance)
        data['policy_refund_dollar'] = instance.policy_refund_cents / 100.0
        data['payment_amount_cents'] = instance.payment.amount_cents
        return data


class ApproveRefundSerializer(serializers.Serializer):
    amount_cents = serializers.IntegerField(required=False)
    notes = serializers.CharField(allow_blank=True, required=False, default='')


class RejectRefundSerializer(serializers.Serializer):
    notes = serializers.CharField()


class DoorCodeSerializer(serializers.ModelSerializer):

    class Meta:
        model = DoorCode
        fields = '__all__'


class DoorCodeInput(serializers.Serializer):
    property = serializers.ChoiceField(choices=Property.choices)
    code = serializers.CharField(max_length=5)


class BlackoutSerializer(serializers.ModelSerializer):

    class Meta:
        model = Blackout
        fields = '__all__'

    def validate(self, data):
        start_date = data.get('start_date', getattr(self.instance, 'start_date', None))
        end_date = data.get('end_date', getattr(self.instance, 'end_date', None))
        if start_date and end_date and end_date < start_date:
            raise serializers.ValidationError("end_date cannot be before start_date")
        return data
