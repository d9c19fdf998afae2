from datetime import date
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from lodging.models import (
    BookingMode,
    PriceUnit,
    PricingRule,
    Property,
    RefundPolicy,
    RefundPolicyRule,
    Room,
    RoomCategory,
    Season,
)


class Command(BaseCommand):
    help = 'Populate database with sample rooms, seasons, pricing and refund policies'

    @transaction.atomic
    def handle(self, *args, **options):
        family, _ = RoomCategory.objects.get_or_create(
            name='Family', defaults={'notes': 'Rooms sleeping four or more'}
        )
        standard, _ = RoomCategory.objects.get_or_create(name='Standard')

        # Only month and day matter; the year is a placeholder.
        seasons_data = [
            {
                'property': Property.TAHOE,
                'name': 'Winter',
                'start_date': date(2000, 11, 1),
                'end_date': date(2000, 4, 30),
                'advance_booking_days': 45,
                'is_default': False,
            },
            {
                'property': Property.TAHOE,
                'name': 'Summer',
                'start_date': date(2000, 5, 1),
                'end_date': date(2000, 10, 31),
                'is_default': True,
            },
            {
                'property': Property.CLEAR_LAKE,
                'name': 'Year round',
                'start_date': date(2000, 1, 1),
                'end_date': date(2000, 12, 31),
                'is_default': True,
            },
        ]
        seasons = {}
        for season_data in seasons_data:
            season, created = Season.objects.get_or_create(
                property=season_data['property'],
                name=season_data['name'],
                defaults=season_data,
            )
            seasons[(season.property, season.name)] = season
            self.stdout.write(f"{'Created' if created else 'Found'} season: {season}")

        rooms_data = [
            {'name': 'Room 1', 'category': family, 'capacity_max': 5, 'min_billable_occupancy': 2,
             'queen_beds': 1, 'single_beds': 3},
            {'name': 'Room 2', 'category': standard, 'capacity_max': 2, 'queen_beds': 1},
            {'name': 'Room 3', 'category': standard, 'capacity_max': 2, 'queen_beds': 1},
            {'name': 'Room 4', 'category': family, 'capacity_max': 4, 'min_billable_occupancy': 2,
             'king_beds': 1, 'single_beds': 2},
            {'name': 'Room 5', 'category': standard, 'capacity_max': 3, 'single_beds': 3},
        ]
        for room_data in rooms_data:
            room, created = Room.objects.get_or_create(
                property=Property.TAHOE,
                name=room_data['name'],
                defaults=room_data,
            )
            if created:
                self.stdout.write(f'Created room: {room.name} ({room.category})')
            else:
                self.stdout.write(f'Room {room.name} already exists')

        pricing_data = [
            {'property': Property.TAHOE, 'booking_mode': BookingMode.ROOM,
             'price_unit': PriceUnit.PER_PERSON_PER_NIGHT, 'amount_cents': 4500},
            {'property': Property.TAHOE, 'booking_mode': BookingMode.ROOM,
             'price_unit': PriceUnit.PER_PERSON_PER_NIGHT, 'amount_cents': 5500,
             'season': seasons[(Property.TAHOE, 'Winter')]},
            {'room_category': family, 'property': Property.TAHOE, 'booking_mode': BookingMode.ROOM,
             'price_unit': PriceUnit.PER_PERSON_PER_NIGHT, 'amount_cents': 4000,
             'children_amount_cents': 2000},
            {'property': Property.TAHOE, 'booking_mode': BookingMode.BUYOUT,
             'price_unit': PriceUnit.BUYOUT_FIXED, 'amount_cents': 60000},
            {'property': Property.CLEAR_LAKE, 'booking_mode': BookingMode.DAY,
             'price_unit': PriceUnit.PER_GUEST_PER_DAY, 'amount_cents': 5000},
            {'property': Property.CLEAR_LAKE, 'booking_mode': BookingMode.BUYOUT,
             'price_unit': PriceUnit.BUYOUT_FIXED, 'amount_cents': 50000},
        ]
        for rule_data in pricing_data:
            lookup = {key: rule_data.get(key) for key in
                      ('property', 'booking_mode', 'room_category', 'season')}
            rule, created = PricingRule.objects.get_or_create(**lookup, defaults=rule_data)
            if created:
                self.stdout.write(f'Created pricing rule: {rule}')

        tiers = [(21, '100'), (14, '50'), (0, '0')]
        for property, modes in ((Property.TAHOE, (BookingMode.ROOM, BookingMode.BUYOUT)),
                                (Property.CLEAR_LAKE, (BookingMode.DAY, BookingMode.BUYOUT))):
            for mode in modes:
                policy, created = RefundPolicy.objects.get_or_create(
                    property=property,
                    booking_mode=mode,
                    is_active=True,
                    defaults={'name': f'{Property(property).label} {mode} cancellation policy'},
                )
                if created:
                    for days, percentage in tiers:
                        RefundPolicyRule.objects.create(
                            policy=policy,
                            days_before_checkin=days,
                            refund_percentage=Decimal(percentage),
                            description=f'{percentage}% refund at {days}+ days before check-in',
                        )
                    self.stdout.write(f'Created refund policy: {policy}')

        self.stdout.write(
            self.style.SUCCESS('Successfully populated database with sample data')
        )
