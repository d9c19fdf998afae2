from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date

from django.db import connection
from django.test import SimpleTestCase, TestCase, TransactionTestCase

from lodging.availability import (
    is_available,
    list_intersecting,
    ranges_overlap,
    reserve,
    validate_range,
)
from lodging.exceptions import Conflict, InvalidChoice, InvalidRange, InvalidRequest
from lodging.models import Blackout, Booking, BookingMode, Property

from .helpers import make_booking, make_room, make_user


class RangeTestCase(SimpleTestCase):
    """Half-open range arithmetic"""

    def test_ranges_overlap(self):
        cases = [
            ((date(2031, 6, 10), date(2031, 6, 14)), (date(2031, 6, 13), date(2031, 6, 16)), True),
            ((date(2031, 6, 10), date(2031, 6, 14)), (date(2031, 6, 14), date(2031, 6, 16)), False),
            ((date(2031, 6, 10), date(2031, 6, 14)), (date(2031, 6, 8), date(2031, 6, 10)), False),
            ((date(2031, 6, 10), date(2031, 6, 14)), (date(2031, 6, 11), date(2031, 6, 12)), True),
        ]
        for (a1, b1), (a2, b2), expected in cases:
            with self.subTest(first=(a1, b1), second=(a2, b2)):
                self.assertEqual(ranges_overlap(a1, b1, a2, b2), expected)
                self.assertEqual(ranges_overlap(a2, b2, a1, b1), expected)

    def test_zero_night_stay_rejected(self):
        """check_out equal to check_in is rejected before any conflict check"""
        with self.assertRaises(InvalidRange):
            validate_range(date(2031, 6, 10), date(2031, 6, 10))
        with self.assertRaises(InvalidRange):
            validate_range(date(2031, 6, 11), date(2031, 6, 10))


class RoomAvailabilityTestCase(TestCase):
    """Room-mode conflicts at Tahoe"""

    def setUp(self):
        self.user = make_user()
        self.room1 = make_room('Room 1')
        self.room2 = make_room('Room 2')
        self.existing = make_booking(
            self.user, date(2031, 6, 10), date(2031, 6, 14), rooms=[self.room1]
        )

    def reserve_room(self, check_in, check_out, room):
        return reserve(
            property=Property.TAHOE,
            booking_mode=BookingMode.ROOM,
            check_in=check_in,
            check_out=check_out,
            user=self.user,
            room_ids=[room.pk],
            guests_count=2,
        )

    def test_overlapping_room_booking_conflicts(self):
        """Jun 13-16 overlaps the Jun 10-14 stay in the same room"""
        with self.assertRaises(Conflict) as ctx:
            self.reserve_room(date(2031, 6, 13), date(2031, 6, 16), self.room1)
        self.assertEqual(ctx.exception.details['reason'], 'room')
        self.assertEqual(Booking.objects.count(), 1)

    def test_back_to_back_booking_allowed(self):
        """Checking in on the previous guest's checkout day is not a conflict"""
        booking = self.reserve_room(date(2031, 6, 14), date(2031, 6, 16), self.room1)
        self.assertEqual(booking.status, Booking.Status.HOLD)
        self.assertTrue(booking.reference_id.startswith('BKG-'))
        self.assertEqual(list(booking.rooms.all()), [self.room1])

    def test_other_room_is_free(self):
        self.assertTrue(is_available(
            'tahoe', 'room', date(2031, 6, 11), date(2031, 6, 13), room_ids=[self.room2.pk]
        ))

    def test_canceled_booking_frees_the_room(self):
        self.existing.status = Booking.Status.CANCELED
        self.existing.save()
        self.assertTrue(is_available(
            Property.TAHOE, BookingMode.ROOM, date(2031, 6, 11), date(2031, 6, 13),
            room_ids=[self.room1.pk],
        ))

    def test_buyout_blocks_room_booking(self):
        make_booking(self.user, date(2031, 7, 1), date(2031, 7, 3), booking_mode=BookingMode.BUYOUT)
        self.assertFalse(is_available(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 2), date(2031, 7, 4),
            room_ids=[self.room2.pk],
        ))

    def test_room_booking_blocks_buyout(self):
        self.assertFalse(is_available(
            Property.TAHOE, BookingMode.BUYOUT, date(2031, 6, 13), date(2031, 6, 15)
        ))
        self.assertTrue(is_available(
            Property.TAHOE, BookingMode.BUYOUT, date(2031, 6, 14), date(2031, 6, 15)
        ))

    def test_bookings_on_other_property_do_not_conflict(self):
        self.assertTrue(is_available(
            Property.CLEAR_LAKE, BookingMode.BUYOUT, date(2031, 6, 10), date(2031, 6, 14)
        ))

    def test_unknown_mode_rejected(self):
        with self.assertRaises(InvalidChoice):
            is_available(Property.TAHOE, 'weekly', date(2031, 6, 10), date(2031, 6, 14))


class RoomSetTestCase(TestCase):
    """A reservation must occupy the rooms its mode implies"""

    def setUp(self):
        self.user = make_user()
        self.room = make_room('Room 1')
        self.cabin = make_room('Cabin', property=Property.CLEAR_LAKE)

    def attempt(self, booking_mode, room_ids):
        return reserve(
            property=Property.TAHOE,
            booking_mode=booking_mode,
            check_in=date(2031, 6, 10),
            check_out=date(2031, 6, 12),
            user=self.user,
            room_ids=room_ids,
        )

    def test_rejected_room_sets(self):
        cases = [
            ('room booking without rooms', BookingMode.ROOM, []),
            ('room at another property', BookingMode.ROOM, [self.cabin.pk]),
            ('unknown room', BookingMode.ROOM, [99999]),
            ('buyout holding a room', BookingMode.BUYOUT, [self.room.pk]),
        ]
        for label, booking_mode, room_ids in cases:
            with self.subTest(label):
                with self.assertRaises(InvalidRequest):
                    self.attempt(booking_mode, room_ids)
        self.assertFalse(Booking.objects.exists())

    def test_room_booking_occupies_its_room(self):
        self.attempt(BookingMode.ROOM, [self.room.pk])
        self.assertFalse(is_available(
            Property.TAHOE, BookingMode.ROOM, date(2031, 6, 11), date(2031, 6, 13), room_ids=[self.room.pk]
        ))


class BlackoutAvailabilityTestCase(TestCase):
    """Blackout end dates are inclusive"""

    def setUp(self):
        self.room = make_room()
        Blackout.objects.create(
            property=Property.TAHOE, reason='Septic work',
            start_date=date(2031, 6, 20), end_date=date(2031, 6, 22),
        )

    def test_blackout_blocks_every_mode(self):
        cases = [
            (date(2031, 6, 22), date(2031, 6, 23), False),  # last blacked-out night
            (date(2031, 6, 23), date(2031, 6, 24), True),
            (date(2031, 6, 18), date(2031, 6, 20), False),  # checks out as the blackout starts
            (date(2031, 6, 17), date(2031, 6, 19), True),
            (date(2031, 6, 18), date(2031, 6, 21), False),
        ]
        for check_in, check_out, expected in cases:
            with self.subTest(check_in=check_in, check_out=check_out):
                self.assertEqual(is_available(
                    Property.TAHOE, BookingMode.ROOM, check_in, check_out, room_ids=[self.room.pk]
                ), expected)
                self.assertEqual(is_available(
                    Property.TAHOE, BookingMode.BUYOUT, check_in, check_out
                ), expected)


class DayCapacityTestCase(TestCase):
    """Per-guest capacity at Clear Lake"""

    def setUp(self):
        self.user = make_user()
        make_booking(
            self.user, date(2031, 8, 1), date(2031, 8, 3), property=Property.CLEAR_LAKE,
            booking_mode=BookingMode.DAY, guests_count=6,
        )
        make_booking(
            self.user, date(2031, 8, 2), date(2031, 8, 4), property=Property.CLEAR_LAKE,
            booking_mode=BookingMode.DAY, guests_count=4, status=Booking.Status.HOLD,
        )

    def test_capacity_counts_every_night(self):
        # Aug 2 already has 10 guests committed.
        self.assertTrue(is_available(
            Property.CLEAR_LAKE, BookingMode.DAY, date(2031, 8, 2), date(2031, 8, 3), guests_count=2
        ))
        self.assertFalse(is_available(
            Property.CLEAR_LAKE, BookingMode.DAY, date(2031, 8, 1), date(2031, 8, 3), guests_count=3
        ))
        self.assertTrue(is_available(
            Property.CLEAR_LAKE, BookingMode.DAY, date(2031, 8, 3), date(2031, 8, 4), guests_count=8
        ))

    def test_day_guests_block_buyout(self):
        self.assertFalse(is_available(
            Property.CLEAR_LAKE, BookingMode.BUYOUT, date(2031, 8, 3), date(2031, 8, 5)
        ))
        self.assertTrue(is_available(
            Property.CLEAR_LAKE, BookingMode.BUYOUT, date(2031, 8, 4), date(2031, 8, 5)
        ))

    def test_excluding_a_booking_frees_its_guests(self):
        mine = Booking.objects.get(guests_count=6)
        self.assertTrue(is_available(
            Property.CLEAR_LAKE, BookingMode.DAY, date(2031, 8, 1), date(2031, 8, 3),
            guests_count=8, exclude_booking_id=mine.pk,
        ))


class ListIntersectingTestCase(TestCase):

    def test_groups_entries_by_kind(self):
        user = make_user()
        room = make_room()
        stay = make_booking(user, date(2031, 6, 1), date(2031, 6, 3), rooms=[room])
        buyout = make_booking(user, date(2031, 6, 5), date(2031, 6, 7), booking_mode=BookingMode.BUYOUT)
        make_booking(user, date(2031, 6, 8), date(2031, 6, 9), rooms=[room], status=Booking.Status.CANCELED)
        make_booking(user, date(2031, 7, 1), date(2031, 7, 3), rooms=[room])
        blackout = Blackout.objects.create(
            property=Property.TAHOE, reason='Closed', start_date=date(2031, 6, 9), end_date=date(2031, 6, 9)
        )

        entries = list_intersecting(Property.TAHOE, date(2031, 6, 1), date(2031, 6, 15))

        self.assertEqual(entries.room_bookings, [stay])
        self.assertEqual(entries.buyout_bookings, [buyout])
        self.assertEqual(entries.blackouts, [blackout])


class RaceConditionTestCase(TransactionTestCase):
    """Concurrent reservations for overlapping stays in one room"""

    def setUp(self):
        self.room = make_room()
        self.users = [make_user(f'racer{i}') for i in range(5)]

    def test_concurrent_reservations_only_one_wins(self):
        """Exactly one of several simultaneous overlapping reservations succeeds; the rest get Conflict"""
        # Every range covers the night of Sep 3.
        ranges = [
            (date(2031, 9, 1), date(2031, 9, 4)),
            (date(2031, 9, 2), date(2031, 9, 5)),
            (date(2031, 9, 3), date(2031, 9, 6)),
            (date(2031, 8, 30), date(2031, 9, 4)),
            (date(2031, 9, 3), date(2031, 9, 4)),
        ]

        def attempt(user, check_in, check_out):
            try:
                booking = reserve(
                    property=Property.TAHOE,
                    booking_mode=BookingMode.ROOM,
                    check_in=check_in,
                    check_out=check_out,
                    user=user,
                    room_ids=[self.room.pk],
                    guests_count=2,
                )
                return {'success': True, 'booking_id': booking.pk}
            except Exception as e:
                return {'success': False, 'error': e}
            finally:
                connection.close()

        results = []
        with ThreadPoolExecutor(max_workers=len(self.users)) as executor:
            futures = [
                executor.submit(attempt, user, check_in, check_out)
                for user, (check_in, check_out) in zip(self.users, ranges)
            ]
            for future in as_completed(futures):
                results.append(future.result())

        successful = [r for r in results if r['success']]
        self.assertEqual(len(successful), 1, results)
        losers = [r['error'] for r in results if not r['success']]
        self.assertEqual(len(losers), len(ranges) - 1)
        for error in losers:
            self.assertIsInstance(error, Conflict)
        self.assertEqual(
            Booking.objects.filter(status__in=Booking.ACTIVE_STATUSES).count(), 1
        )
