from datetime import date
from types import SimpleNamespace

from django.test import SimpleTestCase, TestCase

from lodging.exceptions import InvalidRange, NoPricingRuleFound
from lodging.models import BookingMode, PriceUnit, Property, RoomCategory, Season
from lodging.pricing import resolve_price, select_rule

from .helpers import make_room, property_rule


def rule(pk, room_id=None, room_category_id=None, season_id=None):
    return SimpleNamespace(
        pk=pk, room_id=room_id, room_category_id=room_category_id, season_id=season_id
    )


class SelectRuleTestCase(SimpleTestCase):
    """Most specific rule wins"""

    def test_specificity_levels(self):
        rules = [
            rule(1),
            rule(2, room_category_id=10),
            rule(3, room_id=100),
        ]
        cases = [
            ({'room_id': 100, 'category_id': 10}, 3, 'room'),
            ({'room_id': 101, 'category_id': 10}, 2, 'category'),
            ({'room_id': 101, 'category_id': 11}, 1, 'property'),
            ({}, 1, 'property'),
        ]
        for kwargs, expected_pk, expected_level in cases:
            with self.subTest(**kwargs):
                chosen, level = select_rule(rules, **kwargs)
                self.assertEqual(chosen.pk, expected_pk)
                self.assertEqual(level, expected_level)

    def test_season_specific_beats_agnostic_within_level(self):
        rules = [rule(1), rule(2, season_id=7)]
        chosen, _ = select_rule(rules, season_id=7)
        self.assertEqual(chosen.pk, 2)

    def test_rules_for_other_seasons_are_ignored(self):
        rules = [rule(1), rule(2, season_id=8)]
        chosen, _ = select_rule(rules, season_id=7)
        self.assertEqual(chosen.pk, 1)

    def test_level_outranks_season(self):
        """A season-agnostic room rule still beats a seasonal property rule"""
        rules = [rule(1, season_id=7), rule(2, room_id=100)]
        chosen, level = select_rule(rules, room_id=100, season_id=7)
        self.assertEqual((chosen.pk, level), (2, 'room'))

    def test_no_candidates(self):
        self.assertEqual(select_rule([rule(1, room_id=5)], room_id=6), (None, None))


class TahoeRoomPricingTestCase(TestCase):

    def setUp(self):
        self.family = RoomCategory.objects.create(name='Family')
        self.room = make_room('Room 1', min_billable_occupancy=2, capacity_max=5, category=self.family)
        self.small = make_room('Room 2', capacity_max=2)
        self.base = property_rule(4500)

    def test_minimum_billable_occupancy(self):
        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 4),
            room_ids=[self.small.pk], guests_count=1,
        )
        self.assertEqual(quote.total_cents, 4500 * 1 * 3)

        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 4),
            room_ids=[self.room.pk], guests_count=1,
        )
        self.assertEqual(quote.billable_people, 2)

    def test_category_rule_beats_property_rule(self):
        property_rule(4000, room_category=self.family, children_amount_cents=1500)
        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 3),
            room_ids=[self.room.pk], guests_count=3, children_count=1,
        )
        self.assertEqual(quote.rule_level, 'category')
        self.assertEqual(quote.base_cents, 4000 * 3 * 2)
        self.assertEqual(quote.children_cents, 1500 * 1 * 2)
        self.assertEqual(quote.total_cents, 24000 + 3000)

    def test_room_rule_beats_category_rule(self):
        property_rule(4000, room_category=self.family)
        room_rule = property_rule(3000, room=self.room)
        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 2),
            room_ids=[self.room.pk], guests_count=2,
        )
        self.assertEqual(quote.rule_id, room_rule.pk)
        self.assertEqual(quote.total_cents, 6000)

    def test_children_fall_back_to_default_rate(self):
        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 3),
            room_ids=[self.small.pk], guests_count=1, children_count=1,
        )
        self.assertEqual(quote.children_cents, 2500 * 2)
        self.assertEqual(quote.total_cents, 4500 * 2 + 5000)

    def test_multi_room_uses_raw_guest_count(self):
        quote = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 2),
            room_ids=[self.small.pk, self.room.pk], guests_count=1,
        )
        self.assertEqual(quote.billable_people, 1)
        self.assertEqual(quote.total_cents, 4500)

    def test_seasonal_rule_applies_across_new_year(self):
        winter = Season.objects.create(
            property=Property.TAHOE, name='Winter',
            start_date=date(2000, 11, 1), end_date=date(2000, 4, 30),
        )
        Season.objects.create(
            property=Property.TAHOE, name='Summer', is_default=True,
            start_date=date(2000, 5, 1), end_date=date(2000, 10, 31),
        )
        property_rule(5500, season=winter)

        january = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2032, 1, 5), date(2032, 1, 6),
            room_ids=[self.small.pk], guests_count=2,
        )
        july = resolve_price(
            Property.TAHOE, BookingMode.ROOM, date(2031, 7, 5), date(2031, 7, 6),
            room_ids=[self.small.pk], guests_count=2,
        )
        self.assertEqual(january.season_id, winter.pk)
        self.assertEqual(january.total_cents, 11000)
        self.assertEqual(july.total_cents, 9000)

    def test_invalid_range(self):
        with self.assertRaises(InvalidRange):
            resolve_price(
                Property.TAHOE, BookingMode.ROOM, date(2031, 7, 1), date(2031, 7, 1),
                room_ids=[self.small.pk],
            )


class OtherUnitsPricingTestCase(TestCase):

    def test_per_guest_per_day(self):
        property_rule(5000, property=Property.CLEAR_LAKE, booking_mode=BookingMode.DAY,
                      price_unit=PriceUnit.PER_GUEST_PER_DAY)
        quote = resolve_price(
            Property.CLEAR_LAKE, BookingMode.DAY, date(2031, 8, 1), date(2031, 8, 3),
            guests_count=3, children_count=2,
        )
        self.assertEqual(quote.total_cents, 5000 * 3 * 2)
        self.assertEqual(quote.children_cents, 0)

    def test_buyout_is_independent_of_occupancy(self):
        property_rule(60000, booking_mode=BookingMode.BUYOUT, price_unit=PriceUnit.BUYOUT_FIXED)
        for guests in (1, 10):
            with self.subTest(guests=guests):
                quote = resolve_price(
                    Property.TAHOE, BookingMode.BUYOUT, date(2031, 8, 1), date(2031, 8, 3),
                    guests_count=guests,
                )
                self.assertEqual(quote.total_cents, 120000)

    def test_missing_rule_is_an_error(self):
        """A stay with no matching rule is never priced at zero"""
        property_rule(60000, booking_mode=BookingMode.BUYOUT, price_unit=PriceUnit.BUYOUT_FIXED)
        with self.assertRaises(NoPricingRuleFound):
            resolve_price(
                Property.CLEAR_LAKE, BookingMode.BUYOUT, date(2031, 8, 1), date(2031, 8, 3)
            )
