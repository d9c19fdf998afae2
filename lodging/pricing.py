"""
Pricing resolver.

A stay is priced by exactly one pricing rule, chosen by walking an ordered
list of specificity levels (room, then category, then property-wide) and
taking the first level that has any candidate. Within a level a rule tied to
the stay's season beats a season-agnostic one.

Money is handled in integer cents throughout.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from django.db.models import Q

from .availability import validate_range
from .conf import lodging_settings
from .exceptions import InvalidRequest, NoPricingRuleFound
from .models import BookingMode, PriceUnit, PricingRule, Property, Room, parse_choice
from .seasons import season_for_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpecificityLevel:
    name: str
    matches: Callable[[PricingRule, Optional[int], Optional[int]], bool]


SPECIFICITY_LEVELS = (
    SpecificityLevel(
        "room",
        lambda rule, room_id, category_id: room_id is not None and rule.room_id == room_id,
    ),
    SpecificityLevel(
        "category",
        lambda rule, room_id, category_id: (
            rule.room_id is None
            and category_id is not None
            and rule.room_category_id == category_id
        ),
    ),
    SpecificityLevel(
        "property",
        lambda rule, room_id, category_id: rule.room_id is None and rule.room_category_id is None,
    ),
)


def select_rule(rules, room_id=None, category_id=None, season_id=None):
    """
    Pick the most specific rule from ``rules``.

    Returns ``(rule, level_name)`` or ``(None, None)`` when nothing matches.
    Works on any objects exposing ``room_id``, ``room_category_id``,
    ``season_id`` and ``pk``, so it can be exercised without a database.
    """
    candidates = [r for r in rules if r.season_id is None or r.season_id == season_id]
    for level in SPECIFICITY_LEVELS:
        matched = [r for r in candidates if level.matches(r, room_id, category_id)]
        if matched:
            best = min(matched, key=lambda r: (r.season_id is None, r.pk or 0))
            return best, level.name
    return None, None


@dataclass
class Quote:
    total_cents: int
    nights: int
    booking_mode: str
    price_unit: str
    rule_id: int
    rule_level: str
    season_id: Optional[int]
    base_cents: int
    children_cents: int
    billable_people: int

    def as_dict(self):
        return {
            "total_cents": self.total_cents,
            "total_dollar": self.total_cents / 100.0,
            "nights": self.nights,
            "booking_mode": self.booking_mode,
            "price_unit": self.price_unit,
            "rule_id": self.rule_id,
            "rule_level": self.rule_level,
            "season_id": self.season_id,
            "base_cents": self.base_cents,
            "children_cents": self.children_cents,
            "billable_people": self.billable_people,
        }


def candidate_rules(property, booking_mode, season_id):
    season_filter = Q(season__isnull=True)
    if season_id is not None:
        season_filter |= Q(season_id=season_id)
    return list(
        PricingRule.objects.filter(
            Q(property=property) | Q(property__isnull=True),
            season_filter,
            booking_mode=booking_mode,
        ).order_by("pk")
    )


def child_rate_cents(rule, property, booking_mode):
    if rule.children_amount_cents is not None:
        return rule.children_amount_cents
    if property == Property.TAHOE and booking_mode == BookingMode.ROOM:
        return lodging_settings.CHILD_FALLBACK_CENTS
    return 0


def resolve_price(
    property,
    booking_mode,
    check_in,
    check_out,
    room_ids=(),
    category_id=None,
    guests_count=1,
    children_count=0,
):
    property = parse_choice(Property, property)
    booking_mode = parse_choice(BookingMode, booking_mode)
    validate_range(check_in, check_out)
    if guests_count < 1:
        raise InvalidRequest("At least one guest is required")
    if children_count < 0:
        raise InvalidRequest("children_count cannot be negative")

    room_ids = list(room_ids)
    room = None
    if room_ids:
        room = Room.objects.filter(pk=room_ids[0], property=property).first()
        if room is None:
            raise InvalidRequest(f"Room {room_ids[0]} does not belong to {property}")
        category_id = room.category_id
    elif booking_mode == BookingMode.ROOM and category_id is None:
        raise InvalidRequest("A room is required for room bookings")

    season = season_for_date(property, check_in)
    season_id = season.pk if season else None
    rules = candidate_rules(property, booking_mode, season_id)
    rule, level = select_rule(rules, room.pk if room else None, category_id, season_id)
    if rule is None:
        logger.warning(
            "No pricing rule for %s/%s room=%s category=%s season=%s",
            property,
            booking_mode,
            room.pk if room else None,
            category_id,
            season_id,
        )
        raise NoPricingRuleFound(
            property=property, booking_mode=booking_mode, season_id=season_id
        )

    nights = (check_out - check_in).days
    children_cents = 0
    if rule.price_unit == PriceUnit.BUYOUT_FIXED:
        billable = guests_count
        base_cents = rule.amount_cents * nights
    elif rule.price_unit == PriceUnit.PER_GUEST_PER_DAY:
        billable = guests_count
        base_cents = rule.amount_cents * guests_count * nights
    else:
        # A multi-room stay is priced once for the whole party, without room minimums.
        if room is not None and len(room_ids) == 1:
            billable = room.billable_people(guests_count)
        else:
            billable = guests_count
        base_cents = rule.amount_cents * billable * nights
        children_cents = child_rate_cents(rule, property, booking_mode) * children_count * nights

    quote = Quote(
        total_cents=base_cents + children_cents,
        nights=nights,
        booking_mode=booking_mode,
        price_unit=rule.price_unit,
        rule_id=rule.pk,
        rule_level=level,
        season_id=season_id,
        base_cents=base_cents,
        children_cents=children_cents,
        billable_people=billable,
    )
    logger.debug(
        "Priced %s/%s %s..%s with rule %s: %s",
        property,
        booking_mode,
        check_in,
        check_out,
        rule.pk,
        quote.total_cents,
    )
    return quote
