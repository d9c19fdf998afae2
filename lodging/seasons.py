"""Recurring season lookup and the advisory limits seasons impose on bookings."""
from datetime import timedelta

from .conf import lodging_settings
from .models import Property, Season, parse_choice


def season_for_date(property, day, seasons=None, use_default=True):
    """
    Find the season whose month/day window contains ``day``, ignoring the year.

    Falls back to the property's default season when nothing matches and
    ``use_default`` is set. Returns None when neither exists.
    """
    property = parse_choice(Property, property)
    if seasons is None:
        seasons = list(Season.objects.filter(property=property).order_by("start_date", "pk"))
    for season in seasons:
        if season.contains(day):
            return season
    if use_default:
        for season in seasons:
            if season.is_default:
                return season
    return None


def max_nights_for(property, season):
    if season is not None and season.max_nights:
        return season.max_nights
    return lodging_settings.DEFAULT_MAX_NIGHTS.get(property)


def _advance_limit_warning(season, check_in, check_out, today):
    if not season or not season.advance_booking_days:
        return None
    max_date = today + timedelta(days=season.advance_booking_days)
    if check_in > max_date:
        edge = "check-in"
    elif check_out > max_date:
        edge = "check-out"
    else:
        return None
    return (
        f"{season.name} bookings can only be made {season.advance_booking_days} days "
        f"in advance; latest {edge} date is {max_date:%B %d, %Y}"
    )


def check_season_limits(property, check_in, check_out, today):
    """
    Advisory checks for advance-booking windows and maximum stay length.

    Both the check-in and check-out seasons apply when a stay crosses a season
    boundary. Returns a list of warning strings; an empty list means no limit
    was exceeded.
    """
    property = parse_choice(Property, property)
    seasons = list(Season.objects.filter(property=property).order_by("start_date", "pk"))
    checkin_season = season_for_date(property, check_in, seasons, use_default=False)
    checkout_season = season_for_date(property, check_out, seasons, use_default=False)

    warnings = []
    warning = _advance_limit_warning(checkin_season, check_in, check_out, today)
    if warning:
        warnings.append(warning)
    if checkout_season and checkin_season and checkout_season.pk != checkin_season.pk:
        warning = _advance_limit_warning(checkout_season, check_in, check_out, today)
        if warning:
            warnings.append(warning)

    nights = (check_out - check_in).days
    max_nights = max_nights_for(
        property, checkin_season or season_for_date(property, check_in, seasons)
    )
    if max_nights and nights > max_nights:
        warnings.append(f"Maximum {max_nights} nights allowed per booking")
    return warnings
