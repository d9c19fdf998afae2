import logging
import re

from django.db import transaction

from .availability import lock_property
from .clock import resolve_clock
from .conf import lodging_settings
from .exceptions import InvalidDoorCode
from .models import DoorCode, Property, parse_choice

logger = logging.getLogger(__name__)

DOOR_CODE_RE = re.compile(r"^[A-Za-z0-9]{4,5}$")


def active_code(property):
    property = parse_choice(Property, property)
    return DoorCode.objects.filter(property=property, active_to__isnull=True).first()


def recent_codes(property, n=None):
    """The last ``n`` codes set for ``property``, newest first."""
    property = parse_choice(Property, property)
    n = n or lodging_settings.DOOR_CODE_HISTORY
    return list(DoorCode.objects.filter(property=property).order_by("-active_from", "-id")[:n])


def set_new_code(property, code, clock=None):
    """
    Rotate the property's door code.

    Closes the active code and opens ``code`` in the same transaction. Reusing
    one of the recent codes is allowed but reported in the returned warnings.
    """
    property = parse_choice(Property, property)
    code = (code or "").strip()
    if not DOOR_CODE_RE.match(code):
        raise InvalidDoorCode(code=code)
    now = resolve_clock(clock).now()

    warnings = []
    with transaction.atomic():
        lock_property(property)
        if any(previous.code == code for previous in recent_codes(property)):
            warnings.append(f"Code {code} was used recently for {Property(property).label}")
        DoorCode.objects.filter(property=property, active_to__isnull=True).update(active_to=now)
        door_code = DoorCode.objects.create(property=property, code=code, active_from=now)

    logger.info("Door code rotated for %s", property)
    return door_code, warnings
