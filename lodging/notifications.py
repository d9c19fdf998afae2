import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail

logger = logging.getLogger(__name__)


def lookup_user(user_id):
    user = get_user_model().objects.filter(pk=user_id).first()
    if user is None:
        return None
    return {
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
    }


def send_booking_confirmation(booking):
    """Email the guest their confirmation. Returns False instead of raising on failure."""
    contact = lookup_user(booking.user_id)
    if not contact or not contact["email"]:
        logger.warning("No email address for booking %s; confirmation skipped", booking.reference_id)
        return False

    subject = f"Booking confirmed: {booking.reference_id}"
    body = (
        f"Hi {contact['first_name'] or 'there'},\n\n"
        f"Your {booking.get_booking_mode_display().lower()} booking at "
        f"{booking.get_property_display()} is confirmed.\n"
        f"Check-in: {booking.check_in:%A, %B %d, %Y}\n"
        f"Check-out: {booking.check_out:%A, %B %d, %Y}\n"
        f"Guests: {booking.guests_count}\n"
        f"Total: ${booking.total_cents / 100.0:.2f}\n"
    )
    try:
        send_mail(
            subject,
            body,
            getattr(settings, "DEFAULT_FROM_EMAIL", None),
            [contact["email"]],
        )
    except Exception:
        logger.exception("Failed to send confirmation for %s", booking.reference_id)
        return False
    return True
