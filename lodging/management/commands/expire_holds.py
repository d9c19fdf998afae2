from django.core.management.base import BaseCommand

from lodging.bookings import expire_holds


class Command(BaseCommand):
    help = 'Cancel held bookings whose payment window has passed'

    def handle(self, *args, **options):
        count = expire_holds()
        self.stdout.write(self.style.SUCCESS(f'Released {count} expired holds'))
