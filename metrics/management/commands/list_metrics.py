from django.core.management.base import BaseCommand

from metrics.services import default_registry


class Command(BaseCommand):
    help = "List the registered metric calculators."

    def handle(self, *args, **options):
        listing = default_registry().list_all()
        for key, info in listing.items():
            self.stdout.write(f"{key:<30} {info['unit']:<5} {info['label']}: {info['description']}")
        self.stdout.write(f"{len(listing)} metric(s) registered.")
