from django.core.management.base import BaseCommand
from django.utils import timezone

from pricing.catalogue import load_catalogue
from pricing.services.expiry import ExpiryLevel, expiring_lanes


class Command(BaseCommand):
    help = "Lists the lanes whose best active tariff expires soonest."

    def add_arguments(self, parser):
        parser.add_argument("--limit", type=int, default=5)

    def handle(self, *args, **opts):
        lanes = expiring_lanes(load_catalogue(), timezone.localdate(), limit=max(1, opts["limit"]))
        if not lanes:
            self.stdout.write(self.style.WARNING("No active tariffs found."))
            return

        urgent = 0
        for lane in lanes:
            line = f"{lane.lane}: {lane.level.value} ({lane.days_left} days, {lane.best_rate.id} {lane.best_rate.carrier})"
            if lane.level in (ExpiryLevel.EXPIRED, ExpiryLevel.CRITICAL):
                urgent += 1
                self.stdout.write(self.style.ERROR(line))
            elif lane.level == ExpiryLevel.WARNING:
                self.stdout.write(self.style.WARNING(line))
            else:
                self.stdout.write(line)

        self.stdout.write("-" * 20)
        if urgent:
            self.stdout.write(self.style.ERROR(f"{urgent} lane(s) need new rates within a week."))
        else:
            self.stdout.write(self.style.SUCCESS("No lane expires within a week."))
