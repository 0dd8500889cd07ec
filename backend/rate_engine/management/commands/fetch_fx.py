from __future__ import annotations

from typing import List

from django.core.management.base import BaseCommand, CommandError

from rate_engine.fx import provider_table, refresh_fx


def parse_currencies(arg: str) -> List[str]:
    return [part.strip().upper() for part in (arg or "").split(",") if part.strip()]


class Command(BaseCommand):
    help = "Store the current FX table (configured baseline or FX_BASELINE_RATES) as ExchangeRate rows."

    def add_arguments(self, parser):
        parser.add_argument("--currencies", type=str, help="Comma-separated codes to store, e.g. USD,EUR (default: all)")
        parser.add_argument("--provider", type=str, default="baseline", help="FX source to use (baseline|env)")

    def handle(self, *args, **options):
        provider_name = options["provider"]
        try:
            table = provider_table(provider_name)
        except ValueError as e:
            raise CommandError(str(e))
        if not table:
            raise CommandError(f"Provider '{provider_name}' returned no rates")

        label = provider_name.strip().upper()
        rows = refresh_fx(table, currencies=parse_currencies(options.get("currencies")), source_label=label)
        if not rows:
            self.stdout.write(self.style.WARNING("No rates stored"))
        for r in rows:
            note = f" (moved {r.anomaly_pct * 100:.2f}%)" if r.anomaly_pct else ""
            self.stdout.write(self.style.SUCCESS(
                f"Saved {r.currency} {r.rate} @ {r.as_of_ts.isoformat()} [{r.source}]{note}"
            ))
