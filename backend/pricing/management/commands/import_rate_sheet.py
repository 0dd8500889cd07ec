from datetime import date
from pathlib import Path

from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from pricing.dataclasses import Incoterm, Section, TariffStatus, TransportMode, VatRule
from pricing.models import RateCharge, TariffRate
from pricing.services.tariff_import import COLUMN_TYPES, parse_rate_grid


def _enum_value(enum, raw, flag):
    try:
        return enum(raw.strip().upper()).value
    except ValueError:
        raise CommandError(f"Invalid {flag} '{raw}' (choose from {', '.join(m.value for m in enum)})")


class Command(BaseCommand):
    help = "Imports a tab-separated rate grid (copied from a carrier sheet) as a tariff with container charges."

    def add_arguments(self, parser):
        parser.add_argument("path", type=str, help="TSV file; the first row is the header")
        parser.add_argument("--reference", required=True)
        parser.add_argument("--carrier", required=True)
        parser.add_argument("--pol", required=True)
        parser.add_argument("--pod", required=True)
        parser.add_argument("--valid-from", required=True, type=date.fromisoformat)
        parser.add_argument("--valid-to", required=True, type=date.fromisoformat)
        parser.add_argument("--mode", default=TransportMode.SEA_FCL.value)
        parser.add_argument("--incoterm", default=Incoterm.FOB.value)
        parser.add_argument("--section", default=Section.FREIGHT.value)
        parser.add_argument("--currency", default="USD")
        parser.add_argument("--vat-rule", default=VatRule.EXPORT_0_ART92.value)
        parser.add_argument("--transit-days", type=int)
        parser.add_argument("--columns", type=str,
                            help=f"Comma-separated column roles overriding detection ({'|'.join(COLUMN_TYPES)})")
        parser.add_argument("--no-header", action="store_true", help="The first row is data; requires --columns")
        parser.add_argument("--activate", action="store_true", help="Create the tariff as ACTIVE instead of DRAFT")
        parser.add_argument("--replace", action="store_true", help="Replace the charges of an existing tariff")

    def handle(self, *args, **opts):
        path = Path(opts["path"])
        if not path.exists():
            raise CommandError(f"File not found: {path}")
        if opts["valid_to"] < opts["valid_from"]:
            raise CommandError("--valid-to is before --valid-from")

        mode = _enum_value(TransportMode, opts["mode"], "--mode")
        incoterm = _enum_value(Incoterm, opts["incoterm"], "--incoterm")
        section = _enum_value(Section, opts["section"], "--section")
        vat_rule = VatRule(_enum_value(VatRule, opts["vat_rule"], "--vat-rule"))
        mappings = [c.strip().upper() for c in opts["columns"].split(",")] if opts.get("columns") else None

        try:
            result = parse_rate_grid(
                path.read_text(encoding="utf-8"), opts["currency"], mappings, vat_rule, header=not opts["no_header"],
            )
        except ValueError as e:
            raise CommandError(str(e))
        for warning in result.warnings:
            self.stdout.write(self.style.WARNING(warning))
        if not result.charges:
            raise CommandError("Nothing imported")

        existing = TariffRate.objects.filter(reference=opts["reference"]).first()
        if existing and not opts["replace"]:
            raise CommandError(f"Tariff {opts['reference']} already exists (use --replace)")

        with transaction.atomic():
            tariff, _ = TariffRate.objects.update_or_create(
                reference=opts["reference"],
                defaults={
                    "carrier": opts["carrier"],
                    "pol": opts["pol"],
                    "pod": opts["pod"],
                    "mode": mode,
                    "incoterm": incoterm,
                    "status": (TariffStatus.ACTIVE if opts["activate"] else TariffStatus.DRAFT).value,
                    "valid_from": opts["valid_from"],
                    "valid_to": opts["valid_to"],
                    "transit_days": opts.get("transit_days"),
                },
            )
            tariff.charges.filter(section=section).delete()
            RateCharge.objects.bulk_create([
                RateCharge(
                    tariff=tariff,
                    section=section,
                    name=charge.name,
                    basis=charge.basis.value,
                    currency=charge.currency,
                    vat_rule=charge.vat_rule.value,
                    price_20dv=charge.price_20dv,
                    price_40dv=charge.price_40dv,
                    price_40hc=charge.price_40hc,
                    sort_order=i,
                )
                for i, charge in enumerate(result.charges)
            ])

        self.stdout.write(f"Columns: {', '.join(result.mappings)}")
        self.stdout.write(self.style.SUCCESS(
            f"Imported {len(result.charges)} {section} charges into {tariff.reference} ({result.skipped} rows skipped)"
        ))
