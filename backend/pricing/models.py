from decimal import Decimal
from typing import Dict

from django.db import models

from .dataclasses import (
    CostBasis,
    Incoterm,
    RateCharge as RateChargeSnapshot,
    Section,
    TariffRate as TariffRateSnapshot,
    TariffStatus,
    TransportMode,
    VatRule,
)


def _choices(enum):
    return [(m.value, m.value.replace('_', ' ').title()) for m in enum]


class TariffRate(models.Model):
    id = models.BigAutoField(primary_key=True)
    reference = models.CharField(max_length=64, unique=True)
    carrier = models.CharField(max_length=128)
    pol = models.CharField(max_length=16, help_text="Port/place of loading code, e.g. MACAS")
    pod = models.CharField(max_length=16, help_text="Port/place of discharge code")
    mode = models.CharField(max_length=10, choices=_choices(TransportMode))
    incoterm = models.CharField(max_length=3, choices=_choices(Incoterm))
    status = models.CharField(max_length=10, choices=_choices(TariffStatus), default=TariffStatus.DRAFT.value)
    valid_from = models.DateField()
    valid_to = models.DateField()
    transit_days = models.PositiveIntegerField(blank=True, null=True)
    reliability = models.DecimalField(max_digits=5, decimal_places=2, blank=True, null=True,
                                      help_text="On-time score 0-100")
    notes = models.TextField(blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'tariff_rates'
        indexes = [
            models.Index(fields=['pol', 'pod', 'mode'], name='tariff_rate_pol_0b6f1e_idx'),
            models.Index(fields=['status', 'valid_to'], name='tariff_rate_status_5d2c8a_idx'),
        ]
        ordering = ['id']

    def save(self, *args, **kwargs):
        self.pol = (self.pol or '').strip().upper()
        self.pod = (self.pod or '').strip().upper()
        return super().save(*args, **kwargs)

    def to_snapshot(self) -> TariffRateSnapshot:
        sections: Dict[Section, list] = {s: [] for s in Section}
        for charge in self.charges.all():
            sections[Section(charge.section)].append(charge.to_snapshot())
        return TariffRateSnapshot(
            id=self.reference,
            carrier=self.carrier,
            pol=self.pol,
            pod=self.pod,
            mode=TransportMode(self.mode),
            incoterm=Incoterm(self.incoterm),
            status=TariffStatus(self.status),
            valid_from=self.valid_from,
            valid_to=self.valid_to,
            transit_days=self.transit_days,
            reliability=self.reliability,
            origin_charges=tuple(sections[Section.ORIGIN]),
            freight_charges=tuple(sections[Section.FREIGHT]),
            destination_charges=tuple(sections[Section.DESTINATION]),
        )

    def __str__(self):
        return f"{self.reference} {self.carrier} {self.pol}-{self.pod} ({self.mode}/{self.incoterm})"


class RateCharge(models.Model):
    id = models.BigAutoField(primary_key=True)
    tariff = models.ForeignKey(TariffRate, on_delete=models.CASCADE, related_name='charges')
    section = models.CharField(max_length=12, choices=_choices(Section))
    name = models.CharField(max_length=128)
    basis = models.CharField(max_length=16, choices=_choices(CostBasis), default=CostBasis.FLAT.value)
    currency = models.CharField(max_length=3, default='USD')
    vat_rule = models.CharField(max_length=16, choices=_choices(VatRule), default=VatRule.STD_20.value)
    unit_price = models.DecimalField(max_digits=18, decimal_places=4, default=0)
    price_20dv = models.DecimalField(max_digits=18, decimal_places=4, blank=True, null=True)
    price_40dv = models.DecimalField(max_digits=18, decimal_places=4, blank=True, null=True)
    price_40hc = models.DecimalField(max_digits=18, decimal_places=4, blank=True, null=True)
    price_40rf = models.DecimalField(max_digits=18, decimal_places=4, blank=True, null=True)
    min_price = models.DecimalField(max_digits=18, decimal_places=4, blank=True, null=True)
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = 'tariff_rate_charges'
        # Freight charge order matters: the first one is the headline price.
        ordering = ['sort_order', 'id']

    def to_snapshot(self) -> RateChargeSnapshot:
        return RateChargeSnapshot(
            id=str(self.pk) if self.pk else None,
            name=self.name,
            basis=CostBasis(self.basis),
            currency=self.currency.upper(),
            vat_rule=VatRule(self.vat_rule),
            unit_price=self.unit_price,
            price_20dv=self.price_20dv,
            price_40dv=self.price_40dv,
            price_40hc=self.price_40hc,
            price_40rf=self.price_40rf,
            min_price=self.min_price,
        )

    def __str__(self):
        return f"{self.tariff.reference} {self.section} {self.name}"


class ExchangeRate(models.Model):
    """Price of one unit of `currency` in base-currency units, as of a timestamp."""
    id = models.BigAutoField(primary_key=True)
    as_of_ts = models.DateTimeField()
    currency = models.CharField(max_length=3)
    rate = models.DecimalField(max_digits=18, decimal_places=8)
    source = models.CharField(max_length=32, blank=True, default='')

    class Meta:
        db_table = 'exchange_rates'
        unique_together = (('as_of_ts', 'currency'),)
        indexes = [models.Index(fields=['currency', '-as_of_ts'], name='exchange_ra_currenc_7a41c3_idx')]

    @classmethod
    def latest_table(cls) -> Dict[str, Decimal]:
        table: Dict[str, Decimal] = {}
        for row in cls.objects.order_by('currency', '-as_of_ts'):
            table.setdefault(row.currency.upper(), row.rate)
        return table

    def __str__(self):
        return f"{self.currency} {self.rate} @ {self.as_of_ts:%Y-%m-%d %H:%M}"
