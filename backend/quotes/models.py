from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from pricing.dataclasses import (
    Incoterm,
    LineSource,
    MarkupType,
    QuoteStatus,
    Section,
    Settlement,
    TransportMode,
    VatRule,
    LOCKED_STATUSES,
)


def _choices(enum):
    return [(m.value, m.value.replace('_', ' ').title()) for m in enum]


class Quotation(models.Model):
    """One version of a client quotation; revisions are separate rows sharing the reference."""
    reference = models.CharField(max_length=64)
    version = models.PositiveIntegerField(default=1)
    parent_version = models.PositiveIntegerField(blank=True, null=True)
    client = models.JSONField(default=dict, blank=True)
    currency = models.CharField(max_length=3)
    exchange_rates = models.JSONField(default=dict)
    validity_date = models.DateField(blank=True, null=True)
    payment_terms = models.CharField(max_length=128, blank=True, default='')
    active_option_key = models.CharField(max_length=32)

    status = models.CharField(max_length=12, choices=_choices(QuoteStatus), default=QuoteStatus.DRAFT.value)
    requires_approval = models.BooleanField(default=False)
    requested_by = models.CharField(max_length=150, blank=True, null=True)
    approved_by = models.CharField(max_length=150, blank=True, null=True)
    rejection_reason = models.TextField(blank=True, null=True)
    cancellation_reason = models.TextField(blank=True, null=True)
    approval_reason = models.TextField(blank=True, null=True)
    approval_triggers = models.JSONField(default=list, blank=True)

    created_by = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = [('reference', 'version')]
        indexes = [
            models.Index(fields=['reference', '-version'], name='quotes_quot_referen_3c9e52_idx'),
            models.Index(fields=['status', '-updated_at'], name='quotes_quot_status_8f14ab_idx'),
        ]
        ordering = ['reference', '-version']

    @property
    def is_locked(self) -> bool:
        return self.status in {s.value for s in LOCKED_STATUSES}

    def __str__(self):
        return f"{self.reference} v{self.version}"


class PricingOption(models.Model):
    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='options')
    key = models.CharField(max_length=32)
    position = models.PositiveIntegerField(default=0)
    name = models.CharField(max_length=64)
    mode = models.CharField(max_length=10, choices=_choices(TransportMode))
    pol = models.CharField(max_length=16, blank=True, default='')
    pod = models.CharField(max_length=16, blank=True, default='')
    incoterm = models.CharField(max_length=3, choices=_choices(Incoterm))
    equipment = models.JSONField(default=list, blank=True)
    cargo = models.JSONField(default=dict, blank=True)
    carrier = models.CharField(max_length=128, blank=True, default='')
    transit_days = models.PositiveIntegerField(blank=True, null=True)
    tariff_reference = models.CharField(max_length=64, blank=True, null=True)
    totals = models.JSONField(default=dict, blank=True)

    class Meta:
        unique_together = [('quotation', 'key')]
        ordering = ['position', 'id']

    def save(self, *args, **kwargs):
        if self.quotation.is_locked:
            raise ValidationError("This quotation is locked and cannot be modified.")
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.quotation} / {self.name}"


class QuoteLine(models.Model):
    option = models.ForeignKey(PricingOption, on_delete=models.CASCADE, related_name='lines')
    key = models.CharField(max_length=32)
    position = models.PositiveIntegerField(default=0)
    section = models.CharField(max_length=12, choices=_choices(Section))
    description = models.CharField(max_length=255, blank=True, default='')
    # Solved prices keep their full precision; rounding happens on totals.
    buy_price = models.DecimalField(max_digits=28, decimal_places=10, default=0)
    buy_currency = models.CharField(max_length=3, default='USD')
    markup_type = models.CharField(max_length=12, choices=_choices(MarkupType), default=MarkupType.PERCENT.value)
    markup_value = models.DecimalField(max_digits=28, decimal_places=10, default=0)
    vat_rule = models.CharField(max_length=16, choices=_choices(VatRule), default=VatRule.STD_20.value)
    vendor_name = models.CharField(max_length=128, blank=True, default='')
    source = models.CharField(max_length=16, choices=_choices(LineSource), default=LineSource.MANUAL.value)
    tariff_charge_ref = models.CharField(max_length=96, blank=True, null=True)
    validity_date = models.DateField(blank=True, null=True)
    settlement = models.CharField(max_length=12, choices=_choices(Settlement), default=Settlement.CONFIRMED.value)

    class Meta:
        unique_together = [('option', 'key')]
        ordering = ['position', 'id']

    def save(self, *args, **kwargs):
        if self.pk and self.option.quotation.is_locked:
            raise ValidationError("This quotation is locked and cannot be modified.")
        if not self.pk and self.option.quotation.is_locked:
            raise ValidationError("This quotation is locked and cannot accept new lines.")
        return super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.option} / {self.section} {self.description}"


class ActivityLog(models.Model):
    quotation = models.ForeignKey(Quotation, on_delete=models.CASCADE, related_name='activity')
    event = models.CharField(max_length=32)
    payload = models.JSONField(default=dict, blank=True)
    actor = models.ForeignKey(settings.AUTH_USER_MODEL, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['created_at', 'id']
        indexes = [models.Index(fields=['quotation', 'created_at'], name='quotes_acti_quotati_2b7d90_idx')]

    def __str__(self):
        return f"{self.quotation} {self.event} @ {self.created_at:%Y-%m-%d %H:%M}"
