from django.contrib import admin, messages
from django.utils import timezone

from pricing.models import ExchangeRate, RateCharge, TariffRate
from pricing.services.expiry import ExpiryLevel, expiring_lanes


class RateChargeInline(admin.TabularInline):
    model = RateCharge
    extra = 0
    fields = (
        "sort_order",
        "section",
        "name",
        "basis",
        "currency",
        "vat_rule",
        "unit_price",
        "price_20dv",
        "price_40dv",
        "price_40hc",
        "price_40rf",
        "min_price",
    )


@admin.register(TariffRate)
class TariffRateAdmin(admin.ModelAdmin):
    list_display = (
        "reference",
        "carrier",
        "pol",
        "pod",
        "mode",
        "incoterm",
        "status",
        "valid_from",
        "valid_to",
        "transit_days",
    )
    list_filter = ("mode", "incoterm", "status", "carrier")
    search_fields = ("reference", "carrier", "pol", "pod")
    inlines = [RateChargeInline]
    actions = ["check_expiry"]

    def check_expiry(self, request, queryset):
        catalogue = [t.to_snapshot() for t in queryset.prefetch_related("charges")]
        lanes = expiring_lanes(catalogue, timezone.localdate(), limit=len(catalogue) or 1)
        urgent = [lane for lane in lanes if lane.level != ExpiryLevel.OK]
        for lane in urgent:
            label = "expired" if lane.days_left < 0 else f"{lane.days_left} days left"
            messages.warning(request, f"Lane {lane.lane}: {lane.level.value} ({label}, best rate {lane.best_rate.id})")
        if not urgent:
            messages.info(request, "No selected lane expires within two weeks.")

    check_expiry.short_description = "Check lane expiry"


@admin.register(ExchangeRate)
class ExchangeRateAdmin(admin.ModelAdmin):
    list_display = ("currency", "rate", "as_of_ts", "source")
    list_filter = ("currency", "source")
    date_hierarchy = "as_of_ts"
