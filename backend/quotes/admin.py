from django.contrib import admin

from .models import ActivityLog, PricingOption, QuoteLine, Quotation


class ReadOnlyWhenLocked:
    def _locked(self, obj) -> bool:
        raise NotImplementedError

    def get_readonly_fields(self, request, obj=None):
        if obj and self._locked(obj):
            return [f.name for f in obj._meta.fields]
        return super().get_readonly_fields(request, obj)


@admin.register(Quotation)
class QuotationAdmin(admin.ModelAdmin):
    list_display = ("reference", "version", "status", "currency", "requires_approval", "validity_date", "updated_at")
    search_fields = ("reference",)
    list_filter = ("status", "requires_approval", "currency")
    date_hierarchy = "created_at"
    readonly_fields = ("version", "parent_version", "created_by", "created_at", "updated_at")


@admin.register(PricingOption)
class PricingOptionAdmin(ReadOnlyWhenLocked, admin.ModelAdmin):
    list_display = ("quotation", "name", "mode", "pol", "pod", "incoterm", "carrier", "transit_days")
    list_filter = ("mode", "incoterm")
    search_fields = ("quotation__reference", "carrier", "pol", "pod")

    def _locked(self, obj):
        return obj.quotation.is_locked


@admin.register(QuoteLine)
class QuoteLineAdmin(ReadOnlyWhenLocked, admin.ModelAdmin):
    list_display = ("option", "section", "description", "buy_price", "buy_currency", "markup_type",
                    "markup_value", "vat_rule", "source", "validity_date")
    list_filter = ("section", "source", "vat_rule", "settlement")
    search_fields = ("option__quotation__reference", "description", "vendor_name")

    def _locked(self, obj):
        return obj.option.quotation.is_locked


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ("quotation", "event", "actor", "created_at")
    list_filter = ("event",)
    search_fields = ("quotation__reference",)
    readonly_fields = ("quotation", "event", "payload", "actor", "created_at")
