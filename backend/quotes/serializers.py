from __future__ import annotations

from datetime import date

from rest_framework import serializers

from pricing.dataclasses import (
    CargoProfile,
    Equipment,
    Incoterm,
    MarkupType,
    Package,
    Section,
    Settlement,
    TransportMode,
    VatRule,
)
from pricing.services.approval import Action, available_actions
from pricing.services.chargeable_weight import chargeable_weight
from pricing.services.comparator import SORT_KEYS
from pricing.services.expiry import line_validity_risk
from pricing.services.fx_service import FxConverter
from pricing.services.markup import compute_totals, price_line, price_lines
from pricing.services.utils import d

from .models import ActivityLog

DIMENSIONS = ('length_cm', 'width_cm', 'height_cm', 'weight_kg')


def _enum_choices(enum):
    return [m.value for m in enum]


class EnumField(serializers.ReadOnlyField):
    def to_representation(self, value):
        return getattr(value, 'value', value)


def money_field(**kwargs):
    return serializers.DecimalField(max_digits=None, decimal_places=2, read_only=True, **kwargs)


# ---------- INPUT SERIALIZERS ----------

class PackageSerializer(serializers.Serializer):
    quantity = serializers.IntegerField(min_value=1, default=1)
    package_type = serializers.CharField(default='PALLETS')
    length_cm = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    width_cm = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    height_cm = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=0)
    weight_kg = serializers.DecimalField(max_digits=12, decimal_places=3, min_value=0, default=0)
    stackable = serializers.BooleanField(default=True)


class EquipmentSerializer(serializers.Serializer):
    equipment_type = serializers.CharField()
    count = serializers.IntegerField(min_value=0, default=1)


class CargoInputSerializer(serializers.Serializer):
    packages = PackageSerializer(many=True, default=list)
    equipment = EquipmentSerializer(many=True, default=list)
    hs_code = serializers.CharField(allow_blank=True, default='')
    is_hazmat = serializers.BooleanField(default=False)
    is_reefer = serializers.BooleanField(default=False)

    def to_cargo(self) -> CargoProfile:
        data = self.validated_data
        return CargoProfile(
            packages=tuple(
                Package(**{k: d(v) if k in DIMENSIONS else v for k, v in p.items()})
                for p in data['packages']
            ),
            equipment=tuple(Equipment(**e) for e in data['equipment'] if e['count'] > 0),
            hs_code=data['hs_code'],
            is_hazmat=data['is_hazmat'],
            is_reefer=data['is_reefer'],
        )


class QuotationCreateSerializer(serializers.Serializer):
    reference = serializers.CharField(max_length=64)
    currency = serializers.CharField(max_length=3, required=False)
    client = serializers.DictField(default=dict)
    payment_terms = serializers.CharField(allow_blank=True, default='')
    mode = serializers.ChoiceField(choices=_enum_choices(TransportMode), default=TransportMode.SEA_FCL.value)
    incoterm = serializers.ChoiceField(choices=_enum_choices(Incoterm), default=Incoterm.FOB.value)
    pol = serializers.CharField(allow_blank=True, default='')
    pod = serializers.CharField(allow_blank=True, default='')
    exchange_rates = serializers.DictField(child=serializers.DecimalField(max_digits=18, decimal_places=8, min_value=0),
                                           required=False)


class OptionCreateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=64, required=False)
    duplicate_of = serializers.CharField(required=False)
    mode = serializers.ChoiceField(choices=_enum_choices(TransportMode), required=False)
    incoterm = serializers.ChoiceField(choices=_enum_choices(Incoterm), required=False)
    pol = serializers.CharField(required=False, allow_blank=True)
    pod = serializers.CharField(required=False, allow_blank=True)


class RouteSerializer(serializers.Serializer):
    mode = serializers.ChoiceField(choices=_enum_choices(TransportMode), required=False)
    incoterm = serializers.ChoiceField(choices=_enum_choices(Incoterm), required=False)
    pol = serializers.CharField(required=False, allow_blank=True)
    pod = serializers.CharField(required=False, allow_blank=True)


class LineCreateSerializer(serializers.Serializer):
    section = serializers.ChoiceField(choices=_enum_choices(Section))
    description = serializers.CharField(max_length=255, allow_blank=True, default='')
    buy_price = serializers.DecimalField(max_digits=18, decimal_places=4, default=0)
    buy_currency = serializers.CharField(max_length=3, required=False)
    markup_type = serializers.ChoiceField(choices=_enum_choices(MarkupType), default=MarkupType.PERCENT.value)
    markup_value = serializers.DecimalField(max_digits=18, decimal_places=4, required=False)
    vat_rule = serializers.ChoiceField(choices=_enum_choices(VatRule), default=VatRule.STD_20.value)
    vendor_name = serializers.CharField(allow_blank=True, default='')
    validity_date = serializers.DateField(required=False, allow_null=True)
    settlement = serializers.ChoiceField(choices=_enum_choices(Settlement), default=Settlement.CONFIRMED.value)


class LineUpdateSerializer(serializers.Serializer):
    """Partial line edit. `buy_price` and `sell_ttc` are mutually exclusive price edits."""
    section = serializers.ChoiceField(choices=_enum_choices(Section), required=False)
    description = serializers.CharField(max_length=255, allow_blank=True, required=False)
    buy_currency = serializers.CharField(max_length=3, required=False)
    markup_type = serializers.ChoiceField(choices=_enum_choices(MarkupType), required=False)
    markup_value = serializers.DecimalField(max_digits=18, decimal_places=4, required=False)
    vat_rule = serializers.ChoiceField(choices=_enum_choices(VatRule), required=False)
    vendor_name = serializers.CharField(allow_blank=True, required=False)
    validity_date = serializers.DateField(required=False, allow_null=True)
    settlement = serializers.ChoiceField(choices=_enum_choices(Settlement), required=False)
    buy_price = serializers.DecimalField(max_digits=18, decimal_places=4, required=False)
    sell_ttc = serializers.DecimalField(max_digits=18, decimal_places=4, required=False)

    def validate(self, attrs):
        if 'buy_price' in attrs and 'sell_ttc' in attrs:
            raise serializers.ValidationError("Edit either buy_price or sell_ttc, not both.")
        return attrs


class ExchangeRatesSerializer(serializers.Serializer):
    rates = serializers.DictField(child=serializers.DecimalField(max_digits=18, decimal_places=8))


class QuotationUpdateSerializer(serializers.Serializer):
    currency = serializers.CharField(max_length=3)


class TransitionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=_enum_choices(Action))
    reason = serializers.CharField(allow_blank=True, default='')


class AutoRateSerializer(serializers.Serializer):
    strategy = serializers.ChoiceField(choices=['CHEAPEST', 'FASTEST', 'MOST_RELIABLE'], required=False)
    policy = serializers.ChoiceField(choices=['FILL_GAPS', 'OVERWRITE'], required=False)
    tariff = serializers.CharField(required=False, help_text="Apply this tariff reference instead of matching")


class CompareQuerySerializer(serializers.Serializer):
    sort = serializers.ChoiceField(choices=list(SORT_KEYS), default='total')


# ---------- OUTPUT SERIALIZERS (engine snapshots) ----------

class SectionTotalsSerializer(serializers.Serializer):
    net = money_field()
    vat = money_field()
    gross = money_field()
    cost = money_field()
    margin = money_field()
    lines = serializers.IntegerField(read_only=True)


class OptionTotalsSerializer(serializers.Serializer):
    currency = serializers.CharField(read_only=True)
    net = money_field()
    vat = money_field()
    gross = money_field()
    cost = money_field()
    margin = money_field()
    margin_pct = money_field()
    by_section = serializers.SerializerMethodField()
    by_settlement = serializers.SerializerMethodField()

    def get_by_section(self, obj):
        return {k.value: SectionTotalsSerializer(v).data for k, v in obj.by_section.items()}

    def get_by_settlement(self, obj):
        return {k.value: SectionTotalsSerializer(v).data for k, v in obj.by_settlement.items()}


class QuoteLineSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    section = EnumField()
    description = serializers.CharField(read_only=True)
    buy_price = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True)
    buy_currency = serializers.CharField(read_only=True)
    markup_type = EnumField()
    markup_value = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True)
    vat_rule = EnumField()
    vendor_name = serializers.CharField(read_only=True)
    source = EnumField()
    tariff_charge_ref = serializers.CharField(read_only=True, allow_null=True)
    validity_date = serializers.DateField(read_only=True, allow_null=True)
    settlement = EnumField()
    pricing = serializers.SerializerMethodField()
    validity_risk = serializers.SerializerMethodField()

    def get_pricing(self, item):
        p = price_line(item, self.context['fx'], self.context['currency'])
        money = serializers.DecimalField(max_digits=None, decimal_places=2)
        return {
            'cost_base': money.to_representation(p.cost_base),
            'sell_base': money.to_representation(p.sell_base),
            'sell': money.to_representation(p.sell_target),
            'vat': money.to_representation(p.vat),
            'sell_ttc': money.to_representation(p.sell_ttc),
            'margin_pct': money.to_representation(p.margin_pct),
        }

    def get_validity_risk(self, item):
        risk = line_validity_risk(item, self.context.get('quote_validity'), self.context['today'])
        return risk.value if risk else None


class PricingOptionSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    mode = EnumField()
    pol = serializers.CharField(read_only=True)
    pod = serializers.CharField(read_only=True)
    incoterm = EnumField()
    carrier = serializers.CharField(read_only=True)
    transit_days = serializers.IntegerField(read_only=True, allow_null=True)
    tariff_id = serializers.CharField(read_only=True, allow_null=True)
    equipment = serializers.SerializerMethodField()
    cargo = serializers.SerializerMethodField()
    lines = serializers.SerializerMethodField()
    totals = serializers.SerializerMethodField()

    def get_equipment(self, opt):
        return [{'equipment_type': e.equipment_type, 'count': e.count} for e in opt.equipment]

    def get_cargo(self, opt):
        cargo = opt.cargo
        return {
            'packages': PackageSerializer(cargo.packages, many=True).data,
            'hs_code': cargo.hs_code,
            'is_hazmat': cargo.is_hazmat,
            'is_reefer': cargo.is_reefer,
            'total_packages': cargo.total_packages,
            'total_weight_kg': str(cargo.total_weight_kg),
            'total_volume_m3': str(cargo.total_volume_m3),
            'chargeable_weight_kg': str(chargeable_weight(cargo, opt.mode)),
        }

    def get_lines(self, opt):
        items = [item for item, _ in price_lines(opt, self.context['fx'], self.context['currency'])]
        return QuoteLineSerializer(items, many=True, context=self.context).data

    def get_totals(self, opt):
        totals = opt.totals or compute_totals(opt, self.context['fx'], self.context['currency'])
        return OptionTotalsSerializer(totals).data


class QuotationSerializer(serializers.Serializer):
    reference = serializers.CharField(read_only=True)
    version = serializers.IntegerField(read_only=True)
    parent_version = serializers.IntegerField(read_only=True, allow_null=True)
    currency = serializers.CharField(read_only=True)
    exchange_rates = serializers.SerializerMethodField()
    client = serializers.DictField(read_only=True)
    validity_date = serializers.DateField(read_only=True, allow_null=True)
    payment_terms = serializers.CharField(read_only=True)
    status = EnumField()
    locked = serializers.BooleanField(read_only=True)
    approval = serializers.SerializerMethodField()
    active_option_id = serializers.CharField(read_only=True)
    options = serializers.SerializerMethodField()
    totals = serializers.SerializerMethodField()
    available_actions = serializers.SerializerMethodField()

    def _snapshot_context(self, quotation):
        ctx = dict(self.context)
        ctx.setdefault('today', date.today())
        ctx['fx'] = FxConverter(quotation.exchange_rates)
        ctx['currency'] = quotation.currency
        ctx['quote_validity'] = quotation.validity_date
        return ctx

    def get_exchange_rates(self, obj):
        return {k: str(v) for k, v in sorted(obj.exchange_rates.items())}

    def get_approval(self, obj):
        a = obj.approval
        return {
            'requires_approval': a.requires_approval,
            'requested_by': a.requested_by,
            'approved_by': a.approved_by,
            'rejection_reason': a.rejection_reason,
            'cancellation_reason': a.cancellation_reason,
            'reason': a.reason,
            'triggers': [
                {'code': t.code, 'message': t.message, 'severity': t.severity} for t in a.triggers
            ],
        }

    def get_options(self, obj):
        return PricingOptionSerializer(obj.options, many=True, context=self._snapshot_context(obj)).data

    def get_totals(self, obj):
        ctx = self._snapshot_context(obj)
        opt = obj.active_option
        return OptionTotalsSerializer(opt.totals or compute_totals(opt, ctx['fx'], ctx['currency'])).data

    def get_available_actions(self, obj):
        ctx = self._snapshot_context(obj)
        return [a.value for a in available_actions(obj, ctx.get('actor'), ctx['today'], ctx.get('policy'))]


class OptionComparisonSerializer(serializers.Serializer):
    option_id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    total_payable = money_field()
    net = money_field()
    margin_pct = money_field()
    transit_days = serializers.IntegerField(read_only=True, allow_null=True)
    carrier = serializers.CharField(read_only=True)
    equipment_summary = serializers.CharField(read_only=True)
    route_summary = serializers.CharField(read_only=True)
    is_active = serializers.BooleanField(read_only=True)
    badges = serializers.ListField(child=serializers.CharField(), read_only=True)


class ActivityLogSerializer(serializers.ModelSerializer):
    actor = serializers.SlugRelatedField(slug_field='username', read_only=True)

    class Meta:
        model = ActivityLog
        fields = ['event', 'payload', 'actor', 'created_at']
