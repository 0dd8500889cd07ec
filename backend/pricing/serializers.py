from __future__ import annotations

from rest_framework import serializers

from .dataclasses import Incoterm, TransportMode
from .services.tariff_matcher import Strategy


class MatchQuerySerializer(serializers.Serializer):
    pol = serializers.CharField(allow_blank=True, default='')
    pod = serializers.CharField(allow_blank=True, default='')
    mode = serializers.ChoiceField(choices=[m.value for m in TransportMode], required=False, allow_null=True)
    incoterm = serializers.ChoiceField(choices=[i.value for i in Incoterm], required=False, allow_null=True)
    date = serializers.DateField(required=False)
    strategy = serializers.ChoiceField(choices=[s.value for s in Strategy], required=False, allow_null=True)


class RateChargeSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True, allow_null=True)
    name = serializers.CharField(read_only=True)
    basis = serializers.SerializerMethodField()
    currency = serializers.CharField(read_only=True)
    vat_rule = serializers.SerializerMethodField()
    unit_price = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True)
    price_20dv = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, allow_null=True)
    price_40dv = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, allow_null=True)
    price_40hc = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, allow_null=True)
    price_40rf = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, allow_null=True)
    min_price = serializers.DecimalField(max_digits=None, decimal_places=4, read_only=True, allow_null=True)

    def get_basis(self, obj):
        return obj.basis.value

    def get_vat_rule(self, obj):
        return obj.vat_rule.value


class TariffRateSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    carrier = serializers.CharField(read_only=True)
    pol = serializers.CharField(read_only=True)
    pod = serializers.CharField(read_only=True)
    mode = serializers.SerializerMethodField()
    incoterm = serializers.SerializerMethodField()
    status = serializers.SerializerMethodField()
    valid_from = serializers.DateField(read_only=True)
    valid_to = serializers.DateField(read_only=True)
    transit_days = serializers.IntegerField(read_only=True, allow_null=True)
    reliability = serializers.DecimalField(max_digits=None, decimal_places=2, read_only=True, allow_null=True)
    origin_charges = RateChargeSerializer(many=True, read_only=True)
    freight_charges = RateChargeSerializer(many=True, read_only=True)
    destination_charges = RateChargeSerializer(many=True, read_only=True)

    def get_mode(self, obj):
        return obj.mode.value

    def get_incoterm(self, obj):
        return obj.incoterm.value

    def get_status(self, obj):
        return obj.status.value


class MatchResultSerializer(serializers.Serializer):
    reason = serializers.SerializerMethodField()
    matched = serializers.BooleanField(read_only=True)
    message = serializers.CharField(read_only=True)
    available_incoterms = serializers.SerializerMethodField()
    rate = TariffRateSerializer(read_only=True, allow_null=True)
    candidates = serializers.SerializerMethodField()

    def get_reason(self, obj):
        return obj.reason.value

    def get_available_incoterms(self, obj):
        return [i.value for i in obj.available_incoterms]

    def get_candidates(self, obj):
        return [
            {'id': r.id, 'carrier': r.carrier, 'transit_days': r.transit_days, 'valid_to': r.valid_to.isoformat()}
            for r in obj.candidates
        ]


class LaneExpirySerializer(serializers.Serializer):
    lane = serializers.CharField(read_only=True)
    valid_to = serializers.DateField(read_only=True)
    days_left = serializers.IntegerField(read_only=True)
    level = serializers.SerializerMethodField()
    best_rate = serializers.SerializerMethodField()
    rates = serializers.SerializerMethodField()

    def get_level(self, obj):
        return obj.level.value

    def get_best_rate(self, obj):
        return {'id': obj.best_rate.id, 'carrier': obj.best_rate.carrier}

    def get_rates(self, obj):
        return len(obj.rates)
