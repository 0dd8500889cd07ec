# quotes/views.py
import logging

from django.db import transaction
from django.http import Http404
from django.utils import timezone

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import RoleApprovalPolicy
from pricing.catalogue import current_exchange_rates, load_catalogue
from pricing.dataclasses import Incoterm, Section, TransportMode
from pricing.models import TariffRate
from pricing.services import quotation_service as commands
from pricing.services.approval import (
    IllegalTransition,
    InvalidCommand,
    NotAuthorized,
    QuotationError,
    QuotationLocked,
    ReasonRequired,
    TransitionBlocked,
)
from pricing.services.comparator import compare_options
from pricing.services.tariff_matcher import Strategy

from . import repository
from .models import Quotation
from .serializers import (
    ActivityLogSerializer,
    AutoRateSerializer,
    CargoInputSerializer,
    CompareQuerySerializer,
    ExchangeRatesSerializer,
    LineCreateSerializer,
    LineUpdateSerializer,
    OptionComparisonSerializer,
    OptionCreateSerializer,
    QuotationCreateSerializer,
    QuotationSerializer,
    QuotationUpdateSerializer,
    RouteSerializer,
    TransitionSerializer,
)

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    IllegalTransition: status.HTTP_400_BAD_REQUEST,
    ReasonRequired: status.HTTP_400_BAD_REQUEST,
    InvalidCommand: status.HTTP_400_BAD_REQUEST,
    NotAuthorized: status.HTTP_403_FORBIDDEN,
    TransitionBlocked: status.HTTP_409_CONFLICT,
    QuotationLocked: status.HTTP_409_CONFLICT,
}


def error_response(exc: QuotationError) -> Response:
    code = ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    body = {"detail": str(exc), "error_code": exc.error_code}
    if isinstance(exc, TransitionBlocked):
        body["lines"] = [item.id for item in exc.lines]
    return Response(body, status=code)


class QuotationCommandView(APIView):
    """Loads the quotation snapshot, runs an engine command and persists its intents."""
    permission_classes = [IsAuthenticated]

    def snapshot(self, reference, version):
        try:
            return repository.load(reference, version)
        except repository.QuotationNotFound as e:
            raise Http404(str(e))

    def present(self, request, quotation, warnings=(), status_code=status.HTTP_200_OK):
        context = {
            'actor': request.user,
            'policy': RoleApprovalPolicy(),
            'today': timezone.localdate(),
        }
        data = dict(QuotationSerializer(quotation, context=context).data)
        data['warnings'] = list(warnings)
        return Response(data, status=status_code)

    def run(self, request, command, *args, status_code=status.HTTP_200_OK, **kwargs):
        try:
            result = command(*args, **kwargs)
        except QuotationError as e:
            logger.info("Rejected %s: %s", command.__name__, e)
            return error_response(e)
        repository.execute(result, request.user)
        return self.present(request, result.quotation, result.warnings, status_code)


# ---- Envelope ----

class QuotationListCreateView(QuotationCommandView):
    def get(self, request):
        rows = Quotation.objects.order_by('-updated_at')
        ref = request.query_params.get('reference')
        if ref:
            rows = rows.filter(reference=ref)
        return Response([
            {
                'reference': r.reference,
                'version': r.version,
                'status': r.status,
                'currency': r.currency,
                'requires_approval': r.requires_approval,
                'validity_date': r.validity_date,
                'updated_at': r.updated_at,
            }
            for r in rows
        ])

    def post(self, request):
        ser = QuotationCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        if Quotation.objects.filter(reference=data['reference']).exists():
            return Response({'detail': f"Quotation {data['reference']} already exists"},
                            status=status.HTTP_400_BAD_REQUEST)
        return self.run(
            request,
            commands.new_quotation,
            data['reference'],
            currency=data.get('currency'),
            exchange_rates=data.get('exchange_rates') or current_exchange_rates(),
            client=data['client'],
            mode=TransportMode(data['mode']),
            incoterm=Incoterm(data['incoterm']),
            pol=data['pol'].strip().upper(),
            pod=data['pod'].strip().upper(),
            payment_terms=data['payment_terms'],
            today=timezone.localdate(),
            status_code=status.HTTP_201_CREATED,
        )


class QuotationDetailView(QuotationCommandView):
    def get(self, request, reference, version):
        return self.present(request, self.snapshot(reference, version))

    def patch(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        ser = QuotationUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return self.run(request, commands.set_quote_currency, quotation, ser.validated_data['currency'])


class RevisionView(QuotationCommandView):
    def post(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        with transaction.atomic():
            return self.run(request, commands.create_revision, quotation,
                            next_version=repository.next_version(reference), actor=request.user,
                            status_code=status.HTTP_201_CREATED)


class ActivityView(QuotationCommandView):
    def get(self, request, reference, version):
        try:
            row = repository.get_row(reference, version)
        except repository.QuotationNotFound as e:
            raise Http404(str(e))
        return Response(ActivityLogSerializer(row.activity.select_related('actor'), many=True).data)


# ---- Options ----

class OptionCreateView(QuotationCommandView):
    def post(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        ser = OptionCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        if data.get('duplicate_of'):
            return self.run(request, commands.duplicate_option, quotation, data['duplicate_of'],
                            name=data.get('name'), status_code=status.HTTP_201_CREATED)
        return self.run(
            request,
            commands.add_option,
            quotation,
            name=data.get('name'),
            mode=TransportMode(data['mode']) if data.get('mode') else None,
            incoterm=Incoterm(data['incoterm']) if data.get('incoterm') else None,
            pol=data.get('pol'),
            pod=data.get('pod'),
            status_code=status.HTTP_201_CREATED,
        )


class OptionDetailView(QuotationCommandView):
    def delete(self, request, reference, version, option_id):
        return self.run(request, commands.remove_option, self.snapshot(reference, version), option_id)


class OptionActivateView(QuotationCommandView):
    def post(self, request, reference, version, option_id):
        return self.run(request, commands.set_active_option, self.snapshot(reference, version), option_id)


class RouteView(QuotationCommandView):
    def patch(self, request, reference, version, option_id):
        quotation = self.snapshot(reference, version)
        ser = RouteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return self.run(request, commands.update_route, quotation, option_id, **ser.validated_data)


class CargoView(QuotationCommandView):
    def put(self, request, reference, version, option_id):
        quotation = self.snapshot(reference, version)
        ser = CargoInputSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        cargo = ser.to_cargo()
        results = []
        try:
            if 'equipment' in request.data:
                # An explicit equipment list replaces the option's, even when empty.
                results.append(commands.update_equipment(quotation, option_id, cargo.equipment))
                quotation = results[-1].quotation
            results.append(commands.update_cargo(quotation, option_id, cargo))
        except QuotationError as e:
            return error_response(e)

        with transaction.atomic():
            for result in results:
                repository.execute(result, request.user)
        warnings = [w for r in results for w in r.warnings]
        return self.present(request, results[-1].quotation, warnings)


class AutoRateView(QuotationCommandView):
    def post(self, request, reference, version, option_id):
        quotation = self.snapshot(reference, version)
        ser = AutoRateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        today = timezone.localdate()

        if data.get('tariff'):
            tariff = TariffRate.objects.prefetch_related('charges').filter(reference=data['tariff']).first()
            if tariff is None:
                return Response({'detail': f"Tariff {data['tariff']} not found"}, status=status.HTTP_404_NOT_FOUND)
            return self.run(request, commands.apply_tariff, quotation, option_id, tariff.to_snapshot(),
                            today=today, policy=data.get('policy'))

        try:
            option = quotation.option(option_id)
        except KeyError:
            return error_response(InvalidCommand(f"Option {option_id} not found"))
        catalogue = load_catalogue(option.pol, option.pod) if option.pol and option.pod else ()
        strategy = Strategy(data['strategy']) if data.get('strategy') else None
        return self.run(request, commands.initialize_smart_lines, quotation, option_id, catalogue,
                        today=today, strategy=strategy)


# ---- Lines ----

class LineCreateView(QuotationCommandView):
    def post(self, request, reference, version, option_id):
        quotation = self.snapshot(reference, version)
        ser = LineCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = dict(ser.validated_data)
        data['section'] = Section(data['section'])
        return self.run(request, commands.add_line, quotation, option_id,
                        status_code=status.HTTP_201_CREATED, **data)


class LineDetailView(QuotationCommandView):
    def patch(self, request, reference, version, option_id, line_id):
        quotation = self.snapshot(reference, version)
        ser = LineUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        fields = dict(ser.validated_data)
        buy_price = fields.pop('buy_price', None)
        sell_ttc = fields.pop('sell_ttc', None)

        results = []
        try:
            if fields:
                results.append(commands.update_line(quotation, option_id, line_id, **fields))
                quotation = results[-1].quotation
            if buy_price is not None:
                results.append(commands.edit_line_cost(quotation, option_id, line_id, buy_price))
            elif sell_ttc is not None:
                results.append(commands.edit_line_sell(quotation, option_id, line_id, sell_ttc))
        except QuotationError as e:
            return error_response(e)
        if not results:
            return Response({'detail': 'Nothing to update'}, status=status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            for result in results:
                repository.execute(result, request.user)
        warnings = [w for r in results for w in r.warnings]
        return self.present(request, results[-1].quotation, warnings)

    def delete(self, request, reference, version, option_id, line_id):
        return self.run(request, commands.remove_line, self.snapshot(reference, version), option_id, line_id)


# ---- Quotation-level ----

class ExchangeRatesView(QuotationCommandView):
    def put(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        ser = ExchangeRatesSerializer(data=request.data)
        ser.is_valid(raise_exception=True)

        results = []
        try:
            for ccy, rate in ser.validated_data['rates'].items():
                results.append(commands.set_exchange_rate(quotation, ccy, rate))
                quotation = results[-1].quotation
        except QuotationError as e:
            return error_response(e)

        with transaction.atomic():
            for result in results:
                repository.execute(result, request.user)
        warnings = [w for r in results for w in r.warnings]
        return self.present(request, quotation, warnings)


class TransitionView(QuotationCommandView):
    def post(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        ser = TransitionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        return self.run(
            request,
            commands.transition,
            quotation,
            ser.validated_data['action'],
            actor=request.user,
            reason=ser.validated_data['reason'],
            today=timezone.localdate(),
            policy=RoleApprovalPolicy(),
        )


class CompareView(QuotationCommandView):
    def get(self, request, reference, version):
        quotation = self.snapshot(reference, version)
        ser = CompareQuerySerializer(data=request.query_params)
        ser.is_valid(raise_exception=True)
        rows = compare_options(quotation, sort_by=ser.validated_data['sort'])
        return Response(OptionComparisonSerializer(rows, many=True).data)
