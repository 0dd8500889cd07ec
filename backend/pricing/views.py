import logging

from django.utils import timezone
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .catalogue import load_catalogue
from .dataclasses import Incoterm, TransportMode
from .serializers import LaneExpirySerializer, MatchQuerySerializer, MatchResultSerializer
from .services.expiry import expiring_lanes
from .services.tariff_matcher import MatchQuery, Strategy, find_best_match

logger = logging.getLogger(__name__)


class TariffMatchView(APIView):
    """Diagnose which tariff (if any) would price a route, and why not."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ser = MatchQuerySerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        data = ser.validated_data
        query = MatchQuery(
            pol=data['pol'].strip().upper(),
            pod=data['pod'].strip().upper(),
            mode=TransportMode(data['mode']) if data.get('mode') else None,
            incoterm=Incoterm(data['incoterm']) if data.get('incoterm') else None,
            date=data.get('date') or timezone.localdate(),
        )
        catalogue = load_catalogue(query.pol, query.pod) if query.pol and query.pod else ()
        strategy = Strategy(data['strategy']) if data.get('strategy') else None
        result = find_best_match(catalogue, query, strategy)
        return Response(MatchResultSerializer(result).data, status=status.HTTP_200_OK)


class ExpiringLanesView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            limit = max(1, int(request.query_params.get('limit', 5)))
        except ValueError:
            return Response({'detail': 'limit must be an integer'}, status=status.HTTP_400_BAD_REQUEST)
        lanes = expiring_lanes(load_catalogue(), timezone.localdate(), limit=limit)
        return Response(LaneExpirySerializer(lanes, many=True).data)
