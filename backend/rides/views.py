from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from django.utils import timezone

from services.pricing import calculate_fare, lookup_route
from .serializers import FareQuoteSerializer, KnownRouteSerializer, known_routes


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def fare_quote(request):
    """
    Quote a fare before booking.

    Body: pickup, destination, ride_kind (Solo|Shared), optional when.
    Unknown routes are priced on the default distance and duration.
    """
    serializer = FareQuoteSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    when = data.get('when') or timezone.now()
    breakdown = calculate_fare(data['pickup'], data['destination'], data['ride_kind'], when=when)
    distance_km, duration_min = lookup_route(data['pickup'], data['destination'])

    return Response({
        'pickup': data['pickup'],
        'destination': data['destination'],
        'ride_kind': data['ride_kind'],
        'quoted_at': when.isoformat(),
        'distance_km': distance_km,
        'duration_min': duration_min,
        'fare': breakdown.total_fare,
        'breakdown': breakdown.to_dict(),
    }, status=status.HTTP_200_OK)


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def route_list(request):
    """Popular campus routes with known distance and duration."""
    serializer = KnownRouteSerializer(known_routes(), many=True)
    return Response({'count': len(serializer.data), 'routes': serializer.data})
