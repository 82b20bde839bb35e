from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated

from accounts.serializers import UserSerializer
from common.utils import respond, result_response
from services.coordinator import RideCoordinator

from ..permissions import IsRider
from ..serializers import WalletTopUpSerializer


class RiderCurrentView(APIView):
    """
    GET: Rider profile, the active ride if any, and how many bookings are
    waiting in the offline queue.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        response = respond(coordinator.current_ride)
        if response.status_code == 200:
            response.data["has_active_ride"] = "ride" in response.data
            response.data["user"] = UserSerializer(request.user).data
        return response


class RiderRideHistoryView(APIView):
    """
    GET: Rider's completed rides, newest first (served from the local
    cache when the ride service is unreachable).
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        result = coordinator.ride_history()
        extra = result.extra or {}
        if not result.success:
            return result_response(result)

        return Response({
            "count": len(extra["rides"]),
            "rides": extra["rides"],
            "cached": extra["cached"],
        })


class RiderWalletTopUpView(APIView):
    """
    POST: Add funds to the rider's wallet.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        serializer = WalletTopUpSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.add_funds_to_wallet(float(serializer.validated_data["amount"])))


class RiderTransactionsView(APIView):
    """
    GET: Wallet transactions, newest first.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.transactions)
