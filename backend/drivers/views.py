from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated

from accounts.serializers import UserSerializer
from common.utils import respond
from services.coordinator import RideCoordinator

from drivers.permissions import IsDriver
from drivers.serializers import LocationUpdateSerializer, OnboardingSerializer


class DriverStatusToggleView(APIView):
    """
    POST: Flip the driver between online and offline.

    Coming online while free also picks up the earliest waitlisted rider.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.toggle_driver_status)


#    HTTP fallback; drivers normally stream location over ws/driver/.
class DriverLocationUpdateView(APIView):
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        serializer = LocationUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.update_location(data["latitude"], data["longitude"]))


class DriverRideRequestsView(APIView):
    """
    GET: Open requests this driver can accept, nearest first.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.visible_requests)


class DriverHandleRequestView(APIView):
    """
    POST: Accept or decline one open request.

    Accept is first-wins; a driver that loses the race gets 409.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, ride_id: str, decision: str):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.handle_ride_request(ride_id, accept=decision == "accept"))


class DriverWaitlistView(APIView):
    """
    GET: The waitlist in FIFO order.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.waitlist)


class DriverAcceptWaitlistedView(APIView):
    """
    POST: Take a waitlisted rider straight into an active ride.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, rider_id: str):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.accept_waitlisted_ride(rider_id))


class DriverConfirmScheduledView(APIView):
    """
    POST: Commit to a scheduled ride ahead of its time.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, ride_id: str):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.confirm_scheduled_ride(ride_id))


class DriverStartRideView(APIView):
    """
    POST: Start a confirmed scheduled ride.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request, ride_id: str):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.start_ride(ride_id))


class DriverCompleteRideView(APIView):
    """
    POST: Complete the current ride and settle fare, bonus and CO2.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.complete_ride)


class DriverOnboardingView(APIView):
    """
    POST: Register the vehicle and become verified.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def post(self, request):
        serializer = OnboardingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.complete_driver_onboarding(
            dict(data["vehicle_details"]), is_ev=data["is_ev"]
        ))


class DriverCurrentView(APIView):
    """
    GET: Driver profile and current (active) ride.
    """
    permission_classes = [IsAuthenticated, IsDriver]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        response = respond(coordinator.current_ride)
        if response.status_code == 200:
            response.data["user"] = UserSerializer(request.user).data
        return response
