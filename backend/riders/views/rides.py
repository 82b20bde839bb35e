# riders/views/rides.py

from rest_framework import status
from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated

from common.utils import respond
from rides.serializers import RideDetailsSerializer
from services.coordinator import RideCoordinator

from ..permissions import IsRider
from ..serializers import CancelRideSerializer, RatingSerializer


class RiderBookRideView(APIView):
    """
    POST: Rider books a ride (ASAP or scheduled).

    Answers 201 with the new ride, or 202 when the booking was queued
    because the ride service is unreachable.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        serializer = RideDetailsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        coordinator = RideCoordinator.for_user(request.user)
        details = serializer.to_details()
        if request.data.get("allow_waitlist"):
            return respond(lambda: coordinator.request_ride(details), status.HTTP_201_CREATED)
        return respond(lambda: coordinator.book_ride(details), status.HTTP_201_CREATED)


class RiderCancelRideView(APIView):
    """
    POST: Rider cancels their active ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        serializer = CancelRideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.cancel_ride(serializer.validated_data["reason"]))


class RiderRateRideView(APIView):
    """
    POST: Rider rates the driver of a completed ride.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request, ride_id: str):
        serializer = RatingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.submit_rating(
            ride_id, data["driver_id"], data["rating"], data.get("feedback") or None
        ))


class RiderJoinWaitlistView(APIView):
    """
    POST: Rider joins the FIFO waitlist when no driver is free.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        serializer = RideDetailsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        coordinator = RideCoordinator.for_user(request.user)
        return respond(lambda: coordinator.join_waitlist(serializer.to_details()), status.HTTP_201_CREATED)


class RiderLeaveWaitlistView(APIView):
    """
    POST: Rider leaves the waitlist.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def post(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.leave_waitlist)


class RiderWaitlistPositionView(APIView):
    """
    GET: 1-based waitlist position, or null when not waiting.
    """
    permission_classes = [IsAuthenticated, IsRider]

    def get(self, request):
        coordinator = RideCoordinator.for_user(request.user)
        return respond(coordinator.waitlist_position)
