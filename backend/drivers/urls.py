from django.urls import path, re_path
from .views import (
    DriverAcceptWaitlistedView,
    DriverCompleteRideView,
    DriverConfirmScheduledView,
    DriverCurrentView,
    DriverHandleRequestView,
    DriverLocationUpdateView,
    DriverOnboardingView,
    DriverRideRequestsView,
    DriverStartRideView,
    DriverStatusToggleView,
    DriverWaitlistView,
)

app_name = "drivers"

urlpatterns = [
    path("current/", DriverCurrentView.as_view(), name="current"),
    path("status/toggle/", DriverStatusToggleView.as_view(), name="status-toggle"),
    path("location/", DriverLocationUpdateView.as_view(), name="location"),
    path("onboarding/", DriverOnboardingView.as_view(), name="onboarding"),

    # Open requests
    path("requests/", DriverRideRequestsView.as_view(), name="requests"),
    re_path(
        r"^requests/(?P<ride_id>[^/]+)/(?P<decision>accept|decline)/$",
        DriverHandleRequestView.as_view(),
        name="handle-request",
    ),

    # Waitlist
    path("waitlist/", DriverWaitlistView.as_view(), name="waitlist"),
    path("waitlist/<str:rider_id>/accept/", DriverAcceptWaitlistedView.as_view(), name="accept-waitlisted"),

    # Ride progress
    path("rides/<str:ride_id>/confirm/", DriverConfirmScheduledView.as_view(), name="confirm-ride"),
    path("rides/<str:ride_id>/start/", DriverStartRideView.as_view(), name="start-ride"),
    path("rides/complete/", DriverCompleteRideView.as_view(), name="complete-ride"),
]
