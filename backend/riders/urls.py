# riders/urls.py

from django.urls import path

from .views.info import (
    RiderCurrentView,
    RiderRideHistoryView,
    RiderTransactionsView,
    RiderWalletTopUpView,
)

from .views.rides import (
    RiderBookRideView,
    RiderCancelRideView,
    RiderJoinWaitlistView,
    RiderLeaveWaitlistView,
    RiderRateRideView,
    RiderWaitlistPositionView,
)

app_name = "riders"

urlpatterns = [
    # INFO
    path("current/", RiderCurrentView.as_view(), name="current"),
    path("rides/history/", RiderRideHistoryView.as_view(), name="ride-history"),
    path("wallet/topup/", RiderWalletTopUpView.as_view(), name="wallet-topup"),
    path("wallet/transactions/", RiderTransactionsView.as_view(), name="wallet-transactions"),

    # RIDE
    path("rides/book/", RiderBookRideView.as_view(), name="book-ride"),
    path("rides/cancel/", RiderCancelRideView.as_view(), name="cancel-ride"),
    path("rides/<str:ride_id>/rate/", RiderRateRideView.as_view(), name="rate-ride"),

    # WAITLIST
    path("waitlist/join/", RiderJoinWaitlistView.as_view(), name="join-waitlist"),
    path("waitlist/leave/", RiderLeaveWaitlistView.as_view(), name="leave-waitlist"),
    path("waitlist/position/", RiderWaitlistPositionView.as_view(), name="waitlist-position"),
]
