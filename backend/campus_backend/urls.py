from django.contrib import admin
from django.urls import path, include

from .views import health_check

urlpatterns = [
    path('admin/', admin.site.urls),
    path("health/", health_check), # Health check endpoint

    # Rider APIs (booking, cancel, waitlist, rating, wallet, history)
    path('api/rider/', include('riders.urls')),

    # Driver APIs (status, open requests, waitlist, completion, onboarding)
    path('api/driver/', include('drivers.urls')),

    # Ride helpers (fare quote, known routes)
    path('api/rides/', include('rides.urls')),
]
