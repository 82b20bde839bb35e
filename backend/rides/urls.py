from django.urls import path
from . import views

app_name = 'rides'

urlpatterns = [
    path('fare/', views.fare_quote, name='fare-quote'),
    path('routes/', views.route_list, name='route-list'),
]
