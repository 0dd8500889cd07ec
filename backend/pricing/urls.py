from django.urls import path

from . import views

urlpatterns = [
    path('tariffs/match/', views.TariffMatchView.as_view(), name='tariff-match'),
    path('tariffs/expiring/', views.ExpiringLanesView.as_view(), name='tariff-expiring'),
]
