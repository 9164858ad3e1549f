"""URL configuration for the alert lifecycle service."""

from django.urls import include, path

urlpatterns = [
    path("alerts/", include("apps.alerts.urls")),
]
