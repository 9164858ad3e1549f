"""
URL configuration for the alerts app.
"""

from django.urls import path

from apps.alerts.views import AlertWebhookView


app_name = "alerts"

urlpatterns = [
    # Source auto-detected from the payload
    path("webhook/", AlertWebhookView.as_view(), name="webhook"),

    # Source given explicitly
    path("webhook/<str:source>/", AlertWebhookView.as_view(), name="webhook_source"),
]
