from django.urls import path

from .api import payment_status
from .stripe_api import stripe_webhook

app_name = "payments"

urlpatterns = [
    path("stripe/webhook/", stripe_webhook, name="stripe_webhook"),
    path("sessions/<str:session_id>/", payment_status, name="payment_status"),
]
