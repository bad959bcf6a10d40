from django.urls import include, path

from core.health import healthz
from reservations.api import create_checkout_session

urlpatterns = [
    path("api/healthz", healthz),
    path("api/users/", include("users.urls")),
    path("api/create-checkout-session/", create_checkout_session, name="create_checkout_session"),
    path(
        "api/reservations/",
        include(("reservations.urls", "reservations"), namespace="reservations"),
    ),
    path("api/payments/", include("payments.urls")),
]
