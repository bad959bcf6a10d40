"""URL routing for the reservations API."""

from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .api import ReservationViewSet

app_name = "reservations"

router = SimpleRouter()
router.register("", ReservationViewSet, basename="reservation")

urlpatterns = [
    path("", include(router.urls)),
]
