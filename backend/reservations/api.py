"""API views for reservation checkout and rental management."""

from __future__ import annotations

import hmac
import logging

from django.conf import settings
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import (
    action,
    api_view,
    permission_classes,
    throttle_classes,
)
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle

from .errors import ReservationError, ValidationError
from .filters import ReservationFilter
from .serializers import (
    CancelSerializer,
    CheckoutRequestSerializer,
    ConfirmationSerializer,
    RentalSetupSerializer,
    ReservationSerializer,
)
from .services import (
    cancel_reservation,
    create_checkout,
    get_reservation_for,
    initiate_return,
    needs_refresh,
    participant_reservations,
    refresh_rental_status,
    set_pickup_confirmation,
    set_return_confirmation,
    setup_rental,
)
from .tasks import expire_pending_reservations_now

logger = logging.getLogger(__name__)

UNAUTHORIZED = {"detail": "Unauthorized", "code": "unauthorized"}


class CheckoutRateThrottle(UserRateThrottle):
    scope = "checkout"


def _error_response(exc: ReservationError) -> Response:
    return Response(exc.as_payload(), status=exc.status_code)


def _cron_authorized(request) -> bool:
    secret = getattr(settings, "CRON_SECRET", "") or ""
    if not secret:
        return False
    header = request.META.get("HTTP_AUTHORIZATION", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return False
    return hmac.compare_digest(token.strip().encode(), secret.encode())


@api_view(["POST"])
@permission_classes([permissions.AllowAny])
@throttle_classes([CheckoutRateThrottle])
def create_checkout_session(request):
    """Hold the requested dates and return a Stripe Checkout redirect."""
    if not request.user or not request.user.is_authenticated:
        return Response(UNAUTHORIZED, status=status.HTTP_401_UNAUTHORIZED)
    try:
        data = CheckoutRequestSerializer.parse(request.data)
        result = create_checkout(
            request.user,
            listing_id=data["listing_id"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            total_price=data["total_price"],
            pickup_time=data.get("pickup_time"),
            return_time=data.get("return_time"),
        )
    except ReservationError as exc:
        return _error_response(exc)
    return Response(result, status=status.HTTP_200_OK)


class ReservationViewSet(viewsets.ReadOnlyModelViewSet):
    """Participant-scoped reservations and their rental handoff actions."""

    serializer_class = ReservationSerializer
    permission_classes = (permissions.IsAuthenticated,)
    filterset_class = ReservationFilter
    ordering_fields = ("created_at", "start_date", "end_date")
    ordering = ("-created_at",)

    def get_queryset(self):
        return participant_reservations(self.request.user)

    def get_object(self):
        reservation = get_reservation_for(self.kwargs["pk"], self.request.user)
        if needs_refresh(reservation):
            reservation = refresh_rental_status(reservation.pk)
        return reservation

    def handle_exception(self, exc):
        if isinstance(exc, ReservationError):
            return _error_response(exc)
        return super().handle_exception(exc)

    def _respond(self, reservation):
        return Response(self.get_serializer(reservation).data, status=status.HTTP_200_OK)

    @staticmethod
    def _validated(serializer_class, data, *, partial: bool = False):
        serializer = serializer_class(data=data, partial=partial)
        if not serializer.is_valid():
            errors = serializer.errors
            field, messages = next(iter(errors.items()))
            message = messages[0] if isinstance(messages, list) and messages else messages
            raise ValidationError(f"{field}: {message}")
        return serializer.validated_data

    @action(detail=True, methods=["post"], url_path="setup")
    def setup(self, request, pk=None):
        """Owner provides pickup and return logistics."""
        details = self._validated(RentalSetupSerializer, request.data, partial=True)
        return self._respond(setup_rental(pk, request.user, details))

    @action(detail=True, methods=["post"], url_path="pickup")
    def pickup(self, request, pk=None):
        data = self._validated(ConfirmationSerializer, request.data)
        confirmed = data["action"] == "confirm"
        return self._respond(set_pickup_confirmation(pk, request.user, confirmed))

    @action(detail=True, methods=["post"], url_path="initiate-return")
    def initiate_return(self, request, pk=None):
        return self._respond(initiate_return(pk, request.user))

    @action(detail=True, methods=["post"], url_path="return")
    def confirm_return(self, request, pk=None):
        data = self._validated(ConfirmationSerializer, request.data)
        confirmed = data["action"] == "confirm"
        return self._respond(set_return_confirmation(pk, request.user, confirmed))

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        data = self._validated(CancelSerializer, request.data)
        return self._respond(cancel_reservation(pk, request.user, data.get("reason")))

    @action(
        detail=False,
        methods=["get", "post"],
        url_path="expire",
        authentication_classes=[],
        permission_classes=[permissions.AllowAny],
        filter_backends=[],
    )
    def expire(self, request):
        """Sweep endpoint for an external scheduler; needs the cron secret."""
        if not _cron_authorized(request):
            logger.warning("reservations: rejected expiry sweep without valid secret")
            return Response(UNAUTHORIZED, status=status.HTTP_401_UNAUTHORIZED)
        expired_count = expire_pending_reservations_now()
        return Response({"expiredCount": expired_count}, status=status.HTTP_200_OK)
