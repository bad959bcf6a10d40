"""Payment status lookup for the checkout return page."""

from __future__ import annotations

import logging

from django.db.models import Q
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from reservations.errors import NotFoundError, ReservationError
from reservations.models import Reservation

from .models import Payment

logger = logging.getLogger(__name__)

PENDING_STATUS = "PENDING"


def lookup_payment_status(session_id: str, user) -> dict[str, str]:
    """
    Return ``{status, reservationId}`` for a checkout session the user took part in.

    While the webhook has not arrived yet only the reservation carries the
    session id; that is reported as PENDING.
    """
    session_id = (session_id or "").strip()
    if not session_id:
        raise NotFoundError("Payment not found")
    participant = Q(renter=user) | Q(owner=user)

    payment = (
        Payment.objects.select_related("reservation")
        .filter(external_session_id=session_id)
        .filter(Q(reservation__renter=user) | Q(reservation__owner=user))
        .first()
    )
    if payment is not None:
        return {"status": payment.status, "reservationId": str(payment.reservation_id)}

    reservation = (
        Reservation.objects.filter(external_session_id=session_id).filter(participant).first()
    )
    if reservation is not None:
        return {"status": PENDING_STATUS, "reservationId": str(reservation.pk)}
    raise NotFoundError("Payment not found")


@api_view(["GET"])
@permission_classes([IsAuthenticated])
def payment_status(request, session_id: str):
    try:
        payload = lookup_payment_status(session_id, request.user)
    except ReservationError as exc:
        return Response(exc.as_payload(), status=exc.status_code)
    return Response(payload)
