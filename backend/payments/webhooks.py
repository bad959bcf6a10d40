"""Processing of completed Stripe Checkout sessions."""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from core.redis import publish_reservation_event
from listings.services import lock_listing
from notifications import tasks as notification_tasks
from reservations.domain import has_conflict, is_expired_hold
from reservations.models import Reservation

from .models import Payment

logger = logging.getLogger(__name__)

PROCESSED = "processed"
REVIVED = "revived"
REFUND_REQUIRED = "refund_required"
DUPLICATE = "duplicate"
UNKNOWN_RESERVATION = "unknown_reservation"
MISSING_METADATA = "missing_metadata"


def _value(obj: Any, field: str, default: Any = None) -> Any:
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(field)
    else:
        value = getattr(obj, field, None)
        if value is None and hasattr(obj, "get"):
            value = obj.get(field)
    return default if value is None else value


def _payment_intent_id(session: Any) -> str:
    intent = _value(session, "payment_intent")
    if intent is None:
        return ""
    if isinstance(intent, str):
        return intent
    return _value(intent, "id", "") or ""


def _amount_from_session(session: Any, reservation: Reservation) -> Decimal:
    """Stripe reports amount_total in cents; fall back to the stored price."""
    raw = _value(session, "amount_total")
    if raw is None:
        return reservation.total_price
    try:
        return (Decimal(str(raw)) / Decimal("100")).quantize(Decimal("0.01"))
    except (InvalidOperation, TypeError, ValueError):
        return reservation.total_price


def _parse_reservation_id(metadata: Any) -> uuid.UUID | None:
    raw = _value(metadata, "reservation_id")
    if not raw:
        return None
    try:
        return uuid.UUID(str(raw))
    except ValueError:
        return None


def _activate(reservation: Reservation, now) -> str:
    """Move the locked reservation to ACTIVE where possible; returns the outcome."""
    if reservation.booking_status == Reservation.BookingStatus.PENDING:
        updated = Reservation.objects.filter(
            pk=reservation.pk,
            booking_status=Reservation.BookingStatus.PENDING,
        ).update(booking_status=Reservation.BookingStatus.ACTIVE, updated_at=now)
        if updated:
            reservation.booking_status = Reservation.BookingStatus.ACTIVE
            return PROCESSED
        reservation.refresh_from_db()

    if reservation.booking_status in {
        Reservation.BookingStatus.ACTIVE,
        Reservation.BookingStatus.COMPLETED,
    }:
        return PROCESSED

    if is_expired_hold(reservation) and not has_conflict(
        reservation.listing_id,
        reservation.start_date,
        reservation.end_date,
        exclude_reservation_id=reservation.pk,
    ):
        Reservation.objects.filter(
            pk=reservation.pk,
            booking_status=Reservation.BookingStatus.CANCELED,
        ).update(
            booking_status=Reservation.BookingStatus.ACTIVE,
            canceled_at=None,
            canceled_by="",
            cancellation_reason="",
            updated_at=now,
        )
        reservation.refresh_from_db()
        return REVIVED

    return REFUND_REQUIRED


def _queue_effects(outcome: str, reservation: Reservation, payment: Payment) -> None:
    reservation_id = str(reservation.pk)
    if outcome == REFUND_REQUIRED:
        logger.warning(
            "stripe_webhook: payment received for canceled reservation; refund required",
            extra={
                "reservation_id": reservation_id,
                "session_id": payment.external_session_id,
            },
        )
        try:
            notification_tasks.send_payment_needs_refund_email.delay(str(payment.pk))
        except Exception:
            logger.info(
                "notifications: could not queue send_payment_needs_refund_email",
                exc_info=True,
            )
        return

    try:
        notification_tasks.send_reservation_confirmed_email.delay(reservation_id)
    except Exception:
        logger.info(
            "notifications: could not queue send_reservation_confirmed_email",
            exc_info=True,
        )
    publish_reservation_event(reservation, "reservation:activated")


def handle_checkout_session_completed(session: Any) -> str:
    """
    Record the payment for a completed checkout and activate its reservation.

    Safe under redelivery: the unique session id on Payment makes every
    delivery after the first a no-op. Returns an outcome label for logging.
    """
    session_id = _value(session, "id", "") or ""
    if not session_id:
        logger.warning("stripe_webhook: checkout session without id")
        return MISSING_METADATA

    if Payment.objects.filter(external_session_id=session_id).exists():
        return DUPLICATE

    metadata = _value(session, "metadata") or {}
    reservation_id = _parse_reservation_id(metadata)
    if reservation_id is None:
        logger.warning(
            "stripe_webhook: session metadata has no reservation id",
            extra={"session_id": session_id},
        )
        return MISSING_METADATA

    listing_id = (
        Reservation.objects.filter(pk=reservation_id).values_list("listing_id", flat=True).first()
    )
    if listing_id is None:
        logger.warning(
            "stripe_webhook: no reservation for session",
            extra={"session_id": session_id, "reservation_id": str(reservation_id)},
        )
        return UNKNOWN_RESERVATION

    now = timezone.now()
    with transaction.atomic():
        # Same lock order as checkout: listing, then reservation.
        lock_listing(listing_id)
        reservation = Reservation.objects.select_for_update().get(pk=reservation_id)
        if Payment.objects.filter(external_session_id=session_id).exists():
            return DUPLICATE

        outcome = _activate(reservation, now)
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    reservation=reservation,
                    user_id=reservation.renter_id,
                    listing_id=reservation.listing_id,
                    external_session_id=session_id,
                    external_payment_intent_id=_payment_intent_id(session),
                    amount=_amount_from_session(session, reservation),
                    currency=(
                        _value(session, "currency")
                        or getattr(settings, "STRIPE_CURRENCY", "usd")
                        or "usd"
                    ),
                    status=Payment.Status.SUCCEEDED,
                )
        except IntegrityError:
            logger.info(
                "stripe_webhook: concurrent delivery already recorded payment",
                extra={"session_id": session_id},
            )
            transaction.set_rollback(True)
            return DUPLICATE

        transaction.on_commit(lambda: _queue_effects(outcome, reservation, payment))

    logger.info(
        "stripe_webhook: reservation %s payment recorded",
        reservation.pk,
        extra={"session_id": session_id, "outcome": outcome},
    )
    return outcome
