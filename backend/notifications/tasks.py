from __future__ import annotations

import logging
from typing import Optional

from celery import shared_task
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import EmailMultiAlternatives
from django.template.loader import render_to_string

from notifications.models import NotificationLog

logger = logging.getLogger(__name__)
User = get_user_model()


def _get_reservation(reservation_id: str):
    from reservations.models import Reservation

    reservation = (
        Reservation.objects.select_related("listing", "owner", "renter")
        .filter(pk=reservation_id)
        .first()
    )
    if reservation is None:
        logger.warning("notifications: reservation %s no longer exists", reservation_id)
    return reservation


def _reservation_url(reservation) -> str:
    frontend_origin = (getattr(settings, "FRONTEND_ORIGIN", "") or "").rstrip("/")
    if not frontend_origin:
        return ""
    return f"{frontend_origin}/reservations/{reservation.pk}"


def _render(template: str, context: dict) -> str:
    context = {"site_name": getattr(settings, "SITE_NAME", "Marketplace"), **context}
    return render_to_string(f"email/{template}", context).strip()


def _log_notification(
    type_: str,
    status: str,
    *,
    user_id: int | None = None,
    reservation_id=None,
    error: str | None = None,
) -> None:
    try:
        NotificationLog.objects.create(
            channel=NotificationLog.Channel.EMAIL,
            type=type_,
            status=status,
            user_id=user_id,
            reservation_id=reservation_id,
            error=error or "",
        )
    except Exception:
        logger.exception(
            "notifications: failed to persist notification log",
            extra={"type": type_, "status": status},
        )


def _send_email_logged(
    type_: str,
    *,
    user: Optional[User],
    subject: str,
    template: str,
    context: dict,
    reservation_id=None,
) -> bool:
    user_id = getattr(user, "id", None)
    to_email = getattr(user, "email", "") or ""
    if not to_email:
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            reservation_id=reservation_id,
            error="missing recipient email",
        )
        logger.warning("notifications: cannot send email without recipient")
        return False

    message = EmailMultiAlternatives(
        subject=subject,
        body=_render(template, {"user": user, **context}),
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[to_email],
    )
    try:
        message.send(fail_silently=False)
    except Exception as exc:
        logger.exception(
            "notifications: email send failed",
            extra={"type": type_, "reservation_id": str(reservation_id), "user_id": user_id},
        )
        _log_notification(
            type_,
            NotificationLog.Status.FAILED,
            user_id=user_id,
            reservation_id=reservation_id,
            error=str(exc) or exc.__class__.__name__,
        )
        return False
    _log_notification(
        type_,
        NotificationLog.Status.SENT,
        user_id=user_id,
        reservation_id=reservation_id,
    )
    return True


@shared_task(queue="emails")
def send_reservation_confirmed_email(reservation_id: str):
    """Tell the renter the payment cleared and ask the owner to set up the rental."""
    reservation = _get_reservation(reservation_id)
    if reservation is None:
        return
    context = {"reservation": reservation, "reservation_url": _reservation_url(reservation)}
    title = reservation.listing.title
    _send_email_logged(
        "reservation_confirmed_renter",
        user=reservation.renter,
        subject=f"Reservation confirmed: {title}",
        template="reservation_confirmed_renter.txt",
        context=context,
        reservation_id=reservation.pk,
    )
    _send_email_logged(
        "reservation_confirmed_owner",
        user=reservation.owner,
        subject=f"New reservation for {title}",
        template="reservation_confirmed_owner.txt",
        context=context,
        reservation_id=reservation.pk,
    )


@shared_task(queue="emails")
def send_rental_ready_email(reservation_id: str):
    reservation = _get_reservation(reservation_id)
    if reservation is None:
        return
    _send_email_logged(
        "rental_ready",
        user=reservation.renter,
        subject=f"Ready for pickup: {reservation.listing.title}",
        template="rental_ready.txt",
        context={"reservation": reservation, "reservation_url": _reservation_url(reservation)},
        reservation_id=reservation.pk,
    )


@shared_task(queue="emails")
def send_reservation_canceled_email(reservation_id: str):
    """Notify the parties who did not cancel; system cancellations reach both."""
    reservation = _get_reservation(reservation_id)
    if reservation is None:
        return
    recipients = []
    if reservation.canceled_by != "renter":
        recipients.append(reservation.renter)
    if reservation.canceled_by != "owner":
        recipients.append(reservation.owner)
    for user in recipients:
        _send_email_logged(
            "reservation_canceled",
            user=user,
            subject=f"Reservation canceled: {reservation.listing.title}",
            template="reservation_canceled.txt",
            context={"reservation": reservation},
            reservation_id=reservation.pk,
        )


@shared_task(queue="emails")
def send_payment_needs_refund_email(payment_id: str):
    from payments.models import Payment

    payment = (
        Payment.objects.select_related("reservation", "reservation__listing", "user")
        .filter(pk=payment_id)
        .first()
    )
    if payment is None:
        logger.warning("notifications: payment %s no longer exists", payment_id)
        return
    _send_email_logged(
        "payment_needs_refund",
        user=payment.user,
        subject="Your payment will be refunded",
        template="payment_needs_refund.txt",
        context={"payment": payment, "reservation": payment.reservation},
        reservation_id=payment.reservation_id,
    )
