"""Stripe helpers for reservation checkout and webhook intake."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import stripe
from django.conf import settings
from rest_framework import status
from rest_framework.decorators import api_view, authentication_classes, permission_classes
from rest_framework.response import Response

from reservations.errors import SignatureError
from reservations.models import Reservation

from .webhooks import handle_checkout_session_completed

logger = logging.getLogger(__name__)

CHECKOUT_KIND = "reservation"


class StripeConfigurationError(Exception):
    """Stripe is not configured correctly in the environment."""


class StripeTransientError(Exception):
    """Temporary Stripe/API issue that should be retried."""


class StripePaymentError(Exception):
    """Permanent failure reported by Stripe for a checkout request."""


def _get_stripe_api_key() -> str:
    """Return the configured Stripe API key or raise if missing."""
    api_key = getattr(settings, "STRIPE_SECRET_KEY", "")
    if not api_key:
        raise StripeConfigurationError("Stripe secret key not configured.")
    return api_key


def _to_cents(amount: Decimal) -> int:
    """Convert Decimal dollars to integer cents, rounding to the nearest cent."""
    cents = (amount * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return int(cents)


def _handle_stripe_error(exc: stripe.error.StripeError) -> None:
    """Map Stripe SDK errors onto internal exception types."""
    if isinstance(
        exc,
        (
            stripe.error.RateLimitError,
            stripe.error.APIConnectionError,
            stripe.error.APIError,
        ),
    ):
        raise StripeTransientError("Temporary Stripe error, please retry.") from exc
    if isinstance(exc, (stripe.error.AuthenticationError, stripe.error.PermissionError)):
        raise StripeConfigurationError("Stripe credentials are invalid or unauthorized.") from exc
    if isinstance(exc, stripe.error.InvalidRequestError):
        raise StripePaymentError(exc.user_message or "Invalid payment request.") from exc
    raise StripePaymentError(exc.user_message or "Stripe payment failure.") from exc


def _object_value(obj: Any, field: str, default: Any = None) -> Any:
    """Read a field from a Stripe object or a plain dict payload."""
    if isinstance(obj, dict):
        return obj.get(field, default)
    value = getattr(obj, field, None)
    if value is None and hasattr(obj, "get"):
        value = obj.get(field)
    return default if value is None else value


def _get_frontend_origin() -> str:
    """Return the configured frontend origin or a local fallback."""
    configured = (getattr(settings, "FRONTEND_ORIGIN", "") or "").strip()
    base = configured or "http://localhost:3000"
    return base.rstrip("/") or base


def _reservation_checkout_urls(reservation: Reservation) -> tuple[str, str]:
    base_origin = _get_frontend_origin()
    success_url = (
        f"{base_origin}/reservations/{reservation.id}"
        "?status=success&session_id={CHECKOUT_SESSION_ID}"
    )
    cancel_url = f"{base_origin}/listings/{reservation.listing_id}?status=cancel"
    return success_url, cancel_url


def checkout_metadata(reservation: Reservation) -> dict[str, str]:
    """String-keyed bag Stripe echoes back on the completed session."""
    return {
        "kind": CHECKOUT_KIND,
        "reservation_id": str(reservation.id),
        "listing_id": str(reservation.listing_id),
        "user_id": str(reservation.renter_id),
        "env": getattr(settings, "STRIPE_ENV", "dev") or "dev",
    }


def create_reservation_checkout_session(reservation: Reservation) -> tuple[str, str]:
    """
    Create a Stripe Checkout session charging the reservation's total price.

    Returns ``(session_id, url)``.
    """
    stripe.api_key = _get_stripe_api_key()
    amount_cents = _to_cents(reservation.total_price)
    if amount_cents <= 0:
        raise StripePaymentError("Reservation total price must be greater than zero.")

    listing_title = (reservation.listing.title or "").strip() or "Listing rental"
    date_range_text = (
        f"{reservation.start_date.isoformat()} to {reservation.end_date.isoformat()}"
    )
    success_url, cancel_url = _reservation_checkout_urls(reservation)

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            success_url=success_url,
            cancel_url=cancel_url,
            client_reference_id=f"reservation:{reservation.id}",
            customer_email=reservation.renter.email or None,
            metadata=checkout_metadata(reservation),
            line_items=[
                {
                    "price_data": {
                        "currency": getattr(settings, "STRIPE_CURRENCY", "usd") or "usd",
                        "unit_amount": amount_cents,
                        "product_data": {
                            "name": listing_title,
                            "description": f"Rental {date_range_text}",
                        },
                    },
                    "quantity": 1,
                }
            ],
        )
    except stripe.error.StripeError as exc:
        _handle_stripe_error(exc)

    session_id = _object_value(session, "id")
    session_url = _object_value(session, "url")
    if not session_id or not session_url:
        raise StripeConfigurationError("Stripe did not return a checkout session URL.")
    return session_id, session_url


def construct_event(payload: bytes, sig_header: str):
    """Verify the webhook signature; raises SignatureError on any failure."""
    endpoint_secret = getattr(settings, "STRIPE_WEBHOOK_SECRET", "")
    try:
        return stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header,
            secret=endpoint_secret,
        )
    except ValueError as exc:
        raise SignatureError("Invalid webhook payload.") from exc
    except stripe.error.SignatureVerificationError as exc:
        raise SignatureError() from exc


@api_view(["POST"])
@authentication_classes([])
@permission_classes([])
def stripe_webhook(request):
    """Handle Stripe webhook callbacks for reservation checkouts."""
    sig_header = request.META.get("HTTP_STRIPE_SIGNATURE", "")
    try:
        event = construct_event(request.body, sig_header)
    except SignatureError as exc:
        logger.warning(
            "stripe_webhook: rejected event (%s)",
            exc.message,
            extra={"has_signature": bool(sig_header)},
        )
        return Response(exc.as_payload(), status=exc.status_code)

    event_type = event.get("type")
    data_object = event.get("data", {}).get("object", {}) or {}

    if event_type != "checkout.session.completed":
        logger.debug("stripe_webhook: ignoring event type %s", event_type)
        return Response(status=status.HTTP_200_OK)

    try:
        result = handle_checkout_session_completed(data_object)
    except Exception:
        logger.exception(
            "stripe_webhook: failed to process checkout session",
            extra={"session_id": _object_value(data_object, "id")},
        )
        return Response(
            {"detail": "Webhook processing failed.", "code": "internal_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    logger.info(
        "stripe_webhook: checkout session %s",
        result,
        extra={"session_id": _object_value(data_object, "id")},
    )
    return Response(status=status.HTTP_200_OK)
