"""Serializers for reservation API endpoints."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from rest_framework import serializers

from .errors import ValidationError
from .models import Reservation
from .services import SETUP_FIELDS

CHECKOUT_ALIASES = {
    "listingId": "listing_id",
    "totalPrice": "total_price",
    "startDate": "start_date",
    "endDate": "end_date",
    "pickupTime": "pickup_time",
    "returnTime": "return_time",
}
REQUIRED_CHECKOUT_FIELDS = ("listing_id", "total_price", "start_date", "end_date")


def _first_error(errors: Any) -> str:
    if isinstance(errors, dict):
        for value in errors.values():
            return _first_error(value)
    if isinstance(errors, (list, tuple)) and errors:
        return _first_error(errors[0])
    return str(errors)


class CheckoutRequestSerializer(serializers.Serializer):
    """Checkout body; accepts the camelCase keys the web client sends."""

    listing_id = serializers.IntegerField(min_value=1)
    total_price = serializers.DecimalField(
        max_digits=10,
        decimal_places=2,
        min_value=Decimal("0.01"),
    )
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    pickup_time = serializers.TimeField(required=False, allow_null=True)
    return_time = serializers.TimeField(required=False, allow_null=True)

    def to_internal_value(self, data):
        normalized = {}
        for key, value in data.items():
            normalized[CHECKOUT_ALIASES.get(key, key)] = value
        return super().to_internal_value(normalized)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        if attrs["start_date"] > attrs["end_date"]:
            raise serializers.ValidationError(
                {"end_date": ["End date must be on or after the start date."]}
            )
        return attrs

    @classmethod
    def parse(cls, data) -> dict[str, Any]:
        """Validate a request body; raises the domain ValidationError."""
        if not hasattr(data, "items"):
            raise ValidationError("Missing required fields")
        present = {
            CHECKOUT_ALIASES.get(key, key)
            for key, value in data.items()
            if value not in (None, "")
        }
        if any(field not in present for field in REQUIRED_CHECKOUT_FIELDS):
            raise ValidationError("Missing required fields")
        serializer = cls(data=data)
        if not serializer.is_valid():
            raise ValidationError(_first_error(serializer.errors))
        return serializer.validated_data


class RentalSetupSerializer(serializers.ModelSerializer):
    class Meta:
        model = Reservation
        fields = SETUP_FIELDS
        extra_kwargs = {field: {"required": False} for field in SETUP_FIELDS}

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        start = attrs.get("pickup_start_time")
        end = attrs.get("pickup_end_time")
        if start and end and end <= start:
            raise serializers.ValidationError(
                {"pickup_end_time": ["Pickup window must end after it starts."]}
            )
        return attrs


class ConfirmationSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=("confirm", "unconfirm"))


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, max_length=500)


class ReservationSerializer(serializers.ModelSerializer):
    listing_title = serializers.ReadOnlyField(source="listing.title")
    role = serializers.SerializerMethodField()
    days = serializers.ReadOnlyField()

    class Meta:
        model = Reservation
        fields = (
            "id",
            "listing",
            "listing_title",
            "owner",
            "renter",
            "role",
            "start_date",
            "end_date",
            "days",
            "booking_status",
            "rental_status",
            "total_price",
            "pickup_time_preference",
            "return_time_preference",
            *SETUP_FIELDS,
            "setup_completed_at",
            "pickup_confirmed_by_renter",
            "pickup_confirmed_by_renter_at",
            "pickup_confirmed_by_owner",
            "pickup_confirmed_by_owner_at",
            "pickup_confirmed_at",
            "return_requested_at",
            "return_confirmed_by_renter",
            "return_confirmed_by_renter_at",
            "return_confirmed_by_owner",
            "return_confirmed_by_owner_at",
            "return_confirmed_at",
            "completed_at",
            "external_session_id",
            "canceled_at",
            "canceled_by",
            "cancellation_reason",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields

    def get_role(self, obj: Reservation) -> str | None:
        request = self.context.get("request")
        return obj.role_of(getattr(getattr(request, "user", None), "id", None))
