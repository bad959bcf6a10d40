import django_filters as filters

from .models import Reservation


class ReservationFilter(filters.FilterSet):
    role = filters.ChoiceFilter(
        choices=(("renter", "renter"), ("owner", "owner")),
        method="filter_role",
    )
    booking_status = filters.CharFilter(field_name="booking_status", lookup_expr="iexact")
    rental_status = filters.CharFilter(field_name="rental_status", lookup_expr="iexact")
    listing = filters.NumberFilter(field_name="listing_id")

    class Meta:
        model = Reservation
        fields = ["role", "booking_status", "rental_status", "listing"]

    def filter_role(self, queryset, name, value):
        user = getattr(self.request, "user", None)
        if not value or user is None:
            return queryset
        if value == "renter":
            return queryset.filter(renter=user)
        return queryset.filter(owner=user)
