from django.contrib.auth import get_user_model
from rest_framework import serializers

User = get_user_model()


class IdentitySerializer(serializers.ModelSerializer):
    """The minimal `{id, email}` shape other components rely on."""

    class Meta:
        model = User
        fields = ("id", "email")
        read_only_fields = fields
