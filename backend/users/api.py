from rest_framework import generics, permissions
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import IdentitySerializer


class MeView(generics.RetrieveAPIView):
    """Return the authenticated user's identity."""

    serializer_class = IdentitySerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        user = self.request.user
        self.check_object_permissions(self.request, user)
        return user


class TokenObtainView(TokenObtainPairView):
    """Username/password login issuing a JWT access/refresh pair."""

    permission_classes = [permissions.AllowAny]
