from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from .api import MeView, TokenObtainView

app_name = "users"

urlpatterns = [
    path("token/", TokenObtainView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("me/", MeView.as_view(), name="me"),
]
