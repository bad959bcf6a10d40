from __future__ import annotations

from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Marketplace account; renters and owners share one user type."""

    def identity(self) -> dict:
        """Return the identity contract consumed by the reservation engine."""
        return {"id": self.id, "email": self.email}
