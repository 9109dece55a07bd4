from django.contrib.auth import get_user_model
from django.db import models

User = get_user_model()


class UserIntegration(models.Model):
    """Per-user credentials for third-party services.

    One row per user; written with update_or_create keyed by user.
    """

    user = models.OneToOneField(
        User, on_delete=models.CASCADE, related_name="integration"
    )
    # Stored as entered; access is limited to the owning user by the app layer
    mailerlite_token = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self) -> str:  # pragma: no cover
        return f"Integrations for {self.user}"
