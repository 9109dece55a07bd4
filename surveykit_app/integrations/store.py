from __future__ import annotations

import logging

from django.db import DatabaseError

from surveykit_app.surveys.store import OwnerScope, PersistenceError

from .models import UserIntegration

logger = logging.getLogger(__name__)


def get_integration(user) -> UserIntegration | None:
    if user is None or not getattr(user, "pk", None):
        return None
    return UserIntegration.objects.filter(user_id=user.pk).first()


def get_token(user) -> str:
    """MailerLite token for ``user``; empty string when none is stored."""
    integration = get_integration(user)
    if integration is None:
        return ""
    return integration.mailerlite_token.strip()


def get_token_for_user_id(user_id) -> str:
    integration = UserIntegration.objects.filter(user_id=user_id).first()
    return integration.mailerlite_token.strip() if integration else ""


def upsert_integration(scope: OwnerScope, mailerlite_token: str) -> UserIntegration:
    try:
        integration, created = UserIntegration.objects.update_or_create(
            user=scope.user,
            defaults={"mailerlite_token": mailerlite_token.strip()},
        )
    except DatabaseError as e:
        logger.exception(f"Failed to save integration settings for user {scope.user_id}")
        raise PersistenceError("Could not save integration settings.") from e
    logger.info(
        f"Integration settings {'created' if created else 'updated'} for user {scope.user_id}"
    )
    return integration
