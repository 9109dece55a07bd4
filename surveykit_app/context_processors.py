from django.conf import settings
from django.contrib.auth.models import AnonymousUser

from surveykit_app.integrations.store import get_token


def branding(request):
    """Inject platform branding and navigation flags into all templates."""
    user = getattr(request, "user", AnonymousUser())
    has_integration = False
    if user and user.is_authenticated:
        has_integration = bool(get_token(user))
    return {
        "brand": {"title": getattr(settings, "BRAND_TITLE", "SurveyKit")},
        "has_integration": has_integration,
    }
