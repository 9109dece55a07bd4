from __future__ import annotations

import logging

from django.contrib import messages
from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import HttpRequest, HttpResponse
from django.shortcuts import redirect, render
from django.views.decorators.http import require_http_methods

from surveykit_app.surveys.store import OwnerScope, PersistenceError

from .mailerlite import MailerLiteError, check_connection, token_fingerprint
from .store import get_token, upsert_integration

logger = logging.getLogger(__name__)

CHECKED_SESSION_KEY = "integration_checked_token"


class IntegrationNotChecked(ValidationError):
    """The token has not passed a connection test in this session."""


def require_checked(session, token: str) -> None:
    if not token.strip():
        raise IntegrationNotChecked("Enter your MailerLite API token.", code="blank")
    if session.get(CHECKED_SESSION_KEY) != token_fingerprint(token):
        raise IntegrationNotChecked(
            "Test the connection before saving the token.", code="not_checked"
        )


@login_required
@require_http_methods(["GET", "POST"])
def integration_settings(request: HttpRequest) -> HttpResponse:
    scope = OwnerScope.for_user(request.user)
    stored_token = get_token(request.user)
    context = {"token": stored_token, "groups": None}

    if request.method == "POST":
        token = request.POST.get("mailerlite_token", "").strip()
        action = request.POST.get("action", "test")
        context["token"] = token

        if action == "test":
            try:
                groups = check_connection(token)
            except MailerLiteError as e:
                request.session.pop(CHECKED_SESSION_KEY, None)
                messages.error(request, f"Connection failed: {e}")
                return render(request, "integrations/settings.html", context, status=400)
            request.session[CHECKED_SESSION_KEY] = token_fingerprint(token)
            context["groups"] = groups
            context["checked"] = True
            messages.success(request, f"Connected. Found {len(groups)} groups.")
            return render(request, "integrations/settings.html", context)

        try:
            require_checked(request.session, token)
            upsert_integration(scope, token)
        except IntegrationNotChecked as e:
            messages.error(request, e.messages[0])
            return render(request, "integrations/settings.html", context, status=400)
        except PersistenceError:
            messages.error(request, "Could not save the settings. Please try again.")
            return render(request, "integrations/settings.html", context, status=500)
        messages.success(request, "MailerLite settings saved.")
        return redirect("integrations:settings")

    context["checked"] = bool(stored_token) and request.session.get(
        CHECKED_SESSION_KEY
    ) == token_fingerprint(stored_token)
    return render(request, "integrations/settings.html", context)
