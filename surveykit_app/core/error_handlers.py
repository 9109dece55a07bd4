"""Branded error pages.

Owner-facing lookups raise ``SurveyNotFound`` and ``OwnerScope.for_user`` raises
``PermissionDenied`` with a readable message; those messages are shown on the
page. Any other exception text stays in the logs.
"""

import logging

from django.core.exceptions import PermissionDenied
from django.http import HttpRequest, HttpResponse
from django.shortcuts import render

from surveykit_app.surveys.store import ResponseNotFound, SurveyNotFound

logger = logging.getLogger(__name__)


def _public_message(exception) -> str:
    if isinstance(exception, (SurveyNotFound, ResponseNotFound, PermissionDenied)) and exception.args:
        return str(exception.args[0])
    return ""


def custom_permission_denied_view(request: HttpRequest, exception=None) -> HttpResponse:
    return render(request, "403.html", {"message": _public_message(exception)}, status=403)


def custom_page_not_found_view(request: HttpRequest, exception=None) -> HttpResponse:
    return render(request, "404.html", {"message": _public_message(exception)}, status=404)


def custom_server_error_view(request: HttpRequest) -> HttpResponse:
    logger.error(f"Server error while handling {request.method} {request.path}")
    return render(request, "500.html", status=500)
