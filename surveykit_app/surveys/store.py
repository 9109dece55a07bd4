"""Data access for surveys and responses.

Every owner-scoped operation takes an explicit :class:`OwnerScope` instead of
reading the current user from ambient request state. Respondent-facing reads
(``get_active_survey``) and response writes are not owner-scoped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from django.core.exceptions import PermissionDenied
from django.db import DatabaseError, models, transaction
from django.http import Http404

from .models import Survey, SurveyResponse

logger = logging.getLogger(__name__)

SURVEY_UPDATABLE_FIELDS = frozenset(
    {"title", "description", "questions", "mailerlite_group_id", "is_active"}
)
RESPONSE_UPDATABLE_FIELDS = frozenset({"name", "email", "mailerlite_synced"})


class SurveyNotFound(Http404):
    """Survey is missing, inactive, or not owned by the caller."""


class ResponseNotFound(Http404):
    """Response row is missing."""


class PersistenceError(Exception):
    """A database write or read failed; the operation was abandoned."""


@dataclass(frozen=True)
class OwnerScope:
    """The signed-in user on whose behalf owner-scoped queries run."""

    user: Any

    @classmethod
    def for_user(cls, user) -> "OwnerScope":
        if user is None or not user.is_authenticated:
            raise PermissionDenied("Sign in to manage surveys.")
        return cls(user=user)

    @property
    def user_id(self):
        return self.user.pk


def _coerce_id(value) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError, AttributeError):
        raise SurveyNotFound("Survey not found")


# -------------------- Surveys --------------------


def create_survey(scope: OwnerScope, **fields) -> Survey:
    unknown = set(fields) - SURVEY_UPDATABLE_FIELDS
    if unknown:
        raise TypeError(f"Unknown survey fields: {sorted(unknown)}")
    try:
        survey = Survey.objects.create(owner=scope.user, **fields)
    except DatabaseError as e:
        logger.exception(f"Failed to create survey for user {scope.user_id}")
        raise PersistenceError("Could not save the survey.") from e
    logger.info(f"Survey {survey.id} created by user {scope.user_id}")
    return survey


def owned_surveys(scope: OwnerScope) -> models.QuerySet[Survey]:
    return Survey.objects.filter(owner_id=scope.user_id)


def get_survey(scope: OwnerScope, survey_id) -> Survey:
    survey = owned_surveys(scope).filter(id=_coerce_id(survey_id)).first()
    if survey is None:
        raise SurveyNotFound("Survey not found")
    return survey


def list_surveys(scope: OwnerScope) -> list[Survey]:
    """Owner's surveys, newest first, each annotated with ``response_count``."""
    return list(
        owned_surveys(scope)
        .annotate(response_count=models.Count("responses"))
        .order_by("-created_at")
    )


def update_survey(scope: OwnerScope, survey_id, **fields) -> Survey:
    """Partial update written as a single UPDATE statement."""
    unknown = set(fields) - SURVEY_UPDATABLE_FIELDS
    if unknown:
        raise TypeError(f"Unknown survey fields: {sorted(unknown)}")
    survey = get_survey(scope, survey_id)
    for name, value in fields.items():
        setattr(survey, name, value)
    try:
        survey.save(update_fields=[*fields, "updated_at"])
    except DatabaseError as e:
        logger.exception(f"Failed to update survey {survey.id}")
        raise PersistenceError("Could not save the survey.") from e
    return survey


def toggle_survey_active(scope: OwnerScope, survey_id) -> bool:
    """Flip ``is_active`` and return the value the database now holds.

    The row is re-read after the write, so callers never show a state that
    was not stored.
    """
    survey = get_survey(scope, survey_id)
    update_survey(scope, survey.id, is_active=not survey.is_active)
    confirmed = (
        owned_surveys(scope).filter(id=survey.id).values_list("is_active", flat=True).first()
    )
    if confirmed is None:
        raise SurveyNotFound("Survey not found")
    logger.info(f"Survey {survey.id} is_active set to {confirmed}")
    return confirmed


def delete_survey(scope: OwnerScope, survey_id) -> None:
    survey = get_survey(scope, survey_id)
    try:
        survey.delete()
    except DatabaseError as e:
        logger.exception(f"Failed to delete survey {survey.id}")
        raise PersistenceError("Could not delete the survey.") from e
    logger.info(f"Survey {survey_id} deleted by user {scope.user_id}")


def get_active_survey(survey_id) -> Survey:
    """Respondent read: any owner, active surveys only."""
    survey = Survey.objects.filter(id=_coerce_id(survey_id), is_active=True).first()
    if survey is None:
        raise SurveyNotFound("Survey not found or inactive")
    return survey


# -------------------- Responses --------------------


def insert_response(survey: Survey, responses: dict, email: str | None) -> SurveyResponse:
    try:
        with transaction.atomic():
            row = SurveyResponse.objects.create(
                survey=survey,
                responses=responses,
                email=email or None,
                mailerlite_synced=False,
            )
    except DatabaseError as e:
        logger.exception(f"Failed to store response for survey {survey.id}")
        raise PersistenceError("Could not save your answers.") from e
    logger.info(f"Response {row.id} stored for survey {survey.id}")
    return row


def list_responses(scope: OwnerScope, survey_id) -> list[SurveyResponse]:
    survey = get_survey(scope, survey_id)
    return list(survey.responses.order_by("-created_at"))


def get_response(response_id) -> SurveyResponse:
    try:
        rid = UUID(str(response_id))
    except (TypeError, ValueError):
        raise ResponseNotFound("Response not found")
    row = SurveyResponse.objects.filter(id=rid).first()
    if row is None:
        raise ResponseNotFound("Response not found")
    return row


def update_response(response_id, **fields) -> SurveyResponse:
    unknown = set(fields) - RESPONSE_UPDATABLE_FIELDS
    if unknown:
        raise TypeError(f"Unknown response fields: {sorted(unknown)}")
    row = get_response(response_id)
    for name, value in fields.items():
        setattr(row, name, value)
    try:
        row.save(update_fields=[*fields, "updated_at"])
    except DatabaseError as e:
        logger.exception(f"Failed to update response {row.id}")
        raise PersistenceError("Could not update the response.") from e
    return row
