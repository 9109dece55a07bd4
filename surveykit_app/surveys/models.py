from __future__ import annotations

import uuid

from django.contrib.auth import get_user_model
from django.db import models

from .questions import Question, QuestionType, parse_questions

User = get_user_model()


class Survey(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    owner = models.ForeignKey(User, on_delete=models.CASCADE, related_name="surveys")
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True)
    # Ordered list of question dicts, see questions.Question.to_dict()
    questions = models.JSONField(default=list, blank=True)
    # Opaque MailerLite group id; blank when contact sync is not configured
    mailerlite_group_id = models.CharField(max_length=64, blank=True, default="")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["owner", "created_at"], name="survey_owner_created_idx")
        ]

    def __str__(self) -> str:  # pragma: no cover
        return self.title

    def get_questions(self) -> list[Question]:
        return parse_questions(self.questions)

    def first_email_question(self) -> Question | None:
        for q in self.get_questions():
            if q.type == QuestionType.EMAIL:
                return q
        return None


class SurveyResponse(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    survey = models.ForeignKey(
        Survey, on_delete=models.CASCADE, related_name="responses"
    )
    # Question id -> str | list[str]; unanswered questions are omitted
    responses = models.JSONField(default=dict)
    email = models.EmailField(max_length=254, null=True, blank=True)
    # Filled in by the post-submission contact form
    name = models.CharField(max_length=255, blank=True, default="")
    mailerlite_synced = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["survey", "created_at"], name="response_survey_created_idx")
        ]

    def __str__(self) -> str:  # pragma: no cover
        return f"Response {self.id} to {self.survey_id}"

    def has_contact(self) -> bool:
        return bool(self.name and self.email)
