"""Survey editor state.

A :class:`SurveyDraft` is edited across several requests. It lives in the
session under a per-survey key and is only written to the database by
:meth:`SurveyDraft.save`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any

from django.core.exceptions import ValidationError

from surveykit_app.integrations.mailerlite import Group, MailerLiteClient, MailerLiteError

from . import store as survey_store
from .models import Survey
from .questions import (
    OPTION_TYPES,
    Question,
    QuestionType,
    dump_questions,
    new_question_id,
    parse_questions,
)
from .store import OwnerScope

logger = logging.getLogger(__name__)

SESSION_PREFIX = "survey_draft"


class DraftValidationError(ValidationError):
    """The draft cannot be saved as it stands."""


@dataclass
class SurveyDraft:
    title: str = ""
    description: str = ""
    questions: list[Question] = field(default_factory=list)
    mailerlite_group_id: str = ""
    survey_id: str | None = None
    # None until fetched; then cached for the rest of the editing session
    groups: list[Group] | None = None
    groups_error: str = ""

    @classmethod
    def from_survey(cls, survey: Survey) -> "SurveyDraft":
        return cls(
            title=survey.title,
            description=survey.description,
            questions=survey.get_questions(),
            mailerlite_group_id=survey.mailerlite_group_id or "",
            survey_id=str(survey.id),
        )

    @property
    def is_new(self) -> bool:
        return self.survey_id is None

    # -------------------- Questions --------------------

    def _index_of(self, question_id) -> int:
        for i, q in enumerate(self.questions):
            if q.id == question_id:
                return i
        raise KeyError(question_id)

    def get_question(self, question_id) -> Question:
        return self.questions[self._index_of(question_id)]

    def add_question(self) -> Question:
        question = Question(id=new_question_id(), type=QuestionType.TEXT, title="", required=False)
        self.questions.append(question)
        return question

    def update_question(self, question_id, **patch: Any) -> Question:
        i = self._index_of(question_id)
        patch.pop("id", None)
        updated = self.questions[i].with_patch(**patch)
        self.questions[i] = updated
        return updated

    def remove_question(self, question_id) -> None:
        del self.questions[self._index_of(question_id)]

    def move_question(self, question_id, offset: int) -> None:
        i = self._index_of(question_id)
        j = max(0, min(len(self.questions) - 1, i + offset))
        if i != j:
            self.questions.insert(j, self.questions.pop(i))

    # -------------------- Options --------------------

    def _options_of(self, question_id) -> tuple[int, list[str]]:
        i = self._index_of(question_id)
        question = self.questions[i]
        if question.type not in OPTION_TYPES:
            raise ValueError(f"Question {question_id} does not take options")
        return i, list(question.options or ())

    def add_option(self, question_id) -> None:
        i, options = self._options_of(question_id)
        options.append("")
        self.questions[i] = replace(self.questions[i], options=tuple(options))

    def update_option(self, question_id, index: int, value: str) -> None:
        i, options = self._options_of(question_id)
        if not 0 <= index < len(options):
            raise IndexError(index)
        options[index] = value
        self.questions[i] = replace(self.questions[i], options=tuple(options))

    def remove_option(self, question_id, index: int) -> None:
        i, options = self._options_of(question_id)
        if not 0 <= index < len(options):
            raise IndexError(index)
        del options[index]
        self.questions[i] = replace(self.questions[i], options=tuple(options))

    # -------------------- Groups --------------------

    def ensure_groups(self, token: str) -> list[Group]:
        """Fetch MailerLite groups once per editing session.

        A failed fetch is remembered as an empty list with an error message,
        so re-rendering the editor does not call MailerLite again.
        """
        if self.groups is not None:
            return self.groups
        try:
            self.groups = MailerLiteClient(token).list_groups()
            self.groups_error = ""
        except MailerLiteError as e:
            logger.warning(f"Could not load MailerLite groups for the editor: {e}")
            self.groups = []
            self.groups_error = str(e)
        return self.groups

    # -------------------- Validation and save --------------------

    def validate(self) -> None:
        if not self.title.strip():
            raise DraftValidationError("Please enter a survey title.", code="title")
        if not self.questions:
            raise DraftValidationError("Add at least one question.", code="no_questions")
        for position, q in enumerate(self.questions, start=1):
            if not q.title.strip():
                raise DraftValidationError(
                    f"Question {position} needs a title.", code="question_title"
                )

    def persisted_fields(self) -> dict[str, Any]:
        return {
            "title": self.title.strip(),
            "description": self.description.strip(),
            "questions": dump_questions(self.questions),
            "mailerlite_group_id": self.mailerlite_group_id or "",
        }

    def save(self, scope: OwnerScope, store=survey_store) -> Survey:
        """Validate and write the whole draft in one statement.

        Raises ``DraftValidationError`` or the store's ``PersistenceError``;
        in both cases the draft is left as it was.
        """
        self.validate()
        fields = self.persisted_fields()
        if self.is_new:
            survey = store.create_survey(scope, **fields)
            self.survey_id = str(survey.id)
        else:
            survey = store.update_survey(scope, self.survey_id, **fields)
        return survey

    # -------------------- Session --------------------

    def to_session(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "questions": dump_questions(self.questions),
            "mailerlite_group_id": self.mailerlite_group_id,
            "survey_id": self.survey_id,
            "groups": None if self.groups is None else [g.to_dict() for g in self.groups],
            "groups_error": self.groups_error,
        }

    @classmethod
    def from_session(cls, data: dict[str, Any]) -> "SurveyDraft":
        groups = data.get("groups")
        return cls(
            title=data.get("title", ""),
            description=data.get("description", ""),
            questions=parse_questions(data.get("questions")),
            mailerlite_group_id=data.get("mailerlite_group_id", ""),
            survey_id=data.get("survey_id"),
            groups=None if groups is None else [Group.from_dict(g) for g in groups],
            groups_error=data.get("groups_error", ""),
        )


def session_key(survey_id=None) -> str:
    return f"{SESSION_PREFIX}:{survey_id or 'new'}"


def load_draft(session, survey: Survey | None = None) -> SurveyDraft:
    """Draft for ``survey`` (or a new survey) from the session, else a fresh one."""
    key = session_key(survey.id if survey else None)
    data = session.get(key)
    if data is not None:
        return SurveyDraft.from_session(data)
    if survey is not None:
        return SurveyDraft.from_survey(survey)
    return SurveyDraft()


def store_draft(session, draft: SurveyDraft, key: str | None = None) -> None:
    session[key or session_key(draft.survey_id)] = draft.to_session()


def discard_draft(session, survey_id=None) -> None:
    session.pop(session_key(survey_id), None)
