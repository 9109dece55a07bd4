"""Respondent form engine.

One question is shown at a time. The run moves through::

    LOADING -> ERROR | ANSWERING
    ANSWERING -> SUBMITTING -> SUBMITTED
    SUBMITTED -> CONTACT_PROMPT -> SUBMITTED

After submission, surveys linked to a MailerLite group start a short
:class:`ContactPromptTimer`; once it fires the respondent is offered a
name/email form whose details are synced to MailerLite.

Runs are kept in the session between requests via :meth:`SurveyRun.snapshot`
and :meth:`SurveyRun.restore`.
"""

from __future__ import annotations

import enum
import logging
import math
import time
from dataclasses import dataclass
from typing import Any, Callable

from django.conf import settings
from django.core.exceptions import ValidationError

from surveykit_app.integrations.mailerlite import MailerLiteClient, MailerLiteError
from surveykit_app.integrations.store import get_token_for_user_id

from . import store
from .models import Survey, SurveyResponse
from .questions import (
    NO_ANSWER,
    Answer,
    MultiChoiceAnswer,
    Question,
    QuestionId,
    QuestionType,
    answer_for,
    is_answered,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class RunState(str, enum.Enum):
    LOADING = "loading"
    ERROR = "error"
    ANSWERING = "answering"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    CONTACT_PROMPT = "contact_prompt"


class AnswerRequired(ValidationError):
    """A required question has no answer."""


class ContactInvalid(ValidationError):
    """The contact form was filled in incorrectly."""


class InvalidTransition(Exception):
    """The requested action is not possible in the run's current state."""


@dataclass(frozen=True)
class ContactResult:
    synced: bool


class ContactPromptTimer:
    """One-shot, cancellable deadline.

    There is no background thread: the owner calls :meth:`poll` and the timer
    fires on the first poll at or after its deadline, and never again.
    Cancelling before that means it never fires.
    """

    def __init__(self, delay: float, clock: Clock = time.time, deadline: float | None = None):
        self.delay = delay
        self._clock = clock
        self.deadline = deadline
        self.fired = False
        self.cancelled = False

    @property
    def started(self) -> bool:
        return self.deadline is not None

    @property
    def pending(self) -> bool:
        return self.started and not self.fired and not self.cancelled

    def start(self) -> "ContactPromptTimer":
        if self.started:
            raise InvalidTransition("Timer already started")
        self.deadline = self._clock() + self.delay
        return self

    def remaining(self) -> float:
        if not self.pending:
            return 0.0
        return max(0.0, self.deadline - self._clock())

    def poll(self) -> bool:
        """Fire if due. Returns True on the single poll that fires."""
        if not self.pending or self._clock() < self.deadline:
            return False
        self.fired = True
        return True

    def cancel(self) -> bool:
        """Cancel a pending timer. Returns True only for the call that cancelled it."""
        if not self.pending:
            return False
        self.cancelled = True
        return True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.cancel()
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "delay": self.delay,
            "deadline": self.deadline,
            "fired": self.fired,
            "cancelled": self.cancelled,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], clock: Clock = time.time) -> "ContactPromptTimer":
        timer = cls(data.get("delay", 0), clock=clock, deadline=data.get("deadline"))
        timer.fired = bool(data.get("fired"))
        timer.cancelled = bool(data.get("cancelled"))
        return timer


def contact_is_valid(name: str, email: str) -> bool:
    email = (email or "").strip()
    return bool((name or "").strip()) and "@" in email and "." in email


def record_contact(response_id, name: str, email: str) -> SurveyResponse:
    """Second phase of a submission: attach contact details to the response.

    Safe to repeat. A row that already holds the same name and email is not
    written again.
    """
    row = store.get_response(response_id)
    if row.name == name and row.email == email:
        return row
    return store.update_response(row.id, name=name, email=email)


class SurveyRun:
    def __init__(self, survey_id, *, embedded: bool = False, clock: Clock = time.time):
        self.survey_id = str(survey_id)
        self.embedded = embedded
        self.state = RunState.LOADING
        self.survey: Survey | None = None
        self.questions: list[Question] = []
        self.answers: dict[QuestionId, Answer] = {}
        self.index = 0
        self.response_id: str | None = None
        self.timer: ContactPromptTimer | None = None
        self._token = ""
        self._clock = clock

    # -------------------- Loading --------------------

    @classmethod
    def load(cls, survey_id, *, embedded: bool = False, clock: Clock = time.time) -> "SurveyRun":
        run = cls(survey_id, embedded=embedded, clock=clock)
        run._attach()
        return run

    def _attach(self) -> None:
        try:
            survey = store.get_active_survey(self.survey_id)
        except store.SurveyNotFound:
            logger.info(f"Survey {self.survey_id} requested but not available")
            self.state = RunState.ERROR
            return
        questions = survey.get_questions()
        if not questions:
            self.state = RunState.ERROR
            return
        self.survey = survey
        self.questions = questions
        if survey.mailerlite_group_id and not self.embedded:
            self._token = get_token_for_user_id(survey.owner_id)
        self.state = RunState.ANSWERING

    @property
    def contact_enabled(self) -> bool:
        return bool(
            not self.embedded
            and self.survey is not None
            and self.survey.mailerlite_group_id
            and self._token
        )

    # -------------------- Answering --------------------

    def _require(self, *states: RunState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Not allowed while {self.state.value}")

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def current_question(self) -> Question:
        return self.questions[self.index]

    @property
    def is_last(self) -> bool:
        return self.index == self.question_count - 1

    @property
    def progress(self) -> float:
        if not self.questions:
            return 0.0
        return (self.index + 1) / self.question_count

    def _question(self, question_id) -> Question:
        for q in self.questions:
            if q.id == question_id:
                return q
        raise KeyError(question_id)

    def answer(self, question_id) -> Answer:
        return self.answers.get(QuestionId(str(question_id)), NO_ANSWER)

    def set_answer(self, question_id, raw) -> Answer:
        self._require(RunState.ANSWERING)
        question = self._question(question_id)
        answer = answer_for(question, raw)
        self.answers[question.id] = answer
        return answer

    def toggle_option(self, question_id, option: str) -> Answer:
        self._require(RunState.ANSWERING)
        question = self._question(question_id)
        if question.type != QuestionType.CHECKBOX:
            raise InvalidTransition("Only checkbox questions can toggle options")
        current = self.answers.get(question.id)
        if not isinstance(current, MultiChoiceAnswer):
            current = MultiChoiceAnswer()
        toggled = current.toggle(option)
        self.answers[question.id] = toggled if toggled.is_provided() else NO_ANSWER
        return self.answers[question.id]

    def next(self) -> RunState:
        self._require(RunState.ANSWERING)
        question = self.current_question
        if not is_answered(question, self.answer(question.id)):
            raise AnswerRequired("This question is required.", code="required")
        if self.is_last:
            return self.submit()
        self.index += 1
        return self.state

    def previous(self) -> RunState:
        self._require(RunState.ANSWERING)
        if self.index > 0:
            self.index -= 1
        return self.state

    def go_to(self, index: int) -> RunState:
        self._require(RunState.ANSWERING)
        if not 0 <= index <= self.index:
            raise IndexError(index)
        self.index = index
        return self.state

    # -------------------- Submission --------------------

    def response_map(self) -> dict[str, Any]:
        return {
            q.id: self.answer(q.id).to_json()
            for q in self.questions
            if self.answer(q.id).is_provided()
        }

    def response_email(self) -> str | None:
        question = self.survey.first_email_question()
        if question is None:
            return None
        answer = self.answer(question.id)
        return answer.to_json().strip() if answer.is_provided() else None

    def submit(self) -> RunState:
        self._require(RunState.ANSWERING)
        self.state = RunState.SUBMITTING
        if not all(is_answered(q, self.answer(q.id)) for q in self.questions):
            self.state = RunState.ANSWERING
            raise AnswerRequired("Please answer all required questions.", code="required")
        try:
            row = store.insert_response(self.survey, self.response_map(), self.response_email())
        except store.PersistenceError:
            self.state = RunState.ANSWERING
            raise
        self.response_id = str(row.id)
        self.state = RunState.SUBMITTED
        if self.contact_enabled:
            delay = getattr(settings, "CONTACT_PROMPT_DELAY_SECONDS", 2)
            self.timer = ContactPromptTimer(delay, clock=self._clock).start()
        return self.state

    # -------------------- Contact prompt --------------------

    def poll_contact_prompt(self) -> bool:
        """Advance to the contact prompt once the timer has fired."""
        if self.state == RunState.SUBMITTED and self.timer is not None and self.timer.poll():
            self.state = RunState.CONTACT_PROMPT
        return self.state == RunState.CONTACT_PROMPT

    def skip_contact(self) -> RunState:
        self._require(RunState.SUBMITTED, RunState.CONTACT_PROMPT)
        if self.timer is not None:
            self.timer.cancel()
        self.state = RunState.SUBMITTED
        return self.state

    def complete_contact(self, name: str, email: str) -> ContactResult:
        self._require(RunState.CONTACT_PROMPT)
        if not self.contact_enabled:
            raise InvalidTransition("Contact details are not collected for this survey")
        name = (name or "").strip()
        email = (email or "").strip()
        if not contact_is_valid(name, email):
            raise ContactInvalid("Please enter your name and a valid email address.")
        if self.timer is not None:
            self.timer.cancel()

        row = record_contact(self.response_id, name, email)
        synced = row.mailerlite_synced
        if not synced:
            try:
                MailerLiteClient(self._token).upsert_subscriber(
                    email, name, self.survey.mailerlite_group_id
                )
            except MailerLiteError as e:
                logger.warning(f"Contact for response {row.id} saved but not synced: {e}")
            else:
                store.update_response(row.id, mailerlite_synced=True)
                synced = True
        self.state = RunState.SUBMITTED
        return ContactResult(synced=synced)

    def refresh_seconds(self) -> int | None:
        """Whole seconds until the contact prompt is due, or None if not pending."""
        if self.state != RunState.SUBMITTED or self.timer is None or not self.timer.pending:
            return None
        return max(1, math.ceil(self.timer.remaining()))

    # -------------------- Lifecycle --------------------

    def close(self) -> None:
        if self.timer is not None:
            self.timer.cancel()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    def snapshot(self) -> dict[str, Any]:
        return {
            "survey_id": self.survey_id,
            "embedded": self.embedded,
            "state": self.state.value,
            "index": self.index,
            "answers": {qid: a.to_json() for qid, a in self.answers.items() if a.is_provided()},
            "response_id": self.response_id,
            "timer": self.timer.to_dict() if self.timer is not None else None,
        }

    @classmethod
    def restore(cls, data: dict[str, Any], clock: Clock = time.time) -> "SurveyRun":
        run = cls.load(data["survey_id"], embedded=bool(data.get("embedded")), clock=clock)
        if run.state == RunState.ERROR:
            return run
        state = RunState(data.get("state", RunState.ANSWERING.value))
        if state in (RunState.LOADING, RunState.ERROR, RunState.SUBMITTING):
            state = RunState.ANSWERING
        for qid, raw in (data.get("answers") or {}).items():
            try:
                question = run._question(qid)
            except KeyError:
                continue
            run.answers[question.id] = answer_for(question, raw)
        run.index = min(max(int(data.get("index", 0)), 0), run.question_count - 1)
        run.response_id = data.get("response_id")
        if state in (RunState.SUBMITTED, RunState.CONTACT_PROMPT) and not run.response_id:
            state = RunState.ANSWERING
        run.state = state
        if data.get("timer"):
            run.timer = ContactPromptTimer.from_dict(data["timer"], clock=clock)
        return run
