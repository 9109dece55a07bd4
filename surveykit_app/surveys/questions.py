"""Question definitions and typed answers.

Questions are stored on ``Survey.questions`` as a JSON list; this module is the
single place that converts between that stored shape and Python objects.

Answers are a small tagged union so a checkbox question can never carry a
single string and a text question can never carry a list:

- ``NoAnswer``          nothing provided
- ``TextAnswer``        text, email, textarea
- ``ChoiceAnswer``      select, radio
- ``MultiChoiceAnswer`` checkbox
"""

from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, NewType, Union

from django.db import models

QuestionId = NewType("QuestionId", str)


class QuestionType(models.TextChoices):
    TEXT = "text", "Short text"
    EMAIL = "email", "Email"
    TEXTAREA = "textarea", "Long text"
    SELECT = "select", "Drop-down list"
    RADIO = "radio", "Single choice"
    CHECKBOX = "checkbox", "Multiple choice"


OPTION_TYPES = frozenset({QuestionType.SELECT, QuestionType.RADIO, QuestionType.CHECKBOX})
TEXT_TYPES = frozenset({QuestionType.TEXT, QuestionType.EMAIL, QuestionType.TEXTAREA})


def new_question_id() -> QuestionId:
    # Millisecond timestamp like the stored ids, plus a suffix so two questions
    # added within the same millisecond do not collide.
    return QuestionId(f"{int(time.time() * 1000)}{secrets.token_hex(4)}")


@dataclass(frozen=True)
class Question:
    id: QuestionId
    type: QuestionType = QuestionType.TEXT
    title: str = ""
    description: str = ""
    required: bool = False
    options: tuple[str, ...] | None = None

    @property
    def has_options(self) -> bool:
        return self.type in OPTION_TYPES

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Question":
        qtype = QuestionType(data.get("type") or QuestionType.TEXT)
        options = data.get("options")
        return cls(
            id=QuestionId(str(data["id"])),
            type=qtype,
            title=data.get("title") or "",
            description=data.get("description") or "",
            required=bool(data.get("required", False)),
            options=tuple(str(o) for o in options) if qtype in OPTION_TYPES and options is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "required": self.required,
        }
        if self.description:
            data["description"] = self.description
        if self.options is not None:
            data["options"] = list(self.options)
        return data

    def with_patch(self, **patch: Any) -> "Question":
        """Shallow-merge a partial update.

        Changing to an option-bearing type resets the option list to one empty
        entry, even when coming from another option type; changing to any
        other type drops the options. Options passed in the same patch win.
        """
        if "type" in patch:
            patch["type"] = QuestionType(patch["type"])
            if patch["type"] != self.type and "options" not in patch:
                patch["options"] = ("",) if patch["type"] in OPTION_TYPES else None
        if patch.get("options") is not None:
            patch["options"] = tuple(str(o) for o in patch["options"])
        updated = replace(self, **patch)
        if updated.type not in OPTION_TYPES and updated.options is not None:
            updated = replace(updated, options=None)
        elif updated.type in OPTION_TYPES and updated.options is None:
            updated = replace(updated, options=("",))
        return updated


def parse_questions(raw: Iterable[dict[str, Any]] | None) -> list[Question]:
    return [Question.from_dict(item) for item in (raw or [])]


def dump_questions(questions: Iterable[Question]) -> list[dict[str, Any]]:
    return [q.to_dict() for q in questions]


# -------------------- Answers --------------------


@dataclass(frozen=True)
class NoAnswer:
    def is_provided(self) -> bool:
        return False

    def to_json(self) -> None:
        return None

    def display(self) -> str:
        return ""


@dataclass(frozen=True)
class TextAnswer:
    value: str

    def is_provided(self) -> bool:
        return bool(self.value.strip())

    def to_json(self) -> str:
        return self.value

    def display(self) -> str:
        return self.value


@dataclass(frozen=True)
class ChoiceAnswer:
    value: str

    def is_provided(self) -> bool:
        return bool(self.value.strip())

    def to_json(self) -> str:
        return self.value

    def display(self) -> str:
        return self.value


@dataclass(frozen=True)
class MultiChoiceAnswer:
    values: tuple[str, ...] = field(default_factory=tuple)

    def is_provided(self) -> bool:
        return len(self.values) > 0

    def to_json(self) -> list[str]:
        return list(self.values)

    def display(self) -> str:
        return ", ".join(self.values)

    def toggle(self, option: str) -> "MultiChoiceAnswer":
        if option in self.values:
            return MultiChoiceAnswer(tuple(v for v in self.values if v != option))
        return MultiChoiceAnswer(self.values + (option,))


Answer = Union[NoAnswer, TextAnswer, ChoiceAnswer, MultiChoiceAnswer]

NO_ANSWER = NoAnswer()


def answer_for(question: Question, raw: Any) -> Answer:
    """Build the answer variant matching ``question.type`` from raw input.

    ``raw`` may be ``None``, a string or a list of strings (form data or a
    stored JSON value). Values of the wrong shape are coerced rather than
    rejected: a list given to a text question keeps its first item, a string
    given to a checkbox question becomes a one-item selection.
    """
    if raw is None:
        return NO_ANSWER
    if question.type == QuestionType.CHECKBOX:
        items = [raw] if isinstance(raw, str) else list(raw)
        values: list[str] = []
        for item in items:
            item = str(item)
            if item and item not in values:
                values.append(item)
        return MultiChoiceAnswer(tuple(values)) if values else NO_ANSWER
    if isinstance(raw, (list, tuple)):
        raw = raw[0] if raw else ""
    value = str(raw)
    if value == "":
        return NO_ANSWER
    if question.type in OPTION_TYPES:
        return ChoiceAnswer(value)
    return TextAnswer(value)


def is_answered(question: Question, answer: Answer) -> bool:
    """Whether ``answer`` satisfies ``question`` when it is required."""
    if not question.required:
        return True
    return answer.is_provided()
