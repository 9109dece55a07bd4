from __future__ import annotations

import csv
import io
from typing import Iterable

from django.utils import timezone

from .models import Survey, SurveyResponse
from .questions import answer_for

HEADER_PREFIX = ["Submitted at", "Email"]


def _format_timestamp(value) -> str:
    if value is None:
        return ""
    return timezone.localtime(value).strftime("%Y-%m-%d %H:%M:%S")


def build_export_rows(
    survey: Survey, responses: Iterable[SurveyResponse]
) -> list[list[str]]:
    """Flat table: a header row, then one row per response.

    Columns are the submission time, the email, then one per question in
    survey order. Checkbox answers are joined with ", ".
    """
    questions = survey.get_questions()
    rows = [HEADER_PREFIX + [q.title for q in questions]]
    for response in responses:
        answers = response.responses or {}
        row = [_format_timestamp(response.created_at), response.email or ""]
        for q in questions:
            row.append(answer_for(q, answers.get(q.id)).display())
        rows.append(row)
    return rows


def render_csv(rows: Iterable[list[str]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL)
    writer.writerows(rows)
    return buf.getvalue()


def export_filename(survey: Survey) -> str:
    # Header-safe; the title is otherwise kept as typed
    title = survey.title.replace('"', "").replace("\r", " ").replace("\n", " ")
    return f"{title}_odpowiedzi.csv"
