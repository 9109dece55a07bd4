import csv
import io

import pytest

from surveykit_app.surveys.export import build_export_rows, export_filename, render_csv
from surveykit_app.surveys.models import SurveyResponse

QUESTIONS = [
    {"id": "q1", "type": "text", "title": "Name", "required": True},
    {"id": "q2", "type": "checkbox", "title": "Colours", "required": False, "options": ["Red", "Blue"]},
    {"id": "q3", "type": "radio", "title": "Size", "required": False, "options": ["S", "M"]},
]


@pytest.fixture
def survey(make_survey):
    return make_survey(title="Ankieta", questions=QUESTIONS)


@pytest.mark.django_db
def test_rows_have_header_and_fixed_width(survey):
    first = SurveyResponse.objects.create(
        survey=survey, responses={"q1": "Ola", "q2": ["Red", "Blue"]}, email="ola@example.com"
    )
    second = SurveyResponse.objects.create(survey=survey, responses={"q3": "M"})
    rows = build_export_rows(survey, [first, second])

    assert rows[0] == ["Submitted at", "Email", "Name", "Colours", "Size"]
    assert len(rows) == 3
    assert all(len(row) == 2 + len(QUESTIONS) for row in rows[1:])
    assert rows[1][1:] == ["ola@example.com", "Ola", "Red, Blue", ""]
    assert rows[2][1:] == ["", "", "", "M"]


@pytest.mark.django_db
def test_no_responses_gives_header_only(survey):
    rows = build_export_rows(survey, [])
    assert len(rows) == 1


def test_render_csv_quotes_every_field():
    text = render_csv([["a", "b"], ["1, 2", 'say "hi"']])
    assert text.splitlines()[0] == '"a","b"'
    assert text.splitlines()[1] == '"1, 2","say ""hi"""'
    assert list(csv.reader(io.StringIO(text))) == [["a", "b"], ["1, 2", 'say "hi"']]


@pytest.mark.django_db
def test_export_filename_uses_title(survey):
    assert export_filename(survey) == "Ankieta_odpowiedzi.csv"
