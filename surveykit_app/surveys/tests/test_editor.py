from unittest.mock import patch

from django.db import DatabaseError
import pytest
import requests

from surveykit_app.surveys.editor import (
    DraftValidationError,
    SurveyDraft,
    load_draft,
    session_key,
    store_draft,
)
from surveykit_app.surveys.models import Survey
from surveykit_app.surveys.questions import QuestionType
from surveykit_app.surveys.store import OwnerScope, PersistenceError


def _valid_draft() -> SurveyDraft:
    draft = SurveyDraft(title="  Feedback  ", description=" About us ")
    q = draft.add_question()
    draft.update_question(q.id, title="How did you hear about us?")
    return draft


class TestMutations:
    def test_add_question_defaults(self):
        draft = SurveyDraft()
        q = draft.add_question()
        assert q.type == QuestionType.TEXT
        assert q.title == ""
        assert q.required is False
        assert draft.questions == [q]

    def test_update_to_option_type_initializes_options(self):
        draft = SurveyDraft()
        q = draft.add_question()
        updated = draft.update_question(q.id, type="radio")
        assert updated.options == ("",)

    def test_switch_between_option_types_resets_options(self):
        draft = SurveyDraft()
        q = draft.add_question()
        draft.update_question(q.id, type="select", options=["Red", "Blue"])
        updated = draft.update_question(q.id, type="radio")
        assert updated.type == QuestionType.RADIO
        assert updated.options == ("",)

    def test_update_away_from_option_type_clears_options(self):
        draft = SurveyDraft()
        q = draft.add_question()
        draft.update_question(q.id, type="checkbox")
        draft.add_option(q.id)
        updated = draft.update_question(q.id, type="email")
        assert updated.options is None

    def test_update_cannot_change_id(self):
        draft = SurveyDraft()
        q = draft.add_question()
        updated = draft.update_question(q.id, id="other", title="X")
        assert updated.id == q.id

    def test_remove_question(self):
        draft = SurveyDraft()
        first = draft.add_question()
        second = draft.add_question()
        draft.remove_question(first.id)
        assert [q.id for q in draft.questions] == [second.id]

    def test_unknown_question_raises_key_error(self):
        draft = SurveyDraft()
        with pytest.raises(KeyError):
            draft.update_question("missing", title="X")
        with pytest.raises(KeyError):
            draft.remove_question("missing")

    def test_option_editing(self):
        draft = SurveyDraft()
        q = draft.add_question()
        draft.update_question(q.id, type="select")
        draft.add_option(q.id)
        draft.update_option(q.id, 0, "Red")
        draft.update_option(q.id, 1, "Blue")
        draft.remove_option(q.id, 0)
        assert draft.get_question(q.id).options == ("Blue",)

    def test_option_index_out_of_range(self):
        draft = SurveyDraft()
        q = draft.add_question()
        draft.update_question(q.id, type="select")
        with pytest.raises(IndexError):
            draft.update_option(q.id, 5, "x")
        with pytest.raises(IndexError):
            draft.remove_option(q.id, -1)

    def test_empty_option_list_is_allowed(self):
        draft = SurveyDraft()
        q = draft.add_question()
        draft.update_question(q.id, type="radio")
        draft.remove_option(q.id, 0)
        assert draft.get_question(q.id).options == ()

    def test_move_question(self):
        draft = SurveyDraft()
        a, b, c = draft.add_question(), draft.add_question(), draft.add_question()
        draft.move_question(c.id, -1)
        assert [q.id for q in draft.questions] == [a.id, c.id, b.id]
        draft.move_question(a.id, -1)
        assert [q.id for q in draft.questions] == [a.id, c.id, b.id]


class TestValidation:
    def test_title_required_first(self):
        draft = SurveyDraft(title="   ")
        with pytest.raises(DraftValidationError) as exc:
            draft.validate()
        assert exc.value.code == "title"

    def test_at_least_one_question(self):
        draft = SurveyDraft(title="T")
        with pytest.raises(DraftValidationError) as exc:
            draft.validate()
        assert exc.value.code == "no_questions"

    def test_every_question_needs_title(self):
        draft = _valid_draft()
        draft.add_question()
        with pytest.raises(DraftValidationError) as exc:
            draft.validate()
        assert exc.value.code == "question_title"
        assert "Question 2" in exc.value.messages[0]

    def test_valid_draft_passes(self):
        _valid_draft().validate()


@pytest.mark.django_db
class TestSave:
    def test_save_creates_trimmed_survey(self, owner):
        draft = _valid_draft()
        draft.mailerlite_group_id = "g1"
        survey = draft.save(OwnerScope.for_user(owner))
        survey.refresh_from_db()
        assert survey.title == "Feedback"
        assert survey.description == "About us"
        assert survey.mailerlite_group_id == "g1"
        assert survey.owner == owner
        assert len(survey.questions) == 1
        assert draft.survey_id == str(survey.id)

    def test_save_updates_existing(self, owner, make_survey):
        survey = make_survey()
        draft = SurveyDraft.from_survey(survey)
        draft.title = "Renamed"
        draft.save(OwnerScope.for_user(owner))
        survey.refresh_from_db()
        assert survey.title == "Renamed"
        assert Survey.objects.count() == 1

    def test_invalid_draft_writes_nothing(self, owner):
        with pytest.raises(DraftValidationError):
            SurveyDraft(title="No questions").save(OwnerScope.for_user(owner))
        assert Survey.objects.count() == 0

    def test_persistence_failure_leaves_draft_unchanged(self, owner):
        draft = _valid_draft()
        before = draft.to_session()
        with patch(
            "surveykit_app.surveys.store.Survey.objects.create",
            side_effect=DatabaseError("down"),
        ):
            with pytest.raises(PersistenceError):
                draft.save(OwnerScope.for_user(owner))
        assert draft.to_session() == before
        assert draft.is_new


class TestGroups:
    def test_groups_fetched_once(self, mailerlite_response):
        draft = SurveyDraft()
        payload = {"data": [{"id": "g1", "name": "Newsletter", "active_count": 3}]}
        with patch(
            "surveykit_app.integrations.mailerlite.requests.request",
            return_value=mailerlite_response(200, payload),
        ) as mock_request:
            draft.ensure_groups("tok")
            draft.ensure_groups("tok")
        assert mock_request.call_count == 1
        assert [g.name for g in draft.groups] == ["Newsletter"]

    def test_failed_fetch_is_not_retried(self):
        draft = SurveyDraft()
        with patch(
            "surveykit_app.integrations.mailerlite.requests.request",
            side_effect=requests.ConnectionError("offline"),
        ) as mock_request:
            assert draft.ensure_groups("tok") == []
            assert draft.ensure_groups("tok") == []
        assert mock_request.call_count == 1
        assert draft.groups_error


def test_session_round_trip_keeps_cached_groups():
    draft = _valid_draft()
    draft.groups = []
    draft.groups_error = "boom"
    session = {}
    store_draft(session, draft)
    assert session_key(None) in session
    restored = load_draft(session)
    assert restored == draft
