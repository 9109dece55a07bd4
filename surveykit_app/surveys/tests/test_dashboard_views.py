"""
Tests for the owner dashboard: listing, toggling, deleting, results and export.
"""

import csv
import io

import pytest

from surveykit_app.surveys.models import Survey, SurveyResponse


@pytest.mark.django_db
def test_dashboard_requires_login(client):
    resp = client.get("/surveys/")
    assert resp.status_code == 302
    assert "/accounts/login/" in resp.url


@pytest.mark.django_db
def test_dashboard_lists_only_own_surveys(client, owner, other_user, make_survey):
    make_survey(title="Mine")
    make_survey(title="Theirs", owner=other_user)
    client.force_login(owner)
    resp = client.get("/surveys/")
    assert resp.status_code == 200
    assert b"Mine" in resp.content
    assert b"Theirs" not in resp.content


@pytest.mark.django_db
class TestToggleActive:
    def test_toggle_flips_and_reports_stored_state(self, client, owner, make_survey):
        survey = make_survey(is_active=True)
        client.force_login(owner)
        resp = client.post(f"/surveys/{survey.id}/toggle-active/", follow=True)
        assert resp.status_code == 200
        assert b"Survey deactivated." in resp.content
        survey.refresh_from_db()
        assert survey.is_active is False

    def test_toggle_requires_post(self, client, owner, make_survey):
        survey = make_survey()
        client.force_login(owner)
        assert client.get(f"/surveys/{survey.id}/toggle-active/").status_code == 405

    def test_cannot_toggle_someone_elses_survey(self, client, other_user, make_survey):
        survey = make_survey(is_active=True)
        client.force_login(other_user)
        resp = client.post(f"/surveys/{survey.id}/toggle-active/")
        assert resp.status_code == 404
        survey.refresh_from_db()
        assert survey.is_active is True


@pytest.mark.django_db
class TestDelete:
    def test_get_shows_confirmation(self, client, owner, make_survey):
        survey = make_survey()
        client.force_login(owner)
        resp = client.get(f"/surveys/{survey.id}/delete/")
        assert resp.status_code == 200
        assert b"Type the survey title to confirm" in resp.content
        assert Survey.objects.filter(id=survey.id).exists()

    def test_wrong_title_does_not_delete(self, client, owner, make_survey):
        survey = make_survey()
        client.force_login(owner)
        resp = client.post(f"/surveys/{survey.id}/delete/", {"confirm_title": "nope"})
        assert resp.status_code == 400
        assert Survey.objects.filter(id=survey.id).exists()

    def test_matching_title_deletes_survey_and_responses(self, client, owner, make_survey):
        survey = make_survey()
        SurveyResponse.objects.create(survey=survey, responses={"q1": "x"})
        client.force_login(owner)
        resp = client.post(f"/surveys/{survey.id}/delete/", {"confirm_title": survey.title})
        assert resp.status_code == 302
        assert not Survey.objects.filter(id=survey.id).exists()
        assert not SurveyResponse.objects.exists()

    def test_other_user_gets_404(self, client, other_user, make_survey):
        survey = make_survey()
        client.force_login(other_user)
        resp = client.post(f"/surveys/{survey.id}/delete/", {"confirm_title": survey.title})
        assert resp.status_code == 404
        assert Survey.objects.filter(id=survey.id).exists()


@pytest.mark.django_db
class TestResultsAndExport:
    def test_results_table(self, client, owner, make_survey):
        survey = make_survey()
        SurveyResponse.objects.create(
            survey=survey, responses={"q1": "Ola"}, name="Jan", email="jan@x.com", mailerlite_synced=True
        )
        client.force_login(owner)
        resp = client.get(f"/surveys/{survey.id}/results/")
        assert resp.status_code == 200
        assert b"Ola" in resp.content
        assert b"jan@x.com" in resp.content
        assert b"Synced" in resp.content

    def test_results_mark_unsynced_contacts(self, client, owner, make_survey):
        survey = make_survey()
        contact = SurveyResponse.objects.create(
            survey=survey, responses={"q1": "Ola"}, name="Jan", email="jan@x.com"
        )
        SurveyResponse.objects.create(survey=survey, responses={"q1": "Anon"})
        assert contact.has_contact()
        client.force_login(owner)
        resp = client.get(f"/surveys/{survey.id}/results/")
        assert resp.content.count(b"Not synced") == 1
        assert b">Synced<" not in resp.content

    def test_export_csv(self, client, owner, make_survey):
        survey = make_survey(title="Ankieta")
        SurveyResponse.objects.create(survey=survey, responses={"q1": "Ola"})
        SurveyResponse.objects.create(survey=survey, responses={"q1": "Jan", "q2": "jan@x.com"}, email="jan@x.com")
        client.force_login(owner)
        resp = client.get(f"/surveys/{survey.id}/export.csv")
        assert resp.status_code == 200
        assert resp["Content-Type"].startswith("text/csv")
        assert "attachment" in resp["Content-Disposition"]
        assert "Ankieta_odpowiedzi.csv" in resp["Content-Disposition"]

        text = resp.content.decode("utf-8")
        rows = list(csv.reader(io.StringIO(text)))
        assert rows[0] == ["Submitted at", "Email", "Name", "Email"]
        assert len(rows) == 3
        assert all(len(row) == 4 for row in rows)
        assert text.startswith('"Submitted at"')

    def test_export_is_owner_only(self, client, other_user, make_survey):
        survey = make_survey()
        client.force_login(other_user)
        assert client.get(f"/surveys/{survey.id}/export.csv").status_code == 404
