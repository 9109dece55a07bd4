import json

import pytest
from django.contrib.auth import get_user_model

from surveykit_app.surveys.models import Survey

User = get_user_model()
TEST_PASSWORD = "test-pass"


@pytest.mark.django_db
class TestJWTEnforcement:
    def setup_data(self):
        owner = User.objects.create_user(username="owner2", password=TEST_PASSWORD)
        survey = Survey.objects.create(
            owner=owner,
            title="Jwt S",
            questions=[{"id": "q1", "type": "text", "title": "Name", "required": True}],
        )
        return owner, survey

    def get_auth_header(self, client, username: str, password: str) -> dict:
        resp = client.post(
            "/api/token",
            data=json.dumps({"username": username, "password": password}),
            content_type="application/json",
        )
        assert resp.status_code == 200, resp.content
        access = resp.json()["access"]
        return {"HTTP_AUTHORIZATION": f"Bearer {access}"}

    def test_missing_token_behaviour(self, client):
        _, survey = self.setup_data()

        resp = client.get("/api/surveys/")
        assert resp.status_code in (401, 403)

        resp = client.get(f"/api/surveys/{survey.id}/")
        assert resp.status_code in (401, 403)

        resp = client.post(
            "/api/surveys/",
            data=json.dumps({"title": "New"}),
            content_type="application/json",
        )
        assert resp.status_code in (401, 403)

    def test_invalid_token_returns_401(self, client):
        _, survey = self.setup_data()
        invalid_hdrs = {"HTTP_AUTHORIZATION": "Bearer invalid.token.here"}

        resp = client.get("/api/surveys/", **invalid_hdrs)
        assert resp.status_code == 401

        resp = client.get(f"/api/surveys/{survey.id}/", **invalid_hdrs)
        assert resp.status_code == 401

    def test_valid_token_allows_access(self, client):
        _, survey = self.setup_data()
        hdrs = self.get_auth_header(client, "owner2", TEST_PASSWORD)

        resp = client.get("/api/surveys/", **hdrs)
        assert resp.status_code == 200
        assert [s["id"] for s in resp.json()] == [str(survey.id)]

    def test_wrong_password_is_rejected(self, client):
        self.setup_data()
        resp = client.post(
            "/api/token",
            data=json.dumps({"username": "owner2", "password": "wrong"}),
            content_type="application/json",
        )
        assert resp.status_code in (401, 403)

    def test_refresh_issues_new_access_token(self, client):
        self.setup_data()
        resp = client.post(
            "/api/token",
            data=json.dumps({"username": "owner2", "password": TEST_PASSWORD}),
            content_type="application/json",
        )
        refresh = resp.json()["refresh"]
        resp = client.post(
            "/api/token/refresh",
            data=json.dumps({"refresh": refresh}),
            content_type="application/json",
        )
        assert resp.status_code == 200
        assert "access" in resp.json()
