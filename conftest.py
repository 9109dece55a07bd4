import json
from unittest.mock import MagicMock

from django.core.cache import cache
import pytest

TEST_PASSWORD = "test-pass"


@pytest.fixture(autouse=True)
def clear_cache_between_tests():
    """Rate limit and throttle counters live in the cache."""
    cache.clear()
    yield
    cache.clear()


@pytest.fixture
def owner(django_user_model):
    return django_user_model.objects.create_user(
        username="owner@example.com", email="owner@example.com", password=TEST_PASSWORD
    )


@pytest.fixture
def other_user(django_user_model):
    return django_user_model.objects.create_user(
        username="other@example.com", email="other@example.com", password=TEST_PASSWORD
    )


@pytest.fixture
def make_survey(owner):
    from surveykit_app.surveys.models import Survey

    def _make(**fields):
        fields.setdefault("owner", owner)
        fields.setdefault("title", "Customer feedback")
        fields.setdefault(
            "questions",
            [
                {"id": "q1", "type": "text", "title": "Name", "required": True},
                {"id": "q2", "type": "email", "title": "Email", "required": False},
            ],
        )
        return Survey.objects.create(**fields)

    return _make


@pytest.fixture
def mailerlite_response():
    """Build a fake ``requests.Response`` for patched MailerLite calls."""

    def _make(status=200, payload=None, text=None):
        body = text if text is not None else (json.dumps(payload) if payload is not None else "")
        resp = MagicMock()
        resp.status_code = status
        resp.ok = 200 <= status < 300
        resp.text = body
        resp.content = body.encode("utf-8")
        resp.json.side_effect = lambda: json.loads(body)
        return resp

    return _make


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
