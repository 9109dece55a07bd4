import pytest
from django.contrib.auth import get_user_model

User = get_user_model()


@pytest.mark.django_db
def test_healthz(client):
    res = client.get("/healthz")
    assert res.status_code == 200
    assert res.content == b"ok"


@pytest.mark.django_db
def test_root_redirects_to_home(client):
    res = client.get("/")
    assert res.status_code == 302
    assert res.url == "/home"


@pytest.mark.django_db
def test_home_for_anonymous_user(client):
    res = client.get("/home")
    assert res.status_code == 200
    assert b"Create an account" in res.content


@pytest.mark.django_db
def test_home_redirects_signed_in_user_to_dashboard(client, owner):
    client.force_login(owner)
    res = client.get("/home")
    assert res.status_code == 302
    assert res.url == "/surveys/"


@pytest.mark.django_db
def test_signup_creates_account_and_logs_in(client):
    res = client.post(
        "/signup/",
        {
            "email": "New.Person@Example.com",
            "password1": "a-long-passphrase-42",
            "password2": "a-long-passphrase-42",
        },
    )
    assert res.status_code == 302
    assert res.url == "/surveys/"
    user = User.objects.get(email="new.person@example.com")
    assert user.username == "new.person@example.com"
    assert client.get("/surveys/").status_code == 200


@pytest.mark.django_db
def test_signup_rejects_duplicate_email(client, owner):
    res = client.post(
        "/signup/",
        {
            "email": owner.email.upper(),
            "password1": "a-long-passphrase-42",
            "password2": "a-long-passphrase-42",
        },
    )
    assert res.status_code == 200
    assert b"An account with this email already exists" in res.content
    assert User.objects.filter(email__iexact=owner.email).count() == 1


@pytest.mark.django_db
def test_login_page_renders(client):
    res = client.get("/accounts/login/")
    assert res.status_code == 200
    assert b"Log in" in res.content


@pytest.mark.django_db
def test_login_with_email_username(client, owner):
    res = client.post(
        "/accounts/login/", {"username": owner.username, "password": "test-pass"}
    )
    assert res.status_code == 302
    assert res.url == "/surveys/"
