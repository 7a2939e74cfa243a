from __future__ import annotations

import time

from identity import AuthService, Identity, LocalState

from conftest import FakeResponse, make_token


def test_token_claims_drive_tenant_and_user(identity: Identity) -> None:
    identity.sign_in(make_token(username="ana", company="acme"))

    assert identity.is_authenticated() is True
    assert identity.current_tenant() == "acme"
    assert identity.user_name() == "ana"


def test_company_claim_may_be_an_object(identity: Identity) -> None:
    identity.sign_in(make_token(email="ana@example.org", company={"_id": "c-1", "name": "Acme"}))

    assert identity.current_tenant() == "Acme"
    assert identity.user_name() == "ana@example.org"


def test_expired_token_counts_as_anonymous(identity: Identity) -> None:
    identity.sign_in(make_token(company="acme", exp=int(time.time()) - 60))

    assert identity.is_authenticated() is False
    assert identity.current_tenant() is None


def test_garbage_token_is_ignored(identity: Identity) -> None:
    identity.sign_in("not-a-jwt")

    assert identity.claims == {}
    assert identity.is_authenticated() is False


def test_token_survives_restart(state: LocalState) -> None:
    Identity(state).sign_in(make_token(company="acme"))

    assert Identity(state).current_tenant() == "acme"

    Identity(state).sign_out()
    assert Identity(state).token is None


def test_unreadable_state_file_reads_as_empty(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text("{not json", encoding="utf-8")
    state = LocalState(path)

    assert state.load() == {}
    state.update(locale="en")
    assert state.get("locale") == "en"


def test_login_stores_token_and_sends_it_afterwards(session, client, identity, notifier) -> None:
    token = make_token(username="ana", company="acme")
    session.add("POST", "/api/users/login", {"token": token})
    session.add("GET", "/api/books/categories", [])
    auth = AuthService(client, identity, notifier)

    assert auth.login(" ana@example.org ", "secret") is True

    assert session.calls[0].json == {"email": "ana@example.org", "password": "secret"}
    assert identity.token == token
    assert notifier.last().key == "loginSuccess"
    client.list_categories()
    assert session.calls[-1].headers["Authorization"] == f"Bearer {token}"


def test_login_requires_both_fields(session, client, identity, notifier) -> None:
    auth = AuthService(client, identity, notifier)

    assert auth.login("", "secret") is False
    assert auth.login("ana@example.org", "") is False

    assert session.calls == []
    assert notifier.last().key == "fillAllRequiredFields"


def test_login_failure_shows_server_message(session, client, identity, notifier) -> None:
    session.add("POST", "/api/users/login", FakeResponse(401, {"message": "Invalid credentials"}))
    auth = AuthService(client, identity, notifier)

    assert auth.login("ana@example.org", "wrong") is False

    assert notifier.last().message == "Invalid credentials"
    assert identity.token is None
    assert auth.busy is False


def test_login_and_signup_reject_bodies_that_are_not_objects(session, client, identity, notifier) -> None:
    session.add("POST", "/api/users/login", ["token"], "ok")
    session.add("POST", "/api/users/signup", ["success"])
    auth = AuthService(client, identity, notifier)

    assert auth.login("ana@example.org", "secret") is False
    assert notifier.last().key == "loginError"
    assert auth.login("ana@example.org", "secret") is False
    assert notifier.last().key == "loginError"
    assert identity.token is None

    assert auth.signup("ana", "ana@example.org", "secret", "secret") is False
    assert notifier.last().key == "signupError"
    assert auth.busy is False


def test_signup_checks_password_confirmation(session, client, identity, notifier) -> None:
    auth = AuthService(client, identity, notifier)

    assert auth.signup("ana", "ana@example.org", "secret", "secrte") is False

    assert session.calls == []
    assert notifier.last().key == "passwordsMismatch"


def test_signup_needs_success_flag(session, client, identity, notifier) -> None:
    session.add(
        "POST",
        "/api/users/signup",
        {"success": False, "message": "Email already registered"},
        {"success": True},
    )
    auth = AuthService(client, identity, notifier)

    assert auth.signup("ana", "ana@example.org", "secret", "secret") is False
    assert notifier.last().message == "Email already registered"

    assert auth.signup("ana", "ana@example.org", "secret", "secret") is True
    assert notifier.last().key == "signupSuccess"
    assert session.calls[-1].json == {"username": "ana", "email": "ana@example.org", "password": "secret"}


def test_logout_clears_session(client, identity, notifier) -> None:
    identity.sign_in(make_token(company="acme"))
    auth = AuthService(client, identity, notifier)

    auth.logout()

    assert identity.is_authenticated() is False
    assert notifier.last().key == "logoutSuccess"
