"""
Session/auth gate and account endpoints: signup staging, login, fallback
session restore, stale-session clearing, profile, password reset, deletion.
"""

from datetime import timedelta

from sqlmodel import select

from bizmodel.core.clock import utcnow
from bizmodel.models.payment import Payment
from bizmodel.models.quiz_attempt import QuizAttempt
from bizmodel.models.staged_account import StagedAccount
from bizmodel.models.user import LoginSession, PasswordResetToken, User
from bizmodel.repositories.user_repo import UserRepository

from helpers import API, PASSWORD, create_attempt, create_user, login, signup


# -------- Signup --------


def test_signup_stages_without_durable_user(client, db):
    body = signup(client, email="New@Example.com")

    assert body["id"].startswith("temp_")
    assert body["isTemporary"] is True
    assert body["email"] == "new@example.com"
    assert "expiresAt" in body
    assert UserRepository().get_by_email(db, "new@example.com") is None

    staged = db.exec(select(StagedAccount)).one()
    assert staged.password_hash != PASSWORD


def test_signup_with_durable_email_conflicts(client, db):
    create_user(db, email="taken@example.com")
    response = client.post(
        f"{API}/auth/signup",
        json={"email": "taken@example.com", "password": PASSWORD, "name": "Dup"},
    )
    assert response.status_code == 409


def test_signup_validation_errors_are_400(client):
    weak = client.post(
        f"{API}/auth/signup",
        json={"email": "a@example.com", "password": "short", "name": "A"},
    )
    bad_email = client.post(
        f"{API}/auth/signup",
        json={"email": "not-an-email", "password": PASSWORD, "name": "A"},
    )
    no_digit = client.post(
        f"{API}/auth/signup",
        json={"email": "a@example.com", "password": "NoDigitsHere", "name": "A"},
    )
    assert weak.status_code == 400
    assert bad_email.status_code == 400
    assert no_digit.status_code == 400


def test_restaging_same_email_replaces_previous_row(client, db):
    first = signup(client, email="again@example.com")
    second = signup(client, email="again@example.com")

    tokens = [s.token for s in db.exec(select(StagedAccount)).all()]
    assert first["id"] != second["id"]
    assert tokens == [second["id"].removeprefix("temp_")]


# -------- Login / me / logout --------


def test_login_sets_session_and_me_works(client, db):
    create_user(db)
    body = login(client)

    assert body["email"] == "user@example.com"
    assert body["isTemporary"] is False
    assert body["isPaid"] is False
    assert "bizmodel_session" in client.cookies

    me = client.get(f"{API}/auth/me")
    assert me.status_code == 200
    assert me.json()["id"] == body["id"]


def test_login_with_bad_credentials(client, db):
    create_user(db)
    wrong_password = client.post(f"{API}/auth/login", json={"email": "user@example.com", "password": "Wrong1234"})
    unknown = client.post(f"{API}/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert wrong_password.status_code == 401
    assert unknown.status_code == 401
    assert wrong_password.json() == unknown.json()


def test_me_without_session_is_401(client):
    assert client.get(f"{API}/auth/me").status_code == 401


def test_tampered_cookie_is_anonymous(client, db):
    create_user(db)
    client.cookies.set("bizmodel_session", "not-a-valid-jwt")
    assert client.get(f"{API}/auth/me").status_code == 401


def test_logout_clears_cookie_and_fallback(make_client, db, fallback_store):
    create_user(db)
    client = make_client("agent-logout")
    login(client)
    assert len(fallback_store) == 1

    assert client.post(f"{API}/auth/logout").status_code == 200
    assert len(fallback_store) == 0
    assert client.get(f"{API}/auth/me").status_code == 401


def test_session_is_committed_before_response(client, db):
    user = create_user(db)
    login(client)
    db.expire_all()
    sessions = db.exec(select(LoginSession).where(LoginSession.user_id == user.id)).all()
    assert len(sessions) == 1


# -------- Fallback cache --------


def test_fallback_restores_session_when_cookie_is_lost(make_client, db):
    user = create_user(db)
    browser = make_client("same-browser")
    login(browser)

    # Same browser instance, cookie jar wiped by the embedding webview
    cookieless = make_client("same-browser")
    me = cookieless.get(f"{API}/auth/me")

    assert me.status_code == 200
    assert me.json()["id"] == user.id
    # Self-healed: a fresh primary session cookie was issued
    assert "bizmodel_session" in cookieless.cookies
    db.expire_all()
    assert len(db.exec(select(LoginSession).where(LoginSession.user_id == user.id)).all()) == 2


def test_fallback_is_keyed_by_user_agent(make_client, db):
    create_user(db)
    login(make_client("browser-a"))
    assert make_client("browser-b").get(f"{API}/auth/me").status_code == 401


def test_fallback_entry_for_deleted_user_is_cleared(client, db, fallback_store):
    user = create_user(db)
    login(client)
    assert len(fallback_store) == 1

    # Removed behind the app's back; its session rows cascade away
    UserRepository().delete(db, user)

    assert client.get(f"{API}/auth/me").status_code == 401
    assert len(fallback_store) == 0


def test_expired_primary_session_is_reissued_from_fallback(client, db):
    user = create_user(db)
    login(client)
    db.expire_all()
    login_session = db.exec(select(LoginSession).where(LoginSession.user_id == user.id)).one()
    old_sid = login_session.sid
    login_session.expires_at = utcnow() - timedelta(minutes=1)
    db.add(login_session)
    db.commit()

    # Fallback still knows this browser, so the session is re-issued
    me = client.get(f"{API}/auth/me")
    assert me.status_code == 200
    db.expire_all()
    remaining = db.exec(select(LoginSession).where(LoginSession.user_id == user.id)).all()
    assert len(remaining) == 1
    assert remaining[0].sid != old_sid


# -------- Profile / password --------


def test_update_profile(client, db):
    create_user(db)
    login(client)
    response = client.patch(f"{API}/auth/profile", json={"name": "  Renamed  ", "isUnsubscribed": True})
    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"
    assert response.json()["isUnsubscribed"] is True


def test_profile_rejects_unknown_fields(client, db):
    create_user(db)
    login(client)
    response = client.patch(f"{API}/auth/profile", json={"email": "new@example.com"})
    assert response.status_code == 400


def test_change_password(client, db):
    create_user(db)
    login(client)

    wrong = client.post(
        f"{API}/auth/change-password",
        json={"currentPassword": "Nope12345", "newPassword": "N3wPassword"},
    )
    assert wrong.status_code == 400

    ok = client.post(
        f"{API}/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "N3wPassword"},
    )
    assert ok.status_code == 200
    login(client, password="N3wPassword")


def test_change_password_signs_out_other_browsers(make_client, db, fallback_store):
    create_user(db)
    current = make_client("laptop")
    other = make_client("phone")
    login(current)
    login(other)

    response = current.post(
        f"{API}/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "N3wPassword"},
    )
    assert response.status_code == 200

    assert other.get(f"{API}/auth/me").status_code == 401
    assert current.get(f"{API}/auth/me").status_code == 200
    # Only the caller's fallback entry survives
    assert len(fallback_store) == 1


def test_unsubscribe_never_reveals_accounts(client, db):
    create_user(db)
    known = client.post(f"{API}/auth/unsubscribe", json={"email": "user@example.com"})
    unknown = client.post(f"{API}/auth/unsubscribe", json={"email": "ghost@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    db.expire_all()
    assert UserRepository().get_by_email(db, "user@example.com").is_unsubscribed is True


# -------- Password reset --------


def _reset_token(db, user_id: int) -> PasswordResetToken:
    db.expire_all()
    return db.exec(select(PasswordResetToken).where(PasswordResetToken.user_id == user_id)).one()


def test_password_reset_flow(client, db, email_sender):
    user = create_user(db)

    known = client.post(f"{API}/auth/forgot-password", json={"email": "user@example.com"})
    unknown = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"})
    assert known.json() == unknown.json()
    assert email_sender.templates() == ["password-reset"]

    token = _reset_token(db, user.id).token
    assert client.get(f"{API}/auth/verify-reset-token/{token}").json() == {"valid": True}

    reset = client.post(f"{API}/auth/reset-password", json={"token": token, "password": "Br4ndNewPass"})
    assert reset.status_code == 200
    login(client, password="Br4ndNewPass")

    # Single use
    again = client.post(f"{API}/auth/reset-password", json={"token": token, "password": "An0therPass"})
    assert again.status_code == 400
    assert client.get(f"{API}/auth/verify-reset-token/{token}").status_code == 400


def test_password_reset_revokes_existing_browsers(make_client, db, fallback_store):
    user = create_user(db)
    attacker = make_client("attacker-browser")
    login(attacker)
    assert attacker.get(f"{API}/auth/me").status_code == 200

    owner = make_client("owner-browser")
    owner.post(f"{API}/auth/forgot-password", json={"email": "user@example.com"})
    token = _reset_token(db, user.id).token
    assert owner.post(f"{API}/auth/reset-password", json={"token": token, "password": "Br4ndNewPass"}).status_code == 200

    # Neither the old cookie nor the IP+UA fallback brings the session back
    assert attacker.get(f"{API}/auth/me").status_code == 401
    assert len(fallback_store) == 0
    assert attacker.get(f"{API}/auth/me").status_code == 401


def test_expired_reset_token_is_rejected(client, db):
    user = create_user(db)
    db.add(PasswordResetToken(token="old-token", user_id=user.id, expires_at=utcnow() - timedelta(seconds=1)))
    db.commit()

    response = client.post(f"{API}/auth/reset-password", json={"token": "old-token", "password": "Br4ndNewPass"})
    assert response.status_code == 400
    db.expire_all()
    assert db.get(PasswordResetToken, "old-token") is None


# -------- Deletion --------


def test_delete_account_cascades(client, db):
    user = create_user(db)
    user_id = user.id
    attempt = create_attempt(db, user_id)
    db.add(
        Payment(
            user_id=user_id,
            amount_cents=999,
            purpose="report-unlock",
            quiz_attempt_id=attempt.id,
            status="completed",
        )
    )
    db.commit()
    login(client)

    response = client.delete(f"{API}/auth/account")
    assert response.status_code == 200

    db.expire_all()
    assert db.get(User, user_id) is None
    assert db.exec(select(QuizAttempt).where(QuizAttempt.user_id == user_id)).all() == []
    assert db.exec(select(Payment).where(Payment.user_id == user_id)).all() == []
    assert db.exec(select(LoginSession).where(LoginSession.user_id == user_id)).all() == []
    assert client.get(f"{API}/auth/me").status_code == 401
