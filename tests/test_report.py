"""Full report gate: served only after the server-side unlock check."""

from helpers import API, QUIZ_DATA, create_attempt, create_user, login, pay_for_unlock


def test_locked_report_is_402_with_price(client, db, scoring_engine):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    response = client.get(f"{API}/reports/{attempt.id}")

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["reason"] == "report-locked"
    assert detail["price"] == {"amountCents": 999, "currency": "usd"}
    assert scoring_engine.calls == []


def test_unlocked_report_returns_ranked_matches(client, db, processor, scoring_engine):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)
    pay_for_unlock(client, processor, user.id, attempt.id)

    response = client.get(f"{API}/reports/{attempt.id}")

    assert response.status_code == 200
    body = response.json()
    assert body["quizAttemptId"] == attempt.id
    assert [m["businessModelId"] for m in body["matches"]] == ["affiliate-marketing", "freelancing"]
    assert body["matches"][0]["rank"] == 1
    assert scoring_engine.calls == [QUIZ_DATA]


def test_report_of_another_user_is_forbidden(client, db):
    create_user(db)
    other = create_user(db, email="other@example.com")
    attempt = create_attempt(db, other.id)
    login(client)

    assert client.get(f"{API}/reports/{attempt.id}").status_code == 403
    assert client.get(f"{API}/reports/9999").status_code == 404


def test_report_requires_login(client, db):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    assert client.get(f"{API}/reports/{attempt.id}").status_code == 401
