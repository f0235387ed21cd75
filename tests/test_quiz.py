"""
Quiz retake gate: one free attempt, bundles add retakes, an access pass
removes the limit.
"""

from helpers import API, QUIZ_DATA, create_user, login


def submit(client, data=None):
    return client.post(f"{API}/quiz-attempts", json={"quizData": data or QUIZ_DATA})


def buy(client, processor, what: str) -> dict:
    intent_id = client.post(f"{API}/payments/{what}").json()["processorIntentId"]
    processor.succeed(intent_id)
    confirmed = client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id})
    assert confirmed.status_code == 200, confirmed.text
    return confirmed.json()


def test_first_attempt_is_free_second_needs_payment(client, db):
    create_user(db)
    login(client)

    first = submit(client)
    assert first.status_code == 201
    assert first.json()["remainingRetakes"] == 0

    second = submit(client)
    assert second.status_code == 402
    assert second.json()["detail"]["reason"] == "quiz-retake-exhausted"

    assert len(client.get(f"{API}/quiz-attempts").json()) == 1


def test_retake_status_reflects_ledger(client, db):
    create_user(db)
    login(client)

    assert client.get(f"{API}/quiz-attempts/retake-status").json() == {
        "canSubmit": True,
        "remainingRetakes": 1,
        "hasAccessPass": False,
    }
    submit(client)
    assert client.get(f"{API}/quiz-attempts/retake-status").json()["canSubmit"] is False


def test_retake_bundle_grants_extra_attempts(client, db, processor):
    create_user(db)
    login(client)
    submit(client)

    assert buy(client, processor, "retake-bundle")["status"] == "completed"

    assert submit(client, {"round": 2}).json()["remainingRetakes"] == 1
    assert submit(client, {"round": 3}).json()["remainingRetakes"] == 0
    assert submit(client, {"round": 4}).status_code == 402


def test_unpaid_bundle_grants_nothing(client, db, processor):
    create_user(db)
    login(client)
    submit(client)

    intent_id = client.post(f"{API}/payments/retake-bundle").json()["processorIntentId"]
    processor.fail(intent_id)
    client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id})

    assert submit(client).status_code == 402


def test_access_pass_removes_the_limit(client, db, processor):
    create_user(db)
    login(client)
    submit(client)
    buy(client, processor, "access-pass")

    for n in range(4):
        response = submit(client, {"round": n})
        assert response.status_code == 201
        assert response.json()["remainingRetakes"] is None

    assert len(client.get(f"{API}/quiz-attempts").json()) == 5
    status = client.get(f"{API}/quiz-attempts/retake-status").json()
    assert status == {"canSubmit": True, "remainingRetakes": None, "hasAccessPass": True}
    # Nothing left to sell
    assert client.post(f"{API}/payments/retake-bundle").json()["alreadyUnlocked"] is True


def test_attempts_are_listed_newest_first(client, db, processor):
    create_user(db)
    login(client)
    buy(client, processor, "access-pass")
    submit(client, {"round": 1})
    submit(client, {"round": 2})

    attempts = client.get(f"{API}/quiz-attempts").json()
    assert [a["quizData"] for a in attempts] == [{"round": 2}, {"round": 1}]


def test_empty_submission_is_400(client, db):
    create_user(db)
    login(client)
    assert client.post(f"{API}/quiz-attempts", json={"quizData": {}}).status_code == 400


def test_quiz_requires_login(client):
    assert submit(client).status_code == 401
