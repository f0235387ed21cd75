"""
Report unlock resolver: price tiers, unlock status, the no-double-charge
guard and the storage-level uniqueness backstop.
"""

from sqlmodel import select

from bizmodel.models.payment import Payment, Refund

from helpers import (
    ADMIN_HEADERS,
    API,
    create_attempt,
    create_user,
    login,
    pay_for_unlock,
    signup,
    start_unlock,
)


def status_of(client, user_id, attempt_id):
    response = client.get(f"{API}/report-unlock/status/{user_id}/{attempt_id}")
    assert response.status_code == 200, response.text
    return response.json()


# -------- Pricing --------


def test_staged_user_always_sees_first_report_price(client):
    staged_id = signup(client)["id"]
    response = client.get(f"{API}/report-unlock/pricing/{staged_id}")
    assert response.status_code == 200
    assert response.json() == {
        "price": {"amountCents": 999, "currency": "usd"},
        "isFirstReport": True,
    }


def test_durable_user_without_unlocks_sees_first_report_price(client, db):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    assert status_of(client, user.id, attempt.id) == {
        "unlocked": False,
        "priceIfLocked": {"amountCents": 999, "currency": "usd"},
    }


def test_returning_user_sees_lower_price_for_new_attempt(client, db, processor):
    user = create_user(db)
    first = create_attempt(db, user.id)
    login(client)
    pay_for_unlock(client, processor, user.id, first.id)

    second = create_attempt(db, user.id, {"round": 2})
    body = status_of(client, user.id, second.id)

    assert body["unlocked"] is False
    assert body["priceIfLocked"] == {"amountCents": 499, "currency": "usd"}
    pricing = client.get(f"{API}/report-unlock/pricing/{user.id}").json()
    assert pricing["isFirstReport"] is False


def test_failed_unlock_does_not_lower_price(client, db, processor):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    intent_id = start_unlock(client, user.id, attempt.id)["processorIntentId"]
    processor.fail(intent_id)
    client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id})

    assert status_of(client, user.id, attempt.id)["priceIfLocked"]["amountCents"] == 999


# -------- Unlock + guard --------


def test_paid_attempt_is_unlocked(client, db, processor):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    confirmed = pay_for_unlock(client, processor, user.id, attempt.id)

    assert confirmed["status"] == "completed"
    assert confirmed["unlocked"] is True
    assert status_of(client, user.id, attempt.id) == {"unlocked": True, "priceIfLocked": None}


def test_create_payment_is_noop_once_unlocked(client, db, processor):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)
    pay_for_unlock(client, processor, user.id, attempt.id)
    intents_before = len(processor.intents)

    again = start_unlock(client, user.id, attempt.id)

    assert again["alreadyUnlocked"] is True
    assert again["clientSecret"] is None
    assert len(processor.intents) == intents_before


def test_concurrent_intents_complete_at_most_once(client, db, processor):
    """Two tabs both got an intent before either paid; only one may complete."""
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    first = start_unlock(client, user.id, attempt.id)["processorIntentId"]
    second = start_unlock(client, user.id, attempt.id)["processorIntentId"]
    assert first != second
    processor.succeed(first)
    processor.succeed(second)

    one = client.post(f"{API}/payments/confirm", json={"processorIntentId": first}).json()
    two = client.post(f"{API}/payments/confirm", json={"processorIntentId": second}).json()

    assert one["status"] == "completed"
    assert two["status"] == "duplicate"
    assert two["unlocked"] is True

    db.expire_all()
    completed = db.exec(
        select(Payment).where(
            Payment.quiz_attempt_id == attempt.id,
            Payment.status == "completed",
        )
    ).all()
    assert len(completed) == 1

    # The second charge is given back in full, once
    assert processor.refunds == [(second, 999, "duplicate")]
    duplicate = db.exec(select(Payment).where(Payment.processor_ref == second)).one()
    refund = db.exec(select(Refund)).one()
    assert (refund.payment_id, refund.status) == (duplicate.id, "succeeded")

    again = client.post(f"{API}/payments/confirm", json={"processorIntentId": second}).json()
    assert again["status"] == "duplicate"
    assert len(processor.refunds) == 1


def test_confirm_is_idempotent(client, db, processor):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)
    intent_id = start_unlock(client, user.id, attempt.id)["processorIntentId"]
    processor.succeed(intent_id)

    first = client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id}).json()
    second = client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id}).json()

    assert first == second
    assert first["status"] == "completed"


def test_refund_does_not_relock(client, db, processor):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)
    pay_for_unlock(client, processor, user.id, attempt.id)

    db.expire_all()
    payment = db.exec(select(Payment).where(Payment.user_id == user.id)).one()
    refund = client.post(
        f"{API}/admin/refunds",
        json={"paymentId": payment.id, "amountCents": 999, "reason": "requested_by_customer"},
        headers=ADMIN_HEADERS,
    )
    assert refund.status_code == 201

    assert status_of(client, user.id, attempt.id)["unlocked"] is True


def test_access_pass_unlocks_every_attempt(client, db, processor):
    user = create_user(db)
    attempts = [create_attempt(db, user.id, {"n": n}) for n in range(3)]
    login(client)

    intent_id = client.post(f"{API}/payments/access-pass").json()["processorIntentId"]
    processor.succeed(intent_id)
    client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id})

    for attempt in attempts:
        assert status_of(client, user.id, attempt.id)["unlocked"] is True
    assert start_unlock(client, user.id, attempts[0].id)["alreadyUnlocked"] is True
    assert client.post(f"{API}/payments/access-pass").json()["alreadyUnlocked"] is True


# -------- Authorization / validation --------


def test_status_for_someone_else_is_forbidden(client, db):
    create_user(db)
    other = create_user(db, email="other@example.com")
    attempt = create_attempt(db, other.id)
    login(client)

    response = client.get(f"{API}/report-unlock/status/{other.id}/{attempt.id}")
    assert response.status_code == 403


def test_durable_status_requires_login(client, db):
    user = create_user(db)
    attempt = create_attempt(db, user.id)
    assert client.get(f"{API}/report-unlock/status/{user.id}/{attempt.id}").status_code == 401


def test_cannot_pay_for_someone_elses_attempt(client, db):
    user = create_user(db)
    other = create_user(db, email="other@example.com")
    foreign = create_attempt(db, other.id)
    login(client)

    response = client.post(
        f"{API}/report-unlock/create-payment",
        json={"userId": user.id, "quizAttemptId": foreign.id},
    )
    assert response.status_code == 403


def test_durable_unlock_needs_attempt_id(client, db):
    user = create_user(db)
    login(client)
    response = client.post(f"{API}/report-unlock/create-payment", json={"userId": user.id})
    assert response.status_code == 400


def test_malformed_user_id_is_400(client):
    assert client.get(f"{API}/report-unlock/pricing/not-a-user").status_code == 400
    response = client.post(f"{API}/report-unlock/create-payment", json={"userId": "bogus"})
    assert response.status_code == 400


def test_unknown_staged_ref_is_404(client):
    assert client.get(f"{API}/report-unlock/pricing/temp_nope").status_code == 404
