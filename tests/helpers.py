"""Fakes for the external collaborators plus request helpers shared by the suites."""

import json
from dataclasses import replace
from itertools import count

from fastapi.testclient import TestClient
from sqlmodel import Session

from bizmodel.core.payment_processor import (
    IntentResult,
    IntentStatus,
    InvalidWebhook,
    ProcessorError,
    ProcessorEvent,
)
from bizmodel.core.scoring_client import RankedMatch
from bizmodel.core.security import hash_password
from bizmodel.models.quiz_attempt import QuizAttempt
from bizmodel.models.user import User

API = "/api/v1"
PASSWORD = "Sup3rSecret"
ADMIN_HEADERS = {"X-Admin-Key": "test-admin-key"}
WEBHOOK_SIGNATURE = "t=1,v1=valid"
QUIZ_DATA = {"mainMotivation": "financial-freedom", "weeklyTimeCommitment": 10}


class FakePaymentProcessor:
    """In-memory PaymentProcessor; tests move intents along by hand."""

    def __init__(self):
        self.intents: dict[str, IntentStatus] = {}
        self.refunds: list[tuple[str, int, str]] = []
        self.fail_refunds = False
        self._ids = count(1)

    def create_intent(self, amount_cents, currency, metadata, description):
        intent_id = f"pi_test_{next(self._ids)}"
        self.intents[intent_id] = IntentStatus(
            processor_intent_id=intent_id,
            state="pending",
            amount_cents=amount_cents,
            currency=currency,
            metadata=dict(metadata),
        )
        return IntentResult(processor_intent_id=intent_id, client_secret=f"{intent_id}_secret")

    def confirm_intent(self, processor_intent_id):
        if processor_intent_id not in self.intents:
            raise ProcessorError("No such payment_intent")
        return replace(self.intents[processor_intent_id])

    def parse_webhook(self, payload, signature):
        if signature != WEBHOOK_SIGNATURE:
            raise InvalidWebhook("Invalid signature")
        event = json.loads(payload)
        intent = self.intents.get(event["intent"])
        if event["type"] == "payment_intent.succeeded":
            return ProcessorEvent(event["type"], replace(intent, state="succeeded"))
        if event["type"] == "payment_intent.payment_failed":
            return ProcessorEvent(event["type"], replace(intent, state="failed"))
        return ProcessorEvent(event["type"])

    def refund(self, processor_intent_id, amount_cents, reason):
        if self.fail_refunds:
            raise ProcessorError("Refund declined")
        self.refunds.append((processor_intent_id, amount_cents, reason))
        return f"re_test_{len(self.refunds)}"

    def succeed(self, intent_id):
        self.intents[intent_id].state = "succeeded"

    def fail(self, intent_id):
        self.intents[intent_id].state = "failed"


class FakeScoringEngine:
    def __init__(self):
        self.calls = []

    def score_business_models(self, quiz_data):
        self.calls.append(quiz_data)
        return [
            RankedMatch("affiliate-marketing", "Affiliate Marketing", 91.0, 1),
            RankedMatch("freelancing", "Freelancing", 84.5, 2),
        ]


class RecordingEmailSender:
    def __init__(self):
        self.sent = []

    def send(self, template, recipient, data):
        self.sent.append((template, recipient, data))
        return True

    def templates(self):
        return [t for t, _, _ in self.sent]


# ---- data / request helpers ----


def create_user(
    db: Session,
    email: str = "user@example.com",
    password: str = PASSWORD,
    name: str = "Test User",
) -> User:
    user = User(email=email, password_hash=hash_password(password), name=name)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def create_attempt(db: Session, user_id: int, quiz_data: dict | None = None) -> QuizAttempt:
    attempt = QuizAttempt(user_id=user_id, quiz_data=quiz_data or QUIZ_DATA)
    db.add(attempt)
    db.commit()
    db.refresh(attempt)
    return attempt


def login(client: TestClient, email: str = "user@example.com", password: str = PASSWORD) -> dict:
    response = client.post(f"{API}/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()


def signup(client: TestClient, email: str = "new@example.com", quiz_data: dict | None = QUIZ_DATA) -> dict:
    body = {"email": email, "password": PASSWORD, "name": "New Person"}
    if quiz_data is not None:
        body["quizData"] = quiz_data
    response = client.post(f"{API}/auth/signup", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def webhook(client: TestClient, event_type: str, intent_id: str, signature: str = WEBHOOK_SIGNATURE):
    return client.post(
        f"{API}/payments/webhook",
        content=json.dumps({"type": event_type, "intent": intent_id}),
        headers={"Stripe-Signature": signature, "Content-Type": "application/json"},
    )


def start_unlock(client: TestClient, user_id, attempt_id: int | None = None) -> dict:
    body = {"userId": user_id}
    if attempt_id is not None:
        body["quizAttemptId"] = attempt_id
    response = client.post(f"{API}/report-unlock/create-payment", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def pay_for_unlock(client: TestClient, processor: FakePaymentProcessor, user_id, attempt_id: int | None = None) -> dict:
    """Create an unlock intent, let it succeed at the processor, confirm it."""
    intent_id = start_unlock(client, user_id, attempt_id)["processorIntentId"]
    processor.succeed(intent_id)
    confirmed = client.post(f"{API}/payments/confirm", json={"processorIntentId": intent_id})
    assert confirmed.status_code == 200, confirmed.text
    return confirmed.json()
