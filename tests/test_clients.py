"""Outbound collaborators: transactional email and the scoring engine client."""

import json
import smtplib

import httpx
import pytest

from bizmodel.core import email_client
from bizmodel.core.config import get_settings
from bizmodel.core.errors import UpstreamError
from bizmodel.core.scoring_client import HttpScoringEngine, get_scoring_engine
from bizmodel.main import app
from bizmodel.services.email_service import (
    TEMPLATE_PASSWORD_RESET,
    TEMPLATE_PAYMENT_RECEIPT,
    EmailService,
)

from helpers import API, create_attempt, create_user, login


@pytest.fixture
def smtp_settings():
    return get_settings().model_copy(
        update={
            "SMTP_HOST": "smtp.example.com",
            "SMTP_USERNAME": "mailer",
            "SMTP_PASSWORD": "secret",
        }
    )


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send_email(to_email, subject, text_body, html_body=None, settings=None):
        sent.append((to_email, subject, text_body))

    monkeypatch.setattr(email_client, "send_email", fake_send_email)
    return sent


# -------- Email --------


def test_email_skipped_without_smtp(outbox):
    service = EmailService(get_settings().model_copy(update={"SMTP_HOST": None}))
    assert service.send(TEMPLATE_PASSWORD_RESET, "a@example.com", {"token": "t"}) is False
    assert outbox == []


def test_receipt_email_renders_amount(smtp_settings, outbox):
    ok = EmailService(smtp_settings).send(
        TEMPLATE_PAYMENT_RECEIPT,
        "buyer@example.com",
        {"name": "Buyer", "amount_cents": 999, "currency": "usd", "purpose": "report-unlock", "payment_id": 7},
    )

    assert ok is True
    to_email, subject, body = outbox[0]
    assert to_email == "buyer@example.com"
    assert "receipt" in subject
    assert "9.99 USD" in body


def test_reset_email_links_to_frontend(smtp_settings, outbox):
    EmailService(smtp_settings).send(TEMPLATE_PASSWORD_RESET, "a@example.com", {"token": "abc"})
    assert f"{smtp_settings.FRONTEND_URL}/reset-password?token=abc" in outbox[0][2]


def test_unknown_template_or_missing_field_is_not_sent(smtp_settings, outbox):
    service = EmailService(smtp_settings)
    assert service.send("newsletter", "a@example.com", {}) is False
    assert service.send(TEMPLATE_PAYMENT_RECEIPT, "a@example.com", {"name": "x"}) is False
    assert outbox == []


def test_transport_failure_is_reported_not_raised(smtp_settings, monkeypatch):
    def broken(*args, **kwargs):
        raise smtplib.SMTPServerDisconnected("gone")

    monkeypatch.setattr(email_client, "send_email", broken)
    assert EmailService(smtp_settings).send(TEMPLATE_PASSWORD_RESET, "a@example.com", {"token": "t"}) is False


# -------- Scoring engine --------


def test_scoring_engine_ranks_matches_in_order():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={"matches": [{"id": "saas", "name": "SaaS", "score": 88}, {"id": "coaching", "name": "Coaching", "score": 70.5}]},
        )

    engine = HttpScoringEngine("http://scoring.local/", transport=httpx.MockTransport(handler))
    matches = engine.score_business_models({"q": 1})

    assert seen == {"url": "http://scoring.local/score", "body": {"quizData": {"q": 1}}}
    assert [(m.business_model_id, m.rank) for m in matches] == [("saas", 1), ("coaching", 2)]
    assert matches[1].score == 70.5


def test_scoring_engine_errors_become_502():
    engine = HttpScoringEngine(
        "http://scoring.local",
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    with pytest.raises(UpstreamError):
        engine.score_business_models({"q": 1})


def test_report_needs_configured_engine(client, db):
    # Drop the fake so the real dependency runs
    app.dependency_overrides.pop(get_scoring_engine)

    user = create_user(db)
    attempt = create_attempt(db, user.id)
    login(client)

    assert client.get(f"{API}/reports/{attempt.id}").status_code == 503
