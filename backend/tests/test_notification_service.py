"""notification_service: 通知メールとWebhook"""
import asyncio
import json

import httpx
import pytest

from submitin.services import notification_service, resend_service


@pytest.fixture
def form_with_settings(client, user, make_form):
    def _make(**settings):
        form = make_form(user, published=True)
        if settings:
            client.form_settings.create({"form_id": form.id, **settings})
        form = client.form.find_unique({"id": form.id}, include={"settings": True})
        response = client.response.create({"form_id": form.id})
        return form, response

    return _make


@pytest.fixture
def webhook_requests(monkeypatch):
    """httpx.AsyncClient をモック転送に差し替え"""
    received = []
    status = {"code": 200}

    def handler(request: httpx.Request) -> httpx.Response:
        received.append({"url": str(request.url), "body": json.loads(request.content)})
        return httpx.Response(status["code"], json={"ok": True})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        notification_service.httpx,
        "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return received, status


class TestRecipients:
    def test_none(self):
        assert notification_service.notification_recipients(None) == []

    def test_dedup_keeps_order(self, form_with_settings):
        form, _ = form_with_settings(
            notify_email="a@example.com",
            notify_emails=["b@example.com", "a@example.com"],
        )
        assert notification_service.notification_recipients(form.settings) == ["a@example.com", "b@example.com"]


class TestEmails:
    def test_failures_are_logged_not_raised(self, form_with_settings, monkeypatch):
        form, response = form_with_settings(
            notify_email="a@example.com",
            notify_emails=["b@example.com"],
        )
        calls = []

        def fake_send(to_email, subject, template_name, **context):
            calls.append(to_email)
            if to_email == "a@example.com":
                raise RuntimeError("resend down")
            return {"id": "ok"}

        monkeypatch.setattr(resend_service, "send_email", fake_send)
        assert notification_service.send_response_emails(form, response, 3) == 1
        assert calls == ["a@example.com", "b@example.com"]

    def test_no_recipients(self, form_with_settings):
        form, response = form_with_settings()
        assert notification_service.send_response_emails(form, response, 1) == 0


class TestWebhook:
    def test_posts_payload(self, form_with_settings, webhook_requests):
        received, _ = webhook_requests
        form, response = form_with_settings(webhook_url="https://hooks.example.com/in")
        ok = asyncio.run(notification_service.send_webhook(form, response, {"f1": "Alice"}))
        assert ok is True
        assert received[0]["url"] == "https://hooks.example.com/in"
        body = received[0]["body"]
        assert body["formId"] == form.id
        assert body["responseId"] == response.id
        assert body["values"] == {"f1": "Alice"}

    def test_error_status_returns_false(self, form_with_settings, webhook_requests):
        received, status = webhook_requests
        status["code"] = 500
        form, response = form_with_settings(webhook_url="https://hooks.example.com/in")
        assert asyncio.run(notification_service.send_webhook(form, response, {})) is False
        assert len(received) == 1

    def test_not_configured(self, form_with_settings, webhook_requests):
        received, _ = webhook_requests
        form, response = form_with_settings()
        assert asyncio.run(notification_service.send_webhook(form, response, {})) is False
        assert received == []
