"""captcha_service: siteverify 検証と回答送信時のCAPTCHA"""
from urllib.parse import parse_qs

import httpx
import pytest

from submitin.core.errors import CaptchaVerificationError
from submitin.services import captcha_service, response_service


@pytest.fixture
def siteverify(monkeypatch):
    """httpx.Client をモック転送に差し替え、受けたリクエストを記録"""
    received = []
    reply = {"status": 200, "json": {"success": True}}

    def handler(request: httpx.Request) -> httpx.Response:
        received.append({"url": str(request.url), "form": parse_qs(request.content.decode())})
        return httpx.Response(reply["status"], json=reply["json"])

    real_client = httpx.Client
    monkeypatch.setattr(
        captcha_service.httpx,
        "Client",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )
    return received, reply


@pytest.fixture
def protected(client, user, make_form, make_field):
    form = make_form(user, published=True)
    name = make_field(form, label="Name", type="text", required=True)
    client.form_settings.create({
        "form_id": form.id,
        "captcha_enabled": True,
        "captcha_provider": "turnstile",
        "captcha_secret_key": "secret-123",
    })
    return form, name


class TestVerifyToken:
    def test_turnstile(self, siteverify):
        received, _ = siteverify
        assert captcha_service.verify_token("tok", "secret-123", "turnstile") == (True, [])
        assert received[0]["url"] == captcha_service.VERIFY_URLS["turnstile"]
        assert received[0]["form"] == {"secret": ["secret-123"], "response": ["tok"]}

    def test_hcaptcha_failure_codes(self, siteverify):
        received, reply = siteverify
        reply["json"] = {"success": False, "error-codes": ["invalid-input-response"]}
        assert captcha_service.verify_token("tok", "s", "hcaptcha") == (False, ["invalid-input-response"])
        assert received[0]["url"] == "https://hcaptcha.com/siteverify"

    def test_unknown_provider(self, siteverify):
        received, _ = siteverify
        assert captcha_service.verify_token("tok", "s", "recaptcha") == (False, ["invalid-provider"])
        assert received == []

    def test_http_error(self, siteverify):
        _, reply = siteverify
        reply["status"] = 502
        assert captcha_service.verify_token("tok", "s", "turnstile") == (False, ["verification-failed"])


class TestCaptchaRequired:
    def test_needs_provider_and_secret(self, client, user, make_form):
        form = make_form(user)
        settings_row = client.form_settings.create({"form_id": form.id, "captcha_enabled": True})
        assert captcha_service.captcha_required(settings_row) is False
        assert captcha_service.captcha_required(None) is False

    def test_disabled_by_default(self, client, user, make_form):
        form = make_form(user)
        settings_row = client.form_settings.create({
            "form_id": form.id, "captcha_provider": "turnstile", "captcha_secret_key": "s",
        })
        assert settings_row.captcha_enabled is False
        assert captcha_service.captcha_required(settings_row) is False


class TestSubmitWithCaptcha:
    def test_missing_token(self, client, protected, siteverify):
        form, name = protected
        received, _ = siteverify
        with pytest.raises(CaptchaVerificationError):
            response_service.submit_response(client, form.id, {name.id: "Alice"})
        assert received == []
        assert client.response.count() == 0

    def test_rejected_token(self, client, protected, siteverify):
        form, name = protected
        _, reply = siteverify
        reply["json"] = {"success": False, "error-codes": ["timeout-or-duplicate"]}
        with pytest.raises(CaptchaVerificationError):
            response_service.submit_response(client, form.id, {name.id: "Alice"}, captcha_token="tok")
        assert client.response.count() == 0

    def test_verified_token(self, client, protected, siteverify):
        form, name = protected
        received, _ = siteverify
        _, response, accepted = response_service.submit_response(
            client, form.id, {name.id: "Alice"}, captcha_token="tok"
        )
        assert accepted == {name.id: "Alice"}
        assert received[0]["form"]["response"] == ["tok"]
        assert client.response.count() == 1

    def test_checked_before_values(self, client, protected, siteverify):
        form, _ = protected
        with pytest.raises(CaptchaVerificationError):
            response_service.submit_response(client, form.id, {})
