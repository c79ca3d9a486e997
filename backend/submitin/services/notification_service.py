"""新規回答の通知: メール (Resend) と Webhook"""
import logging
from typing import Optional

import httpx

from submitin.core.config import settings
from submitin.core.logging import get_logger, log_event
from submitin.models import Form, FormSettings, Response
from submitin.services import resend_service

logger = get_logger(__name__)


def notification_recipients(form_settings: Optional[FormSettings]) -> list[str]:
    """通知先メール一覧 (主 + 追加、重複除去、順序維持)"""
    if form_settings is None:
        return []
    recipients: list[str] = []
    for email in [form_settings.notify_email, *(form_settings.notify_emails or [])]:
        if email and email not in recipients:
            recipients.append(email)
    return recipients


def build_webhook_payload(form: Form, response: Response, values: dict[str, str]) -> dict:
    return {
        "formId": form.id,
        "formName": form.name,
        "responseId": response.id,
        "submittedAt": response.submitted_at.isoformat(),
        "values": values,
    }


def send_response_emails(form: Form, response: Response, response_count: int) -> int:
    """通知メールを送信し、成功件数を返す。個別の失敗はログのみ"""
    recipients = notification_recipients(form.settings)
    if not recipients:
        logger.info(f"通知メール未設定: form_id={form.id}")
        return 0

    sent = 0
    for email in recipients:
        try:
            resend_service.send_email(
                to_email=email,
                subject=f"「{form.name}」に新しい回答があります",
                template_name="new_response.html",
                form_name=form.name,
                form_url=f"{settings.SITE_URL.rstrip('/')}/dashboard/forms/{form.id}/responses",
                response_count=response_count,
                submitted_at=response.submitted_at.strftime("%Y-%m-%d %H:%M"),
            )
            sent += 1
        except Exception as e:
            log_event(logger, logging.ERROR, "通知メール送信失敗", form_id=form.id, to=email, error=str(e))
    logger.info(f"通知メール送信: {sent}/{len(recipients)}")
    return sent


async def send_webhook(form: Form, response: Response, values: dict[str, str]) -> bool:
    """Webhook送信。失敗はログのみで回答受付は成功扱い"""
    url = form.settings.webhook_url if form.settings else None
    if not url:
        return False
    try:
        async with httpx.AsyncClient(timeout=settings.WEBHOOK_TIMEOUT_SECONDS) as client:
            res = await client.post(url, json=build_webhook_payload(form, response, values))
            res.raise_for_status()
        logger.info(f"Webhook送信成功: form_id={form.id}, status={res.status_code}")
        return True
    except httpx.HTTPError as e:
        log_event(logger, logging.ERROR, "Webhook送信失敗", form_id=form.id, url=url, error=str(e))
        return False


async def notify_new_response(form: Form, response: Response, values: dict[str, str], response_count: int) -> None:
    """メールとWebhookを送信"""
    send_response_emails(form, response, response_count)
    await send_webhook(form, response, values)
