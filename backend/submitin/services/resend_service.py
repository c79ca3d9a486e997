"""Resend API メール送信サービス"""
import re
from pathlib import Path

import resend
from jinja2 import Environment, FileSystemLoader, select_autoescape

from submitin.core.config import settings
from submitin.core.logging import get_logger

logger = get_logger(__name__)

template_dir = Path(__file__).parent.parent / "templates" / "email"
jinja_env = Environment(
    loader=FileSystemLoader(str(template_dir)),
    autoescape=select_autoescape(["html"]),
)

_FROM_SIMPLE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_FROM_NAMED = re.compile(r"^[^<]+<[^\s@]+@[^\s@]+\.[^\s@]+>$")


class EmailConfigError(RuntimeError):
    """Resend設定の不備"""


def _check_config() -> None:
    if not settings.RESEND_API_KEY:
        raise EmailConfigError("RESEND_API_KEY が設定されていません")
    sender = settings.RESEND_FROM_EMAIL
    if not (_FROM_SIMPLE.match(sender) or _FROM_NAMED.match(sender)):
        raise EmailConfigError(
            f"RESEND_FROM_EMAIL の形式が不正です: {sender} ('名前 <email@domain>' または 'email@domain')"
        )


def send_email(to_email: str, subject: str, template_name: str, **context) -> dict:
    """
    テンプレートをレンダリングしてResend APIで送信。
    Returns: {"id": "resend_message_id"} or raises
    """
    _check_config()
    resend.api_key = settings.RESEND_API_KEY

    template = jinja_env.get_template(template_name)
    html = template.render(site_name=settings.SITE_NAME, **context)

    result = resend.Emails.send({
        "from": settings.RESEND_FROM_EMAIL,
        "to": [to_email],
        "subject": subject,
        "html": html,
    })

    logger.info(f"メール送信成功: to={to_email}, subject={subject[:30]}")
    return result
