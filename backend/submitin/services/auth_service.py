"""認証ビジネスロジック: パスワード、メールリンク、DBセッション"""
import secrets
from datetime import timedelta
from typing import Optional
from urllib.parse import urlencode

import bcrypt

from submitin.core.config import settings
from submitin.core.database import utcnow
from submitin.core.errors import AuthenticationError, ConstraintViolationError, ValidationError
from submitin.core.logging import get_logger
from submitin.models import User
from submitin.repositories import Client
from submitin.services import resend_service

logger = get_logger(__name__)

SESSION_COOKIE = "session_token"


def hash_password(password: str) -> str:
    """パスワードをbcryptでハッシュ化"""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, hashed: str) -> bool:
    """パスワードを検証"""
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def normalize_email(email: str) -> str:
    return email.strip().lower()


def create_user(client: Client, email: str, password: Optional[str] = None, name: Optional[str] = None) -> User:
    """新規ユーザー作成。メール重複はConstraintViolationError"""
    email = normalize_email(email)
    user = client.user.create({
        "email": email,
        "name": name,
        "password": hash_password(password) if password else None,
    })
    logger.info(f"ユーザー作成: email={email}")
    return user


def authenticate(client: Client, email: str, password: str) -> User:
    """メール+パスワードで認証"""
    user = client.user.find_unique({"email": normalize_email(email)})
    if user is None or not user.password or not verify_password(password, user.password):
        raise AuthenticationError("メールアドレスまたはパスワードが正しくありません")
    return user


# --- セッション ---
def create_session(client: Client, user: User) -> str:
    """DBセッションを作成し、session_tokenを返す"""
    token = secrets.token_urlsafe(32)
    client.session.create({
        "session_token": token,
        "user_id": user.id,
        "expires": utcnow() + timedelta(days=settings.SESSION_MAX_AGE_DAYS),
    })
    return token


def get_user_by_session_token(client: Client, token: str) -> Optional[User]:
    """有効なセッションのユーザーを返す。期限切れセッションは削除"""
    if not token:
        return None
    session = client.session.find_unique({"session_token": token}, include={"user": True})
    if session is None:
        return None
    if session.expires < utcnow():
        client.session.delete_many({"session_token": token})
        return None
    return session.user


def destroy_session(client: Client, token: str) -> None:
    if token:
        client.session.delete_many({"session_token": token})


# --- メールリンク ---
def create_verification_token(client: Client, email: str) -> str:
    """ログイン用ワンタイムトークンを発行"""
    token = secrets.token_urlsafe(32)
    client.verification_token.create({
        "identifier": normalize_email(email),
        "token": token,
        "expires": utcnow() + timedelta(minutes=settings.VERIFICATION_TOKEN_TTL_MINUTES),
    })
    return token


def build_magic_link(email: str, token: str) -> str:
    query = urlencode({"token": token, "email": normalize_email(email)})
    return f"{settings.SITE_URL.rstrip('/')}/api/auth/callback/email?{query}"


def send_magic_link(client: Client, email: str) -> None:
    """トークンを発行し、ログインリンクをメール送信"""
    token = create_verification_token(client, email)
    resend_service.send_email(
        to_email=normalize_email(email),
        subject=f"{settings.SITE_NAME} にログイン",
        template_name="magic_link.html",
        url=build_magic_link(email, token),
        expires_minutes=settings.VERIFICATION_TOKEN_TTL_MINUTES,
    )


def consume_verification_token(client: Client, email: str, token: str) -> User:
    """
    トークンを消費してユーザーを返す (未登録なら作成)。
    トークンは期限切れでも削除する。
    """
    email = normalize_email(email)
    if not token:
        raise ValidationError.single("token", "トークンが必要です")
    with client.transaction():
        record = client.verification_token.find_unique(
            {"identifier_token": {"identifier": email, "token": token}}
        )
        if record is None:
            raise AuthenticationError("ログインリンクが無効です")
        client.verification_token.delete({"identifier_token": {"identifier": email, "token": token}})
        expired = record.expires < utcnow()
        if not expired:
            now = utcnow()
            user = client.user.upsert(
                where={"email": email},
                create={"email": email, "email_verified": now},
                update={"email_verified": now},
            )
    if expired:
        raise AuthenticationError("ログインリンクの有効期限が切れています")
    logger.info(f"メールリンク認証: email={email}")
    return user


def register(client: Client, email: str, password: str, name: Optional[str] = None) -> User:
    """パスワード登録。既存メールは409"""
    try:
        return create_user(client, email, password=password, name=name)
    except ConstraintViolationError as e:
        raise ConstraintViolationError("User", e.kind, e.target, message="このメールアドレスは既に登録されています") from e
