"""認証ルーター: メールリンク、パスワード登録・ログイン、ログアウト"""
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import RedirectResponse

from submitin.core.config import settings
from submitin.core.logging import get_logger
from submitin.core.rate_limit import (
    limiter,
    LOGIN_RATE_LIMIT,
    MAGIC_LINK_RATE_LIMIT,
    REGISTER_RATE_LIMIT,
)
from submitin.models import User
from submitin.repositories import Client
from submitin.routers.deps import get_client, get_session_token, require_login
from submitin.schemas.auth import AuthResponse, LoginRequest, MagicLinkRequest, RegisterRequest, UserInfo
from submitin.services import auth_service
from submitin.services.resend_service import EmailConfigError

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _set_session_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=auth_service.SESSION_COOKIE,
        value=token,
        max_age=settings.SESSION_MAX_AGE_DAYS * 86400,
        httponly=True,
        secure=settings.ENV == "production",
        samesite="lax",
    )


@router.post("/email", response_model=AuthResponse)
@limiter.limit(MAGIC_LINK_RATE_LIMIT)
async def request_magic_link(request: Request, req: MagicLinkRequest, client: Client = Depends(get_client)):
    """ログインリンクをメール送信"""
    try:
        auth_service.send_magic_link(client, req.email)
    except EmailConfigError as e:
        logger.error(f"ログインリンク送信失敗: {e}")
        raise HTTPException(status_code=503, detail="メール送信が設定されていません")
    return AuthResponse(message="ログインリンクを送信しました。メールを確認してください。")


@router.get("/callback/email")
async def magic_link_callback(
    token: str = Query(...),
    email: str = Query(...),
    client: Client = Depends(get_client),
):
    """ログインリンクのコールバック: トークン消費 → セッション作成 → ダッシュボードへ"""
    user = auth_service.consume_verification_token(client, email, token)
    session_token = auth_service.create_session(client, user)
    response = RedirectResponse(url=f"{settings.SITE_URL.rstrip('/')}/dashboard", status_code=303)
    _set_session_cookie(response, session_token)
    return response


@router.post("/register", response_model=AuthResponse, status_code=201)
@limiter.limit(REGISTER_RATE_LIMIT)
async def register(request: Request, req: RegisterRequest, response: Response, client: Client = Depends(get_client)):
    """パスワードで会員登録し、そのままログイン"""
    user = auth_service.register(client, req.email, req.password, req.name)
    token = auth_service.create_session(client, user)
    _set_session_cookie(response, token)
    return AuthResponse(message="登録が完了しました", user_id=user.id, session_token=token)


@router.post("/login", response_model=AuthResponse)
@limiter.limit(LOGIN_RATE_LIMIT)
async def login(request: Request, req: LoginRequest, response: Response, client: Client = Depends(get_client)):
    """パスワードログイン"""
    user = auth_service.authenticate(client, req.email, req.password)
    token = auth_service.create_session(client, user)
    _set_session_cookie(response, token)
    logger.info(f"ログイン: user_id={user.id}")
    return AuthResponse(message="ログインしました", user_id=user.id, session_token=token)


@router.post("/logout", response_model=AuthResponse)
async def logout(request: Request, response: Response, client: Client = Depends(get_client)):
    """ログアウト: セッション行を削除"""
    auth_service.destroy_session(client, get_session_token(request))
    response.delete_cookie(auth_service.SESSION_COOKIE)
    return AuthResponse(message="ログアウトしました")


@router.get("/me", response_model=UserInfo)
async def me(user: User = Depends(require_login)):
    return UserInfo.model_validate(user)
