"""共通依存関数: Client取得・認証"""
from typing import Optional
from fastapi import Depends, HTTPException, Request
from sqlalchemy.orm import Session

from submitin.core.database import get_db
from submitin.models import User
from submitin.repositories import Client
from submitin.services import auth_service


def get_client(db: Session = Depends(get_db)) -> Client:
    return Client(db)


def get_session_token(request: Request) -> Optional[str]:
    """Cookie または Authorization: Bearer からセッショントークンを取得"""
    token = request.cookies.get(auth_service.SESSION_COOKIE)
    if token:
        return token
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return None


async def get_current_user(
    request: Request,
    client: Client = Depends(get_client),
) -> Optional[User]:
    """セッショントークン → DB でユーザー取得。未ログインならNone"""
    return auth_service.get_user_by_session_token(client, get_session_token(request))


async def require_login(
    user: Optional[User] = Depends(get_current_user),
) -> User:
    """ログイン必須。未ログインなら401"""
    if user is None:
        raise HTTPException(status_code=401, detail="ログインが必要です")
    return user
