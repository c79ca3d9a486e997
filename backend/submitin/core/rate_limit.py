"""レート制限設定（slowapi使用）"""
import math
import time

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from starlette.requests import Request
from starlette.responses import JSONResponse

from submitin.core.config import settings


def get_client_ip(request: Request) -> str:
    """
    クライアントIPアドレスを取得
    プロキシ経由の場合はX-Forwarded-Forヘッダーを参照
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return get_remote_address(request)


def submit_key(request: Request) -> str:
    """回答送信用キー: フォームID + クライアントIP"""
    form_id = request.path_params.get("form_id", "")
    return f"submit:{form_id}:{get_client_ip(request)}"


limiter = Limiter(
    key_func=get_client_ip,
    default_limits=["100/minute"],
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)


def retry_after_seconds(request: Request, exc: RateLimitExceeded) -> int:
    """制限ウィンドウがリセットされるまでの秒数"""
    current = getattr(request.state, "view_rate_limit", None)
    if current is None:
        return exc.limit.limit.get_expiry()
    reset_at, _ = limiter.limiter.get_window_stats(current[0], *current[1])
    return max(1, math.ceil(reset_at - time.time()))


async def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """レート制限超過時のカスタムエラーハンドラ"""
    retry_after = retry_after_seconds(request, exc)
    return JSONResponse(
        status_code=429,
        content={
            "detail": "リクエスト回数が上限を超えました。しばらく待ってから再度お試しください。",
            "limit": exc.detail,
            "retry_after": retry_after,
        },
        headers={"Retry-After": str(retry_after)},
    )


LOGIN_RATE_LIMIT = "5/minute"
REGISTER_RATE_LIMIT = "3/minute"
MAGIC_LINK_RATE_LIMIT = "3/minute"
SUBMIT_RATE_LIMIT = settings.SUBMIT_RATE_LIMIT
