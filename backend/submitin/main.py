from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from submitin.core.config import settings
from submitin.core.database import database
from submitin.core.error_handlers import register_error_handlers
from submitin.core.logging import setup_logging, get_logger
from submitin.core.rate_limit import limiter
from submitin.routers import auth, forms, health, public, responses

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションライフサイクル管理: DB接続の確立と解放"""
    setup_logging(debug=settings.DEBUG)
    database.connect()
    logger.info(f"アプリケーション起動: env={settings.ENV}")
    yield
    database.disconnect()
    logger.info("アプリケーション終了")


app = FastAPI(
    title=settings.SITE_NAME,
    lifespan=lifespan,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
)

# レート制限
app.state.limiter = limiter

register_error_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ルーター登録
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(forms.router)
app.include_router(responses.router)
app.include_router(public.router)
