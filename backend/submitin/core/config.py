from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """アプリケーション設定"""

    # データベース
    DATABASE_URL: str = "sqlite:///./submitin.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20

    # トランザクション (秒)
    TRANSACTION_TIMEOUT_SECONDS: float = 5.0
    TRANSACTION_MAX_WAIT_SECONDS: float = 2.0

    # Resend
    RESEND_API_KEY: str = ""
    RESEND_FROM_EMAIL: str = "Submitin <no-reply@submitin.com>"

    # サービス設定
    SITE_URL: str = "http://localhost:3000"
    SITE_NAME: str = "Submitin"
    ALLOWED_ORIGINS: str = "http://localhost:3000"

    # 認証
    SESSION_MAX_AGE_DAYS: int = 30
    VERIFICATION_TOKEN_TTL_MINUTES: int = 1440

    # フォーム上限
    MAX_FORMS_PER_USER: int = 50
    MAX_FIELDS_PER_FORM: int = 50
    MAX_RESPONSES_PER_FORM: int = 10000
    MAX_FIELD_VALUE_LENGTH: int = 10000

    # 回答送信
    SUBMIT_RATE_LIMIT: str = "10/minute"
    RATE_LIMIT_STORAGE_URI: str = "memory://"
    WEBHOOK_TIMEOUT_SECONDS: float = 10.0
    CAPTCHA_TIMEOUT_SECONDS: float = 10.0

    # 環境
    ENV: str = "development"
    DEBUG: bool = False

    @property
    def allowed_origins_list(self) -> list[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
