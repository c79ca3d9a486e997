"""ドメイン例外: 呼び出し側が分類できる失敗型"""
from typing import Any, Optional


class SubmitinError(Exception):
    """全ドメイン例外の基底"""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(SubmitinError):
    """一意検索・更新・削除の対象行が存在しない"""

    status_code = 404

    def __init__(self, model: str, where: Optional[dict] = None, message: Optional[str] = None):
        super().__init__(message or f"{model} が見つかりません")
        self.model = model
        self.where = where or {}


class ConstraintViolationError(SubmitinError):
    """一意制約・外部キー制約・NOT NULL制約の違反"""

    status_code = 409

    def __init__(self, model: str, kind: str, target: Optional[list[str]] = None, message: Optional[str] = None):
        target = target or []
        default = f"{model} の{_KIND_JA.get(kind, '制約')}違反"
        if target:
            default += f": {', '.join(target)}"
        super().__init__(message or default)
        self.model = model
        self.kind = kind
        self.target = target


_KIND_JA = {
    "unique": "一意制約",
    "foreign_key": "外部キー制約",
    "not_null": "必須制約",
}


class ValidationError(SubmitinError):
    """DB到達前の入力検証エラー"""

    status_code = 422

    def __init__(self, errors: list[dict[str, Any]], model: Optional[str] = None):
        self.errors = errors
        self.model = model
        message = "、".join(f"{e['field']}: {e['message']}" if e.get("field") else e["message"] for e in errors)
        super().__init__(message or "入力値が不正です")

    @classmethod
    def single(cls, field: str, message: str, model: Optional[str] = None) -> "ValidationError":
        return cls([{"field": field, "message": message}], model=model)


class TransactionAbortedError(SubmitinError):
    """タイムアウト・分離レベル競合・明示的ロールバック"""

    status_code = 409

    def __init__(self, message: str, reason: str = "rollback"):
        super().__init__(message)
        self.reason = reason


class LimitExceededError(SubmitinError):
    """フォーム単位の上限超過"""

    status_code = 403


class AuthenticationError(SubmitinError):
    """認証失敗"""

    status_code = 401


class CaptchaVerificationError(SubmitinError):
    """CAPTCHAトークン未指定・検証失敗"""

    status_code = 400
