"""フォーム・項目・フォーム設定のビジネスロジック"""
import re
import secrets
import unicodedata
from typing import Any, Optional

from submitin.core.config import settings
from submitin.core.errors import ConstraintViolationError, LimitExceededError, NotFoundError, ValidationError
from submitin.core.logging import get_logger
from submitin.models import Field, Form, FormSettings, User
from submitin.models.field import FIELD_TYPES
from submitin.repositories import Client

logger = get_logger(__name__)

SLUG_RETRIES = 5
OPTION_FIELD_TYPES = ("select", "radio", "checkbox")

FORM_DETAIL_INCLUDE = {"fields": True, "settings": True}


def slugify(name: str) -> str:
    """名前からURL用スラッグを生成 (ASCII小文字とハイフン)"""
    normalized = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    slug = re.sub(r"[^a-z0-9]+", "-", normalized.lower()).strip("-")
    return slug[:60] or "form"


def _slug_candidate(name: str) -> str:
    return f"{slugify(name)}-{secrets.token_hex(3)}"


# --- フォーム ---
def list_forms(client: Client, user: User) -> list[Form]:
    return client.form.find_many(
        where={"user_id": user.id},
        order_by={"created_at": "desc"},
        include={"settings": True},
    )


def get_owned_form(client: Client, user: User, form_id: str, include: Optional[dict] = None) -> Form:
    """所有者のフォームを取得。他人のフォームは存在しない扱い"""
    form = client.form.find_first(where={"id": form_id, "user_id": user.id}, include=include)
    if form is None:
        raise NotFoundError("Form", {"id": form_id}, message="フォームが見つかりません")
    return form


def create_form(client: Client, user: User, name: str, description: Optional[str] = None) -> Form:
    """フォーム作成。スラッグ衝突時は別の候補で再試行"""
    if client.form.count({"user_id": user.id}) >= settings.MAX_FORMS_PER_USER:
        raise LimitExceededError(f"フォーム数の上限 ({settings.MAX_FORMS_PER_USER}) に達しました")

    last_error: Optional[ConstraintViolationError] = None
    for _ in range(SLUG_RETRIES):
        try:
            form = client.form.create({
                "slug": _slug_candidate(name),
                "name": name,
                "description": description,
                "user_id": user.id,
            })
        except ConstraintViolationError as e:
            if e.kind != "unique" or "slug" not in e.target:
                raise
            last_error = e
            continue
        logger.info(f"フォーム作成: form_id={form.id}, slug={form.slug}")
        return form
    raise last_error


def update_form(client: Client, user: User, form_id: str, data: dict) -> Form:
    get_owned_form(client, user, form_id)
    return client.form.update({"id": form_id}, data, include=FORM_DETAIL_INCLUDE)


def delete_form(client: Client, user: User, form_id: str) -> None:
    """フォーム削除。項目・回答・設定はカスケード削除される"""
    get_owned_form(client, user, form_id)
    client.form.delete({"id": form_id})
    logger.info(f"フォーム削除: form_id={form_id}")


def upsert_settings(client: Client, user: User, form_id: str, data: dict) -> FormSettings:
    """フォーム設定を作成または更新 (1フォーム1行)"""
    get_owned_form(client, user, form_id)
    emails = data.get("notify_emails")
    if emails:
        data = {**data, "notify_emails": list(dict.fromkeys(e.strip().lower() for e in emails if e.strip()))}
    return client.form_settings.upsert(
        where={"form_id": form_id},
        create={**data, "form_id": form_id},
        update=data,
    )


def get_published_form(client: Client, slug: str) -> Form:
    form = client.form.find_first(
        where={"slug": slug, "published": True},
        include={"fields": True, "settings": True},
    )
    if form is None:
        raise NotFoundError("Form", {"slug": slug}, message="フォームが見つかりません")
    return form


# --- 項目 ---
def _clean_options(field_type: str, options: Any) -> Any:
    """選択系の項目は空の選択肢を除く"""
    if field_type in OPTION_FIELD_TYPES and isinstance(options, list):
        return [o.strip() for o in options if isinstance(o, str) and o.strip()]
    if field_type in OPTION_FIELD_TYPES:
        return options
    return None


def _check_type(field_type: str) -> None:
    if field_type not in FIELD_TYPES:
        raise ValidationError.single("type", f"未対応の項目タイプです: {field_type}", model="Field")


def add_field(client: Client, user: User, form_id: str, data: dict) -> Field:
    """項目を末尾に追加"""
    get_owned_form(client, user, form_id)
    _check_type(data.get("type", ""))

    with client.transaction():
        stats = client.field.aggregate(where={"form_id": form_id}, count=True, max_fields=["order"])
        if stats["_count"] >= settings.MAX_FIELDS_PER_FORM:
            raise LimitExceededError(
                f"項目数の上限に達しました。1フォームあたり最大{settings.MAX_FIELDS_PER_FORM}項目です。"
            )
        max_order = stats["_max"]["order"]
        field = client.field.create({
            "type": data["type"],
            "label": data.get("label"),
            "placeholder": data.get("placeholder") or None,
            "required": bool(data.get("required", False)),
            "options": _clean_options(data["type"], data.get("options")),
            "order": 0 if max_order is None else max_order + 1,
            "form_id": form_id,
        })
    logger.info(f"項目追加: form_id={form_id}, field_id={field.id}")
    return field


def update_field(client: Client, user: User, form_id: str, field_id: str, data: dict) -> Field:
    get_owned_form(client, user, form_id)
    field = client.field.find_first(where={"id": field_id, "form_id": form_id})
    if field is None:
        raise NotFoundError("Field", {"id": field_id}, message="項目が見つかりません")
    if "type" in data:
        _check_type(data["type"])
    field_type = data.get("type", field.type)
    if "options" in data or "type" in data:
        data = {**data, "options": _clean_options(field_type, data.get("options", field.options))}
    return client.field.update({"id": field_id}, data)


def delete_field(client: Client, user: User, form_id: str, field_id: str) -> None:
    get_owned_form(client, user, form_id)
    deleted = client.field.delete_many({"id": field_id, "form_id": form_id})
    if not deleted:
        raise NotFoundError("Field", {"id": field_id}, message="項目が見つかりません")


def reorder_fields(client: Client, user: User, form_id: str, orders: list[dict]) -> list[Field]:
    """並び順を一括更新。1件でも失敗すれば全体をロールバック"""
    get_owned_form(client, user, form_id)
    with client.transaction():
        for item in orders:
            updated = client.field.update_many(
                where={"id": item["id"], "form_id": form_id},
                data={"order": item["order"]},
            )
            if not updated:
                raise NotFoundError("Field", {"id": item["id"]}, message="項目が見つかりません")
    return client.field.find_many(where={"form_id": form_id}, order_by={"order": "asc"})
