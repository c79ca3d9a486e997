"""フォーム管理API (所有者のみ): フォーム・設定・項目"""
from fastapi import APIRouter, Depends, Response

from submitin.models import User
from submitin.repositories import Client
from submitin.routers.deps import get_client, require_login
from submitin.schemas.forms import (
    FieldCreateRequest,
    FieldOut,
    FieldUpdateRequest,
    FormCreateRequest,
    FormDetailOut,
    FormOut,
    FormSettingsOut,
    FormSettingsRequest,
    FormUpdateRequest,
    ReorderFieldsRequest,
)
from submitin.services import form_service

router = APIRouter(prefix="/api/forms", tags=["forms"])


# --- フォーム ---
@router.get("")
async def list_forms(user: User = Depends(require_login), client: Client = Depends(get_client)):
    """自分のフォーム一覧"""
    forms = form_service.list_forms(client, user)
    return [FormOut.model_validate(f).model_dump(mode="json") for f in forms]


@router.post("", status_code=201)
async def create_form(
    req: FormCreateRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    form = form_service.create_form(client, user, req.name, req.description)
    return FormOut.model_validate(form).model_dump(mode="json")


@router.get("/{form_id}")
async def get_form(form_id: str, user: User = Depends(require_login), client: Client = Depends(get_client)):
    """フォーム詳細 (項目・設定付き)"""
    form = form_service.get_owned_form(client, user, form_id, include=form_service.FORM_DETAIL_INCLUDE)
    return FormDetailOut.model_validate(form).model_dump(mode="json")


@router.patch("/{form_id}")
async def update_form(
    form_id: str,
    req: FormUpdateRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    form = form_service.update_form(client, user, form_id, req.model_dump(exclude_unset=True))
    return FormDetailOut.model_validate(form).model_dump(mode="json")


@router.delete("/{form_id}", status_code=204)
async def delete_form(form_id: str, user: User = Depends(require_login), client: Client = Depends(get_client)):
    form_service.delete_form(client, user, form_id)
    return Response(status_code=204)


@router.put("/{form_id}/settings")
async def update_settings(
    form_id: str,
    req: FormSettingsRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    """通知メール・Webhook設定を保存"""
    form_settings = form_service.upsert_settings(client, user, form_id, req.model_dump(exclude_unset=True))
    return FormSettingsOut.model_validate(form_settings).model_dump(mode="json")


# --- 項目 ---
@router.post("/{form_id}/fields", status_code=201)
async def add_field(
    form_id: str,
    req: FieldCreateRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    field = form_service.add_field(client, user, form_id, req.model_dump())
    return FieldOut.model_validate(field).model_dump(mode="json")


@router.put("/{form_id}/fields")
async def reorder_fields(
    form_id: str,
    req: ReorderFieldsRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    """項目の並び替え (全件成功 or 全件ロールバック)"""
    fields = form_service.reorder_fields(client, user, form_id, [f.model_dump() for f in req.fields])
    return [FieldOut.model_validate(f).model_dump(mode="json") for f in fields]


@router.patch("/{form_id}/fields/{field_id}")
async def update_field(
    form_id: str,
    field_id: str,
    req: FieldUpdateRequest,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    field = form_service.update_field(client, user, form_id, field_id, req.model_dump(exclude_unset=True))
    return FieldOut.model_validate(field).model_dump(mode="json")


@router.delete("/{form_id}/fields/{field_id}", status_code=204)
async def delete_field(
    form_id: str,
    field_id: str,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    form_service.delete_field(client, user, form_id, field_id)
    return Response(status_code=204)
