"""公開フォーム取得 (スラッグ指定)"""
from fastapi import APIRouter, Depends

from submitin.repositories import Client
from submitin.routers.deps import get_client
from submitin.schemas.forms import PublicFormOut
from submitin.services import form_service

router = APIRouter(prefix="/api/public", tags=["public"])


@router.get("/forms/{slug}")
async def get_public_form(slug: str, client: Client = Depends(get_client)):
    """公開中のフォームを項目付きで返す"""
    form = form_service.get_published_form(client, slug)
    return PublicFormOut.model_validate(form).model_dump(mode="json")
