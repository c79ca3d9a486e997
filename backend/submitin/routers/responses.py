"""回答API: 一覧 (所有者) と送信 (公開)"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from submitin.core.rate_limit import limiter, submit_key, SUBMIT_RATE_LIMIT
from submitin.models import User
from submitin.repositories import Client
from submitin.routers.deps import get_client, require_login
from submitin.schemas.forms import ResponseOut, SubmitResponseOut, SubmitResponseRequest
from submitin.services import notification_service, response_service

router = APIRouter(prefix="/api/forms/{form_id}/responses", tags=["responses"])


@router.get("")
async def list_responses(
    form_id: str,
    take: Optional[int] = Query(default=None, ge=1, le=500),
    cursor: Optional[str] = None,
    user: User = Depends(require_login),
    client: Client = Depends(get_client),
):
    """回答一覧 (新しい順)"""
    responses = response_service.list_responses(client, user, form_id, take=take, cursor=cursor)
    return [ResponseOut.model_validate(r).model_dump(mode="json") for r in responses]


@router.post("", status_code=201, response_model=SubmitResponseOut)
@limiter.limit(SUBMIT_RATE_LIMIT, key_func=submit_key)
async def submit_response(
    request: Request,
    form_id: str,
    req: SubmitResponseRequest,
    client: Client = Depends(get_client),
):
    """回答送信 (認証不要)"""
    form, response, values = response_service.submit_response(client, form_id, req.values, req.captcha_token)
    total = response_service.count_responses(client, form_id)
    await notification_service.notify_new_response(form, response, values, total)
    return SubmitResponseOut(id=response.id)
