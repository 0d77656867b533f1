"""
Outbound webhook API

Webhooks belong to the tenant and are managed by its administrators.
The signing secret is only returned when the webhook is created.
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import require_admin
from alumni.core.database import get_db
from alumni.core.exceptions import NotFoundException
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    DictResponse,
    ListResponse,
)
from alumni.crud import delivery_crud, webhook_crud
from alumni.models.user import User
from alumni.models.webhook import (
    DeliveryStatus,
    Webhook,
    WebhookCreate,
    WebhookUpdate,
    UrlValidationRequest,
    WebhookResponse,
    WebhookCreatedResponse,
    DeliveryResponse,
)
from alumni.services.webhooks import PERIODS, webhook_service

router = APIRouter()


async def get_webhook_or_404(db: AsyncSession, webhook_id: str, admin: User) -> Webhook:
    webhook = await webhook_crud.get(db, webhook_id, tenant_id=admin.tenant_id)
    if webhook is None:
        raise NotFoundException(f"Webhook not found: {webhook_id}")
    return webhook


def serialize(webhook: Webhook) -> dict:
    return WebhookResponse.model_validate(webhook).model_dump()


@router.get("", summary="List webhooks", response_model=PagedResponseModel[WebhookResponse])
async def get_webhooks(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    webhooks = await webhook_crud.get_multi(db, tenant_id=admin.tenant_id, skip=skip, limit=page_size)
    total = await webhook_crud.count(db, tenant_id=admin.tenant_id)
    return paged_response([serialize(w) for w in webhooks], total, page, page_size)


@router.post("", summary="Create a webhook", status_code=201, response_model=ResponseModel[WebhookCreatedResponse])
async def create_webhook(
    data: WebhookCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await webhook_service.create(db, admin, data)
    return success_response(
        data=WebhookCreatedResponse.model_validate(webhook).model_dump(),
        message="Webhook created",
        code=201,
    )


@router.get("/events", summary="Events a webhook can subscribe to", response_model=ListResponse)
async def get_available_events(admin: User = Depends(require_admin)):
    return success_response(data=webhook_service.available_events())


@router.post("/validate-url", summary="Check a webhook URL", response_model=DictResponse)
async def validate_url(
    data: UrlValidationRequest,
    admin: User = Depends(require_admin),
):
    return success_response(data=await webhook_service.validate_url(data.url))


@router.post("/deliveries/{delivery_id}/retry", summary="Retry a failed delivery",
             response_model=ResponseModel[DeliveryResponse])
async def retry_delivery(
    delivery_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    delivery = await delivery_crud.get(db, delivery_id)
    if delivery is None:
        raise NotFoundException(f"Delivery not found: {delivery_id}")
    await get_webhook_or_404(db, delivery.webhook_id, admin)
    delivery = await webhook_service.retry(db, delivery)
    return success_response(data=DeliveryResponse.model_validate(delivery).model_dump(), message="Delivery retried")


@router.get("/{webhook_id}", summary="Webhook details", response_model=ResponseModel[WebhookResponse])
async def get_webhook(
    webhook_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=serialize(await get_webhook_or_404(db, webhook_id, admin)))


@router.patch("/{webhook_id}", summary="Update a webhook", response_model=ResponseModel[WebhookResponse])
async def update_webhook(
    webhook_id: str,
    data: WebhookUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await get_webhook_or_404(db, webhook_id, admin)
    webhook = await webhook_service.update(db, webhook, data)
    return success_response(data=serialize(webhook), message="Webhook updated")


@router.delete("/{webhook_id}", summary="Delete a webhook", response_model=MessageResponse)
async def delete_webhook(
    webhook_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await webhook_service.delete(db, await get_webhook_or_404(db, webhook_id, admin))
    return success_response(message="Webhook deleted")


@router.post("/{webhook_id}/pause", summary="Pause a webhook", response_model=ResponseModel[WebhookResponse])
async def pause_webhook(
    webhook_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await webhook_service.pause(db, await get_webhook_or_404(db, webhook_id, admin))
    return success_response(data=serialize(webhook), message="Webhook paused")


@router.post("/{webhook_id}/resume", summary="Resume a webhook", response_model=ResponseModel[WebhookResponse])
async def resume_webhook(
    webhook_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await webhook_service.resume(db, await get_webhook_or_404(db, webhook_id, admin))
    return success_response(data=serialize(webhook), message="Webhook resumed")


@router.post("/{webhook_id}/test", summary="Send a test delivery", response_model=ResponseModel[DeliveryResponse])
async def test_webhook(
    webhook_id: str,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Sent even when the webhook is paused; a failed test is not retried
    """
    delivery = await webhook_service.test(db, await get_webhook_or_404(db, webhook_id, admin))
    return success_response(data=DeliveryResponse.model_validate(delivery).model_dump())


@router.get("/{webhook_id}/deliveries", summary="Delivery log", response_model=PagedResponseModel[DeliveryResponse])
async def get_deliveries(
    webhook_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[DeliveryStatus] = None,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await get_webhook_or_404(db, webhook_id, admin)
    skip = (page - 1) * page_size
    deliveries, total = await webhook_service.deliveries(
        db, webhook, status.value if status else None, skip=skip, limit=page_size
    )
    items = [DeliveryResponse.model_validate(d).model_dump() for d in deliveries]
    return paged_response(items, total, page, page_size)


@router.get("/{webhook_id}/statistics", summary="Delivery statistics", response_model=DictResponse)
async def get_statistics(
    webhook_id: str,
    period: str = Query("30d", description=", ".join(PERIODS)),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    webhook = await get_webhook_or_404(db, webhook_id, admin)
    return success_response(data=await webhook_service.statistics(db, webhook, period))
