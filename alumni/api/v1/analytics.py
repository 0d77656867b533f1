"""
Analytics API for institution administrators

Every report takes an optional start_date / end_date; the default window
is the last 30 days.
"""
from datetime import date, datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import require_admin
from alumni.core.database import get_db
from alumni.core.response import success_response, ResponseModel, DictResponse, ListResponse
from alumni.models.analytics import AnalyticsSnapshotResponse, ExportRequest, ReportRequest
from alumni.models.user import User
from alumni.services.analytics import analytics_service, date_range

router = APIRouter()


def span_query(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
):
    return date_range(start_date, end_date)


@router.get("/engagement", summary="Engagement metrics", response_model=DictResponse)
async def get_engagement(
    span=Depends(span_query),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.engagement_metrics(db, admin.tenant_id, span))


@router.get("/activity", summary="Alumni activity", response_model=DictResponse)
async def get_activity(
    span=Depends(span_query),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.alumni_activity(db, admin.tenant_id, span))


@router.get("/health", summary="Community health", response_model=DictResponse)
async def get_health(
    span=Depends(span_query),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.community_health(db, admin.tenant_id, span))


@router.get("/usage", summary="Platform usage", response_model=DictResponse)
async def get_usage(
    span=Depends(span_query),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return success_response(data=await analytics_service.platform_usage(db, admin.tenant_id, span))


@router.get("/metrics", summary="Metrics available for custom reports", response_model=ListResponse)
async def get_available_metrics(admin: User = Depends(require_admin)):
    return success_response(data=sorted(analytics_service.report_metrics))


@router.post("/reports", summary="Custom report", response_model=DictResponse)
async def create_report(
    data: ReportRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    span = date_range(data.start_date, data.end_date)
    return success_response(data=await analytics_service.custom_report(db, admin.tenant_id, data.metrics, span))


@router.post("/export", summary="Export a custom report")
async def export_report(
    data: ExportRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Returns the file body directly rather than the JSON envelope
    """
    span = date_range(data.start_date, data.end_date)
    report = await analytics_service.custom_report(db, admin.tenant_id, data.metrics, span)
    body = analytics_service.export(report["report_data"], data.format)
    media_type = "text/csv" if data.format == "csv" else "application/json"
    filename = f"analytics_{date.today().isoformat()}.{data.format}"
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ==================== Snapshots ====================

@router.get("/snapshots", summary="Daily snapshots", response_model=ListResponse)
async def get_snapshots(
    limit: int = Query(30, ge=1, le=365),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    snapshots = await analytics_service.snapshots(db, admin.tenant_id, limit)
    return success_response(data=[AnalyticsSnapshotResponse.model_validate(s).model_dump() for s in snapshots])


@router.post("/snapshots", summary="Take today's snapshot", status_code=201,
             response_model=ResponseModel[AnalyticsSnapshotResponse])
async def create_snapshot(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    snapshot = await analytics_service.snapshot(db, admin.tenant_id)
    await db.refresh(snapshot)
    return success_response(
        data=AnalyticsSnapshotResponse.model_validate(snapshot).model_dump(),
        message="Snapshot recorded",
        code=201,
    )
