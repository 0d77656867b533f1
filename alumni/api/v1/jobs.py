"""
Job board API: postings, applications and match scores
"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from loguru import logger
from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.auth import get_current_user
from alumni.core.database import get_db
from alumni.core.exceptions import (
    ConflictException,
    NotFoundException,
    PermissionDeniedException,
    UnprocessableException,
)
from alumni.core.queue import get_queue
from alumni.core.response import (
    success_response,
    paged_response,
    ResponseModel,
    PagedResponseModel,
    MessageResponse,
    ListResponse,
)
from alumni.crud import application_crud, course_crud, job_crud, job_match_crud, user_crud
from alumni.models.base import utcnow
from alumni.models.job import (
    JobPosting,
    JobApplication,
    JobStatus,
    EmploymentType,
    JobPostingCreate,
    JobPostingUpdate,
    JobApplicationCreate,
    JobApplicationStatusUpdate,
    JobPostingResponse,
    JobApplicationResponse,
    JobMatchResponse,
    JobMatchScoreResponse,
)
from alumni.models.user import User, UserRole, UserBrief
from alumni.services import tasks
from alumni.services.job_matching import job_matching_service
from alumni.services.matching import matching_service

router = APIRouter()

POSTING_ROLES = (UserRole.EMPLOYER.value, UserRole.INSTITUTION_ADMIN.value, UserRole.SUPER_ADMIN.value)


async def get_job_or_404(db: AsyncSession, job_id: str, user: User) -> JobPosting:
    job = await job_crud.get(db, job_id, tenant_id=user.tenant_id)
    if job is None:
        raise NotFoundException(f"Job not found: {job_id}")
    return job


def ensure_manager(job: JobPosting, user: User) -> None:
    if job.posted_by != user.id and not user.is_admin:
        raise PermissionDeniedException("Only the poster can manage this job")


async def serialize_application(db: AsyncSession, application: JobApplication) -> dict:
    item = JobApplicationResponse.model_validate(application)
    applicant = await user_crud.get(db, application.user_id)
    if applicant is not None:
        item.applicant = UserBrief.model_validate(applicant)
    return item.model_dump()


@router.get("", summary="List jobs", response_model=PagedResponseModel[JobPostingResponse])
async def get_jobs(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[JobStatus] = Query(JobStatus.ACTIVE),
    employment_type: Optional[EmploymentType] = None,
    location: Optional[str] = None,
    search: Optional[str] = Query(None, max_length=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    skip = (page - 1) * page_size
    filters = []
    if status is not None:
        filters.append(JobPosting.status == status.value)
    if employment_type is not None:
        filters.append(JobPosting.employment_type == employment_type.value)
    if location:
        filters.append(JobPosting.location.ilike(f"%{location}%"))
    if search:
        pattern = f"%{search}%"
        filters.append(or_(
            JobPosting.title.ilike(pattern),
            JobPosting.company_name.ilike(pattern),
            JobPosting.description.ilike(pattern),
        ))

    jobs = await job_crud.get_multi(db, tenant_id=user.tenant_id, filters=filters, skip=skip, limit=page_size)
    total = await job_crud.count(db, tenant_id=user.tenant_id, filters=filters)
    counts = await job_crud.application_counts(db, [j.id for j in jobs])

    items = []
    for job in jobs:
        item = JobPostingResponse.model_validate(job)
        item.application_count = counts.get(job.id, 0)
        items.append(item.model_dump())
    return paged_response(items, total, page, page_size)


@router.post("", summary="Post a job", status_code=201, response_model=ResponseModel[JobPostingResponse])
async def create_job(
    data: JobPostingCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    """
    Employers and admins post jobs; matches for active postings are
    generated in the background
    """
    if user.role not in POSTING_ROLES:
        raise PermissionDeniedException("Only employers and administrators can post jobs")
    if data.course_id and not await course_crud.get(db, data.course_id, tenant_id=user.tenant_id):
        raise UnprocessableException(errors={"course_id": ["Unknown course"]})

    job = await job_crud.create(db, obj_in={**data.model_dump(), "tenant_id": user.tenant_id, "posted_by": user.id})
    logger.info("Job {} posted by {}", job.id, user.id)

    if job.status == JobStatus.ACTIVE.value:
        await queue.dispatch(
            tasks.deliver_webhook_event,
            user.tenant_id,
            "job.posted",
            {"job_id": job.id, "title": job.title, "company_name": job.company_name},
        )
        await queue.dispatch(tasks.generate_job_matches, job.id)
    return success_response(
        data=JobPostingResponse.model_validate(job).model_dump(),
        message="Job posted",
        code=201,
    )


@router.get("/recommendations", summary="Jobs matched to my profile", response_model=ListResponse)
async def get_job_recommendations(
    limit: int = Query(20, ge=1, le=50),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    matches = await matching_service.generate_graduate_matches(db, user, limit)
    jobs = {j.id: j for j in await job_crud.get_multi(
        db, filters=[JobPosting.id.in_([m.job_id for m in matches])], limit=len(matches) or 1
    )}
    items = []
    for match in matches:
        await matching_service.mark_recommended(db, match)
        items.append({
            "job": JobPostingResponse.model_validate(jobs[match.job_id]).model_dump(),
            "match": JobMatchResponse.model_validate(match).model_dump(),
        })
    return success_response(data=items)


@router.get("/{job_id}", summary="Job details", response_model=ResponseModel[JobPostingResponse])
async def get_job(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    item = JobPostingResponse.model_validate(job)
    item.application_count = (await job_crud.application_counts(db, [job.id])).get(job.id, 0)
    return success_response(data=item.model_dump())


@router.patch("/{job_id}", summary="Update a job", response_model=ResponseModel[JobPostingResponse])
async def update_job(
    job_id: str,
    data: JobPostingUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    ensure_manager(job, user)
    job = await job_crud.update(db, db_obj=job, obj_in=data)
    return success_response(data=JobPostingResponse.model_validate(job).model_dump(), message="Job updated")


@router.delete("/{job_id}", summary="Close a job", response_model=MessageResponse)
async def delete_job(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Jobs with applications are closed rather than removed
    """
    job = await get_job_or_404(db, job_id, user)
    ensure_manager(job, user)
    job.status = JobStatus.CLOSED.value
    await db.flush()
    return success_response(message="Job closed")


# ==================== Applications ====================

@router.post("/{job_id}/apply", summary="Apply to a job", status_code=201,
             response_model=ResponseModel[JobApplicationResponse])
async def apply(
    job_id: str,
    data: JobApplicationCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    queue=Depends(get_queue),
):
    job = await get_job_or_404(db, job_id, user)
    if job.status != JobStatus.ACTIVE.value:
        raise UnprocessableException(errors={"job_id": ["This job is not accepting applications"]})
    if job.application_deadline is not None and job.application_deadline <= utcnow():
        raise UnprocessableException(errors={"job_id": ["The application deadline has passed"]})
    if await application_crud.get_for(db, job.id, user.id):
        raise ConflictException("You have already applied to this job")

    application = await application_crud.create(db, obj_in={
        **data.model_dump(),
        "tenant_id": user.tenant_id,
        "job_id": job.id,
        "user_id": user.id,
    })
    match = await job_match_crud.get_for(db, job.id, user.id)
    if match is not None:
        await matching_service.mark_applied(db, match)

    await queue.dispatch(
        tasks.deliver_webhook_event,
        user.tenant_id,
        "job.applied",
        {"job_id": job.id, "application_id": application.id, "user_id": user.id},
    )
    return success_response(data=await serialize_application(db, application), message="Application submitted", code=201)


@router.get("/{job_id}/applications", summary="Applications for a job",
            response_model=PagedResponseModel[JobApplicationResponse])
async def get_applications(
    job_id: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    ensure_manager(job, user)
    skip = (page - 1) * page_size
    filters = [JobApplication.job_id == job.id]
    applications = await application_crud.get_multi(db, filters=filters, skip=skip, limit=page_size)
    total = await application_crud.count(db, filters=filters)
    items = [await serialize_application(db, a) for a in applications]
    return paged_response(items, total, page, page_size)


@router.patch("/{job_id}/applications/{application_id}", summary="Update an application status",
              response_model=ResponseModel[JobApplicationResponse])
async def update_application_status(
    job_id: str,
    application_id: str,
    data: JobApplicationStatusUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    ensure_manager(job, user)
    application = await application_crud.get(db, application_id, tenant_id=user.tenant_id)
    if application is None or application.job_id != job.id:
        raise NotFoundException(f"Application not found: {application_id}")
    application = await application_crud.update(db, db_obj=application, obj_in=data)
    return success_response(data=await serialize_application(db, application), message="Application updated")


# ==================== Matching ====================

@router.get("/{job_id}/match-score", summary="My network-based match score for a job",
            response_model=ResponseModel[JobMatchScoreResponse])
async def get_match_score(
    job_id: str,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    record = await job_matching_service.store_match_score(db, job, user)
    return success_response(data=JobMatchScoreResponse.model_validate(record).model_dump())


@router.get("/{job_id}/matches", summary="Graduates matched to a job", response_model=ListResponse)
async def get_job_matches(
    job_id: str,
    limit: int = Query(50, ge=1, le=100),
    refresh: bool = Query(False, description="Recalculate before listing"),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    job = await get_job_or_404(db, job_id, user)
    ensure_manager(job, user)
    if refresh:
        await matching_service.generate_job_matches(db, job, limit)
    matches = await job_match_crud.for_job(db, job.id, limit=limit)
    users = await user_crud.get_many(db, [m.user_id for m in matches])
    items = []
    for match in matches:
        item = JobMatchResponse.model_validate(match).model_dump()
        candidate = users.get(match.user_id)
        item["user"] = UserBrief.model_validate(candidate).model_dump() if candidate else None
        items.append(item)
    return success_response(data=items)
