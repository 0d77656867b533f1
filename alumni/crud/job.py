"""
Job posting, application and match CRUD
"""
from typing import Optional, List, Dict, Iterable
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.models.job import JobPosting, JobApplication, JobMatch, JobMatchScore
from .base import CRUDBase


class CRUDJobPosting(CRUDBase[JobPosting]):

    async def application_counts(self, db: AsyncSession, job_ids: Iterable[str]) -> Dict[str, int]:
        job_ids = list(job_ids)
        if not job_ids:
            return {}
        result = await db.execute(
            select(JobApplication.job_id, func.count())
            .where(JobApplication.job_id.in_(job_ids))
            .group_by(JobApplication.job_id)
        )
        return dict(result.all())


class CRUDJobApplication(CRUDBase[JobApplication]):

    async def get_for(self, db: AsyncSession, job_id: str, user_id: str) -> Optional[JobApplication]:
        result = await db.execute(
            select(self.model).where(self.model.job_id == job_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()


class CRUDJobMatch(CRUDBase[JobMatch]):

    async def get_for(self, db: AsyncSession, job_id: str, user_id: str) -> Optional[JobMatch]:
        result = await db.execute(
            select(self.model).where(self.model.job_id == job_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def for_job(self, db: AsyncSession, job_id: str, *, limit: int = 50) -> List[JobMatch]:
        return await self.get_multi(
            db, filters=[JobMatch.job_id == job_id], limit=limit, order_by=JobMatch.overall_score.desc()
        )

    async def for_user(self, db: AsyncSession, user_id: str, *, limit: int = 20) -> List[JobMatch]:
        return await self.get_multi(
            db, filters=[JobMatch.user_id == user_id], limit=limit, order_by=JobMatch.overall_score.desc()
        )


class CRUDJobMatchScore(CRUDBase[JobMatchScore]):

    async def get_for(self, db: AsyncSession, job_id: str, user_id: str) -> Optional[JobMatchScore]:
        result = await db.execute(
            select(self.model).where(self.model.job_id == job_id, self.model.user_id == user_id)
        )
        return result.scalar_one_or_none()


job_crud = CRUDJobPosting(JobPosting)
application_crud = CRUDJobApplication(JobApplication)
job_match_crud = CRUDJobMatch(JobMatch)
job_match_score_crud = CRUDJobMatchScore(JobMatchScore)
