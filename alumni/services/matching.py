"""
Graduate-to-job matching

match_score (0-100) measures how well a graduate fits the posting: course,
skills, profile completion, GPA and experience. compatibility_score (0-100)
measures how likely the move is: location, salary, employment situation and
recent activity. overall = match * 0.7 + compatibility * 0.3.
"""
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from loguru import logger
from sqlalchemy import select, func, delete, or_, case
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.core.cache import cache
from alumni.core.config import settings
from alumni.crud import job_match_crud
from alumni.models.base import utcnow
from alumni.models.course import Course
from alumni.models.job import JobMatch, JobPosting, JobStatus
from alumni.models.user import User, UserRole, EmploymentStatus

MIN_OVERALL_SCORE = 30
STATS_CACHE_KEY = "matching:statistics:{tenant_id}"

SKILL_SYNONYMS = {
    "javascript": ["js", "node.js", "nodejs"],
    "python": ["py"],
    "database": ["sql", "mysql", "postgresql"],
    "web development": ["web dev", "frontend", "backend"],
    "project management": ["pm", "project manager"],
}


def _normalize(values: Iterable[str]) -> List[str]:
    return [v.strip().lower() for v in values or [] if v and v.strip()]


def skills_similar(a: str, b: str) -> bool:
    a, b = a.lower(), b.lower()
    if a == b or a in b or b in a:
        return True
    for base, variants in SKILL_SYNONYMS.items():
        if (a == base and b in variants) or (b == base and a in variants) or (a in variants and b in variants):
            return True
    return False


def skills_match(required: Iterable[str], have: Iterable[str]) -> Dict[str, Any]:
    required = _normalize(required)
    have = _normalize(have)
    if not required:
        return {"score": 0, "exact_matches": [], "partial_matches": [], "missing_skills": []}

    exact = [r for r in required if r in have]
    partial = []
    for r in required:
        if r in exact:
            continue
        for h in have:
            if skills_similar(r, h):
                partial.append({"required": r, "graduate": h})
                break

    partial_required = {p["required"] for p in partial}
    score = min(100.0, len(exact) / len(required) * 100 + len(partial) / len(required) * 50)
    return {
        "score": round(score, 2),
        "exact_matches": exact,
        "partial_matches": partial,
        "missing_skills": [r for r in required if r not in exact and r not in partial_required],
    }


def course_compatibility(job_course: Optional[Course], user_course: Optional[Course]) -> float:
    if job_course is None or user_course is None:
        return 0.0
    if job_course.id == user_course.id:
        return 100.0

    score = 0.0
    job_skills = _normalize(job_course.skills_gained)
    user_skills = _normalize(user_course.skills_gained)
    if job_skills and user_skills:
        score += len(set(job_skills) & set(user_skills)) / len(job_skills) * 60

    job_paths = _normalize(job_course.career_paths)
    user_paths = _normalize(user_course.career_paths)
    if job_paths and user_paths:
        score += len(set(job_paths) & set(user_paths)) / len(job_paths) * 30

    if job_course.level == user_course.level:
        score += 10
    return min(100.0, score)


def experience_match(required_years: int, years: int) -> float:
    if not required_years or years >= required_years:
        return 100.0
    return float(max(0, 100 - (required_years - years) * 25))


def location_compatibility(job_location: str, user_location: str) -> float:
    job_location = job_location.strip().lower()
    user_location = user_location.strip().lower()
    if job_location in user_location or user_location in job_location:
        return 100.0
    job_parts = {p.strip() for p in job_location.split(",")}
    user_parts = {p.strip() for p in user_location.split(",")}
    return 70.0 if job_parts & user_parts else 0.0


def salary_compatibility(job: JobPosting, user: User) -> float:
    if not job.salary_min and not job.salary_max:
        return 50.0
    if user.employment_status == EmploymentStatus.UNEMPLOYED.value:
        return 80.0
    current = user.current_salary
    if job.salary_max and job.salary_max > current:
        improvement = (job.salary_max - current) / current * 100
        return min(100.0, 50 + improvement)
    if job.salary_min and job.salary_min >= current * 0.9:
        return 70.0
    return 30.0


def compatibility_score(job: JobPosting, user: User) -> Dict[str, Any]:
    score = 0.0
    factors: Dict[str, Any] = {}

    if user.location and job.location:
        location = location_compatibility(job.location, user.location)
        score += location * 0.25
        factors["location_compatibility"] = location

    if user.current_salary and (job.salary_min or job.salary_max):
        salary = salary_compatibility(job, user)
        score += salary * 0.35
        factors["salary_compatibility"] = round(salary, 2)

    if user.employment_status == EmploymentStatus.EMPLOYED.value:
        score += 20
        factors["employment_stability"] = True
    elif user.job_search_active:
        score += 30
        factors["active_job_seeker"] = True

    if user.updated_at and utcnow() - user.updated_at <= timedelta(days=30):
        score += 15
        factors["recent_activity"] = True

    return {"score": round(min(100.0, score), 2), "factors": factors}


def calculate_match(
    job: JobPosting, user: User, job_course: Optional[Course], user_course: Optional[Course]
) -> Dict[str, Any]:
    score = 0.0
    factors: Dict[str, Any] = {}

    if job.course_id and job.course_id == user.course_id:
        score += 40
        factors["course_match"] = True
    else:
        compat = course_compatibility(job_course, user_course)
        score += compat * 0.4
        factors["course_compatibility"] = round(compat, 2)

    if job.required_skills and user.skills:
        skills = skills_match(job.required_skills, user.skills)
        score += skills["score"] * 0.3
        factors["skills_match"] = skills

    completion = user.profile_completion
    score += completion / 100 * 15
    factors["profile_completion"] = completion

    if user.gpa:
        score += user.gpa / 4.0 * 10
        factors["gpa"] = user.gpa

    experience = experience_match(job.min_experience, user.years_experience or 0)
    score += experience * 0.05
    factors["experience_match"] = experience

    compat = compatibility_score(job, user)
    score = round(score, 2)
    return {
        "match_score": score,
        "match_factors": factors,
        "compatibility_score": compat["score"],
        "compatibility_factors": compat["factors"],
        "overall_score": round(score * 0.7 + compat["score"] * 0.3, 2),
    }


class MatchingService:

    async def _courses(self, db: AsyncSession, ids: Iterable[Optional[str]]) -> Dict[str, Course]:
        ids = {i for i in ids if i}
        if not ids:
            return {}
        result = await db.execute(select(Course).where(Course.id.in_(ids)))
        return {c.id: c for c in result.scalars().all()}

    async def _store(self, db: AsyncSession, job: JobPosting, user: User, data: Dict[str, Any]) -> JobMatch:
        match = await job_match_crud.get_for(db, job.id, user.id)
        values = {k: data[k] for k in ("match_score", "match_factors", "compatibility_score", "compatibility_factors", "overall_score")}
        if match is None:
            match = JobMatch(job_id=job.id, user_id=user.id, **values)
            db.add(match)
        else:
            for key, value in values.items():
                setattr(match, key, value)
        await db.flush()
        return match

    async def calculate(self, db: AsyncSession, job: JobPosting, user: User) -> Dict[str, Any]:
        courses = await self._courses(db, [job.course_id, user.course_id])
        return calculate_match(job, user, courses.get(job.course_id), courses.get(user.course_id))

    async def generate_job_matches(self, db: AsyncSession, job: JobPosting, limit: int = 50) -> List[JobMatch]:
        result = await db.execute(
            select(User).where(
                User.tenant_id == job.tenant_id,
                User.is_active == True,
                User.role == UserRole.ALUMNI.value,
                User.job_search_active == True,
                User.id != job.posted_by,
            )
        )
        candidates = list(result.scalars().all())
        courses = await self._courses(db, [job.course_id] + [u.course_id for u in candidates])

        scored = []
        for user in candidates:
            data = calculate_match(job, user, courses.get(job.course_id), courses.get(user.course_id))
            if data["overall_score"] >= MIN_OVERALL_SCORE:
                scored.append((user, data))
        scored.sort(key=lambda pair: pair[1]["overall_score"], reverse=True)

        matches = [await self._store(db, job, user, data) for user, data in scored[:limit]]
        cache.forget(STATS_CACHE_KEY.format(tenant_id=job.tenant_id))
        logger.info("Generated {} matches for job {}", len(matches), job.id)
        return matches

    async def generate_graduate_matches(self, db: AsyncSession, user: User, limit: int = 20) -> List[JobMatch]:
        now = utcnow()
        result = await db.execute(
            select(JobPosting).where(
                JobPosting.tenant_id == user.tenant_id,
                JobPosting.status == JobStatus.ACTIVE.value,
                or_(JobPosting.application_deadline.is_(None), JobPosting.application_deadline > now),
            )
        )
        jobs = list(result.scalars().all())
        courses = await self._courses(db, [user.course_id] + [j.course_id for j in jobs])

        scored = []
        for job in jobs:
            data = calculate_match(job, user, courses.get(job.course_id), courses.get(user.course_id))
            if data["overall_score"] >= MIN_OVERALL_SCORE:
                scored.append((job, data))
        scored.sort(key=lambda pair: pair[1]["overall_score"], reverse=True)

        matches = [await self._store(db, job, user, data) for job, data in scored[:limit]]
        cache.forget(STATS_CACHE_KEY.format(tenant_id=user.tenant_id))
        return matches

    # ==================== Match flags ====================

    async def mark_recommended(self, db: AsyncSession, match: JobMatch) -> JobMatch:
        match.is_recommended = True
        match.recommended_at = utcnow()
        await db.flush()
        return match

    async def mark_viewed(self, db: AsyncSession, match: JobMatch) -> JobMatch:
        if not match.is_viewed:
            match.is_viewed = True
            match.viewed_at = utcnow()
            await db.flush()
        return match

    async def mark_applied(self, db: AsyncSession, match: JobMatch) -> JobMatch:
        match.is_applied = True
        match.applied_at = utcnow()
        await db.flush()
        return match

    # ==================== Statistics ====================

    async def _statistics(self, db: AsyncSession, tenant_id: str) -> Dict[str, Any]:
        result = await db.execute(
            select(
                func.count(JobMatch.id),
                func.coalesce(func.sum(case((JobMatch.overall_score >= 80, 1), else_=0)), 0),
                func.coalesce(func.sum(case((JobMatch.is_recommended == True, 1), else_=0)), 0),
                func.coalesce(func.sum(case((JobMatch.is_applied == True, 1), else_=0)), 0),
                func.avg(JobMatch.overall_score),
            )
            .join(JobPosting, JobPosting.id == JobMatch.job_id)
            .where(JobPosting.tenant_id == tenant_id)
        )
        total, high_quality, recommended, applied, average = result.one()
        return {
            "total_matches": total,
            "high_quality_matches": high_quality,
            "recommended_matches": recommended,
            "applied_matches": applied,
            "average_score": round(average or 0, 2),
            "success_rate": round(applied / recommended * 100, 2) if recommended else 0,
        }

    async def get_matching_statistics(self, db: AsyncSession, tenant_id: str) -> Dict[str, Any]:
        return await cache.aremember(
            STATS_CACHE_KEY.format(tenant_id=tenant_id),
            settings.matching_stats_ttl,
            lambda: self._statistics(db, tenant_id),
        )

    async def cleanup_old_matches(self, db: AsyncSession, days: int = 30) -> int:
        """Drop matches nobody acted on within the window"""
        result = await db.execute(
            delete(JobMatch).where(
                JobMatch.updated_at < utcnow() - timedelta(days=days),
                JobMatch.is_applied == False,
                JobMatch.is_recommended == False,
            )
        )
        removed = result.rowcount or 0
        if removed:
            logger.info("Removed {} stale job matches", removed)
        return removed


matching_service = MatchingService()
