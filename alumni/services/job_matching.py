"""
Network-based job match score

Scores a user against a posting by who they know at the company, skills,
education and shared circles with current employees. The result and its
components are stored in job_match_scores.
"""
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.crud import circle_crud, connection_crud, job_match_score_crud
from alumni.models.base import utcnow
from alumni.models.job import JobMatchScore, JobPosting
from alumni.models.user import User

WEIGHT_CONNECTIONS = 0.35
WEIGHT_SKILLS = 0.25
WEIGHT_EDUCATION = 0.20
WEIGHT_CIRCLES = 0.20

SENIOR_KEYWORDS = ("senior", "lead", "principal", "director", "manager", "vp", "head of", "chief")
TECH_DEGREES = ("computer science", "software engineering", "information technology", "engineering")
BUSINESS_DEGREES = ("business", "mba", "management", "marketing", "finance")
PRESTIGIOUS_SCHOOLS = ("harvard", "stanford", "mit", "berkeley", "yale", "princeton", "columbia")


def is_senior(title: str) -> bool:
    title = (title or "").lower()
    return any(k in title for k in SENIOR_KEYWORDS)


def connection_score(connections: List[User]) -> float:
    if not connections:
        return 0.0
    base = min(len(connections) * 20, 80)
    bonus = sum(10 for c in connections if is_senior(c.current_title))
    return float(min(base + bonus, 100))


def skills_score(user_skills: List[str], job_skills: List[str]) -> float:
    if not user_skills or not job_skills:
        return 50.0
    mine = {s.lower() for s in user_skills}
    wanted = [s.lower() for s in job_skills]
    match_pct = len([s for s in wanted if s in mine]) / len(wanted) * 100
    extra = max(0, len(mine) - len(wanted)) * 2
    return float(min(match_pct + extra, 100))


def _degree_relevant(degree: str, title: str, description: str) -> bool:
    tech_job = any(w in title for w in ("engineer", "developer", "technical")) or "programming" in description
    business_job = any(w in title for w in ("manager", "director", "analyst")) or "business" in description
    if tech_job:
        return any(d in degree for d in TECH_DEGREES)
    if business_job:
        return any(d in degree for d in BUSINESS_DEGREES)
    return False


def education_score(education: List[dict], job: JobPosting) -> float:
    if not education:
        return 30.0
    title = (job.title or "").lower()
    description = (job.description or "").lower()
    job_words = set(f"{title} {description}".split())

    score = 0
    for entry in education:
        degree = str(entry.get("degree") or "").lower()
        field = str(entry.get("field_of_study") or "").lower()
        school = str(entry.get("institution") or "").lower()
        if _degree_relevant(degree, title, description):
            score += 30
        if field and set(field.split()) & job_words:
            score += 40
        if any(k in school for k in PRESTIGIOUS_SCHOOLS):
            score += 10
    return float(min(score, 100))


def circle_score(user_circles: set, employee_circles: List[set]) -> float:
    if not user_circles or not employee_circles:
        return 0.0
    shared = sum(len(user_circles & circles) for circles in employee_circles)
    possible = len(user_circles) * len(employee_circles)
    overlap = shared / possible * 100
    bonus = min(len(employee_circles) * 5, 20)
    return float(min(overlap + bonus, 100))


class JobMatchingService:

    async def company_employees(self, db: AsyncSession, job: JobPosting) -> List[User]:
        result = await db.execute(
            select(User).where(
                User.tenant_id == job.tenant_id,
                User.is_active == True,
                User.current_company.ilike(f"%{job.company_name}%"),
            )
        )
        return list(result.scalars().all())

    async def calculate(self, db: AsyncSession, job: JobPosting, user: User) -> Dict[str, Any]:
        employees = [e for e in await self.company_employees(db, job) if e.id != user.id]
        connected = await connection_crud.connected_ids(db, user.id)
        mutual = [e for e in employees if e.id in connected]

        user_circles = await circle_crud.user_circle_ids(db, user.id)
        employee_circles = [await circle_crud.user_circle_ids(db, e.id) for e in employees]

        scores = {
            "connection_score": connection_score(mutual),
            "skills_score": skills_score(user.skills or [], job.required_skills or []),
            "education_score": education_score(user.education or [], job),
            "circle_score": circle_score(user_circles, employee_circles),
        }
        total = (
            scores["connection_score"] * WEIGHT_CONNECTIONS
            + scores["skills_score"] * WEIGHT_SKILLS
            + scores["education_score"] * WEIGHT_EDUCATION
            + scores["circle_score"] * WEIGHT_CIRCLES
        )

        reasons = []
        if mutual:
            reasons.append({
                "type": "connections",
                "reason": f"You have {len(mutual)} connection(s) at {job.company_name}",
                "score": scores["connection_score"],
                "details": [m.name for m in mutual[:3]],
            })
        matching = [s for s in (job.required_skills or []) if s.lower() in {u.lower() for u in user.skills or []}]
        if matching:
            reasons.append({
                "type": "skills",
                "reason": f"Your skills match {len(matching)} of the required skills",
                "score": scores["skills_score"],
                "details": matching[:5],
            })
        if scores["education_score"] > 50:
            reasons.append({
                "type": "education",
                "reason": "Your educational background is relevant to this role",
                "score": scores["education_score"],
                "details": [e.get("degree") for e in (user.education or [])[:2] if e.get("degree")],
            })
        if scores["circle_score"] > 0:
            reasons.append({
                "type": "circles",
                "reason": "You share alumni circles with employees at this company",
                "score": scores["circle_score"],
                "details": [],
            })
        reasons.sort(key=lambda r: r["score"], reverse=True)

        return {
            "score": round(total, 2),
            "reasons": reasons,
            "mutual_connections_count": len(mutual),
            **{k: round(v, 2) for k, v in scores.items()},
        }

    async def store_match_score(self, db: AsyncSession, job: JobPosting, user: User) -> JobMatchScore:
        data = await self.calculate(db, job, user)
        record = await job_match_score_crud.get_for(db, job.id, user.id)
        if record is None:
            record = JobMatchScore(job_id=job.id, user_id=user.id)
            db.add(record)
        for key, value in data.items():
            setattr(record, key, value)
        record.calculated_at = utcnow()
        await db.flush()
        await db.refresh(record)
        return record


job_matching_service = JobMatchingService()
