"""
A/B testing

Variant assignment is deterministic per (subject, test): crc32 of the pair
walks the cumulative variant weights. Anything unexpected (unknown test,
inactive test, audience outside the target) falls back to the control
variant. Assignment and conversion tracking are telemetry: a failure is
logged and never surfaces to the caller.
"""
import re
import time
import zlib
from datetime import timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import select, func, delete
from sqlalchemy.ext.asyncio import AsyncSession

from alumni.content import get_content
from alumni.core.exceptions import NotFoundException
from alumni.models.ab_test import ABTest, ABTestAssignment, ABTestConversion, ABTestCreate
from alumni.models.base import utcnow

MIN_ASSIGNMENTS = 100
WINNER_SIGNIFICANCE = 95.0

DEFAULT_CONTROL = {"id": "control", "name": "Control (Default)", "weight": 100, "component_overrides": {}}
MISSING_CONTROL = {"id": "control", "name": "Control", "component_overrides": {}}


def hash_subject(subject_id: str, test_id: str) -> int:
    return zlib.crc32(f"{subject_id}{test_id}".encode("utf-8")) & 0x7FFFFFFF


def assign_variant(hash_value: int, variants: List[dict]) -> dict:
    if not variants:
        logger.warning("A/B test has no variants, using default control")
        return dict(DEFAULT_CONTROL)

    total = sum(v.get("weight") or 0 for v in variants)
    if total <= 0:
        logger.warning("A/B test variants have invalid weights (total {})", total)
        return variants[0]

    point = hash_value % total
    cumulative = 0
    for variant in variants:
        cumulative += variant.get("weight") or 0
        if point < cumulative:
            return variant
    return variants[0]


def control_variant(test: Optional[dict]) -> dict:
    if not test or not test.get("variants"):
        return dict(MISSING_CONTROL)
    return test["variants"][0]


def significance(assignments: int) -> float:
    """Rough confidence that grows with sample size, capped at 95"""
    if assignments < MIN_ASSIGNMENTS:
        return 0.0
    return round(min(95.0, assignments / 1000 * 95), 2)


def determine_winner(results: Dict[str, dict]) -> Optional[dict]:
    winner = None
    best = 0.0
    for variant_id, result in results.items():
        if result["conversion_rate"] > best and result["statistical_significance"] >= WINNER_SIGNIFICANCE:
            best = result["conversion_rate"]
            winner = {
                "variant_id": variant_id,
                "conversion_rate": result["conversion_rate"],
                "significance": result["statistical_significance"],
            }
    return winner


def slugify(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


class ABTestingService:

    async def get_test(self, db: AsyncSession, test_id: str) -> Optional[ABTest]:
        return await db.get(ABTest, test_id)

    async def list_tests(self, db: AsyncSession, active: Optional[bool] = None) -> List[ABTest]:
        query = select(ABTest).order_by(ABTest.created_at.desc())
        if active is not None:
            query = query.where(ABTest.active == active)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def get_variant(self, db: AsyncSession, test_id: str, subject_id: str, audience: str) -> dict:
        test = await self.get_test(db, test_id)
        if test is None:
            logger.warning("A/B test {} not found, using control for {} ({})", test_id, subject_id, audience)
            return control_variant(None)
        config = test.to_config()
        if not test.active:
            logger.warning("A/B test {} is inactive, using control for {} ({})", test_id, subject_id, audience)
            return control_variant(config)
        if test.target_audience and test.target_audience != audience:
            logger.warning(
                "Subject {} ({}) outside target audience {} of test {}, using control",
                subject_id, audience, test.target_audience, test_id,
            )
            return control_variant(config)

        variant = assign_variant(hash_subject(subject_id, test_id), config["variants"])
        await self._track_assignment(db, test_id, variant["id"], subject_id, audience)
        return variant

    async def _track_assignment(
        self, db: AsyncSession, test_id: str, variant_id: str, subject_id: str, audience: str
    ) -> None:
        try:
            async with db.begin_nested():
                existing = await db.execute(
                    select(ABTestAssignment).where(
                        ABTestAssignment.test_id == test_id,
                        ABTestAssignment.subject_id == subject_id,
                    )
                )
                assignment = existing.scalar_one_or_none()
                if assignment is None:
                    db.add(ABTestAssignment(
                        test_id=test_id, variant_id=variant_id, subject_id=subject_id, audience=audience
                    ))
                elif assignment.variant_id != variant_id:
                    # weights changed since the first assignment
                    assignment.variant_id = variant_id
        except Exception as exc:
            logger.warning("A/B assignment tracking failed for {}/{}: {}", test_id, variant_id, exc)

    async def track_conversion(
        self,
        db: AsyncSession,
        test_id: str,
        variant_id: str,
        goal: str,
        subject_id: str,
        data: Optional[dict] = None,
    ) -> bool:
        try:
            async with db.begin_nested():
                db.add(ABTestConversion(
                    test_id=test_id, variant_id=variant_id, goal=goal, subject_id=subject_id, data=data or {}
                ))
            logger.info("A/B conversion {} on {}/{}", goal, test_id, variant_id)
            return True
        except Exception as exc:
            logger.warning("A/B conversion tracking failed for {}/{}: {}", test_id, variant_id, exc)
            return False

    async def get_active_tests(self, db: AsyncSession, subject_id: str, audience: str) -> Dict[str, dict]:
        active = {}
        for test in await self.list_tests(db, active=True):
            if test.target_audience and test.target_audience != audience:
                continue
            active[test.id] = {
                "test": test.to_config(),
                "variant": await self.get_variant(db, test.id, subject_id, audience),
            }
        return active

    async def get_assignments(self, db: AsyncSession, subject_id: str) -> List[dict]:
        result = await db.execute(
            select(ABTestAssignment).where(ABTestAssignment.subject_id == subject_id)
        )
        return [
            {"test_id": a.test_id, "variant_id": a.variant_id, "assigned_at": a.assigned_at}
            for a in result.scalars().all()
        ]

    # ==================== Results ====================

    async def _counts(self, db: AsyncSession, model, test_id: str) -> Dict[str, int]:
        column = model.subject_id if model is ABTestAssignment else model.id
        result = await db.execute(
            select(model.variant_id, func.count(column)).where(model.test_id == test_id).group_by(model.variant_id)
        )
        return dict(result.all())

    async def get_test_results(self, db: AsyncSession, test_id: str) -> Dict[str, Any]:
        test = await self.get_test(db, test_id)
        if test is None:
            raise NotFoundException("A/B test not found")

        assignments = await self._counts(db, ABTestAssignment, test_id)
        conversions = await self._counts(db, ABTestConversion, test_id)

        results = {}
        for variant in test.variants or []:
            assigned = assignments.get(variant["id"], 0)
            converted = conversions.get(variant["id"], 0)
            results[variant["id"]] = {
                "variant": variant,
                "assignments": assigned,
                "conversions": converted,
                "conversion_rate": round(converted / assigned * 100, 2) if assigned else 0.0,
                "statistical_significance": significance(assigned),
            }

        return {
            "test": test.to_config(),
            "results": results,
            "winner": determine_winner(results),
            "confidence_level": max((r["statistical_significance"] for r in results.values()), default=0.0),
        }

    # ==================== Management ====================

    async def create_test(self, db: AsyncSession, data: ABTestCreate, created_by: Optional[str] = None) -> ABTest:
        goals = data.conversion_goals
        if isinstance(goals, list):
            goals = {"all": goals}
        test = ABTest(
            id=f"{slugify(data.name)}_{int(time.time())}",
            name=data.name,
            description=data.description,
            target_audience=data.target_audience,
            variants=[v.model_dump() for v in data.variants],
            conversion_goals=goals,
            traffic_allocation=data.traffic_allocation,
            start_date=data.start_date or utcnow(),
            end_date=data.end_date,
            active=data.active,
            created_by=created_by,
        )
        db.add(test)
        await db.flush()
        await db.refresh(test)
        logger.info("A/B test {} created", test.id)
        return test

    async def update_test_status(self, db: AsyncSession, test_id: str, active: bool) -> ABTest:
        test = await self.get_test(db, test_id)
        if test is None:
            raise NotFoundException("A/B test not found")
        test.active = active
        await db.flush()
        await db.refresh(test)
        logger.info("A/B test {} {}", test_id, "activated" if active else "deactivated")
        return test

    async def delete_test(self, db: AsyncSession, test_id: str) -> None:
        test = await self.get_test(db, test_id)
        if test is None:
            raise NotFoundException("A/B test not found")
        await db.execute(delete(ABTestAssignment).where(ABTestAssignment.test_id == test_id))
        await db.execute(delete(ABTestConversion).where(ABTestConversion.test_id == test_id))
        await db.delete(test)
        await db.flush()

    async def seed_default_tests(self, db: AsyncSession) -> int:
        """Insert the tests from ab_tests.yaml that are not in the database yet"""
        now = utcnow()
        created = 0
        for definition in get_content("ab_tests", "tests", default=[]):
            if await self.get_test(db, definition["id"]):
                continue
            goals = definition.get("conversion_goals") or {}
            db.add(ABTest(
                id=definition["id"],
                name=definition["name"],
                description=definition.get("description", ""),
                target_audience=definition.get("target_audience"),
                variants=definition.get("variants", []),
                conversion_goals={"all": goals} if isinstance(goals, list) else goals,
                traffic_allocation=definition.get("traffic_allocation", 100),
                start_date=now + timedelta(days=definition.get("start_offset_days", 0)),
                end_date=(
                    now + timedelta(days=definition["end_offset_days"])
                    if definition.get("end_offset_days") is not None else None
                ),
                active=definition.get("active", True),
            ))
            created += 1
        await db.flush()
        if created:
            logger.info("Seeded {} default A/B tests", created)
        return created


ab_testing_service = ABTestingService()
