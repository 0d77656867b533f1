"""
Queued jobs

A job is an async callable taking a session first: job(session, *args).
JobQueue runs it after the response on FastAPI BackgroundTasks with its own
session; SyncQueue runs it inline on the caller's session.
"""
from typing import Any, Awaitable, Callable
from fastapi import BackgroundTasks, Depends
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from .config import settings
from .database import get_db, session_scope

Job = Callable[..., Awaitable[Any]]


class JobQueue:
    def __init__(self, background_tasks: BackgroundTasks):
        self.background_tasks = background_tasks

    async def dispatch(self, job: Job, *args, **kwargs) -> None:
        logger.debug("Queued job {}", job.__name__)
        self.background_tasks.add_task(self._run, job, args, kwargs)

    @staticmethod
    async def _run(job: Job, args: tuple, kwargs: dict) -> None:
        try:
            async with session_scope() as session:
                await job(session, *args, **kwargs)
        except Exception:
            logger.exception("Queued job {} failed", job.__name__)


class SyncQueue:
    """Runs jobs immediately inside a savepoint of the given session"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def dispatch(self, job: Job, *args, **kwargs) -> None:
        try:
            async with self.db.begin_nested():
                await job(self.db, *args, **kwargs)
        except Exception:
            logger.exception("Job {} failed", job.__name__)


def get_queue(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
):
    if settings.queue_driver == "sync":
        return SyncQueue(db)
    return JobQueue(background_tasks)
