"""
Project Store - render outcome persistence for editor projects.

When a provider calls back with a finished render, the owning project is
marked Rendered (with its final video URL) or Failed, and the project owner
gets a notification row.

Usage:
    pool = await asyncpg.create_pool(database_url)
    store = PostgresProjectStore(pool)
    await store.mark_rendered(project_id, "https://cdn.example/out.mp4")
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

import asyncpg

logger = logging.getLogger(__name__)

STATUS_RENDERED = "Rendered"
STATUS_FAILED = "Failed"


class ProjectStore:
    """Interface used by the render webhook."""

    async def mark_rendered(self, project_id: str, video_url: str) -> bool:
        raise NotImplementedError

    async def mark_failed(self, project_id: str, reason: str) -> bool:
        raise NotImplementedError

    async def close(self):
        pass


def rendered_message(project_name: str) -> str:
    return f'Your video "{project_name}" has finished rendering and is ready for analysis!'


def failed_message(project_name: str, reason: str) -> str:
    return f'Rendering failed for your video "{project_name}". Reason: {reason}'


class PostgresProjectStore(ProjectStore):
    """Writes render outcomes to the projects and notifications tables."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    @classmethod
    async def connect(cls, database_url: str, min_size: int = 1, max_size: int = 5) -> "PostgresProjectStore":
        pool = await asyncpg.create_pool(database_url, min_size=min_size, max_size=max_size)
        return cls(pool)

    async def close(self):
        await self.db_pool.close()

    async def _finish(
        self,
        project_id: str,
        status: str,
        message_for,
        video_url: Optional[str] = None,
    ) -> bool:
        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                if video_url is not None:
                    row = await conn.fetchrow(
                        """
                        UPDATE projects
                        SET status = $1, final_video_url = $2
                        WHERE id = $3
                        RETURNING name, user_id
                        """,
                        status,
                        video_url,
                        project_id,
                    )
                else:
                    row = await conn.fetchrow(
                        """
                        UPDATE projects
                        SET status = $1
                        WHERE id = $2
                        RETURNING name, user_id
                        """,
                        status,
                        project_id,
                    )

                if row is None:
                    logger.warning(f"Render callback for unknown project {project_id}")
                    return False

                await conn.execute(
                    """
                    INSERT INTO notifications (user_id, project_id, message)
                    VALUES ($1, $2, $3)
                    """,
                    row["user_id"],
                    project_id,
                    message_for(row["name"]),
                )

        logger.info(f"Project {project_id} marked {status}")
        return True

    async def mark_rendered(self, project_id: str, video_url: str) -> bool:
        return await self._finish(
            project_id, STATUS_RENDERED, rendered_message, video_url=video_url
        )

    async def mark_failed(self, project_id: str, reason: str) -> bool:
        return await self._finish(
            project_id, STATUS_FAILED, lambda name: failed_message(name, reason)
        )


@dataclass
class ProjectRecord:
    project_id: str
    name: str
    user_id: str
    status: str = "Draft"
    final_video_url: Optional[str] = None


@dataclass
class Notification:
    user_id: str
    project_id: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryProjectStore(ProjectStore):
    """Process-local store for development without DATABASE_URL."""

    def __init__(self, projects: Optional[list[ProjectRecord]] = None):
        self.projects: dict[str, ProjectRecord] = {p.project_id: p for p in projects or []}
        self.notifications: list[Notification] = []

    def add_project(self, project_id: str, name: str, user_id: str) -> ProjectRecord:
        record = ProjectRecord(project_id=project_id, name=name, user_id=user_id)
        self.projects[project_id] = record
        return record

    def _notify(self, record: ProjectRecord, message: str):
        self.notifications.append(
            Notification(user_id=record.user_id, project_id=record.project_id, message=message)
        )

    async def mark_rendered(self, project_id: str, video_url: str) -> bool:
        record = self.projects.get(project_id)
        if record is None:
            logger.warning(f"Render callback for unknown project {project_id}")
            return False
        record.status = STATUS_RENDERED
        record.final_video_url = video_url
        self._notify(record, rendered_message(record.name))
        return True

    async def mark_failed(self, project_id: str, reason: str) -> bool:
        record = self.projects.get(project_id)
        if record is None:
            logger.warning(f"Render callback for unknown project {project_id}")
            return False
        record.status = STATUS_FAILED
        self._notify(record, failed_message(record.name, reason))
        return True
