"""Decide whether a principal is a trainer or a client.

The ``trainers`` and ``clients`` tables are authoritative; ``users.user_type``
is a cached tag that is rewritten whenever it disagrees with them. A principal
found in both tables is resolved through the cached tag (or the configured
tie-break) and the losing record is deleted in the background.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Literal, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import AsyncSessionLocal
from app.models.enums import ResolvedRole, UserType
from app.models.profiles import Client, Trainer
from app.models.user import User

logger = logging.getLogger(__name__)

RecordT = TypeVar("RecordT", Trainer, Client)
ResolutionSource = Literal["database", "cache", "none"]

DASHBOARD_BY_ROLE = {
    ResolvedRole.TRAINER: "/dashboard",
    ResolvedRole.CLIENT: "/client-dashboard",
    ResolvedRole.UNKNOWN: "/login",
}


@dataclass
class Resolution:
    principal_id: uuid.UUID
    role: ResolvedRole
    source: ResolutionSource
    cached_tag: UserType | None
    trainer: Trainer | None = None
    client: Client | None = None
    inconsistent: bool = False
    repair_scheduled: bool = False
    cache_update_scheduled: bool = False

    @property
    def requires_sign_out(self) -> bool:
        return self.role == ResolvedRole.UNKNOWN

    @property
    def dashboard(self) -> str:
        return DASHBOARD_BY_ROLE[self.role]


def other_user_type(user_type: UserType) -> UserType:
    return UserType.CLIENT if user_type == UserType.TRAINER else UserType.TRAINER


def choose_kept_role(cached: UserType | None, tie_break: UserType, owns_clients: bool) -> UserType:
    """Role kept for a principal found in both tables.

    The cached tag wins, then the tie-break; a trainer record that owns clients
    always keeps the trainer role since it can never be removed.
    """
    kept = cached or tie_break
    if kept == UserType.CLIENT and owns_clients:
        return UserType.TRAINER
    return kept


async def trainer_owns_clients(db: AsyncSession, trainer_id: uuid.UUID) -> bool:
    result = await db.execute(select(func.count()).select_from(Client).where(Client.trainer_id == trainer_id))
    return bool(result.scalar_one())


async def delete_role_record(db: AsyncSession, principal_id: uuid.UUID, user_type: UserType) -> bool:
    """Delete one role record without committing. Returns False when nothing was removed.

    A trainer record that still owns clients is left alone: removing it would
    orphan those clients.
    """
    if user_type == UserType.TRAINER:
        if await trainer_owns_clients(db, principal_id):
            logger.warning("Trainer record %s owns clients; refusing to delete it", principal_id)
            return False
        result = await db.execute(delete(Trainer).where(Trainer.id == principal_id))
    else:
        result = await db.execute(delete(Client).where(Client.id == principal_id))
    return bool(result.rowcount)


class RoleResolver:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        tie_break: UserType | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._tie_break = tie_break or UserType(settings.ROLE_TIE_BREAK)
        self._cache_writes: dict[uuid.UUID, asyncio.Task] = {}
        self._repairs: dict[uuid.UUID, asyncio.Task] = {}

    @property
    def tie_break(self) -> UserType:
        return self._tie_break

    async def resolve_user(self, user: User) -> Resolution:
        return await self.resolve(user.id, user.user_type)

    async def resolve(self, principal_id: uuid.UUID, cached_tag: UserType | str | None = None) -> Resolution:
        cached = UserType(cached_tag) if cached_tag else None
        trainer, client = await asyncio.gather(
            self._lookup(Trainer, principal_id),
            self._lookup(Client, principal_id),
        )

        if trainer is not None and client is not None:
            owns_clients = await self._owns_clients(principal_id)
            kept = choose_kept_role(cached, self._tie_break, owns_clients)
            logger.warning(
                "Principal %s has both trainer and client records; keeping %s (%s)",
                principal_id,
                kept.value,
                "cached tag" if cached == kept else "owns clients" if owns_clients else "tie-break",
            )
            resolution = Resolution(
                principal_id=principal_id,
                role=ResolvedRole(kept.value),
                source="database",
                cached_tag=cached,
                trainer=trainer if kept == UserType.TRAINER else None,
                client=client if kept == UserType.CLIENT else None,
                inconsistent=True,
            )
            resolution.repair_scheduled = self._schedule_repair(principal_id, other_user_type(kept))
            if cached != kept:
                resolution.cache_update_scheduled = self._schedule_cache_write(principal_id, kept)
            return resolution

        if trainer is not None or client is not None:
            found = UserType.TRAINER if trainer is not None else UserType.CLIENT
            resolution = Resolution(
                principal_id=principal_id,
                role=ResolvedRole(found.value),
                source="database",
                cached_tag=cached,
                trainer=trainer,
                client=client,
            )
            if cached != found:
                logger.info(
                    "Cached user type for %s is %s, database says %s",
                    principal_id,
                    cached.value if cached else None,
                    found.value,
                )
                resolution.cache_update_scheduled = self._schedule_cache_write(principal_id, found)
            return resolution

        if cached is not None:
            logger.warning("Principal %s has no role record; falling back to cached %s", principal_id, cached.value)
            return Resolution(
                principal_id=principal_id,
                role=ResolvedRole(cached.value),
                source="cache",
                cached_tag=cached,
            )

        logger.warning("Principal %s not found in either clients or trainers table", principal_id)
        return Resolution(principal_id=principal_id, role=ResolvedRole.UNKNOWN, source="none", cached_tag=None)

    async def drain(self) -> None:
        """Wait for background cache writes and repairs started so far."""
        pending = [*self._cache_writes.values(), *self._repairs.values()]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _lookup(self, model: type[RecordT], principal_id: uuid.UUID) -> RecordT | None:
        try:
            async with self._session_factory() as db:
                result = await db.execute(select(model).where(model.id == principal_id))
                return result.scalar_one_or_none()
        except Exception:
            logger.exception("Error checking %s data for %s", model.__tablename__, principal_id)
            return None

    async def _owns_clients(self, principal_id: uuid.UUID) -> bool:
        try:
            async with self._session_factory() as db:
                return await trainer_owns_clients(db, principal_id)
        except Exception:
            logger.exception("Error counting clients of %s", principal_id)
            return False

    def _schedule_cache_write(self, principal_id: uuid.UUID, user_type: UserType) -> bool:
        if self._is_running(self._cache_writes, principal_id):
            return False
        task = asyncio.create_task(self._write_cached_tag(principal_id, user_type))
        self._track(self._cache_writes, principal_id, task)
        return True

    def _schedule_repair(self, principal_id: uuid.UUID, losing: UserType) -> bool:
        if self._is_running(self._repairs, principal_id):
            logger.debug("Repair already in flight for %s", principal_id)
            return False
        task = asyncio.create_task(self._remove_losing_record(principal_id, losing))
        self._track(self._repairs, principal_id, task)
        return True

    async def _write_cached_tag(self, principal_id: uuid.UUID, user_type: UserType) -> None:
        try:
            async with self._session_factory() as db:
                await db.execute(update(User).where(User.id == principal_id).values(user_type=user_type))
                await db.commit()
            logger.info("User type metadata for %s set to %s", principal_id, user_type.value)
        except Exception:
            logger.exception("Error updating user type metadata for %s", principal_id)

    async def _remove_losing_record(self, principal_id: uuid.UUID, losing: UserType) -> None:
        try:
            async with self._session_factory() as db:
                removed = await delete_role_record(db, principal_id, losing)
                await db.commit()
            if removed:
                logger.info("Removed duplicate %s record for %s", losing.value, principal_id)
        except Exception:
            logger.exception("Failed to remove duplicate %s record for %s", losing.value, principal_id)

    @staticmethod
    def _is_running(tasks: dict[uuid.UUID, asyncio.Task], principal_id: uuid.UUID) -> bool:
        task = tasks.get(principal_id)
        return task is not None and not task.done()

    @staticmethod
    def _track(tasks: dict[uuid.UUID, asyncio.Task], principal_id: uuid.UUID, task: asyncio.Task) -> None:
        tasks[principal_id] = task

        def _forget(done: asyncio.Task) -> None:
            if tasks.get(principal_id) is done:
                tasks.pop(principal_id, None)

        task.add_done_callback(_forget)


role_resolver = RoleResolver(AsyncSessionLocal)


def get_role_resolver() -> RoleResolver:
    return role_resolver
