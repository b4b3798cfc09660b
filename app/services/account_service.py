from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from urllib.parse import quote

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.security import get_password_hash
from app.core.exceptions import AccountFunctionError
from app.models.enums import ChangeEvent, ResolvedRole, UserType
from app.models.profiles import Client, Trainer
from app.models.user import User
from app.services.audit_service import AuditService
from app.services.realtime import ChangeFeed
from app.services.role_resolver import (
    Resolution,
    choose_kept_role,
    delete_role_record,
    other_user_type,
    trainer_owns_clients,
)

logger = logging.getLogger(__name__)


@dataclass
class NewClientProfile:
    email: str
    password: str
    full_name: str
    age: int | None = None
    height: float | None = None
    weight: float | None = None
    goals: str | None = None
    phone: str | None = None
    notes: str | None = None


@dataclass
class FixResult:
    user_type: UserType
    fixed_data: dict[str, str] = field(default_factory=dict)


def avatar_url_for(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=random"


async def _get_trainer(db: AsyncSession, principal_id: uuid.UUID) -> Trainer | None:
    return (await db.execute(select(Trainer).where(Trainer.id == principal_id))).scalar_one_or_none()


async def _get_client(db: AsyncSession, principal_id: uuid.UUID) -> Client | None:
    return (await db.execute(select(Client).where(Client.id == principal_id))).scalar_one_or_none()


class AccountService:
    @staticmethod
    async def create_client_account(
        db: AsyncSession,
        caller: User,
        trainer_id: uuid.UUID,
        profile: NewClientProfile,
        resolution: Resolution,
        *,
        feed: ChangeFeed | None = None,
    ) -> Client:
        """Create a client principal and its client record in one transaction.

        The caller must resolve as a trainer. A caller with no role at all is
        treated as a trainer that has not been set up yet and gets a trainer record.
        """
        if caller.id != trainer_id:
            raise AccountFunctionError(
                f"Unauthorized: You can only create clients for yourself. User ID: {caller.id}, Trainer ID: {trainer_id}"
            )
        if resolution.role not in (ResolvedRole.TRAINER, ResolvedRole.UNKNOWN):
            raise AccountFunctionError("Unauthorized: Only trainers can create client accounts")

        email = profile.email.strip().lower()
        existing = await db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise AccountFunctionError("A user with this email address has already been registered")

        try:
            if await _get_trainer(db, caller.id) is None:
                logger.info("Trainer %s has no trainer record, creating one", caller.id)
                db.add(Trainer(id=caller.id, full_name=caller.full_name or "Trainer", email=caller.email))
                if caller.user_type is None:
                    caller.user_type = UserType.TRAINER

            principal = User(
                email=email,
                hashed_password=get_password_hash(profile.password),
                full_name=profile.full_name,
                user_type=UserType.CLIENT,
                is_active=True,
            )
            db.add(principal)
            await db.flush()

            client = Client(
                id=principal.id,
                trainer_id=trainer_id,
                name=profile.full_name,
                email=email,
                phone=profile.phone,
                age=profile.age,
                height=profile.height,
                weight=profile.weight,
                goals=profile.goals,
                notes=profile.notes,
                join_date=datetime.now(timezone.utc),
                profile_image=avatar_url_for(profile.full_name),
            )
            db.add(client)
            await db.flush()

            await AuditService.log_action(
                db,
                actor_id=caller.id,
                action="CREATE_CLIENT_ACCOUNT",
                target_id=str(client.id),
                details=f"Created client account {email}",
            )
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.exception("Failed to create client account for %s", email)
            raise AccountFunctionError(f"Failed to create client record: {exc.__class__.__name__}") from exc

        logger.info("Created client %s for trainer %s", client.id, trainer_id)
        if feed is not None:
            feed.publish("clients", ChangeEvent.INSERT, client.id, trainer_id=trainer_id, client_id=client.id)
        return client

    @staticmethod
    async def update_user_type(
        db: AsyncSession,
        caller: User,
        user_id: uuid.UUID,
        user_type: UserType,
    ) -> UserType:
        if caller.id != user_id:
            raise AccountFunctionError("Unauthorized: You can only update your own user type")

        previous = caller.user_type
        caller.user_type = user_type
        await AuditService.log_action(
            db,
            actor_id=caller.id,
            action="UPDATE_USER_TYPE",
            target_id=str(caller.id),
            details=f"{previous.value if previous else None} -> {user_type.value}",
        )
        await db.commit()
        return user_type

    @staticmethod
    async def fix_user_data(
        db: AsyncSession,
        caller: User,
        *,
        tie_break: UserType,
        feed: ChangeFeed | None = None,
    ) -> FixResult:
        """Remove the extraneous role record of a dual-role principal and resync the cached tag."""
        client = await _get_client(db, caller.id)
        trainer = await _get_trainer(db, caller.id)

        if client is not None and trainer is not None:
            kept = choose_kept_role(caller.user_type, tie_break, await trainer_owns_clients(db, caller.id))
            removed = other_user_type(kept)
            trainer_id = client.trainer_id
            if not await delete_role_record(db, caller.id, removed):
                await db.rollback()
                raise AccountFunctionError(f"Failed to remove duplicate entry: {removed.value} record is still in use")
            result = FixResult(user_type=kept, fixed_data={"removed": removed.value, "kept": kept.value})
        elif client is not None:
            result = FixResult(user_type=UserType.CLIENT, fixed_data={"user_type": UserType.CLIENT.value})
        elif trainer is not None:
            result = FixResult(user_type=UserType.TRAINER, fixed_data={"user_type": UserType.TRAINER.value})
        else:
            raise AccountFunctionError("User not found in either clients or trainers table")

        caller.user_type = result.user_type
        await AuditService.log_action(
            db,
            actor_id=caller.id,
            action="FIX_USER_DATA",
            target_id=str(caller.id),
            details=result.fixed_data,
        )
        await db.commit()

        if feed is not None and result.fixed_data.get("removed") == UserType.CLIENT.value:
            feed.publish("clients", ChangeEvent.DELETE, caller.id, trainer_id=trainer_id, client_id=caller.id)
        return result
