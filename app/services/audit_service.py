import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


class AuditService:
    @staticmethod
    async def log_action(
        db: AsyncSession,
        actor_id: uuid.UUID | None,
        action: str,
        target_id: str | None = None,
        details: str | dict[str, Any] | None = None,
    ) -> AuditLog:
        """
        Record an account or roster change in the caller's transaction; the caller commits.

        Dict details are stored as sorted JSON.
        """
        if isinstance(details, dict):
            details = json.dumps(details, sort_keys=True, default=str)
        audit_entry = AuditLog(
            actor_id=actor_id,
            action=action,
            target_id=target_id,
            details=details,
            timestamp=datetime.now(timezone.utc),
        )
        db.add(audit_entry)
        logger.info("Audit %s by %s on %s", action, actor_id, target_id)
        return audit_entry
