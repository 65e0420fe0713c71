"""Audit service for logging ledger changes."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from payout_ledger.core.actor import Actor
from payout_ledger.models.audit_log import AuditLog

logger = logging.getLogger(__name__)


async def log_audit(
    db: AsyncSession,
    action_type: str,  # 'CREATE', 'INSTALLMENT', 'PAY'
    entity_type: str,  # 'teacher_payout'
    entity_id: Optional[int],
    entity_name: str,
    description: str,
    actor: Actor,
    changes: Optional[Dict[str, Any]] = None,
) -> Optional[AuditLog]:
    """
    Add an audit entry to the current transaction.

    Args:
        db: Database session
        action_type: Type of action (CREATE, INSTALLMENT, PAY)
        entity_type: Type of entity
        entity_id: ID of the entity
        entity_name: Name of the entity for quick search
        description: Human-readable description
        actor: Who performed the action
        changes: Dictionary with before/after changes

    Returns:
        Created AuditLog instance or None if failed
    """
    try:
        audit_log = AuditLog(
            timestamp=datetime.now(timezone.utc),
            user_type=actor.actor_type.value,
            user_id=actor.user_id,
            user_name=actor.name,
            action_type=action_type,
            entity_type=entity_type,
            entity_id=entity_id,
            entity_name=entity_name,
            description=description,
            changes_json=changes,
        )

        db.add(audit_log)
        # Commit belongs to the calling ledger operation

        logger.info(f"Audit log created: {action_type} {entity_type} '{entity_name}' by {actor.name}")
        return audit_log

    except Exception as e:
        # Audit must never break the ledger operation
        logger.exception(f"Failed to create audit log: {e}")
        return None


async def get_audit_logs(
    db: AsyncSession,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    action_type: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[AuditLog], int]:
    """
    Get audit logs with filters.

    Returns:
        Tuple of (list of audit logs, total count)
    """
    filters = []

    if entity_type:
        filters.append(AuditLog.entity_type == entity_type)

    if entity_id is not None:
        filters.append(AuditLog.entity_id == entity_id)

    if action_type:
        filters.append(AuditLog.action_type == action_type)

    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))

    if filters:
        query = query.where(and_(*filters))
        count_query = count_query.where(and_(*filters))

    # Newest first; id breaks ties inside one transaction
    query = query.order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
    query = query.limit(limit).offset(offset)

    result = await db.execute(query)
    logs = result.scalars().all()

    count_result = await db.execute(count_query)
    total_count = count_result.scalar() or 0

    return list(logs), total_count
