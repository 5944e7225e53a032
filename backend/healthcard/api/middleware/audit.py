"""Audit trail for access to identities and clinical records."""
from typing import Optional

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from healthcard.models.audit_log import AuditLog
from healthcard.models.user import User


async def log_audit(
    db: AsyncSession,
    *,
    actor: Optional[User],
    action: str,
    resource: str,
    resource_id=None,
    details: Optional[str] = None,
    request: Optional[Request] = None,
) -> AuditLog:
    """Append an audit row inside the caller's transaction.

    The row commits or rolls back together with the change it describes.
    """
    client = request.client if request is not None else None

    entry = AuditLog(
        user_id=actor.id if actor is not None else None,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id else None,
        details=details,
        ip_address=client.host if client else None,
        user_agent=request.headers.get("user-agent") if request is not None else None,
    )
    db.add(entry)
    await db.flush()
    return entry
