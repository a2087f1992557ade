"""
Access Log
----------
Append-only store of access-issuance attempts.

Entries are never updated or deleted one by one. They only disappear when
their endpoint is deleted (ON DELETE CASCADE).
"""

from dataclasses import dataclass
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from portal.services.shared.models import AccessLogEntry, utcnow

logger = structlog.get_logger()

_MAX_AGENT_LEN = 512


@dataclass(frozen=True)
class RequestMeta:
    """Caller metadata captured with every access attempt."""
    source_address: Optional[str] = None
    client_agent:   Optional[str] = None


class AccessLog:
    def __init__(self, db):
        self.db = db

    def append(
        self,
        endpoint_id: int,
        principal_id: str,
        success: bool,
        meta: Optional[RequestMeta] = None,
    ) -> AccessLogEntry:
        """Persist one entry (id and timestamp assigned here) in a single commit."""
        meta = meta or RequestMeta()
        entry = AccessLogEntry(
            endpoint_id=endpoint_id,
            principal_id=principal_id,
            accessed_at=utcnow(),
            source_address=meta.source_address,
            client_agent=meta.client_agent[:_MAX_AGENT_LEN] if meta.client_agent else None,
            success=success,
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        self.db.refresh(entry)
        logger.debug("access_log_appended", entry_id=entry.id, endpoint_id=endpoint_id, success=success)
        return entry

    def recent_endpoint_ids(
        self,
        principal_id: str,
        limit: int,
        successful_only: bool = True,
    ) -> list[int]:
        """
        Endpoint ids the principal accessed, most recent first.
        Each endpoint appears once (its latest entry wins); ties on the
        timestamp fall back to endpoint id ascending.
        """
        if limit <= 0:
            return []
        last_access = func.max(AccessLogEntry.accessed_at).label("last_access")
        q = (
            self.db.query(AccessLogEntry.endpoint_id, last_access)
                .filter(AccessLogEntry.principal_id == principal_id)
        )
        if successful_only:
            q = q.filter(AccessLogEntry.success == True)  # noqa: E712
        rows = (
            q.group_by(AccessLogEntry.endpoint_id)
             .order_by(last_access.desc(), AccessLogEntry.endpoint_id.asc())
             .limit(limit)
             .all()
        )
        return [r.endpoint_id for r in rows]

    def query(
        self,
        endpoint_id: Optional[int] = None,
        principal_id: Optional[str] = None,
        success: Optional[bool] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AccessLogEntry]:
        """Newest-first listing for the audit view."""
        q = self.db.query(AccessLogEntry)
        if endpoint_id is not None:
            q = q.filter(AccessLogEntry.endpoint_id == endpoint_id)
        if principal_id:
            q = q.filter(AccessLogEntry.principal_id == principal_id)
        if success is not None:
            q = q.filter(AccessLogEntry.success == success)
        return (
            q.order_by(AccessLogEntry.accessed_at.desc(), AccessLogEntry.id.desc())
             .offset(offset)
             .limit(limit)
             .all()
        )
