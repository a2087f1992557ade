"""
Portal gateway SQLAlchemy ORM models.
Uses SQLAlchemy 2.0 Mapped + mapped_column for full type-checker support.

  ManagedEndpoint  - one remote host exposing an HTTP administration interface
  AccessLogEntry   - one audit record per access-issuance attempt

Secret invariant:
  ManagedEndpoint.secret_encrypted only ever holds SecretCodec output.
  Plaintext secrets exist in memory only while creating/updating an endpoint
  or issuing access.

Principals are owned by the external auth provider and referenced by id only.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean, DateTime, ForeignKey, Index, Integer, String, Text, event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portal.services.shared.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Managed Endpoints ─────────────────────────────────────────────────────────

class ManagedEndpoint(Base):
    """
    A registered remote host ("server") reachable at hostname:port.
    Created and mutated only through EndpointRegistry.
    Deleting an endpoint cascades to its access log entries.
    """
    __tablename__ = "managed_endpoints"

    id:               Mapped[int]                = mapped_column(Integer, primary_key=True, index=True)
    name:             Mapped[str]                = mapped_column(String(100), nullable=False, index=True)
    hostname:         Mapped[str]                = mapped_column(String(255), nullable=False)
    port:             Mapped[int]                = mapped_column(Integer, nullable=False, default=9090)
    use_tls:          Mapped[bool]               = mapped_column(Boolean, nullable=False, default=False)
    description:      Mapped[Optional[str]]      = mapped_column(Text, nullable=True)
    username:         Mapped[str]                = mapped_column(String(100), nullable=False)
    secret_encrypted: Mapped[str]                = mapped_column(Text, nullable=False)
    created_by:       Mapped[str]                = mapped_column(String(255), nullable=False)
    updated_by:       Mapped[Optional[str]]      = mapped_column(String(255), nullable=True)
    created_at:       Mapped[datetime]           = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at:       Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_accessed:    Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    access_entries: Mapped[List["AccessLogEntry"]] = relationship(
        "AccessLogEntry",
        back_populates="endpoint",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<ManagedEndpoint {self.id} {self.name} {self.hostname}:{self.port}>"


# ── Access Log ────────────────────────────────────────────────────────────────

class AccessLogEntry(Base):
    """
    Immutable audit record of one access-issuance attempt (successful or failed).
    Written only by AccessBroker through AccessLog.append().
    """
    __tablename__ = "access_log_entries"

    id:             Mapped[int]            = mapped_column(Integer, primary_key=True, index=True)
    endpoint_id:    Mapped[int]            = mapped_column(Integer, ForeignKey("managed_endpoints.id", ondelete="CASCADE"), nullable=False)
    principal_id:   Mapped[str]            = mapped_column(String(255), nullable=False)
    accessed_at:    Mapped[datetime]       = mapped_column(DateTime, default=utcnow, nullable=False, index=True)
    source_address: Mapped[Optional[str]]  = mapped_column(String(64), nullable=True)   # fits IPv6
    client_agent:   Mapped[Optional[str]]  = mapped_column(String(512), nullable=True)
    success:        Mapped[bool]           = mapped_column(Boolean, nullable=False, default=True)

    endpoint: Mapped["ManagedEndpoint"] = relationship("ManagedEndpoint", back_populates="access_entries")

    __table_args__ = (
        Index("ix_access_log_principal_ts", "principal_id", "accessed_at"),
        Index("ix_access_log_endpoint", "endpoint_id"),
    )


@event.listens_for(AccessLogEntry, "before_update")
def _reject_access_log_update(mapper, connection, target):
    raise RuntimeError(f"access log entry {target.id} is immutable")
