"""
Pydantic request/response schemas for the portal gateway API.

Response models never carry a secret field: neither the plaintext nor the
stored ciphertext leaves the service through a read path. The only route
that exposes a secret is the access hand-off, and only inside the access URL.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ── ManagedEndpoint ───────────────────────────────────────────────────────────

class EndpointCreate(BaseModel):
    name: str
    hostname: str = Field(..., examples=["10.0.0.5"])
    port: Optional[int] = None
    description: Optional[str] = None
    username: str
    secret: str
    confirm_secret: Optional[str] = None
    use_tls: bool = False

    def __repr__(self) -> str:
        return f"EndpointCreate(name={self.name!r}, hostname={self.hostname!r}, port={self.port!r})"


class EndpointUpdate(BaseModel):
    name: Optional[str] = None
    hostname: Optional[str] = None
    port: Optional[int] = None
    description: Optional[str] = None
    username: Optional[str] = None
    secret: Optional[str] = None
    confirm_secret: Optional[str] = None
    use_tls: Optional[bool] = None

    def __repr__(self) -> str:
        return f"EndpointUpdate(fields={sorted(self.model_fields_set)})"


class EndpointOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    hostname: str
    port: int
    use_tls: bool
    description: Optional[str] = None
    username: str
    created_by: str
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    last_accessed: Optional[datetime] = None
    status: str = "unknown"   # "online" | "offline" | "unknown" (not checked)


class EndpointSummaryOut(BaseModel):
    total: int
    online: int
    offline: int


# ── Access ────────────────────────────────────────────────────────────────────

class AccessUrlOut(BaseModel):
    endpoint_id: int
    access_url: str


class AccessLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    endpoint_id: int
    principal_id: str
    accessed_at: datetime
    source_address: Optional[str] = None
    client_agent: Optional[str] = None
    success: bool
