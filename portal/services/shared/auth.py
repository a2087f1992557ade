"""
Principal resolution for the portal gateway
--------------------------------------------
Portal login and sessions are handled upstream (the portal front end). The
upstream forwards the authenticated user on every call:

  X-Principal-Id:   opaque user id      (required, 401 when missing)
  X-Principal-Role: "admin" | "user"    (defaults to "user")

When REQUIRE_API_KEY=false (default for local dev):
  - the principal headers are trusted as-is

When REQUIRE_API_KEY=true (production):
  - X-Api-Key header is required and must match the bcrypt hash in
    GATEWAY_API_KEY_HASH, so only the trusted upstream can assert principals
  - Returns HTTP 403 if the key is missing or invalid

Usage in a FastAPI route:
    from portal.services.shared.auth import Principal, get_principal, require_admin

    @router.delete("/endpoints/{endpoint_id}", status_code=204)
    def delete_endpoint(endpoint_id: int, principal: Principal = Depends(require_admin), ...):
        ...

Generate a key and its hash:
    python -m portal.scripts.generate_keys --api-key
"""

import os
from dataclasses import dataclass

import bcrypt
from fastapi import Depends, Header, HTTPException

REQUIRE_API_KEY: bool = os.getenv("REQUIRE_API_KEY", "false").lower() == "true"
GATEWAY_API_KEY_HASH: str = os.getenv("GATEWAY_API_KEY_HASH", "")

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Principal:
    id: str
    role: str = "user"

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def _verify_key(plain_key: str, key_hash: str) -> bool:
    if not plain_key or not key_hash:
        return False
    try:
        return bcrypt.checkpw(plain_key.encode(), key_hash.encode())
    except ValueError:
        # malformed hash in configuration
        return False


def get_principal(
    x_principal_id: str | None = Header(None, alias="X-Principal-Id"),
    x_principal_role: str | None = Header(None, alias="X-Principal-Role"),
    x_api_key: str | None = Header(None, alias="X-Api-Key"),
) -> Principal:
    """FastAPI dependency: resolves the authenticated principal for the current request."""
    if REQUIRE_API_KEY and not _verify_key(x_api_key or "", GATEWAY_API_KEY_HASH):
        raise HTTPException(status_code=403, detail="Invalid or missing X-Api-Key.")

    if not x_principal_id or not x_principal_id.strip():
        raise HTTPException(status_code=401, detail="Not authenticated.")

    role = (x_principal_role or "user").strip().lower()
    return Principal(id=x_principal_id.strip(), role=role)


def require_admin(principal: Principal = Depends(get_principal)) -> Principal:
    """FastAPI dependency: like get_principal, but 403 unless the principal is an admin."""
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Administrator role required.")
    return principal
