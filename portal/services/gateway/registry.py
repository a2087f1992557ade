"""
Endpoint Registry
-----------------
CRUD store for ManagedEndpoint records.

Read paths (get/list/recent_for_principal) return ORM rows whose secret
field is ciphertext. Routes serialise them through EndpointOut, which has
no secret field at all. Only reveal_secret() produces plaintext, and only
the AccessBroker calls it.

Validation rules (create, and update for any field present):
  name      required, <= 100 chars
  hostname  required, <= 255 chars; DNS name, IPv4 or bare IPv6 address,
            no whitespace, URL delimiters or port suffix
  port      integer in [1, 65535]        (create default: configured port)
  username  required, <= 100 chars
  secret    required on create; on update an absent or empty value keeps
            the stored ciphertext untouched
  confirm_secret  optional; must equal secret when both are given
"""

from __future__ import annotations

import ipaddress
from typing import Any, Optional

import structlog
from sqlalchemy.exc import SQLAlchemyError

from portal.services.shared.config import DEFAULT_ENDPOINT_PORT
from portal.services.shared.errors import NotFoundError, ValidationError
from portal.services.shared.models import ManagedEndpoint, utcnow
from portal.services.gateway.access_log import AccessLog
from portal.services.gateway.codec import SecretCodec

logger = structlog.get_logger()

_MAX_LENGTHS = {"name": 100, "hostname": 255, "username": 100}

# characters that would end or split the authority part of an access URL
_HOSTNAME_FORBIDDEN = set("/?#@[]\\%")

_UPDATABLE_FIELDS = {
    "name", "hostname", "port", "description", "username",
    "secret", "confirm_secret", "use_tls",
}


# ── Validation helpers ────────────────────────────────────────────────────────

def _check_text(field: str, value: Any, errors: dict[str, str]) -> Optional[str]:
    if value is None or not isinstance(value, str) or not value.strip():
        errors[field] = f"{field} is required"
        return None
    value = value.strip()
    if len(value) > _MAX_LENGTHS[field]:
        errors[field] = f"{field} must be at most {_MAX_LENGTHS[field]} characters"
        return None
    return value


def _is_ipv6(value: str) -> bool:
    try:
        return ipaddress.ip_address(value).version == 6
    except ValueError:
        return False


def _check_hostname(value: Any, errors: dict[str, str]) -> Optional[str]:
    """A DNS name, IPv4 address or bare IPv6 address (no brackets, no port)."""
    value = _check_text("hostname", value, errors)
    if value is None:
        return None
    if any(c.isspace() or c in _HOSTNAME_FORBIDDEN for c in value):
        errors["hostname"] = "hostname must not contain whitespace or any of / ? # @ [ ] \\ %"
        return None
    if ":" in value and not _is_ipv6(value):
        errors["hostname"] = "hostname must not include a port; use the port field"
        return None
    return value


def _check_bool(field: str, value: Any, errors: dict[str, str]) -> Optional[bool]:
    if not isinstance(value, bool):
        errors[field] = f"{field} must be true or false"
        return None
    return value


def _check_port(value: Any, errors: dict[str, str]) -> Optional[int]:
    if isinstance(value, bool):
        errors["port"] = "port must be an integer"
        return None
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int):
        errors["port"] = "port must be an integer"
        return None
    if not 1 <= value <= 65535:
        errors["port"] = "port must be between 1 and 65535"
        return None
    return value


def _check_secret_pair(secret: Optional[str], confirm: Optional[str], errors: dict[str, str]) -> None:
    if confirm is not None and secret is not None and confirm != secret:
        errors["confirm_secret"] = "secrets do not match"


# ── Registry ──────────────────────────────────────────────────────────────────

class EndpointRegistry:
    def __init__(
        self,
        db,
        codec: SecretCodec,
        default_port: int = DEFAULT_ENDPOINT_PORT,
        access_log: Optional[AccessLog] = None,
    ):
        self.db = db
        self.codec = codec
        self.default_port = default_port
        self.access_log = access_log or AccessLog(db)

    # ── writes ────────────────────────────────────────────────────────────────

    def create(self, data: dict[str, Any], created_by: str) -> ManagedEndpoint:
        errors: dict[str, str] = {}
        name     = _check_text("name", data.get("name"), errors)
        hostname = _check_hostname(data.get("hostname"), errors)
        username = _check_text("username", data.get("username"), errors)
        port_in  = data.get("port")
        port     = self.default_port if port_in is None else _check_port(port_in, errors)
        tls_in   = data.get("use_tls")
        use_tls  = False if tls_in is None else _check_bool("use_tls", tls_in, errors)

        secret = data.get("secret")
        if not isinstance(secret, str) or secret == "":
            errors["secret"] = "secret is required"
            secret = None
        _check_secret_pair(secret, data.get("confirm_secret"), errors)

        if errors:
            raise ValidationError(errors)

        row = ManagedEndpoint(
            name=name,
            hostname=hostname,
            port=port,
            use_tls=use_tls,
            description=data.get("description"),
            username=username,
            secret_encrypted=self.codec.encrypt(secret),
            created_by=created_by,
            created_at=utcnow(),
            last_accessed=None,
        )
        self.db.add(row)
        self._commit()
        self.db.refresh(row)
        logger.info("endpoint_created", endpoint_id=row.id, name=row.name, created_by=created_by)
        return row

    def update(self, endpoint_id: int, data: dict[str, Any], updated_by: str) -> ManagedEndpoint:
        row = self.get(endpoint_id)

        unknown = set(data) - _UPDATABLE_FIELDS
        errors: dict[str, str] = {f: "unknown field" for f in sorted(unknown)}
        changes: dict[str, Any] = {}

        for field in ("name", "hostname", "username"):
            if data.get(field) is not None:
                if field == "hostname":
                    value = _check_hostname(data[field], errors)
                else:
                    value = _check_text(field, data[field], errors)
                if value is not None:
                    changes[field] = value
        if data.get("port") is not None:
            port = _check_port(data["port"], errors)
            if port is not None:
                changes["port"] = port
        if data.get("use_tls") is not None:
            use_tls = _check_bool("use_tls", data["use_tls"], errors)
            if use_tls is not None:
                changes["use_tls"] = use_tls
        if "description" in data:
            changes["description"] = data["description"]

        secret = data.get("secret") or None
        _check_secret_pair(secret, data.get("confirm_secret"), errors)

        if errors:
            raise ValidationError(errors)

        for field, value in changes.items():
            setattr(row, field, value)
        if secret is not None:
            row.secret_encrypted = self.codec.encrypt(secret)
        row.updated_by = updated_by
        row.updated_at = utcnow()
        self._commit()
        self.db.refresh(row)
        logger.info(
            "endpoint_updated",
            endpoint_id=row.id,
            fields=sorted(changes) + (["secret"] if secret is not None else []),
            updated_by=updated_by,
        )
        return row

    def delete(self, endpoint_id: int) -> None:
        """Delete the endpoint; its access log entries go with it."""
        row = self.get(endpoint_id)
        self.db.delete(row)
        self._commit()
        logger.info("endpoint_deleted", endpoint_id=endpoint_id)

    def touch_last_accessed(self, endpoint_id: int) -> ManagedEndpoint:
        row = self.get(endpoint_id)
        row.last_accessed = utcnow()
        self._commit()
        return row

    # ── reads ─────────────────────────────────────────────────────────────────

    def get(self, endpoint_id: int) -> ManagedEndpoint:
        row = self.db.query(ManagedEndpoint).filter_by(id=endpoint_id).first()
        if not row:
            raise NotFoundError("Endpoint", endpoint_id)
        return row

    def list(self) -> list[ManagedEndpoint]:
        return (
            self.db.query(ManagedEndpoint)
                .order_by(ManagedEndpoint.name.asc(), ManagedEndpoint.id.asc())
                .all()
        )

    def recent_for_principal(self, principal_id: str, limit: int = 5) -> list[ManagedEndpoint]:
        """Endpoints this principal accessed most recently, per the access log."""
        ids = self.access_log.recent_endpoint_ids(principal_id, limit)
        if not ids:
            return []
        rows = self.db.query(ManagedEndpoint).filter(ManagedEndpoint.id.in_(ids)).all()
        by_id = {r.id: r for r in rows}
        return [by_id[i] for i in ids if i in by_id]

    def reveal_secret(self, endpoint: ManagedEndpoint) -> str:
        """Decrypt the stored secret. Raises CryptoError."""
        return self.codec.decrypt(endpoint.secret_encrypted)

    # ── internals ─────────────────────────────────────────────────────────────

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
