"""
Access Broker
-------------
Turns "principal P wants endpoint E" into a one-time AccessDescriptor.

Issuance flow (no retries; a retry policy belongs to the caller):

  requested → probing ─┬─ unreachable → FAILED   (log success=False, EndpointUnreachableError)
                       └─ reachable → decrypting ─┬─ CryptoError → FAILED   (log success=False, AccessIssuanceError)
                                                  └─ ok → touch last_accessed → log success=True → ISSUED

NotFoundError from the registry propagates unchanged and writes nothing.

A failed last_accessed update is tolerated and logged. A failed success-entry
write is not: no descriptor leaves the broker without an audit record.

The descriptor carries the plaintext secret. It must be consumed once by the
HTTP layer and never logged or persisted; its repr masks the secret.
"""

import ipaddress
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import quote

import structlog
from sqlalchemy.exc import SQLAlchemyError

from portal.services.shared.errors import AccessIssuanceError, CryptoError, EndpointUnreachableError
from portal.services.shared.models import ManagedEndpoint
from portal.services.gateway.access_log import AccessLog, RequestMeta
from portal.services.gateway.prober import LivenessProber, ProbeResult
from portal.services.gateway.registry import EndpointRegistry

logger = structlog.get_logger()


def _url_host(hostname: str) -> str:
    """IPv6 literals need brackets inside a URL authority."""
    try:
        if ipaddress.ip_address(hostname).version == 6:
            return f"[{hostname}]"
    except ValueError:
        pass
    return hostname


@dataclass(frozen=True)
class AccessDescriptor:
    scheme:   str
    hostname: str
    port:     int
    username: str
    secret:   str = field(repr=False)
    url:      str = field(repr=False)

    @classmethod
    def for_endpoint(cls, endpoint: ManagedEndpoint, secret: str) -> "AccessDescriptor":
        scheme = "https" if endpoint.use_tls else "http"
        url = (
            f"{scheme}://{quote(endpoint.username, safe='')}:{quote(secret, safe='')}"
            f"@{_url_host(endpoint.hostname)}:{endpoint.port}"
        )
        return cls(
            scheme=scheme,
            hostname=endpoint.hostname,
            port=endpoint.port,
            username=endpoint.username,
            secret=secret,
            url=url,
        )

    @property
    def base_url(self) -> str:
        """The target address without credentials (safe to log)."""
        return f"{self.scheme}://{_url_host(self.hostname)}:{self.port}"


class AccessBroker:
    def __init__(
        self,
        registry: EndpointRegistry,
        access_log: AccessLog,
        prober: LivenessProber,
    ):
        self.registry = registry
        self.access_log = access_log
        self.prober = prober

    def issue_access(
        self,
        endpoint_id: int,
        principal_id: str,
        meta: Optional[RequestMeta] = None,
    ) -> AccessDescriptor:
        endpoint = self.registry.get(endpoint_id)

        result = self.prober.probe(endpoint.hostname, endpoint.port, endpoint.use_tls)
        if result is not ProbeResult.reachable:
            self.access_log.append(endpoint.id, principal_id, success=False, meta=meta)
            logger.warning(
                "access_denied_unreachable",
                endpoint_id=endpoint.id,
                principal_id=principal_id,
                target=f"{endpoint.hostname}:{endpoint.port}",
            )
            raise EndpointUnreachableError(endpoint.id, endpoint.hostname, endpoint.port)

        try:
            secret = self.registry.reveal_secret(endpoint)
        except CryptoError as exc:
            self.access_log.append(endpoint.id, principal_id, success=False, meta=meta)
            logger.error("access_decrypt_failed", endpoint_id=endpoint.id, principal_id=principal_id)
            raise AccessIssuanceError(endpoint.id, "stored credential could not be decrypted", exc) from None

        try:
            self.registry.touch_last_accessed(endpoint.id)
        except SQLAlchemyError as exc:
            logger.warning("access_touch_failed", endpoint_id=endpoint.id, error=type(exc).__name__)

        try:
            self.access_log.append(endpoint.id, principal_id, success=True, meta=meta)
        except SQLAlchemyError as exc:
            logger.error("access_log_write_failed", endpoint_id=endpoint.id, principal_id=principal_id)
            raise AccessIssuanceError(endpoint.id, "access could not be recorded", exc) from None

        descriptor = AccessDescriptor.for_endpoint(endpoint, secret)
        logger.info(
            "access_issued",
            endpoint_id=endpoint.id,
            principal_id=principal_id,
            target=descriptor.base_url,
            source_address=meta.source_address if meta else None,
        )
        return descriptor
