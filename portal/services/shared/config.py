"""
Gateway configuration.

All values come from environment variables. Settings are built once at
service startup (see gateway/main.py lifespan) and handed explicitly to the
components that need them - the encryption key is never a module global.

  APP_KEY                  base64 key material (>= 256 bits), "base64:" prefix allowed
  PROBE_TIMEOUT_MS         liveness probe timeout (default 2000)
  DEFAULT_ENDPOINT_PORT    port used when an endpoint is created without one (default 9090)
  PROBE_WORKERS            max concurrent probes when listing with status (default 32)
"""

import os
from dataclasses import dataclass

import structlog

logger = structlog.get_logger()

DEFAULT_PROBE_TIMEOUT_MS = 2000
DEFAULT_ENDPOINT_PORT    = 9090
DEFAULT_PROBE_WORKERS    = 32


@dataclass(frozen=True)
class GatewaySettings:
    encryption_key:   str
    probe_timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS
    default_port:     int = DEFAULT_ENDPOINT_PORT
    probe_workers:    int = DEFAULT_PROBE_WORKERS

    def __post_init__(self):
        if self.probe_timeout_ms < 1:
            raise ValueError("probe_timeout_ms must be positive")
        if not 1 <= self.default_port <= 65535:
            raise ValueError("default_port must be in [1, 65535]")
        if self.probe_workers < 1:
            raise ValueError("probe_workers must be positive")

    def __repr__(self) -> str:
        return (
            f"GatewaySettings(encryption_key='***', probe_timeout_ms={self.probe_timeout_ms}, "
            f"default_port={self.default_port}, probe_workers={self.probe_workers})"
        )


def load_settings() -> GatewaySettings:
    """
    Build GatewaySettings from the environment.

    Without APP_KEY an ephemeral key is generated. Secrets stored under it
    become unreadable after a restart, so this is only suitable for local dev.
    """
    key = os.getenv("APP_KEY", "").strip()
    if not key:
        from portal.services.gateway.codec import SecretCodec
        key = SecretCodec.generate_key()
        logger.warning("encryption_key_ephemeral", hint="set APP_KEY to persist endpoint secrets across restarts")

    return GatewaySettings(
        encryption_key=key,
        probe_timeout_ms=int(os.getenv("PROBE_TIMEOUT_MS", str(DEFAULT_PROBE_TIMEOUT_MS))),
        default_port=int(os.getenv("DEFAULT_ENDPOINT_PORT", str(DEFAULT_ENDPOINT_PORT))),
        probe_workers=int(os.getenv("PROBE_WORKERS", str(DEFAULT_PROBE_WORKERS))),
    )
