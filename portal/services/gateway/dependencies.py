"""
FastAPI dependency providers for the gateway components.

Process-wide objects (settings, codec, prober) live on app.state and are
created in the lifespan hook of gateway/main.py. Registry, access log and
broker are request-scoped and bound to the request's DB session.
"""

from fastapi import Depends, Request

from portal.services.shared.config import GatewaySettings
from portal.services.shared.database import get_db
from portal.services.gateway.access_log import AccessLog
from portal.services.gateway.broker import AccessBroker
from portal.services.gateway.codec import SecretCodec
from portal.services.gateway.prober import LivenessProber
from portal.services.gateway.registry import EndpointRegistry


def get_settings(request: Request) -> GatewaySettings:
    return request.app.state.settings


def get_codec(request: Request) -> SecretCodec:
    return request.app.state.codec


def get_prober(request: Request) -> LivenessProber:
    return request.app.state.prober


def get_access_log(db=Depends(get_db)) -> AccessLog:
    return AccessLog(db)


def get_registry(
    db=Depends(get_db),
    codec: SecretCodec = Depends(get_codec),
    settings: GatewaySettings = Depends(get_settings),
    access_log: AccessLog = Depends(get_access_log),
) -> EndpointRegistry:
    return EndpointRegistry(db, codec, default_port=settings.default_port, access_log=access_log)


def get_broker(
    registry: EndpointRegistry = Depends(get_registry),
    access_log: AccessLog = Depends(get_access_log),
    prober: LivenessProber = Depends(get_prober),
) -> AccessBroker:
    return AccessBroker(registry, access_log, prober)
