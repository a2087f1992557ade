"""
ManagedEndpoint routes.

  POST   /api/endpoints              admin  create
  GET    /api/endpoints              any    list (?check_status=true probes every entry)
  GET    /api/endpoints/summary      any    online/offline counts for the dashboard
  GET    /api/endpoints/recent       any    caller's most recently accessed endpoints
  GET    /api/endpoints/{id}         any    fetch one
  PUT    /api/endpoints/{id}         admin  partial update
  DELETE /api/endpoints/{id}         admin  delete (cascades access log)

Responses go through EndpointOut, which has no secret field.
"""

from fastapi import APIRouter, Depends, Query, Response

from portal.services.shared.auth import Principal, get_principal, require_admin
from portal.services.shared.models import ManagedEndpoint
from portal.services.shared.schemas import (
    EndpointCreate, EndpointOut, EndpointSummaryOut, EndpointUpdate,
)
from portal.services.gateway.dependencies import get_prober, get_registry
from portal.services.gateway.prober import LivenessProber, ProbeTarget
from portal.services.gateway.registry import EndpointRegistry

router = APIRouter()


def _to_out(rows: list[ManagedEndpoint], prober: LivenessProber, check_status: bool) -> list[EndpointOut]:
    statuses = {}
    if check_status:
        results = prober.probe_many(
            ProbeTarget(r.id, r.hostname, r.port, r.use_tls) for r in rows
        )
        statuses = {key: res.status for key, res in results.items()}
    out = []
    for r in rows:
        item = EndpointOut.model_validate(r)
        item.status = statuses.get(r.id, "unknown")
        out.append(item)
    return out


# ── Routes ────────────────────────────────────────────────────────────────────

@router.post("/endpoints", response_model=EndpointOut, status_code=201)
def create_endpoint(
    req: EndpointCreate,
    principal: Principal = Depends(require_admin),
    registry: EndpointRegistry = Depends(get_registry),
):
    row = registry.create(req.model_dump(), created_by=principal.id)
    return EndpointOut.model_validate(row)


@router.get("/endpoints", response_model=list[EndpointOut])
def list_endpoints(
    check_status: bool = False,
    principal: Principal = Depends(get_principal),
    registry: EndpointRegistry = Depends(get_registry),
    prober: LivenessProber = Depends(get_prober),
):
    return _to_out(registry.list(), prober, check_status)


@router.get("/endpoints/summary", response_model=EndpointSummaryOut)
def endpoints_summary(
    principal: Principal = Depends(get_principal),
    registry: EndpointRegistry = Depends(get_registry),
    prober: LivenessProber = Depends(get_prober),
):
    """Dashboard tiles: every endpoint is probed concurrently."""
    items = _to_out(registry.list(), prober, check_status=True)
    online = sum(1 for i in items if i.status == "online")
    return EndpointSummaryOut(total=len(items), online=online, offline=len(items) - online)


@router.get("/endpoints/recent", response_model=list[EndpointOut])
def recent_endpoints(
    limit: int = Query(default=5, ge=1, le=50),
    principal: Principal = Depends(get_principal),
    registry: EndpointRegistry = Depends(get_registry),
):
    rows = registry.recent_for_principal(principal.id, limit)
    return [EndpointOut.model_validate(r) for r in rows]


@router.get("/endpoints/{endpoint_id}", response_model=EndpointOut)
def get_endpoint(
    endpoint_id: int,
    check_status: bool = False,
    principal: Principal = Depends(get_principal),
    registry: EndpointRegistry = Depends(get_registry),
    prober: LivenessProber = Depends(get_prober),
):
    return _to_out([registry.get(endpoint_id)], prober, check_status)[0]


@router.put("/endpoints/{endpoint_id}", response_model=EndpointOut)
def update_endpoint(
    endpoint_id: int,
    req: EndpointUpdate,
    principal: Principal = Depends(require_admin),
    registry: EndpointRegistry = Depends(get_registry),
):
    row = registry.update(endpoint_id, req.model_dump(exclude_unset=True), updated_by=principal.id)
    return EndpointOut.model_validate(row)


@router.delete("/endpoints/{endpoint_id}", status_code=204)
def delete_endpoint(
    endpoint_id: int,
    principal: Principal = Depends(require_admin),
    registry: EndpointRegistry = Depends(get_registry),
):
    registry.delete(endpoint_id)
    return Response(status_code=204)
