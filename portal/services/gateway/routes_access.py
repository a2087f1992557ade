"""
Access hand-off and audit routes.

  GET /api/endpoints/{id}/access   any    issue access (JSON access_url, or 307 with ?redirect=true)
  GET /api/access-logs             admin  read-only view of the access log

The access URL embeds the endpoint credentials (user:secret@host:port). It is
returned once and never logged.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse

from portal.services.shared.auth import Principal, get_principal, require_admin
from portal.services.shared.schemas import AccessLogOut, AccessUrlOut
from portal.services.gateway.access_log import AccessLog, RequestMeta
from portal.services.gateway.broker import AccessBroker
from portal.services.gateway.dependencies import get_access_log, get_broker

router = APIRouter()


def _request_meta(request: Request) -> RequestMeta:
    return RequestMeta(
        source_address=request.client.host if request.client else None,
        client_agent=request.headers.get("user-agent"),
    )


@router.get("/endpoints/{endpoint_id}/access", response_model=AccessUrlOut)
def issue_access(
    endpoint_id: int,
    request: Request,
    response: Response,
    redirect: bool = False,
    principal: Principal = Depends(get_principal),
    broker: AccessBroker = Depends(get_broker),
):
    """
    Probe the endpoint and hand out a one-time access URL.
    503 when the endpoint is offline, 404 when it does not exist.
    """
    descriptor = broker.issue_access(endpoint_id, principal.id, _request_meta(request))
    if redirect:
        return RedirectResponse(descriptor.url, status_code=307, headers={"Cache-Control": "no-store"})
    response.headers["Cache-Control"] = "no-store"
    return AccessUrlOut(endpoint_id=endpoint_id, access_url=descriptor.url)


@router.get("/access-logs", response_model=list[AccessLogOut])
def list_access_logs(
    endpoint_id: Optional[int] = None,
    principal_id: Optional[str] = None,
    success: Optional[bool] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    principal: Principal = Depends(require_admin),
    access_log: AccessLog = Depends(get_access_log),
):
    """Query the access log, newest first. Filters combine with AND."""
    rows = access_log.query(
        endpoint_id=endpoint_id,
        principal_id=principal_id,
        success=success,
        limit=limit,
        offset=offset,
    )
    return [AccessLogOut.model_validate(r) for r in rows]
