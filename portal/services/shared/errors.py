"""
Gateway error taxonomy.

Every failure the gateway core raises is a GatewayError. The HTTP layer
(gateway/main.py) maps each kind to a status code:

  ValidationError          → 400  (field-level messages in .errors)
  NotFoundError            → 404
  EndpointUnreachableError → 503
  CryptoError              → 500  (generic message only)
  AccessIssuanceError      → 500  (generic message only)
"""

from typing import Optional


class GatewayError(Exception):
    """Base class for all gateway errors."""

    http_status: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(GatewayError):
    """Malformed input. `errors` maps field name → human readable message."""

    http_status = 400

    def __init__(self, errors: dict[str, str], message: str = "Validation failed"):
        super().__init__(message)
        self.errors = dict(errors)


class NotFoundError(GatewayError):
    http_status = 404

    def __init__(self, resource: str, resource_id):
        super().__init__(f"{resource} {resource_id} not found")
        self.resource = resource
        self.resource_id = resource_id


class EndpointUnreachableError(GatewayError):
    """The liveness probe could not open a connection to the endpoint."""

    http_status = 503

    def __init__(self, endpoint_id: int, hostname: str, port: int):
        super().__init__(f"Endpoint {endpoint_id} ({hostname}:{port}) is offline or unreachable")
        self.endpoint_id = endpoint_id
        self.hostname = hostname
        self.port = port


class CryptoError(GatewayError):
    """
    Encrypt/decrypt failure: bad key, corrupted or foreign ciphertext.
    Messages never contain key material or ciphertext.
    """


class AccessIssuanceError(GatewayError):
    """Access could not be issued for an internal reason (wraps CryptoError)."""

    def __init__(self, endpoint_id: int, reason: str, cause: Optional[Exception] = None):
        super().__init__(f"Access to endpoint {endpoint_id} could not be issued: {reason}")
        self.endpoint_id = endpoint_id
        self.reason = reason
        self.cause = cause
