"""Error taxonomy shared by the domain modules and the HTTP layer.

Domain code raises these; `velora.api.server` turns them into JSON responses
of the form `{"detail": "<snake_case_code>"}`.
"""

from __future__ import annotations


class VeloraError(Exception):
    status_code = 500
    default_detail = "internal_error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(VeloraError):
    status_code = 400
    default_detail = "invalid_request"


class Unauthorized(VeloraError):
    status_code = 401
    default_detail = "unauthorized"


class Forbidden(VeloraError):
    status_code = 403
    default_detail = "forbidden"


class NotFound(VeloraError):
    status_code = 404
    default_detail = "not_found"


# Duplicate email etc. The SPA expects 400 here, not 409.
class Conflict(VeloraError):
    status_code = 400
    default_detail = "conflict"


class DeliveryError(VeloraError):
    status_code = 500
    default_detail = "delivery_failed"


class InternalError(VeloraError):
    status_code = 500
    default_detail = "internal_error"
