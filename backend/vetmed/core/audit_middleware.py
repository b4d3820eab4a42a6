"""
Request-level audit logging middleware.
Auto-logs every write to household data endpoints.
"""
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from ..models.audit import AuditLog
from ..models.base import SessionLocal, generate_uuid
from ..core.security import decode_access_token

logger = logging.getLogger(__name__)

# Endpoints that write household data - requests to these paths are logged
HOUSEHOLD_PATH_PREFIXES = (
    "/api/v1/administrations",
    "/api/v1/inventory",
    "/api/v1/cosign",
    "/api/v1/regimens",
)

ACTION_MAP = {
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}


class AuditMiddleware(BaseHTTPMiddleware):
    """Middleware that auto-logs writes to household endpoints."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)

        path = request.url.path
        if not any(path.startswith(prefix) for prefix in HOUSEHOLD_PATH_PREFIXES):
            return response
        if request.method not in ACTION_MAP:
            return response

        user_id = "anonymous"
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            payload = decode_access_token(auth_header[7:])
            if payload:
                user_id = payload.get("sub", "anonymous")

        # /api/v1/<resource_type>/<resource_id>/...
        parts = [p for p in path.split("/") if p]
        resource_type = parts[2] if len(parts) >= 3 else "unknown"
        resource_id = parts[3] if len(parts) >= 4 else None

        db = SessionLocal()
        try:
            db.add(
                AuditLog(
                    id=generate_uuid(),
                    user_id=user_id,
                    household_id=request.query_params.get("household_id"),
                    action=ACTION_MAP[request.method],
                    resource_type=resource_type,
                    resource_id=resource_id,
                    ip_address=request.client.host if request.client else None,
                    request_method=request.method,
                    request_path=path,
                    details={"status_code": response.status_code},
                )
            )
            db.commit()
        except Exception as exc:
            db.rollback()
            logger.warning(
                "Audit log write failed for %s %s (user=%s): %s",
                request.method, path, user_id, exc,
            )
        finally:
            db.close()

        return response
