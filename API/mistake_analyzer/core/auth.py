"""Optional shared-key gate in front of every data endpoint (x-api-key header)."""
import secrets

from starlette.requests import Request

from mistake_analyzer.core.errors import error_response
from mistake_analyzer.core.settings import settings

OPEN_PATHS = ("/health", "/docs", "/openapi.json", "/redoc")


def _is_open(request: Request) -> bool:
    # CORS preflight never carries the key.
    return request.method == "OPTIONS" or request.url.path.startswith(OPEN_PATHS)


def key_matches(provided: str) -> bool:
    expected = settings.gateway_api_key
    return bool(expected) and secrets.compare_digest(provided.encode(), expected.encode())


async def api_key_auth_middleware(request: Request, call_next):
    if not settings.gateway_auth_enabled or _is_open(request):
        return await call_next(request)
    if not key_matches(request.headers.get("x-api-key", "")):
        return error_response(
            request,
            code="unauthorized",
            message="Unauthorized: invalid or missing x-api-key",
            status_code=401,
        )
    return await call_next(request)
