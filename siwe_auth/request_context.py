from urllib.parse import urljoin
from starlette.requests import Request


def request_host(request: Request) -> str:
    """Host the client addressed, preferring the first X-Forwarded-Host entry."""
    forwarded = request.headers.get("x-forwarded-host")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.url.netloc


def canonical_url(request: Request, path: str | None = None) -> str:
    """scheme://host/path for this request, with query and fragment dropped."""
    return f"{request.url.scheme}://{request_host(request)}{path if path is not None else request.url.path}"


def sibling_url(request: Request, name: str) -> str:
    """Canonical URL of a route next to the current one, e.g. /auth/authorize -> /auth/verify."""
    return canonical_url(request, urljoin(request.url.path, name))
