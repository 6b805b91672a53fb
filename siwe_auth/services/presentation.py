from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from fastapi.responses import JSONResponse
from starlette.requests import Request
from starlette.responses import Response

from .. import config
from ..models.auth_models import ChallengeResponse
from ..request_context import request_host, sibling_url


class ChallengePresenter(ABC):
    """Turns an issued nonce into whatever the caller is shown. Opaque to verification."""

    @abstractmethod
    async def present(self, request: Request, nonce: str, ttl_seconds: int) -> Response:
        ...


def _iso(ts: datetime) -> str:
    return ts.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ts.microsecond // 1000:03d}Z"


class JsonChallengePresenter(ChallengePresenter):
    """
    Returns the challenge as JSON so a wallet client can assemble the message itself.

    `uri` is the verification endpoint the message must be scoped to.
    """

    def __init__(
        self,
        chain_id: int | None = None,
        statement: str | None = None,
        resources: list[str] | None = None,
        verify_route: str = "verify",
    ):
        self.chain_id = chain_id if chain_id is not None else config.SIWE_CHAIN_ID
        self.statement = statement if statement is not None else config.SIWE_STATEMENT
        self.resources = resources if resources is not None else list(config.SIWE_RESOURCES)
        self.verify_route = verify_route

    def build(self, request: Request, nonce: str, ttl_seconds: int) -> ChallengeResponse:
        issued_at = datetime.now(timezone.utc)
        verify_url = sibling_url(request, self.verify_route)
        return ChallengeResponse(
            nonce=nonce,
            domain=request_host(request),
            uri=verify_url,
            verify_url=verify_url,
            chain_id=self.chain_id,
            statement=self.statement,
            resources=self.resources,
            issued_at=_iso(issued_at),
            expiration_time=_iso(issued_at + timedelta(seconds=ttl_seconds)),
        )

    async def present(self, request: Request, nonce: str, ttl_seconds: int) -> Response:
        challenge = self.build(request, nonce, ttl_seconds)
        return JSONResponse(content=challenge.model_dump())
