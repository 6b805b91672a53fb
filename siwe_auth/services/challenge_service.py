import logging
import secrets
import string
from starlette.requests import Request
from starlette.responses import Response

from ..nonce_store import NonceStore, nonce_key
from .presentation import ChallengePresenter

logger = logging.getLogger(__name__)

# Protocol constant: a challenge is valid for 10 minutes
NONCE_TTL_SECONDS = 600
NONCE_TTL_MS = NONCE_TTL_SECONDS * 1000

_NONCE_ALPHABET = string.ascii_letters + string.digits
# 24 chars over 62 symbols, ~143 bits
NONCE_LENGTH = 24


def generate_challenge_nonce(length: int = NONCE_LENGTH) -> str:
    """Alphanumeric nonce (EIP-4361 requires [a-zA-Z0-9]{8,})."""
    return "".join(secrets.choice(_NONCE_ALPHABET) for _ in range(length))


def generate_attempt_id() -> str:
    return secrets.token_urlsafe(24)


class ChallengeIssuer:
    """
    Issues single-use challenges.

    Each call writes one nonce under the attempt's key and returns the
    presenter's response untouched. A previous nonce for the same attempt is
    overwritten, never read.
    """

    def __init__(self, store: NonceStore, presenter: ChallengePresenter, nonce_factory=generate_challenge_nonce):
        self.store = store
        self.presenter = presenter
        self._nonce_factory = nonce_factory

    async def issue(self, request: Request, attempt_id: str) -> tuple[str, Response]:
        nonce = self._nonce_factory()
        await self.store.set(nonce_key(attempt_id), NONCE_TTL_SECONDS, nonce)
        logger.info(f"Issued SIWE challenge for attempt {attempt_id[:8]}...")
        response = await self.presenter.present(request, nonce, NONCE_TTL_SECONDS)
        return nonce, response
