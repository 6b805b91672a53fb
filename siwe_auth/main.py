from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import time
from typing import Callable

# Configure basic logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')

from . import config
from .errors import SiweVerificationError
from .nonce_store import InMemoryNonceStore, NonceStore, RedisNonceStore
from .routers import auth
from .services.challenge_service import ChallengeIssuer
from .services.presentation import ChallengePresenter, JsonChallengePresenter
from .services.signature_service import SignatureVerifier, SiweSignatureVerifier
from .services.verification_service import VerificationEngine

logger = logging.getLogger(__name__)


def build_nonce_store() -> NonceStore:
    if config.REDIS_URL:
        logger.info("Using Redis nonce store.")
        return RedisNonceStore.from_url(config.REDIS_URL)
    return InMemoryNonceStore()


def build_app_state(
    app: FastAPI,
    store: NonceStore | None = None,
    signature_verifier: SignatureVerifier | None = None,
    presenter: ChallengePresenter | None = None,
    clock: Callable[[], float] | None = None,
) -> None:
    """Wires the store into the issuer and the verification engine."""
    # Explicit None checks: an empty store is falsy
    if store is None:
        store = build_nonce_store()
    if signature_verifier is None:
        signature_verifier = SiweSignatureVerifier.from_config()
    if presenter is None:
        presenter = JsonChallengePresenter()
    app.state.nonce_store = store
    app.state.challenge_issuer = ChallengeIssuer(store, presenter)
    app.state.verification_engine = VerificationEngine(store, signature_verifier, clock=clock or time.time)


def create_app(
    store: NonceStore | None = None,
    signature_verifier: SignatureVerifier | None = None,
    presenter: ChallengePresenter | None = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        build_app_state(app, store, signature_verifier, presenter)
        yield
        await app.state.nonce_store.close()

    app = FastAPI(
        title="SIWE Authentication Backend",
        description="Sign-In with Ethereum (EIP-4361) challenge issuance and verification.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # --- CORS Configuration ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True, # The attempt cookie must travel with /auth/verify
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SiweVerificationError, auth.siwe_error_handler)
    app.include_router(auth.router)

    @app.get("/", tags=["Health Check"])
    def read_root():
        """Root endpoint for health check."""
        return {"status": "ok", "message": "SIWE authentication backend is running."}

    return app


app = create_app()


# --- Server Startup (for local development) ---
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("siwe_auth.main:app", host="0.0.0.0", port=8000, reload=True)
