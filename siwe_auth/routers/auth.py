from fastapi import APIRouter, HTTPException, status, Request, Response, Depends
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordBearer # For JWT extraction
from datetime import datetime, timedelta, timezone
from jose import JWTError, jwt # For JWT handling
from pydantic import BaseModel, ValidationError # For token payload validation
import logging

from ..errors import ErrorCode, SiweVerificationError
from ..models.auth_models import (
    ChallengeResponse,
    MeResponse,
    VerificationContext,
    VerificationInput,
    VerifyRequest,
    VerifyResponse,
)
from ..models.error_models import ErrorResponse
from ..request_context import canonical_url, request_host
from ..services.challenge_service import ChallengeIssuer, NONCE_TTL_SECONDS, generate_attempt_id
from ..services.verification_service import VerificationEngine
from .. import config # Import config for JWT settings

# --- JWT Configuration ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/verify")

# --- Token Payload Model ---
class TokenData(BaseModel):
    sub: str # Subject: the verified address

router = APIRouter(
    prefix="/auth",
    tags=["Authentication (SIWE)"],
)

logger = logging.getLogger(__name__)

# Outward HTTP status per error code; anything unlisted is 401
_STATUS_BY_CODE = {
    ErrorCode.INVALID_PARAMS: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_MESSAGE: status.HTTP_400_BAD_REQUEST,
}

_VERIFY_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


# --- Dependencies ---
def get_challenge_issuer(request: Request) -> ChallengeIssuer:
    return request.app.state.challenge_issuer


def get_verification_engine(request: Request) -> VerificationEngine:
    return request.app.state.verification_engine


# --- Helper Functions ---
def verification_error_response(exc: SiweVerificationError) -> JSONResponse:
    """Renders a classified verification failure, hiding the specific code when configured to."""
    if config.SIWE_GENERIC_ERRORS:
        body = ErrorResponse(detail="Verification failed", code=ErrorCode.VERIFICATION_FAILED.value)
        status_code = status.HTTP_401_UNAUTHORIZED
    else:
        body = ErrorResponse(detail=exc.message, code=exc.code.value)
        status_code = _STATUS_BY_CODE.get(exc.code, status.HTTP_401_UNAUTHORIZED)
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def siwe_error_handler(request: Request, exc: SiweVerificationError) -> JSONResponse:
    return verification_error_response(exc)


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Creates a JWT access token."""
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)
    return encoded_jwt


def verification_context(request: Request) -> VerificationContext:
    return VerificationContext(
        expected_host=request_host(request),
        expected_uri=canonical_url(request),
        attempt_id=request.cookies.get(config.ATTEMPT_COOKIE_NAME),
    )


def _require_token_config():
    # Checked before verification so a consumed nonce is never left without a session
    if not config.JWT_SECRET_KEY:
        logger.error("Missing JWT_SECRET_KEY configuration.")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Server configuration error.")


async def _verify_and_finalize(
    data: VerificationInput,
    request: Request,
    response: Response,
    engine: VerificationEngine,
) -> VerifyResponse:
    _require_token_config()
    identity = await engine.verify(data, verification_context(request))

    access_token = create_access_token(
        data={"sub": identity.address},
        expires_delta=timedelta(minutes=config.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info(f"JWT generated successfully for address: {identity.address}")
    response.delete_cookie(config.ATTEMPT_COOKIE_NAME, path="/")

    return VerifyResponse(address=identity.address, access_token=access_token)


# --- API Endpoints ---
@router.get(
    "/authorize",
    response_model=ChallengeResponse,
    responses={status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse}},
)
async def authorize(request: Request, issuer: ChallengeIssuer = Depends(get_challenge_issuer)):
    """
    Issues a fresh SIWE challenge.

    The nonce is stored server-side for 10 minutes and bound to this browser via
    an HTTP-only attempt cookie.
    """
    attempt_id = generate_attempt_id()
    _, challenge_response = await issuer.issue(request, attempt_id)
    challenge_response.set_cookie(
        config.ATTEMPT_COOKIE_NAME,
        attempt_id,
        max_age=NONCE_TTL_SECONDS,
        path="/",
        httponly=True,
        secure=config.ATTEMPT_COOKIE_SECURE,
        samesite="lax",
    )
    return challenge_response


@router.get("/verify", response_model=VerifyResponse, responses=_VERIFY_RESPONSES)
async def verify_query(
    request: Request,
    response: Response,
    engine: VerificationEngine = Depends(get_verification_engine),
):
    """
    Verifies a signed SIWE message passed as URL-encoded query parameters.

    - **message**: The EIP-4361 message text.
    - **signature**: The hex-encoded signature string.
    """
    data = VerificationInput(
        message=request.query_params.get("message"),
        signature=request.query_params.get("signature"),
    )
    return await _verify_and_finalize(data, request, response, engine)


@router.post("/verify", response_model=VerifyResponse, responses=_VERIFY_RESPONSES)
async def verify_body(
    verify_request: VerifyRequest,
    request: Request,
    response: Response,
    engine: VerificationEngine = Depends(get_verification_engine),
):
    """
    Verifies a signed SIWE message sent as a JSON body.

    - **message**: The EIP-4361 message text.
    - **signature**: The hex-encoded signature string.
    - **nonce** / **timestamp**: Optional client-held nonce and its issuance time
      (epoch ms). Only consulted when no server-side nonce exists for this attempt.
    """
    data = VerificationInput(
        message=verify_request.message,
        signature=verify_request.signature,
        supplied_nonce=verify_request.nonce,
        supplied_timestamp=verify_request.timestamp,
    )
    return await _verify_and_finalize(data, request, response, engine)


# --- Secure Dependency for Authenticated User ---
async def get_current_active_user(token: str = Depends(oauth2_scheme)) -> str:
    """
    Dependency that verifies the JWT token from the Authorization header
    and returns the user's address (subject of the token).
    Raises HTTPException 401 if the token is invalid or expired.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not config.JWT_SECRET_KEY:
        raise credentials_exception
    try:
        payload = jwt.decode(
            token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM]
        )
        address: str | None = payload.get("sub")
        if address is None:
            logger.warning("Token payload missing 'sub' (address) claim.")
            raise credentials_exception

        token_data = TokenData(sub=address)

    except JWTError as e:
        logger.warning(f"JWT Error during token decoding: {e}")
        raise credentials_exception
    except ValidationError as e:
        logger.warning(f"JWT payload validation error: {e}")
        raise credentials_exception

    return token_data.sub


@router.get(
    "/me",
    response_model=MeResponse,
    responses={status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse}},
)
async def read_current_user(current_user_address: str = Depends(get_current_active_user)):
    """Returns the address bound to the presented bearer token."""
    return MeResponse(address=current_user_address)
