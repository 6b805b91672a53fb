from pydantic import BaseModel, Field
from typing import List, Optional


class SignedMessage(BaseModel):
    """Fields decoded from an EIP-4361 message. Values are not checked against any context."""
    domain: str
    address: str
    uri: str
    nonce: str
    version: Optional[str] = None
    chain_id: Optional[int] = None
    statement: Optional[str] = None
    issued_at: Optional[str] = None
    expiration_time: Optional[str] = None
    not_before: Optional[str] = None
    request_id: Optional[str] = None
    resources: List[str] = []


class VerificationInput(BaseModel):
    message: Optional[str] = None
    signature: Optional[str] = None
    # Inline fallback for clients that were issued a nonce without server-side storage
    supplied_nonce: Optional[str] = None
    supplied_timestamp: Optional[int] = Field(None, description="Epoch milliseconds at which the supplied nonce was issued.")


class VerificationContext(BaseModel):
    expected_host: str = Field(..., description="Observed request host (after X-Forwarded-Host).")
    expected_uri: str = Field(..., description="Canonical verification endpoint: scheme + host + path.")
    attempt_id: Optional[str] = Field(None, description="Correlation id of the authentication attempt.")


class VerifiedIdentity(BaseModel):
    address: str


class ChallengeResponse(BaseModel):
    nonce: str = Field(..., description="Unique nonce for the SIWE message.")
    domain: str = Field(..., description="Domain the SIWE message must declare.")
    uri: str = Field(..., description="URI the SIWE message must be scoped to.")
    verify_url: str = Field(..., description="Endpoint that accepts the signed message.")
    chain_id: int
    version: str = "1"
    statement: Optional[str] = None
    resources: List[str] = []
    issued_at: str
    expiration_time: str


class VerifyRequest(BaseModel):
    message: Optional[str] = Field(None, description="The EIP-4361 message text that was signed.")
    signature: Optional[str] = Field(None, description="The hex-encoded signature provided by the user's wallet.")
    nonce: Optional[str] = Field(None, description="Client-held nonce, used only when no server-side nonce exists.")
    timestamp: Optional[int] = Field(None, description="Issuance time of `nonce` in epoch milliseconds.")


class VerifyResponse(BaseModel):
    status: str = "ok"
    address: str = Field(..., description="The verified Ethereum address of the user.")
    access_token: str = Field(..., description="JWT access token for subsequent authenticated requests.")
    token_type: str = Field("bearer", description="Type of the token (always 'bearer').")


class MeResponse(BaseModel):
    address: str
