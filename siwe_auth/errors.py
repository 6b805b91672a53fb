"""
Error taxonomy for SIWE verification.

Every failure of a verification attempt is terminal for that attempt. The
transport layer maps `code` to an HTTP response; nothing here is retried.
"""
from enum import Enum


class ErrorCode(str, Enum):
    INVALID_PARAMS = "invalid_params"
    MISSING_NONCE = "missing_nonce"
    EXPIRED_NONCE = "expired_nonce"
    INVALID_MESSAGE = "invalid_message"
    INVALID_NONCE = "invalid_nonce"
    INVALID_DOMAIN = "invalid_domain"
    INVALID_URI = "invalid_uri"
    INVALID_SIGNATURE = "invalid_signature"
    # Outward code used when specific codes are hidden
    VERIFICATION_FAILED = "verification_failed"


class SiweVerificationError(Exception):
    """Base class for all classified verification failures."""

    code: ErrorCode = ErrorCode.VERIFICATION_FAILED
    default_message = "Verification failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class InvalidParams(SiweVerificationError):
    code = ErrorCode.INVALID_PARAMS
    default_message = "Missing required parameters"


class MissingNonce(SiweVerificationError):
    code = ErrorCode.MISSING_NONCE
    default_message = "Missing nonce"


class ExpiredNonce(SiweVerificationError):
    code = ErrorCode.EXPIRED_NONCE
    default_message = "Expired nonce"


class MalformedMessage(SiweVerificationError):
    code = ErrorCode.INVALID_MESSAGE
    default_message = "Invalid message format"


class InvalidNonce(SiweVerificationError):
    code = ErrorCode.INVALID_NONCE
    default_message = "Invalid nonce"


class InvalidDomain(SiweVerificationError):
    code = ErrorCode.INVALID_DOMAIN
    default_message = "Domain mismatch"


class InvalidUri(SiweVerificationError):
    code = ErrorCode.INVALID_URI
    default_message = "Invalid URI"


class InvalidSignature(SiweVerificationError):
    code = ErrorCode.INVALID_SIGNATURE
    default_message = "Invalid signature"
