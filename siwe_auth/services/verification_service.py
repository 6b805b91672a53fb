"""
SIWE verification pipeline.

Checks run in a fixed order and the first failure ends the attempt:

    params -> nonce resolution -> decode -> nonce match -> required fields
           -> domain binding -> URI binding -> signature -> nonce consumption

The nonce is consumed only after the signature has been accepted, and
consumption is the last suspension point before the identity is returned.

Every consumed nonce, stored or inline, leaves a spent marker behind. An
inline nonce whose marker exists is refused, and the marker outlives the
window in which the signed message could still pass the inline checks.
"""
import logging
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from ..errors import (
    ExpiredNonce,
    InvalidDomain,
    InvalidNonce,
    InvalidParams,
    InvalidSignature,
    InvalidUri,
    MalformedMessage,
    MissingNonce,
    SiweVerificationError,
)
from ..models.auth_models import SignedMessage, VerificationContext, VerificationInput, VerifiedIdentity
from ..nonce_store import NonceStore, nonce_key, spent_nonce_key
from . import message_codec
from .challenge_service import NONCE_TTL_MS, NONCE_TTL_SECONDS
from .signature_service import SignatureVerifier

logger = logging.getLogger(__name__)

# Tolerated client clock drift for inline timestamps and Issued At
MAX_CLOCK_SKEW_MS = 60_000


@dataclass(frozen=True)
class ResolvedNonce:
    value: str
    # Store key holding the nonce; None when the caller supplied it inline
    key: str | None


# --- Pipeline stages ---

def check_params(data: VerificationInput) -> tuple[str, str]:
    message, signature = data.message, data.signature
    if not isinstance(message, str) or not message or not isinstance(signature, str) or not signature:
        raise InvalidParams("Missing required parameters: message and signature")
    return message, signature


def check_issue_time(issued_ms: int, now_ms: int, label: str) -> None:
    """Issued no more than NONCE_TTL_MS ago (boundary inclusive) and not ahead of now beyond the skew."""
    if issued_ms - now_ms > MAX_CLOCK_SKEW_MS:
        raise InvalidNonce(f"{label} is {issued_ms - now_ms} ms in the future")
    if now_ms - issued_ms > NONCE_TTL_MS:
        raise ExpiredNonce(f"{label} is {now_ms - issued_ms} ms old")


def check_fallback_nonce(nonce: str | None, timestamp_ms: int | None, now_ms: int) -> str:
    if not nonce or timestamp_ms is None:
        raise MissingNonce()
    check_issue_time(timestamp_ms, now_ms, "Nonce timestamp")
    return nonce


def issued_at_ms(parsed: SignedMessage) -> int | None:
    """Issued At of the message in epoch ms, or None when absent or unreadable."""
    if not parsed.issued_at:
        return None
    raw = parsed.issued_at.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        issued = datetime.fromisoformat(raw)
    except ValueError:
        return None
    if issued.tzinfo is None:
        issued = issued.replace(tzinfo=timezone.utc)
    return int(issued.timestamp() * 1000)


def check_fallback_message(parsed: SignedMessage, now_ms: int) -> None:
    """An inline nonce is only honoured for a message signed inside the same window."""
    issued_ms = issued_at_ms(parsed)
    if issued_ms is None:
        raise MalformedMessage("Message has no readable Issued At")
    check_issue_time(issued_ms, now_ms, "Message Issued At")


def check_nonce(parsed: SignedMessage, expected_nonce: str) -> None:
    if parsed.nonce != expected_nonce:
        raise InvalidNonce()


def check_fields(parsed: SignedMessage) -> None:
    if not parsed.domain or not parsed.uri or not parsed.address:
        raise MalformedMessage("Message is missing domain, uri or address")


def domain_matches(domain: str, host: str) -> bool:
    """Exact host[:port] match. Parent domains and wildcards never match."""
    return domain.strip().lower() == host.strip().lower()


def check_domain(parsed: SignedMessage, expected_host: str) -> None:
    if not expected_host or not domain_matches(parsed.domain, expected_host):
        raise InvalidDomain(f"Domain mismatch: message declares '{parsed.domain}'")


def check_uri(parsed: SignedMessage, expected_uri: str) -> None:
    if parsed.uri != expected_uri:
        raise InvalidUri(f"Message URI '{parsed.uri}' is not the verification endpoint")


def spent_marker_ttl(parsed: SignedMessage, data: VerificationInput, now_ms: int) -> int:
    """
    Seconds the spent marker must live.

    Covers the inline window of the signed Issued At and of the supplied
    timestamp (each plus skew), and never less than one nonce lifetime.
    """
    horizon_ms = now_ms + NONCE_TTL_MS + MAX_CLOCK_SKEW_MS
    for issued_ms in (issued_at_ms(parsed), data.supplied_timestamp):
        if issued_ms is not None:
            horizon_ms = max(horizon_ms, issued_ms + NONCE_TTL_MS + MAX_CLOCK_SKEW_MS)
    return max(NONCE_TTL_SECONDS, math.ceil((horizon_ms - now_ms) / 1000))


class VerificationEngine:
    def __init__(
        self,
        store: NonceStore,
        signature_verifier: SignatureVerifier,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.signature_verifier = signature_verifier
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def resolve_nonce(self, data: VerificationInput, context: VerificationContext) -> ResolvedNonce:
        if context.attempt_id:
            key = nonce_key(context.attempt_id)
            stored = await self.store.get(key)
            if stored:
                return ResolvedNonce(value=stored, key=key)
        value = check_fallback_nonce(data.supplied_nonce, data.supplied_timestamp, self._now_ms())
        if await self.store.get(spent_nonce_key(value)) is not None:
            raise InvalidNonce("Nonce already used")
        return ResolvedNonce(value=value, key=None)

    async def consume_nonce(self, resolved: ResolvedNonce, ttl_seconds: int) -> None:
        consumed = True
        if resolved.key is not None:
            consumed = await self.store.delete(resolved.key)
        if consumed:
            # Serialises inline uses, and blocks inline reuse of a stored nonce
            consumed = await self.store.add(spent_nonce_key(resolved.value), ttl_seconds, "1")
        if not consumed:
            # Another attempt consumed this nonce first
            raise InvalidNonce("Nonce already used")

    async def verify(self, data: VerificationInput, context: VerificationContext) -> VerifiedIdentity:
        try:
            message, signature = check_params(data)
            resolved = await self.resolve_nonce(data, context)
            parsed = message_codec.parse(message)
            check_nonce(parsed, resolved.value)
            if resolved.key is None:
                check_fallback_message(parsed, self._now_ms())
            check_fields(parsed)
            check_domain(parsed, context.expected_host)
            check_uri(parsed, context.expected_uri)

            if not await self.signature_verifier.verify(message, signature):
                raise InvalidSignature()

            await self.consume_nonce(resolved, spent_marker_ttl(parsed, data, self._now_ms()))
        except SiweVerificationError as e:
            logger.warning(f"SIWE verification failed [{e.code.value}]: {e.message}")
            raise

        logger.info(f"SIWE verification succeeded for address: {parsed.address}")
        return VerifiedIdentity(address=parsed.address)
