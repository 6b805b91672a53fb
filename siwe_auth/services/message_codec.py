from siwe import SiweMessage
import logging

from ..errors import MalformedMessage
from ..models.auth_models import SignedMessage

logger = logging.getLogger(__name__)


def _text(value) -> str | None:
    """Renders siwe field values (enums, URL objects, datetime strings) as plain text."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


def from_siwe_message(siwe_message: SiweMessage) -> SignedMessage:
    return SignedMessage(
        domain=_text(siwe_message.domain) or "",
        address=_text(siwe_message.address) or "",
        uri=_text(siwe_message.uri) or "",
        nonce=_text(siwe_message.nonce) or "",
        version=_text(siwe_message.version),
        chain_id=siwe_message.chain_id,
        statement=siwe_message.statement,
        issued_at=_text(siwe_message.issued_at),
        expiration_time=_text(siwe_message.expiration_time),
        not_before=_text(siwe_message.not_before),
        request_id=siwe_message.request_id,
        resources=[_text(r) for r in (siwe_message.resources or [])],
    )


def parse(raw: str) -> SignedMessage:
    """
    Decodes an EIP-4361 message into its fields.

    Purely structural: nothing is compared against the request context here.
    Raises MalformedMessage if the text does not follow the message grammar.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedMessage("Empty message")
    try:
        siwe_message = SiweMessage.from_message(message=raw, abnf=False)
    except ValueError as e:
        # pydantic's ValidationError is a ValueError too (bad address checksum, short nonce, ...)
        logger.debug(f"SIWE message failed to decode: {e}")
        raise MalformedMessage("Invalid message format") from e
    return from_siwe_message(siwe_message)
