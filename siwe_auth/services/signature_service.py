from abc import ABC, abstractmethod
from fastapi.concurrency import run_in_threadpool
from siwe import SiweMessage, VerificationError
from web3 import Web3
import logging

from .. import config

logger = logging.getLogger(__name__)


class SignatureVerifier(ABC):
    """
    Checks that `signature` over `message` was produced by the address the message claims.

    Returns False for a signature that does not verify; it does not raise for that case.
    """

    @abstractmethod
    async def verify(self, message: str, signature: str) -> bool:
        ...


class SiweSignatureVerifier(SignatureVerifier):
    """
    Verifies SIWE signatures with the `siwe` library (EIP-191 recovery via eth-account).

    When a web3 provider is configured, contract wallets are checked through
    EIP-1271 `isValidSignature` calls as well.
    """

    def __init__(self, provider: Web3.HTTPProvider | None = None):
        self.provider = provider

    @classmethod
    def from_config(cls) -> "SiweSignatureVerifier":
        if not config.ETH_RPC_URL:
            logger.info("ETH_RPC_URL not configured. Contract wallet (EIP-1271) signatures will not verify.")
            return cls()
        logger.info(f"Using RPC provider for signature verification: {config.ETH_RPC_URL}")
        return cls(provider=Web3.HTTPProvider(config.ETH_RPC_URL))

    def _verify_sync(self, message: str, signature: str) -> bool:
        try:
            siwe_message = SiweMessage.from_message(message=message, abnf=False)
            siwe_message.verify(signature, provider=self.provider)
        except VerificationError as e:
            logger.warning(f"SIWE signature rejected: {type(e).__name__}: {e}")
            return False
        except ValueError as e:
            # Undecodable message or non-hex signature
            logger.warning(f"SIWE signature could not be checked: {e}")
            return False
        return True

    async def verify(self, message: str, signature: str) -> bool:
        # siwe/web3 are blocking; keep them off the event loop
        return await run_in_threadpool(self._verify_sync, message, signature)
