import os
import logging
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in ("0", "false", "no", "off", "")


def _env_list(name: str, default: str = "") -> list[str]:
    raw = os.getenv(name, default)
    return [part.strip() for part in raw.split(",") if part.strip()]


# Nonce storage (in-process store is used when unset)
REDIS_URL = os.getenv("REDIS_URL")

# Optional RPC endpoint, enables EIP-1271 checks for contract wallets
ETH_RPC_URL = os.getenv("ETH_RPC_URL")

# --- Challenge presentation ---
try:
    SIWE_CHAIN_ID = int(os.getenv("SIWE_CHAIN_ID", "1"))
except ValueError:
    logger.warning("Invalid SIWE_CHAIN_ID in .env file. Defaulting to 1.")
    SIWE_CHAIN_ID = 1

SIWE_STATEMENT = os.getenv("SIWE_STATEMENT")
SIWE_RESOURCES = _env_list("SIWE_RESOURCES")

# Collapse outward verification error codes into one generic code
SIWE_GENERIC_ERRORS = _env_bool("SIWE_GENERIC_ERRORS", False)

# Attempt correlation cookie
ATTEMPT_COOKIE_NAME = "siwe_attempt"
ATTEMPT_COOKIE_SECURE = _env_bool("ATTEMPT_COOKIE_SECURE", True)

# JWT Settings
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
try:
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
except ValueError:
    logger.warning("Invalid JWT_ACCESS_TOKEN_EXPIRE_MINUTES in .env file. Defaulting to 30.")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES = 30

CORS_ORIGINS = _env_list("CORS_ORIGINS", "http://localhost:3000")

# Basic validation
if not JWT_SECRET_KEY:
    logger.warning("JWT_SECRET_KEY not found in .env file. Authentication will fail.")
if not REDIS_URL:
    logger.warning("REDIS_URL not set. Nonces are kept in process memory and are not shared across workers.")
