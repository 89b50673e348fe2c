import os
import logging
from typing import Optional
from solders.pubkey import Pubkey
from spl.token.constants import WRAPPED_SOL_MINT
from dotenv import load_dotenv

# Import custom errors
from mcp_solana_launchpad.errors import ConfigurationError

"""
Configuration Management for the Solana Launchpad

This module loads the environment-driven settings of the launchpad program and
defines the protocol constants shared by every sale instance.

Configuration Sources (in order of precedence):
1. Environment variables
2. Default values defined in this module
3. Configuration validation and type conversion

Environment Variables:
    LAUNCHPAD_PROGRAM_ID: Program id used to derive sale addresses
    POOL_PROGRAM_ID: Program id of the external pool-provisioning protocol
    TOKEN_DECIMALS: Decimals of every token created by the launchpad (0-9)
    STATE_FILE: Optional JSON snapshot path used by the MCP server
    POOL_OPEN_TIME: Open time passed to the pool provisioner on migration
    POOL_LOCKED_LIQUIDITY: LP units permanently locked by the pool provisioner

Note that the global sale parameters (fees, supply partition, recipients) are not
environment settings: they live in the ConfigStore and are changed only by the
administrator through set_params.
"""

# Set up logger
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def _get_env_str(key: str, default: str, required: bool = False) -> str:
    """Get environment variable as string with validation."""
    value = os.getenv(key, default)
    if required and not value:
        raise ConfigurationError(f"Required environment variable {key} is not set")
    return value


def _get_env_int(key: str, default: int, min_val: Optional[int] = None, max_val: Optional[int] = None) -> int:
    """Get environment variable as integer with validation."""
    try:
        value = int(os.getenv(key, str(default)))
    except ValueError:
        raise ConfigurationError(f"Environment variable {key} must be a valid integer")
    if min_val is not None and value < min_val:
        raise ConfigurationError(f"Environment variable {key} must be >= {min_val}")
    if max_val is not None and value > max_val:
        raise ConfigurationError(f"Environment variable {key} must be <= {max_val}")
    return value


def _get_env_pubkey(key: str, default: str) -> Pubkey:
    """Get environment variable as Pubkey with validation."""
    try:
        value = os.getenv(key, default)
        return Pubkey.from_string(value)
    except Exception as e:
        raise ConfigurationError(f"Environment variable {key} must be a valid public key: {e}")


# --- Protocol Constants ---
BASE_POINTS = 10_000
LAMPORTS_PER_SOL = 10**9

GLOBAL_SEED = b"global"
MINT_AUTHORITY_SEED = b"mint_authority"
BONDING_CURVE_SEED = b"bonding_curve"
BONDING_CURVE_VAULT_SEED = b"bonding_curve_vault"
USER_PURCHASE_SEED = b"user_purchase"

# Token-metadata registry limits
MAX_NAME_LENGTH = 32
MAX_SYMBOL_LENGTH = 10
MAX_URI_LENGTH = 200

NATIVE_MINT = WRAPPED_SOL_MINT

# --- Environment Configuration ---
try:
    PROGRAM_ID = _get_env_pubkey("LAUNCHPAD_PROGRAM_ID", "3v8WEa92iJjbbTJRTgGzZbwDQCWMassUZmoE4kgbLUev")
    POOL_PROGRAM_ID = _get_env_pubkey("POOL_PROGRAM_ID", "CPMMoo8L3F4NbTegBCKVNunggL7H1ZpdTHKxQB5qKP1C")

    # --- Token Configuration ---
    TOKEN_DECIMALS = _get_env_int("TOKEN_DECIMALS", 6, min_val=0, max_val=9)

    # --- Migration ---
    POOL_OPEN_TIME = _get_env_int("POOL_OPEN_TIME", 0, min_val=0)
    POOL_LOCKED_LIQUIDITY = _get_env_int("POOL_LOCKED_LIQUIDITY", 100, min_val=0)

    # --- Persistence ---
    STATE_FILE = _get_env_str("STATE_FILE", "")

    logger.info("Configuration loaded successfully")

except ConfigurationError as e:
    logger.error(f"Configuration error: {e}")
    raise
