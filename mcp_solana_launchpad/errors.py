"""
Custom Exception Classes for the Solana Launchpad

This module defines the exception classes raised by the token-sale engine. Every
rejection of an instruction is a hard stop: the instruction is aborted, the program
state is rolled back, and the caller decides whether to resubmit.

Exception Categories:
- Authorization Errors: caller mismatch, uninitialized or already initialized config
- State Ordering Errors: the sale is in the wrong phase for the requested operation
- Economic Errors: slippage bounds violated, insufficient recorded balance
- Arithmetic Errors: checked u64/u128 arithmetic overflowed or underflowed
- Validation Errors: zero amounts, out-of-range parameters, oversized metadata
- Allowlist Errors: missing or invalid Merkle proof
- Collaborator Errors: a ledger, token or pool adapter refused an operation

Each launchpad error carries a stable ``code`` string so that callers (and the MCP
server) can report failures without depending on the message text.

Usage:
    These exceptions are raised by the core and caught at the server boundary,
    where they are logged and converted to user-facing messages.
"""


class LaunchpadError(Exception):
    """Base class for every rejection raised by the launchpad program."""

    code = "LaunchpadError"
    message = "The launchpad rejected the operation."

    def __init__(self, message: str = None):
        super().__init__(message or self.message)


# --- Authorization ---

class NotAuthorizedError(LaunchpadError):
    """Raised when the caller is not the identity required by the instruction."""

    code = "NotAuthorized"
    message = "The given account is not authorized to execute this instruction."


class AlreadyInitializedError(LaunchpadError):
    """Raised when initialize is called on an already created global config."""

    code = "AlreadyInitialized"
    message = "The program is already initialized."


class NotInitializedError(LaunchpadError):
    """Raised when an instruction needs the global config before it exists."""

    code = "NotInitialized"
    message = "The program is not initialized."


# --- State ordering ---

class BondingCurveNotStartError(LaunchpadError):
    code = "BondingCurveNotStart"
    message = "The bonding curve has not start yet."


class BondingCurveCompleteError(LaunchpadError):
    code = "BondingCurveComplete"
    message = "The bonding curve has completed."


class BondingCurveNotCompleteError(LaunchpadError):
    code = "BondingCurveNotComplete"
    message = "The bonding curve has not completed."


class BondingCurveEndedError(LaunchpadError):
    code = "BondingCurveEnded"
    message = "The bonding curve has ended."


class BondingCurveNotEndedError(LaunchpadError):
    code = "BondingCurveNotEnded"
    message = "The bonding curve has not ended."


class BondingCurveAlreadyMigratedError(LaunchpadError):
    code = "BondingCurveAlreadyMigrated"
    message = "The bonding curve has been migrated."


class BondingCurveAlreadyWithdrawedError(LaunchpadError):
    code = "BondingCurveAlreadyWithdrawed"
    message = "The bonding curve has been withdrawed."


class BondingCurveNotWithdrawedError(LaunchpadError):
    code = "BondingCurveNotWithdrawed"
    message = "The bonding curve has not been withdrawed."


class NotMigratedError(LaunchpadError):
    code = "NotMigrated"
    message = "Token not migrated yet."


class BondingCurveNotFoundError(LaunchpadError):
    """Raised when no bonding curve record exists for a mint."""

    code = "BondingCurveNotFound"
    message = "No bonding curve exists for the given mint."


class AccountAlreadyInUseError(LaunchpadError):
    """Raised when a record that must be created fresh already exists."""

    code = "AccountAlreadyInUse"
    message = "The account is already in use."


# --- Economic / slippage ---

class TooMuchSolRequiredError(LaunchpadError):
    code = "TooMuchSolRequired"
    message = "slippage: Too much SOL required to buy the given amount of tokens."


class TooLittleSolReceivedError(LaunchpadError):
    code = "TooLittleSolReceived"
    message = "slippage: Too little SOL received to sell the given amount of tokens."


class InsufficientBalanceError(LaunchpadError):
    code = "InsufficientBalance"
    message = "Insufficient token balance."


class NoPurchaseRecordError(LaunchpadError):
    code = "NoPurchaseRecord"
    message = "No purchase record found."


# --- Arithmetic ---

class MathOverflowError(LaunchpadError):
    """Raised when checked arithmetic overflows or underflows. Always fatal."""

    code = "MathOverflow"
    message = "Mathematical operation overflow."


# --- Input validation ---

class InvalidValueError(LaunchpadError):
    code = "InvalidValue"
    message = "Invalid value."


class NameTooLongError(LaunchpadError):
    code = "NameTooLong"
    message = "Token name is too long."


class SymbolTooLongError(LaunchpadError):
    code = "SymbolTooLong"
    message = "Token symbol is too long."


class UriTooLongError(LaunchpadError):
    code = "UriTooLong"
    message = "Token URI is too long."


# --- Allowlist ---

class MerkleProofMissingError(LaunchpadError):
    code = "MerkleProofMissing"
    message = "Merkle proof is required for whitelist period."


class NotWhitelistedError(LaunchpadError):
    code = "NotWhitelisted"
    message = "You are not whitelisted."


# --- Collaborators and environment ---

class TransactionFailedError(Exception):
    """Raised if a ledger, token-program or pool adapter refuses a transfer."""


class ConfigurationError(Exception):
    """Raised when there are configuration-related errors."""


class ValidationError(Exception):
    """Raised when input validation fails at the server boundary."""
