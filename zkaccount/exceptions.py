"""Error taxonomy for ZK Account orchestration."""

from __future__ import annotations

import enum
from typing import Any, Optional


class ErrorKind(str, enum.Enum):
    """Stable failure categories surfaced to callers."""

    INVALID_INPUT = "INVALID_INPUT"
    RECIPIENT_NOT_FOUND = "RECIPIENT_NOT_FOUND"
    INSUFFICIENT_TRANSFER_BALANCE = "INSUFFICIENT_TRANSFER_BALANCE"
    INSUFFICIENT_GAS_RESERVE = "INSUFFICIENT_GAS_RESERVE"
    PROOF_UNAVAILABLE = "PROOF_UNAVAILABLE"
    PROOF_MISMATCH = "PROOF_MISMATCH"
    PROOF_REPLAY = "PROOF_REPLAY"
    WOULD_REVERT = "WOULD_REVERT"
    ESTIMATION_INFRASTRUCTURE_FAILURE = "ESTIMATION_INFRASTRUCTURE_FAILURE"
    SUBMISSION_FAILED = "SUBMISSION_FAILED"
    TIMEOUT = "TIMEOUT"
    NODE_UNAVAILABLE = "NODE_UNAVAILABLE"
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"
    CHAIN_NOT_CONFIGURED = "CHAIN_NOT_CONFIGURED"
    CANCELLED = "CANCELLED"


# One user-facing template per kind. Placeholders are filled from error context.
ERROR_TEMPLATES = {
    ErrorKind.INVALID_INPUT: "Invalid input: {reason}",
    ErrorKind.RECIPIENT_NOT_FOUND: "No account is bound to {recipient}. Check the email or use an address.",
    ErrorKind.INSUFFICIENT_TRANSFER_BALANCE: (
        "Insufficient {asset} balance in ZK Account. Available: {available} ({available_raw} units), "
        "Requested: {required} ({required_raw} units)."
    ),
    ErrorKind.INSUFFICIENT_GAS_RESERVE: (
        "Insufficient ETH for gas fees in owner wallet. Available: {available} ETH ({available_raw} wei), "
        "Need at least: {required} ETH ({required_raw} wei)."
    ),
    ErrorKind.PROOF_UNAVAILABLE: "ZK proof could not be obtained. Please sign in again and retry.",
    ErrorKind.PROOF_MISMATCH: (
        "ZK Account was created with a different {field}. Use the original identity session "
        "or create a new ZK Account."
    ),
    ErrorKind.PROOF_REPLAY: "ZK proof has already been used. Retry to fetch a fresh proof.",
    ErrorKind.WOULD_REVERT: "Transaction would fail: {reason}",
    ErrorKind.ESTIMATION_INFRASTRUCTURE_FAILURE: (
        "Gas estimation is unavailable right now. The transfer was not sent so the proof is not wasted; "
        "please retry later."
    ),
    ErrorKind.SUBMISSION_FAILED: "Transaction could not be submitted: {reason}",
    ErrorKind.TIMEOUT: "The network did not answer in time. Please retry.",
    ErrorKind.NODE_UNAVAILABLE: "The network node is unavailable. Please retry later.",
    ErrorKind.ACCOUNT_NOT_FOUND: "No ZK Account found for wallet {owner}.",
    ErrorKind.CHAIN_NOT_CONFIGURED: "Chain {chain_id} is not configured.",
    ErrorKind.CANCELLED: "Transfer cancelled before submission.",
}


class _SafeFormat(dict):
    def __missing__(self, key: str) -> str:
        return "?"


def render_message(kind: ErrorKind, **context: Any) -> str:
    """Render the stable template for an error kind."""
    return ERROR_TEMPLATES[kind].format_map(_SafeFormat(context))


class ZKAccountError(Exception):
    """Base exception for orchestration failures."""

    kind: ErrorKind = ErrorKind.NODE_UNAVAILABLE

    def __init__(
        self,
        message: Optional[str] = None,
        details: Any = None,
        stage: Optional[str] = None,
        **context: Any,
    ):
        self.context = context
        self.message = message or render_message(self.kind, **context)
        super().__init__(self.message)
        self.details = details
        self.stage = stage

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class InvalidInputError(ZKAccountError):
    """Malformed address, amount or key."""

    kind = ErrorKind.INVALID_INPUT

    def __init__(self, reason: str, details: Any = None, stage: Optional[str] = None):
        super().__init__(details=details, stage=stage, reason=reason)
        self.reason = reason


class RecipientNotFoundError(ZKAccountError):
    """Email has no bound address in the directory."""

    kind = ErrorKind.RECIPIENT_NOT_FOUND


class InsufficientTransferBalanceError(ZKAccountError):
    """ZK Account cannot cover the transfer amount."""

    kind = ErrorKind.INSUFFICIENT_TRANSFER_BALANCE


class InsufficientGasReserveError(ZKAccountError):
    """Owner wallet cannot cover gas fees."""

    kind = ErrorKind.INSUFFICIENT_GAS_RESERVE


class ProofUnavailableError(ZKAccountError):
    """Proof issuing service failure."""

    kind = ErrorKind.PROOF_UNAVAILABLE


class UnauthenticatedError(ProofUnavailableError):
    """Session missing or rejected by the proof issuing service (401/403)."""


class ProofGenerationFailedError(ProofUnavailableError):
    """Any other proof issuing failure, including malformed responses."""


class ProofMismatchError(ZKAccountError):
    """Proof identity hashes differ from the account's authorized hashes."""

    kind = ErrorKind.PROOF_MISMATCH


class ProofReplayError(ZKAccountError):
    """Contract reports the proof was already consumed."""

    kind = ErrorKind.PROOF_REPLAY


class WouldRevertError(ZKAccountError):
    """Generic on-chain rejection."""

    kind = ErrorKind.WOULD_REVERT


class EstimationInfrastructureError(ZKAccountError):
    """Node/RPC failure during gas estimation."""

    kind = ErrorKind.ESTIMATION_INFRASTRUCTURE_FAILURE


class SubmissionError(ZKAccountError):
    """Transaction was rejected at submission."""

    kind = ErrorKind.SUBMISSION_FAILED


class BalanceTimeoutError(ZKAccountError):
    """Balance read timed out after all attempts."""

    kind = ErrorKind.TIMEOUT


class NodeUnavailableError(ZKAccountError):
    """Node call failed after all attempts."""

    kind = ErrorKind.NODE_UNAVAILABLE


class AccountNotFoundError(ZKAccountError):
    """Owner has no ZK Account."""

    kind = ErrorKind.ACCOUNT_NOT_FOUND


class ChainNotConfiguredError(ZKAccountError):
    """Configuration service has no profile for the chain."""

    kind = ErrorKind.CHAIN_NOT_CONFIGURED


class TransferCancelledError(ZKAccountError):
    """Caller cancelled before submission."""

    kind = ErrorKind.CANCELLED


ERRORS_BY_KIND = {
    ErrorKind.INSUFFICIENT_GAS_RESERVE: InsufficientGasReserveError,
    ErrorKind.PROOF_UNAVAILABLE: ProofUnavailableError,
    ErrorKind.PROOF_REPLAY: ProofReplayError,
    ErrorKind.WOULD_REVERT: WouldRevertError,
    ErrorKind.SUBMISSION_FAILED: SubmissionError,
    ErrorKind.CANCELLED: TransferCancelledError,
}
