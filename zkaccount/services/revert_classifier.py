"""Mapping of node and contract error strings to error kinds."""
from typing import List, Optional, Tuple

from web3.exceptions import ContractLogicError

from zkaccount.exceptions import ERRORS_BY_KIND, ErrorKind, WouldRevertError, ZKAccountError

# Ordered: first matching substring wins. Matching is case-insensitive.
# "proof already used" must precede the generic "execution reverted" entry,
# because the node reports it as "execution reverted: ZKAccount: proof already used".
REVERT_PATTERNS: List[Tuple[str, ErrorKind]] = [
    ("proof already used", ErrorKind.PROOF_REPLAY),
    ("unauthorized email hash", ErrorKind.PROOF_UNAVAILABLE),
    ("insufficient funds", ErrorKind.INSUFFICIENT_GAS_RESERVE),
    ("gas required exceeds allowance", ErrorKind.INSUFFICIENT_GAS_RESERVE),
    ("nonce", ErrorKind.SUBMISSION_FAILED),
    ("execution reverted", ErrorKind.WOULD_REVERT),
]


def classify_revert(message: Optional[str]) -> Optional[ErrorKind]:
    """Return the kind for the first matching pattern, or None."""
    if not message:
        return None
    lowered = message.lower()
    for pattern, kind in REVERT_PATTERNS:
        if pattern in lowered:
            return kind
    return None


def is_revert(exc: BaseException) -> bool:
    """True when the error is a contract rejection rather than a node failure."""
    if isinstance(exc, ContractLogicError):
        return True
    return "revert" in str(exc).lower()


def revert_reason(exc: BaseException) -> str:
    """Best-effort raw reason string from a node error."""
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    if exc.args and isinstance(exc.args[0], dict):
        return str(exc.args[0].get("message") or exc.args[0])
    return str(exc)


def classify_error(exc: BaseException) -> Optional[ErrorKind]:
    """
    Classify an estimation or submission error.

    Returns the matched kind, WOULD_REVERT for an unmatched revert, or None
    for an infrastructure failure.
    """
    kind = classify_revert(revert_reason(exc))
    if kind is not None:
        return kind
    if is_revert(exc):
        return ErrorKind.WOULD_REVERT
    return None


# Node-reported errors carry no amounts, so these kinds get a fixed message.
_NODE_MESSAGES = {
    ErrorKind.INSUFFICIENT_GAS_RESERVE: "Insufficient ETH for gas fees in owner wallet.",
}


def error_for_kind(kind: ErrorKind, reason: str, stage: Optional[str] = None) -> ZKAccountError:
    """Build the exception for a classified node error, keeping the raw reason as details."""
    error_cls = ERRORS_BY_KIND.get(kind, WouldRevertError)
    return error_cls(_NODE_MESSAGES.get(kind), details=reason, stage=stage, reason=reason)
