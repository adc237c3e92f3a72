"""Pydantic schemas for API validation."""
from zkaccount.schemas.common import (
    CorrelatedResponse,
    ErrorResponse,
)
from zkaccount.schemas.chain import ChainConfigResponse, ChainProfile
from zkaccount.schemas.account import (
    AccountCreate,
    AccountRecord,
    AccountStatusResponse,
    BalanceView,
    Keypair,
)
from zkaccount.schemas.proof import (
    EMPTY_PROOF,
    ProofPayload,
    ProofResponse,
    SessionContext,
)
from zkaccount.schemas.transfer import (
    Balance,
    NativeTransferCreate,
    RecipientResolution,
    SettlementNotice,
    TokenTransferCreate,
    TransferOutcome,
    TransferRequest,
    TransferState,
)

__all__ = [
    "CorrelatedResponse",
    "ErrorResponse",
    "ChainConfigResponse",
    "ChainProfile",
    "AccountCreate",
    "AccountRecord",
    "AccountStatusResponse",
    "BalanceView",
    "Keypair",
    "EMPTY_PROOF",
    "ProofPayload",
    "ProofResponse",
    "SessionContext",
    "Balance",
    "NativeTransferCreate",
    "RecipientResolution",
    "SettlementNotice",
    "TokenTransferCreate",
    "TransferOutcome",
    "TransferRequest",
    "TransferState",
]
