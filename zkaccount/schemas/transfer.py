"""Transfer request, outcome and state machine schemas."""
import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from zkaccount.exceptions import ErrorKind, ZKAccountError


class TransferState(str, enum.Enum):
    """
    Transfer attempt state machine.

    VALIDATING → RESOLVING_RECIPIENT → CHECKING_BALANCE → RESOLVING_PROOF (conditional)
    → ESTIMATING_GAS → SUBMITTING → SUBMITTED
    """
    VALIDATING = "VALIDATING"
    RESOLVING_RECIPIENT = "RESOLVING_RECIPIENT"
    CHECKING_BALANCE = "CHECKING_BALANCE"
    RESOLVING_PROOF = "RESOLVING_PROOF"
    ESTIMATING_GAS = "ESTIMATING_GAS"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


TERMINAL_STATES = {TransferState.SUBMITTED, TransferState.FAILED, TransferState.CANCELLED}

VALID_TRANSITIONS = {
    TransferState.VALIDATING: [
        TransferState.RESOLVING_RECIPIENT,
        TransferState.FAILED,
        TransferState.CANCELLED,
    ],
    TransferState.RESOLVING_RECIPIENT: [
        TransferState.CHECKING_BALANCE,
        TransferState.FAILED,
        TransferState.CANCELLED,
    ],
    TransferState.CHECKING_BALANCE: [
        TransferState.RESOLVING_PROOF,  # Account requires a proof
        TransferState.ESTIMATING_GAS,   # No proof required
        TransferState.FAILED,
        TransferState.CANCELLED,
    ],
    TransferState.RESOLVING_PROOF: [
        TransferState.ESTIMATING_GAS,
        TransferState.FAILED,
        TransferState.CANCELLED,
    ],
    TransferState.ESTIMATING_GAS: [
        TransferState.SUBMITTING,
        TransferState.FAILED,
        TransferState.CANCELLED,
    ],
    # Once submitting starts the send cannot be cancelled
    TransferState.SUBMITTING: [TransferState.SUBMITTED, TransferState.FAILED],
    TransferState.SUBMITTED: [],  # Terminal state
    TransferState.FAILED: [],  # Terminal state
    TransferState.CANCELLED: [],  # Terminal state
}


class TransferRequest(BaseModel):
    """A spend from a ZK Account. `token_address=None` sends the native asset."""
    model_config = ConfigDict(frozen=True)

    from_zk_account: str = Field(..., description="Sending ZK Account address")
    to_address: str = Field(..., description="Recipient address or email")
    token_address: Optional[str] = None
    amount: str = Field(..., description="Decimal amount in whole units")
    chain_id: int

    @property
    def is_native(self) -> bool:
        return self.token_address is None


class Balance(BaseModel):
    """Balance in smallest units plus its exact decimal rendering."""
    model_config = ConfigDict(frozen=True)

    raw: int
    decimals: int
    formatted: str


class TransferOutcome(BaseModel):
    """Terminal result of one attempt. Confirmation is reported separately."""
    model_config = ConfigDict(frozen=True)

    success: bool
    tx_hash: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    error_details: Optional[str] = None
    stage: Optional[str] = None
    explorer_url: Optional[str] = None
    zk_account_address: Optional[str] = None
    already_existed: bool = False

    @property
    def retryable(self) -> bool:
        return self.error_kind == ErrorKind.PROOF_REPLAY

    @classmethod
    def from_error(
        cls,
        error: ZKAccountError,
        stage: Optional[str] = None,
        zk_account_address: Optional[str] = None,
    ) -> "TransferOutcome":
        """Failed outcome carrying the stable message and the raw details."""
        details = error.details
        return cls(
            success=False,
            error_kind=error.kind,
            error_message=error.message,
            error_details=None if details is None else str(details),
            stage=error.stage or stage,
            zk_account_address=zk_account_address,
        )


class SettlementNotice(BaseModel):
    """Follow-up notification about a submitted transaction."""
    model_config = ConfigDict(frozen=True)

    tx_hash: str
    confirmed: bool
    reason: Optional[str] = None
    reverted: bool = False
    block_number: Optional[int] = None


class NativeTransferCreate(BaseModel):
    """Schema for send-native."""
    private_key: SecretStr
    owner_address: str = Field(..., min_length=42, max_length=42)
    to: str = Field(..., min_length=1, description="Recipient address or email")
    amount: str
    chain_id: int = Field(..., gt=0)
    from_zk_account: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "private_key": "0x...",
                "owner_address": "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD20",
                "to": "bob@example.com",
                "amount": "0.05",
                "chain_id": 17000
            }
        }


class TokenTransferCreate(NativeTransferCreate):
    """Schema for send-token."""
    token_address: str = Field(..., min_length=42, max_length=42)


class RecipientResolution(BaseModel):
    """Schema for recipient resolve response."""
    input: str
    address: str
    via_directory: bool
