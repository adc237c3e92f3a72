"""Key and account schemas."""
from typing import List, Optional

from pydantic import BaseModel, Field, SecretStr


class Keypair(BaseModel):
    """Signing keypair. The private key never appears in repr or dumps."""
    address: str
    private_key: SecretStr


class AccountRecord(BaseModel):
    """ZK Account identity; the address is known before deployment."""
    owner_address: str
    zk_account_address: str
    deployed: bool = False
    requires_proof: bool = True
    email_hash: int = 0
    domain_hash: int = 0
    nonce: int = 0
    verifier_address: Optional[str] = None


class AccountCreate(BaseModel):
    """Schema for creating a ZK Account."""
    private_key: SecretStr
    owner_address: str = Field(..., min_length=42, max_length=42)
    email: str = Field(..., min_length=3)
    chain_id: int = Field(..., gt=0)
    requires_proof: bool = True

    class Config:
        json_schema_extra = {
            "example": {
                "private_key": "0x...",
                "owner_address": "0x742d35Cc6634C0532925a3b844Bc9e7595f2bD20",
                "email": "alice@example.com",
                "chain_id": 17000,
                "requires_proof": True
            }
        }


class BalanceView(BaseModel):
    """Balance of one asset."""
    asset: str
    raw: str
    formatted: str
    decimals: int


class AccountStatusResponse(BaseModel):
    """Schema for check-account response."""
    owner_address: str
    has_account: bool
    account: Optional[AccountRecord] = None
    owner_balance: Optional[BalanceView] = None
    balances: List[BalanceView] = []
    explorer_url: Optional[str] = None
